"""
This module defines the contract between :py:mod:`ldapmap` and the directory
transport that actually talks to the server, together with the request and reply
records that cross it.

The only transport shipped with the library is :py:class:`.core.Ldap3Transport`,
but keeping the contract small makes it easy to substitute another one (or a
fake one in tests).
"""

__author__ = "ldapmap developers"
__copyright__ = "Copyright 2026 ldapmap developers"

import abc
from collections import namedtuple


#: An attribute as it travels to or from the server
WireAttribute = namedtuple('WireAttribute', ['name', 'values'])

#: An entry as it travels to or from the server
WireEntry = namedtuple('WireEntry', ['dn', 'attributes'])


AddRequest = namedtuple('AddRequest', ['dn', 'attributes', 'controls'])

ModifyRequest = namedtuple('ModifyRequest', ['dn', 'modifications', 'controls'])

ModifyDNRequest = namedtuple(
    'ModifyDNRequest',
    ['dn', 'new_rdn', 'delete_old_rdn', 'new_superior', 'controls']
)

DeleteRequest = namedtuple('DeleteRequest', ['dn', 'controls'])

CompareRequest = namedtuple('CompareRequest', ['dn', 'attribute', 'value', 'controls'])

WhoAmIRequest = namedtuple('WhoAmIRequest', [])

PasswordModifyRequest = namedtuple(
    'PasswordModifyRequest',
    ['user', 'old_password', 'new_password']
)


#: The reply to an add, modify, modify DN, delete or bind request
Reply = namedtuple('Reply', ['code', 'name', 'message', 'controls'])

#: The reply to a search request
SearchReply = namedtuple('SearchReply', ['entries', 'controls'])

#: The reply to an extended request. For "who am I" the value is the
#: authorization identity, for password modify it is the generated password.
ExtendedReply = namedtuple('ExtendedReply', ['code', 'name', 'value'])


class EntrySource(metaclass = abc.ABCMeta):
    """
    A forward-only cursor over the entries of a single search, bound to one
    connection.

    Sources are context managers, and are closed on exit.
    """
    #: Controls returned with the search result
    response_controls = ()

    @abc.abstractmethod
    def next_entry(self):
        """
        Returns the next :py:class:`WireEntry`, or ``None`` once the search is
        complete.

        Raises:
            :py:class:`~.exceptions.EntrySourceError` if an entry cannot be read.
            The ``may_continue`` flag indicates whether reading can carry on.
        """

    def close(self):
        """
        Releases any resources held by the source.
        """

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class Transport(metaclass = abc.ABCMeta):
    """
    Base class for directory transports.

    Connection-scoped operations receive the connection to use as their first
    argument. Connections are opaque to :py:mod:`ldapmap` and are obtained from
    the transport's pool using :py:meth:`acquire`.
    """
    ############################################################################
    ## Connection pool
    ############################################################################

    @abc.abstractmethod
    def acquire(self):
        """
        Checks out a connection from the pool.
        """

    @abc.abstractmethod
    def release(self, conn):
        """
        Returns a healthy connection to the pool for reuse.
        """

    @abc.abstractmethod
    def release_and_reauthenticate(self, conn):
        """
        Returns a connection to the pool after restoring the pool's bind identity.
        """

    @abc.abstractmethod
    def invalidate(self, conn):
        """
        Discards a connection that must not be reused.
        """

    @abc.abstractmethod
    def bind_and_revert(self, dn, password):
        """
        Checks the given credentials using a pooled connection, then restores the
        connection's identity. Returns a :py:class:`Reply`.
        """

    @abc.abstractmethod
    def close(self):
        """
        Closes every connection in the pool.
        """

    ############################################################################
    ## Operations
    ############################################################################

    @abc.abstractmethod
    def search(self, conn, criteria):
        """
        Runs a search described by a :py:class:`~.criteria.SearchCriteria`.

        Returns:
            A :py:class:`SearchReply`.

        Raises:
            :py:class:`~.exceptions.SizeLimitExceededError` carrying the partial
            entries if the size limit was hit, or another exception from
            :py:func:`~.exceptions.for_result` for other failures.
        """

    @abc.abstractmethod
    def add(self, conn, request):
        """
        Sends an :py:class:`AddRequest` and returns a :py:class:`Reply`.
        """

    @abc.abstractmethod
    def modify(self, conn, request):
        """
        Sends a :py:class:`ModifyRequest` and returns a :py:class:`Reply`.
        """

    @abc.abstractmethod
    def modify_dn(self, conn, request):
        """
        Sends a :py:class:`ModifyDNRequest` and returns a :py:class:`Reply`.
        """

    @abc.abstractmethod
    def delete(self, conn, request):
        """
        Sends a :py:class:`DeleteRequest` and returns a :py:class:`Reply`.
        """

    @abc.abstractmethod
    def compare(self, conn, request):
        """
        Sends a :py:class:`CompareRequest` and returns ``True`` or ``False``.
        """

    @abc.abstractmethod
    def extended(self, conn, request):
        """
        Sends a :py:class:`WhoAmIRequest` or :py:class:`PasswordModifyRequest`
        and returns an :py:class:`ExtendedReply`.
        """

    @abc.abstractmethod
    def bind(self, conn, dn, password):
        """
        Binds the given connection as ``dn`` and returns a :py:class:`Reply`.
        """

    @abc.abstractmethod
    def open_entry_source(self, conn, criteria):
        """
        Starts a search and returns an :py:class:`EntrySource` for its entries.
        """
