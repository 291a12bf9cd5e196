"""
This module provides :py:class:`Directory`, the main entry point of
:py:mod:`ldapmap`.

A directory can be used in a ``with`` statement to ensure that its connections
are closed when it is finished with::

    with Directory.connect(host = 'ldap.example.com', bind_dn = dn, password = pw) as d:
        d.add('cn=jbloggs,ou=people,dc=example,dc=com', {
            'objectClass': {'top', 'person'},
            'cn': 'jbloggs',
            'sn': 'Bloggs',
        })
        for entry in d.search('ou=people,dc=example,dc=com', {'filter': '(sn=B*)'}):
            print(entry['dn'], entry['cn'])
"""

__author__ = "ldapmap developers"
__copyright__ = "Copyright 2026 ldapmap developers"

import logging, contextlib

from . import codec, controls, criteria, exceptions, modifications, results, search
from .core import Ldap3Transport
from .transport import (
    AddRequest, ModifyRequest, ModifyDNRequest, DeleteRequest, CompareRequest,
    WhoAmIRequest, PasswordModifyRequest
)


_log = logging.getLogger(__name__)


class Directory:
    """
    Performs operations on a directory, either through a pool of connections
    (one connection is checked out per operation) or on a single connection
    checked out from that pool.

    Args:
        transport: The :py:class:`~.transport.Transport` to use.
        connection: A connection checked out from the transport. If not given,
            operations use the pool.
        page_size: The page size used by :py:meth:`search_all` (optional).
    """
    def __init__(self, transport, connection = None, page_size = search.DEFAULT_PAGE_SIZE):
        self._transport = transport
        self._conn = connection
        self._page_size = page_size

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        # Just attempt to close the connection, but don't supress exceptions from
        # inside the with statement
        self.close()
        return False

    @classmethod
    def connect(cls, page_size = search.DEFAULT_PAGE_SIZE, **options):
        """
        Connects to a directory using ldap3 and returns a :py:class:`Directory`
        for the resulting pool.

        See :py:meth:`.core.Ldap3Transport.create` for the available options.
        """
        return cls(Ldap3Transport.create(**options), page_size = page_size)

    @property
    def is_pool(self):
        """
        ``True`` if operations check out a connection from the pool, ``False``
        if they use a single connection.
        """
        return self._conn is None

    @contextlib.contextmanager
    def _connection(self):
        """
        Context manager that yields the connection to use for one operation.

        Connections checked out from the pool are released afterwards, unless the
        connection itself failed, in which case it is invalidated.
        """
        if self._conn is not None:
            yield self._conn
            return
        conn = self._transport.acquire()
        try:
            yield conn
        except exceptions.ConnectionError:
            self._transport.invalidate(conn)
            raise
        except BaseException:
            self._transport.release(conn)
            raise
        else:
            self._transport.release(conn)

    ############################################################################
    ## Connections and identity
    ############################################################################

    def get_connection(self):
        """
        Checks out a connection from the pool and returns a :py:class:`Directory`
        that performs every operation on it. This is only needed when a sequence
        of operations must happen on one connection, e.g. :py:meth:`bind`
        followed by :py:meth:`modify` as the bound user.

        The connection should be given back using :py:meth:`release_connection`.
        """
        if not self.is_pool:
            raise exceptions.OperationNotAllowedError(
                message = 'A connection can only be checked out from a pool'
            )
        return type(self)(self._transport, self._transport.acquire(), self._page_size)

    def release_connection(self, directory):
        """
        Gives back a connection returned by :py:meth:`get_connection`, restoring
        the pool's bind identity.
        """
        self._transport.release_and_reauthenticate(directory._conn)
        directory._conn = None
        directory._transport = None

    @contextlib.contextmanager
    def connection(self):
        """
        Context manager that checks out a single connection for the duration of
        the ``with`` block::

            with directory.connection() as conn:
                conn.bind(user_dn, password)
                conn.modify(user_dn, {'replace': {'description': 'Updated'}})
        """
        directory = self.get_connection()
        try:
            yield directory
        finally:
            self.release_connection(directory)

    def bind(self, dn, password):
        """
        Attempts a bind as ``dn`` and returns ``True`` if it succeeds.

        On a pool, the bind has no lasting effect: the connection used reverts to
        the pool's identity. On a single connection, later operations on that
        connection are performed as ``dn``.
        """
        try:
            if self.is_pool:
                reply = self._transport.bind_and_revert(dn, password)
            else:
                reply = self._transport.bind(self._conn, dn, password)
        except exceptions.LDAPError:
            _log.exception('Bind failed for {}'.format(dn))
            return False
        return reply.code == results.SUCCESS

    def who_am_i(self):
        """
        Returns the authorization identity of the connection, with any ``dn:`` or
        ``u:`` prefix removed. The empty string means anonymous. ``None`` is
        returned if the server does not report an identity.
        """
        with self._connection() as conn:
            reply = self._transport.extended(conn, WhoAmIRequest())
        if reply.code != results.SUCCESS:
            return None
        authz_id = reply.value or ''
        if authz_id.startswith('dn:'):
            return authz_id[3:]
        if authz_id.startswith('u:'):
            return authz_id[2:]
        return authz_id

    def close(self):
        """
        Closes the pool, or gives back the single connection to its pool.
        """
        if self._transport is None:
            return
        if self.is_pool:
            _log.debug('Closing LDAP connection pool')
            self._transport.close()
        else:
            self._transport.release_and_reauthenticate(self._conn)
            self._conn = None
        self._transport = None

    ############################################################################
    ## Reading entries
    ############################################################################

    def get(self, dn, attributes = None, byte_valued = ()):
        """
        Returns the entry at ``dn`` as a dictionary, or ``None`` if it does not
        exist.

        Args:
            dn: The DN of the entry.
            attributes: The attributes to return (optional, defaults to all user
                attributes).
            byte_valued: The attributes to return as ``bytes`` (optional).
        """
        options = {
            'scope': 'base',
            'attributes': attributes,
            'byte_valued': byte_valued,
        }
        try:
            entries = self.search(dn, options)
        except exceptions.NoSuchObjectError:
            return None
        return entries[0] if entries else None

    def compare(self, dn, attribute, value, options = None):
        """
        Returns ``True`` if the entry at ``dn`` has the given attribute value,
        ``False`` otherwise. The only option is ``proxied_auth``.

        Raises:
            Any of the exceptions from :py:mod:`~.exceptions` if the comparison
            could not be made, e.g. because the entry does not exist.
        """
        request = CompareRequest(dn, str(attribute), value, ())
        request = controls.attach(request, {
            k: v for k, v in (options or {}).items() if k == 'proxied_auth'
        })
        with self._connection() as conn:
            return self._transport.compare(conn, request)

    def search(self, base, options = None):
        """
        Runs a search and returns the matching entries as a list of dictionaries.

        If the server stops at the size limit, the entries received so far are
        returned. See :py:mod:`~.criteria` for the available options.
        """
        crit = criteria.resolve(base, options)
        with self._connection() as conn:
            return search.search(self._transport, conn, crit)

    def search_all(self, base, options = None):
        """
        Runs a search using the paged results control, so that result sets larger
        than the server's size limit can be read, and returns every entry as a
        list of dictionaries.

        As well as the options from :py:mod:`~.criteria`, ``page_size`` sets the
        number of entries requested per page.
        """
        options = options or {}
        crit = criteria.resolve(base, options)
        paginator = search.SearchPaginator(
            self._transport, options.get('page_size') or self._page_size
        )
        with self._connection() as conn:
            return paginator.search_all(conn, crit)

    def stream(self, base, options = None):
        """
        Returns a generator of the entries matching a search. The entries are
        read from the server as the generator is consumed, on a connection
        checked out until the generator finishes or is closed.

        Raises:
            :py:class:`~.exceptions.OperationNotAllowedError` if called on a
            single connection.
        """
        if not self.is_pool:
            raise exceptions.OperationNotAllowedError(
                message = 'Streaming searches check out their own connection from a pool'
            )
        crit = criteria.resolve(base, options)
        return search.StreamingSearchExecutor(self._transport).entries(crit)

    def search_each(self, base, callback, options = None):
        """
        Runs a search and calls ``callback`` with each matching entry, without
        reading every entry into memory.

        Raises:
            :py:class:`~.exceptions.OperationNotAllowedError` if called on a
            single connection.
        """
        if not self.is_pool:
            raise exceptions.OperationNotAllowedError(
                message = 'Streaming searches check out their own connection from a pool'
            )
        crit = criteria.resolve(base, options)
        search.StreamingSearchExecutor(self._transport).run(crit, callback)

    ############################################################################
    ## Writing entries
    ############################################################################

    def add(self, dn, entry, options = None):
        """
        Creates an entry at ``dn`` with the attributes in the ``entry`` dictionary.

        The supported options are ``proxied_auth``, ``pre_read`` and
        ``post_read``.

        Returns:
            An :py:class:`~.results.Outcome`.

        Raises:
            Any of the exceptions from :py:mod:`~.exceptions`.
        """
        request = controls.attach(AddRequest(dn, codec.encode(entry), ()), options)
        with self._connection() as conn:
            return results.map_result(self._transport.add(conn, request))

    def modify(self, dn, changes, options = None):
        """
        Modifies the entry at ``dn``. The changes are of the form::

            {
                'add': {'attribute-a': 'value', 'attribute-b': ['value1', 'value2']},
                'delete': {'attribute-c': ALL_VALUES, 'attribute-d': 'value'},
                'replace': {'attribute-e': ['value1', 'value2']},
                'increment': {'attribute-f': 1},
                'pre_read': {'attribute-a', 'attribute-b'},
                'post_read': {'attribute-c'},
            }

        ``pre_read`` and ``post_read`` name attributes to read before and after
        the modifications take place. They, and ``proxied_auth``, can be given
        either with the changes or in ``options``.

        Returns:
            An :py:class:`~.results.Outcome`.

        Raises:
            Any of the exceptions from :py:mod:`~.exceptions`.
        """
        request = ModifyRequest(dn, modifications.build(changes), ())
        if isinstance(changes, dict):
            request = controls.attach(request, changes)
        request = controls.attach(request, options)
        with self._connection() as conn:
            return results.map_result(self._transport.modify(conn, request))

    def modify_rdn(self, dn, new_rdn, delete_old_rdn, options = None):
        """
        Changes the RDN of the entry at ``dn``. ``new_rdn`` must include the
        attribute name, e.g. ``cn=foo``.

        The supported options are ``pre_read``, ``post_read``, ``proxied_auth``
        and ``new_superior`` (the DN to move the entry under).

        Returns:
            An :py:class:`~.results.Outcome`.

        Raises:
            Any of the exceptions from :py:mod:`~.exceptions`.
        """
        options = options or {}
        request = ModifyDNRequest(dn, new_rdn, bool(delete_old_rdn), options.get('new_superior'), ())
        request = controls.attach(request, options)
        with self._connection() as conn:
            return results.map_result(self._transport.modify_dn(conn, request))

    def delete(self, dn, options = None):
        """
        Deletes the entry at ``dn``.

        The supported options are ``pre_read`` (applied to the base entry only
        when used with ``delete_subtree``), ``proxied_auth`` and
        ``delete_subtree``, which deletes everything beneath the entry as well
        (the server must support the subtree delete control).

        Returns:
            An :py:class:`~.results.Outcome`.

        Raises:
            Any of the exceptions from :py:mod:`~.exceptions`.
        """
        request = controls.attach(DeleteRequest(dn, ()), options)
        with self._connection() as conn:
            return results.map_result(self._transport.delete(conn, request))

    def modify_password(self, new_password = None, old_password = None, user = None):
        """
        Changes the password of the bound user, or of ``user`` if given and the
        bound user is allowed to.

        If no new password is given, the server may generate one.

        Returns:
            The password generated by the server, or ``None``.

        Raises:
            Any of the exceptions from :py:mod:`~.exceptions`.
        """
        request = PasswordModifyRequest(user, old_password, new_password)
        with self._connection() as conn:
            reply = self._transport.extended(conn, request)
        results.check(reply.code, reply.name)
        return reply.value
