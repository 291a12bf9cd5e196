"""
This module provides the transport used by :py:mod:`ldapmap`, a layer over
`ldap3 <https://ldap3.readthedocs.org/>`_ with a thread-safe pool of connections.
"""

__author__ = "ldapmap developers"
__copyright__ = "Copyright 2026 ldapmap developers"

import logging, contextlib, collections, collections.abc, itertools, ssl, threading

import ldap3
import ldap3.core.exceptions

from . import exceptions, wire
from .controls import PagedResults, paged_cookie
from .criteria import Scope
from .transport import (
    Transport, EntrySource, WireAttribute, WireEntry, Reply, SearchReply,
    ExtendedReply, WhoAmIRequest, PasswordModifyRequest
)


_log = logging.getLogger(__name__)

#: Distinguishes the loggers created by open_debug
_debug_ids = itertools.count(1)


#: Maps the level names accepted by :py:func:`open_debug` to logging levels
DEBUG_LEVELS = {
    'severe': logging.ERROR,
    'warning': logging.WARNING,
    'info': logging.INFO,
    'config': logging.INFO,
    'fine': logging.DEBUG,
    'finer': logging.DEBUG,
    'finest': logging.DEBUG,
}


def open_debug(level = 'info', filepath = None):
    """
    Returns a logger that writes the transport's debug output to ``filepath``
    (or stderr if no path is given) at the given level.

    The logger is meant to be passed to :py:class:`Ldap3Transport`, which closes
    its handlers when the transport is closed.

    Args:
        level: One of the keys of :py:data:`DEBUG_LEVELS` (defaults to ``info``).
        filepath: The file to write to (optional).

    Returns:
        A ``logging.Logger``.
    """
    try:
        log_level = DEBUG_LEVELS[level]
    except KeyError:
        raise exceptions.InvalidArgumentError("Invalid debug level '{}'".format(level))
    logger = logging.getLogger('{}.debug.{}'.format(__name__, next(_debug_ids)))
    handler = logging.FileHandler(filepath) if filepath else logging.StreamHandler()
    handler.setLevel(log_level)
    logger.addHandler(handler)
    logger.setLevel(log_level)
    logger.propagate = False
    return logger


def close_debug(logger):
    """
    Detaches and closes the handlers of a logger created by :py:func:`open_debug`.
    """
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


class Host(collections.namedtuple('Host', ['address', 'port'])):
    """
    A single server to connect to. The port is ``None`` if the default should
    be used.
    """
    DEFAULT_ADDRESS = 'localhost'

    @classmethod
    def parse(cls, host):
        """
        Creates a host from ``None``, a string of the form ``address[:port]`` or
        a dictionary with ``address`` and ``port`` keys.

        Raises:
            :py:class:`~.exceptions.InvalidArgumentError` if the host is malformed.
        """
        if host is None:
            return cls(cls.DEFAULT_ADDRESS, None)
        if isinstance(host, str):
            address, _, port = host.partition(':')
            return cls(address or cls.DEFAULT_ADDRESS, cls._port(host, port or None))
        if isinstance(host, collections.abc.Mapping):
            return cls(
                host.get('address') or cls.DEFAULT_ADDRESS,
                cls._port(host, host.get('port'))
            )
        raise exceptions.InvalidArgumentError(
            'Invalid host for an ldap connection : {}'.format(host)
        )

    @staticmethod
    def _port(host, port):
        if port is None:
            return None
        try:
            return int(port)
        except (TypeError, ValueError):
            raise exceptions.InvalidArgumentError(
                'Invalid port for an ldap connection : {}'.format(host)
            )


class ServerSet(collections.namedtuple('ServerSet', ['hosts', 'use_ssl', 'tls', 'connect_timeout'])):
    """
    Represents the servers to connect to. When more than one host is given,
    connections are spread over them round-robin.

    Attributes:
        hosts: A tuple of :py:class:`Host`.
        use_ssl: Whether to connect using LDAPS.
        tls: The ``ldap3.Tls`` configuration used for LDAPS and StartTLS.
        connect_timeout: The timeout in seconds for opening a connection.
    """
    DEFAULT_PORT = 389
    DEFAULT_SSL_PORT = 636

    def __new__(cls, host = None, use_ssl = False, trust_store = None, connect_timeout = None):
        if isinstance(host, (list, tuple)):
            if not host:
                raise exceptions.InvalidArgumentError('At least one host is required')
            hosts = tuple(Host.parse(h) for h in host)
        else:
            hosts = (Host.parse(host), )
        # Without a trust store, all certificates are trusted
        if trust_store:
            tls = ldap3.Tls(validate = ssl.CERT_REQUIRED, ca_certs_file = trust_store)
        else:
            tls = ldap3.Tls(validate = ssl.CERT_NONE)
        return super().__new__(cls, hosts, use_ssl, tls, connect_timeout)

    def server(self):
        """
        Returns the ``ldap3.Server`` or ``ldap3.ServerPool`` for the hosts.
        """
        default_port = self.DEFAULT_SSL_PORT if self.use_ssl else self.DEFAULT_PORT
        servers = [
            ldap3.Server(
                h.address,
                port = h.port or default_port,
                use_ssl = self.use_ssl,
                tls = self.tls,
                connect_timeout = self.connect_timeout,
                get_info = ldap3.NONE
            )
            for h in self.hosts
        ]
        if len(servers) == 1:
            return servers[0]
        return ldap3.ServerPool(servers, ldap3.ROUND_ROBIN, active = 1, exhaust = False)


class ConnectionPool:
    """
    A thread-safe pool of connections.

    The pool opens ``initial`` connections up front and grows on demand up to
    ``maximum``. When every connection is in use and the pool is full,
    :py:meth:`acquire` waits for one to be returned.

    If opening one of the initial connections fails, the connections opened so
    far are closed and the error is raised, so a partially opened pool is never
    returned.

    Args:
        connect: Callable that opens and binds a new connection.
        disconnect: Callable that closes a connection.
        initial: The number of connections to open up front.
        maximum: The maximum number of connections (defaults to ``initial``).
    """
    def __init__(self, connect, disconnect, initial = 1, maximum = None):
        maximum = initial if maximum is None else maximum
        if initial < 1 or maximum < initial:
            raise exceptions.InvalidArgumentError(
                'Invalid pool size (initial: {}, maximum: {})'.format(initial, maximum)
            )
        self._connect = connect
        self._disconnect = disconnect
        self._maximum = maximum
        self._available = threading.Condition()
        self._idle = collections.deque()
        self._size = 0
        try:
            for _ in range(initial):
                self._idle.append(connect())
                self._size += 1
        except Exception:
            self.close()
            raise

    @property
    def size(self):
        """
        The number of open connections, both idle and checked out.
        """
        return self._size

    def acquire(self):
        """
        Checks out a connection, opening a new one if the pool can still grow.
        """
        with self._available:
            while not self._idle and self._size >= self._maximum:
                self._available.wait()
            if self._idle:
                return self._idle.popleft()
            self._size += 1
        try:
            return self._connect()
        except Exception:
            with self._available:
                self._size -= 1
                self._available.notify()
            raise

    def release(self, conn):
        """
        Returns a connection to the pool.
        """
        with self._available:
            self._idle.append(conn)
            self._available.notify()

    def invalidate(self, conn):
        """
        Closes a connection and removes it from the pool.
        """
        try:
            self._disconnect(conn)
        finally:
            with self._available:
                self._size -= 1
                self._available.notify()

    def close(self):
        """
        Closes every idle connection.
        """
        with self._available:
            idle, self._idle = list(self._idle), collections.deque()
            self._size -= len(idle)
        for conn in idle:
            self._disconnect(conn)


class Ldap3EntrySource(EntrySource):
    """
    Entry source for a search run on an ldap3 connection.

    ``items`` is an iterator of ldap3 response items that sends further
    search requests on ``conn`` as it is consumed, so entries are fetched from
    the server as they are read. The first request is sent when the source is
    created, which makes the response controls available straight away.

    Search references cannot be followed, and are reported as errors that
    reading may continue past. A failed search is reported once every entry
    received before the failure has been read.
    """
    def __init__(self, conn, items):
        self._conn = conn
        self._items = iter(items)
        self._pending = collections.deque(itertools.islice(self._items, 1))
        self._done = not self._pending
        self._finished = False
        self.response_controls = tuple(
            c for c in Ldap3Transport._response_controls(conn.result)
            if not isinstance(c, PagedResults)
        )

    def _pull(self):
        if self._pending:
            return self._pending.popleft()
        if self._done:
            return None
        try:
            return next(self._items)
        except StopIteration:
            self._done = True
            return None
        except exceptions.LDAPError as e:
            self._done = self._finished = True
            raise exceptions.EntrySourceError(str(e), may_continue = False) from e

    def _finish(self):
        if self._finished:
            return None
        self._finished = True
        result = self._conn.result or {}
        if result.get('result', 0) != 0:
            cause = exceptions.for_result(
                result['result'], result.get('description'), result.get('message')
            )
            raise exceptions.EntrySourceError(str(cause), may_continue = False) from cause
        return None

    def next_entry(self):
        while True:
            item = self._pull()
            if item is None:
                return self._finish()
            if item.get('type') == 'searchResRef':
                raise exceptions.EntrySourceError(
                    'Search reference not followed: {}'.format(item.get('uri')),
                    may_continue = True
                )
            if item.get('type') == 'searchResEntry':
                return Ldap3Transport._wire_entry(item)

    def close(self):
        self._pending.clear()
        self._done = self._finished = True
        close = getattr(self._items, 'close', None)
        if close:
            close()


class Ldap3Transport(Transport):
    """
    :py:class:`~.transport.Transport` that talks to the server using ldap3.

    Use :py:meth:`create` to build one from configuration options.

    Args:
        servers: The :py:class:`ServerSet` to connect to.
        bind_dn: The DN to bind as (optional, defaults to anonymous).
        password: The password to bind with.
        start_tls: Whether to negotiate StartTLS after connecting.
        timeout: The timeout in seconds when waiting for a response.
        initial_connections: The number of connections to open up front.
        max_connections: The maximum number of connections.
        logger: The logger to write debug output to (optional).
        owns_logger: If ``True``, the logger's handlers are closed with the
            transport.
    """
    #: Maps search scopes to ldap3 scopes. Subordinate searches are run as
    #: subtree searches with the base entry removed from the results.
    _SCOPES = {
        Scope.BASE: (ldap3.BASE, False),
        Scope.ONE: (ldap3.LEVEL, False),
        Scope.SUB: (ldap3.SUBTREE, False),
        Scope.SUBORDINATE: (ldap3.SUBTREE, True),
    }

    #: The page size used to fetch the entries of a streaming search.
    STREAM_PAGE_SIZE = 500

    _MODIFY_OPERATIONS = {
        'add': ldap3.MODIFY_ADD,
        'delete': ldap3.MODIFY_DELETE,
        'replace': ldap3.MODIFY_REPLACE,
        'increment': ldap3.MODIFY_INCREMENT,
    }

    def __init__(self, servers, bind_dn = None, password = None, start_tls = False,
                       timeout = None, initial_connections = 1, max_connections = None,
                       logger = None, owns_logger = False):
        self._servers = servers
        self._server = servers.server()
        self._bind_dn = bind_dn
        self._password = password
        self._start_tls = start_tls
        self._timeout = timeout
        self._log = logger or _log
        self._owns_logger = owns_logger
        self._pool = ConnectionPool(
            self._open, self._unbind, initial_connections, max_connections
        )

    @contextlib.contextmanager
    def _translate(self):
        """
        Context manager that converts ldap3 exceptions to the appropriate
        exception from the ``exceptions`` module.
        """
        try:
            yield
        except (ldap3.core.exceptions.LDAPSocketOpenError,
                ldap3.core.exceptions.LDAPServerPoolExhaustedError) as e:
            raise exceptions.NoServerAvailableError('No suitable server available') from e
        except ldap3.core.exceptions.LDAPOperationResult as e:
            raise exceptions.for_result(e.result, e.description, e.message) from e
        except ldap3.core.exceptions.LDAPExceptionError as e:
            raise exceptions.ConnectionError(str(e)) from e
        except ldap3.core.exceptions.LDAPException as e:
            raise exceptions.LDAPError(str(e)) from e

    def _open(self):
        """
        Opens and binds a new connection with the pool's identity.
        """
        self._log.debug('Opening LDAP connection to {} for {}'.format(
            self._server, self._bind_dn
        ))
        conn = ldap3.Connection(
            self._server,
            user = self._bind_dn,
            password = self._password,
            auto_bind = ldap3.AUTO_BIND_NONE,
            receive_timeout = self._timeout,
            raise_exceptions = False
        )
        try:
            with self._translate():
                conn.open()
                if self._start_tls:
                    conn.start_tls()
                conn.bind()
            result = conn.result or {}
            if result.get('result', 0) != 0:
                raise exceptions.AuthenticationError(
                    result.get('result'), result.get('description'), result.get('message')
                )
        except Exception:
            self._unbind(conn)
            raise
        return conn

    def _unbind(self, conn):
        self._log.debug('Closing LDAP connection')
        try:
            conn.unbind()
        except ldap3.core.exceptions.LDAPException:
            self._log.exception('Failed to close LDAP connection cleanly')

    @classmethod
    def create(cls, host = None, bind_dn = None, password = None, num_connections = 1,
                    initial_connections = None, max_connections = None, ssl = False,
                    start_tls = False, trust_store = None, connect_timeout = None,
                    timeout = None, debug = None, **kwargs):
        """
        Creates a transport from configuration options.

        Args:
            host: A host (``address[:port]`` or a dictionary with ``address`` and
                ``port``), or a list of hosts for round-robin load balancing.
            bind_dn: The DN to bind as (optional).
            password: The password to bind with (optional).
            num_connections: The size of a fixed-size pool (defaults to 1).
            initial_connections: The initial size of a growable pool.
            max_connections: The maximum size of a growable pool.
            ssl: Connect using LDAPS (defaults to ``False``).
            start_tls: Negotiate StartTLS (defaults to ``False``).
            trust_store: A CA bundle used to verify certificates. If not given,
                all certificates are trusted.
            connect_timeout: The timeout for opening connections, in seconds.
            timeout: The timeout for responses, in seconds.
            debug: A ``logging.Logger``, or a dictionary with ``level`` and
                ``filepath`` keys passed to :py:func:`open_debug`.

        Returns:
            A :py:class:`Ldap3Transport`.

        Raises:
            :py:class:`~.exceptions.InvalidArgumentError` for invalid options,
            :py:class:`~.exceptions.AuthenticationError` if the bind fails or
            another exception from :py:mod:`~.exceptions` if the pool cannot be
            opened.
        """
        logger, owns_logger = None, False
        if isinstance(debug, logging.Logger):
            logger = debug
        elif isinstance(debug, collections.abc.Mapping):
            logger = open_debug(debug.get('level') or 'info', debug.get('filepath'))
            owns_logger = True
        servers = ServerSet(host, ssl, trust_store, connect_timeout)
        initial = initial_connections or num_connections
        try:
            return cls(
                servers,
                bind_dn = bind_dn,
                password = password,
                start_tls = start_tls,
                timeout = timeout,
                initial_connections = initial,
                max_connections = max_connections or initial,
                logger = logger,
                owns_logger = owns_logger
            )
        except Exception:
            if owns_logger:
                close_debug(logger)
            raise

    ############################################################################
    ## Connection pool
    ############################################################################

    def acquire(self):
        return self._pool.acquire()

    def release(self, conn):
        self._pool.release(conn)

    def release_and_reauthenticate(self, conn):
        # An anonymous identity cannot be restored with a rebind, so replace
        # the connection instead
        if self._bind_dn is None:
            self._pool.invalidate(conn)
            return
        try:
            with self._translate():
                bound = conn.rebind(user = self._bind_dn, password = self._password)
        except exceptions.LDAPError:
            self._log.exception('Failed to re-authenticate LDAP connection')
            bound = False
        if bound:
            self._pool.release(conn)
        else:
            self._pool.invalidate(conn)

    def invalidate(self, conn):
        self._pool.invalidate(conn)

    def bind_and_revert(self, dn, password):
        conn = self._pool.acquire()
        try:
            reply = self.bind(conn, dn, password)
        except Exception:
            self._pool.invalidate(conn)
            raise
        self.release_and_reauthenticate(conn)
        return reply

    def close(self):
        self._pool.close()
        if self._owns_logger:
            close_debug(self._log)

    ############################################################################
    ## Conversions
    ############################################################################

    @staticmethod
    def _wire_entry(item):
        attributes = tuple(
            WireAttribute(name, tuple(values))
            for name, values in (item.get('raw_attributes') or {}).items()
        )
        return WireEntry(item['dn'], attributes)

    @staticmethod
    def _response_controls(result):
        return tuple(
            wire.from_ldap3(oid, control)
            for oid, control in ((result or {}).get('controls') or {}).items()
        )

    @classmethod
    def _reply(cls, conn):
        result = conn.result or {}
        return Reply(
            result.get('result'),
            result.get('description'),
            result.get('message'),
            cls._response_controls(result)
        )

    @staticmethod
    def _controls(controls):
        return [wire.to_ldap3(c) for c in controls if not isinstance(c, PagedResults)] or None

    ############################################################################
    ## Operations
    ############################################################################

    def _search(self, conn, criteria, paged = None):
        """
        Runs the search on ldap3 and returns the response items and the result.

        ``paged`` is the :py:class:`~.controls.PagedResults` control to send, if
        any. Paged results controls in the criteria are not sent by themselves.
        """
        scope, drop_base = self._SCOPES[criteria.scope]
        self._log.debug('Performing LDAP search (base_dn: {}, filter: {})'.format(
            criteria.base, criteria.filter
        ))
        with self._translate():
            conn.search(
                search_base = criteria.base,
                search_filter = criteria.filter,
                search_scope = scope,
                dereference_aliases = ldap3.DEREF_NEVER,
                attributes = list(criteria.attributes),
                size_limit = criteria.size_limit,
                time_limit = criteria.time_limit,
                types_only = criteria.types_only,
                controls = self._controls(criteria.controls),
                paged_size = paged.size if paged else None,
                paged_cookie = paged.cookie if paged else None
            )
        response = [
            item for item in (conn.response or [])
            if not (drop_base and item.get('dn', '').lower() == criteria.base.lower())
        ]
        return response, conn.result or {}

    def search(self, conn, criteria):
        paged = next((c for c in criteria.controls if isinstance(c, PagedResults)), None)
        response, result = self._search(conn, criteria, paged)
        entries = [
            self._wire_entry(item) for item in response
            if item.get('type') == 'searchResEntry'
        ]
        controls = self._response_controls(result)
        code = result.get('result')
        if code == 4:
            raise exceptions.SizeLimitExceededError(
                code, result.get('description'), result.get('message'),
                entries = entries, controls = controls
            )
        if code != 0:
            raise exceptions.for_result(code, result.get('description'), result.get('message'))
        return SearchReply(entries, controls)

    def _stream(self, conn, criteria):
        """
        Generator of the ldap3 response items for the search, requesting the
        next page only once the items of the previous one have been consumed.
        """
        cookie = None
        while True:
            response, result = self._search(
                conn, criteria, PagedResults(self.STREAM_PAGE_SIZE, cookie)
            )
            yield from response
            if result.get('result', 0) != 0:
                return
            cookie = paged_cookie(self._response_controls(result))
            if not cookie:
                return

    def open_entry_source(self, conn, criteria):
        return Ldap3EntrySource(conn, self._stream(conn, criteria))

    def add(self, conn, request):
        self._log.debug('Creating LDAP entry at dn {}'.format(request.dn))
        attributes = {}
        for attr in request.attributes:
            attributes.setdefault(attr.name, []).extend(attr.values)
        with self._translate():
            conn.add(request.dn, attributes = attributes, controls = self._controls(request.controls))
        return self._reply(conn)

    def modify(self, conn, request):
        """
        ldap3 takes the changes as a dictionary keyed by attribute, so the
        modifications are grouped by attribute before sending. The changes to
        each attribute keep their order, but changes to different attributes
        are sent in the order each attribute is first modified.
        """
        self._log.debug('Updating LDAP entry at dn {}'.format(request.dn))
        changes = {}
        for mod in request.modifications:
            changes.setdefault(mod.attribute, []).append(
                (self._MODIFY_OPERATIONS[mod.operation], list(mod.values))
            )
        with self._translate():
            conn.modify(request.dn, changes, controls = self._controls(request.controls))
        return self._reply(conn)

    def modify_dn(self, conn, request):
        self._log.debug('Renaming LDAP entry at dn {} to {}'.format(request.dn, request.new_rdn))
        with self._translate():
            conn.modify_dn(
                request.dn,
                request.new_rdn,
                delete_old_dn = request.delete_old_rdn,
                new_superior = request.new_superior,
                controls = self._controls(request.controls)
            )
        return self._reply(conn)

    def delete(self, conn, request):
        self._log.debug('Deleting LDAP entry at dn {}'.format(request.dn))
        with self._translate():
            conn.delete(request.dn, controls = self._controls(request.controls))
        return self._reply(conn)

    def compare(self, conn, request):
        self._log.debug('Comparing {} of LDAP entry at dn {}'.format(request.attribute, request.dn))
        with self._translate():
            conn.compare(
                request.dn, request.attribute, request.value,
                controls = self._controls(request.controls)
            )
        result = conn.result or {}
        # compareFalse (5) and compareTrue (6) are the only non-failures
        if result.get('result') not in (5, 6):
            raise exceptions.for_result(
                result.get('result'), result.get('description'), result.get('message')
            )
        return result['result'] == 6

    def extended(self, conn, request):
        with self._translate():
            if isinstance(request, WhoAmIRequest):
                self._log.debug('Requesting authorization identity')
                value = conn.extend.standard.who_am_i()
            elif isinstance(request, PasswordModifyRequest):
                self._log.debug('Updating password for dn {}'.format(request.user))
                value = conn.extend.standard.modify_password(
                    request.user, request.old_password, request.new_password
                )
            else:
                raise exceptions.InvalidArgumentError(
                    "Unsupported extended request '{}'".format(type(request).__name__)
                )
        if isinstance(value, bytes):
            value = value.decode('utf-8')
        result = conn.result or {}
        return ExtendedReply(
            result.get('result'),
            result.get('description'),
            value if isinstance(value, str) else None
        )

    def bind(self, conn, dn, password):
        self._log.debug('Binding LDAP connection as {}'.format(dn))
        try:
            with self._translate():
                conn.rebind(user = dn, password = password)
        except exceptions.ConnectionError:
            # ldap3 raises when a rebind is refused, but the result is still there
            if (conn.result or {}).get('result') in (None, 0):
                raise
        return self._reply(conn)
