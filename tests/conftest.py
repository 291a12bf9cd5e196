"""
Shared fixtures, including an in-memory transport that behaves enough like a
directory server to exercise the mapping logic without a network.
"""

import itertools

import pytest

from ldapmap import controls as ctrl, exceptions
from ldapmap.client import Directory
from ldapmap.criteria import ALL_USER_ATTRIBUTES, Scope
from ldapmap.transport import (
    Transport, EntrySource, WireAttribute, WireEntry, Reply, SearchReply,
    ExtendedReply, WhoAmIRequest, PasswordModifyRequest
)


BASE_DN = 'dc=example,dc=com'
PEOPLE_DN = 'ou=people,dc=example,dc=com'
ALICE_DN = 'cn=alice,ou=people,dc=example,dc=com'
BOB_DN = 'cn=bob,ou=people,dc=example,dc=com'
CAROL_DN = 'cn=carol,ou=people,dc=example,dc=com'

GENERATED_PASSWORD = 'generated-password'


def _bytes(value):
    return value if isinstance(value, bytes) else str(value).encode('utf-8')


def _parent(dn):
    return dn.partition(',')[2]


def _find(attributes, name):
    """
    Returns the stored name of an attribute, matching case-insensitively.
    """
    for key in attributes:
        if key.lower() == name.lower():
            return key
    return name


class FakeConnection:
    _ids = itertools.count(1)

    def __init__(self, identity):
        self.id = next(self._ids)
        self.identity = identity

    def __repr__(self):
        return 'FakeConnection({})'.format(self.id)


class FakeEntrySource(EntrySource):
    """
    Entry source that hands out a fixed list of items. Items that are exceptions
    are raised instead of returned.
    """
    def __init__(self, items, response_controls = ()):
        self._items = list(items)
        self.response_controls = tuple(response_controls)
        self.closed = False

    def next_entry(self):
        if not self._items:
            return None
        item = self._items.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self):
        self.closed = True


class FakeTransport(Transport):
    """
    In-memory transport that records what is asked of it.

    Filters are limited to a single ``(attr=value)``, ``(attr=*)`` or
    ``(attr=prefix*)`` assertion.
    """
    def __init__(self, bind_dn = None):
        self.bind_dn = bind_dn
        # Maps the lower-cased DN to (dn, {name: [bytes]})
        self.entries = {}
        self.passwords = {}
        self.requests = []
        self.acquired = []
        self.released = []
        self.invalidated = []
        self.sources = []
        self.closed = False
        #: Extra controls returned with every search
        self.response_controls = ()
        #: If set, the items handed out by the next entry source
        self.script = None

    def put(self, dn, **attributes):
        self.entries[dn.lower()] = (dn, {
            name: [_bytes(v) for v in (values if isinstance(values, (list, tuple, set)) else [values])]
            for name, values in attributes.items()
        })

    def values(self, dn, name):
        _, attributes = self.entries[dn.lower()]
        return attributes.get(_find(attributes, name), [])

    def searches(self):
        return [r for r in self.requests if isinstance(r, tuple) and r[0] == 'search']

    ############################################################################
    ## Helpers
    ############################################################################

    def _select(self, dn, attributes, names, types_only = False):
        if ALL_USER_ATTRIBUTES in names:
            items = list(attributes.items())
        else:
            wanted = { n.lower() for n in names }
            items = [(k, v) for k, v in attributes.items() if k.lower() in wanted]
        return WireEntry(dn, tuple(
            WireAttribute(k, () if types_only else tuple(v)) for k, v in items
        ))

    def _in_scope(self, dn, base, scope):
        dn, base = dn.lower(), base.lower()
        below = dn.endswith(',' + base)
        if scope == Scope.BASE:
            return dn == base
        if scope == Scope.ONE:
            return _parent(dn) == base
        if scope == Scope.SUBORDINATE:
            return below
        return dn == base or below

    def _matches(self, attributes, search_filter):
        name, _, value = search_filter.strip('()').partition('=')
        values = [v.decode('utf-8', 'replace').lower() for v in attributes.get(_find(attributes, name), [])]
        value = value.lower()
        if value == '*':
            return bool(values)
        if value.endswith('*'):
            return any(v.startswith(value[:-1]) for v in values)
        return value in values

    def matching(self, criteria):
        if criteria.base.lower() not in self.entries:
            raise exceptions.NoSuchObjectError(32, 'noSuchObject', 'No such object')
        found = [
            (attributes, self._select(dn, attributes, criteria.attributes, criteria.types_only))
            for dn, attributes in self.entries.values()
            if self._in_scope(dn, criteria.base, criteria.scope)
            and self._matches(attributes, criteria.filter)
        ]
        sort = next((c for c in criteria.controls if isinstance(c, ctrl.ServerSideSort)), None)
        if sort is not None:
            key = sort.sort_keys[0]
            found.sort(
                key = lambda item: item[0].get(_find(item[0], key.attribute), [b''])[0],
                reverse = key.reverse_order
            )
        return [entry for _, entry in found]

    def _reply(self, request, dn, before, after):
        controls = []
        for control in request.controls:
            if isinstance(control, ctrl.PreRead) and before is not None:
                controls.append(ctrl.PreReadResponse(self._select(dn, before, control.attributes)))
            elif isinstance(control, ctrl.PostRead) and after is not None:
                controls.append(ctrl.PostReadResponse(self._select(dn, after, control.attributes)))
        return Reply(0, 'success', None, tuple(controls))

    ############################################################################
    ## Connection pool
    ############################################################################

    def acquire(self):
        conn = FakeConnection(self.bind_dn)
        self.acquired.append(conn)
        return conn

    def release(self, conn):
        self.released.append(conn)

    def release_and_reauthenticate(self, conn):
        conn.identity = self.bind_dn
        self.released.append(conn)

    def invalidate(self, conn):
        self.invalidated.append(conn)

    def bind_and_revert(self, dn, password):
        conn = self.acquire()
        try:
            return self.bind(conn, dn, password)
        finally:
            self.release_and_reauthenticate(conn)

    def close(self):
        self.closed = True

    ############################################################################
    ## Operations
    ############################################################################

    def search(self, conn, criteria):
        self.requests.append(('search', criteria))
        found = self.matching(criteria)
        controls = tuple(self.response_controls)
        paged = next((c for c in criteria.controls if isinstance(c, ctrl.PagedResults)), None)
        if paged is not None:
            start = int(paged.cookie or 0)
            end = start + paged.size
            more = end < len(found)
            found = found[start:end]
            controls += (ctrl.PagedResults(0, str(end).encode('ascii') if more else b''), )
        if criteria.size_limit and len(found) > criteria.size_limit:
            raise exceptions.SizeLimitExceededError(
                entries = found[:criteria.size_limit], controls = controls
            )
        return SearchReply(found, controls)

    def open_entry_source(self, conn, criteria):
        self.requests.append(('stream', criteria))
        items = self.script if self.script is not None else self.matching(criteria)
        source = FakeEntrySource(items, self.response_controls)
        self.sources.append(source)
        return source

    def add(self, conn, request):
        self.requests.append(request)
        key = request.dn.lower()
        if key in self.entries:
            return Reply(68, 'entryAlreadyExists', 'Entry already exists', ())
        attributes = {}
        for attr in request.attributes:
            attributes.setdefault(attr.name, []).extend(_bytes(v) for v in attr.values)
        self.entries[key] = (request.dn, attributes)
        return self._reply(request, request.dn, None, attributes)

    def modify(self, conn, request):
        self.requests.append(request)
        key = request.dn.lower()
        if key not in self.entries:
            return Reply(32, 'noSuchObject', 'No such object', ())
        dn, attributes = self.entries[key]
        before = { k: list(v) for k, v in attributes.items() }
        for mod in request.modifications:
            name = _find(attributes, mod.attribute)
            values = [_bytes(v) for v in mod.values]
            if mod.operation == 'add':
                attributes.setdefault(name, []).extend(values)
            elif mod.operation == 'delete':
                remaining = [v for v in attributes.get(name, []) if values and v not in values]
                if remaining:
                    attributes[name] = remaining
                else:
                    attributes.pop(name, None)
            elif mod.operation == 'replace':
                if values:
                    attributes[name] = values
                else:
                    attributes.pop(name, None)
            elif mod.operation == 'increment':
                current = int(attributes[name][0])
                attributes[name] = [str(current + int(values[0])).encode('ascii')]
        return self._reply(request, dn, before, attributes)

    def modify_dn(self, conn, request):
        self.requests.append(request)
        key = request.dn.lower()
        if key not in self.entries:
            return Reply(32, 'noSuchObject', 'No such object', ())
        dn, attributes = self.entries.pop(key)
        before = { k: list(v) for k, v in attributes.items() }
        new_dn = '{},{}'.format(request.new_rdn, request.new_superior or _parent(dn))
        if request.delete_old_rdn:
            old_name, _, old_value = dn.partition(',')[0].partition('=')
            name = _find(attributes, old_name)
            attributes[name] = [v for v in attributes.get(name, []) if v != _bytes(old_value)]
        new_name, _, new_value = request.new_rdn.partition('=')
        values = attributes.setdefault(_find(attributes, new_name), [])
        if _bytes(new_value) not in values:
            values.append(_bytes(new_value))
        self.entries[new_dn.lower()] = (new_dn, attributes)
        return self._reply(request, new_dn, before, attributes)

    def delete(self, conn, request):
        self.requests.append(request)
        key = request.dn.lower()
        if key not in self.entries:
            return Reply(32, 'noSuchObject', 'No such object', ())
        children = [k for k in self.entries if k.endswith(',' + key)]
        subtree = any(isinstance(c, ctrl.SubtreeDelete) for c in request.controls)
        if children and not subtree:
            return Reply(66, 'notAllowedOnNonLeaf', 'Entry has children', ())
        dn, attributes = self.entries.pop(key)
        for child in children:
            del self.entries[child]
        return self._reply(request, dn, attributes, None)

    def compare(self, conn, request):
        self.requests.append(request)
        key = request.dn.lower()
        if key not in self.entries:
            raise exceptions.NoSuchObjectError(32, 'noSuchObject', 'No such object')
        return _bytes(request.value) in self.values(request.dn, request.attribute)

    def extended(self, conn, request):
        self.requests.append(request)
        if isinstance(request, WhoAmIRequest):
            return ExtendedReply(0, 'success', 'dn:' + conn.identity if conn.identity else '')
        if isinstance(request, PasswordModifyRequest):
            user = request.user or conn.identity
            if user is None or user.lower() not in self.entries:
                return ExtendedReply(32, 'noSuchObject', None)
            self.passwords[user.lower()] = request.new_password or GENERATED_PASSWORD
            return ExtendedReply(0, 'success', None if request.new_password else GENERATED_PASSWORD)
        raise exceptions.InvalidArgumentError('Unsupported extended request')

    def bind(self, conn, dn, password):
        self.requests.append(('bind', dn))
        if not password or self.passwords.get(dn.lower()) != password:
            return Reply(49, 'invalidCredentials', 'Invalid credentials', ())
        conn.identity = dn
        return Reply(0, 'success', None, ())


@pytest.fixture
def transport():
    t = FakeTransport()
    t.put(BASE_DN, objectClass = ['top', 'domain'], dc = 'example')
    t.put(PEOPLE_DN, objectClass = ['top', 'organizationalUnit'], ou = 'people')
    t.put(
        ALICE_DN,
        objectClass = ['top', 'person'],
        cn = 'alice',
        sn = 'Smith',
        mail = ['alice@example.com', 'a.smith@example.com']
    )
    t.put(BOB_DN, objectClass = ['top', 'person'], cn = 'bob', sn = 'Jones', uidNumber = '1001')
    t.put(CAROL_DN, objectClass = ['top', 'person'], cn = 'carol', sn = 'Smith', jpegPhoto = b'\xff\xd8\xff')
    t.passwords[ALICE_DN] = 'secret'
    return t


@pytest.fixture
def directory(transport):
    return Directory(transport, page_size = 2)
