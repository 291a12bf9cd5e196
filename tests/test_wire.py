import pytest

from pyasn1.codec.ber import decoder

from ldapmap import controls as ctrl, wire
from ldapmap.transport import WireAttribute, WireEntry


#: A SearchResultEntry for dn "cn=a" with cn: a
ENTRY_BER = b'\x64\x13\x04\x04cn=a\x30\x0b\x30\x09\x04\x02cn\x31\x03\x04\x01a'


def test_encode_attribute_selection():
    assert wire.encode_attribute_selection(['cn', 'sn']) == b'\x30\x08\x04\x02cn\x04\x02sn'


def test_encode_sort_keys():
    value = wire.encode_sort_keys([
        ctrl.SortKey('cn', ctrl.ASCENDING),
        ctrl.SortKey('uid', ctrl.DESCENDING),
    ])
    decoded, rest = decoder.decode(value, asn1Spec = wire.SortKeyList())
    assert rest == b''
    assert [(str(k['attributeType']), bool(k['reverseOrder'])) for k in decoded] == [
        ('cn', False), ('uid', True)
    ]


def test_decode_entry():
    assert wire.decode_entry(ENTRY_BER) == WireEntry('cn=a', (WireAttribute('cn', (b'a', )), ))


def test_to_ldap3():
    assert wire.to_ldap3(ctrl.PreRead(('cn', ))) == (
        ctrl.PRE_READ_OID, True, b'\x30\x04\x04\x02cn'
    )
    assert wire.to_ldap3(ctrl.PostRead(('cn', ))) == (
        ctrl.POST_READ_OID, True, b'\x30\x04\x04\x02cn'
    )
    assert wire.to_ldap3(ctrl.ProxiedAuthorization('dn:cn=admin')) == (
        ctrl.PROXIED_AUTHORIZATION_OID, True, b'dn:cn=admin'
    )
    assert wire.to_ldap3(ctrl.SubtreeDelete()) == (ctrl.SUBTREE_DELETE_OID, True, None)
    assert wire.to_ldap3(ctrl.Passthrough('1.2.3', 1, b'x')) == ('1.2.3', True, b'x')


def test_to_ldap3_sort_criticality():
    oid, critical, value = wire.to_ldap3(
        ctrl.ServerSideSort(False, (ctrl.SortKey('cn', ctrl.ASCENDING), ))
    )
    assert oid == ctrl.SERVER_SIDE_SORT_OID
    assert critical is False
    assert value == wire.encode_sort_keys([ctrl.SortKey('cn', ctrl.ASCENDING)])


def test_to_ldap3_rejects_paged_results():
    with pytest.raises(ValueError):
        wire.to_ldap3(ctrl.PagedResults(10, None))


def test_from_ldap3():
    assert wire.from_ldap3(ctrl.PRE_READ_OID, {'criticality': False, 'value': ENTRY_BER}) == \
        ctrl.PreReadResponse(WireEntry('cn=a', (WireAttribute('cn', (b'a', )), )))
    assert wire.from_ldap3(ctrl.POST_READ_OID, {'value': ENTRY_BER}).entry.dn == 'cn=a'
    assert wire.from_ldap3(
        ctrl.PAGED_RESULTS_OID,
        {'criticality': False, 'value': {'size': 0, 'cookie': b'abc'}}
    ) == ctrl.PagedResults(0, b'abc')
    assert wire.from_ldap3('1.2.3', {'criticality': True, 'value': b'x'}) == \
        ctrl.Passthrough('1.2.3', True, b'x')


def test_from_ldap3_decoded_read_entry():
    # ldap3 decodes read-entry controls into {'result': {name: [values]}}
    control = {'criticality': False, 'value': {'result': {'cn': ['a'], 'mail': ['1', '2']}}}
    assert wire.from_ldap3(ctrl.POST_READ_OID, control) == ctrl.PostReadResponse(WireEntry('', (
        WireAttribute('cn', (b'a', )),
        WireAttribute('mail', (b'1', b'2')),
    )))
    assert wire.from_ldap3(ctrl.PRE_READ_OID, {'value': {'result': {}}}) == \
        ctrl.PreReadResponse(WireEntry('', ()))
