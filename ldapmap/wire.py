"""
This module encodes and decodes the values of the controls that ldap3 does not
handle itself, using `pyasn1 <https://github.com/pyasn1/pyasn1>`_.

ldap3 expects request controls as ``(oid, criticality, value)`` tuples, where
``value`` is already BER-encoded, and hands back the values of controls it does
not recognise as raw bytes.
"""

__author__ = "ldapmap developers"
__copyright__ = "Copyright 2026 ldapmap developers"

from pyasn1.codec.ber import encoder, decoder
from pyasn1.type import namedtype, tag, univ

from ldap3.protocol.rfc4511 import SearchResultEntry

from . import controls as ctrl
from .transport import WireAttribute, WireEntry


class AttributeSelection(univ.SequenceOf):
    """
    The value of the pre-read and post-read request controls (RFC 4527).
    """
    componentType = univ.OctetString()


class SortKey(univ.Sequence):
    """
    A single key of the server-side sort request control (RFC 2891).
    """
    componentType = namedtype.NamedTypes(
        namedtype.NamedType('attributeType', univ.OctetString()),
        namedtype.OptionalNamedType(
            'orderingRule',
            univ.OctetString().subtype(
                implicitTag = tag.Tag(tag.tagClassContext, tag.tagFormatSimple, 0)
            )
        ),
        namedtype.DefaultedNamedType(
            'reverseOrder',
            univ.Boolean(False).subtype(
                implicitTag = tag.Tag(tag.tagClassContext, tag.tagFormatSimple, 1)
            )
        ),
    )


class SortKeyList(univ.SequenceOf):
    """
    The value of the server-side sort request control (RFC 2891).
    """
    componentType = SortKey()


def encode_attribute_selection(attributes):
    """
    Returns the BER-encoded value for a pre-read or post-read request control.
    """
    selection = AttributeSelection()
    for i, name in enumerate(attributes):
        selection.setComponentByPosition(i, univ.OctetString(name.encode('utf-8')))
    return encoder.encode(selection)


def encode_sort_keys(sort_keys):
    """
    Returns the BER-encoded value for a server-side sort request control.
    """
    sort_key_list = SortKeyList()
    for i, key in enumerate(sort_keys):
        sort_key = SortKey()
        sort_key.setComponentByName('attributeType', key.attribute.encode('utf-8'))
        sort_key.setComponentByName('reverseOrder', key.reverse_order)
        sort_key_list.setComponentByPosition(i, sort_key)
    return encoder.encode(sort_key_list)


def decode_entry(value):
    """
    Decodes the ``SearchResultEntry`` carried by a pre-read or post-read response
    control into a :py:class:`~.transport.WireEntry`.
    """
    entry, _ = decoder.decode(value, asn1Spec = SearchResultEntry())
    attributes = tuple(
        WireAttribute(str(attr['type']), tuple(bytes(v) for v in attr['vals']))
        for attr in entry['attributes']
    )
    return WireEntry(str(entry['object']), attributes)


def to_ldap3(control):
    """
    Converts a request control from :py:mod:`.controls` into the
    ``(oid, criticality, value)`` tuple that ldap3 expects.

    Paged results are not handled here, since ldap3 builds that control itself.
    """
    if isinstance(control, ctrl.PreRead):
        return (ctrl.PRE_READ_OID, True, encode_attribute_selection(control.attributes))
    if isinstance(control, ctrl.PostRead):
        return (ctrl.POST_READ_OID, True, encode_attribute_selection(control.attributes))
    if isinstance(control, ctrl.ProxiedAuthorization):
        # The value is the authorization identity itself, not a BER structure
        return (ctrl.PROXIED_AUTHORIZATION_OID, True, control.authz_id.encode('utf-8'))
    if isinstance(control, ctrl.SubtreeDelete):
        return (ctrl.SUBTREE_DELETE_OID, True, None)
    if isinstance(control, ctrl.ServerSideSort):
        return (
            ctrl.SERVER_SIDE_SORT_OID,
            control.is_critical,
            encode_sort_keys(control.sort_keys)
        )
    if isinstance(control, ctrl.Passthrough):
        return (control.oid, bool(control.criticality), control.value)
    raise ValueError("Cannot encode control '{}'".format(type(control).__name__))


def read_entry(value):
    """
    Returns the :py:class:`~.transport.WireEntry` carried by a pre-read or
    post-read response control.

    ldap3 normally decodes these controls itself, giving a dictionary whose
    ``result`` maps attribute names to lists of values. The DN is not kept, so
    the entry has an empty DN. Raw BER bytes are decoded here instead.
    """
    if isinstance(value, (bytes, bytearray)):
        return decode_entry(bytes(value))
    attributes = tuple(
        WireAttribute(
            name,
            tuple(v if isinstance(v, bytes) else str(v).encode('utf-8') for v in values)
        )
        for name, values in ((value or {}).get('result') or {}).items()
    )
    return WireEntry('', attributes)


def from_ldap3(oid, control):
    """
    Converts one entry of ldap3's decoded response controls (``oid`` mapped to
    a dictionary with ``criticality`` and ``value``) into a response control
    from :py:mod:`.controls`.
    """
    value = control.get('value')
    if oid == ctrl.PRE_READ_OID:
        return ctrl.PreReadResponse(read_entry(value))
    if oid == ctrl.POST_READ_OID:
        return ctrl.PostReadResponse(read_entry(value))
    if oid == ctrl.PAGED_RESULTS_OID and isinstance(value, dict):
        return ctrl.PagedResults(value.get('size'), value.get('cookie'))
    return ctrl.Passthrough(oid, control.get('criticality', False), value)
