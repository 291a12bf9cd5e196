"""
This module converts between entries as plain dictionaries and the attribute
lists that travel to and from the server.

Values are either text or binary. Which one is decided once per attribute, by
whether the attribute name appears in the caller's ``byte_valued`` collection,
rather than by inspecting each value.
"""

__author__ = "ldapmap developers"
__copyright__ = "Copyright 2026 ldapmap developers"

from collections.abc import Iterable

from .transport import WireAttribute


#: The key under which the DN is placed in a decoded entry
DN_KEY = 'dn'

#: The attribute that always decodes to a set
OBJECT_CLASS = 'objectclass'


class Text:
    """
    Representation for attributes whose values are UTF-8 strings. Bytes that
    are not valid UTF-8 are replaced rather than raising.
    """
    @staticmethod
    def decode(value):
        return value.decode('utf-8', errors = 'replace') if isinstance(value, (bytes, bytearray)) else value


class Binary:
    """
    Representation for attributes whose values are raw bytes.
    """
    @staticmethod
    def decode(value):
        return bytes(value) if isinstance(value, bytearray) else value


def is_binary(value):
    """
    Returns ``True`` if the value is raw binary data.
    """
    return isinstance(value, (bytes, bytearray))


def is_collection(value):
    """
    Returns ``True`` if the value holds several attribute values, i.e. it is
    iterable but is not a string or binary data.
    """
    return isinstance(value, Iterable) and not isinstance(value, (str, bytes, bytearray))


def representation(name, byte_valued = ()):
    """
    Returns :py:class:`Binary` if ``name`` appears in ``byte_valued``,
    :py:class:`Text` otherwise. Attribute names are compared case-insensitively.
    """
    byte_valued = { n.lower() for n in byte_valued }
    return Binary if name.lower() in byte_valued else Text


def _to_wire(value):
    return bytes(value) if is_binary(value) else str(value)


def encode(entry):
    """
    Converts an entry dictionary into a list of wire attributes.

    Collections become multi-valued attributes and anything else becomes a
    single-valued attribute. Binary values are passed through as they are, every
    other value is converted to a string.

    Args:
        entry: A dictionary mapping attribute names to values.

    Returns:
        A list of :py:class:`~.transport.WireAttribute`.
    """
    attributes = []
    for name, value in entry.items():
        if is_collection(value):
            values = tuple(_to_wire(v) for v in value)
        else:
            values = (_to_wire(value), )
        attributes.append(WireAttribute(name, values))
    return attributes


def decode(entry, byte_valued = (), include_dn = True):
    """
    Converts a wire entry into an entry dictionary.

    Single-valued attributes decode to a scalar, multi-valued attributes to a
    list and attributes without values (e.g. from a types-only search) to
    ``None``. ``objectClass`` always decodes to a set.

    Args:
        entry: A :py:class:`~.transport.WireEntry`.
        byte_valued: Names of the attributes to return as ``bytes`` instead of
            ``str`` (optional).
        include_dn: If ``True`` (the default), the DN is included under the
            ``dn`` key.

    Returns:
        The entry dictionary.
    """
    result = {}
    if include_dn:
        result[DN_KEY] = entry.dn
    for name, values in entry.attributes:
        rep = representation(name, byte_valued)
        values = [rep.decode(v) for v in values]
        if name.lower() == OBJECT_CLASS:
            result[name] = set(values)
        elif not values:
            result[name] = None
        elif len(values) == 1:
            result[name] = values[0]
        else:
            result[name] = values
    return result


def is_empty(entry):
    """
    Returns ``True`` if a decoded entry has no attributes other than its DN.
    """
    return not any(k != DN_KEY for k in entry)
