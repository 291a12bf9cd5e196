"""
This module turns a change-set into the ordered list of modifications sent with
a modify request.

A change-set is normally a dictionary of categories, each mapping attribute
names to values::

    {
        'add': {'mail': 'jbloggs@example.com', 'telephoneNumber': ['1', '2']},
        'delete': {'description': ALL_VALUES, 'seeAlso': 'cn=other'},
        'replace': {'sn': 'Bloggs'},
        'increment': {'uidNumber': 1},
    }

The server applies modifications in the order they are sent, so the categories
are always emitted in the order add, delete, replace, increment. Callers that
need a different order can pass a sequence of ``(category, attribute, value)``
triples instead, which is sent exactly as given.
"""

__author__ = "ldapmap developers"
__copyright__ = "Copyright 2026 ldapmap developers"

from collections import namedtuple
from collections.abc import Mapping

from . import codec, exceptions


ADD = 'add'
DELETE = 'delete'
REPLACE = 'replace'
INCREMENT = 'increment'

#: The order in which categories are emitted
CATEGORIES = (ADD, DELETE, REPLACE, INCREMENT)


class _AllValues:
    def __repr__(self):
        return 'ALL_VALUES'


#: Used as the value under ``delete`` to remove every value of an attribute
ALL_VALUES = _AllValues()


class Modification(namedtuple('Modification', ['operation', 'attribute', 'values'])):
    """
    A single modification of one attribute.

    ``values`` is a tuple of ``str`` or ``bytes``. An empty tuple under
    ``delete`` means that every value of the attribute is removed.
    """
    @property
    def deletes_all(self):
        return self.operation == DELETE and not self.values


def create_modification(operation, attribute, value):
    """
    Creates a :py:class:`Modification` for the given operation, attribute and
    value, choosing the representation from the value.
    """
    if codec.is_collection(value):
        values = list(value)
        if values and codec.is_binary(values[0]):
            return Modification(operation, attribute, tuple(bytes(v) for v in values))
        return Modification(operation, attribute, tuple(str(v) for v in values))
    if value is ALL_VALUES:
        if operation != DELETE:
            raise exceptions.InvalidArgumentError(
                "ALL_VALUES can only be used with '{}', not '{}' (attribute {})".format(
                    DELETE, operation, attribute
                )
            )
        return Modification(operation, attribute, ())
    if codec.is_binary(value):
        return Modification(operation, attribute, (bytes(value), ))
    return Modification(operation, attribute, (str(value), ))


def build(changes):
    """
    Returns the list of modifications for a change-set.

    Args:
        changes: Either a mapping from category to ``{attribute: value}``, or a
            sequence of ``(category, attribute, value)`` triples. Keys of a
            mapping that are not categories are ignored.

    Returns:
        A list of :py:class:`Modification`.

    Raises:
        :py:class:`~.exceptions.InvalidArgumentError` for an unknown category in
        a sequence of triples, or for a misplaced :py:data:`ALL_VALUES`.
    """
    if isinstance(changes, Mapping):
        return [
            create_modification(category, attribute, value)
            for category in CATEGORIES
            for attribute, value in (changes.get(category) or {}).items()
        ]
    modifications = []
    for category, attribute, value in changes:
        if category not in CATEGORIES:
            raise exceptions.InvalidArgumentError(
                "Unknown modification category '{}'".format(category)
            )
        modifications.append(create_modification(category, attribute, value))
    return modifications
