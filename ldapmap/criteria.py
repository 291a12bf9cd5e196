"""
This module normalises the options given to the search functions into a
:py:class:`SearchCriteria`.

The supported options are:

``scope``
    ``'base'``, ``'one'``, ``'sub'`` or ``'subordinate'`` (default ``'sub'``).
``filter``
    The search filter (default ``(objectclass=*)``).
``attributes``
    The attributes to return (default all user attributes).
``byte_valued``
    The attributes to return as ``bytes`` instead of ``str``.
``size_limit``
    The maximum number of entries the server should return (default unlimited).
``time_limit``
    The maximum number of seconds the server should spend (default unlimited).
``types_only``
    Return attribute names without values (default ``False``).
``server_sort``
    A sort specification, see :py:func:`.controls.build_sort_control`.
``proxied_auth``
    The ``dn:<DN>`` or ``u:<uid>`` to perform the search as.
``controls``
    Extra controls to send with the request.
``response_callback``
    A callable that receives the response controls.
"""

__author__ = "ldapmap developers"
__copyright__ = "Copyright 2026 ldapmap developers"

from collections import namedtuple

from . import controls as ctrl, exceptions


class Scope:
    """
    The search scopes, using their protocol values.
    """
    #: The base entry only
    BASE = 0
    #: The entries immediately below the base entry
    ONE = 1
    #: The base entry and everything below it
    SUB = 2
    #: Everything below the base entry, but not the base entry itself
    SUBORDINATE = 3

    _KEYWORDS = {
        'base': BASE,
        'one': ONE,
        'sub': SUB,
        'subordinate': SUBORDINATE,
    }

    @classmethod
    def resolve(cls, keyword):
        """
        Returns the scope for the given keyword, or :py:attr:`SUB` for ``None``.

        Raises:
            :py:class:`~.exceptions.InvalidArgumentError` for an unknown keyword.
        """
        if keyword is None:
            return cls.SUB
        if keyword in cls._KEYWORDS.values():
            return keyword
        try:
            return cls._KEYWORDS[str(keyword).lower()]
        except KeyError:
            raise exceptions.InvalidArgumentError(
                "Invalid search scope '{}'".format(keyword)
            )


#: Requests all user attributes
ALL_USER_ATTRIBUTES = '*'

DEFAULT_FILTER = '(objectclass=*)'


SearchCriteria = namedtuple('SearchCriteria', [
    'base', 'scope', 'filter', 'attributes', 'size_limit', 'time_limit',
    'types_only', 'byte_valued', 'controls', 'response_callback',
])


def _filter(value):
    value = (value or DEFAULT_FILTER).strip()
    return value if value.startswith('(') else '({})'.format(value)


def _attributes(attributes):
    if not attributes:
        return (ALL_USER_ATTRIBUTES, )
    return tuple(str(a) for a in attributes)


def resolve(base, options = None):
    """
    Returns the :py:class:`SearchCriteria` for a search under ``base`` with the
    given options. Unknown options are ignored.

    Raises:
        :py:class:`~.exceptions.InvalidArgumentError` for an unknown scope, an
        empty server-side sort or a malformed proxied authorization identity.
    """
    options = options or {}
    controls = list(options.get('controls') or [])
    if options.get('server_sort') is not None:
        controls.append(ctrl.build_sort_control(options['server_sort']))
    if options.get('proxied_auth') is not None:
        controls.append(ctrl.proxied_authorization(options['proxied_auth']))
    return SearchCriteria(
        base = base,
        scope = Scope.resolve(options.get('scope')),
        filter = _filter(options.get('filter')),
        attributes = _attributes(options.get('attributes')),
        size_limit = options.get('size_limit') or 0,
        time_limit = options.get('time_limit') or 0,
        types_only = bool(options.get('types_only', False)),
        byte_valued = tuple(options.get('byte_valued') or ()),
        controls = tuple(controls),
        response_callback = options.get('response_callback'),
    )
