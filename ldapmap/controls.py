"""
This module defines the LDAP controls understood by :py:mod:`ldapmap`, and the
functions that attach them to requests and fold them back into results.

Each control is a small namedtuple. Turning them into bytes on the wire is the
job of the transport (see :py:mod:`.wire`).
"""

__author__ = "ldapmap developers"
__copyright__ = "Copyright 2026 ldapmap developers"

import logging
from collections import namedtuple

from . import codec, exceptions
from .transport import DeleteRequest


_log = logging.getLogger(__name__)


PRE_READ_OID = '1.3.6.1.1.13.1'
POST_READ_OID = '1.3.6.1.1.13.2'
PROXIED_AUTHORIZATION_OID = '2.16.840.1.113730.3.4.18'
SUBTREE_DELETE_OID = '1.2.840.113556.1.4.805'
SERVER_SIDE_SORT_OID = '1.2.840.113556.1.4.473'
PAGED_RESULTS_OID = '1.2.840.113556.1.4.319'


############################################################################
## Request controls
############################################################################

#: Returns the given attributes of the target entry as they were before the
#: operation
PreRead = namedtuple('PreRead', ['attributes'])

#: Returns the given attributes of the target entry as they are after the
#: operation
PostRead = namedtuple('PostRead', ['attributes'])

#: Performs the operation as ``authz_id`` (``dn:<DN>`` or ``u:<uid>``)
ProxiedAuthorization = namedtuple('ProxiedAuthorization', ['authz_id'])

#: Deletes the target entry together with everything beneath it
SubtreeDelete = namedtuple('SubtreeDelete', [])

#: Asks the server to sort search results by the given sort keys
ServerSideSort = namedtuple('ServerSideSort', ['is_critical', 'sort_keys'])

#: Requests (or, in a response, reports) one page of a paged search
PagedResults = namedtuple('PagedResults', ['size', 'cookie'])

#: Any other control, passed through untouched
Passthrough = namedtuple('Passthrough', ['oid', 'criticality', 'value'])


############################################################################
## Response controls
############################################################################

#: Carries the :py:class:`~.transport.WireEntry` read before the operation
PreReadResponse = namedtuple('PreReadResponse', ['entry'])

#: Carries the :py:class:`~.transport.WireEntry` read after the operation
PostReadResponse = namedtuple('PostReadResponse', ['entry'])


ASCENDING = 'ascending'
DESCENDING = 'descending'


class SortKey(namedtuple('SortKey', ['attribute', 'direction'])):
    """
    A single key for a server-side sort.

    Attributes:
        attribute: The attribute to sort on.
        direction: :py:data:`ASCENDING` or :py:data:`DESCENDING`.
    """
    @property
    def reverse_order(self):
        return self.direction == DESCENDING


def _names(attributes):
    return tuple(str(a) for a in attributes)


def _check_authz_id(authz_id):
    if authz_id == '' or authz_id.startswith('dn:') or authz_id.startswith('u:'):
        return authz_id
    raise exceptions.InvalidArgumentError(
        "Proxied authorization identity must be 'dn:<DN>' or 'u:<uid>', "
        "got '{}'".format(authz_id)
    )


def proxied_authorization(authz_id):
    """
    Returns a :py:class:`ProxiedAuthorization` control for the given identity.

    Raises:
        :py:class:`~.exceptions.InvalidArgumentError` if the identity is not of
        the form ``dn:<DN>`` or ``u:<uid>``.
    """
    return ProxiedAuthorization(_check_authz_id(authz_id))


def request_controls(request, options):
    """
    Returns the controls that ``options`` asks for on the given request.

    The recognised keys are ``pre_read``, ``post_read``, ``proxied_auth`` and
    ``delete_subtree`` (delete requests only). Other keys are ignored.
    """
    controls = []
    if 'pre_read' in options:
        controls.append(PreRead(_names(options['pre_read'])))
    if 'post_read' in options:
        controls.append(PostRead(_names(options['post_read'])))
    if options.get('proxied_auth') is not None:
        controls.append(proxied_authorization(options['proxied_auth']))
    if options.get('delete_subtree') and isinstance(request, DeleteRequest):
        controls.append(SubtreeDelete())
    return controls


def attach(request, options):
    """
    Returns a copy of the request with the controls requested in ``options``
    added to it.

    Args:
        request: Any request record with a ``controls`` field.
        options: A dictionary of options (may be ``None``).

    Returns:
        The new request.
    """
    if not options:
        return request
    controls = request_controls(request, options)
    if not controls:
        return request
    _log.debug('Attaching controls {} to {}'.format(
        [type(c).__name__ for c in controls], type(request).__name__
    ))
    return request._replace(controls = tuple(request.controls) + tuple(controls))


def _merge(fragment, entry):
    merged = dict(fragment or {})
    merged.update(codec.decode(entry, include_dn = False))
    return merged


def merge_response(outcome, controls):
    """
    Folds the entries carried by pre-read and post-read response controls into
    the ``pre_read`` and ``post_read`` fields of an outcome. Other controls are
    ignored.

    Args:
        outcome: A :py:class:`~.results.Outcome`.
        controls: The response controls.

    Returns:
        The updated outcome.
    """
    for control in controls or ():
        if isinstance(control, PreReadResponse):
            outcome = outcome._replace(pre_read = _merge(outcome.pre_read, control.entry))
        elif isinstance(control, PostReadResponse):
            outcome = outcome._replace(post_read = _merge(outcome.post_read, control.entry))
    return outcome


def _direction(value):
    return DESCENDING if str(value).lower() == DESCENDING else ASCENDING


def build_sort_control(spec):
    """
    Builds a :py:class:`ServerSideSort` control from a specification of the form::

        {
            'is_critical': True,
            'sort_keys': ['cn', 'ascending', 'employeeNumber', 'descending'],
        }

    ``is_critical`` defaults to ``False``. Directions other than
    ``descending``, including a missing final direction, sort ascending.

    Raises:
        :py:class:`~.exceptions.InvalidArgumentError` if no sort keys are given.
    """
    flat = list(spec.get('sort_keys') or [])
    if not flat:
        raise exceptions.InvalidArgumentError(
            "The search option 'server_sort' requires non-empty sort_keys"
        )
    sort_keys = tuple(
        SortKey(str(flat[i]), _direction(flat[i + 1]) if i + 1 < len(flat) else ASCENDING)
        for i in range(0, len(flat), 2)
    )
    return ServerSideSort(bool(spec.get('is_critical', False)), sort_keys)


def paged_cookie(controls):
    """
    Returns the cookie from a paged results response control, or ``None`` if
    there is no such control.
    """
    for control in controls or ():
        if isinstance(control, PagedResults):
            return control.cookie
    return None
