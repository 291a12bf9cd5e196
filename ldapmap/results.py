"""
This module converts replies from the transport into :py:class:`Outcome`
records, raising the appropriate exception for unsuccessful results.
"""

__author__ = "ldapmap developers"
__copyright__ = "Copyright 2026 ldapmap developers"

import logging
from collections import namedtuple

from . import controls, exceptions


_log = logging.getLogger(__name__)


SUCCESS = 0


class Outcome(namedtuple('Outcome', ['code', 'name', 'pre_read', 'post_read'])):
    """
    The result of a successful add, modify, modify RDN or delete.

    Attributes:
        code: The numeric result code.
        name: The name of the result code.
        pre_read: The entry fragment read before the operation, if a pre-read
            was requested, otherwise ``None``.
        post_read: The entry fragment read after the operation, if a post-read
            was requested, otherwise ``None``.
    """
    def __new__(cls, code, name, pre_read = None, post_read = None):
        return super().__new__(cls, code, name, pre_read, post_read)


def check(code, name, message = None):
    """
    Raises the exception for ``code`` unless it is a success code.
    """
    if code != SUCCESS:
        _log.debug('Operation failed with {} ({}): {}'.format(name, code, message))
        raise exceptions.for_result(code, name, message)


def map_result(reply):
    """
    Converts a :py:class:`~.transport.Reply` into an :py:class:`Outcome`,
    including any pre-read or post-read entries returned by the server.

    Raises:
        An exception from :py:func:`~.exceptions.for_result` if the reply is
        not successful.
    """
    check(reply.code, reply.name, reply.message)
    return controls.merge_response(Outcome(reply.code, reply.name), reply.controls)
