"""
This module defines the exceptions that can be thrown by :py:mod:`ldapmap`.
"""

__author__ = "ldapmap developers"
__copyright__ = "Copyright 2026 ldapmap developers"


class LDAPError(Exception):
    """
    Raised when an LDAP error occurs.
    """


class ConnectionError(LDAPError):
    """
    Raised when there is an error with the LDAP connection itself, as opposed to
    a problem executing an operation (see :py:class:`OperationalError`).
    """


class NoServerAvailableError(ConnectionError):
    """
    Raised when a connection cannot be established to a suitable server.
    """


class InvalidArgumentError(LDAPError, ValueError):
    """
    Raised when a request or configuration is rejected locally, before anything
    is sent to the server (e.g. an empty list of sort keys or a malformed host).
    """


class EntrySourceError(LDAPError):
    """
    Raised by an entry source during a streaming search.

    Attributes:
        may_continue: ``True`` if more entries may still be read from the source
            after this error, ``False`` if the search cannot continue.
    """
    def __init__(self, message = None, may_continue = False):
        super().__init__(message)
        self.may_continue = may_continue


class OperationalError(LDAPError):
    """
    Raised when an operational error occurs, i.e. an error that results from a
    bad request rather than a problem with the connection per-se.

    Attributes:
        code: The numeric LDAP result code.
        name: The name of the result code, e.g. ``noSuchObject``.
        message: The diagnostic message from the server, if any.
    """
    def __init__(self, code = None, name = None, message = None):
        self.code = code
        self.name = name
        self.message = message
        super().__init__(code, name, message)

    def __str__(self):
        text = '{} ({})'.format(self.name or 'error', self.code)
        if self.message:
            text = '{}: {}'.format(text, self.message)
        return text


class OperationNotAllowedError(OperationalError):
    """
    Raised when an attempt is made to perform an operation that is not allowed,
    i.e. a streaming search on a single checked-out connection.
    """


class AuthenticationError(OperationalError, ValueError):
    """
    Raised when authentication of a connection fails.
    """


class NoSuchObjectError(OperationalError, ValueError):
    """
    Raised when an operation is attempted on a non-existent object.
    """


class ObjectAlreadyExistsError(OperationalError, ValueError):
    """
    Raised when attempting to create an object that already exists.
    """


class PermissionDeniedError(OperationalError):
    """
    Raised when the connection does not have permission to perform the requested
    operation.
    """


class SchemaViolationError(OperationalError, ValueError):
    """
    Raised when a schema violation occurs.
    """


class SizeLimitExceededError(OperationalError):
    """
    Raised when a search returns more entries than the size limit allows.

    The entries received before the limit was hit are kept, so that callers
    can still use them.

    Attributes:
        entries: The :py:class:`~.transport.WireEntry` objects received.
        controls: The response controls received with the result.
    """
    def __init__(self, code = 4, name = 'sizeLimitExceeded', message = None,
                       entries = (), controls = ()):
        super().__init__(code, name, message)
        self.entries = list(entries)
        self.controls = tuple(controls)


#: Maps LDAP result codes to the exception raised for them
_EXCEPTIONS_BY_CODE = {
    4: SizeLimitExceededError,
    8: PermissionDeniedError,
    32: NoSuchObjectError,
    49: AuthenticationError,
    50: PermissionDeniedError,
    65: SchemaViolationError,
    68: ObjectAlreadyExistsError,
}


def for_result(code, name = None, message = None):
    """
    Returns the exception appropriate for a non-success LDAP result code.

    Args:
        code: The numeric LDAP result code.
        name: The name of the result code.
        message: The diagnostic message from the server (optional).

    Returns:
        An :py:class:`OperationalError` (or subclass) instance.
    """
    return _EXCEPTIONS_BY_CODE.get(code, OperationalError)(code, name, message)
