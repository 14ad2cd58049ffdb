"""
Exception classes for qobuz-sync.

This module defines the failure kinds used throughout the application.
Network and decoding failures are NOT raised for control flow: the request
pipeline returns them as values (see ApiResult in qobuz.models) so that every
asynchronous operation resolves to either a payload or a typed failure.
The classes still derive from Exception so they can be raised by callers
that prefer it (the CLI does) and logged with a traceback.

Exception Hierarchy:
    QobuzSyncError (base)
        TransportFailure - Connection errors, timeouts
        ServiceError - Non-success HTTP status or undecodable body
            AuthExpired - 401 Unauthorized, session has been invalidated
        NotEntitled - Login succeeded but the account cannot stream
        MalformedRecord - A single catalog record could not be mapped
"""

from typing import Optional


class QobuzSyncError(Exception):
    """
    Base exception for all qobuz-sync errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (resource, params...).
    """

    def __init__(self, message: str, details: Optional[dict] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class TransportFailure(QobuzSyncError):
    """
    Raised (or returned) when a request never produced an HTTP response.

    Common causes:
        - DNS resolution failure, connection refused
        - Request timeout
        - Connection reset while reading the body

    No retry is attempted by the dispatcher; retry is a caller policy.
    """
    pass


class ServiceError(QobuzSyncError):
    """
    Returned when the service answered but the answer is not usable.

    Attributes:
        http_status: HTTP status code of the reply (200 for parse errors).
        server_message: Message decoded from the reply body, if any.
        code: Failure kind, one of the module-level ERROR_* codes.
    """

    def __init__(
        self,
        message: str,
        http_status: int = 0,
        server_message: str = "",
        code: str = "",
        details: Optional[dict] = None
    ) -> None:
        super().__init__(message, details)
        self.http_status = http_status
        self.server_message = server_message
        self.code = code or status_to_code(http_status)


class AuthExpired(ServiceError):
    """
    Returned for a 401 Unauthorized reply.

    By the time a caller sees this error the session has already been
    invalidated by the response extractor.
    """
    pass


class NotEntitled(QobuzSyncError):
    """
    Raised when a login succeeds but the account has no streaming entitlement.

    Distinct from AuthExpired: the credentials were correct, the subscription
    is not. The session is closed immediately.
    """
    pass


class MalformedRecord(QobuzSyncError):
    """
    Raised by the entity mapper for a single unusable catalog record.

    Never escapes a batch: the record is dropped and the rest of the batch
    is mapped normally.
    """
    pass


# Failure kinds carried by ServiceError.code
ERROR_BAD_REQUEST = "bad_request"
ERROR_UNAUTHORIZED = "unauthorized"
ERROR_REQUEST_FAILED = "request_failed"
ERROR_NOT_FOUND = "not_found"
ERROR_SERVER = "server_error"
ERROR_PARSE = "parse_error"
ERROR_UNKNOWN = "unknown"

_STATUS_CODES = {
    400: ERROR_BAD_REQUEST,
    401: ERROR_UNAUTHORIZED,
    402: ERROR_REQUEST_FAILED,
    404: ERROR_NOT_FOUND,
    500: ERROR_SERVER,
}


def status_to_code(http_status: int) -> str:
    """Map an HTTP status returned by the service to a failure kind."""
    if http_status in _STATUS_CODES:
        return _STATUS_CODES[http_status]
    if http_status >= 500:
        return ERROR_SERVER
    return ERROR_UNKNOWN
