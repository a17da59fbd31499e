"""Categorised failures raised by the signing workflow.

Every rejection carries a :class:`FailureStatus` and a message that is safe
to show to the caller. The HTTP layer maps the status onto a response code;
the CLI prints the message.
"""

from enum import Enum


class FailureStatus(str, Enum):
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    BAD_REQUEST = "bad_request"
    INTERNAL = "internal"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self]


_HTTP_STATUS = {
    FailureStatus.UNAUTHORIZED: 401,
    FailureStatus.FORBIDDEN: 403,
    FailureStatus.NOT_FOUND: 404,
    FailureStatus.CONFLICT: 409,
    FailureStatus.BAD_REQUEST: 400,
    FailureStatus.INTERNAL: 500,
}


class SigningError(Exception):
    """Base class. Subclasses fix the category."""

    status = FailureStatus.INTERNAL

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UnauthorizedError(SigningError):
    status = FailureStatus.UNAUTHORIZED


class ForbiddenError(SigningError):
    status = FailureStatus.FORBIDDEN


class NotFoundError(SigningError):
    status = FailureStatus.NOT_FOUND


class ConflictError(SigningError):
    status = FailureStatus.CONFLICT


class BadRequestError(SigningError):
    status = FailureStatus.BAD_REQUEST


class DependencyError(SigningError):
    """Storage or PDF codec failure mid-pipeline; the request may be retried."""

    status = FailureStatus.INTERNAL
