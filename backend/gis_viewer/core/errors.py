"""Application error taxonomy.

Every error a route can report is an ``AppError`` subclass carrying the
machine-readable ``code`` and HTTP ``status_code`` that the exception
handlers in ``gis_viewer.main`` render into the response envelope.

Example:
    Raise from a service or route:
        >>> from gis_viewer.core import errors
        >>> raise errors.NotFoundError("Dataset not found")
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for errors rendered into the API envelope."""

    code = "SERVER_ERROR"
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    code = "VALIDATION_ERROR"
    status_code = 400
    default_message = "Invalid request"


class UnauthorizedError(AppError):
    code = "UNAUTHORIZED"
    status_code = 401
    default_message = "Authentication required"


class InvalidTokenError(AppError):
    code = "INVALID_TOKEN"
    status_code = 401
    default_message = "Invalid token"


class InvalidCredentialsError(AppError):
    code = "INVALID_CREDENTIALS"
    status_code = 401
    default_message = "Email or password is incorrect"


class ForbiddenError(AppError):
    code = "FORBIDDEN"
    status_code = 403
    default_message = "Insufficient permissions"


class NotFoundError(AppError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Resource not found"


class ConflictError(AppError):
    code = "CONFLICT"
    status_code = 409
    default_message = "Resource already exists"


class PayloadTooLargeError(AppError):
    code = "PAYLOAD_TOO_LARGE"
    status_code = 413
    default_message = "Upload too large"


class ServerError(AppError):
    """Catch-all failure; never retryable from the caller's point of view."""


class StorageError(ServerError):
    """The relational store or blob store could not be reached or written.

    Raised at the repository boundary in place of driver exceptions so that
    routes never depend on psycopg2 or filesystem error types.
    """
