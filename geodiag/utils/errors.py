"""Application error types and the standardized error payload."""
from __future__ import annotations

from typing import Any


def error_response(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return a standardized error payload."""

    payload: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details:
        payload["error"]["details"] = details
    return payload


class ApiError(Exception):
    """Base class for errors raised by services.

    Services never pick HTTP codes themselves; the mapping to a transport status
    lives on the subclass and is only read by the exception handlers in
    ``geodiag.main``.
    """

    status_code: int = 500
    default_code: str = "INTERNAL_SERVER_ERROR"
    default_message: str = "An unexpected error occurred."

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        return error_response(self.code, self.message, self.details)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class BadRequestError(ApiError):
    status_code = 400
    default_code = "BAD_REQUEST"
    default_message = "Invalid request."


class UnauthorizedError(ApiError):
    status_code = 401
    default_code = "UNAUTHORIZED"
    default_message = "Authentication required."


class ForbiddenError(ApiError):
    status_code = 403
    default_code = "FORBIDDEN"
    default_message = "Access denied."


class NotFoundError(ApiError):
    status_code = 404
    default_code = "NOT_FOUND"
    default_message = "Resource not found."


class ConflictError(ApiError):
    status_code = 409
    default_code = "CONFLICT"
    default_message = "Resource already exists."


class InternalProcessingError(ApiError):
    status_code = 500
    default_code = "PROCESSING_FAILED"
    default_message = "Internal processing failure."


__all__ = [
    "error_response",
    "ApiError",
    "BadRequestError",
    "UnauthorizedError",
    "ForbiddenError",
    "NotFoundError",
    "ConflictError",
    "InternalProcessingError",
]
