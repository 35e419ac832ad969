"""Error types raised by services and converted to response envelopes by the web layer."""
from __future__ import annotations

from typing import Optional

from pydantic import ValidationError as PydanticValidationError


class ApiError(Exception):
    """Error with an HTTP status, a client-facing message and optional field details."""

    status_code = 500

    def __init__(self, message: str, details: Optional[dict[str, str]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(ApiError):
    status_code = 400


class InvalidStateError(ApiError):
    """Operation not allowed in the current lifecycle state (square taken, game not in setup...)."""

    status_code = 400


class AuthenticationError(ApiError):
    status_code = 401


class PermissionDeniedError(ApiError):
    status_code = 403


class NotFoundError(ApiError):
    status_code = 404


class ConditionFailedError(Exception):
    """A conditional store write did not apply (item exists, or an expected attribute changed)."""


def from_pydantic(exc: PydanticValidationError, message: str = "Validation failed") -> ValidationError:
    """Convert a pydantic error into a ValidationError with one detail per field."""
    details: dict[str, str] = {}
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ())) or "body"
        details.setdefault(field, err.get("msg", "Invalid value"))
    return ValidationError(message, details)
