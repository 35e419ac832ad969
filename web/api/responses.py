"""Response envelopes and the error handlers that produce them.

    {"success": true, "data": ..., "message": ...}
    {"success": false, "error": ..., "details": {...}}
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from squares.errors import ApiError

logger = logging.getLogger("squares.http")

CORS_ALLOW_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
CORS_ALLOW_HEADERS = ["Content-Type", "Authorization", "X-Auth-Token"]

# Location prefixes FastAPI puts in front of the field name
_LOCATIONS = ("body", "query", "path", "header")


def success(data: Any = None, message: Optional[str] = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": True, "data": data}
    if message:
        body["message"] = message
    return body


def failure(status_code: int, error: str, details: Optional[dict[str, Any]] = None) -> JSONResponse:
    if status_code < 500:
        logger.warning("Error %d: %s %s", status_code, error, details or {})
    return JSONResponse({"success": False, "error": error, "details": details or {}}, status_code=status_code)


def field_details(errors: list[dict[str, Any]]) -> dict[str, str]:
    """One message per field, keyed by the field's wire name."""
    details: dict[str, str] = {}
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in _LOCATIONS]
        details.setdefault(".".join(loc) or "body", err.get("msg", "Invalid value"))
    return details


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return failure(exc.status_code, exc.message, exc.details)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if any(err.get("type") == "json_invalid" for err in errors):
        return failure(400, "Invalid JSON body")
    return failure(400, "Invalid request", field_details(errors))


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # An unknown method on a known path is still an unmatched route
    if exc.status_code in (404, 405):
        return failure(404, "Route not found")
    return failure(exc.status_code, str(exc.detail))


class InternalErrorMiddleware(BaseHTTPMiddleware):
    """Turn exceptions no handler claimed into a 500 envelope."""

    async def dispatch(self, request, call_next):
        logger.debug("Route key: %s %s", request.method, request.url.path)
        try:
            return await call_next(request)
        except Exception as e:
            logger.exception("Unhandled error for %s %s", request.method, request.url.path)
            return failure(500, "Internal server error", {"message": str(e)})


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_middleware(InternalErrorMiddleware)
