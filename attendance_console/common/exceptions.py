"""Custom exceptions and the ``{success, error}`` envelope error handlers."""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


# ── Exception hierarchy ─────────────────────────────────────────────

class AppException(Exception):
    """Base for all application exceptions → envelope JSON."""

    def __init__(
        self,
        status_code: int,
        error_type: str,
        detail: str,
        errors: Optional[dict[str, Any]] = None,
    ) -> None:
        self.status_code = status_code
        self.error_type = error_type
        self.detail = detail
        self.errors = errors
        super().__init__(detail)


class NotFoundException(AppException):
    """404 — entity not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            status_code=404,
            error_type="not-found",
            detail=f"{entity_type} '{entity_id}' not found.",
        )


class ConflictError(AppException):
    """400 — unique-constraint / duplicate."""

    def __init__(self, field: str, value: Any, detail: Optional[str] = None) -> None:
        super().__init__(
            status_code=400,
            error_type="conflict",
            detail=detail or f"An entry with {field}='{value}' already exists.",
            errors={field: [f"'{value}' is already in use."]},
        )


class ValidationException(AppException):
    """400 — business-logic validation failures."""

    def __init__(self, errors: dict[str, list[str]], detail: Optional[str] = None) -> None:
        if detail is None:
            detail = "; ".join(
                f"{field}: {msg}" for field, msgs in errors.items() for msg in msgs
            ) or "One or more fields failed validation."
        super().__init__(
            status_code=400,
            error_type="validation-error",
            detail=detail,
            errors=errors,
        )


class AuthenticationException(AppException):
    """401 — bad credentials or one-time code."""

    def __init__(self, detail: str = "Authentication failed.") -> None:
        super().__init__(status_code=401, error_type="unauthorized", detail=detail)


class ForbiddenException(AppException):
    """403 — insufficient permissions."""

    def __init__(
        self,
        detail: str = "You do not have permission to perform this action.",
    ) -> None:
        super().__init__(status_code=403, error_type="forbidden", detail=detail)


class StateTransitionError(AppException):
    """409 — the entity is in a terminal state."""

    def __init__(self, detail: str) -> None:
        super().__init__(status_code=409, error_type="invalid-state", detail=detail)


class ServiceUnavailableException(AppException):
    """503 — a required downstream service (SMTP) failed."""

    def __init__(self, detail: str) -> None:
        super().__init__(status_code=503, error_type="service-unavailable", detail=detail)


# ── Envelope builder ────────────────────────────────────────────────

def _error_body(detail: str, errors: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "error": detail}
    if errors:
        body["errors"] = errors
    return body


# ── FastAPI handlers ────────────────────────────────────────────────

async def _handle_app_exception(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.detail, exc.errors),
    )


async def _handle_http_exception(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def _handle_validation_error(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    field_errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = err.get("loc", ())
        name = (
            ".".join(str(p) for p in loc[1:])
            if len(loc) > 1
            else str(loc[0]) if loc else "unknown"
        )
        field_errors.setdefault(name, []).append(err.get("msg", "Invalid value"))

    return JSONResponse(
        status_code=422,
        content=_error_body("Request validation failed.", field_errors),
    )


async def _handle_rate_limited(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("Rate limit hit on %s %s: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(
        status_code=429,
        content=_error_body(f"Rate limit exceeded: {exc.detail}"),
    )


async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=_error_body("Internal server error"))


# ── Registration helper (called from main.py) ──────────────────────

def register_exception_handlers(app: FastAPI) -> None:
    """Attach all custom exception handlers to the FastAPI app."""
    app.add_exception_handler(AppException, _handle_app_exception)          # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _handle_http_exception)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(RateLimitExceeded, _handle_rate_limited)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _handle_unexpected)
