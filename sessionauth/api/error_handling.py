"""
Exception handlers mapping errors onto the auth wire shape.

Every error body is ``{"success": false, "message": ..., "error": code}``,
optionally with ``errors`` (field -> messages). Raw exception text from the
store or driver never reaches the client.
"""

from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from sessionauth.core.errors import (
    AuthError,
    EmailNotVerified,
    InvalidCredentials,
    RateLimitExceeded,
    StoreUnavailable,
)
from sessionauth.core.logging import get_logger

logger = get_logger(__name__)

NO_STORE = {"Cache-Control": "no-store"}

# Login never says which field was wrong
_CREDENTIAL_PATHS = ("/auth/login",)


def error_response(
    status_code: int,
    message: str,
    code: str,
    *,
    errors: dict[str, list[str]] | None = None,
    headers: dict[str, str] | None = None,
    **extra: Any,
) -> JSONResponse:
    content: dict[str, Any] = {"success": False, "message": message, "error": code}
    if errors:
        content["errors"] = errors
    content.update(extra)
    return JSONResponse(
        status_code=status_code, content=content, headers={**NO_STORE, **(headers or {})}
    )


def format_validation_errors(exc: RequestValidationError) -> dict[str, list[str]]:
    """Group pydantic errors by field name, dropping the location prefix."""
    errors: dict[str, list[str]] = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query")]
        field = ".".join(loc) or "_"
        message = str(error.get("msg", "Invalid value")).removeprefix("Value error, ")
        errors.setdefault(field, []).append(message)
    return errors


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers for auth, store, validation and HTTP errors."""

    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError) -> JSONResponse:
        logger.info(
            "auth_error",
            path=request.url.path,
            status_code=exc.status_code,
            error_code=exc.error_code,
        )
        extra: dict[str, Any] = {}
        if isinstance(exc, EmailNotVerified):
            extra = {"requiresVerification": True, "email": exc.email}
        headers = exc.headers if isinstance(exc, RateLimitExceeded) else None
        if exc.status_code == 401:
            headers = {"WWW-Authenticate": "Bearer"}
        errors = {exc.field: [exc.message]} if exc.field else None
        return error_response(
            exc.status_code,
            exc.message,
            exc.error_code,
            errors=errors,
            headers=headers,
            **extra,
        )

    @app.exception_handler(StoreUnavailable)
    async def handle_store_unavailable(request: Request, exc: StoreUnavailable) -> JSONResponse:
        logger.error(
            "store_unavailable",
            path=request.url.path,
            operation=exc.operation,
            cause=type(exc.cause).__name__ if exc.cause else None,
        )
        return error_response(
            exc.status_code, "Service temporarily unavailable", "service_unavailable"
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        if request.url.path.endswith(_CREDENTIAL_PATHS):
            failure = InvalidCredentials()
            return error_response(
                failure.status_code,
                failure.message,
                failure.error_code,
                headers={"WWW-Authenticate": "Bearer"},
            )
        return error_response(
            422,
            "Validation failed",
            "validation_error",
            errors=format_validation_errors(exc),
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return error_response(
            exc.status_code,
            str(exc.detail),
            "http_error",
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
        )
        return error_response(500, "Internal server error", "server_error")
