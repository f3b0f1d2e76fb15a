"""
Exception handlers.

Every error leaves the service as ``{"ok": false, "message": str}``.
"""

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from pubportal.config import get_settings

logger = structlog.get_logger(__name__)


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "message": message})


def validation_message(exc: RequestValidationError) -> str:
    """First validation error as "<field>: <reason>"."""
    errors = exc.errors()
    if not errors:
        return "invalid request"
    first = errors[0]
    location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path", "form")]
    reason = str(first.get("msg", "invalid value")).removeprefix("Value error, ")
    return f"{'.'.join(location)}: {reason}" if location else reason


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    logger.warning(
        "http_exception",
        path=request.url.path,
        status_code=exc.status_code,
        detail=exc.detail
    )
    return error_response(exc.status_code, str(exc.detail))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors."""
    logger.warning(
        "validation_error",
        path=request.url.path,
        errors=exc.errors()
    )
    return error_response(status.HTTP_400_BAD_REQUEST, validation_message(exc))


async def value_error_handler(request: Request, exc: ValueError):
    """Repository and model ValueErrors are client errors."""
    logger.warning("value_error", path=request.url.path, error=str(exc))
    return error_response(status.HTTP_400_BAD_REQUEST, str(exc))


async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    logger.warning("rate_limit_exceeded", path=request.url.path, limit=str(exc.detail))
    return error_response(status.HTTP_429_TOO_MANY_REQUESTS, f"rate limit exceeded: {exc.detail}")


async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(
        "unexpected_exception",
        path=request.url.path,
        error=str(exc),
        exc_info=True
    )
    message = str(exc) if get_settings().debug else "internal error"
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, message)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(ValueError, value_error_handler)
    app.add_exception_handler(Exception, general_exception_handler)
