from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from rbac_console.config.settings import settings
from rbac_console.core.errors import ApiError, ConsoleError, TransportError, ValidationError
import logging

logger = logging.getLogger(__name__)


def status_code_for(exc: ConsoleError) -> int:
    """HTTP status reported for a console error raised outside the state managers"""
    if isinstance(exc, ApiError):
        return exc.status_code
    if isinstance(exc, TransportError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_400_BAD_REQUEST


async def console_error_handler(request: Request, exc: ConsoleError) -> JSONResponse:
    if not isinstance(exc, ValidationError):
        logger.warning(f"{request.method} {request.url.path} failed with {type(exc).__name__}: {exc.message}")
    return JSONResponse(status_code=status_code_for(exc), content={"detail": exc.message})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    detail = "Internal server error" if settings.is_production else str(exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": detail})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(ConsoleError, console_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
