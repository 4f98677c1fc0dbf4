"""
Global exception handlers for FastAPI.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

import structlog

from breathwork.core.exceptions import (
    BreathworkError,
    CommandExecutionFailed,
    ConfigurationError,
    DependencyInjectionFailed,
    StateUpdateFailed,
    TechniqueNotFoundError,
)

log = structlog.get_logger(__name__)


def status_code_for(exc: BreathworkError) -> int:
    """Map an application error to its HTTP status code."""
    if isinstance(exc, TechniqueNotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, CommandExecutionFailed):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, StateUpdateFailed):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, (DependencyInjectionFailed, ConfigurationError)):
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def setup_exception_handlers(app: FastAPI):
    """Register custom exception handlers with the FastAPI application.

    BreathworkError subclasses become a JSON error body with a mapped status
    code; anything else is logged and returned as a generic 500.
    """

    @app.exception_handler(BreathworkError)
    async def breathwork_error_handler(
        request: Request,
        exc: BreathworkError,
    ) -> JSONResponse:
        """Handle application errors with their mapped HTTP status codes."""
        status_code = status_code_for(exc)
        log_ctx = log.bind(
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
        )
        if status_code >= 500:
            log_ctx.error("request_error", message=exc.message, status_code=status_code)
        else:
            log_ctx.warning("request_error", message=exc.message, status_code=status_code)

        return JSONResponse(status_code=status_code, content={"error": exc.to_dict()})

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Handle all unhandled exceptions with HTTP 500 status."""
        log.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
            message=str(exc),
            exc_info=exc,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "type": "InternalServerError",
                    "message": "An unexpected error occurred",
                    "context": {},
                }
            },
        )
