"""
Shared API Middleware
======================

Common middleware and exception handlers for the FastAPI application.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from helpdesk.core import (
    ApplicationException,
    ConflictException,
    ForbiddenException,
    InvalidTransitionException,
    ResourceNotFoundException,
    ValidationException,
)
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

# Most specific first: ConflictException is a RepositoryException,
# ForbiddenException and InvalidTransitionException are DomainExceptions.
_STATUS_BY_EXCEPTION = (
    (ResourceNotFoundException, status.HTTP_404_NOT_FOUND),
    (ForbiddenException, status.HTTP_403_FORBIDDEN),
    (InvalidTransitionException, status.HTTP_409_CONFLICT),
    (ConflictException, status.HTTP_409_CONFLICT),
    (ValidationException, status.HTTP_422_UNPROCESSABLE_ENTITY),
)


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Adds correlation ID to requests for tracing.

    Correlation IDs link the request log lines with the events and
    notifications the request caused.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request with its status code and latency."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = getattr(request.state, "correlation_id", "unknown")
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                extra={
                    "correlation_id": correlation_id,
                    "method": request.method,
                    "path": request.url.path,
                    "error": str(e),
                    "response_time_ms": int((time.perf_counter() - start_time) * 1000)
                }
            )
            raise

        logger.info(
            "Request completed",
            extra={
                "correlation_id": correlation_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "response_time_ms": int((time.perf_counter() - start_time) * 1000)
            }
        )
        return response


def status_code_for(exc: ApplicationException) -> int:
    for exc_type, code in _STATUS_BY_EXCEPTION:
        if isinstance(exc, exc_type):
            return code
    return status.HTTP_400_BAD_REQUEST


async def application_exception_handler(request: Request, exc: ApplicationException) -> JSONResponse:
    """
    Map domain and repository errors to HTTP responses.

    Returns the error message and its structured details.
    """
    code = status_code_for(exc)
    logger.info(
        "Request rejected",
        extra={
            "correlation_id": getattr(request.state, "correlation_id", "unknown"),
            "path": request.url.path,
            "error_type": type(exc).__name__,
            "error_message": exc.message,
            "status_code": code,
        }
    )
    return JSONResponse(
        status_code=code,
        content={
            "detail": exc.message,
            "error_type": type(exc).__name__,
            "details": exc.details,
        }
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler for unhandled exceptions.

    Returns consistent error responses for all exceptions.
    """
    correlation_id = getattr(request.state, "correlation_id", "unknown")

    logger.error(
        "Unhandled exception",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
            "error_message": str(exc)
        }
    )

    # Don't expose internal details in production
    settings = getattr(request.app.state, "settings", None)
    is_dev = getattr(settings, "environment", None) == "development"

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "correlation_id": correlation_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "debug_info": str(exc) if is_dev else None
        }
    )
