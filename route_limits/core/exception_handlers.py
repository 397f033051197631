"""Global exception handlers for consistent error responses.

This module provides FastAPI exception handlers that intercept all errors
(domain and unexpected) and return consistent JSON responses with proper
HTTP status codes and traceability.

Design:
- AppError subclasses → appropriate HTTP status (400, 429, 500, 503)
- Unexpected Exception → generic 500 (safety net)
- All responses include request_id for distributed tracing
"""

import logging
from fastapi import Request
from fastapi.responses import JSONResponse

from route_limits.core.errors import (
    AppError,
    RateLimitExceededAppError,
    RateLimitKeyAppError,
    StorageAppError,
)
from route_limits.core.logging import get_request_id

logger = logging.getLogger(__name__)


def _status_code_for(exc: AppError) -> int:
    if isinstance(exc, RateLimitExceededAppError):
        return 429
    if isinstance(exc, RateLimitKeyAppError):
        return 500
    if isinstance(exc, StorageAppError):
        return 503
    return 400


def _rate_limit_headers(request: Request, exc: AppError) -> dict[str, str] | None:
    """Build Retry-After and X-RateLimit-* headers for a throttled request."""
    if not isinstance(exc, RateLimitExceededAppError) or not exc.details:
        return None

    controller = getattr(request.app.state, "rate_limits", None)
    if controller is not None and not controller.settings.include_headers:
        return None

    return {
        "Retry-After": str(exc.details.get("retry_after", 0)),
        "X-RateLimit-Limit": str(exc.details.get("limit", 0)),
        "X-RateLimit-Remaining": str(exc.details.get("remaining", 0)),
        "X-RateLimit-Reset": str(exc.details.get("reset_at", 0)),
    }


def build_error_response(request: Request, exc: AppError) -> JSONResponse:
    """Render a domain error with the consistent JSON error envelope.

    Routes domain errors to appropriate HTTP status codes:
    - RateLimitExceededAppError → 429 Too Many Requests
    - RateLimitKeyAppError → 500 Internal Server Error (client not identifiable)
    - StorageAppError → 503 Service Unavailable
    - other AppError (e.g. ValidationAppError) → 400 Bad Request

    Shared by the exception handler and by middleware, which runs outside the
    router's exception handling.

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with appropriate status code and error details.
    """
    status_code = _status_code_for(exc)

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_id": get_request_id(),
        }
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }

    # Include details only if present (optional structured context)
    if exc.details:
        error_content["details"] = exc.details

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
        headers=_rate_limit_headers(request, exc),
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors raised from routes and dependencies."""
    return build_error_response(request, exc)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Catches any exception not handled by specific handlers.
    Logs detailed information for debugging while returning generic message.
    Prevents information leakage (no stack traces to client).

    Args:
        request: FastAPI request object.
        exc: Exception instance (unexpected).

    Returns:
        JSONResponse with generic error (no implementation details leaked).
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        }
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with FastAPI app.

    Must be called during app initialization, before route registration.
    Order matters: specific handlers registered before general fallback.

    Args:
        app: FastAPI application instance.
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
