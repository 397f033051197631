"""HTTP middleware for request correlation and per-request rate limiting.

Usage:
    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(request_id_middleware)

Starlette runs the last registered middleware first, so registering the
request id middleware last lets rate limit logs carry the request id.
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response
from starlette.concurrency import run_in_threadpool

from route_limits.core.config import settings
from route_limits.core.errors import AppError
from route_limits.core.exception_handlers import build_error_response
from route_limits.core.logging import clear_request_id, set_request_id
from route_limits.core.rate_limit import get_rate_limit_controller


async def request_id_middleware(request: Request, call_next) -> Response:
    """Propagate a correlation id and measure request duration.

    Uses the incoming request id header (``LOG_REQUEST_ID_HEADER``, default
    ``X-Request-ID``) or generates a UUID, stores it in contextvars for log
    correlation, and echoes it back with an ``X-Request-Duration-ms`` header.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response


async def rate_limit_middleware(request: Request, call_next) -> Response:
    """Sweep expired counters and apply the default policy before routing.

    Counter storage is blocking file or database I/O, so it runs in the
    threadpool. Exceptions raised here bypass the app's exception handlers,
    so domain errors are rendered directly with the shared error envelope.
    """

    controller = get_rate_limit_controller(request)
    if controller is not None and controller.context.is_served:
        try:
            if controller.settings.cleanup_on_request:
                await run_in_threadpool(controller.cleanup)
            if controller.default_hook == "request":
                await run_in_threadpool(controller.run_default, request)
        except AppError as exc:
            return build_error_response(request, exc)

    return await call_next(request)
