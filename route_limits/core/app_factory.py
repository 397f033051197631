from __future__ import annotations

"""Application factory for FastAPI app.

Centralizes app construction (settings, rate limit controller, middleware,
handlers, routers) so tests can build isolated apps with their own settings.
"""

import time
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import Depends, FastAPI
from sqlalchemy import Engine

from route_limits.api.routes import health_router, keys_router
from route_limits.core.config import Settings, settings
from route_limits.core.exception_handlers import setup_exception_handlers
from route_limits.core.keys import KeyResolver
from route_limits.core.logging import configure_logging
from route_limits.core.middleware import rate_limit_middleware, request_id_middleware
from route_limits.core.rate_limit import build_rate_limit_controller, enforce_default_rate_limit


def create_app(
    app_settings: Settings | None = None,
    *,
    engine: Engine | None = None,
    key_resolver: KeyResolver | None = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        app_settings: Settings container; the global settings when omitted.
        engine: Optional SQLAlchemy engine for the db driver.
        key_resolver: Optional resolver carrying application key providers.
        clock: Time source for counter windows.

    Returns:
        Configured FastAPI app with rate limiting, middleware, handlers and routers.
    """
    cfg = app_settings or settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    controller = build_rate_limit_controller(
        cfg,
        engine=engine,
        key_resolver=key_resolver,
        clock=clock,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        if controller is not None:
            controller.cleanup()
        yield

    app = FastAPI(
        title="Route Limits API",
        description=(
            "Fixed-window request rate limiting per client key and route, "
            "backed by counter files or a relational table."
        ),
        version="0.1.0",
        lifespan=lifespan,
        dependencies=[Depends(enforce_default_rate_limit)],
    )
    app.state.rate_limits = controller

    # Middleware (last registered runs first)
    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(keys_router, prefix="/v1")
    app.include_router(health_router)

    return app
