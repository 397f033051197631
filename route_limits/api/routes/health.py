from __future__ import annotations

from fastapi import APIRouter, Request

from route_limits.core.rate_limit import get_rate_limit_controller

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Health check endpoint.

    Reports whether rate limiting is active and whether its storage is usable
    (a db driver whose table is not migrated yet reports ``unavailable``).
    """

    controller = get_rate_limit_controller(request)
    if controller is None:
        return {"status": "ok", "rate_limits": "disabled"}

    state = "enabled" if controller.store.is_available() else "unavailable"
    return {"status": "ok", "rate_limits": state, "driver": controller.settings.driver}
