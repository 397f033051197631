from __future__ import annotations

from fastapi import APIRouter, Request

from route_limits.core.rate_limit import get_rate_limit_controller, rate_limited

router = APIRouter(prefix="/rate-limit", tags=["Rate Limits"])


@router.get(
    "/keys",
    dependencies=[rate_limited({"limit": 30, "within": 60})],
)
def resolved_keys(request: Request) -> dict:
    """Return the key types resolved for the caller.

    Lets clients and operators see which identities (``ip``, ``api_key``,
    application-provided ones) their requests are counted under.

    Returns:
        dict: ``{"enabled": bool, "keys": [key types with a value]}``.
    """

    controller = get_rate_limit_controller(request)
    if controller is None:
        return {"enabled": False, "keys": []}

    keys = controller.resolve_keys(request)
    return {"enabled": True, "keys": sorted(name for name, value in keys.items() if value)}
