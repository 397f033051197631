"""Rate limiting lifecycle wiring for FastAPI.

This module connects the evaluator to the HTTP layer:
- startup and per-request sweep of expired counters
- the default (global) policy, run once per request
- per-route policies, attached with ``dependencies=[rate_limited(...)]``

The controller is built once at startup from explicit settings and stored on
``app.state.rate_limits``. Without a configured driver no controller exists
and every hook below is a no-op.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Mapping

from fastapi import Depends, Request
from sqlalchemy import Engine

from route_limits.adapters.counter_store.base import AbstractCounterStore
from route_limits.adapters.counter_store.factory import create_counter_store
from route_limits.core.config import RateLimitSettings, Settings, settings
from route_limits.core.context import ExecutionContext, build_execution_context
from route_limits.core.errors import RateLimitExceededAppError
from route_limits.core.keys import KeyResolver, hash_key_value
from route_limits.domain.evaluator import RateLimitEvaluator, RateLimitResult
from route_limits.domain.policy import (
    DEFAULT_PATH,
    Policy,
    PolicyLike,
    coerce_policies,
    sanitize_path,
)

logger = logging.getLogger(__name__)

_DEFAULT_CHECKED_FLAG = "rate_limit_default_checked"


class RateLimitController:
    """Run cleanup, the default policy and route policies for requests."""

    def __init__(
        self,
        rate_settings: RateLimitSettings,
        evaluator: RateLimitEvaluator,
        *,
        key_resolver: KeyResolver | None = None,
        context: ExecutionContext | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = rate_settings
        self._evaluator = evaluator
        self._key_resolver = key_resolver or KeyResolver()
        self._context = context or ExecutionContext()
        self._clock = clock

    @property
    def settings(self) -> RateLimitSettings:
        return self._settings

    @property
    def store(self) -> AbstractCounterStore:
        return self._evaluator.store

    @property
    def key_resolver(self) -> KeyResolver:
        return self._key_resolver

    @property
    def context(self) -> ExecutionContext:
        return self._context

    @property
    def default_policy(self) -> Policy | None:
        return self._settings.default

    @property
    def default_hook(self) -> str:
        """Lifecycle event running the default policy (``request`` or ``route``)."""
        policy = self._settings.default
        return (policy.hook if policy and policy.hook else None) or "request"

    def cleanup(self) -> int:
        """Remove expired counters.

        Returns:
            Number of counters removed.
        """
        removed = self.store.delete_expired(int(self._clock()))
        if removed:
            logger.info(
                "rate_limit.cleanup",
                extra={"driver": self._settings.driver, "removed": removed},
            )
        return removed

    def resolve_keys(self, request: Request) -> dict[str, str]:
        return self._key_resolver.resolve(request, self._context)

    def enforce(self, policy: Policy, keys: Mapping[str, str], route_path: str) -> RateLimitResult:
        """Evaluate one policy and raise when the request is over the limit.

        Raises:
            RateLimitExceededAppError: When the policy denies the request.
            RateLimitKeyAppError: When no key type of the policy resolves.
            StorageAppError: When counter storage is unusable.
        """
        result = self._evaluator.check_and_increment(policy, keys, route_path)
        if result.skipped:
            return result

        key_hash = hash_key_value(keys[result.key_type]) if result.key_type else None
        log_fields = {
            "key_type": result.key_type,
            "key_hash": key_hash,
            "route": route_path,
            "limit": result.limit,
            "remaining": result.remaining,
            "window_s": policy.within,
        }

        if result.allowed:
            logger.info("rate_limit.allowed", extra=log_fields)
            return result

        logger.warning(
            "rate_limit.exceeded",
            extra={**log_fields, "retry_after_s": result.retry_after_seconds},
        )
        raise RateLimitExceededAppError(
            code="rate_limit_exceeded",
            message=f"Rate limit exceeded. Reset at {result.reset_at}",
            details={
                "limit": result.limit,
                "remaining": result.remaining,
                "reset_at": result.reset_at,
                "retry_after": result.retry_after_seconds or 0,
            },
        )

    def run_default(self, request: Request) -> RateLimitResult | None:
        """Apply the global policy under the ``_default_`` path."""
        if not self._context.is_served or self.default_policy is None:
            return None
        return self.enforce(self.default_policy, self.resolve_keys(request), DEFAULT_PATH)

    def run_route(
        self,
        request: Request,
        policies: Iterable[Policy],
        route_path: str,
    ) -> list[RateLimitResult]:
        """Apply each route policy against the sanitized route path."""
        policies = list(policies)
        if not self._context.is_served or not policies:
            return []

        keys = self.resolve_keys(request)
        return [self.enforce(policy, keys, route_path) for policy in policies]


def build_rate_limit_controller(
    app_settings: Settings | None = None,
    *,
    context: ExecutionContext | None = None,
    engine: Engine | None = None,
    key_resolver: KeyResolver | None = None,
    clock: Callable[[], float] = time.time,
) -> RateLimitController | None:
    """Build the controller for the configured driver.

    Args:
        app_settings: Settings container; the global settings when omitted.
        context: Execution context; derived from settings when omitted.
        engine: Optional SQLAlchemy engine for the db driver.
        key_resolver: Optional resolver with application key providers.
        clock: Time source function returning UNIX time in seconds.

    Returns:
        The controller, or None when no driver is configured.

    Raises:
        ValidationAppError: If the driver configuration is incomplete.
    """

    cfg = app_settings or settings
    rate_settings = cfg.rate_limits

    if not rate_settings.driver:
        logger.info("rate_limit.disabled")
        return None

    context = context or build_execution_context(cfg)
    store = create_counter_store(rate_settings, context, engine=engine)
    evaluator = RateLimitEvaluator(
        store,
        exclude_tests=rate_settings.exclude_tests,
        context=context,
        clock=clock,
    )
    logger.info(
        "rate_limit.configured",
        extra={
            "driver": rate_settings.driver,
            "default_policy": rate_settings.default is not None,
            "run_mode": context.run_mode,
        },
    )
    return RateLimitController(
        rate_settings,
        evaluator,
        key_resolver=key_resolver,
        context=context,
        clock=clock,
    )


def get_rate_limit_controller(request: Request) -> RateLimitController | None:
    return getattr(request.app.state, "rate_limits", None)


def _route_path(request: Request) -> str:
    route = request.scope.get("route")
    return sanitize_path(getattr(route, "path", None) or request.url.path)


def enforce_default_rate_limit(request: Request) -> None:
    """FastAPI dependency running the default policy on route match.

    Only active when the default policy sets ``hook: "route"``; the request
    middleware handles the ``request`` hook. Declared sync so FastAPI runs the
    counter I/O in its threadpool.
    """

    controller = get_rate_limit_controller(request)
    if controller is None or controller.default_hook != "route":
        return
    if getattr(request.state, _DEFAULT_CHECKED_FLAG, False):
        return
    setattr(request.state, _DEFAULT_CHECKED_FLAG, True)
    controller.run_default(request)


def rate_limited(limits: PolicyLike | Iterable[PolicyLike]):
    """Attach one or more policies to a route.

    Example:
        >>> @router.get("/search", dependencies=[rate_limited({"limit": 5, "within": 60})])
        ... def search(): ...

    Args:
        limits: A policy (model or mapping) or a list of them.

    Returns:
        A ``Depends`` marker enforcing the policies on the matched route.
    """

    policies = coerce_policies(limits)

    def enforce_route_rate_limits(request: Request) -> None:
        controller = get_rate_limit_controller(request)
        if controller is None:
            return
        controller.run_route(request, policies, _route_path(request))

    return Depends(enforce_route_rate_limits)
