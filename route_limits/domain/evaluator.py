"""Fixed-window rate limit evaluation.

The evaluator is built once at startup with its store, engine-wide defaults
and execution context, then asked per request whether a policy allows the
request. It counts the request when allowed and leaves the stored counter
untouched when denied.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Sequence

from route_limits.adapters.counter_store.base import AbstractCounterStore, CounterKey
from route_limits.core.context import ExecutionContext
from route_limits.core.errors import RateLimitKeyAppError
from route_limits.domain.policy import Policy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Remaining requests in the current window (0 when blocked).
        reset_at: UNIX epoch seconds when the current window resets.
        retry_after_seconds: Suggested wait time in seconds when blocked.
        key_type: Key dimension the request was counted under.
        skipped: True when the policy did not apply and nothing was counted.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None
    key_type: str | None = None
    skipped: bool = False


def select_key_type(by: Sequence[str], keys: Mapping[str, str]) -> str:
    """Pick the first key type in ``by`` that has a value.

    Raises:
        RateLimitKeyAppError: If none of the key types resolves.
    """

    for key_type in by:
        if keys.get(key_type):
            return key_type

    raise RateLimitKeyAppError(
        code="rate_limit_key_unresolved",
        message="Unable to identify the client for rate limiting",
        details={"key_types": list(by)},
    )


class RateLimitEvaluator:
    """Apply fixed-window policies against a counter store."""

    def __init__(
        self,
        store: AbstractCounterStore,
        *,
        exclude_tests: bool = False,
        context: ExecutionContext | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the evaluator.

        Args:
            store: Counter storage backend.
            exclude_tests: Engine-wide default for policies that do not set it.
            context: Execution context; a served, non-test context when omitted.
            clock: Time source function returning UNIX time in seconds.
        """
        self._store = store
        self._exclude_tests = exclude_tests
        self._context = context or ExecutionContext()
        self._clock = clock

    @property
    def store(self) -> AbstractCounterStore:
        return self._store

    def _skipped(self, policy: Policy) -> RateLimitResult:
        return RateLimitResult(
            allowed=True,
            limit=policy.limit or 0,
            remaining=policy.limit or 0,
            reset_at=0,
            retry_after_seconds=None,
            skipped=True,
        )

    def check_and_increment(
        self,
        policy: Policy,
        keys: Mapping[str, str],
        route_path: str,
    ) -> RateLimitResult:
        """Count the current request against ``policy``.

        Args:
            policy: Policy to apply.
            keys: Key type to value mapping for the current request.
            route_path: Sanitized route identifier (``_default_`` for the global policy).

        Returns:
            RateLimitResult describing whether the request may proceed.

        Raises:
            RateLimitKeyAppError: If no key type of the policy resolves.
            StorageAppError: If the store cannot be used.
        """
        exclude_tests = (
            policy.exclude_tests if policy.exclude_tests is not None else self._exclude_tests
        )
        if not policy.is_enforceable or (self._context.is_test and exclude_tests):
            return self._skipped(policy)

        limit = int(policy.limit)  # type: ignore[arg-type]
        within = int(policy.within)  # type: ignore[arg-type]

        key_type = select_key_type(policy.by, keys)

        if not self._store.is_available():
            logger.debug(
                "rate_limit.skipped_store_unavailable",
                extra={"key_type": key_type, "route": route_path},
            )
            return self._skipped(policy)

        now = int(self._clock())
        key = CounterKey(key_type=key_type, key_value=keys[key_type], path=route_path)

        record = self._store.find_active(key, now)
        if record is None:
            record = self._store.open_window(key, now + within, now)

        current = record.current + 1

        if current > limit:
            return RateLimitResult(
                allowed=False,
                limit=limit,
                remaining=0,
                reset_at=record.expires,
                retry_after_seconds=max(0, record.expires - now),
                key_type=key_type,
            )

        record.current = current
        self._store.save(record)

        return RateLimitResult(
            allowed=True,
            limit=limit,
            remaining=max(0, limit - current),
            reset_at=record.expires,
            retry_after_seconds=None,
            key_type=key_type,
        )
