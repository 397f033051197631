"""Counter store interfaces.

The rate limit evaluator depends on this abstraction (not the concrete
implementation) so counters can live in files, a relational table, or any
other store offering find/open/save/sweep over counter keys.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class CounterKey:
    """Identity of a counter: which key dimension, whose value, which route."""

    key_type: str
    key_value: str
    path: str


@dataclass
class CounterRecord:
    """One fixed-window counter.

    Attributes:
        key: Counter identity.
        expires: UNIX epoch seconds when the window closes.
        current: Requests counted so far in the window.
        ref: Backend handle (file path, row id); None until persisted.
    """

    key: CounterKey
    expires: int
    current: int = 0
    ref: Any = None

    def is_active(self, now: int) -> bool:
        return self.expires > now


class AbstractCounterStore(ABC):
    """Interface for counter storage backends."""

    def is_available(self) -> bool:
        """Whether the store can currently hold counters.

        Backends whose schema may be missing return False instead of raising,
        in which case callers run without limiting.
        """
        return True

    @abstractmethod
    def find_active(self, key: CounterKey, now: int) -> CounterRecord | None:
        """Return the active counter for ``key``, ignoring expired ones."""
        raise NotImplementedError

    @abstractmethod
    def open_window(self, key: CounterKey, expires: int, now: int) -> CounterRecord:
        """Start a new window for ``key`` with ``current = 0``.

        Backends may defer persistence until :meth:`save`.
        """
        raise NotImplementedError

    @abstractmethod
    def save(self, record: CounterRecord) -> None:
        """Persist ``record.current``."""
        raise NotImplementedError

    @abstractmethod
    def delete_expired(self, now: int) -> int:
        """Remove counters whose window closed at or before ``now``.

        Returns:
            Number of counters removed.
        """
        raise NotImplementedError
