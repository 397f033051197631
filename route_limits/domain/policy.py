"""Rate limit policy model and route path normalisation."""

from __future__ import annotations

from typing import Any, Iterable, Literal, Mapping, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

DEFAULT_KEY_TYPES: tuple[str, ...] = ("ip",)

# Storage path used by the global (default) policy
DEFAULT_PATH = "_default_"

_PATH_UNSAFE_CHARS = ("/", "\\", "{", "}", ":", "?")


class Policy(BaseModel):
    """A single rate limit rule.

    Attributes:
        limit: Maximum number of requests allowed per window.
        within: Window length in seconds.
        by: Ordered key types; the first one with a value identifies the caller.
        exclude_tests: Skip the policy for automated test traffic. ``None``
            inherits the engine-wide setting.
        hook: Lifecycle event running the default policy (``request`` or ``route``).
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    limit: int | None = None
    within: int | None = None
    by: list[str] = Field(default_factory=lambda: list(DEFAULT_KEY_TYPES))
    exclude_tests: bool | None = Field(
        None,
        validation_alias=AliasChoices("exclude_tests", "excludeTests"),
    )
    hook: Literal["request", "route"] | None = None

    @field_validator("by", mode="before")
    @classmethod
    def _normalize_by(cls, value: Any) -> list[str]:
        if isinstance(value, str):
            return [value]
        if (
            isinstance(value, (list, tuple))
            and value
            and all(isinstance(item, str) for item in value)
        ):
            return list(value)
        return list(DEFAULT_KEY_TYPES)

    @property
    def is_enforceable(self) -> bool:
        """True when both limit and window are positive."""
        return bool(self.limit and self.limit > 0 and self.within and self.within > 0)


PolicyLike = Union[Policy, Mapping[str, Any]]


def coerce_policies(limits: PolicyLike | Iterable[PolicyLike] | None) -> list[Policy]:
    """Normalise route metadata into a list of policies.

    Accepts a single policy (model or mapping) or a sequence of them.
    """

    if limits is None:
        return []
    if isinstance(limits, (Policy, Mapping)):
        limits = [limits]
    return [
        item if isinstance(item, Policy) else Policy.model_validate(item)
        for item in limits
    ]


def sanitize_path(path: str) -> str:
    """Turn a route path template into a storage-safe identifier.

    Examples:
        >>> sanitize_path("/items/{item_id}")
        '_items__item_id_'
    """

    for char in _PATH_UNSAFE_CHARS:
        path = path.replace(char, "_")
    return path
