"""Rate limit key resolution.

Builds the mapping of key type to value (``{"ip": "203.0.113.7", ...}``) that
policies select from. The ``ip`` key is always present; further key types are
contributed by providers registered on the resolver, e.g. an authenticated
user id supplied by the application.
"""

from __future__ import annotations

import hashlib
from typing import Callable, Iterable, Mapping

from fastapi import Request

from route_limits.core.context import ExecutionContext

KeyProvider = Callable[[Request, dict[str, str]], "Mapping[str, str] | None"]

# Used when a CLI invocation has no network peer
CLI_FALLBACK_IP = "127.0.0.1"

API_KEY_HEADER = "X-API-Key"


def hash_key_value(value: str) -> str:
    """Hash a key value so secrets never reach storage or logs."""
    return hashlib.sha256(value.encode()).hexdigest()[:16]


def client_ip(request: Request, context: ExecutionContext) -> str:
    """Return the transport-level client address.

    Args:
        request: Current request.
        context: Execution context; a CLI without a peer falls back to localhost.

    Returns:
        The client host, or an empty string when it cannot be determined.
    """

    host = request.client.host if request.client else ""
    if not host and context.is_cli:
        return CLI_FALLBACK_IP
    return host or ""


def api_key_provider(request: Request, keys: dict[str, str]) -> Mapping[str, str] | None:
    """Expose the hashed ``X-API-Key`` header as the ``api_key`` key type."""
    api_key = request.headers.get(API_KEY_HEADER)
    if not api_key:
        return None
    return {"api_key": hash_key_value(api_key)}


class KeyResolver:
    """Collect rate limit keys for a request from the built-in and registered providers."""

    def __init__(self, providers: Iterable[KeyProvider] | None = None) -> None:
        self._providers: list[KeyProvider] = (
            list(providers) if providers is not None else [api_key_provider]
        )

    def register(self, provider: KeyProvider) -> KeyProvider:
        """Add a key provider; usable as a decorator.

        Providers receive the request and a copy of the keys gathered so far,
        and return additional (or overriding) key values.
        """
        self._providers.append(provider)
        return provider

    def resolve(self, request: Request, context: ExecutionContext) -> dict[str, str]:
        keys = {"ip": client_ip(request, context)}
        for provider in self._providers:
            extra = provider(request, dict(keys))
            if not extra:
                continue
            keys.update({name: str(value) for name, value in extra.items() if value is not None})
        return keys
