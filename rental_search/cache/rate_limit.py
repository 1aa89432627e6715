"""
rental_search.cache.rate_limit - fixed-window request admission

Each (scope, identity) pair owns one counter key. The first INCR in a window
sets the TTL, so the window starts at the first request and the key expiry
resets the count. Later requests re-arm the TTL if the key has none, so a
failed EXPIRE can never pin the counter. Bursts of up to 2x max_requests can
pass across a window boundary.

A store failure fails open: the limiter protects the service, it is not a
source of truth.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from rental_search.cache.keys import rate_limit_key
from rental_search.cache.store import CacheStore
from rental_search.config import Settings, get_settings
from rental_search.errors import CacheUnavailable
from rental_search.utils.logger import safe_log_event
from rental_search.utils.metrics import rate_limit_decisions

logger = logging.getLogger("rate_limit")


@dataclass(frozen=True)
class RateLimitScope:
    """Named limiter preset: identifier prefix + window budget."""

    name: str
    max_requests: int
    window_seconds: int

    @classmethod
    def presets(cls, settings: Optional[Settings] = None) -> Dict[str, "RateLimitScope"]:
        s = settings or get_settings()
        window = int(s.RATE_LIMIT_WINDOW_SEC)
        return {
            "public": cls("public", int(s.RATE_LIMIT_PUBLIC_MAX), window),
            "auth": cls("auth", int(s.RATE_LIMIT_AUTH_MAX), window),
            "auth_endpoint": cls("auth_endpoint", int(s.RATE_LIMIT_AUTH_ENDPOINT_MAX), window),
        }


class RateLimiter:
    def __init__(self, store: CacheStore, settings: Optional[Settings] = None) -> None:
        self.store = store
        self.settings = settings or get_settings()
        self.scopes = RateLimitScope.presets(self.settings)

    async def is_limited(
        self, identifier: str, max_requests: int, window_seconds: int
    ) -> bool:
        """
        Count one request against identifier.

        Args:
            identifier: counter identity, e.g. "public:<ip>"
            max_requests: requests admitted per window
            window_seconds: window length, set on the first request

        Returns:
            bool: True when this request exceeds the window budget
        """
        scope = identifier.split(":", 1)[0] if ":" in identifier else "custom"
        key = rate_limit_key(identifier)
        try:
            count = await self.store.increment(key)
            if count == 1 or await self.store.ttl(key) == -1:
                # -1: an earlier expire was lost after its INCR
                await self.store.expire(key, int(window_seconds))
        except CacheUnavailable as e:
            rate_limit_decisions.labels(scope=scope, decision="fail_open").inc()
            logger.warning(f"[rate_limit] store unavailable, failing open id={identifier}: {e}")
            return False

        if count > int(max_requests):
            rate_limit_decisions.labels(scope=scope, decision="limited").inc()
            safe_log_event(
                "rate_limit.exceeded",
                {
                    "identifier": identifier,
                    "count": count,
                    "max_requests": int(max_requests),
                    "window_seconds": int(window_seconds),
                },
                level=logging.WARNING,
                logger=logger,
            )
            return True

        rate_limit_decisions.labels(scope=scope, decision="allowed").inc()
        return False

    async def check(
        self, scope: str, identity: str, max_requests: int, window_seconds: int
    ) -> bool:
        """is_limited for the "<scope>:<identity>" counter."""
        return await self.is_limited(f"{scope}:{identity}", max_requests, window_seconds)

    async def check_scope(self, scope: str, identity: str) -> bool:
        """check() with a named preset (public, auth, auth_endpoint)."""
        preset = self.scopes.get(scope)
        if preset is None:
            raise KeyError(f"unknown rate limit scope: {scope}")
        return await self.check(
            preset.name, identity, preset.max_requests, preset.window_seconds
        )


__all__ = ["RateLimitScope", "RateLimiter"]
