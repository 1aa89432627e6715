"""
rental_search.cache.store - namespaced Redis cache store

Roles:
- get/set with per-entry TTL (no permanent entries)
- atomic increment + expire primitives for counters and rate limiting
- pattern invalidation through a cursor-based SCAN, never KEYS

Failure policy:
- get degrades to a miss, set/delete are dropped; caching is an optimization
- increment/expire/ping/scan_and_delete raise CacheUnavailable so each caller
  decides (the rate limiter fails open, counters are dropped, health reports)
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from typing import Any, Optional, Union

from redis.exceptions import RedisError

from rental_search.config import Settings, get_settings
from rental_search.errors import CacheUnavailable, InvalidCachePattern
from rental_search.utils.logger import safe_log_event
from rental_search.utils.metrics import cache_invalidated_keys, cache_operations

logger = logging.getLogger("cache")

# only [A-Za-z0-9:_-] plus a single trailing '*'
_PATTERN_RE = re.compile(r"^[A-Za-z0-9:_-]+\*?$")

_STORE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


def validate_pattern(pattern: str) -> str:
    """Return the pattern unchanged or raise InvalidCachePattern."""
    if not isinstance(pattern, str) or not _PATTERN_RE.match(pattern):
        raise InvalidCachePattern(str(pattern))
    return pattern


class CacheStore:
    """
    Key-value store over an asyncio Redis client.

    Every key is prefixed with settings.CACHE_KEY_PREFIX so several
    deployments can share one Redis without clobbering each other.
    """

    def __init__(self, client: Any, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        self._client = client
        self._prefix = self.settings.CACHE_KEY_PREFIX or ""
        self._scan_count = max(1, int(self.settings.CACHE_SCAN_COUNT))
        self._max_value_bytes = int(self.settings.CACHE_MAX_VALUE_BYTES)

    def _k(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _degraded(self, op: str, key: str, err: BaseException) -> None:
        cache_operations.labels(op=op, result="error").inc()
        logger.warning(f"[cache] {op} failed key={key}: {err}")
        safe_log_event(
            "cache.degraded",
            {"op": op, "key": key, "error": str(err)},
            level=logging.WARNING,
            logger=logger,
        )

    # ===== basic get/set =====

    async def get(self, key: str) -> Optional[bytes]:
        """Return the stored bytes, or None on miss or store failure."""
        try:
            raw = await self._client.get(self._k(key))
        except _STORE_ERRORS as e:
            self._degraded("get", key, e)
            return None
        if raw is None:
            cache_operations.labels(op="get", result="miss").inc()
            return None
        cache_operations.labels(op="get", result="hit").inc()
        if isinstance(raw, str):
            return raw.encode("utf-8")
        return raw

    async def set(self, key: str, value: Union[bytes, str], ttl_seconds: int) -> bool:
        """
        Overwrite key with value for ttl_seconds.

        Returns:
            bool: True when written. False when the value was too large or
            the store was unreachable (the write is dropped).

        Raises:
            ValueError: ttl_seconds is not positive
        """
        ttl = int(ttl_seconds)
        if ttl <= 0:
            raise ValueError("cache entries require a positive TTL")
        data = value.encode("utf-8") if isinstance(value, str) else value
        if len(data) > self._max_value_bytes:
            cache_operations.labels(op="set", result="skipped").inc()
            logger.warning(f"[cache] value too large, skipping key={key} size={len(data)}")
            return False
        try:
            await self._client.set(self._k(key), data, ex=ttl)
        except _STORE_ERRORS as e:
            self._degraded("set", key, e)
            return False
        cache_operations.labels(op="set", result="ok").inc()
        return True

    async def get_json(self, key: str) -> Optional[Any]:
        """get + JSON decode; undecodable payloads count as a miss."""
        raw = await self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"[cache] undecodable payload key={key}")
            return None

    async def set_json(self, key: str, value: Any, ttl_seconds: int) -> bool:
        payload = json.dumps(value, ensure_ascii=False, separators=(",", ":"))
        return await self.set(key, payload, ttl_seconds)

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(self._k(key))
        except _STORE_ERRORS as e:
            self._degraded("delete", key, e)

    # ===== counters =====

    async def increment(self, key: str) -> int:
        """
        Atomic INCR.

        When the result is 1 the key is new and carries no TTL yet; the caller
        must follow up with expire() to start the window.

        Raises:
            CacheUnavailable: store unreachable
        """
        try:
            value = await self._client.incr(self._k(key))
        except _STORE_ERRORS as e:
            self._degraded("incr", key, e)
            raise CacheUnavailable(f"increment failed for {key}") from e
        cache_operations.labels(op="incr", result="ok").inc()
        return int(value)

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        """
        Raises:
            CacheUnavailable: store unreachable
        """
        ttl = int(ttl_seconds)
        if ttl <= 0:
            raise ValueError("cache entries require a positive TTL")
        try:
            return bool(await self._client.expire(self._k(key), ttl))
        except _STORE_ERRORS as e:
            self._degraded("expire", key, e)
            raise CacheUnavailable(f"expire failed for {key}") from e

    async def ttl(self, key: str) -> int:
        """
        Remaining TTL in seconds; -1 for a key without expiry, -2 when missing.

        Raises:
            CacheUnavailable: store unreachable
        """
        try:
            return int(await self._client.ttl(self._k(key)))
        except _STORE_ERRORS as e:
            self._degraded("ttl", key, e)
            raise CacheUnavailable(f"ttl failed for {key}") from e

    # ===== bulk invalidation =====

    async def scan_and_delete(self, pattern: str) -> int:
        """
        Delete every key matching pattern.

        The pattern is validated before any store call. Deletion walks the
        keyspace with SCAN (COUNT=CACHE_SCAN_COUNT) and UNLINKs each batch,
        so large keyspaces never stall the store.

        Returns:
            int: number of keys removed

        Raises:
            InvalidCachePattern: pattern outside the allowed alphabet
            CacheUnavailable: store unreachable mid-scan
        """
        validate_pattern(pattern)
        match = self._k(pattern)
        deleted = 0
        cursor = 0
        try:
            while True:
                cursor, keys = await self._client.scan(
                    cursor=cursor, match=match, count=self._scan_count
                )
                if keys:
                    deleted += int(await self._client.unlink(*keys))
                if int(cursor) == 0:
                    break
        except _STORE_ERRORS as e:
            self._degraded("scan_and_delete", pattern, e)
            raise CacheUnavailable(f"invalidation failed for {pattern}") from e

        cache_invalidated_keys.labels(pattern=pattern).inc(deleted)
        safe_log_event(
            "cache.invalidated", {"pattern": pattern, "deleted": deleted}, logger=logger
        )
        return deleted

    async def invalidate(self, pattern: str) -> int:
        """Alias of scan_and_delete."""
        return await self.scan_and_delete(pattern)

    # ===== health / lifecycle =====

    async def ping(self) -> float:
        """
        Round-trip latency in milliseconds.

        Raises:
            CacheUnavailable: store unreachable
        """
        start = time.perf_counter()
        try:
            await self._client.ping()
        except _STORE_ERRORS as e:
            self._degraded("ping", "-", e)
            raise CacheUnavailable("ping failed") from e
        return (time.perf_counter() - start) * 1000.0

    async def close(self) -> None:
        closer = getattr(self._client, "aclose", None) or getattr(self._client, "close", None)
        if closer is None:
            return
        try:
            await closer()
        except _STORE_ERRORS as e:
            logger.warning(f"[cache] close failed: {e}")


__all__ = ["CacheStore", "validate_pattern"]
