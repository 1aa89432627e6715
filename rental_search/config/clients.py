"""
rental_search.config.clients - external client construction

Factory for the Redis client backing the cache store. The client is created
once by the composition root (rental_search.engine.build_search_engine) and
passed down explicitly; nothing here keeps a module-level instance.
"""

from __future__ import annotations

import logging
from typing import Optional

import redis.asyncio as aioredis

from rental_search.config.settings import Settings, get_settings

logger = logging.getLogger("clients")


def create_redis_client(settings: Optional[Settings] = None) -> aioredis.Redis:
    """
    Build an asyncio Redis client from settings

    The connection is lazy: no I/O happens until the first command, so a
    store outage at boot only degrades caching instead of blocking startup.

    Args:
        settings: settings to read REDIS_URL/timeouts from (defaults to global)

    Returns:
        redis.asyncio.Redis: client returning raw bytes

    Example:
        >>> from rental_search.config import create_redis_client
        >>> client = create_redis_client()
        >>> await client.ping()
    """
    settings = settings or get_settings()
    timeout = float(settings.REDIS_SOCKET_TIMEOUT_S)
    client = aioredis.Redis.from_url(
        settings.REDIS_URL,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
        decode_responses=False,
    )
    logger.info(f"[clients] Redis client created (url={settings.REDIS_URL})")
    return client
