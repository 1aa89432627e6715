from __future__ import annotations

"""
Search orchestrator

Roles:
- results cache in front of PropertyRepository.search (content-addressed key)
- best-effort analytics on every cache miss (search counter + sink event),
  scheduled as a background task and never awaited by the request
- featured-properties cache partitioned by location bucket
- bulk invalidation helpers for upstream writes

Failure policy:
- repository errors and timeouts surface as SearchUnavailable
- empty result sets are returned but never cached
- analytics and invalidation failures are logged and dropped
"""

import asyncio
import logging
import time
from typing import Any, List, Optional, Set

from rental_search.cache.keys import (
    featured_key,
    location_bucket,
    search_count_key,
    search_results_key,
)
from rental_search.cache.store import CacheStore
from rental_search.config import Settings, get_settings
from rental_search.errors import CacheUnavailable, SearchUnavailable
from rental_search.repository import AnalyticsSink, NullAnalyticsSink, PropertyRepository
from rental_search.schemas import Location, Property, SearchQuery, SearchResults
from rental_search.utils.logger import safe_log_event
from rental_search.utils.metrics import search_failures, search_latency
from rental_search.utils.text import normalize_query

logger = logging.getLogger("search")

DEFAULT_FEATURED_LIMIT = 6


class SearchOrchestrator:
    def __init__(
        self,
        store: CacheStore,
        repository: PropertyRepository,
        analytics: Optional[AnalyticsSink] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.store = store
        self.repository = repository
        self.analytics = analytics or NullAnalyticsSink()
        self.settings = settings or get_settings()
        # strong refs so pending analytics tasks are not garbage collected
        self._tasks: Set[asyncio.Task] = set()

    def results_key(self, query: SearchQuery) -> str:
        return search_results_key(
            query, legacy=bool(self.settings.SEARCH_KEY_LEGACY_FORMAT)
        )

    # ===== search =====

    async def search(self, query: SearchQuery) -> SearchResults:
        """
        Cached property search.

        Args:
            query: validated SearchQuery

        Returns:
            SearchResults: cached or fresh results

        Raises:
            SearchUnavailable: the repository failed
        """
        start = time.perf_counter()
        key = self.results_key(query)

        cached = await self.store.get_json(key)
        if cached is not None:
            try:
                results = SearchResults.model_validate(cached)
            except ValueError as e:
                logger.warning(f"[search] discarding malformed cache entry key={key}: {e}")
            else:
                took = time.perf_counter() - start
                search_latency.labels(cached="true").observe(took)
                safe_log_event(
                    "search.cache_hit", {"key": key, "took_ms": took * 1000.0}, logger=logger
                )
                return results

        if query.text:
            self._track(query.text, query.location)

        try:
            results = await self.repository.search(query)
            if not isinstance(results, SearchResults):
                results = SearchResults.model_validate(results)
        except Exception as e:
            search_failures.labels(reason="repository").inc()
            logger.error(f"[search] repository failed key={key}: {e}")
            safe_log_event(
                "search.failed",
                {"key": key, "error": repr(e)},
                level=logging.ERROR,
                logger=logger,
            )
            raise SearchUnavailable() from e

        # no negative caching
        if results.properties:
            await self.store.set_json(
                key,
                results.model_dump(mode="json"),
                int(self.settings.SEARCH_RESULTS_TTL_SEC),
            )

        took = time.perf_counter() - start
        search_latency.labels(cached="false").observe(took)
        safe_log_event(
            "search.cache_miss",
            {
                "key": key,
                "count": len(results.properties),
                "cached": bool(results.properties),
                "took_ms": took * 1000.0,
            },
            logger=logger,
        )
        return results

    async def search_with_timeout(
        self, query: SearchQuery, timeout: Optional[float] = None
    ) -> SearchResults:
        """search() bounded by SEARCH_TIMEOUT_S; a timeout is a real failure."""
        limit = float(timeout if timeout is not None else self.settings.SEARCH_TIMEOUT_S)
        try:
            return await asyncio.wait_for(self.search(query), timeout=limit)
        except asyncio.TimeoutError as e:
            search_failures.labels(reason="timeout").inc()
            logger.error(f"[search] timed out after {limit}s")
            raise SearchUnavailable() from e

    # ===== featured =====

    async def featured_properties(
        self,
        limit: int = DEFAULT_FEATURED_LIMIT,
        location: Optional[Location] = None,
    ) -> List[Property]:
        """
        Featured listings, cached per (limit, location bucket).

        Raises:
            SearchUnavailable: repository failure or FEATURED_TIMEOUT_S exceeded
        """
        key = featured_key(limit, location)
        cached = await self.store.get_json(key)
        if isinstance(cached, list) and cached:
            try:
                return [Property.model_validate(p) for p in cached]
            except ValueError as e:
                logger.warning(f"[featured] discarding malformed cache entry key={key}: {e}")

        try:
            found = await asyncio.wait_for(
                self.repository.featured_properties(int(limit), location),
                timeout=float(self.settings.FEATURED_TIMEOUT_S),
            )
            properties = [
                p if isinstance(p, Property) else Property.model_validate(p) for p in found or []
            ]
        except asyncio.TimeoutError as e:
            search_failures.labels(reason="timeout").inc()
            logger.error("[featured] repository timed out")
            raise SearchUnavailable() from e
        except Exception as e:
            search_failures.labels(reason="repository").inc()
            logger.error(f"[featured] repository failed: {e}")
            raise SearchUnavailable() from e

        if properties:
            await self.store.set_json(
                key,
                [p.model_dump(mode="json") for p in properties],
                int(self.settings.FEATURED_TTL_SEC),
            )
        return properties

    # ===== invalidation =====

    async def _invalidate(self, pattern: str) -> int:
        try:
            return await self.store.scan_and_delete(pattern)
        except CacheUnavailable as e:
            logger.warning(f"[search] invalidation skipped pattern={pattern}: {e}")
            return 0

    async def invalidate_featured(self) -> int:
        """Drop every featured:* entry (after listing writes)."""
        return await self._invalidate("featured:*")

    async def invalidate_search_results(self) -> int:
        return await self._invalidate("search:*")

    # ===== analytics =====

    def _track(self, text: str, location: Optional[Location]) -> None:
        task = asyncio.create_task(self._record_search(text, location))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _record_search(self, text: str, location: Optional[Location]) -> None:
        key = search_count_key(text)
        try:
            await self.store.increment(key)
            await self.store.expire(key, int(self.settings.SEARCH_COUNT_TTL_SEC))
        except CacheUnavailable as e:
            logger.warning(f"[analytics] search counter dropped: {e}")

        bucket = location_bucket(location) if location is not None else None
        try:
            await self.analytics.record_search(text, location is not None, bucket)
        except Exception as e:
            safe_log_event(
                "analytics.failed",
                {"error": repr(e), "query": text},
                level=logging.WARNING,
                logger=logger,
            )

    async def search_count(self, text: str) -> int:
        """Times a query was searched (cache misses only) within the counter TTL."""
        raw: Any = await self.store.get(search_count_key(normalize_query(text)))
        if raw is None:
            return 0
        try:
            return int(raw)
        except ValueError:
            return 0

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for outstanding analytics tasks (shutdown, tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


__all__ = ["SearchOrchestrator", "DEFAULT_FEATURED_LIMIT"]
