from __future__ import annotations

"""
Autocomplete suggestions

Flow:
1) normalize (case-fold, trim); under 2 characters -> fixed defaults, no fan-out
2) suggestion cache keyed by normalized query + location bucket
3) source fan-out under the internal deadline -> rank/dedup -> cache the full
   list -> truncate to the caller limit
4) fan-out timeout, error, or every candidate lost to source failures
   -> literal-query fallback + defaults

get_suggestions never raises.
"""

import asyncio
import logging
import time
from typing import List, Optional

from pydantic import ValidationError

from rental_search.cache.keys import suggestions_key
from rental_search.cache.store import CacheStore
from rental_search.config import Settings, get_settings
from rental_search.schemas import Location, Suggestion
from rental_search.search_engine.ranking import RankingEngine
from rental_search.search_engine.sources import SuggestionSources
from rental_search.utils.logger import safe_log_event
from rental_search.utils.metrics import suggestion_latency
from rental_search.utils.text import normalize_query

logger = logging.getLogger("suggestions")

MIN_QUERY_CHARS = 2


class SuggestionService:
    def __init__(
        self,
        store: CacheStore,
        sources: SuggestionSources,
        ranking: Optional[RankingEngine] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.store = store
        self.sources = sources
        self.ranking = ranking or RankingEngine()
        self.settings = settings or get_settings()

    async def _cached(self, key: str) -> Optional[List[Suggestion]]:
        raw = await self.store.get_json(key)
        if not isinstance(raw, list):
            return None
        try:
            return [Suggestion.model_validate(item) for item in raw]
        except ValidationError as e:
            logger.warning(f"[suggestions] discarding malformed cache entry key={key}: {e}")
            return None

    def _fallback(
        self, query: str, location: Optional[Location], limit: int, reason: str
    ) -> List[Suggestion]:
        safe_log_event(
            "suggestions.fallback",
            {"reason": reason, "query": query},
            level=logging.WARNING,
            logger=logger,
        )
        return self.ranking.fallback_suggestions(query, location, limit)

    async def get_suggestions(
        self,
        query: str,
        location: Optional[Location] = None,
        limit: Optional[int] = None,
    ) -> List[Suggestion]:
        """
        Ranked, deduplicated suggestions for a partial query.

        Args:
            query: raw user input
            location: caller location, biases location entries and partitions the cache
            limit: max entries (defaults to MAX_SUGGESTIONS)

        Returns:
            List[Suggestion]: at most limit entries, unique by normalized text
        """
        limit = int(limit or self.settings.MAX_SUGGESTIONS)
        nq = normalize_query(query)
        start = time.perf_counter()

        if len(nq) < MIN_QUERY_CHARS:
            out = self.ranking.default_suggestions(location, limit)
            suggestion_latency.labels(path="default").observe(time.perf_counter() - start)
            return out

        key = suggestions_key(nq, location)
        cache_enabled = bool(self.settings.SUGGESTIONS_CACHE_ENABLED)
        if cache_enabled:
            cached = await self._cached(key)
            if cached is not None:
                suggestion_latency.labels(path="cache").observe(time.perf_counter() - start)
                return cached[:limit]

        deadline = self.settings.suggestions_fanout_deadline
        try:
            candidates, failed = await asyncio.wait_for(
                self.sources.collect_with_failures(nq, location), timeout=deadline
            )
        except asyncio.TimeoutError:
            out = self._fallback(nq, location, limit, "timeout")
            suggestion_latency.labels(path="fallback").observe(time.perf_counter() - start)
            return out
        except Exception as e:
            logger.error(f"[suggestions] fan-out failed: {e}")
            out = self._fallback(nq, location, limit, "error")
            suggestion_latency.labels(path="fallback").observe(time.perf_counter() - start)
            return out

        if not candidates and failed:
            out = self._fallback(nq, location, limit, "sources_failed")
            suggestion_latency.labels(path="fallback").observe(time.perf_counter() - start)
            return out

        # the full list is cached; callers get a prefix
        ranked = self.ranking.merge(candidates, nq, location, len(candidates))
        final = ranked[:limit]

        # partial results are served but not cached
        if cache_enabled and not failed:
            await self.store.set_json(
                key,
                [s.model_dump(mode="json") for s in ranked],
                int(self.settings.SUGGESTIONS_TTL_SEC),
            )

        took = time.perf_counter() - start
        suggestion_latency.labels(path="fanout").observe(took)
        safe_log_event(
            "suggestions.served",
            {"count": len(final), "path": "fanout", "query": nq, "took_ms": took * 1000.0},
            logger=logger,
        )
        return final


__all__ = ["SuggestionService", "MIN_QUERY_CHARS"]
