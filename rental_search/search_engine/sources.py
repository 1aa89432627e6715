from __future__ import annotations

"""
Suggestion sources

Roles:
- four independent producers: location, property attribute, popular, recent
- collect() fans them out concurrently in a fixed order; a source that raises
  or misses its deadline contributes nothing instead of failing the call
- PopularSearches: TTL-backed popular query list shared through the cache
  store, with a short process-local reuse window on top

Fan-out order (location, property, popular, recent) is also the tie-break
order used by the ranking step.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Tuple

from rental_search.cache.keys import popular_searches_key
from rental_search.cache.store import CacheStore
from rental_search.config import Settings, get_settings
from rental_search.errors import SuggestionSourceFailure
from rental_search.repository import PropertyRepository
from rental_search.schemas import (
    Location,
    Suggestion,
    SuggestionMetadata,
    SuggestionType,
)
from rental_search.utils.logger import safe_log_event
from rental_search.utils.metrics import suggestion_source_failures

logger = logging.getLogger("suggestions")

PROPERTY_TYPES = ("apartment", "house", "room", "commercial")
PROPERTY_FEATURES = ("parking", "furnished", "pet-friendly", "pool", "gym", "security")
PROPERTY_TYPE_WEIGHT = 0.8
PROPERTY_FEATURE_WEIGHT = 0.6

DEFAULT_POPULAR_SEARCHES = [
    "apartment tegucigalpa",
    "house colonia palmira",
    "furnished apartment",
    "2 bedroom apartment",
    "parking included",
    "pet friendly",
    "lomas del guijarro",
    "centro tegucigalpa",
]

SOURCE_ORDER = ("location", "property", "popular", "recent")


def _matches(query: str, candidate: str) -> bool:
    """Substring match in either direction."""
    c = candidate.casefold()
    return c in query or query in c


def _title(word: str) -> str:
    return word[:1].upper() + word[1:]


class PopularSearches:
    """
    Popular query list

    Read path:
    1) process-local copy, if younger than POPULAR_REFRESH_SEC
    2) shared cache entry popular:searches (POPULAR_SEARCHES_TTL_SEC)
    3) PropertyRepository.popular_searches(), else the built-in list;
       the result is written back to the cache

    Concurrent refreshes may race; they pull the same list, so the last
    write wins harmlessly.
    """

    def __init__(
        self,
        store: CacheStore,
        repository: Optional[PropertyRepository] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.repository = repository
        self.settings = settings or get_settings()
        self._clock = clock
        self._local: List[str] = []
        self._loaded_at: Optional[float] = None
        self.last_refresh: Optional[datetime] = None

    def _fresh(self) -> bool:
        if self._loaded_at is None:
            return False
        return (self._clock() - self._loaded_at) < float(self.settings.POPULAR_REFRESH_SEC)

    async def _load_upstream(self) -> List[str]:
        if self.repository is None:
            return list(DEFAULT_POPULAR_SEARCHES)
        try:
            popular = await self.repository.popular_searches()
        except Exception as e:
            logger.warning(f"[popular] repository lookup failed, using defaults: {e}")
            return list(DEFAULT_POPULAR_SEARCHES)
        cleaned = [p.strip() for p in (popular or []) if isinstance(p, str) and p.strip()]
        return cleaned or list(DEFAULT_POPULAR_SEARCHES)

    async def refresh(self) -> List[str]:
        """Reload from the shared cache, falling back to the upstream list."""
        key = popular_searches_key()
        cached = await self.store.get_json(key)
        if isinstance(cached, list) and cached:
            popular = [str(p) for p in cached]
        else:
            popular = await self._load_upstream()
            await self.store.set_json(
                key, popular, int(self.settings.POPULAR_SEARCHES_TTL_SEC)
            )
        self._local = popular
        self._loaded_at = self._clock()
        self.last_refresh = datetime.now(timezone.utc)
        logger.debug(f"[popular] refreshed count={len(popular)}")
        return popular

    async def get(self) -> List[str]:
        if self._fresh():
            return self._local
        return await self.refresh()

    async def top(self, limit: int = 10) -> List[str]:
        return (await self.get())[: max(0, int(limit))]

    @property
    def size(self) -> int:
        return len(self._local)


class SuggestionSources:
    def __init__(
        self,
        repository: PropertyRepository,
        popular: PopularSearches,
        settings: Optional[Settings] = None,
    ) -> None:
        self.repository = repository
        self.popular = popular
        self.settings = settings or get_settings()

    # ===== producers =====

    async def location_suggestions(
        self, query: str, location: Optional[Location] = None
    ) -> List[Suggestion]:
        """Neighborhood matches from the repository, re-weighted."""
        weight = float(self.settings.LOCATION_SUGGESTION_WEIGHT)
        found = await self.repository.suggest_locations(
            query, location, int(self.settings.LOCATION_SOURCE_LIMIT)
        )
        out: List[Suggestion] = []
        for s in found or []:
            if s.type != SuggestionType.LOCATION:
                continue
            meta = s.metadata.model_copy(update={"weight": weight})
            out.append(s.model_copy(update={"metadata": meta}))
        return out

    async def property_suggestions(
        self, query: str, location: Optional[Location] = None
    ) -> List[Suggestion]:
        out: List[Suggestion] = []
        for t in PROPERTY_TYPES:
            if _matches(query, t):
                out.append(
                    Suggestion(
                        id=f"property-type-{t}",
                        text=f"{_title(t)} rentals",
                        type=SuggestionType.PROPERTY,
                        icon="home",
                        metadata=SuggestionMetadata(weight=PROPERTY_TYPE_WEIGHT),
                    )
                )
        for f in PROPERTY_FEATURES:
            if _matches(query, f):
                out.append(
                    Suggestion(
                        id=f"feature-{f}",
                        text=f"{_title(f)} properties",
                        type=SuggestionType.PROPERTY,
                        icon="star",
                        metadata=SuggestionMetadata(weight=PROPERTY_FEATURE_WEIGHT),
                    )
                )
        return out

    async def popular_suggestions(self, query: str) -> List[Suggestion]:
        popular = await self.popular.get()
        matching = [p for p in popular if _matches(query, p)]
        matching = matching[: int(self.settings.POPULAR_SOURCE_LIMIT)]
        weight = float(self.settings.POPULAR_SUGGESTION_WEIGHT)
        return [
            Suggestion(
                id=f"popular-{p}",
                text=p,
                type=SuggestionType.PROPERTY,
                icon="trending-up",
                metadata=SuggestionMetadata(
                    popularity_score=100 - i * 10, weight=weight
                ),
            )
            for i, p in enumerate(matching)
        ]

    async def recent_suggestions(self, query: str) -> List[Suggestion]:
        # recency lives on the client
        return []

    # ===== fan-out =====

    @property
    def source_timeout(self) -> float:
        """Per-source deadline, inside the overall fan-out deadline."""
        return self.settings.suggestions_fanout_deadline * 0.9

    async def _guarded(
        self, name: str, produce: Callable[[], Awaitable[List[Suggestion]]]
    ) -> Optional[List[Suggestion]]:
        """Await one source; None when it raised or missed its deadline."""
        try:
            return list(await asyncio.wait_for(produce(), timeout=self.source_timeout) or [])
        except asyncio.TimeoutError as e:
            failure = SuggestionSourceFailure(name, e)
        except Exception as e:
            failure = SuggestionSourceFailure(name, e)
        suggestion_source_failures.labels(source=name).inc()
        logger.warning(f"[suggestions] {failure}")
        safe_log_event(
            "suggestions.source_failed",
            {"source": name, "error": repr(failure.cause)},
            level=logging.WARNING,
            logger=logger,
        )
        return None

    async def collect_with_failures(
        self, query: str, location: Optional[Location] = None
    ) -> Tuple[List[Suggestion], List[str]]:
        """
        Run every source concurrently and concatenate in SOURCE_ORDER.

        Args:
            query: normalized query (case-folded, trimmed)
            location: caller location, if any

        Returns:
            (candidates, failed): unranked candidates, plus the names of the
            sources that raised or timed out and contributed nothing
        """
        producers = (
            ("location", lambda: self.location_suggestions(query, location)),
            ("property", lambda: self.property_suggestions(query, location)),
            ("popular", lambda: self.popular_suggestions(query)),
            ("recent", lambda: self.recent_suggestions(query)),
        )
        results = await asyncio.gather(
            *(self._guarded(name, produce) for name, produce in producers)
        )
        merged: List[Suggestion] = []
        failed: List[str] = []
        for (name, _), chunk in zip(producers, results):
            if chunk is None:
                failed.append(name)
                continue
            merged.extend(chunk)
        return merged, failed

    async def collect(
        self, query: str, location: Optional[Location] = None
    ) -> List[Suggestion]:
        candidates, _ = await self.collect_with_failures(query, location)
        return candidates


__all__ = [
    "PROPERTY_TYPES",
    "PROPERTY_FEATURES",
    "DEFAULT_POPULAR_SEARCHES",
    "SOURCE_ORDER",
    "PopularSearches",
    "SuggestionSources",
]
