"""
rental_search.engine - surfaced interface and composition root

build_search_engine wires every component once, at process start, and hands
back a SearchEngine. Nothing in the package keeps module-level instances;
routing layers receive the engine explicitly.

Surface:
- get_suggestions: never raises, always a structurally valid response
- search_properties: may raise SearchUnavailable / InvalidSearchQuery
- check_rate_limit: fixed-window admission, fails open
- health_check
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional

from rental_search.cache.rate_limit import RateLimiter
from rental_search.cache.store import CacheStore
from rental_search.config import Settings, create_redis_client, get_settings
from rental_search.errors import InvalidSearchQuery
from rental_search.repository import AnalyticsSink, PropertyRepository
from rental_search.schemas import (
    HealthReport,
    Location,
    Property,
    SearchQuery,
    SearchResults,
    SuggestionsResponse,
)
from rental_search.search_engine import (
    HealthReporter,
    PopularSearches,
    RankingEngine,
    SearchOrchestrator,
    SuggestionService,
    SuggestionSources,
)
from rental_search.search_engine.orchestrator import DEFAULT_FEATURED_LIMIT
from rental_search.utils.text import sanitize_search_query

logger = logging.getLogger("engine")

SUGGESTION_QUERY_MAX_CHARS = 100
SEARCH_TEXT_MIN_CHARS = 2
SEARCH_TEXT_MAX_CHARS = 200
MAX_SUGGESTION_LIMIT = 20


class SearchEngine:
    def __init__(
        self,
        store: CacheStore,
        limiter: RateLimiter,
        suggestions: SuggestionService,
        orchestrator: SearchOrchestrator,
        health: HealthReporter,
        popular: PopularSearches,
        settings: Optional[Settings] = None,
    ) -> None:
        self.store = store
        self.limiter = limiter
        self.suggestions = suggestions
        self.orchestrator = orchestrator
        self.health = health
        self.popular = popular
        self.settings = settings or get_settings()

    # ===== lifecycle =====

    async def initialize(self) -> None:
        """Warm the popular-search list. Failures only delay the first refresh."""
        try:
            popular = await self.popular.refresh()
            logger.info(f"[engine] initialized popular_searches={len(popular)}")
        except Exception as e:
            logger.error(f"[engine] popular-search warmup failed: {e}")

    async def close(self) -> None:
        await self.orchestrator.drain()
        await self.store.close()

    # ===== suggestions =====

    async def get_suggestions(
        self,
        query: str,
        location: Optional[Location] = None,
        limit: Optional[int] = None,
    ) -> SuggestionsResponse:
        """
        Autocomplete for the search box.

        Args:
            query: raw user input
            location: optional caller location
            limit: 1..20 entries (MAX_SUGGESTIONS when omitted)

        Returns:
            SuggestionsResponse: success=False only for an invalid query length
            or an unexpected internal error; a timeout yields empty data
        """
        clean = sanitize_search_query(query)
        if not 1 <= len(clean) <= SUGGESTION_QUERY_MAX_CHARS:
            return SuggestionsResponse(
                success=False, data=[], query=clean, error="Invalid query length"
            )
        if limit is not None:
            limit = max(1, min(MAX_SUGGESTION_LIMIT, int(limit)))

        try:
            data = await asyncio.wait_for(
                self.suggestions.get_suggestions(clean, location, limit),
                timeout=float(self.settings.SUGGESTIONS_TIMEOUT_S),
            )
        except asyncio.TimeoutError:
            logger.warning("[engine] suggestions timed out, returning empty list")
            return SuggestionsResponse(success=True, data=[], query=clean)
        except Exception as e:
            logger.error(f"[engine] suggestions failed: {e}")
            return SuggestionsResponse(
                success=False,
                data=[],
                query=clean,
                error="Suggestions temporarily unavailable",
            )
        return SuggestionsResponse(success=True, data=data, query=clean)

    # ===== search =====

    async def search_properties(self, query: SearchQuery) -> SearchResults:
        """
        Raises:
            InvalidSearchQuery: text shorter than 2 or longer than 200 after sanitization
            SearchUnavailable: repository failure or SEARCH_TIMEOUT_S exceeded
        """
        if query.text == "":
            # same as no text filter
            query = query.model_copy(update={"text": None})
        elif query.text is not None:
            clean = sanitize_search_query(query.text)
            if not SEARCH_TEXT_MIN_CHARS <= len(clean) <= SEARCH_TEXT_MAX_CHARS:
                raise InvalidSearchQuery(
                    f"Search query must be between {SEARCH_TEXT_MIN_CHARS} "
                    f"and {SEARCH_TEXT_MAX_CHARS} characters"
                )
            if clean != query.text:
                query = query.model_copy(update={"text": clean})
        return await self.orchestrator.search_with_timeout(query)

    async def featured_properties(
        self, limit: int = DEFAULT_FEATURED_LIMIT, location: Optional[Location] = None
    ) -> List[Property]:
        return await self.orchestrator.featured_properties(limit, location)

    async def popular_searches(self, limit: int = 10) -> List[str]:
        return await self.popular.top(limit)

    # ===== admission / health =====

    async def check_rate_limit(
        self, scope: str, identity: str, max_requests: int, window_seconds: int
    ) -> bool:
        """True when the caller is over budget for this window."""
        return await self.limiter.check(scope, identity, max_requests, window_seconds)

    async def health_check(self) -> HealthReport:
        return await self.health.check()


def build_search_engine(
    settings: Optional[Settings] = None,
    repository: Optional[PropertyRepository] = None,
    analytics: Optional[AnalyticsSink] = None,
    redis_client: Optional[Any] = None,
) -> SearchEngine:
    """
    Compose the engine from its parts.

    Args:
        settings: defaults to get_settings()
        repository: listings backend (required)
        analytics: search event sink (NullAnalyticsSink when omitted)
        redis_client: asyncio Redis client; created from REDIS_URL when omitted

    Example:
        >>> engine = build_search_engine(repository=my_repo)
        >>> await engine.initialize()
        >>> await engine.get_suggestions("palmira")
    """
    if repository is None:
        raise ValueError("build_search_engine requires a PropertyRepository")
    settings = settings or get_settings()
    client = redis_client if redis_client is not None else create_redis_client(settings)

    store = CacheStore(client, settings)
    limiter = RateLimiter(store, settings)
    popular = PopularSearches(store, repository, settings)
    sources = SuggestionSources(repository, popular, settings)
    suggestions = SuggestionService(store, sources, RankingEngine(), settings)
    orchestrator = SearchOrchestrator(store, repository, analytics, settings)
    health = HealthReporter(store, orchestrator, popular)
    return SearchEngine(
        store=store,
        limiter=limiter,
        suggestions=suggestions,
        orchestrator=orchestrator,
        health=health,
        popular=popular,
        settings=settings,
    )


__all__ = ["SearchEngine", "build_search_engine"]
