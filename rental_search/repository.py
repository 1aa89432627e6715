"""
rental_search.repository - collaborator interfaces

The engine never talks to the listings database directly. It is handed a
PropertyRepository (read-only, idempotent) and an AnalyticsSink (fire and
forget) at construction time.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol, runtime_checkable

from rental_search.schemas import Location, Property, SearchQuery, SearchResults, Suggestion

logger = logging.getLogger("repository")


@runtime_checkable
class PropertyRepository(Protocol):
    async def search(self, query: SearchQuery) -> SearchResults:
        """Full property search. May raise RepositoryUnavailable."""
        ...

    async def suggest_locations(
        self, text: str, location: Optional[Location], limit: int
    ) -> List[Suggestion]:
        """Neighborhood / landmark matches for a partial query."""
        ...

    async def popular_searches(self) -> List[str]:
        """Historically popular query strings, most popular first."""
        ...

    async def featured_properties(
        self, limit: int, location: Optional[Location]
    ) -> List[Property]:
        ...


@runtime_checkable
class AnalyticsSink(Protocol):
    async def record_search(
        self, text: str, has_location: bool, location_bucket: Optional[str]
    ) -> None:
        ...


class NullAnalyticsSink:
    """Sink that drops every event."""

    async def record_search(
        self, text: str, has_location: bool, location_bucket: Optional[str]
    ) -> None:
        logger.debug(f"[analytics] dropped search event has_location={has_location}")


__all__ = ["PropertyRepository", "AnalyticsSink", "NullAnalyticsSink"]
