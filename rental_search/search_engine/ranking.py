from __future__ import annotations

"""
Suggestion ranking

Roles:
- score each candidate with a small additive rule set
- stable sort by score, dedup by normalized text, truncate to the limit
- build the fixed default list (short queries) and the literal-query fallback

Scoring rules:
- base = metadata.weight, else 0.5
- +0.5 exact match, +0.3 prefix match (both on case-folded text)
- +0.2 for location suggestions when the caller supplied a location
- +popularity_score / 1000

Pure and synchronous: no I/O happens here.
"""

from typing import Iterable, List, Optional

from rental_search.schemas import (
    Location,
    Suggestion,
    SuggestionMetadata,
    SuggestionType,
)
from rental_search.utils.text import normalize_query

DEFAULT_WEIGHT = 0.5
EXACT_MATCH_BONUS = 0.5
PREFIX_MATCH_BONUS = 0.3
LOCATION_BIAS_BONUS = 0.2
POPULARITY_DIVISOR = 1000.0

DEFAULT_LIMIT = 8
DEFAULT_SET_LIMIT = 5


def _default_set() -> List[Suggestion]:
    return [
        Suggestion(
            id="default-apartment",
            text="Apartments in Tegucigalpa",
            type=SuggestionType.PROPERTY,
            icon="building",
            metadata=SuggestionMetadata(weight=1.0),
        ),
        Suggestion(
            id="default-house",
            text="Houses for rent",
            type=SuggestionType.PROPERTY,
            icon="home",
            metadata=SuggestionMetadata(weight=0.9),
        ),
        Suggestion(
            id="default-furnished",
            text="Furnished properties",
            type=SuggestionType.PROPERTY,
            icon="star",
            metadata=SuggestionMetadata(weight=0.8),
        ),
        Suggestion(
            id="default-colonia",
            text="Colonia Palmira",
            type=SuggestionType.LOCATION,
            icon="map-pin",
            metadata=SuggestionMetadata(weight=0.9),
        ),
        Suggestion(
            id="default-lomas",
            text="Lomas del Guijarro",
            type=SuggestionType.LOCATION,
            icon="map-pin",
            metadata=SuggestionMetadata(weight=0.8),
        ),
    ]


class RankingEngine:
    """Merges candidate suggestions from all sources into one ranked list."""

    def score(
        self, suggestion: Suggestion, query: str, location: Optional[Location] = None
    ) -> float:
        """
        Score a single candidate.

        Args:
            suggestion: candidate from any source
            query: normalized (case-folded, trimmed) query
            location: caller location, if any

        Returns:
            float: additive score, larger ranks higher
        """
        meta = suggestion.metadata
        score = meta.weight if meta.weight is not None else DEFAULT_WEIGHT
        text = suggestion.text.casefold()
        if text == query:
            score += EXACT_MATCH_BONUS
        if text.startswith(query):
            score += PREFIX_MATCH_BONUS
        if location is not None and suggestion.type == SuggestionType.LOCATION:
            score += LOCATION_BIAS_BONUS
        if meta.popularity_score:
            score += meta.popularity_score / POPULARITY_DIVISOR
        return score

    def rank(
        self,
        candidates: Iterable[Suggestion],
        query: str,
        location: Optional[Location] = None,
    ) -> List[Suggestion]:
        """Scored copies, highest first; ties keep encounter order."""
        scored = [
            c.model_copy(update={"score": self.score(c, query, location)})
            for c in candidates
        ]
        # sorted() is stable
        return sorted(scored, key=lambda s: s.score or 0.0, reverse=True)

    @staticmethod
    def deduplicate(suggestions: Iterable[Suggestion]) -> List[Suggestion]:
        seen = set()
        out: List[Suggestion] = []
        for s in suggestions:
            key = normalize_query(s.text)
            if key in seen:
                continue
            seen.add(key)
            out.append(s)
        return out

    def merge(
        self,
        candidates: Iterable[Suggestion],
        query: str,
        location: Optional[Location] = None,
        limit: int = DEFAULT_LIMIT,
    ) -> List[Suggestion]:
        """rank -> deduplicate -> truncate."""
        ranked = self.rank(candidates, normalize_query(query), location)
        return self.deduplicate(ranked)[: max(0, int(limit))]

    def default_suggestions(
        self, location: Optional[Location] = None, limit: int = DEFAULT_SET_LIMIT
    ) -> List[Suggestion]:
        """
        Fixed suggestion set for empty or one-character queries.

        Without a location the fixed order is kept. With one, location
        entries get the location bias and the set is re-ranked.
        """
        defaults = _default_set()
        if location is not None:
            defaults = self.rank(defaults, "", location)
        return defaults[: max(0, int(limit))]

    def fallback_suggestions(
        self,
        query: str,
        location: Optional[Location] = None,
        limit: int = 3,
    ) -> List[Suggestion]:
        """'Search "<query>"' entry followed by the defaults."""
        limit = max(0, int(limit))
        if limit == 0:
            return []
        literal = Suggestion(
            id=f"fallback-{query}",
            text=f'Search "{query}"',
            type=SuggestionType.PROPERTY,
            icon="search",
            metadata=SuggestionMetadata(weight=0.5),
        )
        return [literal] + self.default_suggestions(location, limit - 1)


__all__ = ["RankingEngine", "DEFAULT_LIMIT", "DEFAULT_SET_LIMIT"]
