"""
rental_search.search_engine - suggestions, ranking and cached search
"""

from rental_search.search_engine.health import HealthReporter
from rental_search.search_engine.orchestrator import SearchOrchestrator
from rental_search.search_engine.ranking import RankingEngine
from rental_search.search_engine.sources import PopularSearches, SuggestionSources
from rental_search.search_engine.suggestions import SuggestionService

__all__ = [
    "HealthReporter",
    "PopularSearches",
    "RankingEngine",
    "SearchOrchestrator",
    "SuggestionService",
    "SuggestionSources",
]
