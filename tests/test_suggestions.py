"""
Tests for suggestion sources, the popular-search cache and SuggestionService.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from rental_search.schemas import SuggestionType
from rental_search.search_engine.ranking import RankingEngine
from rental_search.search_engine.sources import (
    DEFAULT_POPULAR_SEARCHES,
    PopularSearches,
    SuggestionSources,
)
from rental_search.search_engine.suggestions import SuggestionService

from conftest import make_location_suggestion


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def popular(store, repository, settings, clock):
    return PopularSearches(store, repository, settings, clock=clock)


@pytest.fixture
def sources(repository, popular, settings):
    return SuggestionSources(repository, popular, settings)


@pytest.fixture
def service(store, sources, settings):
    return SuggestionService(store, sources, RankingEngine(), settings)


def _fail_all_sources(sources):
    for name in (
        "location_suggestions",
        "property_suggestions",
        "popular_suggestions",
        "recent_suggestions",
    ):
        setattr(sources, name, AsyncMock(side_effect=RuntimeError(f"{name} down")))


# ==============================================================================
# Popular searches
# ==============================================================================


class TestPopularSearches:
    """Tests for the TTL-backed popular list."""

    @pytest.mark.asyncio
    async def test_defaults_when_repository_empty(self, popular, store, fake_redis):
        result = await popular.get()

        assert result == DEFAULT_POPULAR_SEARCHES
        assert await store.get_json("popular:searches") == DEFAULT_POPULAR_SEARCHES
        assert fake_redis.raw_ttl("heurekka:popular:searches") == pytest.approx(3600)

    @pytest.mark.asyncio
    async def test_repository_list_used(self, popular, repository):
        repository.popular = ["casa en renta", " "]
        assert await popular.get() == ["casa en renta"]

    @pytest.mark.asyncio
    async def test_repository_failure_uses_defaults(self, popular, repository):
        repository.popular_error = RuntimeError("db down")
        assert await popular.get() == DEFAULT_POPULAR_SEARCHES

    @pytest.mark.asyncio
    async def test_shared_cache_entry_wins(self, popular, repository, store):
        await store.set_json("popular:searches", ["from cache"], 3600)
        assert await popular.get() == ["from cache"]
        assert repository.popular_calls == 0

    @pytest.mark.asyncio
    async def test_local_copy_reused_within_window(self, popular, repository, clock):
        await popular.get()
        clock.now += 299
        await popular.get()
        assert repository.popular_calls == 1

    @pytest.mark.asyncio
    async def test_refresh_after_window(self, popular, store, clock):
        await popular.get()
        await store.set_json("popular:searches", ["updated"], 3600)
        clock.now += 300
        assert await popular.get() == ["updated"]
        assert popular.last_refresh is not None

    @pytest.mark.asyncio
    async def test_top(self, popular):
        assert await popular.top(2) == DEFAULT_POPULAR_SEARCHES[:2]


# ==============================================================================
# Sources
# ==============================================================================


class TestSources:
    """Tests for the individual producers."""

    @pytest.mark.asyncio
    async def test_property_type_match(self, sources):
        out = await sources.property_suggestions("apart")
        assert [(s.id, s.text) for s in out] == [("property-type-apartment", "Apartment rentals")]
        assert out[0].metadata.weight == pytest.approx(0.8)
        assert out[0].icon == "home"

    @pytest.mark.asyncio
    async def test_feature_match(self, sources):
        out = await sources.property_suggestions("pet")
        assert [s.text for s in out] == ["Pet-friendly properties"]
        assert out[0].metadata.weight == pytest.approx(0.6)

    @pytest.mark.asyncio
    async def test_query_containing_keywords(self, sources):
        out = await sources.property_suggestions("house with parking")
        assert {s.id for s in out} == {"property-type-house", "feature-parking"}

    @pytest.mark.asyncio
    async def test_location_reweighted_and_filtered(self, sources, repository):
        landmark = make_location_suggestion("Palmira Mall").model_copy(
            update={"type": SuggestionType.LANDMARK}
        )
        repository.locations = [make_location_suggestion("Colonia Palmira"), landmark]

        out = await sources.location_suggestions("palmira")

        assert [s.text for s in out] == ["Colonia Palmira"]
        assert out[0].metadata.weight == pytest.approx(0.9)
        assert repository.suggest_calls[0][2] == 3

    @pytest.mark.asyncio
    async def test_popular_decaying_scores(self, sources):
        out = await sources.popular_suggestions("apartment")
        assert [s.text for s in out] == [
            "apartment tegucigalpa",
            "furnished apartment",
            "2 bedroom apartment",
        ]
        assert [s.metadata.popularity_score for s in out] == [100, 90, 80]
        assert all(s.icon == "trending-up" for s in out)

    @pytest.mark.asyncio
    async def test_recent_is_empty(self, sources):
        assert await sources.recent_suggestions("anything") == []


class TestCollect:
    """Tests for fan-out isolation."""

    @pytest.mark.asyncio
    async def test_order_is_fixed(self, sources):
        out = await sources.collect("palmira")
        assert out[0].type == SuggestionType.LOCATION
        assert out[-1].id == "popular-house colonia palmira"

    @pytest.mark.asyncio
    async def test_failing_source_is_isolated(self, sources, repository):
        repository.suggest_error = RuntimeError("geo down")

        candidates, failed = await sources.collect_with_failures("apartment")

        assert failed == ["location"]
        assert any(s.id == "property-type-apartment" for s in candidates)

    @pytest.mark.asyncio
    async def test_slow_source_times_out(self, repository, popular, settings):
        fast = settings.model_copy(
            update={"SUGGESTIONS_TIMEOUT_S": 0.5, "SUGGESTIONS_FANOUT_TIMEOUT_S": 0.2}
        )
        sources = SuggestionSources(repository, popular, fast)

        async def slow(*args):
            await asyncio.sleep(5)
            return []

        repository.suggest_locations = slow

        candidates, failed = await sources.collect_with_failures("apartment")

        assert failed == ["location"]
        assert candidates

    @pytest.mark.asyncio
    async def test_synchronous_raise_is_isolated(self, sources):
        def boom(query, location=None):
            raise RuntimeError("not even a coroutine")

        sources.property_suggestions = boom
        candidates, failed = await sources.collect_with_failures("apartment")
        assert failed == ["property"]


# ==============================================================================
# SuggestionService
# ==============================================================================


class TestSuggestionService:
    """Tests for the end-to-end suggestion flow."""

    @pytest.mark.asyncio
    async def test_short_query_returns_defaults_without_sources(self, service, sources):
        for name in ("location_suggestions", "property_suggestions", "popular_suggestions"):
            setattr(sources, name, AsyncMock(return_value=[]))

        out = await service.get_suggestions("p", limit=5)

        assert [s.id for s in out] == [
            "default-apartment",
            "default-house",
            "default-furnished",
            "default-colonia",
            "default-lomas",
        ]
        sources.location_suggestions.assert_not_awaited()
        sources.property_suggestions.assert_not_awaited()
        sources.popular_suggestions.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ranked_and_deduplicated(self, service):
        out = await service.get_suggestions("Palmira")
        texts = [s.text.casefold().strip() for s in out]
        assert len(texts) == len(set(texts))
        assert out[0].text == "Colonia Palmira"
        assert all(s.score is not None for s in out)

    @pytest.mark.asyncio
    async def test_result_truncated_to_limit(self, service):
        out = await service.get_suggestions("apartment", limit=2)
        assert len(out) == 2

    @pytest.mark.asyncio
    async def test_second_call_served_from_cache(self, service, repository):
        first = await service.get_suggestions("palmira")
        second = await service.get_suggestions("palmira")

        assert len(repository.suggest_calls) == 1
        assert [s.id for s in second] == [s.id for s in first]

    @pytest.mark.asyncio
    async def test_small_limit_does_not_shrink_cached_entry(self, service, repository):
        narrow = await service.get_suggestions("apartment", limit=1)
        wide = await service.get_suggestions("apartment", limit=8)

        assert len(narrow) == 1
        assert len(wide) == 4
        assert wide[0].id == narrow[0].id
        assert len(repository.suggest_calls) == 1

    @pytest.mark.asyncio
    async def test_cache_partitioned_by_location(self, service, repository, tegucigalpa):
        await service.get_suggestions("palmira")
        await service.get_suggestions("palmira", tegucigalpa)
        assert len(repository.suggest_calls) == 2

    @pytest.mark.asyncio
    async def test_cache_ttl(self, service, fake_redis):
        await service.get_suggestions("palmira")
        assert fake_redis.raw_ttl("heurekka:suggestions:palmira") == pytest.approx(1800)

    @pytest.mark.asyncio
    async def test_cache_disabled(self, store, sources, settings, repository):
        off = settings.model_copy(update={"SUGGESTIONS_CACHE_ENABLED": False})
        service = SuggestionService(store, sources, RankingEngine(), off)

        await service.get_suggestions("palmira")
        await service.get_suggestions("palmira")

        assert len(repository.suggest_calls) == 2

    @pytest.mark.asyncio
    async def test_all_sources_failing_returns_fallback(self, service, sources):
        _fail_all_sources(sources)

        out = await service.get_suggestions("apartment")

        assert out
        assert out[0].id == "fallback-apartment"
        assert out[0].text == 'Search "apartment"'

    @pytest.mark.asyncio
    async def test_fanout_error_returns_fallback(self, service, sources):
        sources.collect_with_failures = AsyncMock(side_effect=RuntimeError("boom"))
        out = await service.get_suggestions("apartment", limit=3)
        assert [s.id for s in out][0] == "fallback-apartment"
        assert len(out) == 3

    @pytest.mark.asyncio
    async def test_fanout_timeout_returns_fallback(self, store, sources, settings):
        fast = settings.model_copy(
            update={"SUGGESTIONS_TIMEOUT_S": 0.5, "SUGGESTIONS_FANOUT_TIMEOUT_S": 0.1}
        )

        async def hang(*args):
            await asyncio.sleep(5)

        sources.collect_with_failures = hang
        service = SuggestionService(store, sources, RankingEngine(), fast)

        out = await service.get_suggestions("apartment")

        assert out[0].id == "fallback-apartment"

    @pytest.mark.asyncio
    async def test_partial_failure_not_cached(self, service, repository, store):
        repository.suggest_error = RuntimeError("geo down")

        out = await service.get_suggestions("apartment")

        assert out
        assert await store.get("suggestions:apartment") is None

    @pytest.mark.asyncio
    async def test_store_outage_still_serves(self, service, fake_redis):
        fake_redis.fail = True
        out = await service.get_suggestions("palmira")
        assert out[0].text == "Colonia Palmira"

    @pytest.mark.asyncio
    async def test_no_matches_is_empty_not_fallback(self, service, repository):
        repository.locations = []
        assert await service.get_suggestions("zzzz") == []
