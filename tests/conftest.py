"""
Pytest configuration and fixtures for rental_search tests.

Markers:
    @pytest.mark.cache - Cache store / key derivation tests
    @pytest.mark.suggestions - Suggestion pipeline tests
    @pytest.mark.api - HTTP surface tests

Usage:
    pytest -m cache              # Run only cache tests
    pytest -m "not api"          # Skip HTTP tests
"""

import fnmatch
from typing import Dict, List, Optional, Tuple

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from rental_search.cache.store import CacheStore
from rental_search.config import Settings
from rental_search.engine import build_search_engine
from rental_search.schemas import (
    Location,
    Property,
    SearchQuery,
    SearchResults,
    Suggestion,
    SuggestionType,
)


def pytest_collection_modifyitems(config, items):
    """Auto-apply markers based on test file names."""
    for item in items:
        name = item.path.name
        if "cache" in name or "keys" in name or "rate_limit" in name:
            item.add_marker(pytest.mark.cache)
        if "suggest" in name or "ranking" in name or "sources" in name:
            item.add_marker(pytest.mark.suggestions)
        if "api" in name:
            item.add_marker(pytest.mark.api)


# ==============================================================================
# Fake store client
# ==============================================================================


class FakeRedis:
    """
    In-memory stand-in for redis.asyncio.Redis.

    Implements the commands CacheStore uses. Time is driven by `now`
    (advance() moves it) so TTL expiry is deterministic. Setting `fail`
    makes every command raise a redis ConnectionError.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self.fail = False
        self.closed = False
        self.calls: List[str] = []
        self._data: Dict[str, Tuple[bytes, Optional[float]]] = {}
        self._scan_keys: List[str] = []

    # --- helpers ---

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if self.fail:
            raise RedisConnectionError("connection refused")

    def _live(self, key: str) -> Optional[Tuple[bytes, Optional[float]]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and expires_at <= self.now:
            del self._data[key]
            return None
        return entry

    def keys_snapshot(self) -> List[str]:
        return sorted(k for k in list(self._data) if self._live(k) is not None)

    def raw_ttl(self, key: str) -> Optional[float]:
        entry = self._live(key)
        if entry is None or entry[1] is None:
            return None
        return entry[1] - self.now

    # --- commands ---

    async def get(self, key):
        self._record("get")
        entry = self._live(key)
        return entry[0] if entry else None

    async def set(self, key, value, ex=None):
        self._record("set")
        data = value.encode("utf-8") if isinstance(value, str) else bytes(value)
        expires_at = self.now + ex if ex is not None else None
        self._data[key] = (data, expires_at)
        return True

    async def delete(self, *keys):
        self._record("delete")
        removed = 0
        for k in keys:
            if self._live(k) is not None:
                del self._data[k]
                removed += 1
        return removed

    async def incr(self, key):
        self._record("incr")
        entry = self._live(key)
        if entry is None:
            value, expires_at = 0, None
        else:
            value, expires_at = int(entry[0]), entry[1]
        value += 1
        self._data[key] = (str(value).encode("utf-8"), expires_at)
        return value

    async def expire(self, key, seconds):
        self._record("expire")
        entry = self._live(key)
        if entry is None:
            return False
        self._data[key] = (entry[0], self.now + seconds)
        return True

    async def ttl(self, key):
        self._record("ttl")
        entry = self._live(key)
        if entry is None:
            return -2
        if entry[1] is None:
            return -1
        return max(0, int(entry[1] - self.now))

    async def scan(self, cursor=0, match=None, count=None):
        self._record("scan")
        # a scan started at cursor 0 iterates a fixed snapshot, so deletes
        # between pages never skip keys
        if int(cursor) == 0:
            self._scan_keys = self.keys_snapshot()
        matching = [k for k in self._scan_keys if match is None or fnmatch.fnmatchcase(k, match)]
        page = max(1, int(count or 10))
        start = int(cursor)
        batch = matching[start : start + page]
        next_cursor = start + page if start + page < len(matching) else 0
        return next_cursor, [k.encode("utf-8") for k in batch]

    async def unlink(self, *keys):
        self._record("unlink")
        removed = 0
        for k in keys:
            name = k.decode("utf-8") if isinstance(k, bytes) else k
            if self._live(name) is not None:
                del self._data[name]
                removed += 1
        return removed

    async def ping(self):
        self._record("ping")
        return True

    async def aclose(self):
        self.closed = True


# ==============================================================================
# Fake collaborators
# ==============================================================================


def make_property(pid: str, title: str = "") -> Property:
    return Property(id=pid, title=title or f"Listing {pid}", price=12000)


def make_location_suggestion(text: str, sid: str = "") -> Suggestion:
    return Suggestion(
        id=sid or f"neighborhood-{text.lower().replace(' ', '-')}",
        text=text,
        type=SuggestionType.LOCATION,
        icon="map-pin",
    )


class FakeRepository:
    """Records calls; results and failures are set per test."""

    def __init__(self) -> None:
        self.results = SearchResults(
            properties=[make_property("p1"), make_property("p2")], total=2
        )
        self.locations: List[Suggestion] = [make_location_suggestion("Colonia Palmira")]
        self.popular: List[str] = []
        self.featured: List[Property] = [make_property("f1"), make_property("f2")]
        self.search_error: Optional[Exception] = None
        self.suggest_error: Optional[Exception] = None
        self.popular_error: Optional[Exception] = None
        self.featured_error: Optional[Exception] = None
        self.search_calls: List[SearchQuery] = []
        self.suggest_calls: List[Tuple[str, Optional[Location], int]] = []
        self.popular_calls = 0
        self.featured_calls = 0

    async def search(self, query: SearchQuery) -> SearchResults:
        self.search_calls.append(query)
        if self.search_error is not None:
            raise self.search_error
        return self.results

    async def suggest_locations(self, text, location, limit):
        self.suggest_calls.append((text, location, limit))
        if self.suggest_error is not None:
            raise self.suggest_error
        return [s for s in self.locations if text in s.text.lower()][:limit]

    async def popular_searches(self):
        self.popular_calls += 1
        if self.popular_error is not None:
            raise self.popular_error
        return list(self.popular)

    async def featured_properties(self, limit, location):
        self.featured_calls += 1
        if self.featured_error is not None:
            raise self.featured_error
        return self.featured[:limit]


class FakeAnalyticsSink:
    def __init__(self) -> None:
        self.events: List[Tuple[str, bool, Optional[str]]] = []
        self.error: Optional[Exception] = None

    async def record_search(self, text, has_location, location_bucket):
        if self.error is not None:
            raise self.error
        self.events.append((text, has_location, location_bucket))


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def settings():
    """Settings isolated from the process environment's .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def store(fake_redis, settings):
    return CacheStore(fake_redis, settings)


@pytest.fixture
def repository():
    return FakeRepository()


@pytest.fixture
def analytics():
    return FakeAnalyticsSink()


@pytest.fixture
def engine(settings, repository, analytics, fake_redis):
    return build_search_engine(
        settings=settings,
        repository=repository,
        analytics=analytics,
        redis_client=fake_redis,
    )


@pytest.fixture
def tegucigalpa():
    return Location(lat=14.07234, lng=-87.19211)
