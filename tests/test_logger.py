"""
Tests for structured event logging.
"""

import json
import logging

import pytest

from rental_search.utils import logger as logmod


@pytest.fixture
def events(caplog):
    caplog.set_level(logging.DEBUG, logger="events")
    return caplog


def _payloads(caplog):
    return [r.data for r in caplog.records if getattr(r, "event", None)]


class TestLogEvent:
    def test_query_fields_are_masked(self, events):
        logmod.log_event(
            "suggestions.fallback",
            {"reason": "timeout", "query": "casa en palmira"},
            logger=logging.getLogger("events"),
            force=True,
        )
        (data,) = _payloads(events)
        assert data["query"] == {"len": 15}
        assert data["reason"] == "timeout"

    def test_negative_latency_clamped(self, events):
        logmod.log_event(
            "search.cache_hit",
            {"key": "search:x", "took_ms": -3},
            logger=logging.getLogger("events"),
            force=True,
        )
        assert _payloads(events)[0]["took_ms"] == 0.0

    def test_request_id_attached(self, events):
        logmod.set_context(request_id="req-1")
        try:
            logmod.log_event(
                "cache.invalidated",
                {"pattern": "featured:*", "deleted": 2},
                logger=logging.getLogger("events"),
                force=True,
            )
        finally:
            logmod.clear_context()
        assert _payloads(events)[0]["request_id"] == "req-1"

    def test_observability_toggle(self, events, monkeypatch):
        monkeypatch.setattr(logmod, "_observability_enabled", lambda: False)
        logmod.log_event(
            "search.failed", {"key": "k", "error": "x"}, logger=logging.getLogger("events")
        )
        assert _payloads(events) == []

    def test_safe_log_event_never_raises(self, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("handler broken")

        monkeypatch.setattr(logmod, "log_event", boom)
        logmod.safe_log_event("search.failed", {"key": "k", "error": "x"})


class TestJsonFormatter:
    def test_renders_context_and_data(self):
        record = logging.LogRecord("api", logging.INFO, __file__, 1, "hello", None, None)
        record.event = "search.cache_miss"
        record.data = {"key": "search:abc", "count": 2}
        record.request_id = "req-9"
        record.client = "10.0.0.1"

        out = json.loads(logmod._JsonFormatter().format(record))

        assert out["event"] == "search.cache_miss"
        assert out["client"] == "10.0.0.1"
        assert out["data"]["count"] == 2
        assert out["message"] == "hello"
