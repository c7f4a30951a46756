"""Tests for the snapshot and SSE endpoints."""

import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.marketdata.cache import QuoteCache
from app.marketdata.models import Quote
from app.marketdata.stream import _generate_events, create_stream_router


class FakeRequest:
    """Minimal stand-in for starlette's Request: disconnects after N checks."""

    class _Client:
        host = "127.0.0.1"

    def __init__(self, checks_before_disconnect: int):
        self.client = self._Client()
        self._remaining = checks_before_disconnect

    async def is_disconnected(self) -> bool:
        self._remaining -= 1
        return self._remaining < 0


class TestSnapshotEndpoint:
    """GET /api/market/quotes."""

    def test_snapshot(self):
        cache = QuoteCache()
        cache.write(Quote("AAPL", "AAPL", 190.0, last_updated=1.0))
        cache.record_error("RKT LN", "fmp API key not configured (FMP_API_KEY)")
        app = FastAPI()
        app.include_router(create_stream_router(cache))

        response = TestClient(app).get("/api/market/quotes")

        assert response.status_code == 200
        body = response.json()
        assert body["quotes"]["AAPL"]["price"] == 190.0
        assert body["errors"] == {"RKT LN": "fmp API key not configured (FMP_API_KEY)"}
        assert body["version"] == 2

    def test_routers_are_independent(self):
        first = create_stream_router(QuoteCache())
        second = create_stream_router(QuoteCache())
        assert first is not second
        assert len(first.routes) == 2


@pytest.mark.asyncio
class TestEventGenerator:
    """SSE emission driven by the cache version."""

    async def test_emits_only_on_change(self):
        cache = QuoteCache()
        cache.write(Quote("AAPL", "AAPL", 190.0, last_updated=1.0))
        request = FakeRequest(checks_before_disconnect=3)

        events = [event async for event in _generate_events(cache, request, interval=0.0)]

        assert events[0] == "retry: 1000\n\n"
        data_events = [e for e in events if e.startswith("data: ")]
        assert len(data_events) == 1
        payload = json.loads(data_events[0][len("data: ") :])
        assert payload["quotes"]["AAPL"]["symbol"] == "AAPL"
        assert payload["version"] == 1
