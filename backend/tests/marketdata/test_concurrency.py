"""Tests for the asyncio helpers."""

import asyncio

import pytest

from app.marketdata.concurrency import CancellationToken, bounded_gather, race_with_fallback
from app.marketdata.errors import OperationCancelledError


class TestCancellationToken:
    """Cooperative cancellation flag."""

    def test_starts_uncancelled(self):
        token = CancellationToken()
        assert not token.cancelled
        token.raise_if_cancelled()

    def test_cancel(self):
        token = CancellationToken()
        token.cancel()
        assert token.cancelled
        with pytest.raises(OperationCancelledError):
            token.raise_if_cancelled()


@pytest.mark.asyncio
class TestAsyncHelpers:
    """bounded_gather and race_with_fallback."""

    async def test_bounded_gather_limits_concurrency(self):
        in_flight = 0
        peak = 0

        async def work(n):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return n

        results = await bounded_gather((work(n) for n in range(12)), limit=3)
        assert results == list(range(12))
        assert peak <= 3

    async def test_bounded_gather_returns_exceptions(self):
        async def ok():
            return 1

        async def bad():
            raise ValueError("nope")

        results = await bounded_gather([ok(), bad(), ok()])
        assert results[0] == 1
        assert isinstance(results[1], ValueError)
        assert results[2] == 1

    async def test_race_returns_result_in_time(self):
        async def fast():
            return "fresh"

        assert await race_with_fallback(fast(), "stale", timeout=1.0) == "fresh"

    async def test_race_returns_fallback_after_timeout(self):
        async def slow():
            await asyncio.sleep(1.0)
            return "fresh"

        assert await race_with_fallback(slow(), "stale", timeout=0.05) == "stale"

    async def test_race_returns_fallback_on_error(self, caplog):
        async def broken():
            raise RuntimeError("session store down")

        assert await race_with_fallback(broken(), None, label="Session refresh") is None
        assert "Session refresh failed" in caplog.text
