"""Pytest configuration and fixtures."""

import asyncio

import pytest

from app.marketdata.cache import QuoteCache
from app.marketdata.symbols import SymbolResolver


@pytest.fixture
def event_loop_policy():
    """Use the default event loop policy for all async tests."""
    return asyncio.DefaultEventLoopPolicy()


class FakeClock:
    """Manually advanced replacement for ``time.time``."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Replacement for ``asyncio.sleep`` that records delays and returns at once."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        # Still yield so background loops cannot starve the test
        await asyncio.sleep(0)


@pytest.fixture
def resolver():
    return SymbolResolver()


@pytest.fixture
def cache():
    return QuoteCache()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep():
    return RecordingSleep()
