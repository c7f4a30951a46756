"""Tests for QuoteCache."""

from app.marketdata.cache import QuoteCache
from app.marketdata.models import Quote, QuoteSource


def _quote(symbol: str, price: float, ts: float, source: QuoteSource = QuoteSource.REST_QUOTE) -> Quote:
    return Quote(original_symbol=symbol, vendor_symbol=symbol, price=price, last_updated=ts, source=source)


class TestQuoteCache:
    """Unit tests for the QuoteCache."""

    def test_write_and_get(self):
        cache = QuoteCache()
        quote = _quote("AAPL", 190.5, 100.0)
        assert cache.write(quote) is True
        assert cache.get("AAPL") == quote
        assert cache.get_price("AAPL") == 190.5
        assert cache.get_price("NOPE") is None

    def test_newer_write_wins(self):
        """REST at t1 then stream at t2 > t1: cache holds t2."""
        cache = QuoteCache()
        cache.write(_quote("AAPL", 190.0, 100.0))
        assert cache.write(_quote("AAPL", 191.0, 101.0, QuoteSource.WEBSOCKET)) is True
        assert cache.get("AAPL").source is QuoteSource.WEBSOCKET

    def test_older_write_rejected(self):
        """Stream at t2 < t1: cache keeps t1."""
        cache = QuoteCache()
        cache.write(_quote("AAPL", 190.0, 100.0))
        version = cache.version
        assert cache.write(_quote("AAPL", 180.0, 99.0, QuoteSource.WEBSOCKET)) is False
        assert cache.get_price("AAPL") == 190.0
        assert cache.version == version

    def test_equal_timestamp_accepted(self):
        cache = QuoteCache()
        cache.write(_quote("AAPL", 190.0, 100.0))
        assert cache.write(_quote("AAPL", 190.1, 100.0)) is True

    def test_write_replaces_whole_record(self):
        cache = QuoteCache()
        cache.write(Quote("AAPL", "AAPL", 190.0, high=195.0, volume=1000, last_updated=1.0))
        cache.write(Quote("AAPL", "AAPL", 191.0, last_updated=2.0, source=QuoteSource.WEBSOCKET))
        stored = cache.get("AAPL")
        assert stored.high is None
        assert stored.volume is None

    def test_errors_independent_of_quotes(self):
        cache = QuoteCache()
        cache.write(_quote("AAPL", 190.0, 100.0))
        cache.record_error("AAPL", "rate limited")
        assert cache.get_price("AAPL") == 190.0
        assert cache.get_error("AAPL") == "rate limited"

    def test_accepted_write_clears_error(self):
        cache = QuoteCache()
        cache.record_error("AAPL", "boom")
        cache.write(_quote("AAPL", 190.0, 100.0))
        assert cache.get_error("AAPL") is None

    def test_clear_error(self):
        cache = QuoteCache()
        cache.record_error("AAPL", "boom")
        version = cache.version
        cache.clear_error("AAPL")
        cache.clear_error("AAPL")
        assert cache.get_errors() == {}
        assert cache.version == version + 1

    def test_version_increments(self):
        cache = QuoteCache()
        v0 = cache.version
        cache.write(_quote("AAPL", 190.0, 1.0))
        cache.record_error("MSFT", "x")
        assert cache.version == v0 + 2

    def test_snapshot(self):
        cache = QuoteCache()
        cache.write(_quote("AAPL", 190.0, 1.0))
        cache.record_error("RKT LN", "FMP_API_KEY missing")
        snapshot = cache.snapshot()
        assert snapshot["quotes"]["AAPL"]["price"] == 190.0
        assert snapshot["errors"] == {"RKT LN": "FMP_API_KEY missing"}
        assert snapshot["version"] == cache.version

    def test_get_all_is_copy(self):
        cache = QuoteCache()
        cache.write(_quote("AAPL", 190.0, 1.0))
        cache.get_all().clear()
        assert len(cache) == 1
        assert "AAPL" in cache
        assert "MSFT" not in cache
