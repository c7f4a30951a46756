"""Tests for market data models."""

import pytest

from app.marketdata.models import (
    BatchResult,
    ConnectionState,
    FundamentalsRecord,
    Quote,
    QuoteSource,
)


class TestQuote:
    """Unit tests for the Quote dataclass."""

    def test_immutable(self):
        quote = Quote(original_symbol="AAPL", vendor_symbol="AAPL", price=190.0)
        with pytest.raises(AttributeError):
            quote.price = 1.0  # type: ignore[misc]

    def test_defaults(self):
        quote = Quote(original_symbol="AAPL", vendor_symbol="AAPL", price=190.0)
        assert quote.source is QuoteSource.REST_QUOTE
        assert quote.is_intraday is True
        assert quote.last_updated > 0

    def test_to_dict_uses_original_symbol(self):
        quote = Quote(
            original_symbol="RKT LN",
            vendor_symbol="RKT.L",
            price=50.0,
            last_updated=123.0,
            source=QuoteSource.ALT_VENDOR_POLL,
        )
        data = quote.to_dict()
        assert data["symbol"] == "RKT LN"
        assert data["vendor_symbol"] == "RKT.L"
        assert data["source"] == "alt-vendor-poll"
        assert data["last_updated"] == 123.0

    def test_scaled_skips_missing_fields(self):
        quote = Quote(original_symbol="X SW", vendor_symbol="X:SIX", price=200.0, volume=7)
        scaled = quote.scaled(100)
        assert scaled.price == 2.0
        assert scaled.high is None
        assert scaled.volume == 7


class TestSupportingModels:
    """Batch results, connection states and fundamentals placeholders."""

    def test_batch_merge(self):
        left = BatchResult(quotes={"AAPL": Quote("AAPL", "AAPL", 1.0)})
        left.merge(BatchResult(errors={"RKT LN": "missing key"}))
        assert set(left.quotes) == {"AAPL"}
        assert left.errors == {"RKT LN": "missing key"}

    def test_connection_state_is_up(self):
        assert ConnectionState.CONNECTED.is_up
        assert ConnectionState.STREAMING.is_up
        assert not ConnectionState.CONNECTING.is_up
        assert not ConnectionState.DISCONNECTED.is_up

    def test_fundamentals_placeholder(self):
        record = FundamentalsRecord.placeholder("RKT LN")
        assert record.vendor_supported is False
        assert record.fiscal_year_end == "December"
        assert record.quarter_end_dates == ("03-31", "06-30", "09-30", "12-31")
