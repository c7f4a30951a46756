"""Data models for market data."""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from enum import Enum


class QuoteSource(str, Enum):
    """Which code path produced a cached quote."""

    REST_QUOTE = "rest-quote"
    REST_PRICE = "rest-price"
    REST_BATCH = "rest-batch"
    WEBSOCKET = "websocket"
    ALT_VENDOR_POLL = "alt-vendor-poll"


class ProviderID(str, Enum):
    """The three vendors the core talks to."""

    TWELVE_DATA = "twelve_data"  # primary realtime quotes
    FMP = "fmp"  # alternate markets, market cap, earnings
    ALPHA_VANTAGE = "alpha_vantage"  # fundamentals only


class ConnectionState(str, Enum):
    """Streaming connection lifecycle as reported by the transport.

    DISCONNECTED -> CONNECTING -> CONNECTED -> STREAMING; any state may drop
    back to DISCONNECTED.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    STREAMING = "streaming"

    @property
    def is_up(self) -> bool:
        return self in (ConnectionState.CONNECTED, ConnectionState.STREAMING)


class OperationKind(str, Enum):
    """Aggregate operations the batch orchestrator knows how to chunk."""

    QUOTES = "quotes"
    VOLUME = "volume"
    MARKET_DATA = "market_data"


# Fields holding a price-like value; divided together for minor-unit listings.
PRICE_FIELDS = ("price", "change", "previous_close", "high", "low", "open")


@dataclass(frozen=True, slots=True)
class Quote:
    """Immutable market snapshot for one symbol.

    ``original_symbol`` is the user-facing ticker and the cache key;
    ``vendor_symbol`` is what was actually sent to the provider.
    """

    original_symbol: str
    vendor_symbol: str
    price: float | None
    change: float | None = None
    change_percent: float | None = None
    volume: int | None = None
    previous_close: float | None = None
    high: float | None = None
    low: float | None = None
    open: float | None = None
    last_updated: float = field(default_factory=time.time)  # Unix seconds
    source: QuoteSource = QuoteSource.REST_QUOTE
    is_intraday: bool = True

    def scaled(self, divisor: float) -> Quote:
        """Return a copy with every price-bearing field divided by ``divisor``."""
        changes = {}
        for name in PRICE_FIELDS:
            value = getattr(self, name)
            if value is not None:
                changes[name] = value / divisor
        return replace(self, **changes)

    def to_dict(self) -> dict:
        """Serialize for JSON / SSE transmission."""
        return {
            "symbol": self.original_symbol,
            "vendor_symbol": self.vendor_symbol,
            "price": self.price,
            "change": self.change,
            "change_percent": self.change_percent,
            "volume": self.volume,
            "previous_close": self.previous_close,
            "high": self.high,
            "low": self.low,
            "open": self.open,
            "last_updated": self.last_updated,
            "source": self.source.value,
            "is_intraday": self.is_intraday,
        }


@dataclass(frozen=True, slots=True)
class VolumeSummary:
    """Daily volume statistics over the most recent ``observations`` bars."""

    symbol: str
    vendor_symbol: str
    days: int
    observations: int
    average_volume: float
    median_volume: float
    latest_volume: int
    total_volume: int
    as_of: str | None = None

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "vendor_symbol": self.vendor_symbol,
            "days": self.days,
            "observations": self.observations,
            "average_volume": self.average_volume,
            "median_volume": self.median_volume,
            "latest_volume": self.latest_volume,
            "total_volume": self.total_volume,
            "as_of": self.as_of,
        }


@dataclass(slots=True)
class BatchResult:
    """Outcome of a batch quote fetch. A symbol lands in exactly one map."""

    quotes: dict[str, Quote] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)

    def merge(self, other: BatchResult) -> None:
        self.quotes.update(other.quotes)
        self.errors.update(other.errors)


@dataclass(slots=True)
class VolumeBatchResult:
    """Outcome of a batch daily-volume fetch."""

    volumes: dict[str, VolumeSummary] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class CompanyProfile:
    """Identifying metadata from the primary vendor's profile endpoint."""

    symbol: str
    name: str | None
    exchange: str | None = None
    sector: str | None = None
    industry: str | None = None
    country: str | None = None


@dataclass(frozen=True, slots=True)
class SymbolMatch:
    """One row of a symbol search."""

    symbol: str
    name: str | None
    exchange: str | None
    country: str | None
    instrument_type: str | None


@dataclass(frozen=True, slots=True)
class MarketCap:
    symbol: str
    vendor_symbol: str
    market_cap: float
    date: str | None = None


# Calendar quarter ends used when a vendor has no fiscal data for a listing.
DEFAULT_QUARTER_END_DATES: tuple[str, ...] = ("03-31", "06-30", "09-30", "12-31")


@dataclass(frozen=True, slots=True)
class FundamentalsRecord:
    """Identifying and fiscal metadata from the fundamentals vendor."""

    symbol: str
    name: str | None = None
    exchange: str | None = None
    currency: str | None = None
    country: str | None = None
    sector: str | None = None
    industry: str | None = None
    fiscal_year_end: str | None = None
    latest_quarter: str | None = None
    quarter_end_dates: tuple[str, ...] = DEFAULT_QUARTER_END_DATES
    vendor_supported: bool = True

    @classmethod
    def placeholder(cls, symbol: str) -> FundamentalsRecord:
        """Record used for listings the fundamentals vendor does not cover."""
        return cls(symbol=symbol, fiscal_year_end="December", vendor_supported=False)


@dataclass(frozen=True, slots=True)
class StockSnapshot:
    """What the idea form needs when a ticker is first added."""

    symbol: str
    name: str | None
    price: float | None
    adv_3_month: float | None
    market_cap: float | None
