"""Twelve Data REST client: the primary realtime quote vendor."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import httpx
import numpy as np

from ..errors import ConfigurationError, DataUnavailableError, MarketDataError, ProviderError
from ..models import CompanyProfile, ProviderID, Quote, QuoteSource, SymbolMatch, VolumeSummary
from ..symbols import SymbolResolver
from .base import VendorClient, to_float, to_int

logger = logging.getLogger(__name__)


def check_envelope(payload: Any, *, symbol: str | None = None) -> None:
    """Raise ProviderError if the payload is one of Twelve Data's error shapes.

    A 200 response is not proof of success: the body may carry an ``error``
    field, a rate-limit ``note``, or a ``code`` + ``message`` object.
    """
    if not isinstance(payload, dict):
        return
    if payload.get("error"):
        raise ProviderError(str(payload["error"]), symbol=symbol, context={"provider": "twelve_data"})
    if payload.get("note"):
        raise ProviderError(
            str(payload["note"]),
            symbol=symbol,
            context={"provider": "twelve_data", "rate_limited": True},
        )
    if payload.get("status") == "error" or ("code" in payload and "message" in payload):
        code = payload.get("code")
        raise ProviderError(
            str(payload.get("message") or f"error code {code}"),
            symbol=symbol,
            context={"provider": "twelve_data", "code": code, "rate_limited": code == 429},
        )


def quote_from_entry(
    entry: dict[str, Any],
    original: str,
    vendor: str,
    *,
    source: QuoteSource,
    timestamp: float,
) -> Quote:
    """Build a Quote from a ``/quote`` object. Raises if there is no usable price."""
    check_envelope(entry, symbol=original)
    price = to_float(entry.get("close"))
    if price is None:
        raise DataUnavailableError(f"no price in quote for {vendor}", symbol=original)
    is_open = entry.get("is_market_open")
    return Quote(
        original_symbol=original,
        vendor_symbol=vendor,
        price=price,
        change=to_float(entry.get("change")),
        change_percent=to_float(entry.get("percent_change")),
        volume=to_int(entry.get("volume")),
        previous_close=to_float(entry.get("previous_close")),
        high=to_float(entry.get("high")),
        low=to_float(entry.get("low")),
        open=to_float(entry.get("open")),
        last_updated=timestamp,
        source=source,
        is_intraday=bool(is_open) if is_open is not None else True,
    )


def summarize_volume(entry: dict[str, Any], original: str, vendor: str, days: int) -> VolumeSummary:
    """Reduce a daily ``/time_series`` payload to volume statistics."""
    check_envelope(entry, symbol=original)
    bars = entry.get("values") or []
    # Bars arrive newest first
    recent = [bar for bar in bars[:days] if to_float(bar.get("volume")) is not None]
    if not recent:
        raise DataUnavailableError(f"no daily volume data for {vendor}", symbol=original)

    volumes = np.array([to_float(bar["volume"]) for bar in recent], dtype=float)
    return VolumeSummary(
        symbol=original,
        vendor_symbol=vendor,
        days=days,
        observations=int(volumes.size),
        average_volume=round(float(volumes.mean()), 2),
        median_volume=round(float(np.median(volumes)), 2),
        latest_volume=int(volumes[0]),
        total_volume=int(volumes.sum()),
        as_of=recent[0].get("datetime"),
    )


class TwelveDataClient(VendorClient):
    """Primary vendor client.

    Single-symbol lookups walk a fallback chain: ``/quote`` (authoritative),
    then ``/price``, then the last two daily bars from ``/time_series``. If
    every step fails the first error is raised, since it is usually the most
    diagnostic one.

    The aggregate ``fetch_*_batch`` methods return raw payloads; splitting and
    demultiplexing them is the BatchOrchestrator's job.
    """

    provider_id = ProviderID.TWELVE_DATA
    base_url = "https://api.twelvedata.com"
    key_env_name = "TWELVE_DATA_API_KEY"

    def __init__(
        self,
        api_key: str | None,
        resolver: SymbolResolver,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(api_key, http_client=http_client, timeout=timeout)
        self._resolver = resolver
        self._clock = clock

    # --- Single symbol ---

    async def get_one(self, symbol: str) -> Quote:
        vendor = self._resolver.to_vendor_symbol(symbol)
        first_error: MarketDataError | None = None
        for step in (self._from_quote, self._from_price, self._from_daily):
            try:
                quote = await step(symbol, vendor)
            except ConfigurationError:
                raise
            except MarketDataError as e:
                logger.debug("Twelve Data %s failed for %s: %s", step.__name__, symbol, e)
                if first_error is None:
                    first_error = e
                continue
            return self._resolver.normalize_quote(quote)
        assert first_error is not None
        raise first_error

    async def _from_quote(self, original: str, vendor: str) -> Quote:
        payload = await self._get_json("/quote", {"symbol": vendor}, symbol=original)
        if not isinstance(payload, dict):
            raise DataUnavailableError(f"unexpected /quote payload for {vendor}", symbol=original)
        return quote_from_entry(
            payload, original, vendor, source=QuoteSource.REST_QUOTE, timestamp=self._clock()
        )

    async def _from_price(self, original: str, vendor: str) -> Quote:
        payload = await self._get_json("/price", {"symbol": vendor}, symbol=original)
        check_envelope(payload, symbol=original)
        price = to_float(payload.get("price")) if isinstance(payload, dict) else None
        if price is None:
            raise DataUnavailableError(f"no price in /price for {vendor}", symbol=original)
        return Quote(
            original_symbol=original,
            vendor_symbol=vendor,
            price=price,
            last_updated=self._clock(),
            source=QuoteSource.REST_PRICE,
            is_intraday=True,
        )

    async def _from_daily(self, original: str, vendor: str) -> Quote:
        payload = await self._get_json(
            "/time_series",
            {"symbol": vendor, "interval": "1day", "outputsize": 2},
            symbol=original,
        )
        check_envelope(payload, symbol=original)
        bars = payload.get("values") if isinstance(payload, dict) else None
        if not bars:
            raise DataUnavailableError(f"no daily bars for {vendor}", symbol=original)
        latest = bars[0]
        price = to_float(latest.get("close"))
        if price is None:
            raise DataUnavailableError(f"no close in daily bar for {vendor}", symbol=original)

        previous = to_float(bars[1].get("close")) if len(bars) > 1 else None
        change = change_percent = None
        if previous:
            change = price - previous
            change_percent = change / previous * 100
        return Quote(
            original_symbol=original,
            vendor_symbol=vendor,
            price=price,
            change=change,
            change_percent=change_percent,
            volume=to_int(latest.get("volume")),
            previous_close=previous,
            high=to_float(latest.get("high")),
            low=to_float(latest.get("low")),
            open=to_float(latest.get("open")),
            last_updated=self._clock(),
            source=QuoteSource.REST_QUOTE,
            is_intraday=False,
        )

    # --- Aggregate requests ---

    async def fetch_quote_batch(self, vendor_symbols: list[str]) -> Any:
        """One ``/quote`` call for a comma-joined symbol list."""
        payload = await self._get_json("/quote", {"symbol": ",".join(vendor_symbols)})
        if len(vendor_symbols) > 1:
            # A top-level envelope means the whole request failed
            check_envelope(payload)
        return payload

    async def fetch_volume_batch(self, vendor_symbols: list[str], days: int) -> Any:
        """One daily ``/time_series`` call for a comma-joined symbol list."""
        payload = await self._get_json(
            "/time_series",
            {"symbol": ",".join(vendor_symbols), "interval": "1day", "outputsize": days},
        )
        if len(vendor_symbols) > 1:
            check_envelope(payload)
        return payload

    # --- Volume, profile, search, earnings ---

    async def get_daily_volume(self, symbol: str, days: int) -> VolumeSummary:
        vendor = self._resolver.to_vendor_symbol(symbol)
        payload = await self._get_json(
            "/time_series",
            {"symbol": vendor, "interval": "1day", "outputsize": days},
            symbol=symbol,
        )
        if not isinstance(payload, dict):
            raise DataUnavailableError(f"unexpected /time_series payload for {vendor}", symbol=symbol)
        return summarize_volume(payload, symbol, vendor, days)

    async def get_profile(self, symbol: str) -> CompanyProfile:
        vendor = self._resolver.to_vendor_symbol(symbol)
        payload = await self._get_json("/profile", {"symbol": vendor}, symbol=symbol)
        check_envelope(payload, symbol=symbol)
        if not isinstance(payload, dict) or not payload.get("name"):
            raise DataUnavailableError(f"no profile for {vendor}", symbol=symbol)
        return CompanyProfile(
            symbol=symbol,
            name=payload.get("name"),
            exchange=payload.get("exchange"),
            sector=payload.get("sector"),
            industry=payload.get("industry"),
            country=payload.get("country"),
        )

    async def search_symbols(self, query: str, limit: int = 10) -> list[SymbolMatch]:
        payload = await self._get_json("/symbol_search", {"symbol": query, "outputsize": limit})
        check_envelope(payload)
        rows = payload.get("data") if isinstance(payload, dict) else None
        return [
            SymbolMatch(
                symbol=row.get("symbol"),
                name=row.get("instrument_name"),
                exchange=row.get("exchange"),
                country=row.get("country"),
                instrument_type=row.get("instrument_type"),
            )
            for row in rows or []
            if row.get("symbol")
        ]

    async def get_earnings_dates(self, symbol: str) -> list[str]:
        vendor = self._resolver.to_vendor_symbol(symbol)
        payload = await self._get_json("/earnings", {"symbol": vendor}, symbol=symbol)
        check_envelope(payload, symbol=symbol)
        rows = []
        if isinstance(payload, dict):
            rows = payload.get("earnings") or payload.get("data") or []
        return [str(row["date"]) for row in rows if isinstance(row, dict) and row.get("date")]
