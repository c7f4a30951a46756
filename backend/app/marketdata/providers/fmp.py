"""Financial Modeling Prep client: alternate markets, market cap, earnings."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx

from ..errors import DataUnavailableError, MarketDataError, ProviderError
from ..models import MarketCap, ProviderID, Quote, QuoteSource
from ..symbols import SymbolResolver
from .base import VendorClient, to_float, to_int

logger = logging.getLogger(__name__)

T = TypeVar("T")


def check_envelope(payload: Any, *, symbol: str | None = None) -> None:
    """FMP reports failures as ``{"Error Message": "..."}`` with HTTP 200."""
    if isinstance(payload, dict) and payload.get("Error Message"):
        message = str(payload["Error Message"])
        raise ProviderError(
            message,
            symbol=symbol,
            context={"provider": "fmp", "rate_limited": "limit" in message.lower()},
        )


def _rows(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, list):
        return [row for row in payload if isinstance(row, dict)]
    if isinstance(payload, dict):
        return [payload]
    return []


class FMPClient(VendorClient):
    """Alternate vendor for markets the primary handles poorly (JP, HK, IT, UK, DK).

    FMP spells the same listing several ways, so every lookup walks the
    resolver's candidate list and stops at the first spelling that returns
    usable data. That spelling supplies every field of the result.
    """

    provider_id = ProviderID.FMP
    base_url = "https://financialmodelingprep.com/stable"
    key_env_name = "FMP_API_KEY"

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

    async def _first_candidate(
        self,
        original: str,
        fetch: Callable[[str], Awaitable[T | None]],
        what: str,
    ) -> T:
        """Try each candidate spelling; return the first non-None result.

        Raises the first vendor/transport error seen, or DataUnavailableError
        if every candidate simply came back without data.
        """
        self._require_key(original)
        first_error: MarketDataError | None = None
        candidates = self._resolver.alternate_vendor_candidates(original)
        for candidate in candidates:
            try:
                result = await fetch(candidate)
            except MarketDataError as e:
                logger.debug("FMP %s failed for %s as %s: %s", what, original, candidate, e)
                if first_error is None:
                    first_error = e
                continue
            if result is not None:
                if candidate != candidates[0]:
                    logger.info("FMP %s for %s resolved via %s", what, original, candidate)
                return result
        if first_error is not None:
            raise first_error
        raise DataUnavailableError(
            f"no {what} from FMP for {original} (tried {', '.join(candidates)})",
            symbol=original,
        )

    async def get_one(self, symbol: str) -> Quote:
        async def fetch(candidate: str) -> Quote | None:
            payload = await self._get_json("/quote", {"symbol": candidate}, symbol=symbol)
            check_envelope(payload, symbol=symbol)
            for row in _rows(payload):
                price = to_float(row.get("price"))
                if price is None:
                    continue
                return Quote(
                    original_symbol=symbol,
                    vendor_symbol=candidate,
                    price=price,
                    change=to_float(row.get("change")),
                    change_percent=to_float(row.get("changePercentage", row.get("changesPercentage"))),
                    volume=to_int(row.get("volume")),
                    previous_close=to_float(row.get("previousClose")),
                    high=to_float(row.get("dayHigh")),
                    low=to_float(row.get("dayLow")),
                    open=to_float(row.get("open")),
                    last_updated=self._clock(),
                    source=QuoteSource.REST_QUOTE,
                    is_intraday=True,
                )
            return None

        quote = await self._first_candidate(symbol, fetch, "quote")
        return self._resolver.normalize_quote(quote)

    async def get_market_cap(self, symbol: str) -> MarketCap:
        async def fetch(candidate: str) -> MarketCap | None:
            payload = await self._get_json("/market-capitalization", {"symbol": candidate}, symbol=symbol)
            check_envelope(payload, symbol=symbol)
            for row in _rows(payload):
                value = to_float(row.get("marketCap"))
                if value is not None:
                    return MarketCap(symbol=symbol, vendor_symbol=candidate, market_cap=value, date=row.get("date"))
            return None

        return await self._first_candidate(symbol, fetch, "market cap")

    async def get_earnings_dates(self, symbol: str) -> list[str]:
        """Earnings dates in the order the vendor returned them."""

        async def fetch(candidate: str) -> list[str] | None:
            payload = await self._get_json("/earnings", {"symbol": candidate}, symbol=symbol)
            check_envelope(payload, symbol=symbol)
            dates = [str(row["date"]) for row in _rows(payload) if row.get("date")]
            return dates or None

        return await self._first_candidate(symbol, fetch, "earnings")

    async def get_next_earnings_date(self, symbol: str) -> str | None:
        """Last element of the vendor's earnings array.

        Assumes FMP returns the array in chronological order; this has not
        been checked against live payloads.
        """
        try:
            dates = await self.get_earnings_dates(symbol)
        except DataUnavailableError:
            return None
        return dates[-1] if dates else None
