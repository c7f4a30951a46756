"""Alpha Vantage client: identifying and fiscal metadata, never prices."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..errors import DataUnavailableError, ProviderError
from ..models import FundamentalsRecord, ProviderID, Quote
from ..symbols import SymbolResolver
from .base import VendorClient

logger = logging.getLogger(__name__)

_ERROR_FIELDS = ("Error Message", "Note", "Information")


def check_envelope(payload: Any, *, symbol: str | None = None) -> None:
    if not isinstance(payload, dict):
        return
    for name in _ERROR_FIELDS:
        if payload.get(name):
            raise ProviderError(
                str(payload[name]),
                symbol=symbol,
                context={"provider": "alpha_vantage", "rate_limited": name != "Error Message"},
            )


class AlphaVantageClient(VendorClient):
    """Fundamentals vendor (company overview).

    Alpha Vantage has no coverage outside the US, so international listings
    never hit the network: they get a placeholder record with default
    quarter-end dates and ``vendor_supported=False``.
    """

    provider_id = ProviderID.ALPHA_VANTAGE
    base_url = "https://www.alphavantage.co"
    key_env_name = "ALPHA_VANTAGE_API_KEY"

    def __init__(
        self,
        api_key: str | None,
        resolver: SymbolResolver,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        super().__init__(api_key, http_client=http_client, timeout=timeout)
        self._resolver = resolver

    async def get_one(self, symbol: str) -> Quote:
        raise DataUnavailableError("Alpha Vantage is used for fundamentals only", symbol=symbol)

    async def get_overview(self, symbol: str) -> FundamentalsRecord:
        if self._resolver.is_international(symbol):
            logger.debug("Skipping Alpha Vantage for international symbol %s", symbol)
            return FundamentalsRecord.placeholder(symbol)

        vendor = self._resolver.to_vendor_symbol(symbol)
        payload = await self._get_json("/query", {"function": "OVERVIEW", "symbol": vendor}, symbol=symbol)
        check_envelope(payload, symbol=symbol)
        if not isinstance(payload, dict) or not payload.get("Symbol"):
            raise DataUnavailableError(f"no overview for {vendor}", symbol=symbol)

        return FundamentalsRecord(
            symbol=symbol,
            name=payload.get("Name"),
            exchange=payload.get("Exchange"),
            currency=payload.get("Currency"),
            country=payload.get("Country"),
            sector=payload.get("Sector"),
            industry=payload.get("Industry"),
            fiscal_year_end=payload.get("FiscalYearEnd"),
            latest_quarter=payload.get("LatestQuarter"),
        )
