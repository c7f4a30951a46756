"""Abstract interface for quote providers."""

from __future__ import annotations

from abc import ABC, abstractmethod

from .errors import MarketDataError
from .models import ProviderID, Quote


class QuoteProvider(ABC):
    """Contract shared by the three vendor clients.

    Providers never write to the QuoteCache themselves: they return quotes
    (or raise a typed MarketDataError) and the orchestrator, reconciler or
    service decides what lands in the cache.

    Lifecycle:
        provider = TwelveDataClient(api_key=..., resolver=resolver)
        quote = await provider.get_one("AAPL")
        quotes, errors = await provider.get_many(["AAPL", "MSFT"])
        await provider.aclose()
    """

    provider_id: ProviderID

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """True when the vendor's API key is present."""

    @abstractmethod
    async def get_one(self, symbol: str) -> Quote:
        """Fetch one quote for an original (user-facing) symbol.

        Raises a MarketDataError subclass when no usable quote is available.
        """

    async def get_many(self, symbols: list[str]) -> tuple[dict[str, Quote], dict[str, str]]:
        """Fetch several quotes one by one. Failures never abort siblings."""
        quotes: dict[str, Quote] = {}
        errors: dict[str, str] = {}
        for symbol in symbols:
            try:
                quotes[symbol] = await self.get_one(symbol)
            except MarketDataError as e:
                errors[symbol] = str(e)
        return quotes, errors

    async def aclose(self) -> None:
        """Release network resources. Safe to call multiple times."""
