"""Error taxonomy for the market data core."""

from __future__ import annotations

from typing import Any


class MarketDataError(Exception):
    """Base error for every market data failure."""

    def __init__(
        self,
        message: str,
        *,
        symbol: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.symbol = symbol
        self.context = context or {}


class ConfigurationError(MarketDataError):
    """A vendor API key (or other required setting) is missing."""


class ProviderError(MarketDataError):
    """The vendor answered with an error or rate-limit envelope."""

    @property
    def rate_limited(self) -> bool:
        return bool(self.context.get("rate_limited"))


class DataUnavailableError(MarketDataError):
    """The payload was empty, malformed, or lacked a usable price."""


class TransportError(MarketDataError):
    """The HTTP request itself failed (network error or non-2xx status)."""

    @property
    def status_code(self) -> int | None:
        return self.context.get("status_code")


class OperationCancelledError(MarketDataError):
    """Raised at a suspension point after the caller cancelled the work."""
