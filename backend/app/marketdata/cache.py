"""In-memory quote cache with timestamp precedence."""

from __future__ import annotations

import logging
from threading import Lock

from .models import Quote

logger = logging.getLogger(__name__)


class QuoteCache:
    """Latest-known quote per original symbol, plus the last error per symbol.

    Writers: batch fetches, single-symbol refreshes, background fetches, the
    stream reconciler and the alternate-vendor poller. All of them go through
    ``write()``, which keeps whichever quote has the newest ``last_updated``.
    Readers: the SSE endpoint and anything rendering quotes.

    Quotes and errors are independent: a symbol may have a stale quote and a
    current error at the same time.
    """

    def __init__(self) -> None:
        self._quotes: dict[str, Quote] = {}
        self._errors: dict[str, str] = {}
        self._lock = Lock()
        self._version: int = 0  # Monotonically increasing; bumped on every accepted change

    def write(self, quote: Quote) -> bool:
        """Store ``quote`` unless the cached one is newer. Returns True if stored.

        The whole record is replaced; nothing from the older quote survives.
        """
        symbol = quote.original_symbol
        with self._lock:
            current = self._quotes.get(symbol)
            if current is not None and quote.last_updated < current.last_updated:
                logger.debug(
                    "Rejected %s write for %s: %.3f older than cached %.3f (%s)",
                    quote.source.value,
                    symbol,
                    quote.last_updated,
                    current.last_updated,
                    current.source.value,
                )
                return False
            self._quotes[symbol] = quote
            self._errors.pop(symbol, None)
            self._version += 1
            return True

    def record_error(self, symbol: str, message: str) -> None:
        """Remember the latest failure for a symbol. Any cached quote stays."""
        with self._lock:
            self._errors[symbol] = message
            self._version += 1

    def clear_error(self, symbol: str) -> None:
        with self._lock:
            if self._errors.pop(symbol, None) is not None:
                self._version += 1

    def get(self, symbol: str) -> Quote | None:
        """Latest quote for a symbol, or None if never fetched."""
        with self._lock:
            return self._quotes.get(symbol)

    def get_price(self, symbol: str) -> float | None:
        """Convenience: get just the price, or None."""
        quote = self.get(symbol)
        return quote.price if quote else None

    def get_error(self, symbol: str) -> str | None:
        with self._lock:
            return self._errors.get(symbol)

    def get_all(self) -> dict[str, Quote]:
        """Snapshot of all quotes. Returns a shallow copy."""
        with self._lock:
            return dict(self._quotes)

    def get_errors(self) -> dict[str, str]:
        """Snapshot of all errors. Returns a shallow copy."""
        with self._lock:
            return dict(self._errors)

    def snapshot(self) -> dict:
        """JSON-ready view of both maps, taken under one lock."""
        with self._lock:
            return {
                "quotes": {symbol: q.to_dict() for symbol, q in self._quotes.items()},
                "errors": dict(self._errors),
                "version": self._version,
            }

    @property
    def version(self) -> int:
        """Current version counter. Useful for SSE change detection."""
        return self._version

    def __len__(self) -> int:
        with self._lock:
            return len(self._quotes)

    def __contains__(self, symbol: str) -> bool:
        with self._lock:
            return symbol in self._quotes
