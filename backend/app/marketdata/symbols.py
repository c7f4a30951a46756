"""Ticker normalization between Bloomberg-style input and vendor formats."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from . import exchanges
from .models import ProviderID, Quote

logger = logging.getLogger(__name__)


class SymbolMap:
    """Bidirectional original <-> vendor symbol map built once per batch.

    Several originals may resolve to the same vendor symbol ("AAPL" and
    "AAPL US"), so the reverse side keeps every original in insertion order.
    """

    def __init__(self, pairs: Iterable[tuple[str, str]] = ()) -> None:
        self._to_vendor: dict[str, str] = {}
        self._to_originals: dict[str, list[str]] = {}
        self._folded: dict[str, str] = {}
        for original, vendor in pairs:
            self.add(original, vendor)

    def add(self, original: str, vendor: str) -> None:
        if original in self._to_vendor:
            return
        self._to_vendor[original] = vendor
        self._to_originals.setdefault(vendor, []).append(original)
        self._folded.setdefault(vendor.upper(), vendor)

    def vendor_for(self, original: str) -> str | None:
        return self._to_vendor.get(original)

    def _lookup(self, vendor: str) -> list[str]:
        # Vendors echo symbols in their own case ("ASML:EURONEXT" vs "ASML:Euronext")
        if vendor in self._to_originals:
            return self._to_originals[vendor]
        return self._to_originals.get(self._folded.get(vendor.upper(), ""), [])

    def originals_for(self, vendor: str) -> tuple[str, ...]:
        return tuple(self._lookup(vendor))

    def original_for(self, vendor: str) -> str | None:
        originals = self._lookup(vendor)
        return originals[0] if originals else None

    def originals(self) -> list[str]:
        return list(self._to_vendor)

    def vendors(self) -> list[str]:
        """Unique vendor symbols in first-seen order."""
        return list(self._to_originals)

    def __len__(self) -> int:
        return len(self._to_vendor)

    def __contains__(self, original: str) -> bool:
        return original in self._to_vendor


class SymbolResolver:
    """Maps user-entered tickers (e.g. ``"RKT LN"``) to each vendor's format.

    All methods are pure: the same input always yields the same output and
    nothing is cached or mutated. Tables default to ``exchanges`` but can be
    injected for tests or other deployments.
    """

    def __init__(
        self,
        suffixes: Mapping[str, str] | None = None,
        us_overrides: Mapping[str, str] | None = None,
        alternate_suffixes: Iterable[str] | None = None,
        candidate_suffixes: Mapping[str, tuple[str, ...]] | None = None,
        minor_unit_marker: str = exchanges.MINOR_UNIT_MARKER,
        minor_unit_divisor: float = exchanges.MINOR_UNIT_DIVISOR,
    ) -> None:
        self._suffixes = dict(exchanges.TWELVE_DATA_SUFFIXES if suffixes is None else suffixes)
        self._us_overrides = dict(
            exchanges.US_SYMBOL_OVERRIDES if us_overrides is None else us_overrides
        )
        self._alternate = frozenset(
            exchanges.ALTERNATE_VENDOR_SUFFIXES if alternate_suffixes is None else alternate_suffixes
        )
        self._candidates = dict(
            exchanges.FMP_CANDIDATE_SUFFIXES if candidate_suffixes is None else candidate_suffixes
        )
        self._minor_marker = minor_unit_marker
        self._minor_divisor = minor_unit_divisor

    # --- Parsing ---

    @staticmethod
    def clean(original: str) -> str:
        """Trim, uppercase and turn share-class slashes into dots."""
        return (original or "").strip().upper().replace("/", ".")

    def split(self, original: str) -> tuple[str, str | None]:
        """Split into (ticker, suffix). Suffix is None unless exactly two parts."""
        parts = self.clean(original).split()
        if len(parts) == 2:
            return parts[0], parts[1]
        return self.clean(original), None

    # --- Public API ---

    def to_vendor_symbol(self, original: str) -> str:
        """Primary-vendor spelling, e.g. ``"RKT LN" -> "RKT:LSE"``."""
        cleaned = self.clean(original)
        if not cleaned:
            return cleaned

        base = cleaned.split()[0]
        if base in self._us_overrides:
            return self._us_overrides[base]

        ticker, suffix = self.split(cleaned)
        if suffix is None:
            return cleaned

        tag = self._suffixes.get(suffix)
        if tag is None:
            logger.warning("Unknown exchange suffix %r for symbol %r", suffix, original)
            return cleaned
        return ticker + tag

    def owner_of(self, original: str) -> ProviderID:
        """Which vendor serves quotes for this symbol."""
        _, suffix = self.split(original)
        if suffix is not None and suffix in self._alternate:
            return ProviderID.FMP
        return ProviderID.TWELVE_DATA

    def alternate_vendor_candidates(self, original: str) -> list[str]:
        """FMP spellings to try in order; the first one with a price wins."""
        ticker, suffix = self.split(original)
        if suffix is None or suffix not in self._alternate:
            return [self.to_vendor_symbol(original)]

        tickers = [ticker]
        if suffix == "HK" and ticker.isdigit():
            # FMP lists Hong Kong codes zero-padded to four digits
            tickers = [ticker.zfill(4), ticker]

        candidates: list[str] = []
        for base in tickers:
            for tag in self._candidates.get(suffix, ()):
                candidates.append(base + tag)
        candidates.append(ticker)
        return list(dict.fromkeys(candidates))

    def is_international(self, original: str) -> bool:
        """True for any listing with a non-US exchange suffix."""
        _, suffix = self.split(original)
        return suffix is not None and suffix != exchanges.DOMESTIC_SUFFIX

    def uses_minor_units(self, original: str) -> bool:
        # Substring match on the user-entered ticker
        return self._minor_marker in (original or "").upper()

    def normalize_price(self, original: str, price: float | None) -> float | None:
        if price is None or not self.uses_minor_units(original):
            return price
        return price / self._minor_divisor

    def normalize_quote(self, quote: Quote) -> Quote:
        """Apply the minor-unit rule to every price-bearing field."""
        if not self.uses_minor_units(quote.original_symbol):
            return quote
        return quote.scaled(self._minor_divisor)

    def build_map(self, originals: Iterable[str]) -> SymbolMap:
        return SymbolMap((original, self.to_vendor_symbol(original)) for original in originals)
