"""Chunked aggregate fetching against the primary vendor."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from .cache import QuoteCache
from .concurrency import CancellationToken, bounded_gather
from .errors import MarketDataError, OperationCancelledError
from .models import BatchResult, OperationKind, Quote, QuoteSource, VolumeBatchResult, VolumeSummary
from .providers.twelve_data import TwelveDataClient, quote_from_entry, summarize_volume
from .settings import MarketDataSettings
from .symbols import SymbolMap, SymbolResolver

logger = logging.getLogger(__name__)

# Keys that only appear on a single (non-keyed) Twelve Data object
_SINGLE_OBJECT_KEYS = ("symbol", "close", "values", "meta", "status", "code")


def chunked(items: list[str], size: int) -> list[list[str]]:
    """Split into consecutive chunks of at most ``size`` items."""
    size = max(1, size)
    return [items[i : i + size] for i in range(0, len(items), size)]


def normalize_entries(payload: Any, requested: list[str]) -> list[tuple[str | None, dict[str, Any]]]:
    """Flatten an aggregate response into ``(key, entry)`` pairs.

    Twelve Data answers a multi-symbol call with an object keyed by the
    requested symbol, a single-symbol call with the bare object, and some
    endpoints with a list. ``key`` is the requested vendor symbol when the
    shape tells us, otherwise None and the entry's own fields are used.
    """
    if isinstance(payload, list):
        return [(None, entry) for entry in payload if isinstance(entry, dict)]
    if not isinstance(payload, dict):
        return []

    requested_set = set(requested)
    if any(key in requested_set for key in payload):
        return [(key, entry) for key, entry in payload.items() if isinstance(entry, dict)]

    if any(key in payload for key in _SINGLE_OBJECT_KEYS):
        key = requested[0] if len(requested) == 1 else None
        return [(key, payload)]

    # Keyed by something we did not send verbatim (e.g. bare ticker)
    return [(None, {"symbol": key, **entry}) for key, entry in payload.items() if isinstance(entry, dict)]


def _entry_symbols(entry: dict[str, Any]) -> list[str]:
    symbols = []
    if entry.get("symbol"):
        symbols.append(str(entry["symbol"]).upper())
    meta = entry.get("meta")
    if isinstance(meta, dict) and meta.get("symbol"):
        symbols.append(str(meta["symbol"]).upper())
    return symbols


@dataclass
class _Job:
    """How one operation kind fetches, parses and records its results."""

    kind: OperationKind
    aggregate: Callable[[list[str]], Awaitable[Any]]
    parse: Callable[[dict[str, Any], str, str], Any]
    single: Callable[[str], Awaitable[Any]]
    on_success: Callable[[str, Any], None]
    on_failure: Callable[[str, str], None]


class BatchOrchestrator:
    """Fetches an arbitrary number of symbols in provider-safe chunks.

    Per call:
      1. resolve every symbol once into a bidirectional SymbolMap
      2. split vendor symbols into chunks sized for the operation kind
      3. issue exactly one aggregate request per chunk
      4. demultiplex the response back to original symbols
      5. retry every symbol missing from the response individually, with a
         small bounded-concurrency window
    Chunks run one after another with a fixed delay in between. A chunk that
    blows up is degraded to sequential single-symbol fetches; the remaining
    chunks carry on. Every input symbol ends up in exactly one of the
    result's success or error maps.
    """

    def __init__(
        self,
        provider: TwelveDataClient,
        resolver: SymbolResolver,
        cache: QuoteCache,
        settings: MarketDataSettings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._provider = provider
        self._resolver = resolver
        self._cache = cache
        self._settings = settings or MarketDataSettings()
        self._sleep = sleep
        self._clock = clock

    def chunk_size(self, kind: OperationKind) -> int:
        if kind is OperationKind.VOLUME:
            return self._settings.volume_batch_size
        if kind is OperationKind.MARKET_DATA:
            return self._settings.market_data_batch_size
        return self._settings.quote_batch_size

    # --- Public API ---

    async def fetch_quotes(
        self,
        symbols: list[str],
        kind: OperationKind = OperationKind.QUOTES,
        token: CancellationToken | None = None,
    ) -> BatchResult:
        """Fetch quotes for ``symbols`` and write every success to the cache."""
        result = BatchResult()

        def on_success(original: str, quote: Quote) -> None:
            if token is not None:
                token.raise_if_cancelled()
            if not self._cache.write(quote):
                # A newer quote is already cached; the fetch still succeeded
                self._cache.clear_error(original)
            result.quotes[original] = quote
            result.errors.pop(original, None)

        def on_failure(original: str, message: str) -> None:
            if token is not None:
                token.raise_if_cancelled()
            self._cache.record_error(original, message)
            result.errors[original] = message

        def parse(entry: dict[str, Any], original: str, vendor: str) -> Quote:
            quote = quote_from_entry(
                entry, original, vendor, source=QuoteSource.REST_BATCH, timestamp=self._clock()
            )
            return self._resolver.normalize_quote(quote)

        job = _Job(
            kind=kind,
            aggregate=self._provider.fetch_quote_batch,
            parse=parse,
            single=self._provider.get_one,
            on_success=on_success,
            on_failure=on_failure,
        )
        await self._run(symbols, job, token)
        return result

    async def fetch_volumes(
        self,
        symbols: list[str],
        days: int,
        token: CancellationToken | None = None,
    ) -> VolumeBatchResult:
        """Fetch daily volume summaries. Volumes are returned, not cached."""
        result = VolumeBatchResult()

        def on_success(original: str, summary: VolumeSummary) -> None:
            result.volumes[original] = summary
            result.errors.pop(original, None)

        def on_failure(original: str, message: str) -> None:
            result.errors[original] = message

        job = _Job(
            kind=OperationKind.VOLUME,
            aggregate=lambda vendors: self._provider.fetch_volume_batch(vendors, days),
            parse=lambda entry, original, vendor: summarize_volume(entry, original, vendor, days),
            single=lambda original: self._provider.get_daily_volume(original, days),
            on_success=on_success,
            on_failure=on_failure,
        )
        await self._run(symbols, job, token)
        return result

    # --- Engine ---

    async def _run(self, symbols: list[str], job: _Job, token: CancellationToken | None) -> None:
        symbol_map = self._resolver.build_map(symbols)
        if not symbol_map:
            return

        if not self._provider.is_configured:
            message = f"{self._provider.provider_id.value} API key not configured"
            logger.warning("Skipping %s batch of %d symbols: %s", job.kind.value, len(symbol_map), message)
            for original in symbol_map.originals():
                job.on_failure(original, message)
            return

        chunks = chunked(symbol_map.vendors(), self.chunk_size(job.kind))
        logger.info(
            "Batch %s: %d symbols in %d chunk(s) of up to %d",
            job.kind.value,
            len(symbol_map),
            len(chunks),
            self.chunk_size(job.kind),
        )

        for index, chunk in enumerate(chunks):
            if token is not None:
                token.raise_if_cancelled()
            if index > 0:
                await self._sleep(self._settings.inter_chunk_delay)

            originals = [o for vendor in chunk for o in symbol_map.originals_for(vendor)]
            done: set[str] = set()
            try:
                await self._process_chunk(chunk, originals, symbol_map, job, token, done)
            except OperationCancelledError:
                raise
            except Exception as e:
                logger.warning(
                    "Chunk %d/%d (%s) failed: %s; falling back to sequential fetches",
                    index + 1,
                    len(chunks),
                    job.kind.value,
                    e,
                )
                for original in originals:
                    if original not in done:
                        await self._fetch_single(original, job, token, done)

    async def _process_chunk(
        self,
        chunk: list[str],
        originals: list[str],
        symbol_map: SymbolMap,
        job: _Job,
        token: CancellationToken | None,
        done: set[str],
    ) -> None:
        payload = await job.aggregate(chunk)
        if token is not None:
            token.raise_if_cancelled()

        for key, entry in normalize_entries(payload, chunk):
            for original in self._originals_for(symbol_map, key, entry):
                if original in done:
                    continue
                vendor = symbol_map.vendor_for(original) or original
                try:
                    item = job.parse(entry, original, vendor)
                except MarketDataError as e:
                    job.on_failure(original, str(e))
                else:
                    job.on_success(original, item)
                done.add(original)

        residual = [o for o in originals if o not in done]
        if residual:
            logger.info("Retrying %d symbol(s) missing from aggregate response: %s", len(residual), residual)
            outcomes = await bounded_gather(
                (self._fetch_single(o, job, token, done) for o in residual),
                limit=self._settings.retry_concurrency,
            )
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    raise outcome

    async def _fetch_single(
        self,
        original: str,
        job: _Job,
        token: CancellationToken | None,
        done: set[str],
    ) -> None:
        """The single-symbol fallback path; records exactly one outcome."""
        if token is not None:
            token.raise_if_cancelled()
        try:
            item = await job.single(original)
        except OperationCancelledError:
            raise
        except MarketDataError as e:
            job.on_failure(original, str(e))
        except Exception as e:
            logger.exception("Unexpected error fetching %s", original)
            job.on_failure(original, str(e))
        else:
            job.on_success(original, item)
        done.add(original)

    @staticmethod
    def _originals_for(symbol_map: SymbolMap, key: str | None, entry: dict[str, Any]) -> tuple[str, ...]:
        if key is not None:
            found = symbol_map.originals_for(key)
            if found:
                return found
        for symbol in _entry_symbols(entry):
            found = symbol_map.originals_for(symbol)
            if found:
                return found
        return ()
