"""MarketDataService: the single entry point the rest of the app talks to."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from datetime import date

from .batch import BatchOrchestrator
from .cache import QuoteCache
from .concurrency import CancellationToken, bounded_gather, race_with_fallback
from .earnings import EarningsSlot, assign_cyq_slots, relevant_dates
from .errors import DataUnavailableError, MarketDataError, OperationCancelledError
from .events import ConnectionStatusEvent, PriceUpdateEvent, SubscriptionStatusEvent
from .interface import QuoteProvider
from .models import (
    BatchResult,
    FundamentalsRecord,
    OperationKind,
    ProviderID,
    Quote,
    StockSnapshot,
    SymbolMatch,
    VolumeBatchResult,
    VolumeSummary,
)
from .providers import AlphaVantageClient, FMPClient, TwelveDataClient
from .reconciler import StreamReconciler
from .settings import MarketDataSettings
from .symbols import SymbolResolver

logger = logging.getLogger(__name__)

# Roughly three months of trading sessions
ADV_3_MONTH_DAYS = 63


def normalize_symbols(symbols: Iterable[str]) -> list[str]:
    """Strip, uppercase and de-duplicate, keeping first-seen order."""
    return list(dict.fromkeys(s.strip().upper() for s in symbols if s and s.strip()))


class MarketDataService:
    """Facade over the resolver, vendor clients, orchestrator and reconciler.

    Construct one per application (there is no module-level instance) and
    inject whatever needs replacing in tests:

        service = MarketDataService(settings=MarketDataSettings.from_env())
        await service.start()
        result = await service.get_batch_quotes(["AAPL", "RKT LN", "NESN SW"])
        await service.stop()

    Every quote that comes back from any path is written to ``cache``; the
    cache keeps whichever observation is newest.
    """

    def __init__(
        self,
        settings: MarketDataSettings | None = None,
        resolver: SymbolResolver | None = None,
        cache: QuoteCache | None = None,
        primary: TwelveDataClient | None = None,
        alternate: FMPClient | None = None,
        fundamentals: AlphaVantageClient | None = None,
        transport=None,
        session_refresher: Callable[[], Awaitable[object]] | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.settings = settings or MarketDataSettings()
        self.resolver = resolver or SymbolResolver()
        self.cache = cache if cache is not None else QuoteCache()
        timeout = self.settings.http_timeout
        self.primary = primary or TwelveDataClient(
            self.settings.twelve_data_api_key, self.resolver, timeout=timeout, clock=clock
        )
        self.alternate = alternate or FMPClient(
            self.settings.fmp_api_key, self.resolver, timeout=timeout, clock=clock
        )
        self.fundamentals = fundamentals or AlphaVantageClient(
            self.settings.alpha_vantage_api_key, self.resolver, timeout=timeout
        )
        self.transport = transport
        self._session_refresher = session_refresher

        self.orchestrator = BatchOrchestrator(
            self.primary, self.resolver, self.cache, self.settings, sleep=sleep, clock=clock
        )
        self.reconciler = StreamReconciler(
            self.resolver,
            self.cache,
            transport=transport,
            alternate=self.alternate,
            poll_interval=self.settings.alt_poll_interval,
            poll_symbol_delay=self.settings.alt_poll_symbol_delay,
            clock=clock,
            sleep=sleep,
        )
        if transport is not None and hasattr(transport, "set_listener"):
            transport.set_listener(self.reconciler)

        self._background: set[asyncio.Task] = set()
        self._started = False

    # --- Lifecycle ---

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        self.reconciler.start_polling()
        if self.transport is not None and hasattr(self.transport, "start"):
            await self.transport.start()
        logger.info("Market data service started")

    async def stop(self) -> None:
        """Cancel background work and release connections. Safe to call twice."""
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        self._background.clear()

        await self.reconciler.stop()
        if self.transport is not None and hasattr(self.transport, "stop"):
            await self.transport.stop()
        for client in (self.primary, self.alternate, self.fundamentals):
            await client.aclose()
        if self._started:
            logger.info("Market data service stopped")
        self._started = False

    # --- Quotes ---

    def provider_for(self, symbol: str) -> QuoteProvider:
        if self.resolver.owner_of(symbol) is ProviderID.FMP:
            return self.alternate
        return self.primary

    async def get_quote(self, symbol: str) -> Quote:
        """Fetch one quote from whichever vendor owns the symbol.

        Raises the vendor's MarketDataError after recording it in the cache.
        """
        symbol = self._clean(symbol)
        await self._refresh_session()
        return await self._fetch_and_store(symbol)

    async def refresh_quote(self, symbol: str) -> Quote | None:
        """Single-symbol refresh. Failures land in the cache error map only."""
        symbol = self._clean(symbol)
        try:
            return await self._fetch_and_store(symbol)
        except MarketDataError as e:
            logger.info("Refresh of %s failed: %s", symbol, e)
            return None

    async def get_batch_quotes(
        self,
        symbols: Iterable[str],
        token: CancellationToken | None = None,
        kind: OperationKind = OperationKind.QUOTES,
    ) -> BatchResult:
        """Quotes for any number of symbols; each lands in quotes or errors."""
        symbols = normalize_symbols(symbols)
        streamed = [s for s in symbols if self.resolver.owner_of(s) is ProviderID.TWELVE_DATA]
        polled = [s for s in symbols if self.resolver.owner_of(s) is ProviderID.FMP]

        result = BatchResult()
        if streamed:
            result.merge(await self.orchestrator.fetch_quotes(streamed, kind=kind, token=token))
        if polled:
            result.merge(await self._fetch_alternate(polled, token))
        logger.info(
            "Batch quotes: %d ok, %d failed (%d primary, %d alternate)",
            len(result.quotes),
            len(result.errors),
            len(streamed),
            len(polled),
        )
        return result

    async def refresh_universe(
        self, symbols: Iterable[str], token: CancellationToken | None = None
    ) -> BatchResult:
        """Full-universe refresh using the larger market-data chunking."""
        return await self.get_batch_quotes(symbols, token=token, kind=OperationKind.MARKET_DATA)

    def start_background_fetch(
        self, symbols: Iterable[str], token: CancellationToken | None = None
    ) -> asyncio.Task:
        """Fetch, in the background, every symbol the cache has no quote for.

        Returns the task; cancel it or the token to stop further cache writes.
        """
        missing = [s for s in normalize_symbols(symbols) if s not in self.cache]
        task = asyncio.create_task(self._background_fetch(missing, token), name="background-quote-fetch")
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _background_fetch(
        self, symbols: list[str], token: CancellationToken | None
    ) -> BatchResult | None:
        if not symbols:
            return BatchResult()
        logger.info("Background fetch of %d uncached symbol(s)", len(symbols))
        try:
            return await self.get_batch_quotes(symbols, token=token)
        except OperationCancelledError:
            logger.info("Background fetch cancelled")
            return None

    async def _fetch_and_store(self, symbol: str) -> Quote:
        try:
            quote = await self.provider_for(symbol).get_one(symbol)
        except MarketDataError as e:
            self.cache.record_error(symbol, str(e))
            raise
        if not self.cache.write(quote):
            self.cache.clear_error(symbol)
        return quote

    async def _fetch_alternate(self, symbols: list[str], token: CancellationToken | None) -> BatchResult:
        result = BatchResult()

        async def fetch(symbol: str) -> None:
            if token is not None:
                token.raise_if_cancelled()
            try:
                quote = await self.alternate.get_one(symbol)
            except MarketDataError as e:
                if token is not None:
                    token.raise_if_cancelled()
                self.cache.record_error(symbol, str(e))
                result.errors[symbol] = str(e)
                return
            if token is not None:
                token.raise_if_cancelled()
            if not self.cache.write(quote):
                self.cache.clear_error(symbol)
            result.quotes[symbol] = quote

        outcomes = await bounded_gather((fetch(s) for s in symbols), limit=self.settings.retry_concurrency)
        for symbol, outcome in zip(symbols, outcomes):
            if isinstance(outcome, OperationCancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.error("Unexpected error fetching %s", symbol, exc_info=outcome)
                self.cache.record_error(symbol, str(outcome))
                result.errors[symbol] = str(outcome)
        return result

    async def _refresh_session(self) -> None:
        if self._session_refresher is None:
            return
        await race_with_fallback(
            self._session_refresher(),
            None,
            timeout=self.settings.session_timeout,
            label="Session refresh",
        )

    @staticmethod
    def _clean(symbol: str) -> str:
        cleaned = (symbol or "").strip().upper()
        if not cleaned:
            raise DataUnavailableError("empty symbol")
        return cleaned

    # --- Volume ---

    async def get_daily_volume_data(self, symbol: str, days: int = 30) -> VolumeSummary:
        return await self.primary.get_daily_volume(self._clean(symbol), days)

    async def get_batch_daily_volume_data(
        self, symbols: Iterable[str], days: int = 30, token: CancellationToken | None = None
    ) -> VolumeBatchResult:
        return await self.orchestrator.fetch_volumes(normalize_symbols(symbols), days, token=token)

    # --- Streaming ---

    async def update_subscriptions(self, symbols: Iterable[str]) -> None:
        await self.reconciler.update_subscriptions(normalize_symbols(symbols))

    def on_price_update(self, callback: Callable[[PriceUpdateEvent], None]) -> Callable[[], None]:
        return self.reconciler.price_updates.subscribe(callback)

    def on_connection_status(self, callback: Callable[[ConnectionStatusEvent], None]) -> Callable[[], None]:
        return self.reconciler.connection_status.subscribe(callback)

    def on_subscription_status(
        self, callback: Callable[[SubscriptionStatusEvent], None]
    ) -> Callable[[], None]:
        return self.reconciler.subscription_status.subscribe(callback)

    def status(self) -> dict:
        return {
            "stream": self.reconciler.status(),
            "cached_quotes": len(self.cache),
            "errors": len(self.cache.get_errors()),
            "missing_keys": self.settings.missing_keys(),
        }

    # --- Reference data ---

    async def get_stock_data(self, symbol: str) -> StockSnapshot:
        """Name, price, 3-month average daily volume and market cap.

        Each piece is fetched independently; a missing piece comes back as
        None instead of failing the whole snapshot.
        """
        symbol = self._clean(symbol)
        await self._refresh_session()
        quote, profile, volume, market_cap = await asyncio.gather(
            self._fetch_and_store(symbol),
            self.primary.get_profile(symbol),
            self.primary.get_daily_volume(symbol, ADV_3_MONTH_DAYS),
            self.alternate.get_market_cap(symbol),
            return_exceptions=True,
        )
        quote = self._optional(quote, symbol, "quote")
        profile = self._optional(profile, symbol, "profile")
        volume = self._optional(volume, symbol, "volume")
        market_cap = self._optional(market_cap, symbol, "market cap")

        name = profile.name if profile else None
        if name is None and self.fundamentals.is_configured:
            try:
                name = (await self.fundamentals.get_overview(symbol)).name
            except MarketDataError as e:
                logger.debug("No fundamentals name for %s: %s", symbol, e)

        return StockSnapshot(
            symbol=symbol,
            name=name,
            price=quote.price if quote else None,
            adv_3_month=volume.average_volume if volume else None,
            market_cap=market_cap.market_cap if market_cap else None,
        )

    @staticmethod
    def _optional(outcome, symbol: str, what: str):
        if isinstance(outcome, MarketDataError):
            logger.warning("No %s for %s: %s", what, symbol, outcome)
            return None
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def get_fundamentals(self, symbol: str) -> FundamentalsRecord:
        return await self.fundamentals.get_overview(self._clean(symbol))

    async def get_earnings_schedule(self, symbol: str, today: date | None = None) -> list[EarningsSlot]:
        """Recent and upcoming earnings dates slotted into calendar quarters.

        The alternate vendor is asked first and the primary only when that
        yields nothing usable. Raises the first error if both fail outright.
        """
        symbol = self._clean(symbol)
        errors: list[MarketDataError] = []
        for provider in (self.alternate, self.primary):
            try:
                dates = relevant_dates(await provider.get_earnings_dates(symbol), today)
            except MarketDataError as e:
                logger.info("%s earnings unavailable for %s: %s", provider.provider_id.value, symbol, e)
                errors.append(e)
                continue
            if dates:
                return assign_cyq_slots(dates)
            logger.info("%s has no recent earnings for %s", provider.provider_id.value, symbol)
        if len(errors) == 2:
            raise errors[0]
        return []

    async def get_next_earnings_date(self, symbol: str) -> str | None:
        return await self.alternate.get_next_earnings_date(self._clean(symbol))

    async def search_symbols(self, query: str, limit: int = 10) -> list[SymbolMatch]:
        query = (query or "").strip()
        if not query:
            return []
        return await self.primary.search_symbols(query, limit=limit)
