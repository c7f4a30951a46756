"""Reconciles the streaming price feed with REST-polled snapshots."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from typing import Any

from .cache import QuoteCache
from .concurrency import CancellationToken
from .errors import MarketDataError
from .events import ConnectionStatusEvent, EventChannel, PriceUpdateEvent, SubscriptionStatusEvent
from .interface import QuoteProvider
from .models import ConnectionState, ProviderID, Quote, QuoteSource
from .providers.base import to_float, to_int
from .symbols import SymbolMap, SymbolResolver
from .transport import StreamTransport

logger = logging.getLogger(__name__)


def _status_symbol(item: Any) -> str:
    """subscribe-status entries are either bare strings or ``{"symbol": ...}``."""
    if isinstance(item, dict):
        return str(item.get("symbol", ""))
    return str(item)


@dataclass
class SubscriptionState:
    """What the vendor has been asked to stream since the last reconnect."""

    tracked: set[str] = field(default_factory=set)
    success_count: int = 0
    failure_count: int = 0
    failed_symbols: list[str] = field(default_factory=list)

    def reset(self) -> None:
        self.tracked.clear()
        self.success_count = 0
        self.failure_count = 0
        self.failed_symbols.clear()

    def record(self, success: list[str], fails: list[str]) -> None:
        self.success_count += len(success)
        self.failure_count += len(fails)
        for symbol in fails:
            if symbol not in self.failed_symbols:
                self.failed_symbols.append(symbol)


class StreamReconciler:
    """Keeps the vendor subscription in sync with the symbol universe.

    The universe splits in two: symbols the primary vendor streams, and
    symbols routed to the alternate vendor, which are polled on a timer
    instead. Stream ticks and poll results both go through ``cache.write()``,
    so whichever observation is newest wins regardless of path.

    The reconciler never reconnects; the transport does and reports
    transitions through ``handle_connection_state()``.
    """

    def __init__(
        self,
        resolver: SymbolResolver,
        cache: QuoteCache,
        transport: StreamTransport | None = None,
        alternate: QuoteProvider | None = None,
        poll_interval: float = 60.0,
        poll_symbol_delay: float = 0.5,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._resolver = resolver
        self._cache = cache
        self._transport = transport
        self._alternate = alternate
        self._poll_interval = poll_interval
        self._poll_symbol_delay = poll_symbol_delay
        self._clock = clock
        self._sleep = sleep

        self.price_updates: EventChannel[PriceUpdateEvent] = EventChannel("price")
        self.connection_status: EventChannel[ConnectionStatusEvent] = EventChannel("connection")
        self.subscription_status: EventChannel[SubscriptionStatusEvent] = EventChannel("subscription")

        self._universe: list[str] = []
        self._symbol_map = SymbolMap()
        self._alternate_symbols: list[str] = []
        self._subscriptions = SubscriptionState()
        self._state = ConnectionState.DISCONNECTED

        self._poll_task: asyncio.Task | None = None
        self._poll_token: CancellationToken | None = None

    # --- Properties ---

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def subscriptions(self) -> SubscriptionState:
        return self._subscriptions

    @property
    def desired(self) -> set[str]:
        """Vendor symbols that should be streamed right now."""
        return set(self._symbol_map.vendors())

    @property
    def polled_symbols(self) -> list[str]:
        return list(self._alternate_symbols)

    # --- Subscriptions ---

    async def update_subscriptions(self, symbols: list[str]) -> None:
        """Replace the symbol universe and send the subscription delta."""
        self._universe = list(dict.fromkeys(s for s in symbols if s))
        self._recompute()
        if self._state.is_up:
            await self._sync()
        else:
            logger.debug("Stream down; deferring subscription of %d symbols", len(self._symbol_map))

    def _recompute(self) -> None:
        streamed, polled = [], []
        for symbol in self._universe:
            if self._resolver.owner_of(symbol) is ProviderID.FMP:
                polled.append(symbol)
            else:
                streamed.append(symbol)
        self._symbol_map = self._resolver.build_map(streamed)
        self._alternate_symbols = polled

    async def _sync(self) -> None:
        if self._transport is None:
            return
        tracked = self._subscriptions.tracked
        desired = self._symbol_map.vendors()
        removed = sorted(tracked - set(desired))
        added = [v for v in desired if v not in tracked]
        if not removed and not added:
            logger.debug("Subscriptions already in sync (%d symbols)", len(tracked))
            return

        # Claim the delta before awaiting so an overlapping update sees it
        tracked.difference_update(removed)
        tracked.update(added)
        if removed:
            logger.info("Unsubscribing %d symbol(s)", len(removed))
            await self._transport.unsubscribe(removed)
        if added:
            logger.info("Subscribing %d symbol(s)", len(added))
            try:
                await self._transport.subscribe(added)
            except Exception:
                tracked.difference_update(added)
                raise

    # --- Transport callbacks ---

    async def handle_connection_state(self, state: ConnectionState) -> None:
        previous = self._state
        if state is previous:
            return
        self._state = state
        logger.info("Stream connection %s -> %s", previous.value, state.value)
        self.connection_status.publish(ConnectionStatusEvent(state=state.value, connected=state.is_up))

        if state is ConnectionState.CONNECTED and previous in (
            ConnectionState.DISCONNECTED,
            ConnectionState.CONNECTING,
        ):
            # The vendor forgets everything on reconnect; resend the full set
            self._subscriptions.reset()
            self._recompute()
            await self._sync()

    def handle_price(self, payload: dict[str, Any]) -> int:
        """Apply one price tick. Returns how many cache entries changed."""
        vendor = str(payload.get("symbol") or "").strip()
        originals = self._symbol_map.originals_for(vendor)
        if not originals and payload.get("exchange"):
            originals = self._symbol_map.originals_for(f"{vendor}:{str(payload['exchange']).strip()}")
        if not originals:
            logger.debug("Ignoring tick for unmapped symbol %s", vendor)
            return 0

        raw_price = to_float(payload.get("price"))
        if raw_price is None:
            logger.warning("Tick for %s has no usable price", vendor)
            return 0

        written = 0
        for original in originals:
            price = self._resolver.normalize_price(original, raw_price)
            current = self._cache.get(original)
            if current is not None and current.price == price:
                continue
            now = self._clock()
            quote = Quote(
                original_symbol=original,
                vendor_symbol=self._symbol_map.vendor_for(original) or vendor,
                price=price,
                volume=to_int(payload.get("day_volume")),
                last_updated=now,
                source=QuoteSource.WEBSOCKET,
                is_intraday=True,
            )
            if self._cache.write(quote):
                written += 1
                self.price_updates.publish(
                    PriceUpdateEvent(
                        original_symbol=original,
                        vendor_symbol=quote.vendor_symbol,
                        price=price,
                        previous_price=current.price if current else None,
                        timestamp=now,
                    )
                )

        if self._state is ConnectionState.CONNECTED:
            self._state = ConnectionState.STREAMING
            logger.info("Stream connection connected -> streaming")
            self.connection_status.publish(ConnectionStatusEvent(state=self._state.value, connected=True))
        return written

    def handle_subscribe_status(self, success: list[Any], fails: list[Any]) -> None:
        ok = [_status_symbol(item) for item in success]
        failed = [_status_symbol(item) for item in fails]
        self._subscriptions.record(ok, failed)
        if failed:
            logger.warning("Stream subscription failed for %d symbol(s): %s", len(failed), failed)
        state = self._subscriptions
        self.subscription_status.publish(
            SubscriptionStatusEvent(
                success_count=state.success_count,
                failure_count=state.failure_count,
                failed_symbols=tuple(state.failed_symbols),
            )
        )

    # --- Alternate-vendor polling ---

    async def poll_alternate_once(self, token: CancellationToken | None = None) -> int:
        """One sequential pass over the alternate-routed symbols."""
        if self._alternate is None or not self._alternate_symbols:
            return 0

        written = 0
        for index, symbol in enumerate(list(self._alternate_symbols)):
            if token is not None and token.cancelled:
                break
            if index > 0:
                await self._sleep(self._poll_symbol_delay)
            try:
                quote = await self._alternate.get_one(symbol)
            except MarketDataError as e:
                logger.debug("Alternate poll failed for %s: %s", symbol, e)
                if token is None or not token.cancelled:
                    self._cache.record_error(symbol, str(e))
                continue
            if token is not None and token.cancelled:
                break

            previous = self._cache.get_price(symbol)
            quote = replace(quote, source=QuoteSource.ALT_VENDOR_POLL)
            if self._cache.write(quote):
                written += 1
                if quote.price is not None and quote.price != previous:
                    self.price_updates.publish(
                        PriceUpdateEvent(
                            original_symbol=symbol,
                            vendor_symbol=quote.vendor_symbol,
                            price=quote.price,
                            previous_price=previous,
                            timestamp=quote.last_updated,
                        )
                    )
            else:
                self._cache.clear_error(symbol)
        return written

    async def _poll_loop(self, token: CancellationToken) -> None:
        while not token.cancelled:
            try:
                await self.poll_alternate_once(token)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Alternate-vendor poll pass failed")
            await self._sleep(self._poll_interval)

    def start_polling(self) -> None:
        if self._poll_task is not None and not self._poll_task.done():
            return
        self._poll_token = CancellationToken()
        self._poll_task = asyncio.create_task(self._poll_loop(self._poll_token), name="alt-vendor-poller")
        logger.info("Alternate-vendor poller started, interval %.1fs", self._poll_interval)

    async def stop(self) -> None:
        if self._poll_token is not None:
            self._poll_token.cancel()
        if self._poll_task and not self._poll_task.done():
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
        self._poll_task = None
        self._poll_token = None

    def status(self) -> dict[str, Any]:
        state = self._subscriptions
        return {
            "state": self._state.value,
            "connected": self._state.is_up,
            "tracked": len(state.tracked),
            "desired": len(self._symbol_map.vendors()),
            "polled": len(self._alternate_symbols),
            "success_count": state.success_count,
            "failure_count": state.failure_count,
            "failed_symbols": list(state.failed_symbols),
            "polling": self._poll_task is not None and not self._poll_task.done(),
        }
