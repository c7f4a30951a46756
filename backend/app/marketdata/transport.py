"""Streaming transport: the Twelve Data price websocket.

The transport owns the socket, reconnects, heartbeats and subscribe
chunking. It knows nothing about quotes or the cache; it reports connection
transitions and decoded messages to a StreamListener (the reconciler).
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol

import websockets

from .models import ConnectionState

logger = logging.getLogger(__name__)

TWELVE_DATA_WS_URL = "wss://ws.twelvedata.com/v1/quotes/price"


class StreamTransport(Protocol):
    async def subscribe(self, vendor_symbols: list[str]) -> None: ...

    async def unsubscribe(self, vendor_symbols: list[str]) -> None: ...


class StreamListener(Protocol):
    async def handle_connection_state(self, state: ConnectionState) -> None: ...

    def handle_price(self, payload: dict[str, Any]) -> int: ...

    def handle_subscribe_status(self, success: list[Any], fails: list[Any]) -> None: ...


class TwelveDataStreamTransport:
    """Websocket client for ``wss://ws.twelvedata.com/v1/quotes/price``.

    Subscribe calls are split into chunks of ``chunk_size`` symbols with
    ``chunk_delay`` seconds between them; the vendor acknowledges each chunk
    with its own ``subscribe-status`` message.
    """

    def __init__(
        self,
        api_key: str,
        listener: StreamListener | None = None,
        url: str = TWELVE_DATA_WS_URL,
        chunk_size: int = 100,
        chunk_delay: float = 0.5,
        heartbeat_interval: float = 10.0,
        reconnect_delay: float = 5.0,
        max_reconnect_attempts: int = 10,
        reconnect_cooldown: float = 60.0,
        connect=None,
    ) -> None:
        self._api_key = api_key
        self._listener = listener
        self._url = url
        self._chunk_size = chunk_size
        self._chunk_delay = chunk_delay
        self._heartbeat_interval = heartbeat_interval
        self._reconnect_delay = reconnect_delay
        self._max_reconnect_attempts = max_reconnect_attempts
        self._reconnect_cooldown = reconnect_cooldown
        self._attempts = 0
        self._connect = connect or websockets.connect
        self._ws: Any = None
        self._task: asyncio.Task | None = None
        self._running = False

    def set_listener(self, listener: StreamListener) -> None:
        self._listener = listener

    @property
    def connected(self) -> bool:
        return self._ws is not None

    # --- Lifecycle ---

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._running = True
        self._task = asyncio.create_task(self._run_forever(), name="twelve-data-stream")
        logger.info("Twelve Data stream transport started")

    async def stop(self) -> None:
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        logger.info("Twelve Data stream transport stopped")

    def next_reconnect_delay(self) -> float:
        """Linear backoff capped at six steps; a long cooldown after too many tries."""
        if self._attempts >= self._max_reconnect_attempts:
            logger.error("Max reconnection attempts reached, waiting %.0fs before retry", self._reconnect_cooldown)
            self._attempts = 0
            return self._reconnect_cooldown
        self._attempts += 1
        return self._reconnect_delay * min(self._attempts, 6)

    async def _run_forever(self) -> None:
        """Connect, read until the socket drops, wait, reconnect."""
        while self._running:
            await self._notify_state(ConnectionState.CONNECTING)
            try:
                async with self._connect(f"{self._url}?apikey={self._api_key}") as ws:
                    self._ws = ws
                    self._attempts = 0
                    logger.info("Connected to Twelve Data websocket")
                    await self._notify_state(ConnectionState.CONNECTED)
                    heartbeat = asyncio.create_task(self._heartbeat_loop(ws), name="twelve-data-heartbeat")
                    try:
                        async for raw in ws:
                            self._dispatch(raw)
                    finally:
                        heartbeat.cancel()
                        try:
                            await heartbeat
                        except asyncio.CancelledError:
                            pass
                        except Exception as e:
                            logger.warning("Twelve Data heartbeat failed: %s", e)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("Twelve Data websocket error: %s", e)
            finally:
                self._ws = None
                await self._notify_state(ConnectionState.DISCONNECTED)

            if self._running:
                delay = self.next_reconnect_delay()
                logger.info("Reconnecting to Twelve Data in %.1fs (attempt %d)", delay, self._attempts)
                await asyncio.sleep(delay)

    async def _heartbeat_loop(self, ws: Any) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            await ws.send(json.dumps({"action": "heartbeat"}))

    async def _notify_state(self, state: ConnectionState) -> None:
        if self._listener is None:
            return
        try:
            await self._listener.handle_connection_state(state)
        except Exception:
            logger.exception("Listener failed handling state %s", state.value)

    # --- Outbound ---

    async def subscribe(self, vendor_symbols: list[str]) -> None:
        await self._send_chunked("subscribe", vendor_symbols)

    async def unsubscribe(self, vendor_symbols: list[str]) -> None:
        await self._send_chunked("unsubscribe", vendor_symbols)

    async def _send_chunked(self, action: str, symbols: list[str]) -> None:
        total = (len(symbols) + self._chunk_size - 1) // self._chunk_size
        for number, start in enumerate(range(0, len(symbols), self._chunk_size), start=1):
            if self._ws is None:
                logger.warning("Websocket closed during %s; %d chunk(s) not sent", action, total - number + 1)
                return
            chunk = symbols[start : start + self._chunk_size]
            message = {"action": action, "params": {"symbols": ",".join(chunk)}}
            logger.debug("Sending %s chunk %d/%d (%d symbols)", action, number, total, len(chunk))
            await self._ws.send(json.dumps(message))
            if number < total:
                await asyncio.sleep(self._chunk_delay)

    # --- Inbound ---

    def _dispatch(self, raw: str | bytes) -> None:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring undecodable websocket message")
            return
        if not isinstance(data, dict) or self._listener is None:
            return

        event = data.get("event")
        if event == "subscribe-status":
            self._listener.handle_subscribe_status(data.get("success") or [], data.get("fails") or [])
        elif event in ("unsubscribe-status", "heartbeat"):
            return
        elif data.get("status") == "error" or data.get("code"):
            logger.error("Twelve Data websocket error: %s", data.get("message") or data)
        elif data.get("symbol") and data.get("price") is not None:
            self._listener.handle_price(data)
