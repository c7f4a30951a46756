"""Tests for the Twelve Data websocket transport (socket faked)."""

import asyncio
import json

import pytest

from app.marketdata.models import ConnectionState
from app.marketdata.reconciler import StreamReconciler
from app.marketdata.transport import TwelveDataStreamTransport


class FakeWebSocket:
    """Async-iterable socket that replays canned messages then closes."""

    def __init__(self, messages=()):
        self.messages = list(messages)
        self.sent: list[dict] = []
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.closed = True

    async def send(self, data):
        self.sent.append(json.loads(data))

    async def close(self):
        self.closed = True

    def __aiter__(self):
        return self._replay()

    async def _replay(self):
        for message in self.messages:
            await asyncio.sleep(0)
            yield message


class IdleWebSocket(FakeWebSocket):
    """Socket that stays open with no traffic until cancelled."""

    async def _replay(self):
        await asyncio.Event().wait()
        yield ""


@pytest.mark.asyncio
class TestTwelveDataStreamTransport:
    """Connect loop, chunked subscribe and message dispatch."""

    async def test_session_feeds_reconciler(self, resolver, cache, clock):
        messages = [
            json.dumps({"event": "subscribe-status", "status": "ok", "success": [{"symbol": "AAPL"}], "fails": []}),
            json.dumps({"event": "price", "symbol": "AAPL", "price": 190.25, "day_volume": 1200}),
            json.dumps({"event": "heartbeat", "status": "ok"}),
            json.dumps({"event": "price", "symbol": "NESN", "exchange": "SIX", "price": 9850}),
            "not json",
        ]
        ws = FakeWebSocket(messages)
        urls = []

        def connect(url):
            urls.append(url)
            return ws

        transport = TwelveDataStreamTransport("td-key", connect=connect, reconnect_delay=60.0)
        reconciler = StreamReconciler(resolver, cache, transport=transport, clock=clock)
        transport.set_listener(reconciler)
        await reconciler.update_subscriptions(["AAPL", "NESN SW"])

        states = []
        disconnected = asyncio.Event()

        def on_status(event):
            states.append(event.state)
            if event.state == "disconnected":
                disconnected.set()

        reconciler.connection_status.subscribe(on_status)

        await transport.start()
        await asyncio.wait_for(disconnected.wait(), timeout=1.0)
        await transport.stop()

        assert urls == ["wss://ws.twelvedata.com/v1/quotes/price?apikey=td-key"]
        assert ws.sent[0] == {"action": "subscribe", "params": {"symbols": "AAPL,NESN:SIX"}}
        assert states == ["connecting", "connected", "streaming", "disconnected"]
        assert cache.get_price("AAPL") == 190.25
        assert cache.get("AAPL").volume == 1200
        assert cache.get_price("NESN SW") == pytest.approx(98.5)
        assert reconciler.subscriptions.success_count == 1
        assert reconciler.state is ConnectionState.DISCONNECTED

    async def test_subscribe_is_chunked(self):
        transport = TwelveDataStreamTransport("td-key", chunk_size=2, chunk_delay=0.0)
        transport._ws = FakeWebSocket()

        await transport.subscribe(["A", "B", "C", "D", "E"])
        await transport.unsubscribe(["A"])

        assert [m["params"]["symbols"] for m in transport._ws.sent] == ["A,B", "C,D", "E", "A"]
        assert transport._ws.sent[-1]["action"] == "unsubscribe"

    async def test_subscribe_without_socket_sends_nothing(self, caplog):
        transport = TwelveDataStreamTransport("td-key")
        await transport.subscribe(["AAPL"])
        assert "Websocket closed during subscribe" in caplog.text

    async def test_heartbeat(self):
        transport = TwelveDataStreamTransport("td-key", heartbeat_interval=0.01)
        ws = FakeWebSocket()
        task = asyncio.create_task(transport._heartbeat_loop(ws))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert {"action": "heartbeat"} in ws.sent

    async def test_stop_reports_disconnected(self, resolver, cache, clock):
        ws = IdleWebSocket()
        transport = TwelveDataStreamTransport("td-key", connect=lambda url: ws, heartbeat_interval=60.0)
        reconciler = StreamReconciler(resolver, cache, transport=transport, clock=clock)
        transport.set_listener(reconciler)

        connected = asyncio.Event()
        reconciler.connection_status.subscribe(lambda event: event.connected and connected.set())

        await transport.start()
        await asyncio.wait_for(connected.wait(), timeout=1.0)
        await transport.stop()

        assert reconciler.state is ConnectionState.DISCONNECTED
        assert reconciler.status()["connected"] is False
        assert not transport.connected

    async def test_failed_heartbeat_is_collected(self, caplog):
        ws = FakeWebSocket([json.dumps({"event": "heartbeat"})] * 20)

        async def broken_send(data):
            raise RuntimeError("socket gone")

        ws.send = broken_send
        transport = TwelveDataStreamTransport("td-key", connect=lambda url: ws, heartbeat_interval=0.0)
        sessions_done = asyncio.Event()

        class Listener:
            async def handle_connection_state(self, state):
                if state is ConnectionState.DISCONNECTED:
                    sessions_done.set()

            def handle_price(self, payload):
                return 0

            def handle_subscribe_status(self, success, fails):
                pass

        transport.set_listener(Listener())
        await transport.start()
        await asyncio.wait_for(sessions_done.wait(), timeout=1.0)
        await transport.stop()

        assert "Twelve Data heartbeat failed: socket gone" in caplog.text


class TestReconnectDelay:
    """Linear reconnect backoff."""

    def test_grows_linearly_then_caps(self):
        transport = TwelveDataStreamTransport("td-key", reconnect_delay=5.0)
        delays = [transport.next_reconnect_delay() for _ in range(8)]
        assert delays == [5.0, 10.0, 15.0, 20.0, 25.0, 30.0, 30.0, 30.0]

    def test_cooldown_after_max_attempts(self):
        transport = TwelveDataStreamTransport(
            "td-key", reconnect_delay=1.0, max_reconnect_attempts=3, reconnect_cooldown=60.0
        )
        delays = [transport.next_reconnect_delay() for _ in range(5)]
        assert delays == [1.0, 2.0, 3.0, 60.0, 1.0]
