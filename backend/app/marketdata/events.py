"""Observer channels for price, connection and subscription notifications."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

E = TypeVar("E")


class EventChannel(Generic[E]):
    """Fan-out of one event kind to any number of listeners.

    Listeners are plain callables. A failing listener is logged and skipped so
    it cannot break the producer or the other listeners.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._listeners: list[Callable[[E], None]] = []

    def subscribe(self, listener: Callable[[E], None]) -> Callable[[], None]:
        """Register a listener. Returns a callable that removes it again."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: E) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Listener on %s channel failed", self.name)

    def __len__(self) -> int:
        return len(self._listeners)


@dataclass(frozen=True, slots=True)
class PriceUpdateEvent:
    original_symbol: str
    vendor_symbol: str
    price: float
    previous_price: float | None
    timestamp: float


@dataclass(frozen=True, slots=True)
class ConnectionStatusEvent:
    state: str
    connected: bool


@dataclass(frozen=True, slots=True)
class SubscriptionStatusEvent:
    """Accumulated outcome since the last reconnect."""

    success_count: int
    failure_count: int
    failed_symbols: tuple[str, ...] = field(default_factory=tuple)
