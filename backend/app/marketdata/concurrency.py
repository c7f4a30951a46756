"""Small asyncio helpers: cancellation, bounded fan-out, timeout fallbacks."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Iterable
from typing import Any, TypeVar

from .errors import OperationCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Cooperative cancellation flag checked at every suspension point.

    Background fetches are started fire-and-forget; a consumer that goes away
    calls ``cancel()`` and in-flight work stops before its next cache write.
    """

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise OperationCancelledError("operation cancelled")


async def bounded_gather(
    awaitables: Iterable[Awaitable[T]],
    limit: int = 5,
) -> list[T | BaseException]:
    """Run awaitables with at most ``limit`` in flight.

    Results come back in input order; exceptions are returned, not raised,
    so one failure never hides its siblings' outcomes.
    """
    semaphore = asyncio.Semaphore(max(1, limit))

    async def _run(aw: Awaitable[T]) -> T:
        async with semaphore:
            return await aw

    return await asyncio.gather(*(_run(aw) for aw in awaitables), return_exceptions=True)


async def race_with_fallback(
    awaitable: Awaitable[T],
    fallback: Any,
    timeout: float = 1.5,
    *,
    label: str = "operation",
) -> T | Any:
    """Await with a deadline; on timeout or failure return ``fallback``.

    Used for calls that must never block an interactive flow on a slow
    dependency (e.g. a session refresh before a quote lookup).
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("%s timed out after %.1fs, using fallback", label, timeout)
    except Exception as e:
        logger.warning("%s failed (%s), using fallback", label, e)
    return fallback
