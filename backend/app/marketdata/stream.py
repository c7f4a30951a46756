"""HTTP surface for the UI: quote snapshot plus an SSE feed."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncGenerator

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from .cache import QuoteCache

logger = logging.getLogger(__name__)


def create_stream_router(quote_cache: QuoteCache, interval: float = 0.5) -> APIRouter:
    """Create the market data router with a reference to the quote cache.

    This factory pattern lets us inject the QuoteCache without globals.
    """
    router = APIRouter(prefix="/api", tags=["market-data"])

    @router.get("/market/quotes")
    async def get_quotes() -> dict:
        """Current quotes and per-symbol errors, keyed by original symbol."""
        return quote_cache.snapshot()

    @router.get("/stream/quotes")
    async def stream_quotes(request: Request) -> StreamingResponse:
        """SSE endpoint; emits the full snapshot whenever the cache changes.

            data: {"quotes": {"AAPL": {...}}, "errors": {"RKT LN": "..."}, "version": 42}
        """
        return StreamingResponse(
            _generate_events(quote_cache, request, interval),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",  # Disable nginx buffering if proxied
            },
        )

    return router


async def _generate_events(
    quote_cache: QuoteCache,
    request: Request,
    interval: float = 0.5,
) -> AsyncGenerator[str, None]:
    """Yield SSE events until the client disconnects.

    Polls the cache version every ``interval`` seconds and sends a snapshot
    only when it moved.
    """
    yield "retry: 1000\n\n"

    last_version = -1
    client_ip = request.client.host if request.client else "unknown"
    logger.info("SSE client connected: %s", client_ip)

    try:
        while True:
            if await request.is_disconnected():
                logger.info("SSE client disconnected: %s", client_ip)
                break

            if quote_cache.version != last_version:
                snapshot = quote_cache.snapshot()
                last_version = snapshot["version"]
                yield f"data: {json.dumps(snapshot)}\n\n"

            await asyncio.sleep(interval)
    except asyncio.CancelledError:
        logger.info("SSE stream cancelled for: %s", client_ip)
