"""Factory for creating the market data service."""

from __future__ import annotations

import logging

from .cache import QuoteCache
from .service import MarketDataService
from .settings import MarketDataSettings
from .transport import TwelveDataStreamTransport

logger = logging.getLogger(__name__)


def create_market_data_service(
    settings: MarketDataSettings | None = None,
    cache: QuoteCache | None = None,
    stream: bool = True,
) -> MarketDataService:
    """Build a service from settings (environment variables by default).

    - TWELVE_DATA_API_KEY set → REST quotes plus the websocket stream
    - FMP_API_KEY set → alternate markets, market cap, earnings
    - ALPHA_VANTAGE_API_KEY set → fundamentals
    Missing keys only disable their vendor.

    Returns an unstarted service. Caller must await service.start().
    """
    settings = settings or MarketDataSettings.from_env()

    missing = settings.missing_keys()
    if missing:
        logger.warning("Market data keys not configured: %s", ", ".join(missing))

    transport = None
    if stream and settings.twelve_data_api_key:
        logger.info("Market data stream: Twelve Data websocket")
        transport = TwelveDataStreamTransport(api_key=settings.twelve_data_api_key)
    else:
        logger.info("Market data stream: disabled (REST and polling only)")

    return MarketDataService(settings=settings, cache=cache, transport=transport)
