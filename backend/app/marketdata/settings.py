"""Environment-driven configuration for the market data core."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)


def _key(env: Mapping[str, str], name: str) -> str | None:
    """Read an API key; empty or whitespace-only counts as absent."""
    value = env.get(name, "").strip()
    return value or None


def _number(env: Mapping[str, str], name: str, default, cast=float):
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using default %s", name, raw, default)
        return default


@dataclass(frozen=True, slots=True)
class MarketDataSettings:
    """Vendor keys plus batching, polling and timeout knobs.

    Every key is independently optional: a missing key only disables that
    vendor's calls (they raise ConfigurationError), the rest keep working.
    """

    twelve_data_api_key: str | None = None
    fmp_api_key: str | None = None
    alpha_vantage_api_key: str | None = None

    quote_batch_size: int = 50
    volume_batch_size: int = 8
    market_data_batch_size: int = 25
    inter_chunk_delay: float = 1.0
    retry_concurrency: int = 5

    alt_poll_interval: float = 60.0
    alt_poll_symbol_delay: float = 0.5

    http_timeout: float = 10.0
    session_timeout: float = 1.5

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> MarketDataSettings:
        env = os.environ if env is None else env
        return cls(
            twelve_data_api_key=_key(env, "TWELVE_DATA_API_KEY"),
            fmp_api_key=_key(env, "FMP_API_KEY"),
            alpha_vantage_api_key=_key(env, "ALPHA_VANTAGE_API_KEY"),
            quote_batch_size=_number(env, "MARKET_DATA_QUOTE_BATCH_SIZE", 50, int),
            volume_batch_size=_number(env, "MARKET_DATA_VOLUME_BATCH_SIZE", 8, int),
            market_data_batch_size=_number(env, "MARKET_DATA_REFRESH_BATCH_SIZE", 25, int),
            inter_chunk_delay=_number(env, "MARKET_DATA_CHUNK_DELAY", 1.0),
            retry_concurrency=_number(env, "MARKET_DATA_RETRY_CONCURRENCY", 5, int),
            alt_poll_interval=_number(env, "MARKET_DATA_ALT_POLL_INTERVAL", 60.0),
            alt_poll_symbol_delay=_number(env, "MARKET_DATA_ALT_POLL_DELAY", 0.5),
            http_timeout=_number(env, "MARKET_DATA_HTTP_TIMEOUT", 10.0),
            session_timeout=_number(env, "MARKET_DATA_SESSION_TIMEOUT", 1.5),
        )

    def missing_keys(self) -> list[str]:
        """Names of vendor keys that are not configured."""
        missing = []
        if not self.twelve_data_api_key:
            missing.append("TWELVE_DATA_API_KEY")
        if not self.fmp_api_key:
            missing.append("FMP_API_KEY")
        if not self.alpha_vantage_api_key:
            missing.append("ALPHA_VANTAGE_API_KEY")
        return missing
