"""REST clients for the three market data vendors."""

from .alpha_vantage import AlphaVantageClient
from .fmp import FMPClient
from .twelve_data import TwelveDataClient

__all__ = ["AlphaVantageClient", "FMPClient", "TwelveDataClient"]
