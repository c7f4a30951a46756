"""Market data aggregation and real-time synchronization.

Public API:
    Quote               - Immutable quote snapshot dataclass
    QuoteCache          - Thread-safe quote store with timestamp precedence
    SymbolResolver      - Bloomberg-style ticker to vendor symbol mapping
    MarketDataService   - Facade over vendors, batching and the stream
    MarketDataSettings  - Environment-driven configuration
    MarketDataError     - Base of the error taxonomy
    CancellationToken   - Cooperative cancellation for background fetches
    create_market_data_service - Factory that wires a service from settings
    create_stream_router - FastAPI router factory for snapshot and SSE endpoints
"""

from .cache import QuoteCache
from .concurrency import CancellationToken
from .errors import MarketDataError
from .factory import create_market_data_service
from .models import BatchResult, Quote, QuoteSource
from .service import MarketDataService
from .settings import MarketDataSettings
from .stream import create_stream_router
from .symbols import SymbolResolver

__all__ = [
    "BatchResult",
    "CancellationToken",
    "MarketDataError",
    "MarketDataService",
    "MarketDataSettings",
    "Quote",
    "QuoteCache",
    "QuoteSource",
    "SymbolResolver",
    "create_market_data_service",
    "create_stream_router",
]
