"""Shared real-time quote stream.

Public API:
    InstrumentKey       - Canonical (exchange, symbol) key
    Tick                - Immutable normalized quote
    TickStore           - Thread-safe latest-tick store with change detection
    SubscriptionRegistry - Reference-counted interest map
    ConnectionManager   - Single upstream connection with replay and reconnect
    MarketDataService   - Session object consumers acquire handles from
    SubscriptionHandle  - Scoped interest in one instrument
    Settings            - Environment-driven configuration
    create_market_data_service - Factory that selects the websocket feed or simulator
    create_stream_router - FastAPI router factory for the read surface
"""

from .cache import TickStore
from .config import Settings
from .connection import ConnectionManager, ConnectionState
from .factory import create_market_data_service
from .instruments import InstrumentKey
from .models import Tick
from .registry import SubscriptionRegistry
from .service import MarketDataService, SubscriptionHandle
from .stream import create_stream_router

__all__ = [
    "InstrumentKey",
    "Tick",
    "TickStore",
    "SubscriptionRegistry",
    "ConnectionManager",
    "ConnectionState",
    "MarketDataService",
    "SubscriptionHandle",
    "Settings",
    "create_market_data_service",
    "create_stream_router",
]
