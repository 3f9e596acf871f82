"""Factory for creating the market data service."""

from __future__ import annotations

import logging

from .config import Settings
from .interface import FeedTransport
from .service import MarketDataService
from .snapshot import SnapshotFetcher

logger = logging.getLogger(__name__)


def create_transport(settings: Settings) -> FeedTransport:
    """Pick the upstream transport.

    - ``ws_url`` set and non-empty -> WebSocketTransport (real feed)
    - Otherwise -> SimulatedTransport (GBM simulation, no network)
    """
    if settings.ws_url:
        from .websocket_client import WebSocketTransport

        logger.info("Upstream feed: WebSocket %s", settings.ws_url)
        return WebSocketTransport(settings.ws_url)
    else:
        from .simulator import SimulatedTransport

        logger.info("Upstream feed: GBM simulator")
        return SimulatedTransport()


def create_market_data_service(settings: Settings | None = None) -> MarketDataService:
    """Build an unstarted MarketDataService from settings (default: environment).

    Snapshot seeding is only wired for the real feed; the simulator produces
    its first ticks within one update interval.
    Caller must ``await service.start()``.
    """
    settings = settings or Settings.from_env()
    transport = create_transport(settings)
    fetcher = (
        SnapshotFetcher(settings.rest_url, settings.product_type, settings.snapshot_timeout)
        if settings.ws_url
        else None
    )
    return MarketDataService(transport=transport, fetcher=fetcher, settings=settings)
