"""HTTP read surface: tick lookup, connectivity flag, SSE stream."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncGenerator

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from .errors import InvalidInstrumentError
from .models import Tick
from .service import MarketDataService

logger = logging.getLogger(__name__)


def create_stream_router(service: MarketDataService) -> APIRouter:
    """Create the market data router bound to one service instance.

    This factory pattern lets us inject the service without globals.
    """
    router = APIRouter(prefix="/api/market", tags=["market"])

    @router.get("/ticks/{key}")
    async def get_tick(key: str) -> dict:
        """Latest tick for ``EXCHANGE:SYMBOL`` (or any accepted symbol spelling)."""
        try:
            tick = service.latest(key)
        except InvalidInstrumentError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        if tick is None:
            raise HTTPException(status_code=404, detail=f"No data for {key}")
        return tick.to_dict()

    @router.get("/status")
    async def get_status() -> dict:
        """Connectivity flag plus the number of subscribed instruments."""
        return {
            "connected": service.is_connected,
            "state": service.state.value,
            "subscriptions": len(service.registry),
        }

    @router.get("/stream")
    async def stream_ticks(request: Request) -> StreamingResponse:
        """SSE endpoint for live ticks.

        The first event carries every known tick. Later events carry only
        the instruments whose price or volume moved since the last event:

            data: {"NSE:RELIANCE": {"ltp": 2951.5, ...}}
        """
        return StreamingResponse(
            _generate_events(service, request),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    return router


async def _generate_events(
    service: MarketDataService,
    request: Request,
    interval: float = 0.5,
) -> AsyncGenerator[str, None]:
    """Yield SSE events until the client disconnects."""
    yield "retry: 1000\n\n"

    last_version = -1
    sent: dict[str, Tick] = {}
    client_ip = request.client.host if request.client else "unknown"
    logger.info("SSE client connected: %s", client_ip)

    try:
        while True:
            if await request.is_disconnected():
                logger.info("SSE client disconnected: %s", client_ip)
                break

            current_version = service.store.version
            if current_version != last_version:
                last_version = current_version
                changed = {
                    key: tick
                    for key, tick in service.ticks().items()
                    if tick.is_material_change_from(sent.get(key))
                }
                if changed:
                    sent.update(changed)
                    data = {key: tick.to_dict() for key, tick in changed.items()}
                    yield f"data: {json.dumps(data)}\n\n"

            await asyncio.sleep(interval)
    except asyncio.CancelledError:
        logger.info("SSE stream cancelled for: %s", client_ip)
