"""One-shot REST quote snapshots used to seed new subscriptions."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .errors import MalformedTickError
from .instruments import InstrumentKey
from .models import Tick
from .normalizer import normalize_tick

logger = logging.getLogger(__name__)

NO_DATA_STATUS = 422


class SnapshotFetcher:
    """Fetches the last known quote for an instrument from ``POST /quotes``.

    Used once per first-subscriber transition so a consumer has a value
    before the first streaming tick. Every failure mode (network error, bad
    status, malformed body, "no data") is logged and reported as None; the
    store simply stays unseeded until streaming data arrives.
    """

    def __init__(
        self,
        base_url: str,
        product_type: str = "cash",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._product_type = product_type
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def fetch(self, key: InstrumentKey) -> Tick | None:
        """Return a normalized snapshot tick, or None if none is available."""
        body = {
            "stock_code": key.symbol,
            "exchange_code": key.exchange,
            "product_type": self._product_type,
        }
        try:
            response = await self._client.post(f"{self._base_url}/quotes", json=body)
            data = response.json()
        except httpx.HTTPError as e:
            logger.warning("Snapshot request for %s failed: %s", key, e)
            return None
        except ValueError as e:
            logger.warning("Snapshot for %s is not valid JSON: %s", key, e)
            return None

        if isinstance(data, dict) and data.get("Status") == NO_DATA_STATUS:
            logger.info("No snapshot data for %s", key)
            return None
        if response.status_code >= 400:
            logger.warning("Snapshot for %s returned HTTP %d", key, response.status_code)
            return None

        row = _first_row(data)
        if row is None:
            logger.info("Empty snapshot for %s", key)
            return None

        try:
            return normalize_tick(row, key=key)
        except MalformedTickError as e:
            logger.warning("Malformed snapshot for %s: %s", key, e)
            return None

    async def aclose(self) -> None:
        await self._client.aclose()


def _first_row(data: Any) -> dict | None:
    if not isinstance(data, dict):
        return None
    success = data.get("Success")
    if isinstance(success, list):
        success = success[0] if success else None
    return success if isinstance(success, dict) else None
