"""WebSocket transport for the real upstream tick feed."""

from __future__ import annotations

import logging

import websockets

from .errors import FeedClosedError, FeedConnectError
from .interface import FeedConnection, FeedTransport

logger = logging.getLogger(__name__)


class WebSocketConnection(FeedConnection):
    """FeedConnection over an open ``websockets`` client connection."""

    def __init__(self, ws) -> None:
        self._ws = ws

    async def send(self, frame: str) -> None:
        try:
            await self._ws.send(frame)
        except websockets.ConnectionClosed as e:
            raise FeedClosedError(f"send failed: {e}") from e

    async def recv(self) -> str:
        try:
            message = await self._ws.recv()
        except websockets.ConnectionClosed as e:
            raise FeedClosedError(f"upstream closed: {e}") from e
        if isinstance(message, bytes):
            return message.decode("utf-8", errors="replace")
        return message

    async def close(self) -> None:
        await self._ws.close()


class WebSocketTransport(FeedTransport):
    """Opens connections to the upstream ``/ws/ticks`` endpoint.

    Keepalive pings are left to the websockets library; a missed pong
    surfaces as ConnectionClosed and therefore as FeedClosedError.
    """

    def __init__(self, url: str, open_timeout: float = 10.0) -> None:
        self._url = url
        self._open_timeout = open_timeout

    @property
    def url(self) -> str:
        return self._url

    async def connect(self) -> FeedConnection:
        logger.info("Connecting to upstream feed: %s", self._url)
        try:
            ws = await websockets.connect(self._url, open_timeout=self._open_timeout)
        except (OSError, TimeoutError, websockets.InvalidHandshake, websockets.InvalidURI) as e:
            raise FeedConnectError(f"{self._url}: {e}") from e
        return WebSocketConnection(ws)
