"""Abstract interface for upstream streaming transports."""

from __future__ import annotations

from abc import ABC, abstractmethod


class FeedConnection(ABC):
    """One open upstream connection carrying JSON text frames.

    Only the ConnectionManager holds a FeedConnection; nothing else sends or
    receives on it.
    """

    @abstractmethod
    async def send(self, frame: str) -> None:
        """Send one text frame.

        Raises FeedClosedError if the connection has dropped.
        """

    @abstractmethod
    async def recv(self) -> str:
        """Wait for the next text frame.

        Raises FeedClosedError when the connection closes, cleanly or not.
        """

    @abstractmethod
    async def close(self) -> None:
        """Close the connection. Safe to call multiple times."""


class FeedTransport(ABC):
    """Factory for upstream connections.

    Lifecycle (driven by ConnectionManager):
        conn = await transport.connect()
        await conn.send('{"type": "subscribe", ...}')
        frame = await conn.recv()
        # ... connection drops, manager waits, then ...
        conn = await transport.connect()
    """

    @abstractmethod
    async def connect(self) -> FeedConnection:
        """Open a new connection.

        Raises FeedConnectError on any failure to establish it.
        """
