"""Single upstream connection with replay and timed reconnect."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from enum import Enum

from .errors import FeedConnectError
from .instruments import InstrumentKey
from .interface import FeedConnection, FeedTransport
from .registry import SubscriptionRegistry

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


def control_frame(action: str, key: InstrumentKey) -> str:
    """Encode a subscribe/unsubscribe frame for the upstream."""
    return json.dumps(
        {"type": action, "stock_code": key.symbol, "exchange_code": key.exchange}
    )


class ConnectionManager:
    """Owns the one upstream connection shared by every consumer.

    State machine:
        DISCONNECTED -> CONNECTING -> CONNECTED
        CONNECTED/CONNECTING --(failure)--> DISCONNECTED(reason) -> RECONNECTING(after)
        RECONNECTING --(timer)--> CONNECTING

    On every successful connect the full interest set in the registry is
    replayed before the receive loop starts. Control frames requested while
    connected go through a per-connection outbox drained by a sender task, so
    they never block message processing and are discarded with the
    connection they were meant for. While not connected, requests are
    dropped: the registry already holds the interest and the next replay
    carries it.
    """

    def __init__(
        self,
        transport: FeedTransport,
        registry: SubscriptionRegistry,
        on_message: Callable[[str], None],
        reconnect_delay: float = 5.0,
    ) -> None:
        self._transport = transport
        self._registry = registry
        self._on_message = on_message
        self._reconnect_delay = reconnect_delay

        self._state = ConnectionState.DISCONNECTED
        self._last_disconnect_reason: str | None = None
        self._listeners: list[Callable[[ConnectionState], None]] = []

        self._loop: asyncio.AbstractEventLoop | None = None
        self._task: asyncio.Task | None = None
        self._conn: FeedConnection | None = None
        self._outbox: asyncio.Queue[str] | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._closing = False

    # --- Public API ---

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def last_disconnect_reason(self) -> str | None:
        return self._last_disconnect_reason

    @property
    def reconnect_after(self) -> float | None:
        """Delay of the pending reconnect, or None when none is scheduled."""
        return self._reconnect_delay if self._reconnect_handle is not None else None

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    def add_state_listener(self, callback: Callable[[ConnectionState], None]) -> None:
        self._listeners.append(callback)

    async def start(self) -> None:
        """Begin connecting in the background. Returns immediately."""
        if self._task is not None or self._reconnect_handle is not None:
            return
        self._closing = False
        self._loop = asyncio.get_running_loop()
        self._task = self._loop.create_task(self._run(), name="upstream-connection")

    async def stop(self) -> None:
        """Close the connection for good. Cancels any pending reconnect.

        Safe to call multiple times.
        """
        self._closing = True
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

        task = self._task
        self._task = None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self._close_connection()
        if self._state is not ConnectionState.DISCONNECTED:
            self._last_disconnect_reason = "stopped"
            self._set_state(ConnectionState.DISCONNECTED)
        logger.info("Upstream connection stopped")

    def subscribe(self, key: InstrumentKey) -> None:
        """Send a subscribe frame now if connected; otherwise replay covers it."""
        self._dispatch(control_frame("subscribe", key))

    def unsubscribe(self, key: InstrumentKey) -> None:
        """Send an unsubscribe frame if connected; otherwise nothing to do."""
        self._dispatch(control_frame("unsubscribe", key))

    # --- Internals ---

    def _dispatch(self, frame: str) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._enqueue(frame)
        else:
            loop.call_soon_threadsafe(self._enqueue, frame)

    def _enqueue(self, frame: str) -> None:
        if self._state is ConnectionState.CONNECTED and self._outbox is not None:
            self._outbox.put_nowait(frame)
            logger.debug("Queued control frame: %s", frame)

    async def _run(self) -> None:
        """One connection attempt, from open to loss. Schedules the next on failure."""
        self._set_state(ConnectionState.CONNECTING)
        try:
            conn = await self._transport.connect()
        except FeedConnectError as e:
            self._connection_lost(f"connect failed: {e}")
            return
        except Exception as e:
            logger.exception("Unexpected error connecting upstream")
            self._connection_lost(f"connect failed: {e}")
            return

        self._conn = conn
        self._outbox = asyncio.Queue()
        self._set_state(ConnectionState.CONNECTED)
        logger.info("Upstream connected")

        sender: asyncio.Task | None = None
        receiver: asyncio.Task | None = None
        reason = "connection closed"
        try:
            # Replay goes out before anything is received. Requests arriving
            # meanwhile queue up behind it in the outbox.
            keys = self._registry.active_keys()
            for key in keys:
                await conn.send(control_frame("subscribe", key))
            logger.info("Replayed %d subscription(s)", len(keys))

            sender = asyncio.create_task(self._send_loop(conn, self._outbox))
            receiver = asyncio.create_task(self._receive_loop(conn))
            done, _ = await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
            for finished in done:
                exc = finished.exception()
                if exc is not None:
                    reason = str(exc) or type(exc).__name__
        except Exception as e:
            reason = str(e) or type(e).__name__
        finally:
            for task in (sender, receiver):
                if task is not None and not task.done():
                    task.cancel()
            self._outbox = None

        await self._close_connection()
        self._connection_lost(reason)

    async def _send_loop(self, conn: FeedConnection, outbox: asyncio.Queue[str]) -> None:
        while True:
            frame = await outbox.get()
            await conn.send(frame)

    async def _receive_loop(self, conn: FeedConnection) -> None:
        while True:
            frame = await conn.recv()
            try:
                self._on_message(frame)
            except Exception:
                logger.exception("Failed to process upstream frame")

    async def _close_connection(self) -> None:
        conn = self._conn
        self._conn = None
        if conn is None:
            return
        try:
            await conn.close()
        except Exception as e:
            logger.debug("Ignoring error while closing upstream connection: %s", e)

    def _connection_lost(self, reason: str) -> None:
        self._last_disconnect_reason = reason
        self._set_state(ConnectionState.DISCONNECTED)
        if self._closing:
            return
        logger.warning("Upstream disconnected (%s); retrying in %.1fs", reason, self._reconnect_delay)
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        """Arm the reconnect timer unless one is already pending."""
        self._set_state(ConnectionState.RECONNECTING)
        if self._reconnect_handle is not None or self._loop is None:
            return
        self._reconnect_handle = self._loop.call_later(self._reconnect_delay, self._on_reconnect_timer)

    def _on_reconnect_timer(self) -> None:
        self._reconnect_handle = None
        if self._closing or self._loop is None:
            return
        self._task = self._loop.create_task(self._run(), name="upstream-connection")

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        self._state = state
        for callback in list(self._listeners):
            try:
                callback(state)
            except Exception:
                logger.exception("Connection state listener failed")
