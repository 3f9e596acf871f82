"""Session-scoped market data service and subscription handles."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from .cache import TickCallback, TickStore
from .config import Settings
from .connection import ConnectionManager, ConnectionState
from .errors import MalformedTickError
from .instruments import InstrumentKey, as_key
from .interface import FeedTransport
from .models import Tick
from .normalizer import parse_frame
from .registry import SubscriptionRegistry
from .snapshot import SnapshotFetcher

logger = logging.getLogger(__name__)


class SubscriptionHandle:
    """A consumer's declared interest in one instrument.

    Release happens exactly once, however many times ``release()`` is called
    and whichever way a ``with`` / ``async with`` block is left.
    """

    def __init__(
        self,
        service: MarketDataService,
        key: InstrumentKey,
        unwatch: Callable[[], None] | None = None,
    ) -> None:
        self._service = service
        self._key = key
        self._unwatch = unwatch
        self._released = False

    @property
    def key(self) -> InstrumentKey:
        return self._key

    @property
    def released(self) -> bool:
        return self._released

    def latest(self) -> Tick | None:
        return self._service.latest(self._key)

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        if self._unwatch is not None:
            self._unwatch()
            self._unwatch = None
        self._service._release(self._key)

    def __enter__(self) -> SubscriptionHandle:
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()

    async def __aenter__(self) -> SubscriptionHandle:
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "released" if self._released else "active"
        return f"<SubscriptionHandle {self._key} {state}>"


class MarketDataService:
    """Owns the registry, tick store and upstream connection for one session.

    Construct once and pass it to every consumer; there is no global instance.

    Lifecycle:
        service = create_market_data_service()
        await service.start()
        with service.acquire("RELIANCE.NS") as handle:
            ...
            tick = handle.latest()
        await service.stop()
    """

    def __init__(
        self,
        transport: FeedTransport,
        fetcher: SnapshotFetcher | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._fetcher = fetcher
        self.registry = SubscriptionRegistry()
        self.store = TickStore()
        self.connection = ConnectionManager(
            transport=transport,
            registry=self.registry,
            on_message=self._handle_frame,
            reconnect_delay=self._settings.reconnect_delay,
        )
        self._snapshot_tasks: set[asyncio.Task] = set()
        self._loop: asyncio.AbstractEventLoop | None = None

    async def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        await self.connection.start()
        # Keys acquired before start() had no loop to fetch on
        for key in self.registry.active_keys():
            if not self.store.is_current(key):
                self._spawn_snapshot(key)
        logger.info("Market data service started")

    async def stop(self) -> None:
        await self.connection.stop()
        for task in list(self._snapshot_tasks):
            task.cancel()
        if self._snapshot_tasks:
            await asyncio.gather(*self._snapshot_tasks, return_exceptions=True)
        self._snapshot_tasks.clear()
        if self._fetcher is not None:
            await self._fetcher.aclose()
        logger.info("Market data service stopped")

    # --- Consumer API ---

    def acquire(
        self,
        instrument: InstrumentKey | str,
        exchange: str | None = None,
        on_tick: TickCallback | None = None,
    ) -> SubscriptionHandle:
        """Declare interest in an instrument until the returned handle is released.

        The first consumer of a key triggers the upstream subscribe frame (or
        defers it to the next replay) and a background snapshot fetch.
        Raises InvalidInstrumentError for placeholder symbols.

        Callable from any thread. The reference count changes on the service
        loop, in call order, so it always agrees with the frames sent.
        """
        key = as_key(instrument, exchange, self._settings.default_exchange)
        unwatch = self.store.watch(key, on_tick) if on_tick is not None else None
        self._call_on_loop(self._add_interest, key)
        return SubscriptionHandle(self, key, unwatch)

    def latest(self, instrument: InstrumentKey | str, exchange: str | None = None) -> Tick | None:
        key = as_key(instrument, exchange, self._settings.default_exchange)
        return self.store.latest(key)

    def ticks(self) -> dict[str, Tick]:
        """All known ticks keyed as ``EXCHANGE:SYMBOL``."""
        return {str(key): tick for key, tick in self.store.get_all().items()}

    @property
    def is_connected(self) -> bool:
        return self.connection.is_connected

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    # --- Internals ---

    def _release(self, key: InstrumentKey) -> None:
        self._call_on_loop(self._drop_interest, key)

    def _call_on_loop(self, callback: Callable[[InstrumentKey], None], key: InstrumentKey) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            callback(key)
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            callback(key)
        else:
            loop.call_soon_threadsafe(callback, key)

    def _add_interest(self, key: InstrumentKey) -> None:
        if not self.registry.increment(key):
            return
        logger.info("Subscribing %s", key)
        self.connection.subscribe(key)
        # Whatever is stored is from an earlier subscription
        self.store.invalidate(key)
        if self._loop is not None and not self._loop.is_closed():
            self._spawn_snapshot(key)

    def _drop_interest(self, key: InstrumentKey) -> None:
        if self.registry.decrement(key):
            logger.info("Unsubscribing %s", key)
            self.connection.unsubscribe(key)

    def _spawn_snapshot(self, key: InstrumentKey) -> None:
        if self._fetcher is None:
            return
        task = self._loop.create_task(self._seed_from_snapshot(key), name=f"snapshot-{key}")
        self._snapshot_tasks.add(task)
        task.add_done_callback(self._snapshot_tasks.discard)

    async def _seed_from_snapshot(self, key: InstrumentKey) -> None:
        tick = await self._fetcher.fetch(key)
        if tick is None:
            return
        if self.store.seed(key, tick):
            logger.debug("Seeded %s from snapshot", key)
        else:
            logger.debug("Streaming data for %s arrived first; snapshot discarded", key)

    def _handle_frame(self, frame: str) -> None:
        try:
            tick = parse_frame(frame)
        except MalformedTickError as e:
            logger.warning("Discarding malformed frame: %s", e)
            return
        if tick is None:
            logger.debug("Ignoring non-tick frame: %.200s", frame)
            return
        self.store.apply(tick.key, tick)
