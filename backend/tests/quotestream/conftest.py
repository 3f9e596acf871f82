"""Fixtures for quote stream tests.

FakeTransport stands in for the upstream so connection and service tests run
without network I/O. Setting its ``gate`` holds ``connect()`` until the event
is set. Frames pushed onto a FakeConnection are delivered by
``recv()`` in order; ``drop()`` makes the next ``recv()`` fail as a real
disconnect would.
"""

import asyncio
import json

import pytest

from quotestream.errors import FeedClosedError, FeedConnectError
from quotestream.instruments import InstrumentKey
from quotestream.interface import FeedConnection, FeedTransport
from quotestream.models import Tick

_DROP = object()


class FakeConnection(FeedConnection):
    def __init__(self, preload: list[str] | None = None) -> None:
        self.sent: list[dict] = []
        self.events: list[tuple[str, str]] = []
        self.closed = False
        self.fail_sends = False
        self._inbound: asyncio.Queue = asyncio.Queue()
        for frame in preload or []:
            self._inbound.put_nowait(frame)

    async def send(self, frame: str) -> None:
        if self.closed or self.fail_sends:
            raise FeedClosedError("fake send failed")
        message = json.loads(frame)
        self.sent.append(message)
        self.events.append(("send", message["type"]))

    async def recv(self) -> str:
        item = await self._inbound.get()
        if item is _DROP:
            raise FeedClosedError("fake drop")
        self.events.append(("recv", item))
        return item

    async def close(self) -> None:
        self.closed = True

    def push(self, payload: dict) -> None:
        self._inbound.put_nowait(json.dumps(payload))

    def push_raw(self, frame: str) -> None:
        self._inbound.put_nowait(frame)

    def drop(self) -> None:
        self._inbound.put_nowait(_DROP)

    def frames(self, action: str) -> list[dict]:
        return [m for m in self.sent if m["type"] == action]


class FakeTransport(FeedTransport):
    def __init__(self) -> None:
        self.connections: list[FakeConnection] = []
        self.connect_calls = 0
        self.failures_remaining = 0
        self.preload: list[str] = []
        self.gate: asyncio.Event | None = None

    async def connect(self) -> FeedConnection:
        self.connect_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.failures_remaining > 0:
            self.failures_remaining -= 1
            raise FeedConnectError("fake refused")
        conn = FakeConnection(preload=self.preload)
        self.preload = []
        self.connections.append(conn)
        return conn

    @property
    def current(self) -> FakeConnection:
        return self.connections[-1]

    def all_sent(self, action: str) -> list[dict]:
        return [m for conn in self.connections for m in conn.frames(action)]


class FakeFetcher:
    """Records snapshot fetches; ``gate`` holds fetches until set."""

    def __init__(self, result: Tick | None = None) -> None:
        self.result = result
        self.calls: list[InstrumentKey] = []
        self.gate: asyncio.Event | None = None
        self.closed = False

    async def fetch(self, key: InstrumentKey) -> Tick | None:
        self.calls.append(key)
        if self.gate is not None:
            await self.gate.wait()
        if self.result is None:
            return None
        return Tick(
            key=key,
            ltp=self.result.ltp,
            volume=self.result.volume,
            previous_close=self.result.previous_close,
        )

    async def aclose(self) -> None:
        self.closed = True


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher(result=Tick(key=InstrumentKey("NSE", "SNAP"), ltp=50.0, volume=10))


@pytest.fixture
def wait_until():
    """Poll a predicate until it holds, failing after a timeout."""
    return _wait_until


@pytest.fixture
def empty_fetcher() -> FakeFetcher:
    """A fetcher whose snapshots never return data."""
    return FakeFetcher(result=None)
