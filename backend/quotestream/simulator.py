"""GBM-based offline upstream feed."""

from __future__ import annotations

import asyncio
import json
import logging
import math
import random
from collections import deque
from datetime import datetime

import numpy as np

from .errors import FeedClosedError
from .instruments import InstrumentKey
from .interface import FeedConnection, FeedTransport
from .seed_prices import DEFAULT_PARAMS, EXCHANGE_SUFFIXES, SEED_PRICES, TICKER_PARAMS

logger = logging.getLogger(__name__)


class GBMSimulator:
    """Geometric Brownian Motion price paths for a changing set of instruments.

    Math:
        S(t+dt) = S(t) * exp((mu - sigma^2/2) * dt + sigma * sqrt(dt) * Z)

    Each instrument also accumulates a random traded volume per step and keeps
    its seed price as the previous close, so day change is meaningful.
    """

    # One step expressed as a fraction of an NSE trading year
    # 250 trading days * 6.25 hours/day * 3600 seconds/hour
    TRADING_SECONDS_PER_YEAR = 250 * 6.25 * 3600
    DEFAULT_DT = 1.0 / TRADING_SECONDS_PER_YEAR

    def __init__(self, dt: float = DEFAULT_DT, event_probability: float = 0.001) -> None:
        self._dt = dt
        self._event_prob = event_probability
        self._keys: list[InstrumentKey] = []
        self._prices: dict[InstrumentKey, float] = {}
        self._previous_close: dict[InstrumentKey, float] = {}
        self._day_open: dict[InstrumentKey, float] = {}
        self._high: dict[InstrumentKey, float] = {}
        self._low: dict[InstrumentKey, float] = {}
        self._volume: dict[InstrumentKey, int] = {}

    def add(self, key: InstrumentKey) -> None:
        """Start simulating ``key``. A previously removed key resumes its path."""
        if key in self._keys:
            return
        self._keys.append(key)
        if key in self._prices:
            return
        seed = SEED_PRICES.get(key.symbol, random.uniform(100.0, 3000.0))
        self._prices[key] = seed
        self._previous_close[key] = seed
        self._day_open[key] = seed
        self._high[key] = seed
        self._low[key] = seed
        self._volume[key] = 0

    def remove(self, key: InstrumentKey) -> None:
        """Stop emitting ticks for ``key``; its price state is kept."""
        if key in self._keys:
            self._keys.remove(key)

    def clear(self) -> None:
        """Drop every active instrument, as a fresh upstream session would."""
        self._keys.clear()

    @property
    def keys(self) -> list[InstrumentKey]:
        return list(self._keys)

    def step(self) -> list[dict]:
        """Advance every instrument one step. Returns upstream-shaped payloads."""
        n = len(self._keys)
        if n == 0:
            return []

        z = np.random.standard_normal(n)
        traded = np.random.poisson(50.0, n)
        now = datetime.now().strftime("%d-%b-%Y %H:%M:%S")

        payloads: list[dict] = []
        for i, key in enumerate(self._keys):
            params = TICKER_PARAMS.get(key.symbol, DEFAULT_PARAMS)
            mu, sigma = params["mu"], params["sigma"]
            drift = (mu - 0.5 * sigma**2) * self._dt
            diffusion = sigma * math.sqrt(self._dt) * z[i]
            self._prices[key] *= math.exp(drift + diffusion)

            if random.random() < self._event_prob:
                shock = random.uniform(0.01, 0.03) * random.choice([-1, 1])
                self._prices[key] *= 1 + shock
                logger.debug("Random event on %s: %+.1f%%", key, shock * 100)

            price = round(self._prices[key], 2)
            self._high[key] = max(self._high[key], price)
            self._low[key] = min(self._low[key], price)
            self._volume[key] += int(traded[i])

            payloads.append(
                {
                    "symbol": f"{key.symbol}.{EXCHANGE_SUFFIXES.get(key.exchange, 'NS')}",
                    "ltp": price,
                    "open": self._day_open[key],
                    "high": self._high[key],
                    "low": self._low[key],
                    "volume": self._volume[key],
                    "timestamp": now,
                    "previous_close": self._previous_close[key],
                }
            )
        return payloads


class SimulatedConnection(FeedConnection):
    """Answers subscribe/unsubscribe frames with simulated ticks."""

    def __init__(self, simulator: GBMSimulator, interval: float) -> None:
        self._sim = simulator
        self._interval = interval
        self._pending: deque[str] = deque()
        self._closed = asyncio.Event()

    async def send(self, frame: str) -> None:
        if self._closed.is_set():
            raise FeedClosedError("simulator connection closed")
        try:
            message = json.loads(frame)
            key = InstrumentKey.parse(message["stock_code"], exchange=message.get("exchange_code"))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Simulator ignoring bad control frame %r: %s", frame, e)
            return
        if message.get("type") == "subscribe":
            self._sim.add(key)
        elif message.get("type") == "unsubscribe":
            self._sim.remove(key)

    async def recv(self) -> str:
        while not self._pending:
            if self._closed.is_set():
                raise FeedClosedError("simulator connection closed")
            try:
                await asyncio.wait_for(self._closed.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                self._pending.extend(json.dumps(payload) for payload in self._sim.step())
        return self._pending.popleft()

    async def close(self) -> None:
        self._closed.set()


class SimulatedTransport(FeedTransport):
    """FeedTransport that never touches the network.

    Used when no upstream URL is configured. Price paths survive reconnects;
    the subscription set does not, just like a real upstream.
    """

    def __init__(self, update_interval: float = 0.5, event_probability: float = 0.001) -> None:
        self._interval = update_interval
        self._event_prob = event_probability
        self._sim: GBMSimulator | None = None

    async def connect(self) -> FeedConnection:
        if self._sim is None:
            self._sim = GBMSimulator(event_probability=self._event_prob)
        else:
            self._sim.clear()
        logger.info("Connected to simulated feed (%.2fs interval)", self._interval)
        return SimulatedConnection(self._sim, self._interval)
