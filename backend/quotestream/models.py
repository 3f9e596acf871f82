"""Data models for streamed quotes."""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from .instruments import InstrumentKey


@dataclass(frozen=True, slots=True)
class Tick:
    """Immutable, normalized market-data observation for one instrument.

    ``day_change_abs`` and ``day_change_perc`` are None when neither a positive
    previous close nor an upstream-supplied change was available.
    """

    key: InstrumentKey
    ltp: float
    open: float = 0.0
    high: float = 0.0
    low: float = 0.0
    close: float = 0.0
    volume: int = 0
    ltt: str | None = None  # Last trade time, as sent upstream
    previous_close: float = 0.0
    day_change_abs: float | None = None
    day_change_perc: float | None = None
    received_at: float = field(default_factory=time.time)  # Unix seconds, local clock

    def is_material_change_from(self, previous: Tick | None) -> bool:
        """True when price or volume moved relative to ``previous``."""
        if previous is None:
            return True
        return self.ltp != previous.ltp or self.volume != previous.volume

    @property
    def direction(self) -> str:
        """'up', 'down', or 'flat' relative to the previous close."""
        if self.day_change_abs is None or self.day_change_abs == 0:
            return "flat"
        return "up" if self.day_change_abs > 0 else "down"

    def to_dict(self) -> dict:
        """Serialize for JSON / SSE transmission."""
        return {
            "key": str(self.key),
            "stock_code": self.key.symbol,
            "exchange_code": self.key.exchange,
            "ltp": self.ltp,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
            "ltt": self.ltt,
            "previous_close": self.previous_close,
            "day_change_abs": self.day_change_abs,
            "day_change_perc": self.day_change_perc,
            "direction": self.direction,
            "received_at": self.received_at,
        }
