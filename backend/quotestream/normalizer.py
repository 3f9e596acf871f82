"""Normalization of raw upstream payloads into Ticks.

Streaming frames and REST snapshot rows arrive with inconsistent field
names. Each Tick field is resolved from an ordered tuple of candidate keys;
the first candidate that is present and not null wins.
"""

from __future__ import annotations

import json
import math
import time
from collections.abc import Mapping
from typing import Any

from .errors import InvalidInstrumentError, MalformedTickError
from .instruments import InstrumentKey, exchange_for_suffix
from .models import Tick

LTP_FIELDS = ("ltp", "last", "price", "LTP", "lastPrice", "last_traded_price")
OPEN_FIELDS = ("open", "Open", "OPEN")
HIGH_FIELDS = ("high", "High", "HIGH")
LOW_FIELDS = ("low", "Low", "LOW")
CLOSE_FIELDS = ("close", "Close", "CLOSE")
VOLUME_FIELDS = ("volume", "Volume", "VOLUME", "total_quantity_traded", "ttq")
LTT_FIELDS = ("ltt", "timestamp", "ltt_time", "LTT", "last_trade_time")
PREVIOUS_CLOSE_FIELDS = ("previous_close", "previousClose", "prev_close", "PreviousClose")
CHANGE_FIELDS = ("change", "day_change", "Change")
CHANGE_PERCENT_FIELDS = ("change_percent", "changePercent", "percent_change", "ltp_percent_change")

SYMBOL_FIELDS = ("symbol", "Symbol")
STOCK_CODE_FIELDS = ("stock_code", "stockCode", "StockCode")
EXCHANGE_CODE_FIELDS = ("exchange_code", "exchangeCode", "ExchangeCode", "exchange")


def first_present(payload: Mapping[str, Any], candidates: tuple[str, ...]) -> Any:
    """Return the value of the first candidate key present and non-null, else None."""
    for name in candidates:
        value = payload.get(name)
        if value is not None and value != "":
            return value
    return None


def _number(payload: Mapping[str, Any], candidates: tuple[str, ...]) -> float:
    value = first_present(payload, candidates)
    if value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise MalformedTickError(f"Non-numeric value {value!r} for {candidates[0]}") from e
    if not math.isfinite(number):
        raise MalformedTickError(f"Non-finite value {value!r} for {candidates[0]}")
    return number


def _optional_number(payload: Mapping[str, Any], candidates: tuple[str, ...]) -> float | None:
    if first_present(payload, candidates) is None:
        return None
    return _number(payload, candidates)


def resolve_key(payload: Mapping[str, Any]) -> InstrumentKey:
    """Derive the instrument key from a payload.

    ``symbol`` ("RELIANCE.BO") carries its exchange as a suffix. Payloads that
    instead name ``stock_code`` / ``exchange_code`` are honoured as given.
    """
    symbol = first_present(payload, SYMBOL_FIELDS)
    try:
        if symbol is not None:
            text = str(symbol).strip()
            base, _, suffix = text.partition(".")
            return InstrumentKey.parse(base, exchange=exchange_for_suffix(suffix))
        stock_code = first_present(payload, STOCK_CODE_FIELDS)
        if stock_code is not None:
            exchange = first_present(payload, EXCHANGE_CODE_FIELDS)
            return InstrumentKey.parse(str(stock_code), exchange=str(exchange) if exchange else None)
    except InvalidInstrumentError as e:
        raise MalformedTickError(str(e)) from e
    raise MalformedTickError("Payload has no symbol")


def normalize_tick(
    payload: Mapping[str, Any],
    key: InstrumentKey | None = None,
    received_at: float | None = None,
) -> Tick:
    """Map a raw streaming or snapshot payload onto a canonical Tick.

    Numeric fields absent from the payload default to zero. Day change is
    derived from ``previous_close`` when it is positive; otherwise an
    upstream ``change`` / ``change_percent`` is used as-is when present and
    the derived fields stay None when it is not.
    """
    if not isinstance(payload, Mapping):
        raise MalformedTickError(f"Expected an object, got {type(payload).__name__}")

    if key is None:
        key = resolve_key(payload)

    ltp = _number(payload, LTP_FIELDS)
    previous_close = _number(payload, PREVIOUS_CLOSE_FIELDS)

    if previous_close > 0:
        day_change_abs: float | None = ltp - previous_close
        day_change_perc: float | None = day_change_abs / previous_close * 100
    else:
        day_change_abs = _optional_number(payload, CHANGE_FIELDS)
        day_change_perc = _optional_number(payload, CHANGE_PERCENT_FIELDS)

    ltt = first_present(payload, LTT_FIELDS)

    return Tick(
        key=key,
        ltp=ltp,
        open=_number(payload, OPEN_FIELDS),
        high=_number(payload, HIGH_FIELDS),
        low=_number(payload, LOW_FIELDS),
        close=_number(payload, CLOSE_FIELDS),
        volume=int(_number(payload, VOLUME_FIELDS)),
        ltt=str(ltt) if ltt is not None else None,
        previous_close=previous_close,
        day_change_abs=day_change_abs,
        day_change_perc=day_change_perc,
        received_at=received_at if received_at is not None else time.time(),
    )


def parse_frame(text: str | bytes, received_at: float | None = None) -> Tick | None:
    """Decode one upstream text frame.

    Returns None for well-formed frames that are not ticks (no ``symbol``:
    acknowledgements, heartbeats). Raises MalformedTickError for anything
    that cannot be decoded.
    """
    try:
        payload = json.loads(text)
    except (TypeError, ValueError) as e:
        raise MalformedTickError(f"Invalid JSON frame: {e}") from e

    if not isinstance(payload, dict):
        raise MalformedTickError(f"Expected a JSON object, got {type(payload).__name__}")
    if first_present(payload, SYMBOL_FIELDS) is None:
        return None
    return normalize_tick(payload, received_at=received_at)
