"""Canonical instrument keys."""

from __future__ import annotations

from dataclasses import dataclass

from .errors import InvalidInstrumentError

DEFAULT_EXCHANGE = "NSE"

# Market suffix -> exchange code. Anything not listed maps to the default.
SUFFIX_EXCHANGES: dict[str, str] = {
    "BO": "BSE",
    "NS": "NSE",
}

# Placeholders that callers pass before a real symbol is known
PLACEHOLDER_SYMBOLS = frozenset({"", "UNKNOWN"})


@dataclass(frozen=True, slots=True)
class InstrumentKey:
    """Canonical (exchange, symbol) pair used for all subscription and storage."""

    exchange: str
    symbol: str

    @classmethod
    def parse(
        cls,
        raw: str,
        exchange: str | None = None,
        default_exchange: str = DEFAULT_EXCHANGE,
    ) -> InstrumentKey:
        """Build a key from any caller spelling.

        Accepts "RELIANCE", "reliance.bo", "RELIANCE.NS" and the read-surface
        form "NSE:RELIANCE". An explicit ``exchange`` wins over anything
        inferred from the string; a bare symbol falls back to
        ``default_exchange``.
        """
        if not isinstance(raw, str):
            raise InvalidInstrumentError(f"Instrument must be a string, got {type(raw).__name__}")

        text = raw.strip()
        prefix: str | None = None
        if ":" in text:
            prefix, _, text = text.partition(":")
            prefix = prefix.strip().upper() or None
            text = text.strip()

        base, _, suffix = text.partition(".")
        symbol = base.strip().upper()
        if symbol in PLACEHOLDER_SYMBOLS:
            raise InvalidInstrumentError(f"Not an instrument: {raw!r}")

        if exchange and exchange.strip():
            resolved = exchange.strip().upper()
        elif prefix:
            resolved = prefix
        else:
            resolved = exchange_for_suffix(suffix, default_exchange)
        return cls(exchange=resolved, symbol=symbol)

    def __str__(self) -> str:
        return f"{self.exchange}:{self.symbol}"


def exchange_for_suffix(suffix: str | None, default: str = DEFAULT_EXCHANGE) -> str:
    """Classify a market suffix ("BO", "NS", ...) into an exchange code."""
    if not suffix:
        return default
    return SUFFIX_EXCHANGES.get(suffix.strip().upper(), default)


def as_key(
    value: InstrumentKey | str,
    exchange: str | None = None,
    default_exchange: str = DEFAULT_EXCHANGE,
) -> InstrumentKey:
    """Coerce a caller-supplied key or symbol string into an InstrumentKey."""
    if isinstance(value, InstrumentKey):
        return value
    return InstrumentKey.parse(value, exchange, default_exchange)
