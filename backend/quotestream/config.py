"""Environment-driven settings."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .instruments import DEFAULT_EXCHANGE


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the quote stream.

    An empty ``ws_url`` selects the offline simulator.
    """

    ws_url: str = ""
    rest_url: str = "http://localhost:8000"
    reconnect_delay: float = 5.0
    default_exchange: str = DEFAULT_EXCHANGE
    product_type: str = "cash"
    snapshot_timeout: float = 10.0

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            ws_url=os.environ.get("QUOTESTREAM_WS_URL", "").strip(),
            rest_url=os.environ.get("QUOTESTREAM_REST_URL", "").strip() or cls.rest_url,
            reconnect_delay=_env_float("QUOTESTREAM_RECONNECT_DELAY", cls.reconnect_delay),
            default_exchange=(
                os.environ.get("QUOTESTREAM_DEFAULT_EXCHANGE", "").strip().upper() or DEFAULT_EXCHANGE
            ),
            product_type=os.environ.get("QUOTESTREAM_PRODUCT_TYPE", "").strip() or cls.product_type,
            snapshot_timeout=_env_float("QUOTESTREAM_SNAPSHOT_TIMEOUT", cls.snapshot_timeout),
        )
