"""Error types for the quote stream."""

from __future__ import annotations

from enum import Enum


class QuoteStreamErrorCode(Enum):
    """Error classification codes."""

    INVALID_INSTRUMENT = "invalid_instrument"
    MALFORMED_TICK = "malformed_tick"
    CONNECT_FAILED = "connect_failed"
    CONNECTION_CLOSED = "connection_closed"


class QuoteStreamError(Exception):
    """Quote stream exception with error code and retryable flag.

    Attributes:
        message: Human-readable error description.
        code: Structured error code for programmatic handling.
        retryable: Whether the operation recovers by trying again later.
    """

    def __init__(
        self,
        message: str,
        code: QuoteStreamErrorCode = QuoteStreamErrorCode.MALFORMED_TICK,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.retryable = retryable


class InvalidInstrumentError(QuoteStreamError, ValueError):
    """A symbol that cannot be turned into an InstrumentKey."""

    def __init__(self, message: str) -> None:
        super().__init__(message, QuoteStreamErrorCode.INVALID_INSTRUMENT)


class MalformedTickError(QuoteStreamError, ValueError):
    """A single upstream payload that cannot be normalized."""

    def __init__(self, message: str) -> None:
        super().__init__(message, QuoteStreamErrorCode.MALFORMED_TICK)


class FeedConnectError(QuoteStreamError):
    """Opening the upstream connection failed."""

    def __init__(self, message: str) -> None:
        super().__init__(message, QuoteStreamErrorCode.CONNECT_FAILED, retryable=True)


class FeedClosedError(QuoteStreamError):
    """The upstream connection dropped while sending or receiving."""

    def __init__(self, message: str = "connection closed") -> None:
        super().__init__(message, QuoteStreamErrorCode.CONNECTION_CLOSED, retryable=True)
