"""
Exception hierarchy for the option board.

Three families:
- MalformedRecordError: a feed record that cannot become an OptionTick
  (recovered locally by the ingestion worker, record dropped)
- ChainError: a selection that has no answer on the current chain
  (surfaced to the caller)
- FeedError: the market-data connection is unusable
"""

from typing import Any, Optional


class OptboardError(Exception):
    """Base exception for optboard."""


class MalformedRecordError(OptboardError, ValueError):
    """
    Exception raised when a feed record cannot be decoded into a tick.

    Attributes:
        reason: Human-readable reason the record was rejected
        record: The offending record (if available)
    """

    def __init__(self, reason: str, record: Optional[Any] = None):
        self.reason = reason
        self.record = record
        super().__init__(reason)


class NoQuoteError(MalformedRecordError):
    """Both bid and ask IV are empty, so the record carries no usable IV."""


class ChainError(OptboardError):
    """Base exception for chain selections with no answer."""


class EmptyChainError(ChainError, ValueError):
    """Raised when a selection needs at least one tick and the chain has none."""


class MaturityIndexError(ChainError, IndexError):
    """
    Raised when a maturity bucket index is beyond the available maturities.

    Attributes:
        index: Requested bucket index
        available: Number of distinct maturities in the ladder
    """

    def __init__(self, index: int, available: int):
        self.index = index
        self.available = available
        super().__init__(
            f"Maturity index {index} out of range ({available} maturities available)"
        )


class FeedError(OptboardError, ConnectionError):
    """Market-data feed failure."""
