"""
Core option board components.

- models: OptionTick and its value types
- board: shared latest-tick store
- chain: immutable snapshots and selections
- greeks: Black-Scholes sensitivities
- exposure: open-interest weighted aggregation
"""

from optboard.core.board import OptionBoard
from optboard.core.chain import MaturityLadder, OptionChain
from optboard.core.errors import (
    ChainError,
    EmptyChainError,
    MalformedRecordError,
    MaturityIndexError,
    NoQuoteError,
)
from optboard.core.exposure import delta_exposure, gamma_exposure
from optboard.core.models import (
    METRICS,
    ContractKey,
    ImpliedVolatility,
    OptionTick,
    OptionType,
    Price,
)

__all__ = [
    "OptionBoard",
    "OptionChain",
    "MaturityLadder",
    "OptionTick",
    "OptionType",
    "ImpliedVolatility",
    "Price",
    "ContractKey",
    "METRICS",
    "ChainError",
    "EmptyChainError",
    "MaturityIndexError",
    "MalformedRecordError",
    "NoQuoteError",
    "delta_exposure",
    "gamma_exposure",
]
