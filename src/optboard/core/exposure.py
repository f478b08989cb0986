"""
Exposure aggregation over an option chain.

Reduces a chain to open-interest weighted sums of a Greek. Summation uses
math.fsum, which is exact up to the final rounding and therefore does not
depend on iteration order.
"""

import math
from datetime import datetime
from typing import Callable, Optional

from optboard.core.chain import OptionChain
from optboard.core.models import OptionTick

GreekFn = Callable[[OptionTick], Optional[float]]


def aggregate_exposure(chain: OptionChain, greek_fn: GreekFn) -> Optional[float]:
    """
    Sum of greek_fn(tick) * open_interest(tick) over the chain.

    Ticks with zero or missing open interest contribute zero. Ticks whose
    Greek is undefined are skipped.

    Args:
        chain: Chain to aggregate
        greek_fn: Per-tick Greek

    Returns:
        Exposure, or None when the chain is empty or no tick has a defined Greek
    """
    if chain.is_empty:
        return None

    terms = []
    for tick in chain:
        value = greek_fn(tick)
        if value is None or not math.isfinite(value):
            continue
        terms.append(value * (tick.open_interest or 0))

    if not terms:
        return None
    return math.fsum(terms)


def delta_exposure(
    chain: OptionChain,
    now: Optional[datetime] = None,
    rate: float = 0.0,
    dividend_yield: float = 0.0,
) -> Optional[float]:
    """Open-interest weighted delta of the chain."""
    return aggregate_exposure(chain, lambda t: t.delta(now, rate, dividend_yield))


def gamma_exposure(
    chain: OptionChain,
    now: Optional[datetime] = None,
    rate: float = 0.0,
    dividend_yield: float = 0.0,
) -> Optional[float]:
    """Open-interest weighted gamma of the chain."""
    return aggregate_exposure(chain, lambda t: t.gamma(now, rate, dividend_yield))
