"""
Black-Scholes Greeks

Closed-form sensitivities for European options on a lognormal underlying:
- delta: dV/dS
- gamma: d2V/dS2 (identical for calls and puts)
- vega: dV/dsigma (per 1.0 of volatility, not per vol point)
- color: dGamma/dT (gamma sensitivity to time to maturity, per year)

Rate and dividend yield default to zero. Every function returns None for
degenerate input (expired contract, non-positive volatility, non-positive
prices, non-finite values) instead of letting NaN leak into projections
and aggregates.
"""

import math
from datetime import datetime, timezone
from typing import Optional

from scipy.stats import norm

DAYS_PER_YEAR = 365.0
SECONDS_PER_DAY = 86400.0


def time_to_maturity_years(maturity: datetime, now: Optional[datetime] = None) -> float:
    """
    Year fraction between now and maturity (days / 365).

    Args:
        maturity: Expiry instant (timezone-aware)
        now: Evaluation instant (default: current UTC time)

    Returns:
        Year fraction, negative once the contract has expired
    """
    if now is None:
        now = datetime.now(timezone.utc)
    days = (maturity - now).total_seconds() / SECONDS_PER_DAY
    return days / DAYS_PER_YEAR


def _is_defined(spot: float, strike: float, time_to_maturity: float, volatility: float) -> bool:
    values = (spot, strike, time_to_maturity, volatility)
    if not all(math.isfinite(v) for v in values):
        return False
    return spot > 0 and strike > 0 and time_to_maturity > 0 and volatility > 0


def d1_d2(
    spot: float,
    strike: float,
    time_to_maturity: float,
    volatility: float,
    rate: float = 0.0,
    dividend_yield: float = 0.0,
) -> Optional[tuple[float, float]]:
    """d1 and d2 terms of the Black-Scholes formula, or None if undefined."""
    if not _is_defined(spot, strike, time_to_maturity, volatility):
        return None
    sigma_sqrt_t = volatility * math.sqrt(time_to_maturity)
    d1 = (
        math.log(spot / strike)
        + (rate - dividend_yield + 0.5 * volatility ** 2) * time_to_maturity
    ) / sigma_sqrt_t
    return d1, d1 - sigma_sqrt_t


def _finite(value: float) -> Optional[float]:
    return value if math.isfinite(value) else None


def delta(
    spot: float,
    strike: float,
    time_to_maturity: float,
    volatility: float,
    is_call: bool,
    rate: float = 0.0,
    dividend_yield: float = 0.0,
) -> Optional[float]:
    """Delta; sign flipped for puts."""
    d = d1_d2(spot, strike, time_to_maturity, volatility, rate, dividend_yield)
    if d is None:
        return None
    d1, _ = d
    carry = math.exp(-dividend_yield * time_to_maturity)
    if is_call:
        return _finite(carry * norm.cdf(d1))
    return _finite(-carry * norm.cdf(-d1))


def gamma(
    spot: float,
    strike: float,
    time_to_maturity: float,
    volatility: float,
    is_call: bool = True,
    rate: float = 0.0,
    dividend_yield: float = 0.0,
) -> Optional[float]:
    """Gamma; is_call is accepted for a uniform signature and ignored."""
    d = d1_d2(spot, strike, time_to_maturity, volatility, rate, dividend_yield)
    if d is None:
        return None
    d1, _ = d
    carry = math.exp(-dividend_yield * time_to_maturity)
    return _finite(carry * norm.pdf(d1) / (spot * volatility * math.sqrt(time_to_maturity)))


def vega(
    spot: float,
    strike: float,
    time_to_maturity: float,
    volatility: float,
    is_call: bool = True,
    rate: float = 0.0,
    dividend_yield: float = 0.0,
) -> Optional[float]:
    """Vega per 1.0 change in volatility (same for calls and puts)."""
    d = d1_d2(spot, strike, time_to_maturity, volatility, rate, dividend_yield)
    if d is None:
        return None
    d1, _ = d
    carry = math.exp(-dividend_yield * time_to_maturity)
    return _finite(spot * carry * norm.pdf(d1) * math.sqrt(time_to_maturity))


def color(
    spot: float,
    strike: float,
    time_to_maturity: float,
    volatility: float,
    is_call: bool = True,
    rate: float = 0.0,
    dividend_yield: float = 0.0,
) -> Optional[float]:
    """Color: dGamma/dT in the standard closed form (per year of maturity)."""
    d = d1_d2(spot, strike, time_to_maturity, volatility, rate, dividend_yield)
    if d is None:
        return None
    d1, d2 = d
    t = time_to_maturity
    sigma_sqrt_t = volatility * math.sqrt(t)
    carry = math.exp(-dividend_yield * t)
    bracket = 2 * dividend_yield * t + 1 + d1 * (2 * (rate - dividend_yield) * t - d2 * sigma_sqrt_t) / sigma_sqrt_t
    return _finite(-carry * norm.pdf(d1) / (2 * spot * t * sigma_sqrt_t) * bracket)


def price(
    spot: float,
    strike: float,
    time_to_maturity: float,
    volatility: float,
    is_call: bool,
    rate: float = 0.0,
    dividend_yield: float = 0.0,
) -> Optional[float]:
    """Black-Scholes option price (used to cross-check the Greeks)."""
    d = d1_d2(spot, strike, time_to_maturity, volatility, rate, dividend_yield)
    if d is None:
        return None
    d1, d2 = d
    t = time_to_maturity
    forward_carry = spot * math.exp(-dividend_yield * t)
    discount = strike * math.exp(-rate * t)
    if is_call:
        return _finite(forward_carry * norm.cdf(d1) - discount * norm.cdf(d2))
    return _finite(discount * norm.cdf(-d2) - forward_carry * norm.cdf(-d1))
