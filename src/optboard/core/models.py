"""
Data models for the option board.

OptionTick is the unit of market state: one quote for one contract at an
instant. Ticks are frozen once constructed and are shared freely between
the board, chains and workers without synchronization.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import NamedTuple, Optional, Union

from optboard.core import greeks


class OptionType(Enum):
    """Option right."""
    CALL = "C"
    PUT = "P"


@dataclass(frozen=True, slots=True)
class ImpliedVolatility:
    """Quoted value as implied volatility (fraction, 0.55 = 55%)."""
    value: float


@dataclass(frozen=True, slots=True)
class Price:
    """Quoted value as option price."""
    value: float


OptionValue = Union[ImpliedVolatility, Price]


class ContractKey(NamedTuple):
    """Identity of a contract on the board."""
    maturity: datetime
    strike: Decimal
    option_type: OptionType


@dataclass(frozen=True, slots=True)
class OptionTick:
    """
    One option quote for one contract.

    Attributes:
        strike: Strike price (coerced to Decimal)
        maturity: Expiry instant, timezone-aware UTC
        option_type: CALL or PUT
        asset_price: Underlying spot price at observation time
        option_value: ImpliedVolatility or Price
        open_interest: Outstanding contracts (None when not reported)
        timestamp: Observation time reported by the feed (optional)
    """
    strike: Decimal
    maturity: datetime
    option_type: OptionType
    asset_price: float
    option_value: OptionValue
    open_interest: Optional[int] = None
    timestamp: Optional[datetime] = None

    def __post_init__(self):
        try:
            strike = self.strike if isinstance(self.strike, Decimal) else Decimal(str(self.strike))
        except InvalidOperation:
            raise ValueError(f"Invalid strike: {self.strike!r}")
        if not strike.is_finite() or strike <= 0:
            raise ValueError(f"Strike must be positive: {self.strike!r}")
        object.__setattr__(self, "strike", strike)

        if self.maturity.tzinfo is None:
            raise ValueError("Maturity must be timezone-aware")
        object.__setattr__(self, "maturity", self.maturity.astimezone(timezone.utc))

        if not isinstance(self.option_type, OptionType):
            raise ValueError(f"Invalid option type: {self.option_type!r}")

        asset_price = float(self.asset_price)
        if not math.isfinite(asset_price) or asset_price <= 0:
            raise ValueError(f"Asset price must be positive: {self.asset_price!r}")
        object.__setattr__(self, "asset_price", asset_price)

        if self.open_interest is not None and self.open_interest < 0:
            raise ValueError(f"Open interest must be non-negative: {self.open_interest}")

    @property
    def key(self) -> ContractKey:
        """Identity key: (maturity, strike, option_type)."""
        return ContractKey(self.maturity, self.strike, self.option_type)

    @property
    def is_call(self) -> bool:
        return self.option_type is OptionType.CALL

    def iv(self) -> Optional[float]:
        """Implied volatility, or None when the tick carries a price."""
        if isinstance(self.option_value, ImpliedVolatility):
            return self.option_value.value
        return None

    def distance_to_spot(self) -> float:
        """Absolute distance between strike and spot."""
        return abs(float(self.strike) - self.asset_price)

    def is_otm(self) -> bool:
        """Out-of-the-money against this tick's own spot (ATM is not OTM)."""
        strike = float(self.strike)
        if self.is_call:
            return strike > self.asset_price
        return strike < self.asset_price

    def is_itm(self) -> bool:
        """In-the-money against this tick's own spot (ATM is not ITM)."""
        strike = float(self.strike)
        if self.is_call:
            return strike < self.asset_price
        return strike > self.asset_price

    def time_to_maturity(self, now: Optional[datetime] = None) -> float:
        """Year fraction until expiry (negative once expired)."""
        return greeks.time_to_maturity_years(self.maturity, now)

    def _greek(self, fn, now: Optional[datetime], rate: float, dividend_yield: float) -> Optional[float]:
        volatility = self.iv()
        if volatility is None:
            return None
        return fn(
            self.asset_price,
            float(self.strike),
            self.time_to_maturity(now),
            volatility,
            self.is_call,
            rate=rate,
            dividend_yield=dividend_yield,
        )

    def delta(self, now: Optional[datetime] = None, rate: float = 0.0, dividend_yield: float = 0.0) -> Optional[float]:
        return self._greek(greeks.delta, now, rate, dividend_yield)

    def gamma(self, now: Optional[datetime] = None, rate: float = 0.0, dividend_yield: float = 0.0) -> Optional[float]:
        return self._greek(greeks.gamma, now, rate, dividend_yield)

    def vega(self, now: Optional[datetime] = None, rate: float = 0.0, dividend_yield: float = 0.0) -> Optional[float]:
        return self._greek(greeks.vega, now, rate, dividend_yield)

    def color(self, now: Optional[datetime] = None, rate: float = 0.0, dividend_yield: float = 0.0) -> Optional[float]:
        return self._greek(greeks.color, now, rate, dividend_yield)

    def __repr__(self) -> str:
        return (
            f"OptionTick({self.maturity:%Y-%m-%d} {self.strike} {self.option_type.value}, "
            f"spot={self.asset_price}, value={self.option_value}, oi={self.open_interest})"
        )


# Per-tick metric functions addressable by name (chart and config keys)
METRICS = {
    "iv": OptionTick.iv,
    "delta": OptionTick.delta,
    "gamma": OptionTick.gamma,
    "vega": OptionTick.vega,
    "color": OptionTick.color,
}
