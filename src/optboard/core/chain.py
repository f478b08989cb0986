"""
Option Chain

Immutable, point-in-time view over a set of ticks, produced by
OptionBoard.snapshot() and by every selection on a chain.

Key patterns:
- Ticks are kept in canonical (maturity, strike, type) order, so two
  chains over the same ticks compare equal regardless of board order
- Selections return new chains or scalars, never mutate in place
- Empty selections and out-of-range buckets raise ChainError subclasses
  instead of returning a value that looks like an answer
"""

import math
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Iterable, Iterator, Optional

import polars as pl

from optboard.core.errors import EmptyChainError, MaturityIndexError
from optboard.core.models import OptionTick, OptionType

MetricFn = Callable[[OptionTick], Optional[float]]

# Calls sort ahead of puts at equal (maturity, strike)
_TYPE_ORDER = {OptionType.CALL: 0, OptionType.PUT: 1}


def _canonical(tick: OptionTick) -> tuple:
    return (tick.maturity, tick.strike, _TYPE_ORDER[tick.option_type])


class OptionChain:
    """
    Immutable collection of option ticks.

    Attributes:
        as_of: Instant the snapshot was taken (or inherited from the parent
            chain for selections)
    """

    __slots__ = ("_ticks", "as_of")

    def __init__(self, ticks: Iterable[OptionTick] = (), as_of: Optional[datetime] = None):
        self._ticks: tuple[OptionTick, ...] = tuple(sorted(ticks, key=_canonical))
        self.as_of = as_of or datetime.now(timezone.utc)

    def _derive(self, ticks: Iterable[OptionTick]) -> "OptionChain":
        return OptionChain(ticks, as_of=self.as_of)

    @property
    def ticks(self) -> tuple[OptionTick, ...]:
        return self._ticks

    @property
    def is_empty(self) -> bool:
        return not self._ticks

    def __len__(self) -> int:
        return len(self._ticks)

    def __iter__(self) -> Iterator[OptionTick]:
        return iter(self._ticks)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OptionChain):
            return NotImplemented
        return self._ticks == other._ticks

    __hash__ = None

    def __repr__(self) -> str:
        return f"OptionChain(ticks={len(self._ticks)}, maturities={len(self.maturities)})"

    # Selection

    @property
    def maturities(self) -> list[datetime]:
        """Distinct maturities, ascending."""
        return sorted({tick.maturity for tick in self._ticks})

    def sort_by_maturity(self) -> "MaturityLadder":
        """Group ticks into maturity buckets, nearest expiry first."""
        return MaturityLadder(self)

    def otm(self) -> "OptionChain":
        """Out-of-the-money contracts (calls above spot, puts below)."""
        return self._derive(t for t in self._ticks if t.is_otm())

    def itm(self) -> "OptionChain":
        """In-the-money contracts (calls below spot, puts above)."""
        return self._derive(t for t in self._ticks if t.is_itm())

    def calls(self) -> "OptionChain":
        return self._derive(t for t in self._ticks if t.option_type is OptionType.CALL)

    def puts(self) -> "OptionChain":
        return self._derive(t for t in self._ticks if t.option_type is OptionType.PUT)

    def strikes_between(self, low: Decimal, high: Decimal) -> "OptionChain":
        """Contracts with low <= strike <= high."""
        low, high = Decimal(str(low)), Decimal(str(high))
        return self._derive(t for t in self._ticks if low <= t.strike <= high)

    def atm(self) -> OptionTick:
        """
        At-the-money contract.

        Picks the minimal |strike - spot|. Equidistant strikes resolve to the
        lower strike; a call and put on the same strike resolve to the call.

        Raises:
            EmptyChainError: If the chain holds no ticks
        """
        if not self._ticks:
            raise EmptyChainError("Cannot select ATM contract from an empty chain")
        return min(
            self._ticks,
            key=lambda t: (t.distance_to_spot(), t.strike, _TYPE_ORDER[t.option_type]),
        )

    # Projection

    def map_to_vec(self, metric_fn: MetricFn) -> tuple[list[float], list[float]]:
        """
        Project the chain into (strikes, values) ordered by ascending strike.

        Ticks for which metric_fn returns None or NaN are dropped from both
        lists, so index i of strikes always matches index i of values.

        Args:
            metric_fn: Per-tick metric (e.g. OptionTick.iv, OptionTick.gamma)

        Returns:
            Tuple of (strikes, values)
        """
        strikes: list[float] = []
        values: list[float] = []
        for tick in sorted(self._ticks, key=lambda t: t.strike):
            value = metric_fn(tick)
            if value is None or not math.isfinite(value):
                continue
            strikes.append(float(tick.strike))
            values.append(float(value))
        return strikes, values

    def delta_exposure(self, now: Optional[datetime] = None) -> Optional[float]:
        from optboard.core.exposure import delta_exposure
        return delta_exposure(self, now=now)

    def gamma_exposure(self, now: Optional[datetime] = None) -> Optional[float]:
        from optboard.core.exposure import gamma_exposure
        return gamma_exposure(self, now=now)

    def to_frame(self, now: Optional[datetime] = None) -> pl.DataFrame:
        """
        One row per tick with key fields, open interest and Greeks.

        Args:
            now: Evaluation instant for time-dependent metrics (default: as_of)

        Returns:
            Polars DataFrame (empty with the full schema for an empty chain)
        """
        now = now or self.as_of
        rows = [
            {
                "maturity": tick.maturity,
                "strike": float(tick.strike),
                "option_type": tick.option_type.value,
                "asset_price": tick.asset_price,
                "open_interest": tick.open_interest or 0,
                "iv": tick.iv(),
                "delta": tick.delta(now),
                "gamma": tick.gamma(now),
                "vega": tick.vega(now),
                "color": tick.color(now),
            }
            for tick in self._ticks
        ]
        schema = {
            "maturity": pl.Datetime("us", "UTC"),
            "strike": pl.Float64,
            "option_type": pl.String,
            "asset_price": pl.Float64,
            "open_interest": pl.Int64,
            "iv": pl.Float64,
            "delta": pl.Float64,
            "gamma": pl.Float64,
            "vega": pl.Float64,
            "color": pl.Float64,
        }
        return pl.DataFrame(rows, schema=schema)


class MaturityLadder:
    """Maturity buckets of a chain, ascending by expiry."""

    __slots__ = ("_maturities", "_buckets")

    def __init__(self, chain: OptionChain):
        buckets: dict[datetime, list[OptionTick]] = {}
        for tick in chain:
            buckets.setdefault(tick.maturity, []).append(tick)
        self._maturities = sorted(buckets)
        self._buckets = [chain._derive(buckets[m]) for m in self._maturities]

    @property
    def maturities(self) -> list[datetime]:
        return list(self._maturities)

    def get(self, n: int) -> OptionChain:
        """
        Bucket at ascending index n (0 = nearest expiry).

        Raises:
            MaturityIndexError: If fewer than n + 1 maturities exist
        """
        if n < 0 or n >= len(self._buckets):
            raise MaturityIndexError(n, len(self._buckets))
        return self._buckets[n]

    def __len__(self) -> int:
        return len(self._buckets)

    def __iter__(self) -> Iterator[OptionChain]:
        return iter(self._buckets)

    def __repr__(self) -> str:
        labels = ", ".join(f"{m:%Y-%m-%d}" for m in self._maturities)
        return f"MaturityLadder([{labels}])"
