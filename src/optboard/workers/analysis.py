"""
Analysis Worker

Long-running task that wakes on a fixed interval, takes one board
snapshot and runs the chain analytics against it:

1. sort_by_maturity().get(maturity_index), optionally .otm()
2. (strikes, values) projections per configured metric, written as charts
3. ATM contract Greeks
4. Open-interest weighted delta and gamma exposure

The lock is held only inside snapshot(); all analysis runs on the
detached chain. A cycle whose selection has no answer (too few
maturities, empty bucket) is logged and skipped; the loop keeps going and
the last good report stays available.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

import polars as pl
from loguru import logger

from optboard.config.settings import AnalysisConfig
from optboard.core.board import OptionBoard
from optboard.core.chain import OptionChain
from optboard.core.errors import ChainError
from optboard.core.exposure import delta_exposure, gamma_exposure
from optboard.core.models import METRICS, OptionTick
from optboard.presentation.charts import ChartWriter


@dataclass
class AnalysisReport:
    """Result of one analysis cycle."""
    as_of: datetime
    board_size: int
    maturity: datetime
    bucket_size: int
    atm: OptionTick
    atm_delta: Optional[float]
    atm_gamma: Optional[float]
    atm_vega: Optional[float]
    delta_exposure: Optional[float]
    gamma_exposure: Optional[float]
    projections: dict[str, tuple[list[float], list[float]]] = field(default_factory=dict)
    charts: dict[str, Path] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dictionary for logging."""
        return {
            "as_of": self.as_of.isoformat(),
            "board_size": self.board_size,
            "maturity": self.maturity.isoformat(),
            "bucket_size": self.bucket_size,
            "atm_strike": float(self.atm.strike),
            "atm_type": self.atm.option_type.value,
            "atm_delta": self.atm_delta,
            "atm_gamma": self.atm_gamma,
            "atm_vega": self.atm_vega,
            "delta_exposure": self.delta_exposure,
            "gamma_exposure": self.gamma_exposure,
            "points": {name: len(strikes) for name, (strikes, _) in self.projections.items()},
        }


def summarize_maturities(chain: OptionChain) -> pl.DataFrame:
    """
    Per-maturity overview of a chain.

    Returns:
        DataFrame with maturity, contracts, calls, puts, open_interest, mean_iv
    """
    return (
        chain.to_frame()
        .group_by("maturity")
        .agg(
            pl.len().alias("contracts"),
            (pl.col("option_type") == "C").sum().alias("calls"),
            (pl.col("option_type") == "P").sum().alias("puts"),
            pl.col("open_interest").sum().alias("open_interest"),
            pl.col("iv").mean().alias("mean_iv"),
        )
        .sort("maturity")
    )


class AnalysisWorker:
    """Periodic snapshot analysis over a shared OptionBoard."""

    def __init__(
        self,
        board: OptionBoard,
        config: Optional[AnalysisConfig] = None,
        chart_writer: Optional[ChartWriter] = None,
        shutdown_event: Optional[asyncio.Event] = None,
    ):
        """
        Initialize worker.

        Args:
            board: Shared board to snapshot
            config: Analysis settings (defaults if omitted)
            chart_writer: Chart output (None disables charts)
            shutdown_event: Event that ends run() when set
        """
        self.board = board
        self.config = config or AnalysisConfig()
        self.chart_writer = chart_writer
        self.shutdown_event = shutdown_event or asyncio.Event()
        self.last_report: Optional[AnalysisReport] = None
        self.cycles = 0

    def _metric_fn(self, name: str, now: datetime):
        fn = METRICS[name]
        if name == "iv":
            return fn
        rate, dividend_yield = self.config.risk_free_rate, self.config.dividend_yield
        return lambda tick: fn(tick, now, rate, dividend_yield)

    def analyze(self, chain: OptionChain, now: Optional[datetime] = None) -> AnalysisReport:
        """
        Run the configured selection and analytics on one snapshot.

        Args:
            chain: Board snapshot
            now: Evaluation instant for Greeks (default: chain.as_of)

        Returns:
            AnalysisReport

        Raises:
            MaturityIndexError: If the board has too few maturities
            EmptyChainError: If the selected bucket is empty
        """
        now = now or chain.as_of
        rate, dividend_yield = self.config.risk_free_rate, self.config.dividend_yield

        ladder = chain.sort_by_maturity()
        bucket = ladder.get(self.config.maturity_index)
        maturity = ladder.maturities[self.config.maturity_index]
        if self.config.otm_only:
            bucket = bucket.otm()

        projections = {
            name: bucket.map_to_vec(self._metric_fn(name, now))
            for name in self.config.metrics
        }

        atm = bucket.atm()
        return AnalysisReport(
            as_of=chain.as_of,
            board_size=len(chain),
            maturity=maturity,
            bucket_size=len(bucket),
            atm=atm,
            atm_delta=atm.delta(now, rate, dividend_yield),
            atm_gamma=atm.gamma(now, rate, dividend_yield),
            atm_vega=atm.vega(now, rate, dividend_yield),
            delta_exposure=delta_exposure(bucket, now, rate, dividend_yield),
            gamma_exposure=gamma_exposure(bucket, now, rate, dividend_yield),
            projections=projections,
        )

    async def run_cycle(self) -> Optional[AnalysisReport]:
        """
        Snapshot the board and analyze it once.

        Returns:
            The new report, or None if this cycle had no answer
        """
        self.cycles += 1
        if self.config.evict_expired:
            self.board.prune_expired()

        chain = self.board.snapshot()
        logger.opt(lazy=True).debug(
            "Snapshot: {} contracts\n{}", lambda: len(chain), lambda: summarize_maturities(chain)
        )

        try:
            report = self.analyze(chain)
        except ChainError as e:
            logger.warning(f"Analysis skipped ({len(chain)} contracts on board): {e}")
            return None

        if self.chart_writer is not None:
            for name, (strikes, values) in report.projections.items():
                try:
                    path = await self.chart_writer.write_async(name, strikes, values)
                except (OSError, ValueError) as e:
                    logger.error(f"Failed to write {name} chart: {e}")
                    continue
                if path is not None:
                    report.charts[name] = path

        self.last_report = report
        self._log_report(report)
        return report

    async def run(self) -> None:
        """Run cycles every interval_secs until the shutdown event is set."""
        logger.info(
            f"Starting analysis worker (every {self.config.interval_secs}s, "
            f"maturity index {self.config.maturity_index})"
        )
        if await self._wait(self.config.initial_delay_secs):
            return

        while not self.shutdown_event.is_set():
            try:
                await self.run_cycle()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"Analysis cycle failed: {e}")

            if await self._wait(self.config.interval_secs):
                break

        logger.info("✓ Analysis worker stopped")

    async def _wait(self, seconds: float) -> bool:
        """Sleep up to seconds; True if shutdown was requested meanwhile."""
        try:
            await asyncio.wait_for(self.shutdown_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    @staticmethod
    def _log_report(report: AnalysisReport) -> None:
        def fmt(value: Optional[float]) -> str:
            return "n/a" if value is None else f"{value:.6g}"

        logger.info(
            f"Chain {report.maturity:%Y-%m-%d} ({report.bucket_size} contracts, board {report.board_size}) | "
            f"ATM {report.atm.strike} {report.atm.option_type.value}: "
            f"delta={fmt(report.atm_delta)} gamma={fmt(report.atm_gamma)} vega={fmt(report.atm_vega)} | "
            f"delta exposure={fmt(report.delta_exposure)} gamma exposure={fmt(report.gamma_exposure)}"
        )
