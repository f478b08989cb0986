"""
Tests for AnalysisWorker.

Tests chain selection, report contents, chart output and resilience of
the periodic loop to boards that cannot answer the configured selection.
"""

import asyncio
from decimal import Decimal

import polars as pl
import pytest

from optboard.config.settings import AnalysisConfig
from optboard.core.board import OptionBoard
from optboard.core.errors import MaturityIndexError
from optboard.core.models import OptionType
from optboard.presentation.charts import ChartWriter
from optboard.workers.analysis import AnalysisReport, AnalysisWorker, summarize_maturities
from tests.fixtures.board_fixtures import (
    MATURITIES,
    NOW,
    STRIKES,
    build_chain,
    build_tick,
    future_maturities,
)


@pytest.fixture
def live_board():
    """Board holding calls and puts on three future maturities."""
    board = OptionBoard()
    for tick in build_chain(future_maturities(3)):
        board.upsert(tick)
    return board


def fast_config(**overrides) -> AnalysisConfig:
    values = dict(interval_secs=0.01, initial_delay_secs=0.0)
    values.update(overrides)
    return AnalysisConfig(**values)


class TestAnalyze:
    """Test one analysis pass over a fixed chain."""

    def test_default_selection(self, sample_chain):
        """Test third maturity, OTM only, with Greeks at the ATM contract."""
        worker = AnalysisWorker(OptionBoard(), AnalysisConfig())

        report = worker.analyze(sample_chain, now=NOW)

        assert isinstance(report, AnalysisReport)
        assert report.maturity == MATURITIES[2]
        assert report.bucket_size == 4
        assert report.board_size == len(sample_chain)
        assert report.atm.strike == Decimal("21000")
        assert report.atm.option_type is OptionType.PUT
        assert report.atm_delta < 0
        assert report.atm_gamma > 0
        assert report.atm_vega > 0

    def test_projections_per_metric(self, sample_chain):
        worker = AnalysisWorker(OptionBoard(), AnalysisConfig(metrics=["iv", "gamma", "color", "delta"]))

        report = worker.analyze(sample_chain, now=NOW)

        assert set(report.projections) == {"iv", "gamma", "color", "delta"}
        strikes, values = report.projections["iv"]
        assert strikes == [20000.0, 21000.0, 23000.0, 24000.0]
        assert len(values) == 4

    def test_exposures_over_selected_bucket(self, sample_chain):
        worker = AnalysisWorker(OptionBoard(), AnalysisConfig(maturity_index=0, otm_only=False))

        report = worker.analyze(sample_chain, now=NOW)
        bucket = sample_chain.sort_by_maturity().get(0)

        assert report.bucket_size == len(STRIKES) * 2
        assert report.delta_exposure == pytest.approx(bucket.delta_exposure(now=NOW))
        assert report.gamma_exposure == pytest.approx(bucket.gamma_exposure(now=NOW))

    def test_too_few_maturities_raises(self):
        worker = AnalysisWorker(OptionBoard(), AnalysisConfig(maturity_index=2))

        with pytest.raises(MaturityIndexError):
            worker.analyze(build_chain(MATURITIES[:2]), now=NOW)

    def test_report_to_dict(self, sample_chain):
        report = AnalysisWorker(OptionBoard()).analyze(sample_chain, now=NOW)

        data = report.to_dict()

        assert data["atm_strike"] == 21000.0
        assert data["atm_type"] == "P"
        assert data["points"] == {"iv": 4, "gamma": 4, "color": 4}


class TestSummarizeMaturities:
    """Test per-maturity overview frame."""

    def test_summary(self, sample_chain):
        df = summarize_maturities(sample_chain)

        assert df.height == 3
        assert df["contracts"].to_list() == [10, 10, 10]
        assert df["calls"].to_list() == [5, 5, 5]
        assert df["open_interest"].to_list() == [100, 100, 100]

    def test_empty_chain(self):
        df = summarize_maturities(build_chain([]))

        assert isinstance(df, pl.DataFrame)
        assert df.height == 0


class TestRunCycle:
    """Test snapshot + analyze + charts."""

    @pytest.mark.asyncio
    async def test_cycle_writes_charts(self, live_board, tmp_path):
        writer = ChartWriter(output_dir=str(tmp_path / "charts"))
        worker = AnalysisWorker(live_board, fast_config(), chart_writer=writer)

        report = await worker.run_cycle()

        assert report is not None
        assert set(report.charts) == {"iv", "gamma", "color"}
        for name in ("iv", "gamma", "color"):
            assert (tmp_path / "charts" / f"{name}.html").exists()
        assert worker.last_report is report

    @pytest.mark.asyncio
    async def test_empty_board_skips_cycle(self, loguru_messages):
        """Test an empty board produces no report and no exception."""
        worker = AnalysisWorker(OptionBoard(), fast_config())

        assert await worker.run_cycle() is None
        assert worker.last_report is None
        assert any("Analysis skipped" in m for m in loguru_messages)

    @pytest.mark.asyncio
    async def test_empty_otm_bucket_skips_cycle(self):
        """Test a bucket with only ATM contracts has no OTM answer."""
        board = OptionBoard()
        for maturity in future_maturities(3):
            board.upsert(build_tick(22000, maturity, spot=22000.0))

        assert await AnalysisWorker(board, fast_config()).run_cycle() is None

    @pytest.mark.asyncio
    async def test_last_report_kept_after_failed_cycle(self, live_board):
        worker = AnalysisWorker(live_board, fast_config())
        first = await worker.run_cycle()

        worker.config.maturity_index = 10
        assert await worker.run_cycle() is None

        assert worker.last_report is first
        assert worker.cycles == 2

    @pytest.mark.asyncio
    async def test_evicts_expired_when_enabled(self, live_board):
        live_board.upsert(build_tick(22000, MATURITIES[0]))
        worker = AnalysisWorker(live_board, fast_config(evict_expired=True))

        report = await worker.run_cycle()

        assert report is not None
        assert MATURITIES[0] not in live_board.snapshot().maturities

    @pytest.mark.asyncio
    async def test_expired_contracts_kept_by_default(self, live_board):
        """Test without eviction an expired maturity still occupies bucket 0."""
        live_board.upsert(build_tick(22000, MATURITIES[0]))
        worker = AnalysisWorker(live_board, fast_config())

        report = await worker.run_cycle()

        assert MATURITIES[0] in live_board.snapshot().maturities
        assert report.maturity == future_maturities(3)[1]


class TestRunLoop:
    """Test the periodic loop."""

    @pytest.mark.asyncio
    async def test_runs_until_shutdown(self, live_board):
        shutdown = asyncio.Event()
        worker = AnalysisWorker(live_board, fast_config(), shutdown_event=shutdown)

        task = asyncio.create_task(worker.run())
        await asyncio.sleep(0.2)
        shutdown.set()
        await asyncio.wait_for(task, timeout=1.0)

        assert worker.cycles >= 2
        assert worker.last_report is not None

    @pytest.mark.asyncio
    async def test_loop_survives_unanswerable_board(self):
        """Test an empty board keeps the loop alive."""
        shutdown = asyncio.Event()
        worker = AnalysisWorker(OptionBoard(), fast_config(), shutdown_event=shutdown)

        task = asyncio.create_task(worker.run())
        await asyncio.sleep(0.05)

        assert not task.done()
        shutdown.set()
        await asyncio.wait_for(task, timeout=1.0)
        assert worker.cycles >= 1

    @pytest.mark.asyncio
    async def test_loop_survives_unexpected_error(self, live_board, monkeypatch, loguru_messages):
        shutdown = asyncio.Event()
        worker = AnalysisWorker(live_board, fast_config(), shutdown_event=shutdown)

        def explode(chain, now=None):
            raise RuntimeError("boom")

        monkeypatch.setattr(worker, "analyze", explode)
        task = asyncio.create_task(worker.run())
        await asyncio.sleep(0.2)
        shutdown.set()
        await asyncio.wait_for(task, timeout=1.0)

        assert worker.cycles >= 2
        assert any("Analysis cycle failed: boom" in m for m in loguru_messages)

    @pytest.mark.asyncio
    async def test_shutdown_during_initial_delay(self, live_board):
        shutdown = asyncio.Event()
        worker = AnalysisWorker(live_board, fast_config(initial_delay_secs=30.0), shutdown_event=shutdown)

        task = asyncio.create_task(worker.run())
        await asyncio.sleep(0.01)
        shutdown.set()
        await asyncio.wait_for(task, timeout=1.0)

        assert worker.cycles == 0
