"""
Board Monitor Orchestrator

Wires the shared OptionBoard to its two long-running tasks and manages
their lifecycle:

- ingestion: feed -> decode -> board.upsert
- analysis: every interval, board.snapshot() -> chain analytics -> charts

Ingestion ending (feed exhausted or given up) does not stop analysis; the
board keeps serving its last state until shutdown is requested.
"""

import asyncio
from enum import Enum
from typing import Optional

from loguru import logger

from optboard.config.settings import FeedConfig, MonitorConfig
from optboard.core.board import OptionBoard
from optboard.feed.base import MarketDataFeed, ReplayFeed
from optboard.feed.deribit import DeribitFeed
from optboard.presentation.charts import ChartWriter
from optboard.workers.analysis import AnalysisWorker
from optboard.workers.ingestion import IngestionWorker


class MonitorState(Enum):
    """Lifecycle states for the board monitor."""

    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERROR = "error"


def build_feed(feed_config: FeedConfig) -> MarketDataFeed:
    """
    Create the market data feed selected in config.

    Raises:
        ValueError: If the source is unknown or replay_path is missing
    """
    if feed_config.source == "deribit":
        return DeribitFeed.from_config(feed_config)
    if feed_config.source == "replay":
        if not feed_config.replay_path:
            raise ValueError("replay_path is required when feed source is 'replay'")
        return ReplayFeed(feed_config.replay_path, pace_secs=feed_config.replay_pace_secs)
    raise ValueError(f"Unknown feed source: {feed_config.source}")


class BoardMonitor:
    """
    Runs ingestion and analysis concurrently over one OptionBoard.

    Usage:
        monitor = BoardMonitor(config)
        await monitor.start()
        await monitor.run()     # until request_shutdown()
        await monitor.stop()
    """

    def __init__(
        self,
        config: MonitorConfig,
        feed: Optional[MarketDataFeed] = None,
        chart_writer: Optional[ChartWriter] = None,
    ):
        """
        Initialize monitor.

        Args:
            config: Monitor configuration
            feed: Feed override (default: built from config.feed)
            chart_writer: Chart output override (default: from config.charts)
        """
        self.config = config
        self.state = MonitorState.STARTING

        self.board = OptionBoard()
        self.feed = feed if feed is not None else build_feed(config.feed)
        if chart_writer is None and config.charts.enabled:
            chart_writer = ChartWriter.from_config(config.charts)

        self._shutdown_event = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

        self.ingestion = IngestionWorker(self.board, self.feed)
        self.analysis = AnalysisWorker(
            self.board,
            config.analysis,
            chart_writer=chart_writer,
            shutdown_event=self._shutdown_event,
        )

        logger.info(f"Board monitor initialized ({config.feed.source} feed)")

    @property
    def is_running(self) -> bool:
        return self.state == MonitorState.RUNNING

    async def start(self) -> None:
        """Start the ingestion and analysis tasks."""
        logger.info("Starting board monitor...")
        try:
            ingestion = asyncio.create_task(self.ingestion.run(), name="ingestion")
            ingestion.add_done_callback(self._on_ingestion_done)
            self._tasks.append(ingestion)
            self._tasks.append(asyncio.create_task(self.analysis.run(), name="analysis"))

            self.state = MonitorState.RUNNING
            logger.info("✓ Board monitor started")

        except Exception as e:
            logger.error(f"Failed to start board monitor: {e}")
            self.state = MonitorState.ERROR
            raise

    async def run(self) -> None:
        """Block until shutdown is requested."""
        logger.info("Board monitor running, waiting for shutdown signal...")
        await self._shutdown_event.wait()
        logger.info("Shutdown requested")

    def request_shutdown(self) -> None:
        """Ask run() and the analysis loop to finish."""
        self._shutdown_event.set()

    async def stop(self, timeout: float = 5.0) -> None:
        """
        Graceful shutdown.

        Closes the feed, lets the tasks finish for up to timeout seconds,
        then cancels whatever is still running.
        """
        if self.state == MonitorState.STOPPED:
            return

        logger.info("Stopping board monitor...")
        self.state = MonitorState.STOPPING
        self._shutdown_event.set()

        try:
            await self.feed.close()
        except Exception as e:
            logger.error(f"Error closing feed: {e}")

        pending = [task for task in self._tasks if not task.done()]
        if pending:
            _, still_running = await asyncio.wait(pending, timeout=timeout)
            for task in still_running:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        self.state = MonitorState.STOPPED
        logger.info(
            f"✓ Board monitor stopped ({len(self.board)} contracts, "
            f"{self.analysis.cycles} analysis cycles)"
        )

    def _on_ingestion_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.opt(exception=error).error(f"Ingestion task failed: {error}")
        if not self._shutdown_event.is_set():
            logger.warning(
                f"Ingestion ended; analysis continues on the last board state "
                f"({len(self.board)} contracts)"
            )
