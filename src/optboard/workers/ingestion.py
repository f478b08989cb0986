"""
Ingestion Worker

Long-running task that drains the market data feed into the option board.

Per record:
- decode into an OptionTick (mid IV policy included)
- drop the record on MalformedRecordError / NoQuoteError and continue
- upsert the tick otherwise

A bad record never stops the loop. A feed that gives up (FeedError) ends
this task only; the board keeps its last state for the analysis task.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from loguru import logger

from optboard.core.board import OptionBoard
from optboard.core.errors import FeedError, MalformedRecordError, NoQuoteError
from optboard.core.models import OptionTick
from optboard.feed.base import MarketDataFeed
from optboard.feed.quotes import tick_from_ticker


@dataclass(slots=True)
class IngestionStats:
    """Counters for the ingestion loop."""
    received: int = 0
    upserted: int = 0
    no_quote: int = 0
    malformed: int = 0
    last_upsert_at: Optional[datetime] = None

    @property
    def dropped(self) -> int:
        return self.no_quote + self.malformed


class IngestionWorker:
    """Feeds decoded ticks from a MarketDataFeed into an OptionBoard."""

    def __init__(self, board: OptionBoard, feed: MarketDataFeed, stats_every: int = 10_000):
        """
        Initialize worker.

        Args:
            board: Shared board to upsert into
            feed: Source of raw ticker records
            stats_every: Log counters every N received records
        """
        self.board = board
        self.feed = feed
        self.stats_every = stats_every
        self.stats = IngestionStats()

    def process(self, record: Any) -> Optional[OptionTick]:
        """
        Decode one record and upsert it.

        Returns:
            The upserted tick, or None if the record was dropped
        """
        self.stats.received += 1
        try:
            tick = tick_from_ticker(record)
        except NoQuoteError as e:
            self.stats.no_quote += 1
            logger.debug(f"Dropped record: {e.reason}")
            return None
        except MalformedRecordError as e:
            self.stats.malformed += 1
            logger.warning(f"Dropped malformed record: {e.reason}")
            return None

        self.board.upsert(tick)
        self.stats.upserted += 1
        self.stats.last_upsert_at = datetime.now(timezone.utc)
        return tick

    async def run(self) -> IngestionStats:
        """
        Consume the feed until it ends or gives up.

        Returns:
            Final counters
        """
        logger.info("Starting ingestion worker...")
        try:
            async for record in self.feed:
                self.process(record)
                if self.stats.received % self.stats_every == 0:
                    self._log_stats()
        except FeedError as e:
            logger.error(f"Feed stopped: {e}. Board keeps serving the last state.")
        finally:
            self._log_stats()
            logger.info("✓ Ingestion worker stopped")
        return self.stats

    def _log_stats(self) -> None:
        logger.info(
            f"Ingestion: {self.stats.received} received, "
            f"{self.stats.upserted} upserted, "
            f"{self.stats.no_quote} no-quote, "
            f"{self.stats.malformed} malformed, "
            f"board={len(self.board)} contracts"
        )
