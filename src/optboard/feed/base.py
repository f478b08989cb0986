"""
Market data feed interface and in-process feeds.

A feed is an async iterable of raw ticker records (dicts) plus an async
close(). The ingestion worker consumes any object with that shape.

Feeds provided here:
- IterableFeed: wraps an in-memory iterable or async iterable
- ReplayFeed: plays back a JSON-lines capture file
The live exchange feed lives in optboard.feed.deribit.
"""

import asyncio
import json
from pathlib import Path
from typing import Any, AsyncIterable, AsyncIterator, Iterable, Protocol, Union, runtime_checkable

from loguru import logger

Record = dict[str, Any]


@runtime_checkable
class MarketDataFeed(Protocol):
    """Protocol for market data feeds."""

    def __aiter__(self) -> AsyncIterator[Record]:
        """Iterate raw ticker records until the feed ends."""
        ...

    async def close(self) -> None:
        """Release connections and stop iteration."""
        ...


class IterableFeed:
    """Feed over a fixed sequence of records (tests, scripted runs)."""

    def __init__(self, records: Union[Iterable[Record], AsyncIterable[Record]]):
        self._records = records
        self._closed = False

    async def __aiter__(self) -> AsyncIterator[Record]:
        if hasattr(self._records, "__aiter__"):
            async for record in self._records:
                if self._closed:
                    return
                yield record
        else:
            for record in self._records:
                if self._closed:
                    return
                yield record
                # Let other tasks run between records
                await asyncio.sleep(0)

    async def close(self) -> None:
        self._closed = True


class ReplayFeed:
    """
    Feed that replays a JSON-lines capture file.

    Each non-blank line is one ticker record. Lines that are not valid JSON
    objects are logged and skipped.
    """

    def __init__(self, path: Union[str, Path], pace_secs: float = 0.0):
        """
        Initialize replay feed.

        Args:
            path: JSON-lines file to replay
            pace_secs: Delay between records (0 = as fast as possible)
        """
        self.path = Path(path)
        self.pace_secs = pace_secs
        self._closed = False

    async def __aiter__(self) -> AsyncIterator[Record]:
        if not self.path.exists():
            raise FileNotFoundError(f"Replay file not found: {self.path}")

        logger.info(f"Replaying feed from {self.path}")
        with open(self.path, "r") as f:
            for line_no, line in enumerate(f, start=1):
                if self._closed:
                    break
                line = line.strip()
                if not line:
                    continue
                try:
                    record = json.loads(line)
                except json.JSONDecodeError as e:
                    logger.warning(f"Skipping undecodable line {line_no} in {self.path}: {e}")
                    continue
                if not isinstance(record, dict):
                    logger.warning(f"Skipping non-object line {line_no} in {self.path}")
                    continue

                yield record
                await asyncio.sleep(self.pace_secs)

        logger.info(f"✓ Replay of {self.path} finished")

    async def close(self) -> None:
        self._closed = True
