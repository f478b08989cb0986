"""
Option Board

The single shared, mutable store of the latest tick per contract.

Writers (the ingestion task) call upsert() many times per second; readers
(the analysis task) call snapshot() on an interval and work on the
detached OptionChain it returns. A single board-wide lock guards the
backing dict and is held only for one insert or one copy, never across
analysis.
"""

import threading
from datetime import datetime, timezone
from typing import Optional

from loguru import logger

from optboard.core.chain import OptionChain
from optboard.core.models import ContractKey, OptionTick


class OptionBoard:
    """
    Latest tick per (maturity, strike, option_type).

    **Last-writer-wins:**
    upsert() always replaces an existing entry with the same key, with no
    timestamp comparison. A single-threaded feed therefore leaves each key
    at the last value it delivered.

    **Thread-Safe:**
    Uses threading.Lock so upsert/snapshot stay mutually exclusive whether
    the feed runs on the event loop or in a worker thread. Neither call
    awaits while holding the lock.
    """

    def __init__(self):
        self._ticks: dict[ContractKey, OptionTick] = {}
        self._lock = threading.Lock()
        self._upsert_count = 0

    def upsert(self, tick: OptionTick) -> None:
        """
        Insert or replace the entry at tick.key.

        Args:
            tick: Tick to store
        """
        key = tick.key
        with self._lock:
            self._ticks[key] = tick
            self._upsert_count += 1

    def snapshot(self) -> OptionChain:
        """
        Consistent point-in-time copy of all current ticks.

        Returns:
            OptionChain detached from the board
        """
        with self._lock:
            ticks = list(self._ticks.values())
        # Ticks are immutable, so sorting and wrapping can happen outside the lock
        return OptionChain(ticks, as_of=datetime.now(timezone.utc))

    def get(self, key: ContractKey) -> Optional[OptionTick]:
        """Latest tick for key, if any."""
        with self._lock:
            return self._ticks.get(key)

    def prune_expired(self, now: Optional[datetime] = None) -> int:
        """
        Remove contracts whose maturity is at or before now.

        Only called when eviction is enabled in configuration.

        Args:
            now: Cutoff instant (default: current UTC time)

        Returns:
            Number of contracts removed
        """
        if now is None:
            now = datetime.now(timezone.utc)
        with self._lock:
            expired = [key for key in self._ticks if key.maturity <= now]
            for key in expired:
                del self._ticks[key]
        if expired:
            logger.info(f"Pruned {len(expired)} expired contracts from board")
        return len(expired)

    @property
    def upsert_count(self) -> int:
        """Total upserts accepted since creation."""
        with self._lock:
            return self._upsert_count

    def __len__(self) -> int:
        with self._lock:
            return len(self._ticks)

    def __contains__(self, key: ContractKey) -> bool:
        with self._lock:
            return key in self._ticks

    def __repr__(self) -> str:
        return f"OptionBoard(contracts={len(self)}, upserts={self.upsert_count})"
