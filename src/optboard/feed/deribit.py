"""
Deribit websocket feed.

Streams option ticker records for one currency over the Deribit JSON-RPC
websocket API:
1. public/get_instruments for every live option of the currency
2. public/subscribe to ticker.<instrument>.<interval> in batches
3. yield params.data of every subscription notification

Connection loss is retried with exponential backoff behind a circuit
breaker. While the feed is reconnecting the board simply stops changing;
the analysis task keeps working on the last state.
"""

import asyncio
import itertools
import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, AsyncIterator, Optional

import websockets
from loguru import logger
from websockets.exceptions import WebSocketException

from optboard.core.errors import FeedError

if TYPE_CHECKING:
    from optboard.config.settings import FeedConfig

DEFAULT_URL = "wss://www.deribit.com/ws/api/v2"


class CircuitState(Enum):
    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Cooling down, no attempts
    HALF_OPEN = "half_open"  # One trial connection allowed


@dataclass
class CircuitBreaker:
    """
    Reconnect guard shared across feed iterations.

    Opens after failure_threshold consecutive failures. While open the feed
    waits out the cooldown, then makes one half-open trial connection; a
    success closes the circuit, a failure reopens it.
    """
    failure_threshold: int = 5
    timeout: float = 60.0  # seconds
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    last_failure_time: float = 0.0

    @classmethod
    def for_retries(cls, max_retries: int, timeout: float = 60.0) -> "CircuitBreaker":
        """Breaker that only opens once the reconnect budget is spent."""
        return cls(failure_threshold=max_retries + 1, timeout=timeout)

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.monotonic()
        if self.failure_count >= self.failure_threshold and self.state != CircuitState.OPEN:
            self.state = CircuitState.OPEN
            logger.warning(f"Circuit breaker OPEN after {self.failure_count} failures")

    def record_success(self) -> None:
        self.failure_count = 0
        if self.state != CircuitState.CLOSED:
            self.state = CircuitState.CLOSED
            logger.info("Circuit breaker CLOSED after successful recovery")

    def cooldown_remaining(self) -> float:
        """Seconds until an open circuit allows a trial connection (0 if not open)."""
        if self.state != CircuitState.OPEN:
            return 0.0
        return max(0.0, self.timeout - (time.monotonic() - self.last_failure_time))

    def can_attempt(self) -> bool:
        """Check if a connection attempt is allowed; moves OPEN to HALF_OPEN once cooled down."""
        if self.state != CircuitState.OPEN:
            return True
        if self.cooldown_remaining() > 0:
            return False
        self.state = CircuitState.HALF_OPEN
        logger.info("Circuit breaker HALF_OPEN (testing recovery)")
        return True


class DeribitFeed:
    """Live option ticker feed for one currency."""

    def __init__(
        self,
        url: str = DEFAULT_URL,
        currency: str = "BTC",
        ticker_interval: str = "100ms",
        subscribe_batch_size: int = 100,
        max_retries: int = 5,
        retry_delay: float = 2.0,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        """
        Initialize feed.

        Args:
            url: Websocket endpoint
            currency: Underlying currency (BTC, ETH)
            ticker_interval: Ticker channel interval (100ms, raw, agg2)
            subscribe_batch_size: Channels per public/subscribe call
            max_retries: Consecutive reconnect attempts before giving up
            retry_delay: Backoff base in seconds (delay = retry_delay ** attempt)
            circuit_breaker: Breaker shared across reconnects (default: opens
                only once max_retries is spent)
        """
        self.url = url
        self.currency = currency
        self.ticker_interval = ticker_interval
        self.subscribe_batch_size = subscribe_batch_size
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.circuit_breaker = circuit_breaker or CircuitBreaker.for_retries(max_retries)
        self._ids = itertools.count(1)
        self._pending: list[dict[str, Any]] = []
        self._ws = None
        self._closed = False

    @classmethod
    def from_config(cls, feed_config: "FeedConfig") -> "DeribitFeed":
        """Create feed from the feed section of MonitorConfig."""
        return cls(
            url=feed_config.url,
            currency=feed_config.currency,
            ticker_interval=feed_config.ticker_interval,
            subscribe_batch_size=feed_config.subscribe_batch_size,
            max_retries=feed_config.max_retries,
            retry_delay=feed_config.retry_delay,
        )

    async def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        attempt = 0
        while not self._closed:
            if not self.circuit_breaker.can_attempt():
                wait_time = self.circuit_breaker.cooldown_remaining()
                logger.warning(f"Circuit breaker OPEN, next connection attempt in {wait_time:.1f}s")
                await asyncio.sleep(wait_time)
                continue

            try:
                async with websockets.connect(self.url, max_size=None) as ws:
                    self._ws = ws
                    await self._subscribe_all(ws)
                    self.circuit_breaker.record_success()
                    attempt = 0

                    while self._pending:
                        yield self._pending.pop(0)

                    async for message in ws:
                        for record in self._parse_message(message):
                            yield record

                if not self._closed:
                    raise FeedError("Feed connection closed by server")

            except (OSError, asyncio.TimeoutError, WebSocketException, FeedError) as e:
                if self._closed:
                    break
                self.circuit_breaker.record_failure()
                attempt += 1
                if attempt > self.max_retries:
                    logger.error(f"Feed failed after {self.max_retries} reconnect attempts: {e}")
                    raise FeedError(f"Feed unavailable: {e}") from e
                wait_time = self.retry_delay ** attempt
                logger.warning(
                    f"Feed connection lost ({e}), reconnecting in {wait_time:.1f}s "
                    f"(attempt {attempt}/{self.max_retries})"
                )
                await asyncio.sleep(wait_time)
            finally:
                self._ws = None

    async def close(self) -> None:
        """Stop iteration and close the websocket."""
        self._closed = True
        if self._ws is not None:
            await self._ws.close()
        logger.info("Deribit feed closed")

    async def _subscribe_all(self, ws) -> None:
        instruments = await self._call(ws, "public/get_instruments", {
            "currency": self.currency,
            "kind": "option",
            "expired": False,
        })
        if not isinstance(instruments, list):
            raise FeedError(f"public/get_instruments returned {type(instruments).__name__}, expected a list")
        try:
            channels = [
                f"ticker.{instrument['instrument_name']}.{self.ticker_interval}"
                for instrument in instruments
            ]
        except (KeyError, TypeError) as e:
            raise FeedError(f"Malformed public/get_instruments result: {e!r}") from e
        logger.info(f"✓ Found {len(channels)} {self.currency} option instruments")

        for start in range(0, len(channels), self.subscribe_batch_size):
            batch = channels[start:start + self.subscribe_batch_size]
            await self._call(ws, "public/subscribe", {"channels": batch})

        logger.info(f"✓ Subscribed to {len(channels)} ticker channels")

    async def _call(self, ws, method: str, params: dict[str, Any]) -> Any:
        """Send a JSON-RPC request and wait for its response."""
        request_id = next(self._ids)
        await ws.send(json.dumps({
            "jsonrpc": "2.0",
            "id": request_id,
            "method": method,
            "params": params,
        }))

        async for message in ws:
            payload = self._decode(message)
            if payload is None:
                continue
            if payload.get("id") == request_id:
                if "error" in payload:
                    raise FeedError(f"{method} failed: {payload['error']}")
                return payload.get("result")
            # Notifications that arrive before the response are kept for later
            self._pending.extend(self._records_from(payload))

        raise FeedError(f"Connection closed while waiting for {method}")

    @staticmethod
    def _decode(message: Any) -> Optional[dict[str, Any]]:
        try:
            payload = json.loads(message)
        except (TypeError, ValueError) as e:
            logger.warning(f"Discarding undecodable feed message: {e}")
            return None
        if not isinstance(payload, dict):
            logger.warning("Discarding non-object feed message")
            return None
        return payload

    @staticmethod
    def _records_from(payload: dict[str, Any]) -> list[dict[str, Any]]:
        if payload.get("method") != "subscription":
            return []
        data = (payload.get("params") or {}).get("data")
        if isinstance(data, dict):
            return [data]
        if isinstance(data, list):
            return [item for item in data if isinstance(item, dict)]
        return []

    def _parse_message(self, message: Any) -> list[dict[str, Any]]:
        payload = self._decode(message)
        if payload is None:
            return []
        return self._records_from(payload)
