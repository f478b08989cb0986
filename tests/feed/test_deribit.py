"""
Tests for the Deribit websocket feed.

No network: websockets.connect is replaced with an in-memory connection
that replays scripted server messages.
"""

import json
import time

import pytest

from optboard.config.settings import FeedConfig
from optboard.core.errors import FeedError
from optboard.feed import deribit
from optboard.feed.deribit import CircuitBreaker, CircuitState, DeribitFeed
from tests.fixtures.board_fixtures import ticker_record


def notification(*records, interval="100ms"):
    data = records[0] if len(records) == 1 else list(records)
    name = records[0]["instrument_name"]
    return json.dumps({
        "jsonrpc": "2.0",
        "method": "subscription",
        "params": {"channel": f"ticker.{name}.{interval}", "data": data},
    })


def response(request_id, result=None, error=None):
    payload = {"jsonrpc": "2.0", "id": request_id}
    if error is not None:
        payload["error"] = error
    else:
        payload["result"] = result
    return json.dumps(payload)


class FakeWebSocket:
    """Server side scripted as a list of messages; iteration drains it."""

    def __init__(self, messages):
        self.messages = list(messages)
        self.sent = []
        self.closed = False

    async def send(self, message):
        self.sent.append(json.loads(message))

    async def close(self):
        self.closed = True

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self.messages or self.closed:
            raise StopAsyncIteration
        return self.messages.pop(0)


class FakeConnect:
    """Stand-in for websockets.connect(...) used as an async context manager."""

    def __init__(self, ws):
        self.ws = ws

    async def __aenter__(self):
        return self.ws

    async def __aexit__(self, *exc):
        return False


class TestCircuitBreaker:
    """Test reconnect circuit breaker."""

    def test_initial_state(self):
        cb = CircuitBreaker()

        assert cb.state == CircuitState.CLOSED
        assert cb.can_attempt()

    def test_opens_at_threshold(self):
        cb = CircuitBreaker(failure_threshold=3)

        cb.record_failure()
        cb.record_failure()
        assert cb.state == CircuitState.CLOSED

        cb.record_failure()
        assert cb.state == CircuitState.OPEN
        assert not cb.can_attempt()

    def test_half_open_after_timeout(self):
        cb = CircuitBreaker(failure_threshold=1, timeout=60)
        cb.record_failure()
        cb.last_failure_time = time.monotonic() - 61

        assert cb.can_attempt()
        assert cb.state == CircuitState.HALF_OPEN

    def test_success_closes_half_open(self):
        cb = CircuitBreaker(failure_threshold=1)
        cb.state = CircuitState.HALF_OPEN
        cb.failure_count = 1

        cb.record_success()

        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 0

    def test_cooldown_remaining(self):
        cb = CircuitBreaker(failure_threshold=1, timeout=60)
        assert cb.cooldown_remaining() == 0.0

        cb.record_failure()

        assert 59.0 < cb.cooldown_remaining() <= 60.0

    def test_sized_from_retry_budget(self):
        """Test the default breaker stays closed until max_retries is spent."""
        cb = CircuitBreaker.for_retries(3)

        for _ in range(3):
            cb.record_failure()
        assert cb.state == CircuitState.CLOSED

        cb.record_failure()
        assert cb.state == CircuitState.OPEN

    def test_feed_default_breaker_follows_max_retries(self):
        feed = DeribitFeed.from_config(FeedConfig(max_retries=10))

        assert feed.circuit_breaker.failure_threshold == 11


class TestMessageParsing:
    """Test notification decoding."""

    def test_single_record(self):
        feed = DeribitFeed()

        assert feed._parse_message(notification(ticker_record())) == [ticker_record()]

    def test_batched_records(self):
        feed = DeribitFeed()
        records = [ticker_record(), ticker_record(name="BTC-10MAR23-23000-C")]

        assert feed._parse_message(notification(*records)) == records

    def test_response_is_not_a_record(self):
        assert DeribitFeed()._parse_message(response(1, result=["ok"])) == []

    @pytest.mark.parametrize("message", ["{oops", "[1, 2]", "null"])
    def test_undecodable_messages_discarded(self, message):
        assert DeribitFeed()._parse_message(message) == []

    def test_from_config(self):
        config = FeedConfig(currency="ETH", ticker_interval="raw", max_retries=2, retry_delay=1.5)

        feed = DeribitFeed.from_config(config)

        assert feed.currency == "ETH"
        assert feed.ticker_interval == "raw"
        assert feed.max_retries == 2
        assert feed.retry_delay == 1.5


class TestStreaming:
    """Test the subscribe-and-stream loop against a fake server."""

    @pytest.mark.asyncio
    async def test_subscribes_and_streams(self, monkeypatch):
        """Test instruments are subscribed and notifications are yielded in order."""
        early = ticker_record(name="BTC-10MAR23-21000-C")
        late = ticker_record(name="BTC-10MAR23-22000-C")
        ws = FakeWebSocket([
            response(1, result=[
                {"instrument_name": "BTC-10MAR23-21000-C"},
                {"instrument_name": "BTC-10MAR23-22000-C"},
                {"instrument_name": "BTC-10MAR23-23000-C"},
            ]),
            notification(early),
            response(2, result=["ticker.BTC-10MAR23-21000-C.100ms", "ticker.BTC-10MAR23-22000-C.100ms"]),
            response(3, result=["ticker.BTC-10MAR23-23000-C.100ms"]),
            notification(late),
        ])
        monkeypatch.setattr(deribit.websockets, "connect", lambda url, **kwargs: FakeConnect(ws))

        feed = DeribitFeed(subscribe_batch_size=2, max_retries=0)
        received = []
        with pytest.raises(FeedError):
            async for record in feed:
                received.append(record)

        assert received == [early, late]
        assert [m["method"] for m in ws.sent] == ["public/get_instruments", "public/subscribe", "public/subscribe"]
        assert ws.sent[0]["params"] == {"currency": "BTC", "kind": "option", "expired": False}
        assert ws.sent[1]["params"]["channels"] == [
            "ticker.BTC-10MAR23-21000-C.100ms",
            "ticker.BTC-10MAR23-22000-C.100ms",
        ]

    @pytest.mark.asyncio
    async def test_rpc_error_is_feed_error(self, monkeypatch):
        ws = FakeWebSocket([response(1, error={"code": 10000, "message": "bad request"})])
        monkeypatch.setattr(deribit.websockets, "connect", lambda url, **kwargs: FakeConnect(ws))

        with pytest.raises(FeedError, match="bad request"):
            async for _ in DeribitFeed(max_retries=0):
                pass

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, monkeypatch):
        """Test connection failures retry then raise FeedError."""
        attempts = []

        def failing_connect(url, **kwargs):
            attempts.append(url)
            raise OSError("connection refused")

        monkeypatch.setattr(deribit.websockets, "connect", failing_connect)
        feed = DeribitFeed(max_retries=2, retry_delay=0.0, circuit_breaker=CircuitBreaker(failure_threshold=10))

        with pytest.raises(FeedError, match="unavailable"):
            async for _ in feed:
                pass

        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_retry_budget_above_breaker_default(self, monkeypatch):
        """Test every one of max_retries reconnects is attempted."""
        attempts = []

        def failing_connect(url, **kwargs):
            attempts.append(url)
            raise OSError("connection refused")

        monkeypatch.setattr(deribit.websockets, "connect", failing_connect)

        with pytest.raises(FeedError, match="unavailable"):
            async for _ in DeribitFeed(max_retries=10, retry_delay=0.0):
                pass

        assert len(attempts) == 11

    @pytest.mark.asyncio
    async def test_open_circuit_waits_then_tries_half_open(self, monkeypatch, loguru_messages):
        """Test an open breaker delays the next attempt instead of ending the feed."""
        cb = CircuitBreaker(failure_threshold=1, timeout=0.05)
        cb.record_failure()
        attempts = []

        def failing_connect(url, **kwargs):
            attempts.append(time.monotonic())
            raise OSError("connection refused")

        monkeypatch.setattr(deribit.websockets, "connect", failing_connect)
        opened_at = cb.last_failure_time

        with pytest.raises(FeedError, match="unavailable"):
            async for _ in DeribitFeed(max_retries=0, circuit_breaker=cb):
                pass

        assert len(attempts) == 1
        assert attempts[0] - opened_at >= 0.05
        assert cb.state == CircuitState.OPEN
        assert any("HALF_OPEN" in m for m in loguru_messages)

    @pytest.mark.asyncio
    async def test_small_breaker_does_not_cut_retries(self, monkeypatch):
        attempts = []

        def failing_connect(url, **kwargs):
            attempts.append(url)
            raise OSError("connection refused")

        monkeypatch.setattr(deribit.websockets, "connect", failing_connect)
        feed = DeribitFeed(max_retries=4, retry_delay=0.0, circuit_breaker=CircuitBreaker(failure_threshold=2, timeout=0.01))

        with pytest.raises(FeedError, match="unavailable"):
            async for _ in feed:
                pass

        assert len(attempts) == 5

    @pytest.mark.asyncio
    @pytest.mark.parametrize("result", [None, [{"kind": "option"}], ["BTC-10MAR23-21000-C"]])
    async def test_malformed_instruments_reconnects(self, monkeypatch, result):
        """Test a bad get_instruments result is retried on a fresh connection."""
        record = ticker_record(name="BTC-10MAR23-21000-C")
        sockets = [
            FakeWebSocket([response(1, result=result)]),
            FakeWebSocket([
                response(2, result=[{"instrument_name": "BTC-10MAR23-21000-C"}]),
                response(3, result=["ticker.BTC-10MAR23-21000-C.100ms"]),
                notification(record),
            ]),
        ]
        def connect(url, **kwargs):
            if not sockets:
                raise OSError("connection refused")
            return FakeConnect(sockets.pop(0))

        monkeypatch.setattr(deribit.websockets, "connect", connect)
        received = []

        with pytest.raises(FeedError, match="unavailable"):
            async for item in DeribitFeed(max_retries=1, retry_delay=0.0):
                received.append(item)

        assert received == [record]
        assert sockets == []

    @pytest.mark.asyncio
    async def test_close_stops_stream(self, monkeypatch):
        ws = FakeWebSocket([
            response(1, result=[{"instrument_name": "BTC-10MAR23-21000-C"}]),
            response(2, result=["ticker.BTC-10MAR23-21000-C.100ms"]),
            notification(ticker_record()),
            notification(ticker_record()),
        ])
        monkeypatch.setattr(deribit.websockets, "connect", lambda url, **kwargs: FakeConnect(ws))
        feed = DeribitFeed()
        received = []

        async for record in feed:
            received.append(record)
            await feed.close()

        assert len(received) == 1
        assert ws.closed
