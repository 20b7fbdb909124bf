"""
Tests for the block explorer layer.

Covers response parsing, retry with backoff, the circuit breaker, daily
usage tracking, the Arbiscan client over a mocked transport and the shared
pagination loop.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from app.explorer.clients import get_explorer_client
from app.explorer.clients.arbiscan import ArbiscanClient, parse_explorer_response
from app.explorer.clients.base import (
    BaseExplorerClient,
    ExplorerConfigError,
    ExplorerConnectionError,
    InvalidApiKeyError,
    RateLimitError,
    RawExplorerTx,
)
from app.explorer.clients.mock_client import MockExplorerClient
from app.explorer.config import CircuitBreakerConfig, ExplorerConfig, RetryConfig
from app.explorer.retry import CircuitBreaker, CircuitOpenError, CircuitState, retry_with_backoff
from app.explorer.usage import UsageTracker

WALLET = "0x1111111111111111111111111111111111111111"


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


def _row(tx_hash: str, timestamp: int, **extra) -> dict:
    row = {"hash": tx_hash, "from": WALLET, "to": "0xabc", "value": "1", "timeStamp": str(timestamp)}
    row.update(extra)
    return row


class TestParseExplorerResponse:
    """Tests for Etherscan response body handling."""

    def test_ok_result_returned(self):
        """Test that status 1 returns the result list."""
        rows = [_row("0x1", 100)]
        assert parse_explorer_response({"status": "1", "message": "OK", "result": rows}) == rows

    def test_no_transactions_is_empty(self):
        """Test that 'No transactions found' yields an empty list."""
        data = {"status": "0", "message": "No transactions found", "result": []}
        assert parse_explorer_response(data) == []

    def test_no_token_transfers_is_empty(self):
        """Test that 'No token transfers found' yields an empty list."""
        data = {"status": "0", "message": "No token transfers found", "result": []}
        assert parse_explorer_response(data) == []

    def test_rate_limit_raises(self):
        """Test that a rate limit message raises RateLimitError."""
        data = {"status": "0", "message": "Max rate limit reached", "result": "..."}
        with pytest.raises(RateLimitError):
            parse_explorer_response(data, WALLET)

    def test_invalid_key_raises(self):
        """Test that NOTOK and invalid key messages raise InvalidApiKeyError."""
        with pytest.raises(InvalidApiKeyError):
            parse_explorer_response({"status": "0", "message": "NOTOK", "result": "Invalid API Key"})
        with pytest.raises(InvalidApiKeyError):
            parse_explorer_response({"status": "0", "message": "Invalid API Key"})

    def test_other_error_is_empty(self):
        """Test that unknown status 0 messages yield an empty list."""
        assert parse_explorer_response({"status": "0", "message": "Query Timeout"}) == []

    def test_raw_tx_aliases(self):
        """Test that explorer field names map onto RawExplorerTx."""
        tx = RawExplorerTx.model_validate(
            _row("0x1", 1700000000, tokenSymbol="USDC", tokenDecimal="6")
        )
        assert tx.from_address == WALLET
        assert tx.time_stamp == 1700000000
        assert tx.token_symbol == "USDC"
        assert tx.is_token_transfer


@pytest.mark.asyncio
class TestRetryWithBackoff:
    """Tests for the retry loop."""

    async def test_succeeds_after_failures(self):
        """Test that transient failures are retried with the fixed schedule."""
        func = AsyncMock(
            side_effect=[ExplorerConnectionError("a"), ExplorerConnectionError("b"), ["ok"]]
        )
        with patch("app.explorer.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            result = await retry_with_backoff(func, RetryConfig())

        assert result == ["ok"]
        assert func.await_count == 3
        assert [call.args[0] for call in sleep.await_args_list] == [1.0, 2.0]

    async def test_exhausts_retries(self):
        """Test that the last error is raised after max_retries."""
        func = AsyncMock(side_effect=ExplorerConnectionError("down"))
        with patch("app.explorer.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(ExplorerConnectionError):
                await retry_with_backoff(func, RetryConfig(max_retries=3))

        assert func.await_count == 4
        assert [call.args[0] for call in sleep.await_args_list] == [1.0, 2.0, 4.0]

    async def test_invalid_key_not_retried(self):
        """Test that InvalidApiKeyError is raised immediately."""
        func = AsyncMock(side_effect=InvalidApiKeyError("bad key"))
        with patch("app.explorer.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(InvalidApiKeyError):
                await retry_with_backoff(func, RetryConfig())

        assert func.await_count == 1
        sleep.assert_not_awaited()

    async def test_on_attempt_called_per_attempt(self):
        """Test that the usage hook runs before every attempt."""
        func = AsyncMock(side_effect=[RateLimitError("429"), ["ok"]])
        on_attempt = AsyncMock()
        with patch("app.explorer.retry.asyncio.sleep", new=AsyncMock()):
            await retry_with_backoff(func, RetryConfig(), on_attempt=on_attempt)

        assert on_attempt.await_count == 2

    def test_delay_for_repeats_last_value(self):
        """Test that attempts past the schedule reuse the last delay."""
        config = RetryConfig(backoff_seconds=[1, 2], max_delay=1.5)
        assert config.delay_for(0) == 1
        assert config.delay_for(5) == 1.5


@pytest.mark.asyncio
class TestCircuitBreaker:
    """Tests for circuit breaker state transitions."""

    def _breaker(self, clock: FakeClock, alert=None) -> CircuitBreaker:
        return CircuitBreaker(
            CircuitBreakerConfig(failure_threshold=5, reset_timeout=60),
            alert=alert,
            clock=clock,
        )

    async def _fail(self, breaker: CircuitBreaker):
        with pytest.raises(ExplorerConnectionError):
            await breaker.call_async(AsyncMock(side_effect=ExplorerConnectionError("x")))

    async def test_opens_after_threshold(self):
        """Test that five consecutive failures open the circuit and alert once."""
        clock = FakeClock(datetime(2025, 1, 1, tzinfo=timezone.utc))
        alert = AsyncMock()
        breaker = self._breaker(clock, alert)

        for _ in range(4):
            await self._fail(breaker)
        assert breaker.state == CircuitState.CLOSED

        await self._fail(breaker)
        assert breaker.state == CircuitState.OPEN
        alert.assert_awaited_once()
        assert alert.await_args.args[2] == "CRITICAL"

        func = AsyncMock(return_value="ok")
        with pytest.raises(CircuitOpenError):
            await breaker.call_async(func)
        func.assert_not_awaited()

    async def test_success_resets_failure_count(self):
        """Test that a success in CLOSED clears the failure count."""
        clock = FakeClock(datetime(2025, 1, 1, tzinfo=timezone.utc))
        breaker = self._breaker(clock)

        for _ in range(3):
            await self._fail(breaker)
        await breaker.call_async(AsyncMock(return_value="ok"))

        assert breaker.failure_count == 0
        assert breaker.state == CircuitState.CLOSED

    async def test_half_open_success_closes(self):
        """Test that a successful trial after the timeout closes the circuit."""
        clock = FakeClock(datetime(2025, 1, 1, tzinfo=timezone.utc))
        breaker = self._breaker(clock)
        for _ in range(5):
            await self._fail(breaker)

        clock.advance(61)
        assert await breaker.call_async(AsyncMock(return_value="ok")) == "ok"
        assert breaker.state == CircuitState.CLOSED
        assert breaker.get_state()["next_attempt_at"] is None

    async def test_half_open_failure_reopens(self):
        """Test that a failed trial reopens the circuit immediately."""
        clock = FakeClock(datetime(2025, 1, 1, tzinfo=timezone.utc))
        alert = AsyncMock()
        breaker = self._breaker(clock, alert)
        for _ in range(5):
            await self._fail(breaker)

        clock.advance(60)
        await self._fail(breaker)

        assert breaker.state == CircuitState.OPEN
        assert alert.await_count == 2

    async def test_alert_failure_does_not_escape(self):
        """Test that a failing alert hook does not mask the original error."""
        clock = FakeClock(datetime(2025, 1, 1, tzinfo=timezone.utc))
        breaker = self._breaker(clock, AsyncMock(side_effect=RuntimeError("slack down")))
        for _ in range(5):
            await self._fail(breaker)
        assert breaker.state == CircuitState.OPEN

    def test_get_state_shape(self):
        """Test the state snapshot keys."""
        breaker = CircuitBreaker(alert=None)
        state = breaker.get_state()
        assert state["state"] == "closed"
        assert set(state) == {
            "state",
            "failure_count",
            "last_failure_time",
            "next_attempt_at",
            "last_state_change",
        }


@pytest.mark.asyncio
class TestUsageTracker:
    """Tests for daily API usage tracking."""

    async def test_thresholds_alert_once_per_day(self):
        """Test that each threshold alerts once as usage climbs."""
        clock = FakeClock(datetime(2025, 3, 1, 12, tzinfo=timezone.utc))
        notify = AsyncMock()
        tracker = UsageTracker(limit=100, notify=notify, clock=clock)

        for _ in range(96):
            await tracker.track_call()

        assert notify.await_count == 3
        messages = [call.args[0] for call in notify.await_args_list]
        assert "80%" in messages[0]
        assert "90%" in messages[1]
        assert "95%" in messages[2]

        usage = tracker.get_usage()
        assert usage == {"calls": 96, "limit": 100, "percentage": 96, "day": "2025-03-01"}

    async def test_resets_on_new_utc_day(self):
        """Test that the counter and alerts reset when the UTC date changes."""
        clock = FakeClock(datetime(2025, 3, 1, 23, 59, tzinfo=timezone.utc))
        notify = AsyncMock()
        tracker = UsageTracker(limit=10, notify=notify, clock=clock)

        for _ in range(9):
            await tracker.track_call()
        assert notify.await_count == 2

        clock.advance(120)
        assert tracker.get_usage()["calls"] == 0

        usage = await tracker.track_call()
        assert usage["calls"] == 1
        assert usage["day"] == "2025-03-02"

    async def test_percentage_rounds_half_up(self):
        """Test that usage percentage rounds half up."""
        clock = FakeClock(datetime(2025, 3, 1, tzinfo=timezone.utc))
        tracker = UsageTracker(limit=200, notify=None, clock=clock)
        await tracker.track_call()
        assert tracker.get_usage()["percentage"] == 1


def _transport(responses: List[dict], requests: Optional[list] = None) -> httpx.MockTransport:
    queue = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        item = queue.pop(0)
        return httpx.Response(item.get("status_code", 200), json=item.get("json"))

    return httpx.MockTransport(handler)


@pytest.mark.asyncio
class TestArbiscanClient:
    """Tests for the Etherscan V2 client."""

    def _client(self, transport: httpx.MockTransport, **config) -> ArbiscanClient:
        return ArbiscanClient(
            ExplorerConfig(api_key="test-key", **config),
            http_client=httpx.AsyncClient(transport=transport),
            breaker=CircuitBreaker(alert=None),
            tracker=UsageTracker(notify=None),
        )

    def test_requires_api_key(self):
        """Test that building the client without a key fails."""
        with pytest.raises(ExplorerConfigError):
            ArbiscanClient(ExplorerConfig(api_key=None))

    async def test_fetch_native_builds_request(self):
        """Test query parameters and parsing of a txlist page."""
        requests: list = []
        transport = _transport(
            [{"json": {"status": "1", "message": "OK", "result": [_row("0xa", 1700000000)]}}],
            requests,
        )
        client = self._client(transport)

        txs = await client.fetch_native_transactions(WALLET, page=2, offset=50)

        assert [tx.hash for tx in txs] == ["0xa"]
        params = requests[0].url.params
        assert params["chainid"] == "42161"
        assert params["module"] == "account"
        assert params["action"] == "txlist"
        assert params["sort"] == "desc"
        assert params["page"] == "2"
        assert params["offset"] == "50"
        assert params["apikey"] == "test-key"
        assert client.tracker.get_usage()["calls"] == 1

    async def test_token_action(self):
        """Test that token transfers use the tokentx action."""
        requests: list = []
        transport = _transport(
            [{"json": {"status": "0", "message": "No token transfers found", "result": []}}],
            requests,
        )
        client = self._client(transport)

        assert await client.fetch_token_transactions(WALLET) == []
        assert requests[0].url.params["action"] == "tokentx"

    async def test_http_429_is_retried(self):
        """Test that HTTP 429 is retried and counted per attempt."""
        transport = _transport(
            [
                {"status_code": 429, "json": {}},
                {"json": {"status": "1", "message": "OK", "result": []}},
            ]
        )
        client = self._client(transport)

        with patch("app.explorer.retry.asyncio.sleep", new=AsyncMock()):
            assert await client.fetch_native_transactions(WALLET) == []
        assert client.tracker.get_usage()["calls"] == 2

    async def test_invalid_key_propagates(self):
        """Test that an invalid key fails without retrying."""
        transport = _transport([{"json": {"status": "0", "message": "NOTOK", "result": "Invalid API Key"}}])
        client = self._client(transport)

        with pytest.raises(InvalidApiKeyError):
            await client.fetch_native_transactions(WALLET)
        assert client.breaker.failure_count == 1


class PagedClient(BaseExplorerClient):
    """Serves pre-built pages for pagination tests."""

    def __init__(self, pages: List[List[RawExplorerTx]], page_size: int):
        super().__init__(ExplorerConfig(page_size=page_size, page_delay=0))
        self.pages = pages
        self.requested: List[int] = []

    def get_source_name(self) -> str:
        return "paged"

    async def fetch_native_transactions(self, address, page=None, offset=None):
        self.requested.append(page)
        index = (page or 1) - 1
        return self.pages[index] if index < len(self.pages) else []

    async def fetch_token_transactions(self, address, page=None, offset=None):
        return await self.fetch_native_transactions(address, page, offset)


def _txs(*timestamps: int) -> List[RawExplorerTx]:
    return [RawExplorerTx(hash=f"0x{ts}", time_stamp=ts) for ts in timestamps]


@pytest.mark.asyncio
class TestPagination:
    """Tests for the shared full-history pagination loop."""

    async def test_stops_on_short_page(self):
        """Test that a page shorter than page_size ends pagination."""
        client = PagedClient([_txs(500, 400), _txs(300)], page_size=2)
        txs = await client.fetch_all_native_transactions(WALLET)
        assert [tx.time_stamp for tx in txs] == [500, 400, 300]
        assert client.requested == [1, 2]

    async def test_stops_on_empty_page(self):
        """Test that an empty page ends pagination."""
        client = PagedClient([_txs(500, 400)], page_size=2)
        txs = await client.fetch_all_token_transactions(WALLET)
        assert len(txs) == 2
        assert client.requested == [1, 2]

    async def test_stops_past_cutoff_and_filters(self):
        """Test that a page reaching past the cutoff is the last one and old rows are dropped."""
        client = PagedClient([_txs(500, 400), _txs(300, 100), _txs(50, 40)], page_size=2)
        txs = await client.fetch_all_native_transactions(WALLET, cutoff_timestamp=200)
        assert [tx.time_stamp for tx in txs] == [500, 400, 300]
        assert client.requested == [1, 2]


@pytest.mark.asyncio
class TestMockClient:
    """Tests for MockExplorerClient."""

    async def test_deterministic_history(self):
        """Test that repeated calls return the same hashes."""
        client = MockExplorerClient(history_days=3)
        first = await client.fetch_token_transactions(WALLET)
        second = await client.fetch_token_transactions(WALLET)

        assert first
        assert [tx.hash for tx in first] == [tx.hash for tx in second]
        assert all(tx.from_address == WALLET for tx in first)
        assert all(tx.token_symbol in ("USDC", "USDT", "RISEPAY") for tx in first)

    async def test_paging(self):
        """Test that page and offset slice the history."""
        client = MockExplorerClient(history_days=10)
        everything = await client.fetch_token_transactions(WALLET)
        page = await client.fetch_token_transactions(WALLET, page=2, offset=3)
        assert [tx.hash for tx in page] == [tx.hash for tx in everything[3:6]]

    async def test_failure_simulation(self):
        """Test that the mock client can simulate failures."""
        client = MockExplorerClient(failure_rate=1.0)
        with pytest.raises(ExplorerConnectionError):
            await client.fetch_native_transactions(WALLET)

    def test_factory_selects_mock(self):
        """Test that EXPLORER_CLIENT=mock builds the mock client."""
        assert isinstance(get_explorer_client(ExplorerConfig()), MockExplorerClient)
