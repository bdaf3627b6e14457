"""
RPC Transport Tests.

============================================================
PURPOSE
============================================================
Tests for the JSON-RPC transport and the typed RPC client.

TEST CATEGORIES:
- Backoff computation
- Retry behavior
- Response classification
- RPC client request shapes

============================================================
"""

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, patch

import aiohttp
import pytest

from soroban_activity.config import RetryPolicy
from soroban_activity.exceptions import (
    ProcessingLimitError,
    ProtocolError,
    RateLimitError,
    RpcTimeoutError,
    TransportError,
)
from soroban_activity.models import EventFilter
from soroban_activity.rpc import SorobanRpcClient
from soroban_activity.transport import RpcTransport, compute_backoff_delay


class FakeResponse:
    """Minimal aiohttp response stand-in."""

    def __init__(self, status=200, payload=None, headers=None, text="", json_error=None):
        self.status = status
        self._payload = payload
        self.headers = headers or {}
        self._text = text
        self._json_error = json_error

    async def json(self, content_type=None):
        if self._json_error:
            raise self._json_error
        return self._payload

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Returns queued responses (or raises queued exceptions) per POST."""

    def __init__(self, outcomes):
        self._outcomes = list(outcomes)
        self.requests = []
        self.closed = False

    def post(self, url, json=None, headers=None, timeout=None):
        self.requests.append({"url": url, "json": json, "timeout": timeout})
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def close(self):
        self.closed = True


def make_transport(outcomes, policy=None, sleep=None):
    return RpcTransport(
        "https://rpc.example",
        policy or RetryPolicy(max_retries=2, backoff_ms=300, backoff_max_ms=2000),
        session=FakeSession(outcomes),
        rand=lambda: 1.0,
        sleep=sleep or AsyncMock(),
    )


# ============================================================
# BACKOFF
# ============================================================

class TestBackoff:
    """Tests for compute_backoff_delay."""

    def test_exponential_growth(self):
        """Test delays double per attempt without jitter."""
        policy = RetryPolicy(backoff_ms=300, backoff_max_ms=2000)

        delays = [compute_backoff_delay(policy, k, rand=lambda: 0.0) for k in range(4)]

        assert delays == [300, 600, 1200, 2000]

    def test_delay_never_exceeds_cap_with_jitter(self):
        """Test the delay is bounded by backoff_max_ms * 1.25."""
        policy = RetryPolicy(backoff_ms=300, backoff_max_ms=2000)

        for attempt in range(12):
            for rand in (0.0, 0.5, 0.999, 1.0):
                assert compute_backoff_delay(policy, attempt, rand=lambda: rand) <= 2000 * 1.25

    def test_jitter_is_at_most_quarter(self):
        """Test jitter adds at most 25% of the base delay."""
        policy = RetryPolicy(backoff_ms=400, backoff_max_ms=4000)

        assert compute_backoff_delay(policy, 0, rand=lambda: 1.0) == 500


# ============================================================
# RETRY BEHAVIOR
# ============================================================

class TestRetry:
    """Tests for RpcTransport.call retry handling."""

    @pytest.mark.asyncio
    async def test_success_first_try(self):
        """Test a successful call returns the result member."""
        transport = make_transport([FakeResponse(payload={"jsonrpc": "2.0", "id": 1, "result": {"sequence": 5}})])

        assert await transport.call("getLatestLedger") == {"sequence": 5}

    @pytest.mark.asyncio
    async def test_retries_5xx_then_succeeds(self):
        """Test 5xx responses are retried with backoff sleeps."""
        sleep = AsyncMock()
        transport = make_transport(
            [
                FakeResponse(status=503, text="busy"),
                FakeResponse(status=502),
                FakeResponse(payload={"result": "ok"}),
            ],
            sleep=sleep,
        )

        assert await transport.call("getHealth") == "ok"
        assert sleep.await_count == 2
        # rand() == 1.0 -> full 25% jitter
        assert [c.args[0] for c in sleep.await_args_list] == [0.375, 0.75]

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_last_error(self):
        """Test the last transport error surfaces after max_retries."""
        transport = make_transport([
            FakeResponse(status=500),
            FakeResponse(status=500),
            FakeResponse(status=504),
        ])

        with pytest.raises(TransportError) as exc_info:
            await transport.call("getHealth")

        assert exc_info.value.status_code == 504

    @pytest.mark.asyncio
    async def test_429_is_retried(self):
        """Test rate limiting is retryable."""
        transport = make_transport([
            FakeResponse(status=429, headers={"Retry-After": "2"}),
            FakeResponse(payload={"result": 1}),
        ])

        assert await transport.call("getLatestLedger") == 1

    @pytest.mark.asyncio
    async def test_4xx_not_retried(self):
        """Test client errors fail immediately."""
        sleep = AsyncMock()
        transport = make_transport([FakeResponse(status=400, text="bad")], sleep=sleep)

        with pytest.raises(TransportError) as exc_info:
            await transport.call("getEvents", {})

        assert exc_info.value.retryable is False
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_protocol_error_not_retried(self):
        """Test a JSON-RPC error object is raised without retry."""
        sleep = AsyncMock()
        transport = make_transport(
            [FakeResponse(payload={"error": {"code": -32602, "message": "invalid params"}})],
            sleep=sleep,
        )

        with pytest.raises(ProtocolError) as exc_info:
            await transport.call("getEvents", {})

        assert exc_info.value.code == -32602
        assert not isinstance(exc_info.value, ProcessingLimitError)
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_processing_limit_is_distinct(self):
        """Test code -32001 raises ProcessingLimitError."""
        transport = make_transport([
            FakeResponse(payload={"error": {"code": -32001, "message": "processing limit exceeded"}}),
        ])

        with pytest.raises(ProcessingLimitError) as exc_info:
            await transport.call("getEvents", {})

        assert exc_info.value.is_processing_limit

    @pytest.mark.asyncio
    async def test_timeout_is_distinguishable(self):
        """Test a request timeout surfaces as RpcTimeoutError."""
        transport = make_transport(
            [asyncio.TimeoutError()],
            policy=RetryPolicy(timeout_ms=50, max_retries=0),
        )

        with pytest.raises(RpcTimeoutError) as exc_info:
            await transport.call("getHealth")

        assert exc_info.value.timeout_ms == 50

    @pytest.mark.asyncio
    async def test_connection_error_retried(self):
        """Test connection failures are retried."""
        transport = make_transport([
            aiohttp.ClientConnectionError("reset"),
            FakeResponse(payload={"result": True}),
        ])

        assert await transport.call("getHealth") is True

    @pytest.mark.asyncio
    async def test_rate_limit_error_type(self):
        """Test 429 maps to RateLimitError when retries are disabled."""
        transport = make_transport(
            [FakeResponse(status=429, headers={"Retry-After": "3"})],
            policy=RetryPolicy(max_retries=0),
        )

        with pytest.raises(RateLimitError) as exc_info:
            await transport.call("getHealth")

        assert exc_info.value.retry_after_seconds == 3

    @pytest.mark.asyncio
    async def test_request_envelope(self):
        """Test the JSON-RPC envelope and per-request timeout."""
        transport = make_transport([FakeResponse(payload={"result": {}})], policy=RetryPolicy(timeout_ms=2500))

        await transport.call("getEvents", {"filters": []})

        request = transport._session.requests[0]
        assert request["json"]["jsonrpc"] == "2.0"
        assert request["json"]["method"] == "getEvents"
        assert request["json"]["params"] == {"filters": []}
        assert request["timeout"].total == 2.5

    @pytest.mark.asyncio
    async def test_health_tracks_failures(self):
        """Test consecutive failures degrade the transport health."""
        transport = make_transport([FakeResponse(status=500)] * 3)

        with pytest.raises(TransportError):
            await transport.call("getHealth")

        health = transport.get_health()
        assert health.consecutive_failures == 3
        assert health.status.value == "degraded"

    @pytest.mark.asyncio
    async def test_processing_limit_answers_keep_health(self):
        """Test repeated JSON-RPC error answers do not degrade health."""
        limit = {"error": {"code": -32001, "message": "processing limit exceeded"}}
        transport = make_transport([FakeResponse(payload=limit) for _ in range(4)])

        for _ in range(4):
            with pytest.raises(ProcessingLimitError):
                await transport.call("getEvents", {})

        health = transport.get_health()
        assert health.consecutive_failures == 0
        assert health.status.value == "unknown"
        assert len(transport._session.requests) == 4

    @pytest.mark.asyncio
    async def test_call_uses_post_once(self):
        """Test retries go through _post_once."""
        transport = make_transport([])
        with patch.object(
            transport,
            "_post_once",
            AsyncMock(side_effect=[TransportError("boom"), {"sequence": 9}]),
        ) as post_once:
            assert await transport.call("getLatestLedger") == {"sequence": 9}

        assert post_once.await_count == 2


# ============================================================
# RPC CLIENT
# ============================================================

class TestSorobanRpcClient:
    """Tests for SorobanRpcClient request shaping."""

    @pytest.mark.asyncio
    async def test_get_events_params(self, fake_transport_cls):
        """Test getEvents sends filters, startLedger and pagination."""
        transport = fake_transport_cls({"getEvents": {"events": [{"id": "1"}], "latestLedger": 10, "cursor": "c"}})
        client = SorobanRpcClient(transport)

        page = await client.get_events([EventFilter(contract_ids=("C1",))], start_ledger=10, limit=20)

        method, params = transport.calls[0]
        assert method == "getEvents"
        assert params["startLedger"] == 10
        assert params["pagination"] == {"limit": 20, "order": "desc"}
        assert params["filters"] == [{"type": "contract", "contractIds": ["C1"]}]
        assert page.cursor == "c"
        assert page.latest_ledger == 10

    @pytest.mark.asyncio
    async def test_cursor_replaces_start_ledger(self, fake_transport_cls):
        """Test cursor pagination omits startLedger."""
        transport = fake_transport_cls({"getEvents": {"events": []}})

        await SorobanRpcClient(transport).get_events([], start_ledger=10, cursor="abc")

        params = transport.calls[0][1]
        assert "startLedger" not in params
        assert params["pagination"]["cursor"] == "abc"

    @pytest.mark.asyncio
    async def test_invalid_order_rejected(self, fake_transport_cls):
        """Test order must be asc or desc."""
        client = SorobanRpcClient(fake_transport_cls({}))

        with pytest.raises(ValueError):
            await client.get_events([], order="sideways")

    @pytest.mark.asyncio
    async def test_ledger_range(self, fake_transport_cls):
        """Test ledger range dates assume ~5s per ledger."""
        transport = fake_transport_cls({"getHealth": {"status": "healthy", "latestLedger": 1720, "oldestLedger": 1000}})
        now = datetime(2026, 1, 1, 12, 0, 0)

        ledger_range = await SorobanRpcClient(transport).get_ledger_range(now=now)

        assert ledger_range.latest_ledger == 1720
        assert ledger_range.oldest_ledger == 1000
        assert (ledger_range.latest_date - ledger_range.oldest_date).total_seconds() == 3600

    @pytest.mark.asyncio
    async def test_ledger_entries_and_transaction(self, fake_transport_cls):
        """Test pass-through request shapes."""
        transport = fake_transport_cls({
            "getLedgerEntries": {"entries": []},
            "getTransaction": {"status": "NOT_FOUND"},
        })
        client = SorobanRpcClient(transport)

        await client.get_ledger_entries(["AAAA"])
        await client.get_transaction("ab" * 32)

        assert transport.calls == [
            ("getLedgerEntries", {"keys": ["AAAA"]}),
            ("getTransaction", {"hash": "ab" * 32}),
        ]
