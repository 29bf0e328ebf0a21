"""
Tests for ResilientHttpClient.

All traffic goes through ``ScriptedTransport`` and backoff waits through
``RecordingWaiter``, so attempt counts and wait durations are asserted
exactly and no test sleeps through a backoff.
"""

import threading

import httpx
import pytest
import structlog

from callsafe.core.errors import HttpStatusError, RateLimitError, ServerError, ServiceUnavailableError
from callsafe.execution.pool import WorkerPool
from callsafe.execution.retry import BackoffPolicy
from callsafe.http.client import ResilientHttpClient, classify_response
from callsafe.http.request import HttpMethod, RequestDescriptor
from tests._support.http_stubs import RecordingWaiter, ScriptedTransport, reply

URL = "https://api.example.com/users"


# ── Outcome classification ───────────────────────────────────────────────


class TestClassifyResponse:
    """Tests for classify_response."""

    def test_429_carries_retry_after(self):
        """Test 429 becomes a rate-limit error with Retry-After."""
        error = classify_response(reply(429, "slow down", {"Retry-After": "3"}))
        assert isinstance(error, RateLimitError)
        assert error.retry_after == 3
        assert error.message == "HTTP Error: 429 - slow down"

    def test_503_carries_retry_after(self):
        """Test 503 becomes a service-unavailable error with Retry-After."""
        error = classify_response(reply(503, "", {"Retry-After": "1"}))
        assert isinstance(error, ServiceUnavailableError)
        assert error.retry_after == 1

    def test_other_5xx_ignores_retry_after(self):
        """Test other 5xx statuses ignore Retry-After."""
        error = classify_response(reply(500, "oops", {"Retry-After": "9"}))
        assert isinstance(error, ServerError)
        assert error.retry_after is None
        assert error.retryable

    def test_4xx_is_terminal(self):
        """Test 4xx statuses are not retryable."""
        error = classify_response(reply(404, "missing"))
        assert isinstance(error, HttpStatusError)
        assert not error.retryable


# ── Single-call outcomes ─────────────────────────────────────────────────


class TestSuccess:
    """Tests for 2xx outcomes."""

    def test_2xx_single_attempt(self, make_client, waiter):
        """Test 200 returns the body after one attempt."""
        transport = ScriptedTransport([reply(200, '{"id": 1}')])
        envelope = make_client(transport).execute(RequestDescriptor(URL, max_retries=3))
        assert envelope.succeeded
        assert envelope.payload == '{"id": 1}'
        assert envelope.status_code == 200
        assert transport.attempts == 1
        assert waiter.waits == []

    def test_201_and_204_are_success(self, make_client):
        """Test other 2xx statuses succeed."""
        transport = ScriptedTransport([reply(201, "created")])
        assert make_client(transport).execute(RequestDescriptor(URL, method="POST")).succeeded
        transport = ScriptedTransport([reply(204)])
        envelope = make_client(transport).execute(RequestDescriptor(URL, method="DELETE"))
        assert envelope.succeeded
        assert envelope.payload == ""

    def test_request_shape(self, make_client):
        """Test method, URL, headers and body reach the wire."""
        transport = ScriptedTransport([reply(200)])
        make_client(transport).execute(
            RequestDescriptor(
                URL,
                method=HttpMethod.POST,
                headers={"Authorization": "Bearer TOKEN"},
                query_params={"userId": "42", "q": "a b"},
                body='{"name":"ada"}',
            )
        )
        sent = transport.requests[0]
        assert sent.method == "POST"
        assert str(sent.url) == URL + "?userId=42&q=a+b"
        assert sent.headers["Authorization"] == "Bearer TOKEN"
        assert sent.headers["Content-Type"] == "application/json"
        assert sent.content == b'{"name":"ada"}'

    def test_get_sends_no_content_type(self, make_client):
        """Test GET requests carry no Content-Type."""
        transport = ScriptedTransport([reply(200)])
        make_client(transport).execute(RequestDescriptor(URL))
        assert "Content-Type" not in transport.requests[0].headers


class TestTerminalStatus:
    """Tests for non-retryable statuses."""

    def test_404_not_retried(self, make_client, waiter):
        """Test 404 fails after one attempt with status and body."""
        transport = ScriptedTransport([reply(404, "no such user"), reply(200)])
        envelope = make_client(transport).execute(RequestDescriptor(URL, max_retries=3))
        assert envelope.succeeded is False
        assert envelope.message == "HTTP Error: 404 - no such user"
        assert envelope.code == "HTTP_ERROR"
        assert envelope.status_code == 404
        assert transport.attempts == 1
        assert waiter.waits == []

    def test_redirect_not_followed(self, make_client):
        """Test 3xx is terminal and not followed."""
        transport = ScriptedTransport([reply(302, "", {"Location": "https://elsewhere.example.com"})])
        envelope = make_client(transport).execute(RequestDescriptor(URL, max_retries=1))
        assert envelope.message == "HTTP Error: 302 - "
        assert transport.attempts == 1


# ── Retries ──────────────────────────────────────────────────────────────


class TestRetries:
    """Tests for transient status retries."""

    def test_503_exhausts_budget_with_doubling_backoff(self, make_client, waiter):
        """Test 503 with two retries makes three attempts waiting 0.5 s then 1 s."""
        transport = ScriptedTransport([reply(503, "maintenance")])
        envelope = make_client(transport).execute(RequestDescriptor(URL, max_retries=2))
        assert transport.attempts == 3
        assert waiter.waits == [0.5, 1.0]
        assert envelope.succeeded is False
        assert envelope.message == "HTTP Error: 503 - maintenance"
        assert envelope.status_code == 503
        assert envelope.code == "HTTP_ERROR"

    def test_zero_budget_makes_one_attempt(self, make_client, waiter):
        """Test zero retries means one attempt and no wait."""
        transport = ScriptedTransport([reply(500, "boom")])
        envelope = make_client(transport).execute(RequestDescriptor(URL))
        assert transport.attempts == 1
        assert waiter.waits == []
        assert envelope.message == "HTTP Error: 500 - boom"

    def test_recovers_after_transient_failures(self, make_client, waiter):
        """Test a success after transient failures is returned."""
        transport = ScriptedTransport([reply(502), reply(504), reply(200, "ok")])
        envelope = make_client(transport).execute(RequestDescriptor(URL, max_retries=5))
        assert envelope.succeeded
        assert envelope.payload == "ok"
        assert transport.attempts == 3
        assert waiter.waits == [0.5, 1.0]

    def test_429_honours_retry_after(self, make_client, waiter):
        """Test 429 waits for the Retry-After seconds."""
        transport = ScriptedTransport([reply(429, "", {"Retry-After": "2"}), reply(200, "ok")])
        envelope = make_client(transport).execute(RequestDescriptor(URL, max_retries=1))
        assert envelope.succeeded
        assert waiter.waits == [2.0]

    def test_retry_after_does_not_reset_backoff(self, make_client, waiter):
        """Test backoff keeps doubling across a Retry-After wait."""
        transport = ScriptedTransport([
            reply(503, "", {"Retry-After": "4"}),
            reply(503),
            reply(200),
        ])
        make_client(transport).execute(RequestDescriptor(URL, max_retries=2))
        assert waiter.waits == [4.0, 1.0]

    def test_unparseable_retry_after_falls_back_to_backoff(self, make_client, waiter):
        """Test an unparseable Retry-After uses the backoff."""
        transport = ScriptedTransport([reply(429, "", {"Retry-After": "later"}), reply(200)])
        make_client(transport).execute(RequestDescriptor(URL, max_retries=1))
        assert waiter.waits == [0.5]

    def test_500_ignores_retry_after(self, make_client, waiter):
        """Test 500 uses the backoff even with Retry-After."""
        transport = ScriptedTransport([reply(500, "", {"Retry-After": "9"}), reply(200)])
        make_client(transport).execute(RequestDescriptor(URL, max_retries=1))
        assert waiter.waits == [0.5]

    def test_rate_limit_exhaustion_code(self, make_client):
        """Test exhausted 429s report RATE_LIMITED."""
        transport = ScriptedTransport([reply(429, "quota", {"Retry-After": "0"})])
        envelope = make_client(transport).execute(RequestDescriptor(URL, max_retries=1))
        assert envelope.code == "RATE_LIMITED"
        assert envelope.status_code == 429
        assert transport.attempts == 2

    def test_backoff_capped_by_policy(self, make_client, waiter):
        """Test waits stop growing at max_delay."""
        transport = ScriptedTransport([reply(503)])
        policy = BackoffPolicy(initial_delay=1.0, max_delay=3.0)
        make_client(transport, policy=policy).execute(RequestDescriptor(URL, max_retries=4))
        assert waiter.waits == [1.0, 2.0, 3.0, 3.0]

    def test_on_retry_hook(self, make_client):
        """Test on_retry sees attempt, error and wait."""
        seen = []
        transport = ScriptedTransport([reply(503, "down"), reply(200)])
        client = make_client(transport, on_retry=lambda attempt, error, wait: seen.append((attempt, type(error), wait)))
        client.execute(RequestDescriptor(URL, max_retries=1))
        assert seen == [(1, ServiceUnavailableError, 0.5)]

    def test_attempt_logs_carry_url_and_method(self, make_client):
        """Test url and method are bound for the call and unbound afterwards."""
        structlog.contextvars.clear_contextvars()
        seen = []
        transport = ScriptedTransport([reply(503), reply(200)])
        client = make_client(transport, on_retry=lambda *args: seen.append(structlog.contextvars.get_contextvars()))
        client.execute(RequestDescriptor(URL, max_retries=1))
        assert seen == [{"url": URL, "method": "GET"}]
        assert structlog.contextvars.get_contextvars() == {}


class TestTransportFaults:
    """Tests for connection-level faults."""

    def test_connect_error_retried_then_exhausted(self, make_client, waiter):
        """Test connect errors are retried then reported with the fault."""
        transport = ScriptedTransport([httpx.ConnectError("connection refused")])
        envelope = make_client(transport).execute(RequestDescriptor(URL, max_retries=2))
        assert transport.attempts == 3
        assert waiter.waits == [0.5, 1.0]
        assert envelope.succeeded is False
        assert envelope.message.startswith("Request failed after retries: ")
        assert "connection refused" in envelope.message
        assert envelope.code == "TRANSPORT_ERROR"
        assert envelope.status_code is None

    def test_timeout_is_transient(self, make_client):
        """Test a read timeout is retried."""
        transport = ScriptedTransport([httpx.ReadTimeout("read timed out"), reply(200, "late")])
        envelope = make_client(transport).execute(RequestDescriptor(URL, max_retries=1))
        assert envelope.succeeded
        assert envelope.payload == "late"

    def test_single_attempt_transport_fault(self, make_client):
        """Test a transport fault without retries fails at once."""
        transport = ScriptedTransport([httpx.ConnectError("refused")])
        envelope = make_client(transport).execute(RequestDescriptor(URL))
        assert envelope.code == "TRANSPORT_ERROR"
        assert transport.attempts == 1


# ── Deadline and cancellation ────────────────────────────────────────────


class TestDeadline:
    """Tests for the overall call deadline."""

    def test_wait_beyond_deadline_stops_early(self, make_client, waiter):
        """Test a wait past the deadline ends the call before sleeping."""
        transport = ScriptedTransport([reply(503, "busy", {"Retry-After": "5"})])
        policy = BackoffPolicy(deadline=1.0)
        envelope = make_client(transport, policy=policy).execute(RequestDescriptor(URL, max_retries=3))
        assert envelope.code == "DEADLINE_EXCEEDED"
        assert envelope.status_code == 503
        assert "busy" in envelope.message
        assert transport.attempts == 1
        assert waiter.waits == []

    def test_transport_fault_past_deadline(self, make_client):
        """Test transport faults report the deadline without a status."""
        transport = ScriptedTransport([httpx.ConnectError("refused")])
        policy = BackoffPolicy(initial_delay=5.0, deadline=1.0)
        envelope = make_client(transport, policy=policy).execute(RequestDescriptor(URL, max_retries=2))
        assert envelope.code == "DEADLINE_EXCEEDED"
        assert envelope.status_code is None

    def test_waits_within_deadline_proceed(self, make_client, waiter):
        """Test waits inside the deadline proceed normally."""
        transport = ScriptedTransport([reply(503), reply(200)])
        policy = BackoffPolicy(deadline=60.0)
        assert make_client(transport, policy=policy).execute(RequestDescriptor(URL, max_retries=1)).succeeded


class TestInterruption:
    """Tests for interrupted backoff waits."""

    def test_interrupted_wait_returns_cancelled(self, make_client):
        """Test an interrupted wait ends the call as CANCELLED."""
        transport = ScriptedTransport([reply(503, "down")])
        client = make_client(transport, waiter=RecordingWaiter(interrupt_on=1))
        envelope = client.execute(RequestDescriptor(URL, max_retries=3))
        assert envelope.code == "CANCELLED"
        assert envelope.message == "Retry interrupted: HTTP Error: 503 - down"
        assert envelope.status_code == 503
        assert transport.attempts == 1

    def test_interrupt_before_wait(self, make_client):
        """Test calls after interrupt() skip their backoff wait."""
        transport = ScriptedTransport([reply(503)])
        client = make_client(transport, waiter=None, policy=BackoffPolicy(initial_delay=30.0))
        client.interrupt()
        envelope = client.execute(RequestDescriptor(URL, max_retries=1))
        assert envelope.code == "CANCELLED"
        assert transport.attempts == 1

    @pytest.mark.slow
    def test_close_wakes_waiting_call(self, make_client):
        """Test close() wakes a call parked in a backoff wait."""
        scheduled = threading.Event()
        transport = ScriptedTransport([reply(503)])
        client = make_client(
            transport,
            waiter=None,
            policy=BackoffPolicy(initial_delay=30.0),
            on_retry=lambda *args: scheduled.set(),
        )
        results = []
        worker = threading.Thread(target=lambda: results.append(client.execute(RequestDescriptor(URL, max_retries=1))))
        worker.start()
        assert scheduled.wait(5)
        client.close()
        worker.join(5)
        assert not worker.is_alive()
        assert results[0].code == "CANCELLED"


# ── Async dispatch ───────────────────────────────────────────────────────


class TestExecuteAsync:
    """Tests for execute_async."""

    def test_resolves_on_pool(self, make_client, worker_pool):
        """Test the call runs on the pool and resolves to an envelope."""
        transport = ScriptedTransport([reply(200, "pooled")])
        future = make_client(transport, pool=worker_pool).execute_async(RequestDescriptor(URL))
        assert future.result(timeout=5).payload == "pooled"

    def test_without_pool(self, make_client):
        """Test a client without a pool resolves to CANCELLED."""
        future = make_client(ScriptedTransport([reply(200)])).execute_async(RequestDescriptor(URL))
        envelope = future.result(timeout=1)
        assert envelope.succeeded is False
        assert envelope.code == "CANCELLED"

    def test_closed_pool(self, make_client):
        """Test a closed pool resolves to CANCELLED without a request."""
        pool = WorkerPool(max_workers=1)
        pool.shutdown()
        transport = ScriptedTransport([reply(200)])
        envelope = make_client(transport, pool=pool).execute_async(RequestDescriptor(URL)).result(timeout=1)
        assert envelope.code == "CANCELLED"
        assert transport.attempts == 0

    @pytest.mark.slow
    def test_many_calls_share_the_client(self, make_client, worker_pool):
        """Test many concurrent calls all complete on one client."""
        transport = ScriptedTransport([reply(200, "ok")])
        client = make_client(transport, pool=worker_pool)
        futures = [client.execute_async(RequestDescriptor(URL, query_params={"n": str(i)})) for i in range(20)]
        assert all(f.result(timeout=10).succeeded for f in futures)
        assert transport.attempts == 20
        assert {str(r.url) for r in transport.requests} == {f"{URL}?n={i}" for i in range(20)}


class TestLifecycle:
    """Tests for client lifecycle."""

    def test_context_manager_closes(self):
        """Test calls after close report INTERNAL instead of raising."""
        with ResilientHttpClient(transport=ScriptedTransport([reply(200)])) as client:
            assert client.execute(RequestDescriptor(URL)).succeeded
        envelope = client.execute(RequestDescriptor(URL))
        assert envelope.succeeded is False
        assert envelope.code == "INTERNAL"

    def test_default_policy(self):
        """Test the default policy is the reference backoff."""
        client = ResilientHttpClient(transport=ScriptedTransport([reply(200)]))
        try:
            assert client.policy == BackoffPolicy()
        finally:
            client.close()

    def test_errors_never_escape(self, make_client):
        """Test unexpected faults become an envelope."""
        transport = ScriptedTransport([ValueError("unexpected")])
        envelope = make_client(transport).execute(RequestDescriptor(URL, max_retries=2))
        assert envelope.succeeded is False
        assert envelope.message == "Request failed: unexpected"
        assert transport.attempts == 1
