"""Resilient HTTP client — bounded retries with exponential backoff.

Issues one outbound request per :meth:`ResilientHttpClient.execute` call,
retrying transient failures and turning every outcome into a
:class:`~callsafe.core.result.ResultEnvelope`. Nothing is raised past
``execute`` / ``execute_async``.

ARCHITECTURE
────────────
::

    ResilientHttpClient(timeout, policy, pool)
      ├── .execute(descriptor)        ─ caller thread, returns envelope
      ├── .execute_async(descriptor)  ─ WorkerPool, returns Future[envelope]
      ├── .interrupt()                ─ wake calls parked in a backoff wait
      └── .close()                    ─ interrupt waits, release transport

    attempt loop (RetryState per call)
      2xx ─────────────────────────────► ResultEnvelope.ok(body)
      429 / 503 ─┐  wait Retry-After or backoff ─► retry
      5xx ───────┤  wait backoff               ─► retry
      transport ─┘  wait backoff               ─► retry
      other ───────────────────────────► ResultEnvelope.fail("HTTP Error: ...")
      budget spent / deadline / interrupted ──► ResultEnvelope.fail(...)

Attempts are strictly sequential within a call; total attempts never exceed
``max_retries + 1``. Waits block only the calling thread and are interrupted
by :meth:`ResilientHttpClient.interrupt` (and therefore by ``close``).

Example::

    client = ResilientHttpClient(pool=WorkerPool(10, name="http"))
    envelope = client.execute(RequestDescriptor(
        "https://api.example.com/users",
        headers={"Authorization": "Bearer TOKEN"},
        query_params={"userId": "42"},
        max_retries=2,
    ))
    if envelope.succeeded:
        print(envelope.payload)
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from concurrent.futures import Future
from typing import Any

import httpx

from callsafe.core.errors import (
    CallsafeError,
    DeadlineExceededError,
    ErrorCategory,
    HttpStatusError,
    NetworkError,
    RateLimitError,
    RetryInterruptedError,
    ServerError,
    ServiceUnavailableError,
    TimeoutError as CallTimeoutError,
)
from callsafe.core.logging import LogContext, get_logger
from callsafe.core.result import ResultEnvelope
from callsafe.execution.pool import PoolClosedError, WorkerPool
from callsafe.execution.retry import BackoffPolicy, RetryState, parse_retry_after
from callsafe.http.request import RequestDescriptor

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 10.0

# (attempt, classified error, wait seconds)
RetryHook = Callable[[int, CallsafeError, float], None]
# Blocks for the given seconds; returns True if the wait was interrupted
Waiter = Callable[[float], bool]


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


def _completed(envelope: ResultEnvelope[Any]) -> Future:
    future: Future = Future()
    future.set_result(envelope)
    return future


def classify_response(response: httpx.Response) -> CallsafeError:
    """Classify a non-2xx response into a transient or terminal error.

    ``Retry-After`` is honoured for 429 and 503 only.
    """
    status = response.status_code
    body = response.text
    message = f"HTTP Error: {status} - {body}"
    if status == 429:
        return RateLimitError(message, retry_after=parse_retry_after(response.headers.get("Retry-After")))
    if status == 503:
        return ServiceUnavailableError(message, retry_after=parse_retry_after(response.headers.get("Retry-After")))
    if 500 <= status < 600:
        return ServerError(message)
    return HttpStatusError(status, body)


def _error_code(error: CallsafeError) -> str:
    if error.category is ErrorCategory.CANCELLED:
        return "CANCELLED"
    if error.category is ErrorCategory.DEADLINE:
        return "DEADLINE_EXCEEDED"
    if error.category is ErrorCategory.RATE_LIMIT:
        return "RATE_LIMITED"
    if error.context.http_status is not None:
        return "HTTP_ERROR"
    return "TRANSPORT_ERROR"


class ResilientHttpClient:
    """Outbound HTTP with retry, backoff and per-attempt timeouts.

    One instance is shared process-wide. Each call keeps its retry state
    locally, so concurrent calls never interfere.
    """

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        policy: BackoffPolicy | None = None,
        pool: WorkerPool | None = None,
        transport: httpx.BaseTransport | None = None,
        waiter: Waiter | None = None,
        on_retry: RetryHook | None = None,
    ):
        """
        Args:
            timeout: Per-attempt connect/read/write timeout in seconds
            policy: Backoff policy (default: 0.5 s doubling, 30 s ceiling)
            pool: Worker pool used by :meth:`execute_async`
            transport: httpx transport override (tests, proxies)
            waiter: Replacement for the interruptible backoff wait
            on_retry: Callback invoked before each backoff wait
        """
        self._policy = policy or BackoffPolicy()
        self._pool = pool
        self._on_retry = on_retry
        self._stop = threading.Event()
        self._wait: Waiter = waiter or self._stop.wait
        self._http = httpx.Client(
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    @property
    def policy(self) -> BackoffPolicy:
        return self._policy

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def execute(self, descriptor: RequestDescriptor) -> ResultEnvelope[str]:
        """Issue *descriptor*, retrying transient failures.

        Returns:
            Success envelope with the response body, or a failure envelope
            describing the status code / transport fault.
        """
        started = time.perf_counter()
        try:
            return self._execute(descriptor, started)
        except Exception as e:
            # Invalid URL, closed client and other faults outside the retry taxonomy
            logger.error(
                "http_request_error",
                url=descriptor.url,
                method=descriptor.method.value,
                error=str(e),
                exc_info=True,
            )
            return ResultEnvelope.fail(
                f"Request failed: {e}", code="INTERNAL", elapsed_ms=_elapsed_ms(started)
            )

    def execute_async(self, descriptor: RequestDescriptor) -> Future:
        """Run :meth:`execute` on the worker pool.

        Resolves to a failure envelope when no pool is configured or the
        pool has been shut down.
        """
        if self._pool is None:
            return _completed(ResultEnvelope.fail("Request rejected: no worker pool configured", code="CANCELLED"))
        try:
            return self._pool.submit(self.execute, descriptor)
        except PoolClosedError as e:
            return _completed(ResultEnvelope.fail(f"Request rejected: {e}", code="CANCELLED"))

    def interrupt(self) -> None:
        """Wake every call parked in a backoff wait; those calls end CANCELLED.

        Requests already on the wire are left to finish.
        """
        self._stop.set()

    def close(self) -> None:
        """Interrupt pending backoff waits and release the HTTP transport."""
        self.interrupt()
        self._http.close()
        logger.info("http_client_closed")

    def __enter__(self) -> ResilientHttpClient:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Retry loop
    # ------------------------------------------------------------------ #

    def _execute(self, descriptor: RequestDescriptor, started: float) -> ResultEnvelope[str]:
        state = RetryState(self._policy, max_retries=descriptor.max_retries)
        url = descriptor.build_url()
        method = descriptor.method.value
        headers = descriptor.build_headers()
        content = descriptor.build_content()

        with LogContext(url=url, method=method):
            while True:
                attempt = state.begin_attempt()
                logger.info("http_attempt", attempt=attempt, max_attempts=descriptor.max_retries + 1)
                attempt_started = time.perf_counter()

                try:
                    response = self._http.request(method, url, headers=headers, content=content)
                except httpx.TimeoutException as e:
                    error: CallsafeError = CallTimeoutError(f"{type(e).__name__}: {e}", cause=e)
                except httpx.TransportError as e:
                    error = NetworkError(f"{type(e).__name__}: {e}", cause=e)
                else:
                    status = response.status_code
                    if 200 <= status < 300:
                        logger.info(
                            "http_succeeded",
                            status=status,
                            attempt=attempt,
                            attempt_ms=round(_elapsed_ms(attempt_started), 2),
                            elapsed_ms=round(_elapsed_ms(started), 2),
                        )
                        return ResultEnvelope.ok(response.text, status_code=status, elapsed_ms=_elapsed_ms(started))

                    error = classify_response(response)
                    error.with_context(http_status=status)
                    if not error.retryable:
                        logger.error("http_failed", status=status, attempt=attempt, body=response.text)
                        return self._failure(error, started)

                error.with_context(url=url, method=method, attempt=attempt)
                state.record_failure(error)

                if not state.can_retry:
                    logger.error("http_retries_exhausted", attempts=attempt, error=error.message)
                    return self._failure(error, started, exhausted=True)

                wait = state.next_wait(error.retry_after)
                if state.exceeds_deadline(wait):
                    logger.error(
                        "http_deadline_exceeded",
                        attempts=attempt,
                        deadline_s=self._policy.deadline,
                        wait_s=wait,
                    )
                    return self._failure(
                        DeadlineExceededError(
                            f"Call deadline of {self._policy.deadline}s exceeded after {attempt} attempts: {error.message}",
                            context=error.context,
                            cause=error,
                        ),
                        started,
                    )

                logger.warning(
                    "http_retry_scheduled",
                    attempt=attempt,
                    max_retries=descriptor.max_retries,
                    status=error.context.http_status,
                    error=error.message,
                    wait_ms=round(wait * 1000),
                    retry_after=error.retry_after,
                )
                if self._on_retry is not None:
                    self._on_retry(attempt, error, wait)

                if self._wait(wait):
                    logger.error("http_retry_interrupted", attempt=attempt)
                    return self._failure(
                        RetryInterruptedError(
                            f"Retry interrupted: {error.message}",
                            context=error.context,
                            cause=error,
                        ),
                        started,
                    )
                state.advance()

    def _failure(self, error: CallsafeError, started: float, exhausted: bool = False) -> ResultEnvelope[str]:
        status = error.context.http_status
        if status is None and exhausted:
            message = f"Request failed after retries: {error.message}"
        else:
            message = error.message
        return ResultEnvelope.fail(
            message,
            code=_error_code(error),
            status_code=status,
            elapsed_ms=_elapsed_ms(started),
        )
