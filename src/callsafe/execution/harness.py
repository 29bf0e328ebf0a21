"""Task Execution Harness — uniform capture of validation + work + response.

Wraps caller-supplied callables in timing, logging and exception capture and
always returns a :class:`~callsafe.core.result.ResultEnvelope`. Nothing is
retried here; retry belongs to the HTTP client.

ARCHITECTURE
────────────
::

    TaskHarness(kind, pool)
      ├── .run_sync(request, validator, work, build_response)   ─ caller thread
      ├── .run_action(action)                                   ─ no payload
      ├── .run_or_default(work, default)                        ─ fallback on error
      └── .run_async(request, validator, work, build_response)  ─ WorkerPool

    every entry point ──► _execute()  (one algorithm)
        1. start timer
        2. validator(request)            phase = validation
        3. output = work()               phase = work
        4. build_response(output)        phase = response
           or ResultEnvelope.ok(output)
        5. fault in 2-4 ──► classify_failure(error, phase) ──► error envelope
                        (run_or_default: ResultEnvelope.ok(default) instead)
        6. one log line: task_completed | task_failed | task_fallback_used

    run_action wraps its action so the output is discarded; run_or_default
    passes its default as the fallback.

    ApiHarness    process_request / process_action / process_or_default
    DbHarness     run_db_query / run_db_action / run_db_query_or_fallback
    AsyncHarness  run_task / process_async_request

The three vocabularies differ only in how a work-phase failure is reported
("Business logic failed", "Data access failed", "Async task failed").

Example::

    harness = ApiHarness()
    envelope = harness.process_request(
        user_request,
        lambda req: require(req.name, "name is required"),
        lambda: create_user(user_request),
    )
    if not envelope.succeeded:
        print(envelope.message)  # "Validation failed: name is required"
"""

import functools
import time
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

from callsafe.core.errors import CallsafeError, categorize_error
from callsafe.core.logging import LogContext, get_logger
from callsafe.core.result import ResultEnvelope
from callsafe.execution.pool import PoolClosedError, WorkerPool

O = TypeVar("O")

Validator = Callable[[Any], Any]
Work = Callable[[], Any]
ResponseBuilder = Callable[[Any], ResultEnvelope[Any]]

# Marks "no fallback": report failures instead of substituting a value
_NO_FALLBACK = object()

logger = get_logger(__name__)


class HarnessKind(str, Enum):
    """Vocabulary a harness reports work failures in."""

    API = "api"
    DB = "db"
    ASYNC = "async"


class Phase(str, Enum):
    """Step of the harness algorithm a fault was raised in."""

    VALIDATION = "validation"
    WORK = "work"
    RESPONSE = "response"


@dataclass(frozen=True)
class _Vocabulary:
    work_prefix: str
    work_code: str
    fallback_prefix: str


_VOCABULARIES: dict[HarnessKind, _Vocabulary] = {
    HarnessKind.API: _Vocabulary("Business logic failed", "BUSINESS_LOGIC_FAILED", "Fallback used"),
    HarnessKind.DB: _Vocabulary("Data access failed", "DATA_ACCESS_FAILED", "Fallback used due to DB error"),
    HarnessKind.ASYNC: _Vocabulary("Async task failed", "ASYNC_TASK_FAILED", "Fallback used"),
}

VALIDATION_PREFIX = "Validation failed"
RESPONSE_PREFIX = "Response build failed"


def describe_error(error: BaseException) -> str:
    """Human-readable description of *error* without a traceback."""
    if isinstance(error, CallsafeError):
        return error.message
    text = str(error)
    return text if text else type(error).__name__


def classify_failure(
    error: BaseException, phase: Phase, kind: HarnessKind = HarnessKind.API
) -> tuple[str, str]:
    """Map a caught fault and its phase to ``(message, error_code)``.

    Example:
        >>> classify_failure(ValueError("name is required"), Phase.VALIDATION)
        ('Validation failed: name is required', 'VALIDATION_FAILED')
    """
    detail = describe_error(error)
    if phase is Phase.VALIDATION:
        return f"{VALIDATION_PREFIX}: {detail}", "VALIDATION_FAILED"
    if phase is Phase.RESPONSE:
        return f"{RESPONSE_PREFIX}: {detail}", "RESPONSE_BUILD_FAILED"
    vocab = _VOCABULARIES[kind]
    return f"{vocab.work_prefix}: {detail}", vocab.work_code


def _completed(envelope: ResultEnvelope[Any]) -> Future:
    future: Future = Future()
    future.set_result(envelope)
    return future


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


def _identity(value: Any) -> Any:
    return value


def _discard_output(action: Callable[[], Any] | None) -> Work | None:
    if action is None:
        return None

    def run() -> None:
        action()

    return run


class TaskHarness:
    """Runs caller work and reports the outcome as a ResultEnvelope.

    The harness never raises past its public methods; every call returns an
    envelope (or a Future that resolves to one).
    """

    kind: HarnessKind = HarnessKind.API

    def __init__(self, pool: WorkerPool | None = None, kind: HarnessKind | None = None):
        """
        Args:
            pool: Worker pool for ``run_async``. Without one, async calls
                resolve immediately to an error envelope.
            kind: Override the class vocabulary.
        """
        self._pool = pool
        if kind is not None:
            self.kind = kind

    # ------------------------------------------------------------------ #
    # Entry points
    # ------------------------------------------------------------------ #

    def run_sync(
        self,
        request: Any = None,
        validator: Validator | None = None,
        work: Work | None = None,
        build_response: ResponseBuilder | None = None,
    ) -> ResultEnvelope[Any]:
        """Validate *request*, run *work* and build the envelope on the caller's thread."""
        return self._execute("run_sync", time.perf_counter(), request, validator, work, build_response)

    def run_action(self, action: Callable[[], Any] | None) -> ResultEnvelope[None]:
        """Run a side-effecting *action*; success carries no payload."""
        return self._execute("run_action", time.perf_counter(), work=_discard_output(action))

    def run_or_default(self, work: Work | None, default: O) -> ResultEnvelope[O]:
        """Run *work*; on any fault return a success envelope holding *default*."""
        if work is None:
            work = functools.partial(_identity, default)
        return self._execute("run_or_default", time.perf_counter(), work=work, fallback=default)

    def run_async(
        self,
        request: Any = None,
        validator: Validator | None = None,
        work: Work | None = None,
        build_response: ResponseBuilder | None = None,
    ) -> Future:
        """Same as :meth:`run_sync`, dispatched onto the worker pool.

        Elapsed time is measured from submission, so queueing time counts.
        """
        started = time.perf_counter()
        job = functools.partial(
            self._execute, "run_async", started, request, validator, work, build_response
        )
        return self._submit(job, "run_async", started)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _execute(
        self,
        operation: str,
        started: float,
        request: Any = None,
        validator: Validator | None = None,
        work: Work | None = None,
        build_response: ResponseBuilder | None = None,
        fallback: Any = _NO_FALLBACK,
    ) -> ResultEnvelope[Any]:
        with LogContext(harness=self.kind.value, operation=operation):
            phase = Phase.VALIDATION
            try:
                if validator is not None:
                    validator(request)

                phase = Phase.WORK
                output = work() if work is not None else None

                phase = Phase.RESPONSE
                if build_response is not None:
                    envelope = build_response(output)
                    if not isinstance(envelope, ResultEnvelope):
                        raise TypeError(
                            f"response builder returned {type(envelope).__name__}, expected ResultEnvelope"
                        )
                else:
                    envelope = ResultEnvelope.ok(output)
            except Exception as e:
                if fallback is not _NO_FALLBACK:
                    return self._fallback(started, e, fallback)
                return self._failure(started, e, phase)

            elapsed = _elapsed_ms(started)
            logger.info("task_completed", succeeded=envelope.succeeded, elapsed_ms=round(elapsed, 2))
            return envelope.with_elapsed(elapsed)

    def _failure(self, started: float, error: Exception, phase: Phase) -> ResultEnvelope[Any]:
        message, code = classify_failure(error, phase, self.kind)
        elapsed = _elapsed_ms(started)
        logger.error(
            "task_failed",
            phase=phase.value,
            category=categorize_error(error).value,
            error=message,
            elapsed_ms=round(elapsed, 2),
            exc_info=True,
        )
        return ResultEnvelope.fail(message, code=code, elapsed_ms=elapsed)

    def _fallback(self, started: float, error: Exception, fallback: Any) -> ResultEnvelope[Any]:
        elapsed = _elapsed_ms(started)
        logger.warning(
            "task_fallback_used",
            category=categorize_error(error).value,
            error=f"{_VOCABULARIES[self.kind].fallback_prefix}: {describe_error(error)}",
            elapsed_ms=round(elapsed, 2),
            exc_info=True,
        )
        return ResultEnvelope.ok(fallback, elapsed_ms=elapsed)

    def _submit(self, job: Callable[[], ResultEnvelope[Any]], operation: str, started: float) -> Future:
        if self._pool is None:
            return _completed(self._rejected(operation, started, "no worker pool configured"))
        try:
            return self._pool.submit(job)
        except PoolClosedError as e:
            return _completed(self._rejected(operation, started, str(e)))

    def _rejected(self, operation: str, started: float, reason: str) -> ResultEnvelope[Any]:
        elapsed = _elapsed_ms(started)
        message = f"{_VOCABULARIES[self.kind].work_prefix}: {reason}"
        logger.error("task_rejected", harness=self.kind.value, operation=operation, error=message)
        return ResultEnvelope.fail(message, code="CANCELLED", elapsed_ms=elapsed)


class ApiHarness(TaskHarness):
    """Harness for API/business logic; failures read "Business logic failed"."""

    kind = HarnessKind.API

    def process_request(
        self,
        request: Any = None,
        validator: Validator | None = None,
        work: Work | None = None,
        build_response: ResponseBuilder | None = None,
    ) -> ResultEnvelope[Any]:
        return self.run_sync(request, validator, work, build_response)

    def process_action(self, action: Callable[[], Any] | None) -> ResultEnvelope[None]:
        return self.run_action(action)

    def process_or_default(self, work: Work | None, default: O) -> ResultEnvelope[O]:
        return self.run_or_default(work, default)


class DbHarness(TaskHarness):
    """Harness for data-store calls; failures read "Data access failed"."""

    kind = HarnessKind.DB

    def run_db_query(self, operation: Work | None) -> ResultEnvelope[Any]:
        """Run a query and wrap its result."""
        return self.run_sync(work=operation)

    def run_db_action(self, operation: Callable[[], Any] | None) -> ResultEnvelope[None]:
        """Run an INSERT/UPDATE/DELETE style action with no result."""
        return self.run_action(operation)

    def run_db_query_or_fallback(self, operation: Work | None, fallback: O) -> ResultEnvelope[O]:
        return self.run_or_default(operation, fallback)


class AsyncHarness(TaskHarness):
    """Harness for background work on the worker pool; failures read "Async task failed"."""

    kind = HarnessKind.ASYNC

    def run_task(self, task: Work | None) -> Future:
        """Run *task* on the pool with no input or validation."""
        return self.run_async(work=task)

    def process_async_request(
        self,
        request: Any = None,
        validator: Validator | None = None,
        task: Work | None = None,
        build_response: ResponseBuilder | None = None,
    ) -> Future:
        return self.run_async(request, validator, task, build_response)
