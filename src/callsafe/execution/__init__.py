"""Execution: backoff policy, worker pools and the task harness."""

from callsafe.execution.harness import (
    ApiHarness,
    AsyncHarness,
    DbHarness,
    HarnessKind,
    Phase,
    TaskHarness,
    classify_failure,
)
from callsafe.execution.pool import PoolClosedError, WorkerPool
from callsafe.execution.retry import BackoffPolicy, RetryState, parse_retry_after

__all__ = [
    "ApiHarness",
    "AsyncHarness",
    "BackoffPolicy",
    "DbHarness",
    "HarnessKind",
    "Phase",
    "PoolClosedError",
    "RetryState",
    "TaskHarness",
    "WorkerPool",
    "classify_failure",
    "parse_retry_after",
]
