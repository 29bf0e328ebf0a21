"""
callsafe - Resilient outbound HTTP calls and uniform task execution.

- callsafe.core: Result envelope, error hierarchy, logging, settings
- callsafe.execution: Backoff policy, worker pools, task harness
- callsafe.http: Request descriptor and the retrying HTTP client
- callsafe.runtime: Composition root owning pools and the client
"""

__version__ = "0.1.0"

from callsafe.core.errors import CallsafeError, ErrorCategory
from callsafe.core.result import ResultEnvelope
from callsafe.execution.harness import ApiHarness, AsyncHarness, DbHarness, TaskHarness
from callsafe.execution.pool import WorkerPool
from callsafe.execution.retry import BackoffPolicy
from callsafe.http.client import ResilientHttpClient
from callsafe.http.request import HttpMethod, RequestDescriptor

__all__ = [
    "ApiHarness",
    "AsyncHarness",
    "BackoffPolicy",
    "CallsafeError",
    "DbHarness",
    "ErrorCategory",
    "HttpMethod",
    "RequestDescriptor",
    "ResilientHttpClient",
    "ResultEnvelope",
    "TaskHarness",
    "WorkerPool",
]
