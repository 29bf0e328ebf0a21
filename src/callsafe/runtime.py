"""
Composition root — owns the shared pools, HTTP client and harnesses.

Everything stateful in callsafe (worker threads, the HTTP connection pool,
the backoff interrupt flag) is created here once and torn down here once.
Application code receives the pieces it needs from a :class:`Runtime`
instead of reaching for module-level singletons.

Usage::

    with Runtime.from_env() as runtime:
        envelope = runtime.http.execute(RequestDescriptor("https://api.example.com/health"))
        future = runtime.tasks.run_task(lambda: rebuild_index())

Teardown wakes any call parked in a backoff wait, drains both pools while the
HTTP transport is still open (background tasks may issue requests too), and
closes the transport last.
"""

from __future__ import annotations

import httpx

from callsafe.core.logging import configure_logging, get_logger
from callsafe.core.settings import CallsafeSettings
from callsafe.execution.harness import ApiHarness, AsyncHarness, DbHarness
from callsafe.execution.pool import WorkerPool
from callsafe.http.client import ResilientHttpClient

logger = get_logger(__name__)


class Runtime:
    """Process-wide container for callsafe components.

    Attributes:
        settings: Settings the runtime was built from
        http_pool: Pool serving ``http.execute_async``
        task_pool: Pool serving ``run_async`` on all three harnesses
        http: Shared :class:`ResilientHttpClient`
        api: Harness for business logic
        db: Harness for data-store calls
        tasks: Harness for background work
    """

    def __init__(
        self,
        settings: CallsafeSettings | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
        setup_logging: bool = False,
    ):
        self.settings = settings or CallsafeSettings()
        if setup_logging:
            configure_logging(
                level=self.settings.log_level,
                json_format=self.settings.json_logs,
                service=self.settings.service_name,
            )

        self.http_pool = WorkerPool(self.settings.http_pool_size, name="http")
        self.task_pool = WorkerPool(self.settings.task_pool_size, name="tasks")
        self.http = ResilientHttpClient(
            timeout=self.settings.request_timeout,
            policy=self.settings.backoff_policy(),
            pool=self.http_pool,
            transport=transport,
        )
        self.api = ApiHarness(self.task_pool)
        self.db = DbHarness(self.task_pool)
        self.tasks = AsyncHarness(self.task_pool)
        self._closed = False

        logger.info(
            "runtime_started",
            http_pool_size=self.settings.http_pool_size,
            task_pool_size=self.settings.task_pool_size,
            request_timeout=self.settings.request_timeout,
            max_backoff=self.settings.max_backoff,
            call_deadline=self.settings.call_deadline,
        )

    @classmethod
    def from_env(cls, **overrides) -> Runtime:
        """Build settings from the environment (plus *overrides*) and configure logging."""
        return cls(CallsafeSettings(**overrides), setup_logging=True)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self, wait: bool = True) -> None:
        """Shut down the HTTP client and both worker pools.

        Args:
            wait: Block until in-flight work has finished
        """
        if self._closed:
            return
        self._closed = True
        self.http.interrupt()
        self.http_pool.shutdown(wait=wait)
        self.task_pool.shutdown(wait=wait)
        self.http.close()
        logger.info("runtime_stopped")

    def __enter__(self) -> Runtime:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
