"""Worker Pool — fixed-size ThreadPool for asynchronous dispatch.

``execute_async`` on the HTTP client and ``run_async`` on the task harness
both submit onto a :class:`WorkerPool`. Pools are built once by the
composition root and shut down explicitly at process teardown; nothing in
callsafe creates a pool per call.

ARCHITECTURE
────────────
::

    WorkerPool(max_workers=10, name="http")
      ├── .submit(fn, *args)  ─ queue onto the ThreadPool, returns Future
      ├── .in_flight          ─ calls currently running
      └── .shutdown()         ─ drain and release threads

Calls beyond ``max_workers`` queue inside the executor; at most
``max_workers`` run at once.
"""

import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, TypeVar

from callsafe.core.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


class PoolClosedError(RuntimeError):
    """Raised by :meth:`WorkerPool.submit` after shutdown."""


class WorkerPool:
    """Bounded ThreadPoolExecutor owned by the composition root.

    Example:
        >>> with WorkerPool(max_workers=4, name="tasks") as pool:
        ...     future = pool.submit(sum, [1, 2, 3])
        ...     future.result()
        6
    """

    def __init__(self, max_workers: int = 10, name: str = "callsafe"):
        """Initialize the pool.

        Args:
            max_workers: Fixed number of worker threads (default: 10)
            name: Thread-name prefix and log label
        """
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self.name = name
        self.max_workers = max_workers
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix=f"callsafe-{name}"
        )
        self._lock = threading.Lock()
        self._in_flight = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def in_flight(self) -> int:
        """Number of submitted calls currently executing on a worker."""
        with self._lock:
            return self._in_flight

    def submit(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> Future[T]:
        """Queue *fn* on the pool.

        Raises:
            PoolClosedError: If the pool has been shut down
        """
        if self._closed:
            raise PoolClosedError(f"Worker pool '{self.name}' is shut down")

        def run_tracked() -> T:
            with self._lock:
                self._in_flight += 1
            try:
                return fn(*args, **kwargs)
            finally:
                with self._lock:
                    self._in_flight -= 1

        try:
            return self._pool.submit(run_tracked)
        except RuntimeError as e:
            # ThreadPoolExecutor refuses work once shutdown has started
            raise PoolClosedError(f"Worker pool '{self.name}' is shut down") from e

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work.

        Work already queued still runs, so every future handed out by
        ``submit`` resolves.

        Args:
            wait: If True, block until queued and running work completes
        """
        if self._closed:
            return
        self._closed = True
        self._pool.shutdown(wait=wait)
        logger.info("worker_pool_shutdown", pool=self.name, wait=wait)

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown(wait=True)

    def __repr__(self) -> str:
        return f"WorkerPool(name={self.name!r}, max_workers={self.max_workers}, closed={self._closed})"
