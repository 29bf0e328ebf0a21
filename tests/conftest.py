"""
Shared pytest fixtures and configuration for callsafe tests.

This module provides:
- ``src/`` on the import path
- Auto-marking of tests as unit tests
- Worker pool and HTTP client fixtures with guaranteed teardown
"""

import sys
from pathlib import Path
from typing import Generator

import pytest

# Ensure callsafe package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from callsafe.execution.pool import WorkerPool
from callsafe.execution.retry import BackoffPolicy
from callsafe.http.client import ResilientHttpClient
from tests._support.http_stubs import RecordingWaiter


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark all tests without explicit markers as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "slow"}):
            item.add_marker(pytest.mark.unit)


@pytest.fixture
def worker_pool() -> Generator[WorkerPool, None, None]:
    """Small worker pool, shut down after the test."""
    pool = WorkerPool(max_workers=3, name="test")
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture
def waiter() -> RecordingWaiter:
    return RecordingWaiter()


@pytest.fixture
def make_client(waiter: RecordingWaiter) -> Generator:
    """Factory for clients bound to a transport and the recording waiter.

    Usage::

        def test_x(make_client):
            client = make_client(ScriptedTransport([reply(200)]))
    """
    clients: list[ResilientHttpClient] = []

    def _make(transport, *, policy: BackoffPolicy | None = None, pool: WorkerPool | None = None, **kwargs):
        client = ResilientHttpClient(
            transport=transport,
            policy=policy,
            pool=pool,
            waiter=kwargs.pop("waiter", waiter),
            **kwargs,
        )
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.close()
