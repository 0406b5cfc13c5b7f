"""
Shared fixtures for the pool lifecycle tests.
"""

import os
import sys
import asyncio
from typing import Any, Dict, List, Optional

import pytest

# Add project root to Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from config import (
    LifecycleSettings,
    PoolSettings,
    RetrySettings,
    HealthCheckSettings,
    ShutdownSettings,
)
from connection_management import ConnectionManager, ConnectionPool, ConnectionLostError


class FakePool(ConnectionPool):
    """In-memory pool that fails its first ``fail_times`` opens."""

    def __init__(self, fail_times: int = 0, open_delay: float = 0.0, error_factory=None):
        self.fail_times = fail_times
        self.open_delay = open_delay
        self.error_factory = error_factory or (lambda: ConnectionRefusedError("connection refused"))
        self.healthy = True
        self.open_calls = 0
        self.ping_calls = 0
        self.close_calls = 0
        self.concurrent_opens = 0
        self.max_concurrent_opens = 0

    async def open(self) -> None:
        self.open_calls += 1
        self.concurrent_opens += 1
        self.max_concurrent_opens = max(self.max_concurrent_opens, self.concurrent_opens)
        try:
            if self.open_delay:
                await asyncio.sleep(self.open_delay)
            if self.open_calls <= self.fail_times:
                raise self.error_factory()
        finally:
            self.concurrent_opens -= 1

    async def ping(self) -> None:
        self.ping_calls += 1
        if not self.healthy:
            raise ConnectionLostError("ping failed")

    async def close(self) -> None:
        self.close_calls += 1

    def get_metrics(self) -> Dict[str, Any]:
        return {"open_calls": self.open_calls}


def build_settings(
    pool: Optional[Dict[str, Any]] = None,
    retry: Optional[Dict[str, Any]] = None,
    health: Optional[Dict[str, Any]] = None,
    shutdown: Optional[Dict[str, Any]] = None,
) -> LifecycleSettings:
    """Fast settings for tests; each section can be overridden."""
    pool_values = {"connect_timeout": 1.0, "operation_timeout": 1.0, "max_pool_size": 4}
    retry_values = {"base_delay": 0.01, "max_delay": 0.05, "max_attempts": 5, "jitter_fraction": 0.0}
    health_values = {"enabled": False, "interval": 1.0, "timeout": 0.5, "unhealthy_threshold": 3}
    shutdown_values = {"grace_period": 0.2, "signals": ["SIGINT", "SIGTERM"]}
    pool_values.update(pool or {})
    retry_values.update(retry or {})
    health_values.update(health or {})
    shutdown_values.update(shutdown or {})
    return LifecycleSettings(
        pool=PoolSettings(**pool_values),
        retry=RetrySettings(**retry_values),
        health=HealthCheckSettings(**health_values),
        shutdown=ShutdownSettings(**shutdown_values),
    )


class EventRecorder:
    """State-change handler that remembers every event."""

    def __init__(self):
        self.events: List[Any] = []

    def __call__(self, event) -> None:
        self.events.append(event)

    @property
    def names(self) -> List[str]:
        return [event.event.value for event in self.events]

    def count(self, name: str) -> int:
        return self.names.count(name)


@pytest.fixture
def fake_pool():
    return FakePool()


@pytest.fixture
def settings():
    return build_settings()


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def manager(fake_pool, settings, recorder):
    manager = ConnectionManager(fake_pool, settings, name="test-service")
    manager.on_state_change(recorder)
    return manager
