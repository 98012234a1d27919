"""
Shared fixtures for the resilience core tests.

Fakes stand in for the process (metrics) and the persistent
store so health checks and recovery run deterministically.
"""

from datetime import datetime, timezone
from typing import Optional

import pytest

from core.clock import MockClock
from core.exceptions import StoreUnavailableError
from core.json_log import JsonLineLog
from monitoring.metrics_source import MetricsSource
from monitoring.models import MemoryStats, RuntimeMetrics
from monitoring.probes import ConnectionState, StoreConnection


# ============================================================
# FAKES
# ============================================================

class FakeMetricsSource(MetricsSource):
    """Metrics pinned to settable values."""

    def __init__(self, memory_percent: float = 40.0, cpu_percent: float = 10.0):
        self.memory = memory_percent
        self.cpu = cpu_percent
        self.error: Optional[Exception] = None
        self.reads = 0

    def read(self) -> RuntimeMetrics:
        self.reads += 1
        if self.error is not None:
            raise self.error
        return RuntimeMetrics(
            memory=MemoryStats(used_mb=self.memory * 10, total_mb=1000.0, percent=self.memory),
            cpu_percent=self.cpu,
            uptime_seconds=120.0,
            pid=4242,
        )

    def memory_percent(self) -> float:
        return self.memory


class FakeStoreConnection(StoreConnection):
    """In-memory store connection with scriptable behaviour."""

    def __init__(self, state: ConnectionState = ConnectionState.CONNECTED):
        self._state = state
        self.ping_ok = True
        self.connect_ok = True
        self.connect_calls = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    def set_state(self, state: ConnectionState) -> None:
        self._state = state

    async def connect(self) -> None:
        self.connect_calls += 1
        if not self.connect_ok:
            self._state = ConnectionState.DISCONNECTED
            raise StoreUnavailableError("connection refused")
        self._state = ConnectionState.CONNECTED

    async def ping(self) -> bool:
        return self._state == ConnectionState.CONNECTED and self.ping_ok

    def describe(self):
        return {"backend": "fake"}


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def clock():
    """Clock pinned to a fixed UTC instant."""
    return MockClock(datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def metrics_source():
    return FakeMetricsSource()


@pytest.fixture
def store_connection():
    return FakeStoreConnection()


@pytest.fixture
def monitoring_journal(tmp_path, clock):
    return JsonLineLog(tmp_path / "monitoring.log", "monitoring", clock=clock)


@pytest.fixture
def audit_journal(tmp_path, clock):
    return JsonLineLog(tmp_path / "audit.log", "audit", clock=clock)
