"""
Tests for Core Utilities.

============================================================
PURPOSE
============================================================
Ring buffer, JSON line log, clock and exception taxonomy.

TEST PRINCIPLES:
- Bounded histories evict the oldest entry
- Rotation never loses the current file's content
- Corrupt journal lines are skipped, not fatal

============================================================
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from core.clock import MockClock, from_iso8601, to_iso8601
from core.exceptions import (
    ErrorClassification,
    InvalidConfigError,
    InvalidThresholdError,
    OperatorError,
    ResilienceError,
    ResourceExhaustion,
    SelfProbeError,
    Severity,
    StoreUnavailableError,
    TransientDependencyFailure,
)
from core.json_log import JsonLineLog
from core.ring_buffer import RingBuffer


# ============================================================
# RING BUFFER TESTS
# ============================================================

class TestRingBuffer:
    """Tests for RingBuffer."""

    def test_append_past_capacity_evicts_oldest(self):
        buffer = RingBuffer(3)
        for i in range(3):
            assert buffer.append(i) is None

        evicted = buffer.append(3)

        assert evicted == 0
        assert len(buffer) == 3
        assert buffer.snapshot() == [1, 2, 3]

    def test_recent_is_newest_first(self):
        buffer = RingBuffer(5)
        for i in range(5):
            buffer.append(i)

        assert buffer.recent() == [4, 3, 2, 1, 0]
        assert buffer.recent(2) == [4, 3]
        assert buffer.latest() == 4

    def test_filter_and_clear(self):
        buffer = RingBuffer(10)
        for i in range(10):
            buffer.append(i)

        assert buffer.filter(lambda x: x % 2 == 0) == [0, 2, 4, 6, 8]
        assert buffer.is_full

        buffer.clear()
        assert len(buffer) == 0
        assert buffer.latest() is None

    def test_rejects_non_positive_capacity(self):
        with pytest.raises(ValueError):
            RingBuffer(0)


# ============================================================
# JSON LINE LOG TESTS
# ============================================================

class TestJsonLineLog:
    """Tests for JsonLineLog."""

    def test_write_appends_structured_line(self, tmp_path, clock):
        journal = JsonLineLog(tmp_path / "logs" / "monitoring.log", "monitoring", clock=clock)

        journal.write("info", "Health check completed", event="health_check", status="healthy")

        lines = (tmp_path / "logs" / "monitoring.log").read_text().splitlines()
        assert len(lines) == 1
        record = json.loads(lines[0])
        assert record["level"] == "info"
        assert record["message"] == "Health check completed"
        assert record["service"] == "monitoring"
        assert record["event"] == "health_check"
        assert record["data"] == {"status": "healthy"}
        assert record["timestamp"] == clock.now().isoformat()

    def test_rotation_renames_with_timestamp_suffix(self, tmp_path, clock):
        path = tmp_path / "monitoring.log"
        journal = JsonLineLog(path, "monitoring", max_bytes=100, clock=clock)
        for i in range(5):
            journal.write("info", f"entry {i}")

        backup = journal.rotate_if_needed()

        assert backup == tmp_path / "monitoring-2025-01-15T12-00-00-000000Z.log"
        assert backup.exists()
        assert not path.exists()
        assert len(backup.read_text().splitlines()) == 5

        journal.write("info", "after rotation")
        assert len(path.read_text().splitlines()) == 1

    def test_no_rotation_below_limit(self, tmp_path, clock):
        journal = JsonLineLog(tmp_path / "audit.log", "audit", clock=clock)
        journal.write("info", "small")

        assert journal.rotate_if_needed() is None

    def test_read_tail_skips_corrupt_lines(self, tmp_path, clock):
        path = tmp_path / "monitoring.log"
        journal = JsonLineLog(path, "monitoring", clock=clock)
        journal.write("info", "first", event="alert")
        with open(path, "a", encoding="utf-8") as f:
            f.write("not json\n")
        journal.write("info", "second", event="health_check")
        journal.write("info", "third", event="alert")

        records = journal.read_tail(10)
        alerts = journal.read_tail(10, lambda r: r.get("event") == "alert")

        assert [r["message"] for r in records] == ["first", "second", "third"]
        assert [r["message"] for r in alerts] == ["first", "third"]
        assert [r["message"] for r in journal.read_tail(1)] == ["third"]
        assert journal.read_tail(0) == []

    def test_read_tail_missing_file(self, tmp_path):
        assert JsonLineLog(tmp_path / "missing.log", "audit").read_tail() == []


# ============================================================
# CLOCK TESTS
# ============================================================

class TestMockClock:
    """Tests for MockClock."""

    def test_advance_and_freeze(self):
        start = datetime(2025, 1, 1, tzinfo=timezone.utc)
        clock = MockClock(start)

        clock.advance(minutes=5)
        assert clock.now() == start + timedelta(minutes=5)
        assert clock.since(timedelta(minutes=5)) == start

        with clock.freeze(start):
            assert clock.now() == start
        assert clock.now() == start + timedelta(minutes=5)

    def test_naive_times_become_utc(self):
        clock = MockClock(datetime(2025, 1, 1))
        assert clock.now().tzinfo is timezone.utc
        assert clock.epoch_millis() == int(clock.now().timestamp() * 1000)

    def test_iso_round_trip(self):
        dt = datetime(2025, 3, 1, 8, 30, tzinfo=timezone.utc)
        assert from_iso8601(to_iso8601(dt)) == dt


# ============================================================
# EXCEPTION TESTS
# ============================================================

class TestExceptions:
    """Tests for the exception taxonomy."""

    def test_transient_failures_are_recoverable(self):
        error = StoreUnavailableError("connection refused")

        assert isinstance(error, TransientDependencyFailure)
        assert error.dependency == "store"
        assert error.is_recoverable
        assert error.classification == ErrorClassification.TRANSIENT

    def test_self_probe_error_carries_url(self):
        error = SelfProbeError("timed out", url="http://localhost:4000/health/live")

        assert error.dependency == "network"
        assert error.context["url"] == "http://localhost:4000/health/live"

    def test_operator_and_config_errors_are_not_recoverable(self):
        assert not InvalidThresholdError("bad").is_recoverable
        assert not InvalidConfigError("port", 0, "must be positive").is_recoverable

    def test_threshold_error_keeps_details(self):
        error = InvalidThresholdError("Invalid alert thresholds", errors=[{"loc": ["memoryUsage"], "msg": "too big"}])

        assert isinstance(error, OperatorError)
        assert error.errors[0]["loc"] == ["memoryUsage"]
        assert error.to_dict()["context"]["errors"] == error.errors

    def test_cause_is_recorded(self):
        cause = ConnectionError("reset")
        error = StoreUnavailableError("store still down", cause=cause)

        assert error.cause is cause
        assert error.context["cause_type"] == "ConnectionError"
        assert error.to_dict()["cause"] == "reset"

    def test_resource_exhaustion(self):
        error = ResourceExhaustion("memory", 97.0, 95.0)

        assert isinstance(error, ResilienceError)
        assert error.severity == Severity.HIGH
        assert error.context == {"resource": "memory", "value": 97.0, "limit": 95.0}
