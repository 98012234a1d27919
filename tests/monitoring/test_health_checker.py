"""
Tests for the Health Checker.

============================================================
PURPOSE
============================================================
Periodic health orchestration: snapshot, status derivation,
alerts and recovery triggering.

TEST PRINCIPLES:
- Status is derived from the tick's own probe results
- A warning alert never triggers recovery
- A failing tick is contained and reported as error
- An exhausted failure type waits until the condition clears

============================================================
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from core.exceptions import (
    InvalidThresholdError,
    ResourceExhaustion,
    SelfProbeError,
    Severity,
    StoreUnavailableError,
)
from core.json_log import JsonLineLog
from monitoring.alert_evaluator import AlertEvaluator
from monitoring.config import AlertThresholds, MonitoringConfig
from monitoring.health_checker import HealthChecker
from monitoring.models import (
    AlertLevel,
    AlertType,
    MemoryStats,
    ProbeResult,
    ProbeStatus,
    Snapshot,
    SystemStatus,
    derive_status,
)
from monitoring.probes import ConnectionState, StoreProbe
from recovery.config import RecoveryConfig, RecoveryPolicy
from recovery.models import FailureType, RecoveryAttempt
from recovery.orchestrator import RecoveryOrchestrator
from recovery.strategies import StoreRecoveryStrategy


# ============================================================
# HELPERS
# ============================================================

def make_checker(metrics_source, clock, probes=(), recovery=None, journal=None, rotating_logs=(), **overrides):
    config = MonitoringConfig(
        check_interval_seconds=3600,
        rotation_interval_seconds=3600,
        self_probe_url=None,
        **overrides,
    )
    return HealthChecker(
        config,
        metrics_source,
        probes=probes,
        recovery=recovery,
        journal=journal,
        rotating_logs=rotating_logs,
        clock=clock,
    )


def make_recovery(result=None):
    recovery = MagicMock()
    recovery.recover = AsyncMock(return_value=result)
    return recovery


def failed_attempt(clock, failure_type="store"):
    return RecoveryAttempt(
        id="rec_1",
        failure_type=FailureType(failure_type),
        strategy_name="Store Recovery",
        attempt_number=3,
        max_attempts=3,
        success=False,
        detail="Store is disconnected",
        timestamp=clock.now(),
    )


def make_snapshot(clock, memory=40.0, cpu=10.0, response_time=50.0, dependencies=None):
    return Snapshot(
        timestamp=clock.now(),
        status=SystemStatus.HEALTHY,
        average_response_time_ms=response_time,
        memory=MemoryStats(used_mb=memory * 10, total_mb=1000.0, percent=memory),
        cpu_percent=cpu,
        dependencies=dependencies or {},
    )


# ============================================================
# STATUS DERIVATION TESTS
# ============================================================

class TestDeriveStatus:
    """Tests for derive_status."""

    def test_no_probes_is_healthy(self):
        assert derive_status([]) == SystemStatus.HEALTHY

    def test_unhealthy_probe_is_warning(self):
        results = [
            ProbeResult("store", ProbeStatus.UNHEALTHY),
            ProbeResult("api", ProbeStatus.HEALTHY),
        ]
        assert derive_status(results) == SystemStatus.WARNING

    def test_error_wins_over_unhealthy(self):
        results = [
            ProbeResult("store", ProbeStatus.UNHEALTHY),
            ProbeResult("api", ProbeStatus.ERROR),
        ]
        assert derive_status(results) == SystemStatus.ERROR


# ============================================================
# ALERT EVALUATOR TESTS
# ============================================================

class TestAlertEvaluator:
    """Tests for AlertEvaluator."""

    def test_memory_at_threshold_does_not_alert(self, clock):
        evaluator = AlertEvaluator(AlertThresholds())
        assert evaluator.evaluate(make_snapshot(clock, memory=80.0)) == []

    def test_memory_breach_is_single_warning(self, clock):
        evaluator = AlertEvaluator(AlertThresholds())

        alerts = evaluator.evaluate(make_snapshot(clock, memory=85.0))

        assert len(alerts) == 1
        assert alerts[0].type == AlertType.MEMORY
        assert alerts[0].level == AlertLevel.WARNING
        assert alerts[0].value == 85.0
        assert alerts[0].threshold == 80.0

    def test_cpu_above_ceiling_is_critical(self, clock):
        evaluator = AlertEvaluator(AlertThresholds(), critical_cpu_percent=95.0)

        alerts = evaluator.evaluate(make_snapshot(clock, cpu=96.0))

        assert [(a.type, a.level) for a in alerts] == [(AlertType.CPU, AlertLevel.CRITICAL)]

    def test_response_time_and_error_rate_are_warnings(self, clock):
        evaluator = AlertEvaluator(AlertThresholds())

        alerts = evaluator.evaluate(make_snapshot(clock, response_time=2500.0), error_rate_percent=12.0)

        assert {a.type for a in alerts} == {AlertType.RESPONSE_TIME, AlertType.ERROR_RATE}
        assert all(a.level == AlertLevel.WARNING for a in alerts)

    def test_no_error_rate_alert_without_request_data(self, clock):
        evaluator = AlertEvaluator(AlertThresholds())
        assert evaluator.evaluate(make_snapshot(clock), error_rate_percent=None) == []

    def test_failing_dependencies_are_critical(self, clock):
        evaluator = AlertEvaluator(AlertThresholds())
        dependencies = {
            "store": ProbeResult("store", ProbeStatus.ERROR, error="Store is disconnected"),
            "api": ProbeResult("api", ProbeStatus.UNHEALTHY, error="HTTP 500"),
        }

        alerts = evaluator.evaluate(make_snapshot(clock, dependencies=dependencies))

        assert len(alerts) == 1
        assert alerts[0].type == AlertType.STORE
        assert alerts[0].is_critical

    def test_network_alert_for_failing_self_probe(self, clock):
        evaluator = AlertEvaluator(AlertThresholds())
        dependencies = {"api": ProbeResult("api", ProbeStatus.ERROR, error="timeout")}

        alerts = evaluator.evaluate(make_snapshot(clock, dependencies=dependencies))

        assert [a.type for a in alerts] == [AlertType.NETWORK]


# ============================================================
# HEALTH CHECK TESTS
# ============================================================

class TestHealthCheck:
    """Tests for HealthChecker.perform_health_check."""

    @pytest.mark.asyncio
    async def test_healthy_tick(self, metrics_source, store_connection, clock):
        checker = make_checker(metrics_source, clock, probes=[StoreProbe(store_connection)])

        snapshot = await checker.perform_health_check()

        assert snapshot.status == SystemStatus.HEALTHY
        assert snapshot.dependencies["store"].status == ProbeStatus.HEALTHY
        assert snapshot.memory.percent == 40.0
        assert snapshot.cpu_percent == 10.0
        assert snapshot.uptime_seconds == 120.0
        assert snapshot.timestamp == clock.now()
        assert checker.snapshot is snapshot

    @pytest.mark.asyncio
    async def test_disconnected_store_reports_error_and_recovers(self, metrics_source, store_connection, clock):
        store_connection.set_state(ConnectionState.DISCONNECTED)
        recovery = make_recovery()
        checker = make_checker(metrics_source, clock, probes=[StoreProbe(store_connection)], recovery=recovery)

        for _ in range(3):
            snapshot = await checker.perform_health_check()
            assert snapshot.status == SystemStatus.ERROR
            assert snapshot.dependencies["store"].status == ProbeStatus.ERROR

        assert await checker.wait_for_recoveries(timeout=5)
        assert recovery.recover.await_count >= 1
        assert recovery.recover.await_args_list[0].args[0] == "store"
        error = recovery.recover.await_args_list[0].args[1]
        assert isinstance(error, StoreUnavailableError)
        assert error.is_recoverable

    @pytest.mark.asyncio
    async def test_transitional_store_state_is_warning(self, metrics_source, store_connection, clock):
        store_connection.set_state(ConnectionState.CONNECTING)
        recovery = make_recovery()
        checker = make_checker(metrics_source, clock, probes=[StoreProbe(store_connection)], recovery=recovery)

        snapshot = await checker.perform_health_check()

        assert snapshot.status == SystemStatus.WARNING
        assert recovery.recover.await_count == 0

    @pytest.mark.asyncio
    async def test_persistent_memory_breach_alerts_once_per_tick(self, metrics_source, clock):
        metrics_source.memory = 85.0
        recovery = make_recovery()
        checker = make_checker(metrics_source, clock, recovery=recovery)

        seen = []
        original = checker.handle_alert

        def record(alert):
            seen.append(alert)
            return original(alert)

        checker.handle_alert = record

        for _ in range(3):
            seen.clear()
            await checker.perform_health_check()
            memory_alerts = [a for a in seen if a.type == AlertType.MEMORY]
            assert len(memory_alerts) == 1
            assert memory_alerts[0].level == AlertLevel.WARNING

        # Warnings never trigger recovery
        assert recovery.recover.await_count == 0

    @pytest.mark.asyncio
    async def test_critical_memory_triggers_recovery(self, metrics_source, clock):
        metrics_source.memory = 97.0
        recovery = make_recovery()
        checker = make_checker(metrics_source, clock, recovery=recovery)

        await checker.perform_health_check()
        await checker.wait_for_recoveries(timeout=5)

        assert recovery.recover.await_args.args[0] == "memory"
        error = recovery.recover.await_args.args[1]
        assert isinstance(error, ResourceExhaustion)
        assert error.resource == "memory"
        assert error.value == 97.0
        assert error.severity == Severity.CRITICAL
        assert checker.retry_attempts == 1

    @pytest.mark.asyncio
    async def test_failed_tick_is_contained(self, metrics_source, clock):
        metrics_source.error = RuntimeError("psutil failed")
        recovery = make_recovery()
        checker = make_checker(metrics_source, clock, recovery=recovery)

        snapshot = await checker.perform_health_check()
        await checker.wait_for_recoveries(timeout=5)

        assert snapshot.status == SystemStatus.ERROR
        assert snapshot.error_count == 1
        assert checker.error_count == 1
        assert recovery.recover.await_args.args[0] == "healthCheck"

        metrics_source.error = None
        snapshot = await checker.perform_health_check()
        assert snapshot.status == SystemStatus.HEALTHY
        assert snapshot.error_count == 1

    @pytest.mark.asyncio
    async def test_response_time_blend(self, metrics_source, clock):
        checker = make_checker(metrics_source, clock)

        first = await checker.perform_health_check()
        second = await checker.perform_health_check()

        assert first.average_response_time_ms == pytest.approx(first.check_duration_ms / 2)
        assert second.average_response_time_ms == pytest.approx(
            (first.average_response_time_ms + second.check_duration_ms) / 2
        )

    @pytest.mark.asyncio
    async def test_probe_exception_becomes_error_result(self, metrics_source, clock):
        probe = MagicMock()
        probe.name = "store"
        probe.check = AsyncMock(side_effect=RuntimeError("driver crashed"))
        checker = make_checker(metrics_source, clock, probes=[probe])

        snapshot = await checker.perform_health_check()

        assert snapshot.status == SystemStatus.ERROR
        assert "driver crashed" in snapshot.dependencies["store"].error

    @pytest.mark.asyncio
    async def test_failing_self_check_recovers_with_url(self, metrics_source, clock):
        url = "http://localhost:4000/health/live"
        api = MagicMock()
        api.name = "api"
        api.check = AsyncMock(return_value=ProbeResult("api", ProbeStatus.ERROR, detail={"url": url}, error="timeout"))
        recovery = make_recovery()
        checker = make_checker(metrics_source, clock, probes=[api], recovery=recovery)

        await checker.perform_health_check()
        await checker.wait_for_recoveries(timeout=5)

        assert recovery.recover.await_args.args[0] == "network"
        error = recovery.recover.await_args.args[1]
        assert isinstance(error, SelfProbeError)
        assert error.context["url"] == url


# ============================================================
# RECOVERY BOOKKEEPING TESTS
# ============================================================

class TestRecoveryBookkeeping:
    """Tests for recovery suppression and reset."""

    @pytest.mark.asyncio
    async def test_exhausted_failure_waits_until_cleared(self, metrics_source, store_connection, clock):
        store_connection.set_state(ConnectionState.DISCONNECTED)
        recovery = make_recovery(failed_attempt(clock))
        checker = make_checker(metrics_source, clock, probes=[StoreProbe(store_connection)], recovery=recovery)

        await checker.perform_health_check()
        await checker.wait_for_recoveries(timeout=5)
        assert checker.exhausted_failures == {"store"}

        await checker.perform_health_check()
        await checker.wait_for_recoveries(timeout=5)
        assert recovery.recover.await_count == 1

        store_connection.set_state(ConnectionState.CONNECTED)
        await checker.perform_health_check()
        assert checker.exhausted_failures == set()

        store_connection.set_state(ConnectionState.DISCONNECTED)
        await checker.perform_health_check()
        await checker.wait_for_recoveries(timeout=5)
        assert recovery.recover.await_count == 2

    @pytest.mark.asyncio
    async def test_reset_retry_attempts_clears_exhaustion(self, metrics_source, store_connection, clock):
        store_connection.set_state(ConnectionState.DISCONNECTED)
        recovery = make_recovery(failed_attempt(clock))
        checker = make_checker(metrics_source, clock, probes=[StoreProbe(store_connection)], recovery=recovery)

        await checker.perform_health_check()
        await checker.wait_for_recoveries(timeout=5)
        checker.reset_retry_attempts()

        assert checker.retry_attempts == 0
        assert checker.exhausted_failures == set()

    @pytest.mark.asyncio
    async def test_auto_recovery_disabled(self, metrics_source, clock):
        metrics_source.memory = 97.0
        recovery = make_recovery()
        checker = make_checker(metrics_source, clock, recovery=recovery)
        checker.set_auto_recovery(False)

        await checker.perform_health_check()

        assert recovery.recover.await_count == 0
        assert checker.get_metrics()["auto_recovery"] is False


# ============================================================
# LIFECYCLE TESTS
# ============================================================

class TestLifecycle:
    """Tests for start / stop."""

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, metrics_source, clock):
        checker = make_checker(metrics_source, clock)

        assert await checker.start() is True
        assert await checker.start() is False
        assert checker.is_running
        # Only the immediate tick of the first start
        assert metrics_source.reads == 1

        assert await checker.stop() is True

    @pytest.mark.asyncio
    async def test_stop_twice_does_not_raise(self, metrics_source, clock):
        checker = make_checker(metrics_source, clock)
        await checker.start()

        assert await checker.stop() is True
        assert await checker.stop() is False
        assert not checker.is_running

    @pytest.mark.asyncio
    async def test_stop_without_start(self, metrics_source, clock):
        checker = make_checker(metrics_source, clock)
        assert await checker.stop() is False
        assert await checker.wait_for_recoveries() is True


# ============================================================
# THRESHOLD TESTS
# ============================================================

class TestThresholds:
    """Tests for set_alert_thresholds."""

    def test_partial_update_merges(self, metrics_source, clock):
        checker = make_checker(metrics_source, clock)

        values = checker.set_alert_thresholds({"memoryUsage": 90})

        assert values["memory_percent"] == 90.0
        assert values["cpu_percent"] == 70.0
        assert checker.thresholds.memory_percent == 90.0

    def test_snake_case_keys_accepted(self, metrics_source, clock):
        checker = make_checker(metrics_source, clock)
        checker.set_alert_thresholds({"error_rate_percent": 10})
        assert checker.thresholds.error_rate_percent == 10.0

    @pytest.mark.parametrize("update", [
        {"memoryUsage": 150},
        {"cpuUsage": -1},
        {"responseTime": 0},
        {"errorRate": "lots"},
        {"diskUsage": 50},
        {},
    ])
    def test_invalid_update_rejected_without_change(self, metrics_source, clock, update):
        checker = make_checker(metrics_source, clock)
        before = checker.thresholds.to_dict()

        with pytest.raises(InvalidThresholdError):
            checker.set_alert_thresholds(update)

        assert checker.thresholds.to_dict() == before

    @pytest.mark.asyncio
    async def test_updated_threshold_used_by_next_tick(self, metrics_source, clock):
        metrics_source.memory = 85.0
        checker = make_checker(metrics_source, clock)
        checker.set_alert_thresholds({"memoryUsage": 90})

        seen = []
        checker.handle_alert = seen.append
        await checker.perform_health_check()

        assert seen == []


# ============================================================
# JOURNAL TESTS
# ============================================================

class TestJournal:
    """Tests for alert history and log rotation."""

    @pytest.mark.asyncio
    async def test_alert_history_newest_first(self, metrics_source, monitoring_journal, clock):
        metrics_source.memory = 85.0
        checker = make_checker(metrics_source, clock, journal=monitoring_journal)

        await checker.perform_health_check()
        clock.advance(seconds=30)
        await checker.perform_health_check()

        history = checker.get_alert_history()
        assert len(history) == 2
        assert all(a["type"] == "memory" for a in history)
        assert history[0]["timestamp"] > history[1]["timestamp"]

        stats = checker.get_alert_stats()
        assert stats["total"] == 2
        assert stats["by_type"] == {"memory": 2}
        assert stats["by_level"] == {"warning": 2}

    @pytest.mark.asyncio
    async def test_health_check_logged(self, metrics_source, monitoring_journal, clock):
        checker = make_checker(metrics_source, clock, journal=monitoring_journal)

        await checker.perform_health_check()

        records = monitoring_journal.read_tail(10, lambda r: r.get("event") == "health_check")
        assert len(records) == 1
        assert records[0]["data"]["status"] == "healthy"

    def test_rotate_logs_covers_every_journal(self, metrics_source, tmp_path, clock):
        journal = JsonLineLog(tmp_path / "monitoring.log", "monitoring", max_bytes=200, clock=clock)
        audit = JsonLineLog(tmp_path / "audit.log", "audit", max_bytes=200, clock=clock)
        for i in range(5):
            journal.write("info", f"monitoring entry {i}")
            audit.write("info", f"audit entry {i}")
        checker = make_checker(metrics_source, clock, journal=journal, rotating_logs=[audit])

        rotated = checker.rotate_logs()

        assert sorted(p.name for p in rotated) == [
            "audit-2025-01-15T12-00-00-000000Z.log",
            "monitoring-2025-01-15T12-00-00-000000Z.log",
        ]
        records = journal.read_tail(10, lambda r: r.get("event") == "log_rotated")
        assert len(records) == 2

    @pytest.mark.asyncio
    async def test_exhausted_recovery_journaled_once(self, metrics_source, store_connection, monitoring_journal, clock):
        store_connection.set_state(ConnectionState.DISCONNECTED)
        store_connection.connect_ok = False
        orchestrator = RecoveryOrchestrator(RecoveryConfig(), clock=clock, journal=monitoring_journal)
        orchestrator.initialize([
            StoreRecoveryStrategy(RecoveryPolicy("Store Recovery", 1, 0), store_connection),
        ])
        checker = make_checker(
            metrics_source, clock,
            probes=[StoreProbe(store_connection)],
            recovery=orchestrator,
            journal=monitoring_journal,
        )

        await checker.perform_health_check()
        await checker.wait_for_recoveries(timeout=5)

        records = monitoring_journal.read_tail(50, lambda r: r.get("event") == "manual_intervention_required")
        assert len(records) == 1
        assert checker.exhausted_failures == {"store"}

    @pytest.mark.asyncio
    async def test_successful_recovery_journaled_once(self, metrics_source, store_connection, monitoring_journal, clock):
        store_connection.set_state(ConnectionState.DISCONNECTED)
        orchestrator = RecoveryOrchestrator(RecoveryConfig(), clock=clock, journal=monitoring_journal)
        orchestrator.initialize([
            StoreRecoveryStrategy(RecoveryPolicy("Store Recovery", 1, 0), store_connection),
        ])
        checker = make_checker(
            metrics_source, clock,
            probes=[StoreProbe(store_connection)],
            recovery=orchestrator,
            journal=monitoring_journal,
        )

        await checker.perform_health_check()
        await checker.wait_for_recoveries(timeout=5)

        records = monitoring_journal.read_tail(50, lambda r: "recovery" in (r.get("event") or ""))
        assert [r["event"] for r in records] == ["recovery_succeeded"]
