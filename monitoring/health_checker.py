"""
Monitoring - Health Checker.

============================================================
RESPONSIBILITY
============================================================
Periodic health orchestration of the process.

Each tick:
1. Read the metrics source
2. Run dependency probes concurrently
3. Measure the check's own duration
4. Rebuild the Snapshot (status derived from probe results)
5. Evaluate alert thresholds, hand every alert to handle_alert
6. Log the outcome

A tick that raises forces status to error, bumps the error
counter and triggers recovery for "healthCheck". The loop
itself never dies.

============================================================
RECOVERY BOOKKEEPING
============================================================
- Critical alerts schedule recovery as tracked background tasks
- stop() never cancels an in-flight recovery
- A failure type whose recovery exhausted its attempts is not
  retried until a tick sees the failure condition absent

============================================================
"""

import asyncio
import logging
import time
from collections import Counter
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence, Set

from pydantic import ValidationError

from core.clock import ClockProtocol, SystemClock
from core.exceptions import (
    InvalidThresholdError,
    ResilienceError,
    ResourceExhaustion,
    SelfProbeError,
    Severity,
    StoreUnavailableError,
)
from core.json_log import JsonLineLog
from .alert_evaluator import AlertEvaluator
from .config import AlertThresholds, MonitoringConfig
from .metrics_source import MetricsSource
from .models import Alert, AlertType, ProbeResult, ProbeStatus, Snapshot, SystemStatus, derive_status
from .probes import DependencyProbe, SelfProbe
from .scheduler import ScheduledTask
from .schemas import ThresholdUpdate

if TYPE_CHECKING:
    from recovery.orchestrator import RecoveryOrchestrator
    from .request_monitor import RequestMonitor


logger = logging.getLogger(__name__)


HEALTH_CHECK_FAILURE = "healthCheck"


class HealthChecker:
    """
    Periodic health checker.

    Usage:
        checker = HealthChecker(config, metrics_source, probes, recovery=orchestrator)
        await checker.start()
        ...
        await checker.stop()
    """

    def __init__(
        self,
        config: MonitoringConfig,
        metrics_source: MetricsSource,
        probes: Sequence[DependencyProbe] = (),
        recovery: Optional["RecoveryOrchestrator"] = None,
        request_monitor: Optional["RequestMonitor"] = None,
        journal: Optional[JsonLineLog] = None,
        rotating_logs: Sequence[JsonLineLog] = (),
        clock: Optional[ClockProtocol] = None,
    ):
        self._config = config
        self._metrics_source = metrics_source
        self._probes = list(probes)
        self._recovery = recovery
        self._request_monitor = request_monitor
        self._clock = clock or SystemClock()
        self._journal = journal
        self._rotating_logs = [journal] if journal else []
        self._rotating_logs.extend(log for log in rotating_logs if log is not journal)

        self._thresholds = config.thresholds
        self._evaluator = AlertEvaluator(
            self._thresholds,
            critical_memory_percent=config.critical_memory_percent,
            critical_cpu_percent=config.critical_cpu_percent,
        )

        self._snapshot = Snapshot.initial(self._clock.now())
        self._error_count = 0
        self._retry_attempts = 0
        self._auto_recovery = config.auto_recovery
        self._exhausted: Set[str] = set()
        self._recovery_tasks: Set[asyncio.Task] = set()
        self._started_at = None

        self._check_timer = ScheduledTask(
            "health-check", config.check_interval_seconds, self.perform_health_check,
        )
        self._rotation_timer = ScheduledTask(
            "log-rotation", config.rotation_interval_seconds, self._rotation_tick,
        )

    # --------------------------------------------------------
    # PROPERTIES
    # --------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._check_timer.is_running

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    @property
    def background_workloads(self) -> List[ScheduledTask]:
        """Timers that CPU recovery may pause. The health check itself is never paused."""
        return [self._rotation_timer]

    @property
    def thresholds(self) -> AlertThresholds:
        return self._thresholds

    @property
    def auto_recovery(self) -> bool:
        return self._auto_recovery

    @property
    def retry_attempts(self) -> int:
        return self._retry_attempts

    @property
    def error_count(self) -> int:
        return self._error_count

    @property
    def exhausted_failures(self) -> Set[str]:
        return set(self._exhausted)

    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------

    async def start(self) -> bool:
        """Start both timers and run one tick. No-op when running."""
        if self.is_running:
            logger.warning("Health checker is already running")
            return False

        self._check_timer.start()
        self._rotation_timer.start()
        self._started_at = self._clock.now()
        self.log("info", "Monitoring service started", event="monitoring_started",
                 interval_seconds=self._config.check_interval_seconds)

        await self.perform_health_check()
        return True

    async def stop(self) -> bool:
        """Cancel both timers. In-flight recoveries are left to finish."""
        stopped_check = await self._check_timer.stop()
        stopped_rotation = await self._rotation_timer.stop()
        if not (stopped_check or stopped_rotation):
            return False

        self.log("info", "Monitoring service stopped", event="monitoring_stopped",
                 pending_recoveries=len(self._recovery_tasks))
        return True

    async def wait_for_recoveries(self, timeout: Optional[float] = None) -> bool:
        """
        Await scheduled recovery tasks without cancelling them.

        Returns:
            True when none is left pending
        """
        pending = set(self._recovery_tasks)
        if not pending:
            return True
        _, still_pending = await asyncio.wait(pending, timeout=timeout)
        return not still_pending

    # --------------------------------------------------------
    # HEALTH CHECK
    # --------------------------------------------------------

    async def perform_health_check(self) -> Snapshot:
        """Run one tick. Never raises."""
        started = time.perf_counter()
        try:
            metrics = self._metrics_source.read()
            results = await self._run_probes()
            duration_ms = (time.perf_counter() - started) * 1000

            previous = self._snapshot
            snapshot = Snapshot(
                timestamp=self._clock.now(),
                status=derive_status(results),
                uptime_seconds=metrics.uptime_seconds,
                average_response_time_ms=(previous.average_response_time_ms + duration_ms) / 2,
                memory=metrics.memory,
                cpu_percent=metrics.cpu_percent,
                request_counters=self._request_counters(),
                status_counters=self._status_counters(),
                dependencies={r.name: r for r in results},
                check_duration_ms=duration_ms,
                error_count=self._error_count,
            )
            self._snapshot = snapshot

            error_rate = self._request_monitor.error_rate() if self._request_monitor else None
            alerts = self._evaluator.evaluate(snapshot, error_rate)

            self._clear_resolved_failures(alerts)
            for alert in alerts:
                self.handle_alert(alert)

            self.log(
                "info",
                "Health check completed",
                event="health_check",
                status=snapshot.status.value,
                duration_ms=round(duration_ms, 2),
                memory_percent=round(snapshot.memory.percent, 2),
                cpu_percent=round(snapshot.cpu_percent, 2),
                dependencies={name: r.status.value for name, r in snapshot.dependencies.items()},
                alerts=len(alerts),
            )

        except Exception as e:
            self._handle_check_error(e)

        return self._snapshot

    async def _run_probes(self) -> List[ProbeResult]:
        outcomes = await asyncio.gather(
            *(probe.check() for probe in self._probes),
            return_exceptions=True,
        )
        results: List[ProbeResult] = []
        for probe, outcome in zip(self._probes, outcomes):
            if isinstance(outcome, ProbeResult):
                results.append(outcome)
            elif isinstance(outcome, Exception):
                results.append(ProbeResult(
                    name=probe.name,
                    status=ProbeStatus.ERROR,
                    error=f"{type(outcome).__name__}: {outcome}",
                ))
            else:
                raise outcome
        return results

    def _request_counters(self) -> Dict[str, int]:
        return self._request_monitor.request_counters() if self._request_monitor else {}

    def _status_counters(self) -> Dict[int, int]:
        return self._request_monitor.status_counters() if self._request_monitor else {}

    def _handle_check_error(self, error: Exception) -> None:
        self._error_count += 1
        self._snapshot = replace(
            self._snapshot,
            timestamp=self._clock.now(),
            status=SystemStatus.ERROR,
            error_count=self._error_count,
        )
        logger.exception(f"Health check failed: {error}")
        self.log("error", "Health check failed", event="health_check_failed",
                 error=str(error), error_count=self._error_count)
        self._trigger_recovery(HEALTH_CHECK_FAILURE, error, {"source": "health_check"})

    # --------------------------------------------------------
    # ALERTS
    # --------------------------------------------------------

    def handle_alert(self, alert: Alert) -> Optional[asyncio.Task]:
        """Log the alert; schedule recovery when it is critical."""
        self.log(alert.level.value, f"Alert: {alert.message}", event="alert", alert=alert.to_dict())

        if not alert.is_critical:
            return None
        return self._trigger_recovery(
            alert.type.value,
            self._alert_error(alert),
            {"source": "alert", "alert": alert.to_dict()},
        )

    def _alert_error(self, alert: Alert) -> Optional[ResilienceError]:
        """Map a critical alert onto the failure it reports."""
        if alert.type == AlertType.STORE:
            return StoreUnavailableError(alert.message)
        if alert.type == AlertType.NETWORK:
            result = self._snapshot.dependencies.get(SelfProbe.name)
            url = result.detail.get("url") if result else None
            return SelfProbeError(alert.message, url=url)
        if alert.type in (AlertType.MEMORY, AlertType.CPU):
            return ResourceExhaustion(alert.type.value, alert.value, alert.threshold, severity=Severity.CRITICAL)
        return None

    def get_alert_history(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Alerts read back from the monitoring journal, newest first."""
        if self._journal is None:
            return []
        records = self._journal.read_tail(limit, lambda r: r.get("event") == "alert")
        return [r.get("data", {}).get("alert", {}) for r in reversed(records)]

    def get_alert_stats(self, limit: int = 1000) -> Dict[str, Any]:
        history = self.get_alert_history(limit)
        return {
            "total": len(history),
            "by_type": dict(Counter(a.get("type", "unknown") for a in history)),
            "by_level": dict(Counter(a.get("level", "unknown") for a in history)),
            "latest": history[0] if history else None,
        }

    # --------------------------------------------------------
    # RECOVERY
    # --------------------------------------------------------

    def _trigger_recovery(
        self,
        failure_type: str,
        error: Optional[BaseException],
        context: Mapping[str, Any],
    ) -> Optional[asyncio.Task]:
        if self._recovery is None:
            return None
        if not self._auto_recovery:
            logger.info(f"Automatic recovery disabled, not recovering {failure_type}")
            return None
        if failure_type in self._exhausted:
            logger.warning(
                f"Recovery for {failure_type} exhausted earlier, waiting for the failure to clear"
            )
            return None

        self._retry_attempts += 1
        task = asyncio.get_running_loop().create_task(
            self._run_recovery(failure_type, error, context),
            name=f"recovery-{failure_type}",
        )
        self._recovery_tasks.add(task)
        task.add_done_callback(self._recovery_tasks.discard)
        return task

    async def _run_recovery(
        self,
        failure_type: str,
        error: Optional[BaseException],
        context: Mapping[str, Any],
    ) -> bool:
        attempt = await self._recovery.recover(failure_type, error, context)
        if attempt is None:
            return False

        # The orchestrator journals the outcome itself
        if attempt.success:
            self._exhausted.discard(failure_type)
            logger.info(f"Recovery {attempt.id} restored {failure_type}")
            return True

        self._exhausted.add(failure_type)
        logger.warning(f"Recovery for {failure_type} exhausted, suppressed until the failure clears")
        return False

    def _clear_resolved_failures(self, alerts: Sequence[Alert]) -> None:
        # Only called for ticks that completed, so healthCheck is always clear here
        active = {alert.type.value for alert in alerts if alert.is_critical}

        for failure_type in sorted(self._exhausted - active):
            self._exhausted.discard(failure_type)
            self.log("info", f"Failure condition cleared: {failure_type}", event="failure_cleared",
                     failure_type=failure_type)

    def reset_retry_attempts(self) -> None:
        self._retry_attempts = 0
        self._exhausted.clear()
        self.log("info", "Retry attempts reset", event="retry_reset")

    def set_auto_recovery(self, enabled: bool) -> None:
        self._auto_recovery = bool(enabled)
        self.log("info", f"Auto recovery {'enabled' if enabled else 'disabled'}",
                 event="auto_recovery_toggled", enabled=self._auto_recovery)

    # --------------------------------------------------------
    # THRESHOLDS
    # --------------------------------------------------------

    def set_alert_thresholds(self, update: Mapping[str, Any]) -> Dict[str, float]:
        """
        Merge a partial threshold update.

        Raises:
            InvalidThresholdError: the update is invalid; nothing changed
        """
        try:
            changes = ThresholdUpdate.model_validate(dict(update)).changes()
        except ValidationError as e:
            raise InvalidThresholdError(
                "Invalid alert thresholds",
                errors=[{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()],
            ) from e
        if not changes:
            raise InvalidThresholdError("No alert thresholds provided")

        values = self._thresholds.apply(changes)
        self.log("info", "Alert thresholds updated", event="thresholds_updated", **values)
        return values

    # --------------------------------------------------------
    # READS
    # --------------------------------------------------------

    def get_metrics(self) -> Dict[str, Any]:
        return {
            "snapshot": self._snapshot.to_dict(),
            "is_running": self.is_running,
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "retry_attempts": self._retry_attempts,
            "error_count": self._error_count,
            "auto_recovery": self._auto_recovery,
            "alert_thresholds": self._thresholds.to_dict(),
            "pending_recoveries": len(self._recovery_tasks),
            "exhausted_failures": sorted(self._exhausted),
        }

    # --------------------------------------------------------
    # LOGGING
    # --------------------------------------------------------

    def log(self, level: str, message: str, event: Optional[str] = None, **data: Any) -> None:
        """Log to the Python logger and append to the monitoring journal."""
        log_level = logging.getLevelName(level.upper())
        if not isinstance(log_level, int):
            log_level = logging.INFO
        logger.log(log_level, message)

        if self._journal is None:
            return
        try:
            self._journal.write(level, message, event=event, **data)
        except OSError as e:
            logger.error(f"Failed to write monitoring journal: {e}")

    def rotate_logs(self) -> List[Path]:
        """Rotate every durable log above its size limit."""
        rotated: List[Path] = []
        for journal in self._rotating_logs:
            try:
                backup = journal.rotate_if_needed()
            except OSError as e:
                logger.error(f"Failed to rotate {journal.path}: {e}")
                continue
            if backup is not None:
                rotated.append(backup)
                self.log("info", "Log file rotated", event="log_rotated",
                         original=str(journal.path), rotated=str(backup))
        return rotated

    async def _rotation_tick(self) -> None:
        self.rotate_logs()
