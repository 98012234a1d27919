"""
Monitoring - Alert Evaluator.

============================================================
RESPONSIBILITY
============================================================
Turns one Snapshot into zero or more Alerts.

- memory %, cpu %, average response time, request error rate
  compared against the mutable AlertThresholds
- memory / cpu breaches at or above the critical ceiling are
  critical, everything else is a warning
- a dependency probe in error yields a critical store or network
  alert, which is what routes it to recovery

Evaluation is pure: no logging, no state.

============================================================
"""

from datetime import datetime
from typing import List, Mapping, Optional

from .config import AlertThresholds
from .models import Alert, AlertLevel, AlertType, ProbeResult, Snapshot


# Probe name -> alert type raised when the probe errors
DEPENDENCY_ALERT_TYPES = {
    "store": AlertType.STORE,
    "api": AlertType.NETWORK,
}


class AlertEvaluator:
    """Threshold comparison for health snapshots."""

    def __init__(
        self,
        thresholds: AlertThresholds,
        critical_memory_percent: float = 95.0,
        critical_cpu_percent: float = 95.0,
    ):
        self._thresholds = thresholds
        self._critical_memory = critical_memory_percent
        self._critical_cpu = critical_cpu_percent

    @property
    def thresholds(self) -> AlertThresholds:
        return self._thresholds

    def evaluate(
        self,
        snapshot: Snapshot,
        error_rate_percent: Optional[float] = None,
    ) -> List[Alert]:
        """All alerts for one snapshot, resource alerts first."""
        alerts = self.evaluate_resources(snapshot, error_rate_percent)
        alerts.extend(self.evaluate_dependencies(snapshot.dependencies, snapshot.timestamp))
        return alerts

    def evaluate_resources(
        self,
        snapshot: Snapshot,
        error_rate_percent: Optional[float] = None,
    ) -> List[Alert]:
        t = self._thresholds
        now = snapshot.timestamp
        alerts: List[Alert] = []

        memory = snapshot.memory.percent
        if memory > t.memory_percent:
            level = AlertLevel.CRITICAL if memory >= self._critical_memory else AlertLevel.WARNING
            alerts.append(Alert(
                type=AlertType.MEMORY,
                level=level,
                message=f"High memory usage: {memory:.2f}%",
                value=memory,
                threshold=t.memory_percent,
                timestamp=now,
            ))

        cpu = snapshot.cpu_percent
        if cpu > t.cpu_percent:
            level = AlertLevel.CRITICAL if cpu >= self._critical_cpu else AlertLevel.WARNING
            alerts.append(Alert(
                type=AlertType.CPU,
                level=level,
                message=f"High CPU usage: {cpu:.2f}%",
                value=cpu,
                threshold=t.cpu_percent,
                timestamp=now,
            ))

        response_time = snapshot.average_response_time_ms
        if response_time > t.response_time_ms:
            alerts.append(Alert(
                type=AlertType.RESPONSE_TIME,
                level=AlertLevel.WARNING,
                message=f"High response time: {response_time:.2f}ms",
                value=response_time,
                threshold=t.response_time_ms,
                timestamp=now,
            ))

        if error_rate_percent is not None and error_rate_percent > t.error_rate_percent:
            alerts.append(Alert(
                type=AlertType.ERROR_RATE,
                level=AlertLevel.WARNING,
                message=f"High error rate: {error_rate_percent:.2f}%",
                value=error_rate_percent,
                threshold=t.error_rate_percent,
                timestamp=now,
            ))

        return alerts

    def evaluate_dependencies(
        self,
        dependencies: Mapping[str, ProbeResult],
        now: datetime,
    ) -> List[Alert]:
        alerts: List[Alert] = []
        for name, result in dependencies.items():
            alert_type = DEPENDENCY_ALERT_TYPES.get(name)
            if alert_type is None or not result.is_error:
                continue
            alerts.append(Alert(
                type=alert_type,
                level=AlertLevel.CRITICAL,
                message=f"Dependency {name} failing: {result.error or 'error'}",
                value=1.0,
                threshold=0.0,
                timestamp=now,
            ))
        return alerts
