"""
Monitoring - Models.

============================================================
CORE PRINCIPLES
============================================================

1. SNAPSHOT IS REPLACED, NEVER PATCHED
   - A new Snapshot is built every tick
   - Status is derived from the tick's probe results only

2. ALERTS ARE EPHEMERAL
   - Produced, logged to the journal, handed to recovery
   - Never held as in-memory state

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional


# ============================================================
# STATUS ENUMS
# ============================================================

class SystemStatus(str, Enum):
    """Overall status of the process."""

    HEALTHY = "healthy"
    WARNING = "warning"
    ERROR = "error"


class ProbeStatus(str, Enum):
    """Outcome of a single dependency probe."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"      # Reachable but degraded or transitioning
    ERROR = "error"              # Unreachable or failed


class AlertLevel(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"


class AlertType(str, Enum):
    """Alert categories. Values double as recovery failure types."""

    MEMORY = "memory"
    CPU = "cpu"
    RESPONSE_TIME = "responseTime"
    ERROR_RATE = "errorRate"
    STORE = "store"
    NETWORK = "network"


# ============================================================
# PROBE RESULT
# ============================================================

@dataclass(frozen=True)
class ProbeResult:
    """Result of one dependency probe."""

    name: str
    status: ProbeStatus
    latency_ms: float = 0.0
    detail: Mapping[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.status == ProbeStatus.ERROR

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
            "detail": dict(self.detail),
            "error": self.error,
        }


def derive_status(results: Iterable[ProbeResult]) -> SystemStatus:
    """
    Derive overall status from dependency results.

    error if any probe errored, warning if any is unhealthy,
    healthy otherwise (including when there are no probes).
    """
    statuses = {result.status for result in results}
    if ProbeStatus.ERROR in statuses:
        return SystemStatus.ERROR
    if ProbeStatus.UNHEALTHY in statuses:
        return SystemStatus.WARNING
    return SystemStatus.HEALTHY


# ============================================================
# RUNTIME METRICS
# ============================================================

@dataclass(frozen=True)
class MemoryStats:
    used_mb: float
    total_mb: float
    percent: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "used_mb": round(self.used_mb, 2),
            "total_mb": round(self.total_mb, 2),
            "percent": round(self.percent, 2),
        }


@dataclass(frozen=True)
class RuntimeMetrics:
    """One reading of the process metrics source."""

    memory: MemoryStats
    cpu_percent: float
    uptime_seconds: float
    pid: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "memory": self.memory.to_dict(),
            "cpu_percent": round(self.cpu_percent, 2),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "pid": self.pid,
        }


# ============================================================
# SNAPSHOT
# ============================================================

@dataclass(frozen=True)
class Snapshot:
    """
    Point-in-time aggregate of process health.

    average_response_time_ms is blended as (old + latest) / 2,
    not a windowed average.
    """

    timestamp: datetime
    status: SystemStatus
    uptime_seconds: float = 0.0
    average_response_time_ms: float = 0.0
    memory: MemoryStats = field(default_factory=lambda: MemoryStats(0.0, 0.0, 0.0))
    cpu_percent: float = 0.0
    request_counters: Mapping[str, int] = field(default_factory=dict)
    status_counters: Mapping[int, int] = field(default_factory=dict)
    dependencies: Mapping[str, ProbeResult] = field(default_factory=dict)
    check_duration_ms: float = 0.0
    error_count: int = 0

    @classmethod
    def initial(cls, now: datetime) -> "Snapshot":
        return cls(timestamp=now, status=SystemStatus.HEALTHY)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "status": self.status.value,
            "uptime_seconds": round(self.uptime_seconds, 1),
            "average_response_time_ms": round(self.average_response_time_ms, 2),
            "memory": self.memory.to_dict(),
            "cpu_percent": round(self.cpu_percent, 2),
            "request_counters": dict(self.request_counters),
            "status_counters": {str(code): count for code, count in self.status_counters.items()},
            "dependencies": {name: result.to_dict() for name, result in self.dependencies.items()},
            "check_duration_ms": round(self.check_duration_ms, 2),
            "error_count": self.error_count,
        }


# ============================================================
# ALERT
# ============================================================

@dataclass(frozen=True)
class Alert:
    """Threshold breach produced by one health check."""

    type: AlertType
    level: AlertLevel
    message: str
    value: float
    threshold: float
    timestamp: datetime

    @property
    def is_critical(self) -> bool:
        return self.level == AlertLevel.CRITICAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "level": self.level.value,
            "message": self.message,
            "value": self.value,
            "threshold": self.threshold,
            "timestamp": self.timestamp.isoformat(),
        }
