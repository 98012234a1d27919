"""
Monitoring - Configuration.

============================================================
CONFIGURABLE MONITORING
============================================================

- Alert thresholds (mutable at runtime through the admin API)
- Health-check and log-rotation intervals
- Critical ceilings that escalate alerts to recovery
- Request instrumentation and admission gating

Configuration can be loaded from:
- Default values
- Environment variables (a .env file is honoured by the
  service bootstrap through python-dotenv)

============================================================
"""

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple
import logging

from core.exceptions import InvalidConfigError
from core.json_log import DEFAULT_MAX_BYTES


logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).lower() in ("1", "true", "yes", "on")


def _env_tuple(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if not raw:
        return default
    return tuple(part.strip() for part in raw.split(",") if part.strip())


# =============================================================
# ALERT THRESHOLDS
# =============================================================


@dataclass
class AlertThresholds:
    """
    Warning thresholds read by every health check.

    Mutated only through HealthChecker.set_alert_thresholds,
    which validates the update first.
    """
    memory_percent: float = 80.0
    cpu_percent: float = 70.0
    response_time_ms: float = 2000.0
    error_rate_percent: float = 5.0

    def apply(self, changes: Mapping[str, float]) -> Dict[str, float]:
        """Merge already-validated changes, returning the new values."""
        for key, value in changes.items():
            if not hasattr(self, key):
                raise KeyError(key)
            setattr(self, key, float(value))
        return self.to_dict()

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    @classmethod
    def from_env(cls) -> "AlertThresholds":
        return cls(
            memory_percent=float(os.getenv("ALERT_MEMORY_PERCENT", "80")),
            cpu_percent=float(os.getenv("ALERT_CPU_PERCENT", "70")),
            response_time_ms=float(os.getenv("ALERT_RESPONSE_TIME_MS", "2000")),
            error_rate_percent=float(os.getenv("ALERT_ERROR_RATE_PERCENT", "5")),
        )


# =============================================================
# HEALTH CHECKER
# =============================================================


@dataclass
class MonitoringConfig:
    """Health checker configuration."""

    check_interval_seconds: float = 30.0
    """Interval between health-check ticks."""

    rotation_interval_seconds: float = 3600.0
    """Interval between durable-log rotation checks."""

    log_path: Path = Path("logs/monitoring.log")
    max_log_bytes: int = DEFAULT_MAX_BYTES

    critical_memory_percent: float = 95.0
    """Memory breaches at or above this are critical and trigger recovery."""

    critical_cpu_percent: float = 95.0

    auto_recovery: bool = True

    self_probe_url: Optional[str] = "http://localhost:4000/health/live"
    self_probe_timeout_seconds: float = 5.0

    environment: str = "development"

    thresholds: AlertThresholds = field(default_factory=AlertThresholds)

    def __post_init__(self) -> None:
        self.log_path = Path(self.log_path)
        if self.check_interval_seconds <= 0:
            raise InvalidConfigError("check_interval_seconds", self.check_interval_seconds, "must be positive")
        if self.rotation_interval_seconds <= 0:
            raise InvalidConfigError("rotation_interval_seconds", self.rotation_interval_seconds, "must be positive")
        if self.max_log_bytes <= 0:
            raise InvalidConfigError("max_log_bytes", self.max_log_bytes, "must be positive")
        if self.self_probe_timeout_seconds <= 0:
            raise InvalidConfigError("self_probe_timeout_seconds", self.self_probe_timeout_seconds, "must be positive")
        for name in ("critical_memory_percent", "critical_cpu_percent"):
            value = getattr(self, name)
            if not 0 < value <= 100:
                raise InvalidConfigError(name, value, "must be within (0, 100]")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @classmethod
    def from_env(cls) -> "MonitoringConfig":
        """Load configuration from environment variables."""
        return cls(
            check_interval_seconds=float(os.getenv("MONITOR_CHECK_INTERVAL_SECONDS", "30")),
            rotation_interval_seconds=float(os.getenv("MONITOR_ROTATION_INTERVAL_SECONDS", "3600")),
            log_path=Path(os.getenv("MONITOR_LOG_PATH", "logs/monitoring.log")),
            max_log_bytes=int(os.getenv("MONITOR_MAX_LOG_BYTES", str(DEFAULT_MAX_BYTES))),
            critical_memory_percent=float(os.getenv("MONITOR_CRITICAL_MEMORY_PERCENT", "95")),
            critical_cpu_percent=float(os.getenv("MONITOR_CRITICAL_CPU_PERCENT", "95")),
            auto_recovery=_env_bool("MONITOR_AUTO_RECOVERY", True),
            self_probe_url=os.getenv("MONITOR_SELF_PROBE_URL", "http://localhost:4000/health/live") or None,
            self_probe_timeout_seconds=float(os.getenv("MONITOR_SELF_PROBE_TIMEOUT_SECONDS", "5")),
            environment=os.getenv("APP_ENV", "development"),
            thresholds=AlertThresholds.from_env(),
        )


# =============================================================
# REQUEST MONITOR
# =============================================================


@dataclass
class RequestMonitorConfig:
    response_time_history: int = 100
    slow_request_ms: float = 1000.0
    production: bool = False

    def __post_init__(self) -> None:
        if self.response_time_history <= 0:
            raise InvalidConfigError("response_time_history", self.response_time_history, "must be positive")

    @classmethod
    def from_env(cls) -> "RequestMonitorConfig":
        return cls(
            response_time_history=int(os.getenv("REQUEST_RESPONSE_TIME_HISTORY", "100")),
            slow_request_ms=float(os.getenv("REQUEST_SLOW_MS", "1000")),
            production=os.getenv("APP_ENV", "development").lower() == "production",
        )


# =============================================================
# ADMISSION
# =============================================================


@dataclass
class AdmissionConfig:
    """Admission gate and resource guard configuration."""

    gated_prefixes: Tuple[str, ...] = ("/api/events", "/api/auth", "/api/payments")
    retry_after_seconds: int = 30

    memory_ceiling_percent: float = 95.0
    resource_allow_prefixes: Tuple[str, ...] = ("/api/auth/login", "/api/health", "/health")
    resource_retry_after_seconds: int = 60

    def __post_init__(self) -> None:
        if not 0 < self.memory_ceiling_percent <= 100:
            raise InvalidConfigError("memory_ceiling_percent", self.memory_ceiling_percent, "must be within (0, 100]")

    @classmethod
    def from_env(cls) -> "AdmissionConfig":
        defaults = cls()
        return cls(
            gated_prefixes=_env_tuple("ADMISSION_GATED_PREFIXES", defaults.gated_prefixes),
            retry_after_seconds=int(os.getenv("ADMISSION_RETRY_AFTER_SECONDS", "30")),
            memory_ceiling_percent=float(os.getenv("ADMISSION_MEMORY_CEILING_PERCENT", "95")),
            resource_allow_prefixes=_env_tuple("ADMISSION_ALLOW_PREFIXES", defaults.resource_allow_prefixes),
            resource_retry_after_seconds=int(os.getenv("ADMISSION_RESOURCE_RETRY_AFTER_SECONDS", "60")),
        )
