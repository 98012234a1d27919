"""
Security Audit - Configuration.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from core.exceptions import InvalidConfigError
from core.json_log import DEFAULT_MAX_BYTES


@dataclass
class AuditConfig:
    """Audit log configuration."""

    capacity: int = 1000
    """In-memory ring size. The durable log is the source of truth."""

    log_path: Path = Path("logs/audit.log")
    max_log_bytes: int = DEFAULT_MAX_BYTES

    failure_window_minutes: float = 5.0
    failure_risk_threshold: int = 3
    """More than this many recent failures adds to the risk score."""

    brute_force_window_minutes: float = 10.0
    brute_force_threshold: int = 5

    def __post_init__(self) -> None:
        self.log_path = Path(self.log_path)
        if self.capacity <= 0:
            raise InvalidConfigError("capacity", self.capacity, "must be positive")
        if self.brute_force_threshold <= 0:
            raise InvalidConfigError("brute_force_threshold", self.brute_force_threshold, "must be positive")
        if self.failure_window_minutes <= 0 or self.brute_force_window_minutes <= 0:
            raise InvalidConfigError("window_minutes", None, "windows must be positive")

    @classmethod
    def from_env(cls) -> "AuditConfig":
        return cls(
            capacity=int(os.getenv("AUDIT_CAPACITY", "1000")),
            log_path=Path(os.getenv("AUDIT_LOG_PATH", "logs/audit.log")),
            max_log_bytes=int(os.getenv("AUDIT_MAX_LOG_BYTES", str(DEFAULT_MAX_BYTES))),
            failure_window_minutes=float(os.getenv("AUDIT_FAILURE_WINDOW_MINUTES", "5")),
            failure_risk_threshold=int(os.getenv("AUDIT_FAILURE_RISK_THRESHOLD", "3")),
            brute_force_window_minutes=float(os.getenv("AUDIT_BRUTE_FORCE_WINDOW_MINUTES", "10")),
            brute_force_threshold=int(os.getenv("AUDIT_BRUTE_FORCE_THRESHOLD", "5")),
        )
