"""
Service - Configuration.

============================================================
RESPONSIBILITY
============================================================
Composes every subsystem configuration into one object owned
by the process bootstrap.

Loaded from environment variables; ``load_env`` reads a .env
file first through python-dotenv.

============================================================
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union
import logging

from dotenv import load_dotenv

from core.exceptions import InvalidConfigError
from monitoring.config import AdmissionConfig, MonitoringConfig, RequestMonitorConfig
from recovery.config import RecoveryConfig
from security_audit.config import AuditConfig


logger = logging.getLogger(__name__)


def load_env(env_file: Optional[Union[str, Path]] = None) -> bool:
    """Load a .env file into the process environment."""
    loaded = load_dotenv(dotenv_path=env_file) if env_file else load_dotenv()
    if loaded:
        logger.debug(f"Loaded environment from {env_file or '.env'}")
    return loaded


@dataclass
class ServiceConfig:
    """Top-level service configuration."""

    host: str = "0.0.0.0"
    port: int = 4000

    database_url: Optional[str] = None
    """SQLAlchemy URL of the persistent store. No store probe when unset."""

    admin_token: Optional[str] = None
    """Token for administrative routes. Admin routes answer 403 when unset."""

    log_level: str = "INFO"
    log_format: str = "json"
    version: str = "1.0.0"

    shutdown_timeout_seconds: float = 30.0
    """How long stop() waits for in-flight recoveries."""

    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    requests: RequestMonitorConfig = field(default_factory=RequestMonitorConfig)
    admission: AdmissionConfig = field(default_factory=AdmissionConfig)
    recovery: RecoveryConfig = field(default_factory=RecoveryConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)

    def __post_init__(self) -> None:
        if not 0 < self.port < 65536:
            raise InvalidConfigError("port", self.port, "must be within 1-65535")
        if self.log_format not in ("json", "text"):
            raise InvalidConfigError("log_format", self.log_format, "must be json or text")

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        """Load configuration from environment variables."""
        return cls(
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "4000")),
            database_url=os.getenv("DATABASE_URL") or None,
            admin_token=os.getenv("ADMIN_TOKEN") or None,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
            version=os.getenv("APP_VERSION", "1.0.0"),
            shutdown_timeout_seconds=float(os.getenv("SHUTDOWN_TIMEOUT_SECONDS", "30")),
            monitoring=MonitoringConfig.from_env(),
            requests=RequestMonitorConfig.from_env(),
            admission=AdmissionConfig.from_env(),
            recovery=RecoveryConfig.from_env(),
            audit=AuditConfig.from_env(),
        )

    def validate(self) -> List[str]:
        """Validate configuration, return list of warnings."""
        warnings = []
        if not self.admin_token:
            warnings.append("ADMIN_TOKEN is not set, administrative routes are disabled")
        if not self.database_url:
            warnings.append("DATABASE_URL is not set, store probe is disabled")
        return warnings
