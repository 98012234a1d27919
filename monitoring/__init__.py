"""
Monitoring Package.

============================================================
PURPOSE
============================================================
Continuous health monitoring and request instrumentation.

PRINCIPLES:
1. SNAPSHOT - one immutable Snapshot per tick, status derived
   from the tick's dependency probes
2. CONTAINED - a failing tick never stops the loop
3. BOUNDED - every history is a fixed-capacity ring
4. GATED - admission rejects traffic only on hard limits

============================================================
COMPONENTS
============================================================
- metrics_source: psutil process metrics
- probes: store connectivity and HTTP self-probe
- health_checker: periodic tick, alerts, recovery triggers
- request_monitor: per-request counters and timers
- admission: status gate and memory guard middlewares
- api: aiohttp routes

============================================================
"""

from .admission import AdmissionDecision, AdmissionGate, ResourceGuard
from .alert_evaluator import AlertEvaluator
from .config import AdmissionConfig, AlertThresholds, MonitoringConfig, RequestMonitorConfig
from .health_checker import HealthChecker
from .metrics_source import MetricsSource, ProcessMetricsSource
from .models import (
    Alert,
    AlertLevel,
    AlertType,
    MemoryStats,
    ProbeResult,
    ProbeStatus,
    RuntimeMetrics,
    Snapshot,
    SystemStatus,
    derive_status,
)
from .probes import (
    ConnectionState,
    DependencyProbe,
    SelfProbe,
    SqlAlchemyStoreConnection,
    StoreConnection,
    StoreProbe,
)
from .request_monitor import RequestMonitor
from .scheduler import ScheduledTask


__all__ = [
    # Models
    "SystemStatus",
    "ProbeStatus",
    "AlertLevel",
    "AlertType",
    "ProbeResult",
    "MemoryStats",
    "RuntimeMetrics",
    "Snapshot",
    "Alert",
    "derive_status",
    # Config
    "AlertThresholds",
    "MonitoringConfig",
    "RequestMonitorConfig",
    "AdmissionConfig",
    # Components
    "MetricsSource",
    "ProcessMetricsSource",
    "ConnectionState",
    "StoreConnection",
    "SqlAlchemyStoreConnection",
    "DependencyProbe",
    "StoreProbe",
    "SelfProbe",
    "ScheduledTask",
    "AlertEvaluator",
    "HealthChecker",
    "RequestMonitor",
    "AdmissionGate",
    "ResourceGuard",
    "AdmissionDecision",
]
