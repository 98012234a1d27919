"""
Service - Resilience Service.

============================================================
RESPONSIBILITY
============================================================
Explicitly constructed owner of every resilience component.

- Built once by the process bootstrap from a ServiceConfig
- Passed by reference to whatever needs it (web app, tests)
- Explicit lifecycle: initialize() -> start() -> stop()

No component is looked up through a module-level singleton.

============================================================
WIRING
============================================================
    MetricsSource ─┐
    StoreProbe ────┼─> HealthChecker ─> RecoveryOrchestrator
    SelfProbe ─────┘        │
    RequestMonitor ─────────┘
    AuditLog (own journal, rotated by HealthChecker)
    AdmissionGate <- HealthChecker.snapshot
    ResourceGuard <- MetricsSource

============================================================
"""

import logging
from typing import List, Optional

from core.clock import ClockProtocol, SystemClock
from core.exceptions import StoreUnavailableError
from core.json_log import JsonLineLog
from monitoring.admission import AdmissionGate, ResourceGuard
from monitoring.health_checker import HealthChecker
from monitoring.metrics_source import MetricsSource, ProcessMetricsSource
from monitoring.probes import (
    DependencyProbe,
    SelfProbe,
    SqlAlchemyStoreConnection,
    StoreConnection,
    StoreProbe,
)
from monitoring.request_monitor import RequestMonitor
from recovery.models import FailureType
from recovery.orchestrator import RecoveryOrchestrator
from recovery.strategies import (
    CpuRecoveryStrategy,
    HealthCheckRecoveryStrategy,
    MemoryRecoveryStrategy,
    NetworkRecoveryStrategy,
    RecoveryStrategy,
    StoreRecoveryStrategy,
)
from security_audit.audit_log import AuditLog
from security_audit.middleware import create_audit_middleware
from .config import ServiceConfig


logger = logging.getLogger(__name__)


class ResilienceService:
    """
    Health monitoring, recovery and security audit for one process.

    Usage:
        service = ResilienceService(ServiceConfig.from_env())
        await service.start()
        ...
        await service.stop()
    """

    def __init__(
        self,
        config: ServiceConfig,
        clock: Optional[ClockProtocol] = None,
        metrics_source: Optional[MetricsSource] = None,
        store_connection: Optional[StoreConnection] = None,
    ):
        self.config = config
        self.clock = clock or SystemClock()
        self.metrics_source = metrics_source or ProcessMetricsSource()

        self.monitoring_journal = JsonLineLog(
            config.monitoring.log_path, "monitoring", config.monitoring.max_log_bytes, self.clock,
        )
        self.audit_journal = JsonLineLog(
            config.audit.log_path, "audit", config.audit.max_log_bytes, self.clock,
        )

        if store_connection is None and config.database_url:
            store_connection = SqlAlchemyStoreConnection(config.database_url)
        self.store_connection = store_connection

        monitoring_config = config.monitoring
        self.self_probe: Optional[SelfProbe] = None
        if monitoring_config.self_probe_url:
            self.self_probe = SelfProbe(
                monitoring_config.self_probe_url,
                monitoring_config.self_probe_timeout_seconds,
            )

        self._probes: List[DependencyProbe] = []
        if self.store_connection is not None:
            self._probes.append(StoreProbe(self.store_connection))
        if self.self_probe is not None:
            self._probes.append(self.self_probe)

        self.request_monitor = RequestMonitor(config.requests, journal=self.monitoring_journal, clock=self.clock)
        self.audit_log = AuditLog(config.audit, journal=self.audit_journal, clock=self.clock)
        self.recovery = RecoveryOrchestrator(config.recovery, clock=self.clock, journal=self.monitoring_journal)

        self.health_checker = HealthChecker(
            monitoring_config,
            self.metrics_source,
            probes=self.probes,
            recovery=self.recovery,
            request_monitor=self.request_monitor,
            journal=self.monitoring_journal,
            rotating_logs=[self.audit_journal],
            clock=self.clock,
        )

        self.admission_gate = AdmissionGate(config.admission, lambda: self.health_checker.snapshot)
        self.resource_guard = ResourceGuard(config.admission, self.metrics_source)

        self._initialized = False

    # --------------------------------------------------------
    # WIRING
    # --------------------------------------------------------

    @property
    def probes(self) -> List[DependencyProbe]:
        return list(self._probes)

    def build_strategies(self) -> List[RecoveryStrategy]:
        """One strategy per failure type whose collaborator is available."""
        recovery_config = self.config.recovery
        policy = recovery_config.policy_for

        strategies: List[RecoveryStrategy] = [
            MemoryRecoveryStrategy(
                policy(FailureType.MEMORY),
                self.metrics_source,
                success_percent=recovery_config.memory_success_percent,
            ),
            CpuRecoveryStrategy(
                policy(FailureType.CPU),
                cooldown_ms=recovery_config.cpu_cooldown_ms,
                workloads=self.health_checker.background_workloads,
            ),
            HealthCheckRecoveryStrategy(policy(FailureType.HEALTH_CHECK), self.probes),
        ]
        if self.store_connection is not None:
            strategies.append(StoreRecoveryStrategy(policy(FailureType.STORE), self.store_connection))
        if self.self_probe is not None:
            strategies.append(NetworkRecoveryStrategy(policy(FailureType.NETWORK), self.self_probe))
        return strategies

    def middlewares(self) -> list:
        """aiohttp middlewares, outermost first."""
        return [
            self.request_monitor.middleware,
            self.resource_guard.middleware,
            self.admission_gate.middleware,
            create_audit_middleware(self.audit_log),
        ]

    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------

    async def initialize(self) -> None:
        if self._initialized:
            return

        self.recovery.initialize(self.build_strategies())

        if self.store_connection is not None:
            try:
                await self.store_connection.connect()
            except StoreUnavailableError as e:
                # Left to the health checker and store recovery
                logger.warning(f"Store unavailable at startup: {e}")

        for warning in self.config.validate():
            logger.warning(warning)

        self._initialized = True
        logger.info("Resilience service initialized")

    async def start(self) -> None:
        await self.initialize()
        await self.health_checker.start()

    async def stop(self) -> None:
        await self.health_checker.stop()

        finished = await self.health_checker.wait_for_recoveries(self.config.shutdown_timeout_seconds)
        if not finished:
            logger.warning("Shutting down with recovery still in progress")

        if self.self_probe is not None:
            await self.self_probe.close()
        close = getattr(self.store_connection, "close", None)
        if close is not None:
            await close()
        logger.info("Resilience service stopped")
