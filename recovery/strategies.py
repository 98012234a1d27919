"""
Recovery - Strategies.

============================================================
RESPONSIBILITY
============================================================
One capability class per failure kind. Each implements a
single ``attempt()`` that performs the mitigation and verifies
it, returning a StrategyResult.

============================================================
STRATEGIES
============================================================
- StoreRecoveryStrategy: reconnect when disconnected;
  success iff the connection ends up connected
- MemoryRecoveryStrategy: GC hint (when configured), clear
  registered caches, re-measure; success iff below the ratio
- CpuRecoveryStrategy: pause background workloads for a
  cool-down, then resume; always reports success
- NetworkRecoveryStrategy: bounded-timeout self-probe;
  success iff it answers 2xx
- HealthCheckRecoveryStrategy: re-run dependency probes;
  success iff none is in error

Exceptions raised by ``attempt()`` are recorded by the
orchestrator as failed attempts.

============================================================
"""

import asyncio
import gc
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Sequence

from monitoring.metrics_source import MetricsSource
from monitoring.models import ProbeStatus
from monitoring.probes import ConnectionState, DependencyProbe, SelfProbe, StoreConnection
from .config import RecoveryPolicy
from .models import FailureType, StrategyResult


logger = logging.getLogger(__name__)


class ClearableCache(Protocol):
    def clear(self) -> None: ...


class BackgroundWorkload(Protocol):
    """Non-critical work that can be paused under cpu pressure."""

    def pause(self) -> None: ...

    def resume(self) -> None: ...


# ============================================================
# BASE
# ============================================================

class RecoveryStrategy(ABC):
    """Bounded-retry procedure bound to one failure type."""

    failure_type: FailureType

    def __init__(self, policy: RecoveryPolicy):
        self._policy = policy

    @property
    def name(self) -> str:
        return self._policy.name

    @property
    def policy(self) -> RecoveryPolicy:
        return self._policy

    @property
    def max_attempts(self) -> int:
        return self._policy.max_attempts

    @property
    def delay_ms(self) -> int:
        return self._policy.delay_ms

    @abstractmethod
    async def attempt(
        self,
        error: Optional[BaseException],
        context: Mapping[str, Any],
        attempt_number: int,
    ) -> StrategyResult:
        """Run one mitigation attempt and verify it."""
        pass

    def describe(self) -> Dict[str, Any]:
        return {
            "failure_type": self.failure_type.value,
            "name": self.name,
            "max_attempts": self.max_attempts,
            "delay_ms": self.delay_ms,
        }


# ============================================================
# STORE
# ============================================================

class StoreRecoveryStrategy(RecoveryStrategy):

    failure_type = FailureType.STORE

    def __init__(self, policy: RecoveryPolicy, connection: StoreConnection):
        super().__init__(policy)
        self._connection = connection

    async def attempt(self, error, context, attempt_number) -> StrategyResult:
        if self._connection.state == ConnectionState.DISCONNECTED:
            logger.info(f"Store disconnected, reconnecting (attempt {attempt_number})")
            await self._connection.connect()

        state = self._connection.state
        if state == ConnectionState.CONNECTED:
            return StrategyResult(True, "Store reconnected", {"connection_state": state.value})
        return StrategyResult(False, f"Store is {state.value}", {"connection_state": state.value})


# ============================================================
# MEMORY
# ============================================================

class MemoryRecoveryStrategy(RecoveryStrategy):
    """
    Memory pressure mitigation.

    Success is judged only on the post-mitigation ratio, whether
    or not a GC hint is configured.
    """

    failure_type = FailureType.MEMORY

    def __init__(
        self,
        policy: RecoveryPolicy,
        metrics_source: MetricsSource,
        success_percent: float = 80.0,
        gc_hint: Optional[Callable[[], Any]] = gc.collect,
        caches: Sequence[ClearableCache] = (),
    ):
        super().__init__(policy)
        self._metrics_source = metrics_source
        self._success_percent = success_percent
        self._gc_hint = gc_hint
        self._caches = list(caches)

    async def attempt(self, error, context, attempt_number) -> StrategyResult:
        collected = None
        if self._gc_hint is not None:
            collected = self._gc_hint()

        for cache in self._caches:
            cache.clear()

        percent = self._metrics_source.memory_percent()
        details = {
            "memory_percent": round(percent, 2),
            "target_percent": self._success_percent,
            "gc_collected": collected,
            "caches_cleared": len(self._caches),
        }
        if percent < self._success_percent:
            return StrategyResult(True, f"Memory usage reduced to {percent:.2f}%", details)
        return StrategyResult(False, f"Memory usage still high: {percent:.2f}%", details)


# ============================================================
# CPU
# ============================================================

class CpuRecoveryStrategy(RecoveryStrategy):
    """Best-effort throttle. Not independently verified."""

    failure_type = FailureType.CPU

    def __init__(
        self,
        policy: RecoveryPolicy,
        cooldown_ms: int = 2000,
        workloads: Sequence[BackgroundWorkload] = (),
    ):
        super().__init__(policy)
        self._cooldown_ms = cooldown_ms
        self._workloads = list(workloads)

    async def attempt(self, error, context, attempt_number) -> StrategyResult:
        for workload in self._workloads:
            workload.pause()
        try:
            await asyncio.sleep(self._cooldown_ms / 1000.0)
        finally:
            for workload in self._workloads:
                workload.resume()

        return StrategyResult(
            True,
            "CPU throttling applied",
            {"cooldown_ms": self._cooldown_ms, "workloads_paused": len(self._workloads)},
        )


# ============================================================
# NETWORK
# ============================================================

class NetworkRecoveryStrategy(RecoveryStrategy):

    failure_type = FailureType.NETWORK

    def __init__(self, policy: RecoveryPolicy, probe: SelfProbe):
        super().__init__(policy)
        self._probe = probe

    async def attempt(self, error, context, attempt_number) -> StrategyResult:
        result = await self._probe.check()
        details = result.to_dict()
        if result.status == ProbeStatus.HEALTHY:
            return StrategyResult(True, "Network connectivity restored", details)
        return StrategyResult(False, f"Network still unreachable: {result.error}", details)


# ============================================================
# HEALTH CHECK
# ============================================================

class HealthCheckRecoveryStrategy(RecoveryStrategy):
    """Recovery after a health-check tick raised."""

    failure_type = FailureType.HEALTH_CHECK

    def __init__(self, policy: RecoveryPolicy, probes: Sequence[DependencyProbe]):
        super().__init__(policy)
        self._probes = list(probes)

    async def attempt(self, error, context, attempt_number) -> StrategyResult:
        results = await asyncio.gather(*(probe.check() for probe in self._probes))
        failing = [r.name for r in results if r.is_error]
        details = {"probes": {r.name: r.status.value for r in results}}
        if failing:
            return StrategyResult(False, f"Dependencies still failing: {', '.join(failing)}", details)
        return StrategyResult(True, "Dependencies respond", details)
