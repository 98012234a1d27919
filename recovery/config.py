"""
Recovery - Configuration.

Per-failure-type retry policies and strategy tuning. Defaults
match the production policy table; every value can be
overridden through RECOVERY_* environment variables.
"""

import os
from dataclasses import dataclass, field
from typing import Dict
import logging

from core.exceptions import InvalidConfigError
from .models import FailureType


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecoveryPolicy:
    """Bounded-retry policy of one strategy."""

    name: str
    max_attempts: int
    delay_ms: int

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise InvalidConfigError(f"{self.name}.max_attempts", self.max_attempts, "must be at least 1")
        if self.delay_ms < 0:
            raise InvalidConfigError(f"{self.name}.delay_ms", self.delay_ms, "must not be negative")

    def backoff_seconds(self, attempt_number: int) -> float:
        """Linear backoff: delay x attempt."""
        return self.delay_ms * attempt_number / 1000.0


def _default_policies() -> Dict[FailureType, RecoveryPolicy]:
    return {
        FailureType.STORE: RecoveryPolicy("Store Recovery", 3, 2000),
        FailureType.MEMORY: RecoveryPolicy("Memory Recovery", 2, 1000),
        FailureType.CPU: RecoveryPolicy("CPU Recovery", 2, 1000),
        FailureType.NETWORK: RecoveryPolicy("Network Recovery", 5, 3000),
        FailureType.HEALTH_CHECK: RecoveryPolicy("Health Check Recovery", 3, 5000),
    }


@dataclass
class RecoveryConfig:
    """Recovery orchestrator configuration."""

    policies: Dict[FailureType, RecoveryPolicy] = field(default_factory=_default_policies)

    history_capacity: int = 50

    memory_success_percent: float = 80.0
    """Memory recovery succeeds only below this ratio."""

    cpu_cooldown_ms: int = 2000
    """How long background workloads stay paused."""

    def __post_init__(self) -> None:
        if self.history_capacity <= 0:
            raise InvalidConfigError("history_capacity", self.history_capacity, "must be positive")
        if not 0 < self.memory_success_percent <= 100:
            raise InvalidConfigError("memory_success_percent", self.memory_success_percent, "must be within (0, 100]")
        if self.cpu_cooldown_ms < 0:
            raise InvalidConfigError("cpu_cooldown_ms", self.cpu_cooldown_ms, "must not be negative")

    def policy_for(self, failure_type: FailureType) -> RecoveryPolicy:
        return self.policies[failure_type]

    @classmethod
    def from_env(cls) -> "RecoveryConfig":
        """
        Load configuration from environment variables.

        Policies are overridden per type, e.g.
        RECOVERY_STORE_MAX_ATTEMPTS=5, RECOVERY_NETWORK_DELAY_MS=1000.
        """
        policies = _default_policies()
        for failure_type, policy in list(policies.items()):
            prefix = f"RECOVERY_{failure_type.name}"
            policies[failure_type] = RecoveryPolicy(
                name=policy.name,
                max_attempts=int(os.getenv(f"{prefix}_MAX_ATTEMPTS", str(policy.max_attempts))),
                delay_ms=int(os.getenv(f"{prefix}_DELAY_MS", str(policy.delay_ms))),
            )

        return cls(
            policies=policies,
            history_capacity=int(os.getenv("RECOVERY_HISTORY_CAPACITY", "50")),
            memory_success_percent=float(os.getenv("RECOVERY_MEMORY_SUCCESS_PERCENT", "80")),
            cpu_cooldown_ms=int(os.getenv("RECOVERY_CPU_COOLDOWN_MS", "2000")),
        )
