"""
Recovery Package.

Bounded automatic recovery of failure categories.

Components:
- models: FailureType and recovery records
- config: per-type retry policies
- strategies: one capability class per failure kind
- orchestrator: mutually exclusive recovery runner
"""

from .config import RecoveryConfig, RecoveryPolicy
from .models import (
    AttemptResult,
    FailureType,
    RecoveryAttempt,
    StrategyOutcome,
    StrategyResult,
)
from .orchestrator import RecoveryOrchestrator
from .strategies import (
    BackgroundWorkload,
    ClearableCache,
    CpuRecoveryStrategy,
    HealthCheckRecoveryStrategy,
    MemoryRecoveryStrategy,
    NetworkRecoveryStrategy,
    RecoveryStrategy,
    StoreRecoveryStrategy,
)


__all__ = [
    "RecoveryConfig",
    "RecoveryPolicy",
    "FailureType",
    "AttemptResult",
    "RecoveryAttempt",
    "StrategyOutcome",
    "StrategyResult",
    "RecoveryOrchestrator",
    "RecoveryStrategy",
    "StoreRecoveryStrategy",
    "MemoryRecoveryStrategy",
    "CpuRecoveryStrategy",
    "NetworkRecoveryStrategy",
    "HealthCheckRecoveryStrategy",
    "BackgroundWorkload",
    "ClearableCache",
]
