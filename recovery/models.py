"""
Recovery - Models.

============================================================
RECOVERY RECORDS
============================================================

- FailureType: closed set of recoverable failure categories
- StrategyResult: what one handler invocation reports
- AttemptResult: one numbered attempt inside a run
- StrategyOutcome: aggregate of a whole run
- RecoveryAttempt: the single history entry recorded per run,
  immutable once recorded

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple


class FailureType(str, Enum):
    """Failure categories with a registered recovery strategy."""

    STORE = "store"
    MEMORY = "memory"
    CPU = "cpu"
    NETWORK = "network"
    HEALTH_CHECK = "healthCheck"

    @classmethod
    def parse(cls, value: Any) -> Optional["FailureType"]:
        """Return the member for ``value``, or None when unknown."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True)
class StrategyResult:
    """Returned by RecoveryStrategy.attempt()."""

    success: bool
    message: str
    details: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AttemptResult:
    attempt_number: int
    success: bool
    message: str
    error: Optional[str] = None
    details: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempt_number": self.attempt_number,
            "success": self.success,
            "message": self.message,
            "error": self.error,
            "details": dict(self.details),
        }


@dataclass(frozen=True)
class StrategyOutcome:
    success: bool
    attempts_used: int
    results: Tuple[AttemptResult, ...] = ()

    @property
    def last_message(self) -> str:
        if not self.results:
            return "No attempts made"
        last = self.results[-1]
        return last.error or last.message


@dataclass(frozen=True)
class RecoveryAttempt:
    """History entry for one recovery run."""

    id: str
    failure_type: FailureType
    strategy_name: str
    attempt_number: int
    max_attempts: int
    success: bool
    detail: str
    timestamp: datetime
    error: Optional[str] = None
    results: Tuple[AttemptResult, ...] = ()

    @property
    def exhausted(self) -> bool:
        return not self.success and self.attempt_number >= self.max_attempts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "failure_type": self.failure_type.value,
            "strategy_name": self.strategy_name,
            "attempt_number": self.attempt_number,
            "max_attempts": self.max_attempts,
            "success": self.success,
            "detail": self.detail,
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
            "results": [r.to_dict() for r in self.results],
        }
