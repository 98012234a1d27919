"""
Security Audit - Models.

AuditEvent is appended then immutable. Detectors never mutate
an event; they emit new events whose ``source_event_id`` points
at the event that triggered them.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from core.clock import from_iso8601


class AuditLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class RiskLevel(str, Enum):
    """Heuristic severity of a security-relevant event."""

    MINIMAL = "minimal"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RISK_ORDER.index(self)


_RISK_ORDER = [RiskLevel.MINIMAL, RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL]


@dataclass(frozen=True)
class AuditEvent:
    """One security-relevant event."""

    action: str
    level: AuditLevel = AuditLevel.INFO
    category: str = "general"
    actor_id: Optional[str] = None
    ip: str = "unknown"
    user_agent: str = "unknown"
    path: str = "unknown"
    method: str = "unknown"
    status_code: int = 200
    details: Mapping[str, Any] = field(default_factory=dict)
    id: Optional[str] = None
    timestamp: Optional[datetime] = None
    risk_level: Optional[RiskLevel] = None
    source_event_id: Optional[str] = None

    def __post_init__(self) -> None:
        # Accept plain strings from callers
        if not isinstance(self.level, AuditLevel):
            object.__setattr__(self, "level", AuditLevel(str(self.level).lower()))
        if self.risk_level is not None and not isinstance(self.risk_level, RiskLevel):
            object.__setattr__(self, "risk_level", RiskLevel(str(self.risk_level).lower()))
        object.__setattr__(self, "status_code", int(self.status_code))

    @property
    def is_derived(self) -> bool:
        """True for events synthesized by a detector."""
        return self.source_event_id is not None

    def with_updates(self, **changes: Any) -> "AuditEvent":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "level": self.level.value,
            "category": self.category,
            "action": self.action,
            "actor_id": self.actor_id,
            "ip": self.ip,
            "user_agent": self.user_agent,
            "path": self.path,
            "method": self.method,
            "status_code": self.status_code,
            "details": dict(self.details),
            "risk_level": self.risk_level.value if self.risk_level else None,
            "source_event_id": self.source_event_id,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AuditEvent":
        """Build an event from a mapping. Missing fields take defaults."""
        if "action" not in data:
            raise ValueError("Audit event requires an action")

        kwargs: Dict[str, Any] = {"action": data["action"]}
        for key in ("level", "category", "actor_id", "ip", "user_agent", "path",
                    "method", "status_code", "id", "risk_level", "source_event_id"):
            if data.get(key) is not None:
                kwargs[key] = data[key]
        if data.get("details") is not None:
            kwargs["details"] = dict(data["details"])

        timestamp = data.get("timestamp")
        if isinstance(timestamp, str):
            timestamp = from_iso8601(timestamp)
        if timestamp is not None:
            kwargs["timestamp"] = timestamp

        return cls(**kwargs)
