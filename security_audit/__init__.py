"""
Security Audit Package.

Append-only security event recording with heuristic risk
scoring and pattern detectors.

Components:
- models: AuditEvent, AuditLevel, RiskLevel
- scoring: additive risk scoring
- detectors: suspicious pattern, brute force, unauthorized access
- audit_log: ring buffer + durable JSON-lines log
- middleware: aiohttp request auditing
"""

from .audit_log import AuditLog
from .config import AuditConfig
from .detectors import (
    BruteForceDetector,
    EventDetector,
    SuspiciousPatternDetector,
    UnauthorizedAccessDetector,
    default_detectors,
)
from .middleware import create_audit_middleware
from .models import AuditEvent, AuditLevel, RiskLevel
from .scoring import calculate_risk_level, classify_score, risk_score


__all__ = [
    "AuditLog",
    "AuditConfig",
    "AuditEvent",
    "AuditLevel",
    "RiskLevel",
    "EventDetector",
    "SuspiciousPatternDetector",
    "BruteForceDetector",
    "UnauthorizedAccessDetector",
    "default_detectors",
    "create_audit_middleware",
    "calculate_risk_level",
    "classify_score",
    "risk_score",
]
