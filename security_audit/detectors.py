"""
Security Audit - Detectors.

============================================================
RESPONSIBILITY
============================================================
Inspect one logged event and propose follow-up events.

- SuspiciousPatternDetector: dangerous content in event details
- BruteForceDetector: repeated login failures from one ip
- UnauthorizedAccessDetector: 401 / 403 responses

Detectors return new, unlogged AuditEvents whose
``source_event_id`` is the triggering event's id. They never
touch the log themselves.

============================================================
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Pattern, Sequence

from .models import AuditEvent, AuditLevel, RiskLevel


logger = logging.getLogger(__name__)


RecentFailures = Callable[[str, float], int]


@dataclass(frozen=True)
class SuspiciousPattern:
    name: str
    regex: Pattern
    risk: RiskLevel


DANGEROUS_PATTERNS = (
    SuspiciousPattern("admin_probe", re.compile(r"/admin", re.IGNORECASE), RiskLevel.HIGH),
    SuspiciousPattern("path_traversal", re.compile(r"\.\./"), RiskLevel.CRITICAL),
    SuspiciousPattern("script_injection", re.compile(r"<script", re.IGNORECASE), RiskLevel.CRITICAL),
    SuspiciousPattern("sql_union_select", re.compile(r"union.*select", re.IGNORECASE), RiskLevel.CRITICAL),
    SuspiciousPattern("sql_drop_table", re.compile(r";\s*drop\s+table", re.IGNORECASE), RiskLevel.CRITICAL),
)


class EventDetector(ABC):
    """One heuristic over logged events."""

    name: str = "detector"

    @abstractmethod
    def inspect(self, event: AuditEvent, recent_failures: RecentFailures) -> List[AuditEvent]:
        pass

    @staticmethod
    def _derived(event: AuditEvent, **fields) -> AuditEvent:
        return AuditEvent(
            ip=event.ip,
            user_agent=event.user_agent,
            path=event.path,
            method=event.method,
            actor_id=event.actor_id,
            source_event_id=event.id,
            **fields,
        )


class SuspiciousPatternDetector(EventDetector):

    name = "suspicious_pattern"

    def __init__(self, patterns: Sequence[SuspiciousPattern] = DANGEROUS_PATTERNS):
        self._patterns = tuple(patterns)

    def inspect(self, event, recent_failures) -> List[AuditEvent]:
        payload = json.dumps(dict(event.details), default=str)
        found: List[AuditEvent] = []
        for pattern in self._patterns:
            if not pattern.regex.search(payload):
                continue
            found.append(self._derived(
                event,
                action="suspicious_pattern_detected",
                level=AuditLevel.WARNING,
                category="security",
                details={
                    "pattern": pattern.name,
                    "regex": pattern.regex.pattern,
                    "risk": pattern.risk.value,
                    "original_event": event.id,
                },
            ))
        return found


class BruteForceDetector(EventDetector):

    name = "brute_force"

    def __init__(self, window_minutes: float = 10.0, threshold: int = 5):
        self._window_minutes = window_minutes
        self._threshold = threshold

    def inspect(self, event, recent_failures) -> List[AuditEvent]:
        if event.action != "login_failed":
            return []

        failures = recent_failures(event.ip, self._window_minutes)
        if failures < self._threshold:
            return []

        return [self._derived(
            event,
            action="brute_force_attack_detected",
            level=AuditLevel.CRITICAL,
            category="security",
            details={
                "failure_count": failures,
                "time_window_minutes": self._window_minutes,
                "triggering_event_id": event.id,
            },
        )]


class UnauthorizedAccessDetector(EventDetector):

    name = "unauthorized_access"

    def inspect(self, event, recent_failures) -> List[AuditEvent]:
        if event.status_code not in (401, 403):
            return []
        return [self._derived(
            event,
            action="unauthorized_access_attempt",
            level=AuditLevel.WARNING,
            category="security",
            details={"status_code": event.status_code, "path": event.path},
        )]


def default_detectors(window_minutes: float = 10.0, threshold: int = 5) -> List[EventDetector]:
    return [
        SuspiciousPatternDetector(),
        BruteForceDetector(window_minutes, threshold),
        UnauthorizedAccessDetector(),
    ]
