"""
Security Audit - Audit Log.

============================================================
RESPONSIBILITY
============================================================
Append-only recorder of security-relevant events.

- Assigns id / timestamp, scores risk, appends to the ring
- Appends one JSON line per event to the durable audit log
- Runs detectors and logs what they emit
- Read-only filtering and aggregation over the ring

============================================================
DESIGN PRINCIPLES
============================================================
- The durable log is the source of truth; the ring is a cache
- Write failures are logged, never raised into the caller's
  request path
- Detector output is logged but not analyzed again

============================================================
"""

import logging
import secrets
from collections import Counter
from datetime import timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from core.clock import ClockProtocol, SystemClock
from core.json_log import JsonLineLog
from core.ring_buffer import RingBuffer
from .config import AuditConfig
from .detectors import EventDetector, default_detectors
from .models import AuditEvent, AuditLevel, RiskLevel
from .scoring import calculate_risk_level


logger = logging.getLogger(__name__)


class AuditLog:
    """
    In-memory audit ring plus durable JSON-lines log.

    Usage:
        audit = AuditLog(AuditConfig(), journal=JsonLineLog("logs/audit.log", "audit"))
        audit.log_event({"action": "login_failed", "ip": "1.2.3.4", "category": "authentication"})
    """

    def __init__(
        self,
        config: Optional[AuditConfig] = None,
        journal: Optional[JsonLineLog] = None,
        clock: Optional[ClockProtocol] = None,
        detectors: Optional[Sequence[EventDetector]] = None,
    ):
        self._config = config or AuditConfig()
        self._journal = journal
        self._clock = clock or SystemClock()
        self._events: RingBuffer[AuditEvent] = RingBuffer(self._config.capacity)
        if detectors is None:
            detectors = default_detectors(
                self._config.brute_force_window_minutes,
                self._config.brute_force_threshold,
            )
        self._detectors = list(detectors)
        self._write_failures = 0

    @property
    def journal(self) -> Optional[JsonLineLog]:
        return self._journal

    @property
    def write_failures(self) -> int:
        return self._write_failures

    def __len__(self) -> int:
        return len(self._events)

    # --------------------------------------------------------
    # WRITE
    # --------------------------------------------------------

    def log_event(self, event: Union[AuditEvent, Mapping[str, Any]]) -> AuditEvent:
        """Record an event and return it enriched with id, timestamp and risk."""
        if not isinstance(event, AuditEvent):
            event = AuditEvent.from_dict(event)

        enriched = event.with_updates(
            id=event.id or self._generate_event_id(),
            timestamp=event.timestamp or self._clock.now(),
        )
        # Score before appending so the event does not count itself
        enriched = enriched.with_updates(risk_level=self.calculate_risk_level(enriched))

        self._events.append(enriched)
        self._write(enriched)

        if not enriched.is_derived:
            self.analyze_event(enriched)

        return enriched

    def _write(self, event: AuditEvent) -> None:
        if self._journal is None:
            return
        try:
            self._journal.append(event.to_dict())
        except (OSError, TypeError, ValueError) as e:
            self._write_failures += 1
            logger.error(f"Failed to write audit log entry {event.id}: {e}")

    # --------------------------------------------------------
    # SCORING
    # --------------------------------------------------------

    def calculate_risk_level(self, event: AuditEvent) -> RiskLevel:
        recent = self.get_recent_failures(event.ip, self._config.failure_window_minutes)
        return calculate_risk_level(event, recent, self._config.failure_risk_threshold)

    def get_recent_failures(self, ip: str, minutes: float = 5) -> int:
        """login_failed events from ``ip`` in the trailing window (ring only)."""
        cutoff = self._clock.since(timedelta(minutes=minutes))
        return len(self._events.filter(
            lambda e: e.action == "login_failed" and e.ip == ip and e.timestamp > cutoff
        ))

    # --------------------------------------------------------
    # ANALYSIS
    # --------------------------------------------------------

    def analyze_event(self, event: AuditEvent) -> List[AuditEvent]:
        """Run every detector and log the events they emit."""
        emitted: List[AuditEvent] = []
        for detector in self._detectors:
            try:
                proposals = detector.inspect(event, self.get_recent_failures)
            except Exception as e:
                logger.error(f"Detector {detector.name} failed on {event.id}: {e}")
                continue

            for proposal in proposals:
                logged = self.log_event(proposal)
                emitted.append(logged)
                log_fn = logger.critical if logged.level == AuditLevel.CRITICAL else logger.warning
                log_fn(f"Security event {logged.action} from {logged.ip} (source {event.id})")
        return emitted

    # --------------------------------------------------------
    # READS
    # --------------------------------------------------------

    def get_events(
        self,
        level: Optional[str] = None,
        category: Optional[str] = None,
        actor_id: Optional[str] = None,
        ip: Optional[str] = None,
        risk_level: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[AuditEvent]:
        """Filtered events, newest first."""
        level_value = AuditLevel(level).value if level else None
        risk_value = RiskLevel(risk_level).value if risk_level else None

        events = [
            e for e in self._events.recent()
            if (level_value is None or e.level.value == level_value)
            and (category is None or e.category == category)
            and (actor_id is None or e.actor_id == actor_id)
            and (ip is None or e.ip == ip)
            and (risk_value is None or (e.risk_level and e.risk_level.value == risk_value))
        ]
        if limit is not None:
            events = events[:limit]
        return events

    def get_audit_stats(self) -> Dict[str, Any]:
        events = self._events.snapshot()
        day_ago = self._clock.since(timedelta(hours=24))
        critical = [e for e in reversed(events) if e.risk_level == RiskLevel.CRITICAL][:10]

        return {
            "total": len(events),
            "last_24h": sum(1 for e in events if e.timestamp > day_ago),
            "by_level": dict(Counter(e.level.value for e in events)),
            "by_category": dict(Counter(e.category for e in events)),
            "by_risk_level": dict(Counter(e.risk_level.value for e in events if e.risk_level)),
            "recent_critical": [e.to_dict() for e in critical],
            "write_failures": self._write_failures,
        }

    def clear(self) -> None:
        """Drop the in-memory cache. The durable log is untouched."""
        self._events.clear()

    # --------------------------------------------------------
    # INTERNALS
    # --------------------------------------------------------

    def _generate_event_id(self) -> str:
        return f"audit_{self._clock.epoch_millis()}_{secrets.token_hex(5)[:9]}"
