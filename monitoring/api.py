"""
Monitoring API Endpoints.

============================================================
PURPOSE
============================================================
HTTP surface of the resilience core.

PUBLIC (no auth):
- Health, liveness, dependency status, metrics

ADMINISTRATIVE (X-Admin-Token required, 403 otherwise):
- Start / stop monitoring
- Alert thresholds, auto recovery, retry counter
- Alert, recovery and audit history and stats

Invalid administrative input is rejected with 400 before any
state changes.

============================================================
"""

import hmac
import json
import logging
from dataclasses import is_dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional

from aiohttp import web
from pydantic import ValidationError

from core.exceptions import OperatorError
from security_audit.middleware import AUDITED_KEY
from .health_checker import HealthChecker
from .models import SystemStatus
from .request_monitor import RequestMonitor
from .schemas import AuditEventQuery, AutoRecoveryUpdate, HistoryQuery

if TYPE_CHECKING:
    from recovery.orchestrator import RecoveryOrchestrator
    from security_audit.audit_log import AuditLog


logger = logging.getLogger(__name__)


ADMIN_TOKEN_HEADER = "X-Admin-Token"

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


# ============================================================
# JSON ENCODER
# ============================================================

class MonitoringEncoder(json.JSONEncoder):
    """JSON encoder for monitoring data."""

    def default(self, obj):
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, Enum):
            return obj.value
        if hasattr(obj, "to_dict"):
            return obj.to_dict()
        if is_dataclass(obj):
            return {k: v for k, v in obj.__dict__.items() if not k.startswith("_")}
        return super().default(obj)


def json_response(data: Any, status: int = 200, headers: Optional[Dict[str, str]] = None) -> web.Response:
    """Create JSON response."""
    return web.Response(
        text=json.dumps(data, cls=MonitoringEncoder, indent=2),
        status=status,
        content_type="application/json",
        headers=headers,
    )


def ok(data: Any, status: int = 200) -> web.Response:
    return json_response({"status": "ok", "data": data}, status=status)


def error(message: str, status: int, **extra: Any) -> web.Response:
    return json_response({"status": "error", "error": message, **extra}, status=status)


# ============================================================
# API HANDLERS
# ============================================================

class MonitoringAPI:
    """
    HTTP API for the health checker, recovery and audit services.

    Public reads never mutate state. Every administrative handler
    goes through ``admin_only``.
    """

    def __init__(
        self,
        health_checker: HealthChecker,
        request_monitor: Optional[RequestMonitor] = None,
        recovery: Optional["RecoveryOrchestrator"] = None,
        audit_log: Optional["AuditLog"] = None,
        admin_token: Optional[str] = None,
        environment: str = "development",
        version: str = "1.0.0",
    ):
        """Initialize API."""
        self._checker = health_checker
        self._requests = request_monitor
        self._recovery = recovery
        self._audit = audit_log
        self._admin_token = admin_token
        self._environment = environment
        self._version = version

    # --------------------------------------------------------
    # AUTHORIZATION
    # --------------------------------------------------------

    def is_admin(self, request: web.Request) -> bool:
        if not self._admin_token:
            return False
        supplied = request.headers.get(ADMIN_TOKEN_HEADER, "")
        return hmac.compare_digest(supplied.encode(), self._admin_token.encode())

    def admin_only(self, handler: Handler) -> Handler:
        """Wrap an administrative handler with the token check and error mapping."""

        async def wrapped(request: web.Request) -> web.StreamResponse:
            if not self.is_admin(request):
                logger.warning(f"Rejected admin request {request.method} {request.path} from {request.remote}")
                if self._audit is not None:
                    self._audit.log_event({
                        "action": "unauthorized_access",
                        "category": "security",
                        "level": "warning",
                        "ip": request.remote or "unknown",
                        "user_agent": request.headers.get("User-Agent", "unknown"),
                        "path": request.path,
                        "method": request.method,
                        "status_code": 403,
                    })
                    request[AUDITED_KEY] = True
                return error("Admin access required", status=403)
            try:
                return await handler(request)
            except OperatorError as e:
                return error(e.message, status=400, details=e.context.get("errors", []))
            except (ValidationError, ValueError) as e:
                return error(f"Invalid request: {e}", status=400)

        return wrapped

    # --------------------------------------------------------
    # HEALTH
    # --------------------------------------------------------

    async def get_health(self, request: web.Request) -> web.Response:
        """
        GET /health, /api/health

        200 for healthy / warning, 503 for error.
        """
        snapshot = self._checker.snapshot
        body = {
            "status": snapshot.status.value,
            "timestamp": snapshot.timestamp.isoformat(),
            "uptime_seconds": round(snapshot.uptime_seconds, 1),
            "environment": self._environment,
            "version": self._version,
            "dependencies": {name: r.status.value for name, r in snapshot.dependencies.items()},
            "snapshot": snapshot.to_dict(),
        }
        status = 503 if snapshot.status == SystemStatus.ERROR else 200
        return json_response(body, status=status)

    async def get_liveness(self, request: web.Request) -> web.Response:
        """GET /health/live: process is up and serving."""
        return json_response({"status": "alive", "timestamp": datetime.now(timezone.utc).isoformat()})

    async def get_database_status(self, request: web.Request) -> web.Response:
        """GET /health/database"""
        result = self._checker.snapshot.dependencies.get("store")
        if result is None:
            return error("No store probe result yet", status=503)
        status = 503 if result.is_error else 200
        return json_response({"status": result.status.value, "data": result.to_dict()}, status=status)

    async def get_services_status(self, request: web.Request) -> web.Response:
        """GET /health/services"""
        snapshot = self._checker.snapshot
        return ok({
            "status": snapshot.status.value,
            "services": {name: r.to_dict() for name, r in snapshot.dependencies.items()},
        })

    # --------------------------------------------------------
    # METRICS
    # --------------------------------------------------------

    async def get_metrics(self, request: web.Request) -> web.Response:
        """GET /metrics, /api/metrics"""
        snapshot = self._checker.snapshot
        data: Dict[str, Any] = {
            "timestamp": snapshot.timestamp.isoformat(),
            "system": {
                "status": snapshot.status.value,
                "uptime_seconds": round(snapshot.uptime_seconds, 1),
                "memory": snapshot.memory.to_dict(),
                "cpu_percent": round(snapshot.cpu_percent, 2),
                "average_check_time_ms": round(snapshot.average_response_time_ms, 2),
            },
            "monitoring": self._checker.get_metrics(),
        }
        if self._requests is not None:
            data.update(self._requests.get_all_metrics())
        return json_response(data)

    # --------------------------------------------------------
    # ADMIN: MONITORING CONTROL
    # --------------------------------------------------------

    async def start_monitoring(self, request: web.Request) -> web.Response:
        """POST /api/monitoring/start"""
        started = await self._checker.start()
        return ok({"started": started, "is_running": self._checker.is_running})

    async def stop_monitoring(self, request: web.Request) -> web.Response:
        """POST /api/monitoring/stop"""
        stopped = await self._checker.stop()
        return ok({"stopped": stopped, "is_running": self._checker.is_running})

    async def set_alert_thresholds(self, request: web.Request) -> web.Response:
        """POST /api/monitoring/alert-thresholds (partial merge)"""
        body = await self._read_json(request)
        values = self._checker.set_alert_thresholds(body)
        return ok({"alert_thresholds": values})

    async def set_auto_recovery(self, request: web.Request) -> web.Response:
        """POST /api/monitoring/auto-recovery"""
        update = AutoRecoveryUpdate.model_validate(await self._read_json(request))
        self._checker.set_auto_recovery(update.enabled)
        return ok({"auto_recovery": self._checker.auto_recovery})

    async def reset_retries(self, request: web.Request) -> web.Response:
        """POST /api/monitoring/reset-retries"""
        self._checker.reset_retry_attempts()
        return ok({"retry_attempts": self._checker.retry_attempts})

    # --------------------------------------------------------
    # ADMIN: READS
    # --------------------------------------------------------

    async def get_monitoring_metrics(self, request: web.Request) -> web.Response:
        """GET /api/monitoring/metrics"""
        return ok(self._checker.get_metrics())

    async def get_performance(self, request: web.Request) -> web.Response:
        """GET /api/monitoring/performance"""
        data: Dict[str, Any] = {"snapshot": self._checker.snapshot.to_dict()}
        if self._requests is not None:
            data["requests"] = self._requests.get_all_metrics()
            data["routes"] = self._requests.get_request_stats()
        return ok(data)

    async def reset_request_metrics(self, request: web.Request) -> web.Response:
        """POST /api/monitoring/performance/reset"""
        if self._requests is None:
            return error("Request monitoring not enabled", status=404)
        self._requests.reset_metrics()
        return ok({"reset": True})

    async def get_alert_history(self, request: web.Request) -> web.Response:
        """GET /api/monitoring/alerts?limit="""
        query = HistoryQuery.model_validate(dict(request.query))
        return ok(self._checker.get_alert_history(query.limit))

    async def get_alert_stats(self, request: web.Request) -> web.Response:
        """GET /api/monitoring/alert-stats"""
        return ok(self._checker.get_alert_stats())

    async def get_recovery_history(self, request: web.Request) -> web.Response:
        """GET /api/monitoring/recovery?limit="""
        if self._recovery is None:
            return error("Recovery not configured", status=404)
        query = HistoryQuery.model_validate({"limit": request.query.get("limit", 10)})
        return ok({
            "status": self._recovery.get_status(),
            "history": self._recovery.get_recovery_history(query.limit),
        })

    async def get_recovery_stats(self, request: web.Request) -> web.Response:
        """GET /api/monitoring/recovery/stats"""
        if self._recovery is None:
            return error("Recovery not configured", status=404)
        return ok(self._recovery.get_recovery_stats())

    async def clear_recovery_history(self, request: web.Request) -> web.Response:
        """POST /api/monitoring/recovery/clear"""
        if self._recovery is None:
            return error("Recovery not configured", status=404)
        self._recovery.clear_recovery_history()
        return ok({"cleared": True})

    async def get_audit_events(self, request: web.Request) -> web.Response:
        """GET /api/monitoring/audit/events?level=&category=&actorId=&ip=&riskLevel=&limit="""
        if self._audit is None:
            return error("Audit log not configured", status=404)
        query = AuditEventQuery.model_validate(dict(request.query))
        events = self._audit.get_events(**query.filters())
        return ok([e.to_dict() for e in events])

    async def get_audit_stats(self, request: web.Request) -> web.Response:
        """GET /api/monitoring/audit/stats"""
        if self._audit is None:
            return error("Audit log not configured", status=404)
        return ok(self._audit.get_audit_stats())

    # --------------------------------------------------------
    # HELPERS
    # --------------------------------------------------------

    @staticmethod
    async def _read_json(request: web.Request) -> Dict[str, Any]:
        try:
            body = await request.json()
        except json.JSONDecodeError as e:
            raise ValueError(f"Body is not valid JSON: {e}") from e
        if not isinstance(body, dict):
            raise ValueError("Body must be a JSON object")
        return body


# ============================================================
# ROUTES
# ============================================================

def setup_monitoring_routes(app: web.Application, api: MonitoringAPI) -> None:
    """Register public and administrative routes on ``app``."""
    # Public
    app.router.add_get("/health", api.get_health)
    app.router.add_get("/api/health", api.get_health)
    app.router.add_get("/health/live", api.get_liveness)
    app.router.add_get("/health/database", api.get_database_status)
    app.router.add_get("/health/services", api.get_services_status)
    app.router.add_get("/metrics", api.get_metrics)
    app.router.add_get("/api/metrics", api.get_metrics)

    # Administrative
    admin = api.admin_only
    app.router.add_post("/api/monitoring/start", admin(api.start_monitoring))
    app.router.add_post("/api/monitoring/stop", admin(api.stop_monitoring))
    app.router.add_post("/api/monitoring/alert-thresholds", admin(api.set_alert_thresholds))
    app.router.add_post("/api/monitoring/auto-recovery", admin(api.set_auto_recovery))
    app.router.add_post("/api/monitoring/reset-retries", admin(api.reset_retries))
    app.router.add_get("/api/monitoring/metrics", admin(api.get_monitoring_metrics))
    app.router.add_get("/api/monitoring/performance", admin(api.get_performance))
    app.router.add_post("/api/monitoring/performance/reset", admin(api.reset_request_metrics))
    app.router.add_get("/api/monitoring/alerts", admin(api.get_alert_history))
    app.router.add_get("/api/monitoring/alert-stats", admin(api.get_alert_stats))
    app.router.add_get("/api/monitoring/recovery", admin(api.get_recovery_history))
    app.router.add_get("/api/monitoring/recovery/stats", admin(api.get_recovery_stats))
    app.router.add_post("/api/monitoring/recovery/clear", admin(api.clear_recovery_history))
    app.router.add_get("/api/monitoring/audit/events", admin(api.get_audit_events))
    app.router.add_get("/api/monitoring/audit/stats", admin(api.get_audit_stats))
