"""
Security Audit - Request Middleware.

Records one ``http_request`` audit event per request so that
401 / 403 traffic and suspicious query strings reach the
detectors. Health and metrics routes are skipped, as are
requests a handler already audited (AUDITED_KEY set).
"""

import logging
from typing import Sequence

from aiohttp import web

from .audit_log import AuditLog
from .models import AuditLevel


logger = logging.getLogger(__name__)


DEFAULT_SKIP_PREFIXES = ("/health", "/api/health", "/metrics", "/api/metrics")

AUDITED_KEY = web.RequestKey("audited", bool)
ACTOR_ID_KEY = web.RequestKey("actor_id", str)


def _level_for(status: int) -> AuditLevel:
    if status >= 500:
        return AuditLevel.ERROR
    if status >= 400:
        return AuditLevel.WARNING
    return AuditLevel.INFO


def create_audit_middleware(
    audit_log: AuditLog,
    skip_prefixes: Sequence[str] = DEFAULT_SKIP_PREFIXES,
):
    """aiohttp middleware feeding request outcomes into ``audit_log``."""

    @web.middleware
    async def audit_middleware(request: web.Request, handler) -> web.StreamResponse:
        if any(request.path.startswith(prefix) for prefix in skip_prefixes):
            return await handler(request)

        status = 500
        try:
            response = await handler(request)
            status = response.status
            return response
        except web.HTTPException as exc:
            status = exc.status
            raise
        finally:
            if not request.get(AUDITED_KEY, False):
                _record(audit_log, request, status)

    return audit_middleware


def _record(audit_log: AuditLog, request: web.Request, status: int) -> None:
    details = {"query": request.query_string} if request.query_string else {}
    audit_log.log_event({
        "action": "http_request",
        "category": "access",
        "level": _level_for(status),
        "ip": request.remote or "unknown",
        "user_agent": request.headers.get("User-Agent", "unknown"),
        "path": request.path,
        "method": request.method,
        "status_code": status,
        "details": details,
        "actor_id": request.get(ACTOR_ID_KEY),
    })
