"""
Monitoring - Admission Gate.

============================================================
RESPONSIBILITY
============================================================
Request-time filters that can reject traffic before it reaches
business handlers.

AdmissionGate (gated route prefixes only), reading the latest
Snapshot:
- error   -> 503 with a retry-after hint
- warning -> pass through with advisory headers
- healthy -> transparent

ResourceGuard (all routes except an allow-list):
- memory above the hard ceiling -> 503 with a retry-after hint

Rejected requests are not retried server-side. A failure inside
the gate itself lets the request through.

============================================================
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from aiohttp import web

from .config import AdmissionConfig
from .metrics_source import MetricsSource
from .models import Snapshot, SystemStatus


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdmissionDecision:
    admitted: bool
    headers: Dict[str, str] = field(default_factory=dict)
    message: Optional[str] = None
    status: Optional[str] = None
    retry_after: Optional[int] = None

    def rejection(self) -> web.Response:
        """The 503 response for a rejected decision."""
        body = {
            "success": False,
            "message": self.message,
            "status": self.status,
            "retry_after": self.retry_after,
        }
        headers = dict(self.headers)
        if self.retry_after is not None:
            headers["Retry-After"] = str(self.retry_after)
        return web.json_response(body, status=503, headers=headers)


ADMIT = AdmissionDecision(admitted=True)


def _matches(path: str, prefixes) -> bool:
    return any(path == prefix or path.startswith(prefix.rstrip("/") + "/") for prefix in prefixes)


# ============================================================
# ADMISSION GATE
# ============================================================

class AdmissionGate:
    """Status-based gate for critical routes."""

    def __init__(
        self,
        config: AdmissionConfig,
        snapshot_provider: Callable[[], Snapshot],
    ):
        self._config = config
        self._snapshot_provider = snapshot_provider

    def applies_to(self, path: str) -> bool:
        return _matches(path, self._config.gated_prefixes)

    def evaluate(self, path: str) -> AdmissionDecision:
        if not self.applies_to(path):
            return ADMIT

        status = self._snapshot_provider().status
        if status == SystemStatus.ERROR:
            return AdmissionDecision(
                admitted=False,
                message="Service temporarily unavailable due to system issues",
                status=status.value,
                retry_after=self._config.retry_after_seconds,
            )
        if status == SystemStatus.WARNING:
            return AdmissionDecision(
                admitted=True,
                headers={
                    "X-System-Status": status.value,
                    "X-System-Warning": "System is experiencing some issues",
                },
            )
        return ADMIT

    @web.middleware
    async def middleware(self, request: web.Request, handler) -> web.StreamResponse:
        try:
            decision = self.evaluate(request.path)
        except Exception as e:
            logger.error(f"Admission gate failed, admitting {request.path}: {e}")
            return await handler(request)

        if not decision.admitted:
            logger.warning(f"Rejected {request.method} {request.path}: system status {decision.status}")
            return decision.rejection()

        response = await handler(request)
        if decision.headers and not response.prepared:
            response.headers.update(decision.headers)
        return response


# ============================================================
# RESOURCE GUARD
# ============================================================

class ResourceGuard:
    """Memory-pressure load shedding."""

    def __init__(
        self,
        config: AdmissionConfig,
        metrics_source: MetricsSource,
    ):
        self._config = config
        self._metrics_source = metrics_source

    def is_allowed_route(self, path: str) -> bool:
        return _matches(path, self._config.resource_allow_prefixes)

    def evaluate(self, path: str) -> AdmissionDecision:
        if self.is_allowed_route(path):
            return ADMIT

        memory = self._metrics_source.memory_percent()
        if memory > self._config.memory_ceiling_percent:
            return AdmissionDecision(
                admitted=False,
                message="Server is under high load, please try again later",
                status="overloaded",
                retry_after=self._config.resource_retry_after_seconds,
            )
        return ADMIT

    @web.middleware
    async def middleware(self, request: web.Request, handler) -> web.StreamResponse:
        try:
            decision = self.evaluate(request.path)
        except Exception as e:
            logger.error(f"Resource guard failed, admitting {request.path}: {e}")
            return await handler(request)

        if not decision.admitted:
            logger.warning(f"Shedding {request.method} {request.path}: memory above ceiling")
            return decision.rejection()
        return await handler(request)
