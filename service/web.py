"""
Service - Web Application.

============================================================
RESPONSIBILITY
============================================================
Builds the aiohttp application around a ResilienceService.

- Installs the request monitor, resource guard, admission gate
  and audit middlewares, outermost first
- Registers the health, metrics and admin routes
- Stores the service on the application for handlers that
  need it

============================================================
"""

import logging

from aiohttp import web

from monitoring.api import MonitoringAPI, setup_monitoring_routes
from .container import ResilienceService


logger = logging.getLogger(__name__)


SERVICE_KEY = web.AppKey("service", ResilienceService)
API_KEY = web.AppKey("monitoring_api", MonitoringAPI)


def create_app(service: ResilienceService) -> web.Application:
    """Create the aiohttp application for ``service``."""
    app = web.Application(middlewares=service.middlewares())

    api = MonitoringAPI(
        service.health_checker,
        request_monitor=service.request_monitor,
        recovery=service.recovery,
        audit_log=service.audit_log,
        admin_token=service.config.admin_token,
        environment=service.config.monitoring.environment,
        version=service.config.version,
    )
    setup_monitoring_routes(app, api)

    app[SERVICE_KEY] = service
    app[API_KEY] = api

    logger.debug(f"Registered {len(app.router.routes())} routes")
    return app
