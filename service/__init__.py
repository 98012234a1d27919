"""
Service - Process bootstrap for the resilience components.

Explicit construction of every component from configuration,
the aiohttp application factory and the command-line interface.
"""

from .config import ServiceConfig, load_env
from .container import ResilienceService
from .web import SERVICE_KEY, create_app


__all__ = [
    "ServiceConfig",
    "load_env",
    "ResilienceService",
    "SERVICE_KEY",
    "create_app",
]
