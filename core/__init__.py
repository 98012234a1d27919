"""
Core Module Package.

This package contains the shared infrastructure components
that the monitoring, recovery and audit packages depend on.

Components:
- clock: Unified time abstraction
- exceptions: Resilience exception hierarchy
- ring_buffer: Fixed-capacity FIFO history
- json_log: Durable JSON-lines journal with size rotation
- logging_setup: Process-wide logging configuration
"""

from core.clock import ClockProtocol, MockClock, SystemClock, to_iso8601
from core.exceptions import (
    ConfigurationError,
    ErrorClassification,
    InvalidConfigError,
    InvalidThresholdError,
    OperatorError,
    ResilienceError,
    ResourceExhaustion,
    SelfProbeError,
    Severity,
    StoreUnavailableError,
    TransientDependencyFailure,
)
from core.json_log import JsonLineLog
from core.ring_buffer import RingBuffer


__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "to_iso8601",
    "Severity",
    "ErrorClassification",
    "ResilienceError",
    "ConfigurationError",
    "InvalidConfigError",
    "TransientDependencyFailure",
    "StoreUnavailableError",
    "SelfProbeError",
    "ResourceExhaustion",
    "OperatorError",
    "InvalidThresholdError",
    "JsonLineLog",
    "RingBuffer",
]
