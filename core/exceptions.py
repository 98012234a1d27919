"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines the exception taxonomy of the resilience core.

- Classifies failures by how they are handled
- Carries context for the structured logs
- Lets the admin boundary map operator errors to HTTP 400

============================================================
EXCEPTION HIERARCHY
============================================================
ResilienceError (base)
├── ConfigurationError
│   └── InvalidConfigError
├── TransientDependencyFailure      retried by RecoveryOrchestrator
│   ├── StoreUnavailableError
│   └── SelfProbeError
├── ResourceExhaustion              mitigated in place
└── OperatorError                   rejected at the admin boundary
    └── InvalidThresholdError

Security anomalies are never raised: detectors record them as
derived audit events, and nothing routes them to recovery.

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels for alerting."""

    LOW = "low"
    """Minor issue, informational."""

    MEDIUM = "medium"
    """Moderate issue, requires attention."""

    HIGH = "high"
    """Serious issue, may impact availability."""

    CRITICAL = "critical"
    """Critical issue, requires immediate action."""


# ============================================================
# ERROR CLASSIFICATION
# ============================================================

class ErrorClassification(Enum):
    """Classification of error recoverability."""

    RECOVERABLE = "recoverable"
    """Error can be mitigated automatically."""

    TRANSIENT = "transient"
    """Temporary error, retry may succeed."""

    NON_RECOVERABLE = "non_recoverable"
    """Permanent error, requires intervention."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class ResilienceError(Exception):
    """
    Base exception for all resilience-core errors.

    All exceptions carry:
    - severity: for alerting
    - classification: for recovery decisions
    - context: for debugging
    - timestamp: when the error occurred
    """

    default_severity: Severity = Severity.MEDIUM
    default_classification: ErrorClassification = ErrorClassification.RECOVERABLE

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        classification: Optional[ErrorClassification] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.classification = classification or self.default_classification
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    @property
    def is_recoverable(self) -> bool:
        """Check if automatic recovery may be attempted."""
        return self.classification in (
            ErrorClassification.RECOVERABLE,
            ErrorClassification.TRANSIENT,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "classification": self.classification.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(ResilienceError):
    """Error in configuration."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if config_key:
            context["config_key"] = config_key
        if actual_value is not None:
            context["actual_value"] = str(actual_value)[:100]

        super().__init__(message, context=context, **kwargs)


class InvalidConfigError(ConfigurationError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, reason: str):
        super().__init__(
            message=f"Invalid configuration for {key}: {reason}",
            config_key=key,
            actual_value=value,
            context={"reason": reason},
        )


# ============================================================
# DEPENDENCY ERRORS
# ============================================================

class TransientDependencyFailure(ResilienceError):
    """A dependency (store, network) is temporarily unavailable."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.TRANSIENT

    def __init__(self, message: str, dependency: str, **kwargs):
        context = kwargs.pop("context", {})
        context["dependency"] = dependency
        self.dependency = dependency
        super().__init__(message, context=context, **kwargs)


class StoreUnavailableError(TransientDependencyFailure):
    """Persistent store cannot be reached."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, dependency="store", **kwargs)


class SelfProbeError(TransientDependencyFailure):
    """The HTTP self-probe failed or timed out."""

    def __init__(self, message: str, url: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if url:
            context["url"] = url
        super().__init__(message, dependency="network", context=context, **kwargs)


# ============================================================
# RESOURCE ERRORS
# ============================================================

class ResourceExhaustion(ResilienceError):
    """Memory or CPU usage crossed a limit."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.RECOVERABLE

    def __init__(self, resource: str, value: float, limit: float, **kwargs):
        context = kwargs.pop("context", {})
        context.update({"resource": resource, "value": value, "limit": limit})
        self.resource = resource
        self.value = value
        self.limit = limit
        super().__init__(
            f"{resource} usage {value:.1f} exceeds limit {limit:.1f}",
            context=context,
            **kwargs,
        )


# ============================================================
# OPERATOR ERRORS
# ============================================================

class OperatorError(ResilienceError):
    """Invalid input at the administrative boundary."""

    default_severity = Severity.LOW
    default_classification = ErrorClassification.NON_RECOVERABLE


class InvalidThresholdError(OperatorError):
    """Alert threshold update was rejected."""

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        self.errors = errors or []
        super().__init__(message, context={"errors": self.errors})

