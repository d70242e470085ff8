"""
Risk Core - Exceptions.

============================================================
EXCEPTION HIERARCHY
============================================================
RiskCoreError (base)
├── ConfigurationError
└── InvalidSnapshotError

Only configuration errors are fatal. Rejected trades,
invalid sizes and circuit breaker trips are RESULTS,
not exceptions.

============================================================
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class Severity(Enum):
    """Exception severity levels for alerting."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ============================================================
# BASE EXCEPTION
# ============================================================

class RiskCoreError(Exception):
    """
    Base exception for the risk core.

    Carries severity and context for structured logging.
    """

    default_severity: Severity = Severity.MEDIUM
    default_recoverable: bool = True

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.recoverable = recoverable if recoverable is not None else self.default_recoverable
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "recoverable": self.recoverable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(RiskCoreError):
    """
    Invalid risk configuration.

    Raised once, at load time. The system must refuse
    to start rather than run with inconsistent limits.
    """

    default_severity = Severity.CRITICAL
    default_recoverable = False

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        config_key: Optional[str] = None,
        actual_value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if config_key:
            context["config_key"] = config_key
        if actual_value is not None:
            context["actual_value"] = str(actual_value)[:100]

        self.errors = list(errors or [])
        if self.errors:
            context["errors"] = self.errors

        super().__init__(message, context=context, **kwargs)


# ============================================================
# SNAPSHOT ERRORS
# ============================================================

class InvalidSnapshotError(RiskCoreError):
    """A snapshot handed to the core is internally inconsistent."""

    default_severity = Severity.HIGH
