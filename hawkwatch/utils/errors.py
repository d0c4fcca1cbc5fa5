"""
Exception hierarchy for the monitoring subsystem.

Every error raised by hawkwatch derives from ``MonitorError``, which carries a
category, a severity and a context dictionary so that failures in any
component can be logged and serialized the same way. ``handle_error`` wraps
foreign exceptions into the hierarchy at component boundaries.
"""

from typing import Any, ClassVar, Dict, Optional, Type
from enum import Enum
import traceback
from datetime import datetime


class ErrorSeverity(Enum):
    """How urgently an error needs attention."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Component an error belongs to."""
    CONFIGURATION = "configuration"
    HEALTH = "health"
    METRICS = "metrics"
    ALERT = "alert"
    LIFECYCLE = "lifecycle"
    API = "api"
    SYSTEM = "system"


class MonitorError(Exception):
    """
    Base class for monitoring errors.

    Subclasses pick their defaults through class attributes. ``subject_key``
    names the context entry that stores the subclass' subject argument
    (a check name, a metric name and so on).
    """

    default_category: ClassVar[ErrorCategory] = ErrorCategory.SYSTEM
    default_severity: ClassVar[ErrorSeverity] = ErrorSeverity.MEDIUM
    default_recoverable: ClassVar[bool] = True
    subject_key: ClassVar[Optional[str]] = None

    def __init__(
        self,
        message: str,
        category: Optional[ErrorCategory] = None,
        severity: Optional[ErrorSeverity] = None,
        source_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
        original_exception: Optional[Exception] = None,
        subject: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.severity = severity or self.default_severity
        self.recoverable = self.default_recoverable if recoverable is None else recoverable
        self.source_id = source_id
        self.original_exception = original_exception
        self.timestamp = datetime.now()
        self.traceback_str = traceback.format_exc()

        self.context = dict(context or {})
        if subject and self.subject_key:
            self.context[self.subject_key] = subject
        if original_exception is not None:
            self.context['original_error'] = str(original_exception)
            self.context['original_type'] = type(original_exception).__name__

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form for structured logs."""
        return {
            'error_type': type(self).__name__,
            'message': self.message,
            'category': self.category.value,
            'severity': self.severity.value,
            'recoverable': self.recoverable,
            'source_id': self.source_id,
            'context': self.context,
            'timestamp': self.timestamp.isoformat(),
            'traceback': self.traceback_str
        }

    def __str__(self) -> str:
        text = f"[{self.category.name}] {self.message}"
        if self.source_id:
            return f"{text} (source: {self.source_id})"
        return text


class ConfigurationError(MonitorError):
    """Configuration could not be loaded, validated or overridden."""

    default_category = ErrorCategory.CONFIGURATION
    default_severity = ErrorSeverity.HIGH
    default_recoverable = False
    subject_key = 'config_path'

    def __init__(self, message: str, config_path: Optional[str] = None, **kwargs):
        super().__init__(message, subject=config_path, **kwargs)


class HealthCheckError(MonitorError):
    """A health probe failed or could not be run."""

    default_category = ErrorCategory.HEALTH
    default_severity = ErrorSeverity.HIGH
    subject_key = 'check_name'

    def __init__(self, message: str, check_name: Optional[str] = None, **kwargs):
        kwargs.setdefault('source_id', check_name)
        super().__init__(message, subject=check_name, **kwargs)


class MetricsError(MonitorError):
    """Resource sampling failed."""

    default_category = ErrorCategory.METRICS
    subject_key = 'metric_name'

    def __init__(self, message: str, metric_name: Optional[str] = None, **kwargs):
        super().__init__(message, subject=metric_name, **kwargs)


class AlertError(MonitorError):
    default_category = ErrorCategory.ALERT
    subject_key = 'alert_id'

    def __init__(self, message: str, alert_id: Optional[str] = None, **kwargs):
        super().__init__(message, subject=alert_id, **kwargs)


class LifecycleError(MonitorError):
    """The service was started, stopped or hooked in an invalid state."""

    default_category = ErrorCategory.LIFECYCLE
    default_severity = ErrorSeverity.HIGH


# First match wins
_KEYWORD_ERRORS = (
    (('config', 'configuration'), ConfigurationError),
    (('health', 'probe', 'ping'), HealthCheckError),
    (('metric', 'psutil'), MetricsError),
    (('alert',), AlertError),
)


def _classify(message: str) -> Type[MonitorError]:
    lowered = message.lower()
    for keywords, error_type in _KEYWORD_ERRORS:
        if any(keyword in lowered for keyword in keywords):
            return error_type
    return MonitorError


def handle_error(
    error: Exception,
    context: Optional[Dict[str, Any]] = None,
    source_id: Optional[str] = None,
    recoverable: bool = True
) -> MonitorError:
    """
    Wrap ``error`` in the monitoring hierarchy.

    MonitorErrors are returned unchanged. Other exceptions are classified by
    keywords in their message; unclassified ones become a plain MonitorError
    whose message is prefixed with the original exception type.

    Args:
        error: Exception to wrap
        context: Extra context stored on the wrapper
        source_id: Component the error came from
        recoverable: Whether the caller can carry on

    Returns:
        The wrapped error
    """
    if isinstance(error, MonitorError):
        return error

    message = str(error)
    error_type = _classify(message)
    if error_type is MonitorError:
        message = f"{type(error).__name__}: {message}"

    return error_type(
        message,
        context=context,
        source_id=source_id,
        original_exception=error,
        recoverable=recoverable
    )
