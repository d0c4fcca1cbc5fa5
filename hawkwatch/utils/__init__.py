"""
Utilities package for the monitoring subsystem.

This package provides error handling, structured logging and the periodic
task abstraction shared by the monitoring loops.
"""

from .errors import (
    MonitorError,
    ConfigurationError,
    HealthCheckError,
    MetricsError,
    AlertError,
    LifecycleError,
    ErrorCategory,
    ErrorSeverity,
    handle_error
)

from .logging import (
    setup_logging,
    get_logger,
    performance_context,
    LoggingConfig,
    LogLevel,
    LogFormat
)

from .async_utils import (
    Clock,
    AsyncioClock,
    PeriodicTask,
    PeriodicTaskRunner
)

__all__ = [
    # Error handling
    'MonitorError',
    'ConfigurationError',
    'HealthCheckError',
    'MetricsError',
    'AlertError',
    'LifecycleError',
    'ErrorCategory',
    'ErrorSeverity',
    'handle_error',

    # Logging
    'setup_logging',
    'get_logger',
    'performance_context',
    'LoggingConfig',
    'LogLevel',
    'LogFormat',

    # Async utilities
    'Clock',
    'AsyncioClock',
    'PeriodicTask',
    'PeriodicTaskRunner'
]
