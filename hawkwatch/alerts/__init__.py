"""
Alert management package for the monitoring subsystem.

This package provides the bounded alert store used by probes, threshold
checks, the API middleware and process fault hooks.
"""

from .manager import Alert, AlertEvent, AlertManager, AlertSeverity, AlertType

__all__ = ['Alert', 'AlertEvent', 'AlertManager', 'AlertSeverity', 'AlertType']
