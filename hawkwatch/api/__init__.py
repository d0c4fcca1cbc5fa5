"""
HTTP package for the monitoring subsystem.

This package provides the request monitoring middleware, the /monitoring
router and the FastAPI application factory.
"""

from .middleware import ApiMonitoringMiddleware, RequestMonitor
from .routes import create_monitoring_router
from .serializers import wire_format
from .server import create_http_app

__all__ = [
    'ApiMonitoringMiddleware',
    'RequestMonitor',
    'create_monitoring_router',
    'create_http_app',
    'wire_format'
]
