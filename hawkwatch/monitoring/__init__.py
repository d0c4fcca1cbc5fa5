"""
Monitoring package for the monitoring subsystem.

This package provides health probes and their scheduler, metrics sampling
with bounded retention, and named event counters.
"""

from .collaborators import EntityCounts, GatewaySnapshot, Pingable
from .counters import Counter, CounterRegistry
from .health import (
    HealthCheckRegistry,
    HealthCheckResult,
    HealthStatus,
    determine_overall_status
)
from .metrics import MetricsCollector, ResourceSampler, SystemMetrics

__all__ = [
    'EntityCounts',
    'GatewaySnapshot',
    'Pingable',
    'Counter',
    'CounterRegistry',
    'HealthCheckRegistry',
    'HealthCheckResult',
    'HealthStatus',
    'determine_overall_status',
    'MetricsCollector',
    'ResourceSampler',
    'SystemMetrics'
]
