"""
Default health probes.

Each factory returns an async probe for ``HealthCheckRegistry.register``:
the local process, a pingable datastore or cache, and a chat gateway.
"""

import time
from typing import Optional

from ..config import CacheThresholds, DatastoreThresholds, GatewayThresholds, PerformanceThresholds
from .collaborators import GatewaySnapshot, Pingable, resolve
from .health import HealthCheckResult, HealthStatus, Probe
from .metrics import ResourceSampler


def system_probe(thresholds: PerformanceThresholds, sampler: Optional[ResourceSampler] = None) -> Probe:
    """Degraded when resident memory exceeds the memory threshold."""
    sampler = sampler or ResourceSampler()

    async def check_system() -> HealthCheckResult:
        memory = sampler.memory()
        process = sampler.process_info()

        status = HealthStatus.HEALTHY
        message = "System is healthy"

        if memory.percentage > thresholds.memory_usage_threshold:
            status = HealthStatus.DEGRADED
            message = f"High memory usage: {memory.percentage:.2f}%"

        return HealthCheckResult(
            service='system',
            status=status,
            message=message,
            details={
                'memory_percentage': round(memory.percentage, 2),
                'rss': memory.used,
                'uptime': process.uptime,
                'load_average': sampler.cpu().load_average
            }
        )

    return check_system


def ping_probe(service: str, target: Pingable, degraded_after_ms: float) -> Probe:
    """
    Ping ``target`` and time it.

    Degraded when the ping takes longer than ``degraded_after_ms``; a failing
    ping propagates so the registry records it as unhealthy.
    """
    async def check_ping() -> HealthCheckResult:
        start = time.perf_counter()
        await resolve(target.ping())
        response_time = (time.perf_counter() - start) * 1000

        if response_time > degraded_after_ms:
            return HealthCheckResult(
                service=service,
                status=HealthStatus.DEGRADED,
                response_time=response_time,
                message=f"Slow {service} response: {response_time:.0f}ms"
            )

        return HealthCheckResult(
            service=service,
            status=HealthStatus.HEALTHY,
            response_time=response_time,
            message=f"{service.capitalize()} is healthy"
        )

    return check_ping


def datastore_probe(target: Pingable, thresholds: DatastoreThresholds) -> Probe:
    return ping_probe('database', target, thresholds.query_timeout / 2)


def cache_probe(target: Pingable, thresholds: CacheThresholds) -> Probe:
    return ping_probe('cache', target, thresholds.operation_timeout / 2)


def gateway_probe(gateway: GatewaySnapshot, thresholds: GatewayThresholds) -> Probe:
    """Unhealthy when not ready, degraded when latency exceeds the threshold."""
    async def check_gateway() -> HealthCheckResult:
        ready = bool(await resolve(gateway.is_ready()))
        latency = float(await resolve(gateway.latency()))
        counts = await resolve(gateway.entity_counts())

        status = HealthStatus.HEALTHY
        message = "Gateway is healthy"

        if latency > thresholds.latency_threshold:
            status = HealthStatus.DEGRADED
            message = f"High gateway latency: {latency:.0f}ms"

        if not ready:
            status = HealthStatus.UNHEALTHY
            message = "Gateway client not ready"

        return HealthCheckResult(
            service='gateway',
            status=status,
            message=message,
            details={
                'ping': latency,
                'guilds': counts.guilds,
                'users': counts.users,
                'channels': counts.channels,
                'ready': ready
            }
        )

    return check_gateway
