"""
Health check registry and scheduler.

This module holds named asynchronous probes and runs them concurrently, racing
each one against a single global timeout. A probe that loses the race is not
cancelled: it keeps running in the background and its outcome is discarded.
Degraded and unhealthy findings are reported to the alert manager.
"""

import asyncio
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Union

from ..alerts.manager import AlertManager, AlertSeverity, AlertType
from ..utils.logging import get_logger


class HealthStatus(str, Enum):
    """Health status levels."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class HealthCheckResult:
    """Result of one probe execution."""
    service: str
    status: HealthStatus
    response_time: float = 0.0
    message: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'service': self.service,
            'status': self.status.value,
            'response_time': self.response_time,
            'message': self.message,
            'details': self.details,
            'timestamp': self.timestamp.isoformat()
        }


ProbeOutcome = Union[HealthCheckResult, bool]
Probe = Callable[[], Awaitable[ProbeOutcome]]

HEALTH_CHECK_TIMEOUT_MESSAGE = "Health check timeout"


def determine_overall_status(results: Iterable[HealthCheckResult]) -> HealthStatus:
    """Fold probe results: unhealthy beats degraded beats healthy."""
    statuses = {result.status for result in results}
    if HealthStatus.UNHEALTHY in statuses:
        return HealthStatus.UNHEALTHY
    if HealthStatus.DEGRADED in statuses:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


class HealthCheckRegistry:
    """
    Named probes run with a per-probe timeout race.

    ``run_all`` always returns one result per registered probe, in
    registration order, whatever the individual probes do.
    """

    def __init__(self, alert_manager: AlertManager, timeout_seconds: float):
        """
        Initialize health check registry.

        Args:
            alert_manager: Receives degraded/unhealthy findings
            timeout_seconds: Global per-probe timeout
        """
        if timeout_seconds <= 0:
            raise ValueError(f"Health check timeout must be positive, got {timeout_seconds}")

        self.alert_manager = alert_manager
        self.timeout_seconds = timeout_seconds
        self.logger = get_logger(__name__)

        self._probes: Dict[str, Probe] = {}
        self._abandoned: Set[asyncio.Future] = set()
        self._lock = threading.RLock()

    def register(self, name: str, probe: Probe) -> None:
        """Register a probe, replacing any probe already registered under ``name``."""
        with self._lock:
            replaced = name in self._probes
            self._probes[name] = probe

        if replaced:
            self.logger.info(f"Replaced health check: {name}")
        else:
            self.logger.info(f"Registered health check: {name}")

    def unregister(self, name: str) -> bool:
        with self._lock:
            removed = self._probes.pop(name, None) is not None

        if removed:
            self.logger.info(f"Unregistered health check: {name}")
        return removed

    @property
    def names(self) -> List[str]:
        with self._lock:
            return list(self._probes.keys())

    @property
    def abandoned_count(self) -> int:
        """Timed-out probes still running in the background."""
        return len(self._abandoned)

    def __len__(self) -> int:
        with self._lock:
            return len(self._probes)

    async def run_all(self) -> List[HealthCheckResult]:
        """Run every registered probe concurrently and report findings."""
        with self._lock:
            probes = list(self._probes.items())

        if not probes:
            return []

        results = await asyncio.gather(
            *(self._run_probe(name, probe) for name, probe in probes)
        )

        for result in results:
            if result.status == HealthStatus.HEALTHY:
                continue
            try:
                self._report(result)
            except Exception as e:
                self.logger.error(f"Failed to raise alert for health check {result.service}: {e}")

        return list(results)

    async def run_one(self, name: str) -> Optional[HealthCheckResult]:
        """Run a single probe without raising alerts."""
        with self._lock:
            probe = self._probes.get(name)

        if probe is None:
            return None
        return await self._run_probe(name, probe)

    async def _run_probe(self, name: str, probe: Probe) -> HealthCheckResult:
        loop = asyncio.get_running_loop()
        start = loop.time()
        task = asyncio.ensure_future(self._invoke(probe))

        done, _ = await asyncio.wait({task}, timeout=self.timeout_seconds)

        if not done:
            self._abandon(name, task)
            self.logger.warning(f"Health check {name} timed out after {self.timeout_seconds}s")
            return self._failure(name, HEALTH_CHECK_TIMEOUT_MESSAGE, error='timeout')

        elapsed_ms = (loop.time() - start) * 1000

        if task.cancelled():
            return self._failure(name, "Health check cancelled", error='cancelled')

        error = task.exception()
        if error is not None:
            self.logger.warning(f"Health check {name} failed: {error}")
            return self._failure(name, str(error) or type(error).__name__, error=type(error).__name__)

        return self._coerce(name, task.result(), elapsed_ms)

    async def _invoke(self, probe: Probe) -> ProbeOutcome:
        return await probe()

    def _coerce(self, name: str, outcome: Any, elapsed_ms: float) -> HealthCheckResult:
        # Measured duration overrides whatever the probe reported
        if isinstance(outcome, HealthCheckResult):
            try:
                status = HealthStatus(outcome.status)
            except ValueError:
                self.logger.warning(f"Health check {name} reported invalid status {outcome.status!r}")
                return HealthCheckResult(
                    service=outcome.service,
                    status=HealthStatus.UNHEALTHY,
                    response_time=elapsed_ms,
                    message=f"Invalid health status: {outcome.status!r}",
                    details={'error': 'invalid_status'}
                )
            return replace(outcome, status=status, response_time=elapsed_ms)

        if isinstance(outcome, bool):
            return HealthCheckResult(
                service=name,
                status=HealthStatus.HEALTHY if outcome else HealthStatus.UNHEALTHY,
                response_time=elapsed_ms,
                message="Check completed" if outcome else "Check failed"
            )

        return HealthCheckResult(
            service=name,
            status=HealthStatus.UNHEALTHY,
            response_time=elapsed_ms,
            message=f"Probe returned unsupported value of type {type(outcome).__name__}"
        )

    def _failure(self, name: str, message: str, error: str) -> HealthCheckResult:
        return HealthCheckResult(
            service=name,
            status=HealthStatus.UNHEALTHY,
            response_time=self.timeout_seconds * 1000,
            message=message,
            details={'error': error}
        )

    def _abandon(self, name: str, task: asyncio.Future) -> None:
        self._abandoned.add(task)

        def _reap(finished: asyncio.Future) -> None:
            self._abandoned.discard(finished)
            if finished.cancelled():
                return
            error = finished.exception()
            if error is not None:
                self.logger.debug(f"Abandoned health check {name} later failed: {error}")
            else:
                self.logger.debug(f"Abandoned health check {name} completed after timeout")

        task.add_done_callback(_reap)

    def _report(self, result: HealthCheckResult) -> None:
        severity = AlertSeverity.HIGH if result.status == HealthStatus.UNHEALTHY else AlertSeverity.MEDIUM
        self.alert_manager.create_alert(
            AlertType.HEALTH,
            severity,
            result.service,
            f"Service {result.service} is {result.status.value}",
            details=result.to_dict()
        )
