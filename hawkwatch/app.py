"""
Monitoring service with lifecycle management and process fault integration.

This module provides the MonitoringService that owns the alert store, the
counter registry, the health check registry and the metrics collector, drives
the two periodic loops, answers aggregate status queries and wires process
level faults into alerts or shutdown.
"""

import asyncio
import signal
import sys
import threading
import time
import traceback
from dataclasses import dataclass, field
from enum import Enum
from types import TracebackType
from typing import Any, Callable, Dict, List, Optional, Set, Type

from .alerts.manager import Alert, AlertManager, AlertSeverity, AlertType
from .config import MonitoringConfig
from .monitoring.collaborators import GatewaySnapshot, Pingable
from .monitoring.counters import Counter, CounterRegistry
from .monitoring.health import (
    HealthCheckRegistry,
    HealthCheckResult,
    HealthStatus,
    determine_overall_status
)
from .monitoring.metrics import MetricsCollector, ResourceSampler, SystemMetrics
from .monitoring.probes import cache_probe, datastore_probe, gateway_probe, system_probe
from .utils.async_utils import Clock, PeriodicTaskRunner
from .utils.errors import LifecycleError, handle_error
from .utils.logging import get_logger, performance_context


HEALTH_LOOP = "health_checks"
METRICS_LOOP = "metrics_collection"

UNCAUGHT_EXCEPTION_MESSAGE = "Uncaught exception occurred"
UNHANDLED_ASYNC_MESSAGE = "Unhandled async exception"


class ServiceState(Enum):
    """Monitoring service lifecycle states."""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass
class SystemStatus:
    """Aggregate status snapshot."""
    status: HealthStatus
    health_checks: List[HealthCheckResult]
    metrics: Optional[SystemMetrics]
    alerts: List[Alert]
    uptime: float
    counters: List[Counter] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'health_checks': [result.to_dict() for result in self.health_checks],
            'metrics': self.metrics.to_dict() if self.metrics else None,
            'alerts': [alert.to_dict() for alert in self.alerts],
            'uptime': self.uptime
        }


class MonitoringService:
    """
    Lifecycle controller for the monitoring subsystem.

    Every store is owned by the instance; pass one service to the HTTP layer
    and to anything that records counters or alerts.
    """

    def __init__(
        self,
        config: Optional[MonitoringConfig] = None,
        alert_manager: Optional[AlertManager] = None,
        counters: Optional[CounterRegistry] = None,
        health: Optional[HealthCheckRegistry] = None,
        metrics: Optional[MetricsCollector] = None,
        sampler: Optional[ResourceSampler] = None,
        clock: Optional[Clock] = None,
        exit_func: Callable[[int], Any] = sys.exit
    ):
        """
        Initialize the monitoring service.

        Args:
            config: Monitoring configuration (defaults apply when omitted)
            alert_manager: Alert store
            counters: Counter registry
            health: Health check registry
            metrics: Metrics collector
            sampler: Resource sampler shared by the system probe and collector
            clock: Clock driving the periodic loops
            exit_func: Called with the exit status after a signal-triggered shutdown
        """
        self.config = config or MonitoringConfig()
        self.logger = get_logger(__name__)

        self.alert_manager = alert_manager or AlertManager(self.config.alerts)
        self.counters = counters or CounterRegistry()
        self.health = health or HealthCheckRegistry(
            self.alert_manager, self.config.health_check_timeout_seconds
        )
        self.metrics = metrics or MetricsCollector(self.config, self.alert_manager, sampler=sampler)

        self.health.register('system', system_probe(self.config.performance, self.metrics.sampler))

        self._runner = PeriodicTaskRunner(clock)
        self._state = ServiceState.STOPPED
        self._state_lock = asyncio.Lock()
        self._started_at: Optional[float] = None
        self._exit = exit_func

        self._handler_loop: Optional[asyncio.AbstractEventLoop] = None
        self._installed_signals: List[signal.Signals] = []
        self._previous_signal_handlers: Dict[signal.Signals, Any] = {}
        self._previous_excepthook: Optional[Callable] = None
        self._previous_threading_excepthook: Optional[Callable] = None
        self._previous_loop_handler: Optional[Callable] = None
        self._fault_tasks: Set[asyncio.Task] = set()

    # Collaborators

    def set_datastore(self, datastore: Pingable) -> None:
        """Wire the datastore and register its probe."""
        self.metrics.datastore = datastore
        self.health.register('database', datastore_probe(datastore, self.config.datastore))

    def set_cache(self, cache: Pingable) -> None:
        """Wire the cache and register its probe."""
        self.metrics.cache = cache
        self.health.register('cache', cache_probe(cache, self.config.cache))

    def set_gateway(self, gateway: GatewaySnapshot) -> None:
        """Wire the chat gateway and register its probe."""
        self.metrics.gateway = gateway
        self.health.register('gateway', gateway_probe(gateway, self.config.gateway))

    # Lifecycle

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == ServiceState.RUNNING

    async def start(self) -> None:
        """
        Run one health pass and one collection, then start both loops.

        A second call while running logs a warning and does nothing.
        """
        async with self._state_lock:
            if self._state == ServiceState.RUNNING:
                self.logger.warning("Monitoring service already running")
                return

            self._state = ServiceState.STARTING
            self.logger.info("Starting monitoring service...")

            await self.run_health_checks()
            await self.collect_metrics()

            self._runner.start_periodic_task(
                HEALTH_LOOP,
                self.run_health_checks,
                self.config.health_check_interval_seconds
            )
            self._runner.start_periodic_task(
                METRICS_LOOP,
                self.collect_metrics,
                self.config.metrics_collection_interval_seconds
            )

            self._state = ServiceState.RUNNING
            self._started_at = time.time()

        self.logger.info(
            f"Monitoring service started ({len(self.health)} health checks, "
            f"health every {self.config.health_check_interval_seconds}s, "
            f"metrics every {self.config.metrics_collection_interval_seconds}s)"
        )

    async def shutdown(self) -> None:
        """Stop both loops. Safe to call repeatedly and when not running."""
        async with self._state_lock:
            if self._state != ServiceState.RUNNING:
                return

            self._state = ServiceState.STOPPING
            self.logger.info("Stopping monitoring service...")

            try:
                await self._runner.stop_all_tasks()
            finally:
                self._state = ServiceState.STOPPED

        uptime = time.time() - self._started_at if self._started_at else 0.0
        self.logger.info(f"Monitoring service stopped (ran for {uptime:.1f}s)")

    async def run_health_checks(self) -> List[HealthCheckResult]:
        """One health pass; errors are logged, never raised."""
        try:
            return await self.health.run_all()
        except Exception as e:
            error = handle_error(e, context={'component': HEALTH_LOOP})
            self.logger.error(f"Health check pass failed: {error}")
            return []

    async def collect_metrics(self) -> Optional[SystemMetrics]:
        """One metrics collection; errors are logged, never raised."""
        try:
            return await self.metrics.collect()
        except Exception as e:
            error = handle_error(e, context={'component': METRICS_LOOP})
            self.logger.error(f"Metrics collection failed: {error}")
            return None

    # Queries

    async def get_system_status(self) -> SystemStatus:
        """Fresh health pass, latest metrics and active alerts."""
        with performance_context("system_status", slow_ms=self.config.performance.response_time_threshold):
            results = await self.run_health_checks()

        return SystemStatus(
            status=determine_overall_status(results),
            health_checks=results,
            metrics=self.metrics.latest(),
            alerts=self.alert_manager.get_active_alerts(),
            uptime=self._uptime(),
            counters=self.counters.get_counters()
        )

    def get_metrics(self) -> List[SystemMetrics]:
        return self.metrics.get_metrics()

    def get_active_alerts(self) -> List[Alert]:
        return self.alert_manager.get_active_alerts()

    def resolve_alert(self, alert_id: str) -> bool:
        return self.alert_manager.resolve_alert(alert_id)

    def get_counters(self) -> List[Counter]:
        return self.counters.get_counters()

    def increment_counter(self, name: str, delta: int = 1) -> None:
        self.counters.increment(name, delta)

    def _uptime(self) -> float:
        try:
            return self.metrics.sampler.process_info().uptime
        except Exception as e:
            self.logger.debug(f"Falling back to service uptime: {e}")
            return time.time() - self._started_at if self._started_at else 0.0

    # Process fault integration

    def install_process_handlers(
        self,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        signals: bool = True
    ) -> None:
        """
        Wire process faults into the service.

        SIGINT/SIGTERM shut the service down and then call ``exit_func`` with
        0 (or 1 if shutdown raised). Uncaught exceptions in threads, the main
        excepthook and unhandled event loop errors are logged and recorded as
        critical alerts; they never trigger shutdown.

        Args:
            loop: Event loop to attach to (defaults to the running loop)
            signals: Install signal handlers; disable when a host server owns signals

        Raises:
            LifecycleError: If handlers are already installed
        """
        if self._handler_loop is not None:
            raise LifecycleError("Process handlers already installed", source_id="monitoring_service")

        loop = loop or asyncio.get_running_loop()
        self._handler_loop = loop

        if signals:
            for sig in (signal.SIGINT, signal.SIGTERM):
                self._install_signal_handler(loop, sig)

        self._previous_excepthook = sys.excepthook
        sys.excepthook = self._handle_uncaught_exception

        self._previous_threading_excepthook = threading.excepthook
        threading.excepthook = self._handle_thread_exception

        self._previous_loop_handler = loop.get_exception_handler()
        loop.set_exception_handler(self._handle_async_exception)

        self.logger.debug("Process fault handlers installed")

    def uninstall_process_handlers(self) -> None:
        """Restore the hooks replaced by ``install_process_handlers``."""
        loop = self._handler_loop

        for sig in self._installed_signals:
            previous = self._previous_signal_handlers.pop(sig, None)
            if previous is not None:
                signal.signal(sig, previous)
            elif loop is not None:
                loop.remove_signal_handler(sig)
        self._installed_signals = []

        if self._previous_excepthook is not None:
            sys.excepthook = self._previous_excepthook
            self._previous_excepthook = None

        if self._previous_threading_excepthook is not None:
            threading.excepthook = self._previous_threading_excepthook
            self._previous_threading_excepthook = None

        if loop is not None:
            loop.set_exception_handler(self._previous_loop_handler)
            self._previous_loop_handler = None

        self._handler_loop = None

    def _install_signal_handler(self, loop: asyncio.AbstractEventLoop, sig: signal.Signals) -> None:
        try:
            loop.add_signal_handler(sig, self._on_signal, sig)
        except (NotImplementedError, RuntimeError, ValueError):
            # Windows loops and non-main threads
            try:
                self._previous_signal_handlers[sig] = signal.signal(
                    sig, lambda signum, frame: loop.call_soon_threadsafe(self._on_signal, signal.Signals(signum))
                )
            except ValueError as e:
                self.logger.warning(f"Could not register handler for {sig.name}: {e}")
                return

        self._installed_signals.append(sig)

    def _on_signal(self, sig: signal.Signals) -> None:
        self.logger.info(f"Received {sig.name}, shutting down monitoring service")
        loop = self._handler_loop or asyncio.get_event_loop()
        task = loop.create_task(self.terminate())
        self._fault_tasks.add(task)
        task.add_done_callback(self._fault_tasks.discard)

    async def terminate(self) -> None:
        """Shut down and exit with 0, or 1 when shutdown raised."""
        exit_code = 0
        try:
            await self.shutdown()
        except Exception as e:
            self.logger.error(f"Error during shutdown: {e}")
            exit_code = 1

        self._exit(exit_code)

    def _handle_uncaught_exception(
        self,
        exc_type: Type[BaseException],
        exc: BaseException,
        tb: Optional[TracebackType]
    ) -> None:
        if issubclass(exc_type, KeyboardInterrupt) and self._previous_excepthook is not None:
            self._previous_excepthook(exc_type, exc, tb)
            return

        self.logger.error(UNCAUGHT_EXCEPTION_MESSAGE, exc_info=(exc_type, exc, tb))
        self._record_fault(UNCAUGHT_EXCEPTION_MESSAGE, exc, tb)

    def _handle_thread_exception(self, args: threading.ExceptHookArgs) -> None:
        if args.exc_type is SystemExit:
            return

        thread_name = args.thread.name if args.thread else "unknown"
        self.logger.error(
            f"{UNCAUGHT_EXCEPTION_MESSAGE} in thread {thread_name}",
            exc_info=(args.exc_type, args.exc_value, args.exc_traceback)
        )
        self._record_fault(UNCAUGHT_EXCEPTION_MESSAGE, args.exc_value, args.exc_traceback, thread=thread_name)

    def _handle_async_exception(self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        exc = context.get('exception')
        message = context.get('message', UNHANDLED_ASYNC_MESSAGE)

        self.logger.error(f"{UNHANDLED_ASYNC_MESSAGE}: {message}", error=str(exc) if exc else None)
        self._record_fault(
            UNHANDLED_ASYNC_MESSAGE,
            exc,
            exc.__traceback__ if exc else None,
            context_message=message
        )

    def _record_fault(
        self,
        message: str,
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
        **extra: Any
    ) -> None:
        details: Dict[str, Any] = {
            'error': str(exc) if exc is not None else None,
            'error_type': type(exc).__name__ if exc is not None else None,
            'stack': ''.join(traceback.format_tb(tb)) if tb is not None else None,
            **extra
        }

        try:
            self.alert_manager.create_alert(
                AlertType.ERROR, AlertSeverity.CRITICAL, 'system', message, details=details
            )
        except Exception as e:
            self.logger.error(f"Failed to record process fault as alert: {e}")
            return

        if self.alert_manager.critical_escalation_due():
            self.logger.critical(
                "Critical alert threshold reached",
                threshold=self.alert_manager.policy.critical_alert_threshold
            )
