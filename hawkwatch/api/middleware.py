"""
API monitoring middleware.

Counts every HTTP request by method and status and raises a performance alert
when a request takes longer than the configured response time threshold.
"""

import time

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..alerts.manager import AlertManager, AlertSeverity, AlertType
from ..config import PerformanceThresholds
from ..monitoring.counters import CounterRegistry
from ..utils.logging import get_logger


class RequestMonitor:
    """Records completed requests into counters and slow-request alerts."""

    def __init__(
        self,
        counters: CounterRegistry,
        alert_manager: AlertManager,
        thresholds: PerformanceThresholds
    ):
        self.counters = counters
        self.alert_manager = alert_manager
        self.thresholds = thresholds
        self.logger = get_logger(__name__)

    def record(self, method: str, path: str, status_code: int, duration_ms: float) -> None:
        self.counters.increment('api_requests_total')
        self.counters.increment(f"api_requests_{method.lower()}")
        self.counters.increment(f"api_responses_{status_code}")

        if duration_ms > self.thresholds.response_time_threshold:
            duration = round(duration_ms)
            self.logger.warning(
                f"Slow API request: {method} {path}",
                duration=duration,
                status_code=status_code
            )
            self.alert_manager.create_alert(
                AlertType.PERFORMANCE,
                AlertSeverity.MEDIUM,
                'api',
                f"Slow API request: {method.upper()} {path} ({duration}ms)",
                details={
                    'method': method,
                    'path': path,
                    'status_code': status_code,
                    'duration': duration
                }
            )


class ApiMonitoringMiddleware:
    """
    ASGI middleware timing each HTTP request for a RequestMonitor.

    A request is recorded when the last body chunk has been sent, so
    streaming responses are timed to completion. A request whose handler
    raises is recorded as a 500 and the exception propagates.
    """

    def __init__(self, app: ASGIApp, monitor: RequestMonitor):
        self.app = app
        self.monitor = monitor

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method = scope["method"]
        path = scope["path"]
        start_time = time.perf_counter()
        status_code = 500
        recorded = False

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code, recorded
            if message["type"] == "http.response.start":
                status_code = message["status"]

            await send(message)

            if message["type"] == "http.response.body" and not message.get("more_body", False):
                recorded = True
                self.monitor.record(method, path, status_code, (time.perf_counter() - start_time) * 1000)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception:
            if not recorded:
                self.monitor.record(method, path, 500, (time.perf_counter() - start_time) * 1000)
            raise
