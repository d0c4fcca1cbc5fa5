"""
FastAPI application factory for the monitoring surface.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from .. import __version__
from ..app import MonitoringService
from ..utils.logging import get_logger
from .middleware import ApiMonitoringMiddleware, RequestMonitor
from .routes import create_monitoring_router

logger = get_logger(__name__)


def create_http_app(service: MonitoringService, install_handlers: bool = False) -> FastAPI:
    """
    Create the HTTP application around ``service``.

    The lifespan starts the service on startup and shuts it down on exit.

    Args:
        service: Monitoring service exposed by the app
        install_handlers: Install fault hooks on the server loop at startup.
            Signals stay with the host server, whose shutdown runs the lifespan exit.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if install_handlers:
            service.install_process_handlers(signals=False)

        await service.start()
        logger.info("Monitoring HTTP surface ready")

        try:
            yield
        finally:
            await service.shutdown()
            if install_handlers:
                service.uninstall_process_handlers()

    app = FastAPI(
        title="Hawkwatch",
        description="Health, metrics and alerts for a long-running service",
        version=__version__,
        lifespan=lifespan
    )

    app.add_middleware(
        ApiMonitoringMiddleware,
        monitor=RequestMonitor(service.counters, service.alert_manager, service.config.performance)
    )
    app.include_router(create_monitoring_router(service))

    return app
