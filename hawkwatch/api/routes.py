"""
Monitoring HTTP endpoints.

The router is built around an injected MonitoringService so several services
(and test instances) can coexist in one process.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from ..app import MonitoringService
from .serializers import wire_format
from ..utils.logging import get_logger

logger = get_logger(__name__)


def create_monitoring_router(service: MonitoringService) -> APIRouter:
    """Build the /monitoring router for ``service``."""
    router = APIRouter(prefix="/monitoring", tags=["Monitoring"])

    @router.get("/status")
    async def get_status() -> Dict[str, Any]:
        """Fresh health pass plus latest metrics and active alerts"""
        system_status = await service.get_system_status()
        return wire_format(system_status.to_dict())

    @router.get("/metrics")
    async def get_metrics() -> List[Dict[str, Any]]:
        return wire_format([sample.to_dict() for sample in service.get_metrics()])

    @router.get("/alerts")
    async def get_alerts() -> List[Dict[str, Any]]:
        """Active (unresolved) alerts only"""
        return wire_format([alert.to_dict() for alert in service.get_active_alerts()])

    @router.post("/alerts/{alert_id}/resolve")
    async def resolve_alert(alert_id: str):
        if not service.resolve_alert(alert_id):
            logger.info(f"Resolve requested for unknown or resolved alert {alert_id}")
            return JSONResponse(
                status_code=status.HTTP_404_NOT_FOUND,
                content={"success": False, "message": f"Alert {alert_id} not found or already resolved"}
            )

        return {"success": True, "message": f"Alert {alert_id} resolved"}

    @router.get("/counters")
    async def get_counters() -> List[Dict[str, Any]]:
        return wire_format([counter.to_dict() for counter in service.get_counters()])

    return router
