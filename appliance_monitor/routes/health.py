"""Health check endpoint."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter

from ..api_models import HealthResponse

if TYPE_CHECKING:
    from ..app import RuntimeState


def create_health_routes(state: RuntimeState) -> APIRouter:
    router = APIRouter()

    @router.get("/api/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        sensor_state = state.monitor.sensor_state
        return {
            "status": "ok" if sensor_state == "ok" else "degraded",
            "monitor_state": state.monitor.state.label,
            "sensor_state": sensor_state,
            "read_failures": state.monitor.read_failure_count,
            "notification_failures": state.fanout.failure_count,
        }

    return router
