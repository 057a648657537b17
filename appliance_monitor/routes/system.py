"""System state endpoint."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter

from .. import __version__
from ..api_models import SystemStateResponse
from ..constants import KEY_DEVICE_ID
from ..domain_models import ActivityType, format_timestamp
from ._helpers import call_store

if TYPE_CHECKING:
    from ..app import RuntimeState


def create_system_routes(state: RuntimeState) -> APIRouter:
    router = APIRouter()

    @router.get("/api/system/state", response_model=SystemStateResponse)
    async def system_state() -> SystemStateResponse:
        latest = await call_store(state.activity_store.get_latest)
        device_id = await call_store(state.settings_store.value, KEY_DEVICE_ID)
        return {
            "starttime": format_timestamp(state.started_at),
            "appversion": __version__,
            "devicerunning": latest.type == ActivityType.RUNNING,
            "deviceId": device_id,
            "monitor": state.monitor.status(),
        }

    return router
