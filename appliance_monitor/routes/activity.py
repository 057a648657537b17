"""Activity log endpoints - list, range query, latest and range delete."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from fastapi import APIRouter, HTTPException

from ..api_models import ActivityDeleteResponse, ActivityEventResponse, ActivityRangeRequest
from ..domain_models import as_utc
from ._helpers import call_store

if TYPE_CHECKING:
    from ..app import RuntimeState

DEFAULT_RANGE = timedelta(hours=24)


def create_activity_routes(state: RuntimeState) -> APIRouter:
    router = APIRouter()

    @router.get("/api/activity", response_model=list[ActivityEventResponse])
    async def get_all_activity() -> list[ActivityEventResponse]:
        events = await call_store(state.activity_store.get_all)
        return [event.to_dict() for event in events]

    @router.post("/api/activity", response_model=list[ActivityEventResponse])
    async def get_activity_range(req: ActivityRangeRequest) -> list[ActivityEventResponse]:
        end = req.endtime or datetime.now(UTC)
        start = req.starttime or (end - DEFAULT_RANGE)
        events = await call_store(state.activity_store.get_range, start, end)
        return [event.to_dict() for event in events]

    @router.get("/api/activity/latest", response_model=ActivityEventResponse)
    async def get_latest_activity() -> ActivityEventResponse:
        event = await call_store(state.activity_store.get_latest)
        return event.to_dict()

    @router.delete("/api/activity", response_model=ActivityDeleteResponse)
    async def delete_activity(start: datetime, end: datetime) -> ActivityDeleteResponse:
        if as_utc(end) < as_utc(start):
            raise HTTPException(status_code=400, detail="end must not be before start")
        deleted = await call_store(state.activity_store.delete_range, start, end)
        return {"deleted": deleted}

    return router
