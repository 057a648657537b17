"""Pydantic request/response models for the appliance monitor HTTP API.

Separated from the route modules to keep routing logic distinct from data
contracts.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class ActivityRangeRequest(BaseModel):
    starttime: datetime | None = None
    endtime: datetime | None = None


class ConfigItemRequest(BaseModel):
    name: str = ""
    value: str = ""


class ConfigValueRequest(BaseModel):
    value: str = Field(default="", max_length=4096)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class ActivityEventResponse(BaseModel):
    timestamp: str | None
    eventtype: int


class ActivityDeleteResponse(BaseModel):
    deleted: int


class ConfigItemResponse(BaseModel):
    id: int
    name: str
    value: str
    updated: str | None = None


class SystemStateResponse(BaseModel):
    starttime: str
    appversion: str
    devicerunning: bool
    deviceId: str
    monitor: dict[str, Any]


class HealthResponse(BaseModel):
    status: str
    monitor_state: str
    sensor_state: str
    read_failures: int
    notification_failures: int
