"""Config endpoints - list, bulk set, and per-name get/set/remove."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter

from ..api_models import ConfigItemRequest, ConfigItemResponse, ConfigValueRequest
from ..domain_models import ConfigItem
from ._helpers import call_store

if TYPE_CHECKING:
    from ..app import RuntimeState


def create_config_routes(state: RuntimeState) -> APIRouter:
    router = APIRouter()

    @router.get("/api/config", response_model=list[ConfigItemResponse])
    async def get_all_config() -> list[ConfigItemResponse]:
        items = await call_store(state.settings_store.get_all)
        return [item.to_dict() for item in items]

    @router.post("/api/config", response_model=list[ConfigItemResponse])
    async def set_config_items(req: list[ConfigItemRequest]) -> list[ConfigItemResponse]:
        items = [ConfigItem(name=entry.name, value=entry.value) for entry in req]
        merged = await call_store(state.settings_store.set_many, items)
        state.apply_monitor_settings()
        return [item.to_dict() for item in merged]

    @router.get("/api/config/{name}", response_model=ConfigItemResponse)
    async def get_config_item(name: str) -> ConfigItemResponse:
        item = await call_store(state.settings_store.get, name)
        return item.to_dict()

    @router.post("/api/config/{name}", response_model=ConfigItemResponse)
    async def set_config_item(name: str, req: ConfigValueRequest) -> ConfigItemResponse:
        item = await call_store(state.settings_store.set, ConfigItem(name=name, value=req.value))
        state.apply_monitor_settings()
        return item.to_dict()

    @router.delete("/api/config/{name}", response_model=ConfigItemResponse)
    async def remove_config_item(name: str) -> ConfigItemResponse:
        await call_store(state.settings_store.remove, name)
        state.apply_monitor_settings()
        item = await call_store(state.settings_store.get, name)
        return item.to_dict()

    return router
