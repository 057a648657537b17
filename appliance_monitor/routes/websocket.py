"""WebSocket endpoint for live appliance state changes."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

if TYPE_CHECKING:
    from ..app import RuntimeState

LOGGER = logging.getLogger(__name__)


def create_websocket_routes(state: RuntimeState) -> APIRouter:
    router = APIRouter()

    @router.websocket("/ws")
    async def ws_endpoint(ws: WebSocket) -> None:
        await ws.accept()
        conn = await state.ws_hub.add(ws)
        writer = asyncio.create_task(state.ws_hub.pump(conn), name="ws-writer")
        try:
            while True:
                # Incoming messages are ignored; reading detects disconnects.
                await ws.receive_text()
        except WebSocketDisconnect:
            LOGGER.debug("WebSocket client disconnected")
        except Exception:
            LOGGER.warning("WebSocket handler error", exc_info=True)
        finally:
            await state.ws_hub.remove(ws)
            writer.cancel()
            await asyncio.gather(writer, return_exceptions=True)

    return router
