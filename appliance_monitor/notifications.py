"""Fan-out of detector transitions to the live feed, the cloud mirror and push.

The three channels are independent: a failing cloud POST never delays the
websocket broadcast and never blocks the push notification.  Outbound
HTTP calls run in worker threads as detached tasks tracked so shutdown
can wait for them.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from .constants import (
    KEY_DEVICE_ID,
    KEY_NAME,
    KEY_PUSHOVER_API_KEY,
    KEY_PUSHOVER_RECIPIENT,
)
from .domain_models import ActivityEvent, ActivityType, StateTransition, format_timestamp

if TYPE_CHECKING:
    from .settings_store import SettingsStore
    from .ws_hub import WebSocketHub

LOGGER = logging.getLogger(__name__)

_JSON_CONTENT_TYPE = "application/json; charset=UTF-8"
_FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class CloudMirror:
    """Best-effort POST of activity events to a remote collector."""

    def __init__(self, url: str, timeout_s: float = 10.0) -> None:
        self.url = url
        self.timeout_s = timeout_s

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    @staticmethod
    def build_payload(device_id: str, event: ActivityEvent) -> dict[str, Any]:
        return {
            "deviceId": device_id,
            "timestamp": format_timestamp(event.timestamp),
            "eventType": int(event.type),
        }

    def send(self, device_id: str, event: ActivityEvent) -> int:
        body = json.dumps(self.build_payload(device_id, event)).encode("utf-8")
        req = Request(
            self.url,
            data=body,
            headers={"Content-Type": _JSON_CONTENT_TYPE},
            method="POST",
        )
        with urlopen(req, timeout=self.timeout_s) as resp:  # noqa: S310
            return int(resp.status)


class PushoverClient:
    """Minimal client for the Pushover messages API."""

    def __init__(self, url: str, timeout_s: float = 10.0) -> None:
        self.url = url
        self.timeout_s = timeout_s

    def send(self, api_key: str, recipient: str, message: str, sound: str = "bike") -> int:
        form = {"token": api_key, "user": recipient, "message": message}
        if sound:
            form["sound"] = sound
        req = Request(
            self.url,
            data=urlencode(form).encode("utf-8"),
            headers={"Content-Type": _FORM_CONTENT_TYPE},
            method="POST",
        )
        with urlopen(req, timeout=self.timeout_s) as resp:  # noqa: S310
            return int(resp.status)


def finished_message(name: str, transition: StateTransition) -> str:
    minutes = transition.run_minutes or 0
    return f"{name} has finished running.  It ran for about {minutes} minutes"


def state_message(name: str, transition: StateTransition) -> dict[str, Any]:
    """Live-feed payload for one transition."""
    event = transition.event
    return {
        "type": "appliance_state",
        "state": event.type.label,
        "eventtype": int(event.type),
        "timestamp": format_timestamp(event.timestamp),
        "run_minutes": transition.run_minutes,
        "name": name,
    }


class NotificationFanout:
    def __init__(
        self,
        *,
        hub: WebSocketHub,
        settings: SettingsStore,
        cloud: CloudMirror | None = None,
        push: PushoverClient | None = None,
        push_sound: str = "bike",
    ) -> None:
        self.hub = hub
        self.settings = settings
        self.cloud = cloud
        self.push = push
        self.push_sound = push_sound
        self._pending: set[asyncio.Task] = set()
        self.failure_count = 0

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def notify(self, transition: StateTransition) -> None:
        """Dispatch *transition* to every channel; never raises for channel failures."""
        event = transition.event
        if event.type not in (ActivityType.RUNNING, ActivityType.STOPPED):
            return
        name = await self._setting(KEY_NAME) or "Appliance"

        try:
            await self.hub.broadcast(state_message(name, transition))
        except Exception:
            self.failure_count += 1
            LOGGER.warning("Live broadcast of %s failed", event.type.name, exc_info=True)

        if self.cloud is not None and self.cloud.enabled:
            device_id = await self._setting(KEY_DEVICE_ID)
            self._spawn(
                "cloud mirror",
                asyncio.to_thread(self.cloud.send, device_id, event),
            )

        if event.type == ActivityType.STOPPED and self.push is not None:
            recipient = await self._setting(KEY_PUSHOVER_RECIPIENT)
            api_key = await self._setting(KEY_PUSHOVER_API_KEY)
            if recipient and api_key:
                self._spawn(
                    "push notification",
                    asyncio.to_thread(
                        self.push.send,
                        api_key,
                        recipient,
                        finished_message(name, transition),
                        self.push_sound,
                    ),
                )
            elif recipient:
                LOGGER.warning(
                    "Push recipient configured without %s; skipping", KEY_PUSHOVER_API_KEY
                )

    async def drain(self, timeout_s: float) -> bool:
        """Wait up to *timeout_s* for in-flight deliveries; True when all finished."""
        if not self._pending:
            return True
        _, still_pending = await asyncio.wait(set(self._pending), timeout=timeout_s)
        if still_pending:
            LOGGER.warning(
                "%d notification(s) still in flight after %.1fs; abandoning",
                len(still_pending),
                timeout_s,
            )
            for task in still_pending:
                task.cancel()
            return False
        return True

    async def _setting(self, name: str) -> str:
        value = await asyncio.to_thread(self.settings.value, name)
        return value.strip()

    def _spawn(self, channel: str, coro: Any) -> None:
        task = asyncio.create_task(self._guard(channel, coro), name=f"notify-{channel}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _guard(self, channel: str, coro: Any) -> None:
        try:
            status = await coro
            LOGGER.debug("%s delivered (status=%s)", channel, status)
        except asyncio.CancelledError:
            raise
        except Exception:
            self.failure_count += 1
            LOGGER.warning("Sending %s failed", channel, exc_info=True)
