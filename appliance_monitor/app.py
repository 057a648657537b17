"""Runtime orchestration: sensor -> detector -> activity log / notifications -> API.

Boundary note for maintainers:
- Keep this module focused on wiring and lifecycle, not detection details.
- Window and hysteresis math belongs in ``processing/``.
- API schemas belong in ``api_models.py``.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

import uvicorn
from fastapi import FastAPI

from .activity_store import ActivityStore
from .config import AppConfig, load_config
from .constants import KEY_DEVICE_ID, KEY_THRESHOLD
from .domain_models import ConfigItem
from .monitor import ApplianceMonitor
from .monitor_db import MonitorDB, StorageError
from .notifications import CloudMirror, NotificationFanout, PushoverClient
from .routes import create_router
from .sample_source import SampleSource, create_sample_source
from .settings_store import SettingsStore
from .ws_hub import WebSocketHub

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class RuntimeState:
    config: AppConfig
    db: MonitorDB
    activity_store: ActivityStore
    settings_store: SettingsStore
    ws_hub: WebSocketHub
    fanout: NotificationFanout
    source: SampleSource
    monitor: ApplianceMonitor
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    stop_event: asyncio.Event | None = None
    tasks: list[asyncio.Task] = field(default_factory=list)

    def apply_monitor_settings(self) -> None:
        """Push the ``monitor_threshold`` config value into the running detector."""
        raw = self.settings_store.value(KEY_THRESHOLD).strip()
        if not raw:
            self.monitor.set_threshold(self.config.monitor.threshold)
            return
        try:
            threshold = float(raw)
        except ValueError:
            LOGGER.warning("Ignoring non-numeric %s=%r", KEY_THRESHOLD, raw)
            return
        if threshold < 0:
            LOGGER.warning("Ignoring negative %s=%r", KEY_THRESHOLD, raw)
            return
        self.monitor.set_threshold(threshold)


def ensure_device_id(settings_store: SettingsStore) -> str:
    """Return the configured device id, generating and persisting one if missing."""
    device_id = settings_store.value(KEY_DEVICE_ID).strip()
    if device_id:
        return device_id
    device_id = uuid.uuid4().hex
    settings_store.set(ConfigItem(name=KEY_DEVICE_ID, value=device_id))
    LOGGER.info("Generated new device id %s", device_id)
    return device_id


def create_app(
    config_path: Path | None = None,
    *,
    source: SampleSource | None = None,
) -> FastAPI:
    config = load_config(config_path)

    db = MonitorDB(config.storage.database_path)
    activity_store = ActivityStore(db)
    settings_store = SettingsStore(db, config.settings)
    try:
        ensure_device_id(settings_store)
    except StorageError:
        LOGGER.warning("Could not persist a generated device id", exc_info=True)

    ws_hub = WebSocketHub(queue_size=config.notifications.ws_queue_size)
    notify_cfg = config.notifications
    fanout = NotificationFanout(
        hub=ws_hub,
        settings=settings_store,
        cloud=CloudMirror(notify_cfg.cloud_url, timeout_s=notify_cfg.timeout_s),
        push=(
            PushoverClient(notify_cfg.pushover_url, timeout_s=notify_cfg.timeout_s)
            if notify_cfg.pushover_url
            else None
        ),
        push_sound=notify_cfg.push_sound,
    )
    sample_source = source or create_sample_source(config.monitor.sensor)
    monitor = ApplianceMonitor(
        source=sample_source,
        activity_store=activity_store,
        fanout=fanout,
        interval_s=config.monitor.interval_s,
        max_points=config.monitor.max_points,
        threshold=config.monitor.threshold,
        deviation_scale=config.monitor.deviation_scale,
        max_consecutive_read_failures=config.monitor.max_consecutive_read_failures,
    )

    runtime = RuntimeState(
        config=config,
        db=db,
        activity_store=activity_store,
        settings_store=settings_store,
        ws_hub=ws_hub,
        fanout=fanout,
        source=sample_source,
        monitor=monitor,
    )
    runtime.apply_monitor_settings()

    async def start_runtime() -> None:
        # A sensor that cannot be initialised is fatal.
        await asyncio.to_thread(runtime.source.open)
        runtime.started_at = datetime.now(UTC)
        await asyncio.to_thread(runtime.monitor.record_app_started)
        runtime.stop_event = asyncio.Event()
        runtime.tasks = [
            asyncio.create_task(runtime.monitor.run(runtime.stop_event), name="sampling-loop"),
        ]
        LOGGER.info("Appliance monitor started")

    async def stop_runtime() -> None:
        if runtime.stop_event is not None:
            runtime.stop_event.set()
        if runtime.tasks:
            _, pending = await asyncio.wait(
                runtime.tasks, timeout=config.monitor.stop_timeout_s
            )
            for task in pending:
                LOGGER.warning("Task %s did not stop in time; cancelling", task.get_name())
                task.cancel()
            await asyncio.gather(*runtime.tasks, return_exceptions=True)
        runtime.tasks.clear()

        await runtime.fanout.drain(config.notifications.drain_timeout_s)
        try:
            await asyncio.to_thread(runtime.source.close)
        except Exception:
            LOGGER.warning("Error closing sample source", exc_info=True)
        try:
            runtime.db.close()
        except Exception:
            LOGGER.warning("Error closing monitor DB", exc_info=True)
        LOGGER.info("Appliance monitor stopped")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await start_runtime()
        try:
            yield
        finally:
            await stop_runtime()

    app = FastAPI(title="Appliance Monitor", lifespan=lifespan)
    app.state.runtime = runtime
    app.include_router(create_router(runtime))
    return app


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the appliance monitor server")
    parser.add_argument("--config", type=Path, default=None, help="Path to config YAML")
    parser.add_argument("--host", default=None, help="Override server.host")
    parser.add_argument("--port", type=int, default=None, help="Override server.port")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=os.getenv("APPLIANCE_MONITOR_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    runtime_app = create_app(config_path=args.config)
    runtime: RuntimeState = runtime_app.state.runtime
    host = args.host or runtime.config.server.host
    port = args.port or runtime.config.server.port
    try:
        uvicorn.run(
            runtime_app,
            host=host,
            port=port,
            log_level="info",
        )
    except OSError:
        LOGGER.error("Failed to bind to %s:%d.", host, port, exc_info=True)
        raise


if __name__ == "__main__":
    main()
