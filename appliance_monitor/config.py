from __future__ import annotations

import logging
from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .constants import (
    DEFAULT_INTERVAL_S,
    DEFAULT_MAX_POINTS,
    DEFAULT_MAX_READ_FAILURES,
    DEFAULT_RUN_THRESHOLD,
    DEVIATION_SCALE,
)

PACKAGE_DIR = Path(__file__).resolve().parent
LOGGER = logging.getLogger(__name__)

VALID_SENSORS: tuple[str, ...] = ("auto", "lsm303d", "simulated")

DEFAULT_CONFIG: dict[str, Any] = {
    "server": {"host": "127.0.0.1", "port": 3030},
    "storage": {"database_path": "data/appliance-monitor.db"},
    "monitor": {
        "interval_s": DEFAULT_INTERVAL_S,
        "max_points": DEFAULT_MAX_POINTS,
        "threshold": DEFAULT_RUN_THRESHOLD,
        "deviation_scale": DEVIATION_SCALE,
        "sensor": "auto",
        "max_consecutive_read_failures": DEFAULT_MAX_READ_FAILURES,
        "stop_timeout_s": 5.0,
    },
    "notifications": {
        "cloud_url": "https://api.appliance-monitor.com/v1/activity",
        "pushover_url": "https://api.pushover.net/1/messages.json",
        "push_sound": "bike",
        "timeout_s": 10.0,
        "ws_queue_size": 256,
        "drain_timeout_s": 5.0,
    },
    "settings": {
        "name": "appliance-monitor",
        "monitorwindow": "120",
    },
}


def documented_default_config() -> dict[str, Any]:
    """Return runtime defaults in the shape documented by config.example.yaml."""
    return deepcopy(DEFAULT_CONFIG)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _resolve_config_path(path_text: str, config_path: Path) -> Path:
    path = Path(path_text)
    if path.is_absolute():
        return path
    return config_path.resolve().parent / path


@dataclass(slots=True)
class ServerConfig:
    host: str
    port: int

    def __post_init__(self) -> None:
        if not isinstance(self.port, int) or not (1 <= self.port <= 65535):
            raise ValueError(f"ServerConfig.port must be 1-65535, got {self.port!r}")


@dataclass(slots=True)
class StorageConfig:
    database_path: Path


@dataclass(slots=True)
class MonitorConfig:
    interval_s: float
    max_points: int
    threshold: float
    deviation_scale: float
    sensor: str
    max_consecutive_read_failures: int
    stop_timeout_s: float

    def __post_init__(self) -> None:
        if self.sensor not in VALID_SENSORS:
            raise ValueError(
                f"monitor.sensor must be one of {', '.join(VALID_SENSORS)}, got {self.sensor!r}"
            )
        if self.interval_s <= 0:
            LOGGER.warning(
                "monitor.interval_s=%s is not positive - using %s",
                self.interval_s,
                DEFAULT_INTERVAL_S,
            )
            self.interval_s = DEFAULT_INTERVAL_S
        if self.max_points < 2:
            LOGGER.warning("monitor.max_points=%s is below minimum 2 - clamped", self.max_points)
            self.max_points = 2
        if self.deviation_scale <= 0:
            LOGGER.warning(
                "monitor.deviation_scale=%s is not positive - using %s",
                self.deviation_scale,
                DEVIATION_SCALE,
            )
            self.deviation_scale = DEVIATION_SCALE
        if self.threshold < 0:
            LOGGER.warning("monitor.threshold=%s is negative - clamped to 0", self.threshold)
            self.threshold = 0.0
        if self.max_consecutive_read_failures < 1:
            self.max_consecutive_read_failures = 1
        if self.stop_timeout_s < 0:
            self.stop_timeout_s = 5.0


@dataclass(slots=True)
class NotificationsConfig:
    cloud_url: str
    pushover_url: str
    push_sound: str
    timeout_s: float
    ws_queue_size: int
    drain_timeout_s: float

    def __post_init__(self) -> None:
        if self.timeout_s <= 0:
            LOGGER.warning(
                "notifications.timeout_s=%s is not positive - using 10", self.timeout_s
            )
            self.timeout_s = 10.0
        if self.ws_queue_size < 1:
            raise ValueError(
                f"notifications.ws_queue_size must be >=1, got {self.ws_queue_size!r}"
            )
        if self.drain_timeout_s < 0:
            self.drain_timeout_s = 5.0


@dataclass(slots=True)
class AppConfig:
    server: ServerConfig
    storage: StorageConfig
    monitor: MonitorConfig
    notifications: NotificationsConfig
    config_path: Path
    settings: dict[str, str] = field(default_factory=dict)


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a YAML object at the top level.")
        return data


def _settings_defaults(raw: Any) -> dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError("settings must be a mapping of config names to values.")
    out: dict[str, str] = {}
    for key, value in raw.items():
        name = str(key).strip()
        if not name:
            LOGGER.warning("Ignoring settings entry with a blank name")
            continue
        out[name] = "" if value is None else str(value)
    return out


def load_config(config_path: Path | None = None) -> AppConfig:
    path = config_path or (PACKAGE_DIR.parent / "config.yaml")
    path = path.resolve()
    override = _read_config_file(path)
    merged = _deep_merge(DEFAULT_CONFIG, override)

    server_port = int(merged["server"]["port"])
    if not 1 <= server_port <= 65535:
        raise ValueError(f"server.port must be 1-65535, got {server_port}")

    monitor_cfg = merged["monitor"]
    notify_cfg = merged["notifications"]
    app_config = AppConfig(
        server=ServerConfig(
            host=str(merged["server"]["host"]),
            port=server_port,
        ),
        storage=StorageConfig(
            database_path=_resolve_config_path(str(merged["storage"]["database_path"]), path),
        ),
        monitor=MonitorConfig(
            interval_s=float(monitor_cfg["interval_s"]),
            max_points=int(monitor_cfg["max_points"]),
            threshold=float(monitor_cfg["threshold"]),
            deviation_scale=float(monitor_cfg["deviation_scale"]),
            sensor=str(monitor_cfg["sensor"]).strip().lower(),
            max_consecutive_read_failures=int(monitor_cfg["max_consecutive_read_failures"]),
            stop_timeout_s=float(monitor_cfg.get("stop_timeout_s", 5.0)),
        ),
        notifications=NotificationsConfig(
            cloud_url=str(notify_cfg.get("cloud_url") or ""),
            pushover_url=str(notify_cfg.get("pushover_url") or ""),
            push_sound=str(notify_cfg.get("push_sound") or "bike"),
            timeout_s=float(notify_cfg["timeout_s"]),
            ws_queue_size=int(notify_cfg["ws_queue_size"]),
            drain_timeout_s=float(notify_cfg.get("drain_timeout_s", 5.0)),
        ),
        config_path=path,
        settings=_settings_defaults(merged.get("settings")),
    )
    LOGGER.info(
        "Loaded config=%s database=%s sensor=%s interval_s=%s threshold=%s",
        path,
        app_config.storage.database_path,
        app_config.monitor.sensor,
        app_config.monitor.interval_s,
        app_config.monitor.threshold,
    )
    return app_config
