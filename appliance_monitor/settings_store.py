from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime
from types import MappingProxyType

from .domain_models import ConfigItem, format_timestamp
from .monitor_db import MonitorDB, StorageError

LOGGER = logging.getLogger(__name__)


class ConfigValidationError(ValueError):
    """Raised when a config item is rejected before anything is written."""


def _require_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ConfigValidationError("Config name can't be blank")
    return cleaned


class SettingsStore:
    """Named config values: static defaults overlaid by persisted overrides.

    Defaults come from the ``settings`` section of the YAML config and are
    read-only at runtime.  Persisted overrides live in the ``config_items``
    table and win over defaults of the same name.
    """

    def __init__(
        self,
        db: MonitorDB,
        defaults: Mapping[str, str] | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._db = db
        self._defaults: Mapping[str, str] = MappingProxyType(dict(defaults or {}))
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def defaults(self) -> Mapping[str, str]:
        return self._defaults

    def get(self, name: str) -> ConfigItem:
        """Persisted value, else the static default, else an empty value."""
        default = ConfigItem(name=name, value=self._defaults.get(name, ""))
        try:
            record = self._db.get_config_record(name)
        except StorageError:
            LOGGER.warning("Reading config item %r failed; using default", name, exc_info=True)
            return default
        if record is None:
            return default
        return ConfigItem.from_dict(record)

    def value(self, name: str) -> str:
        return self.get(name).value

    def set(self, item: ConfigItem) -> ConfigItem:
        name = _require_name(item.name)
        record = self._db.upsert_config_record(
            name,
            item.value,
            format_timestamp(self._clock()) or "",
        )
        LOGGER.info("Config item %r set (id=%s)", name, record["id"])
        return ConfigItem.from_dict(record)

    def set_many(self, items: Iterable[ConfigItem]) -> list[ConfigItem]:
        """Validate every name, then store each item; returns the merged view."""
        pending = list(items)
        for item in pending:
            _require_name(item.name)
        for item in pending:
            self.set(item)
        return self.get_all()

    def get_all(self) -> list[ConfigItem]:
        merged: dict[str, ConfigItem] = {
            name: ConfigItem(name=name, value=self._defaults[name])
            for name in sorted(self._defaults)
        }
        try:
            records = self._db.list_config_records()
        except StorageError:
            LOGGER.warning("Listing config items failed; returning defaults", exc_info=True)
            return list(merged.values())
        # Overrides replace defaults in place; new names append in name order.
        for record in records:
            item = ConfigItem.from_dict(record)
            if item.name:
                merged[item.name] = item
        return list(merged.values())

    def remove(self, name: str) -> None:
        cleaned = _require_name(name)
        if self._db.delete_config_record(cleaned):
            LOGGER.info("Config item %r removed", cleaned)
