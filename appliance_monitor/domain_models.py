"""Core domain models for the appliance monitor.

Lightweight dataclasses shared by the detector, the stores and the
notification fan-out.  Each persisted model carries ``to_dict`` /
``from_dict`` so the JSON shape lives next to the type.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import IntEnum
from typing import Any

_KEY_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class ActivityType(IntEnum):
    """Kind of activity event.  Integer values are the persisted wire values."""

    UNKNOWN = 0
    RUNNING = 1
    STOPPED = 2
    APP_STARTED = 3

    @property
    def label(self) -> str:
        return self.name.lower().replace("_", " ")


def as_utc(dt: datetime) -> datetime:
    """Return *dt* in UTC; naive datetimes are taken to already be UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def format_event_key(dt: datetime) -> str:
    """Fixed-width RFC 3339 UTC key; lexicographic order matches time order."""
    return as_utc(dt).strftime(_KEY_FORMAT)


def format_timestamp(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return as_utc(dt).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an RFC 3339 string (``Z`` or offset suffix) into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    text = str(value).strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(text))


@dataclass(frozen=True, slots=True)
class Sample:
    """One tri-axis accelerometer reading (g)."""

    x: float
    y: float
    z: float
    taken_at: datetime


@dataclass(frozen=True, slots=True)
class ActivityEvent:
    """A state change recorded in the activity log.

    ``timestamp`` is ``None`` for the zero event returned when the log is
    empty; :meth:`ActivityStore.add` stamps the current time on such events.
    """

    timestamp: datetime | None
    type: ActivityType

    @property
    def key(self) -> str:
        if self.timestamp is None:
            raise ValueError("Event has no timestamp")
        return format_event_key(self.timestamp)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": format_timestamp(self.timestamp),
            "eventtype": int(self.type),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ActivityEvent:
        return cls(
            timestamp=parse_timestamp(data.get("timestamp")),
            type=ActivityType(int(data.get("eventtype", ActivityType.UNKNOWN))),
        )


@dataclass(frozen=True, slots=True)
class StateTransition:
    """Detector output: the new event plus how long the run lasted (on stop)."""

    event: ActivityEvent
    run_duration: timedelta | None = None

    @property
    def run_minutes(self) -> int | None:
        if self.run_duration is None:
            return None
        return int(self.run_duration.total_seconds() // 60)


@dataclass(frozen=True, slots=True)
class ConfigItem:
    """A named configuration value.  ``id`` 0 means not yet persisted."""

    name: str
    value: str = ""
    id: int = 0
    last_updated: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "value": self.value,
            "updated": format_timestamp(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConfigItem:
        return cls(
            name=str(data.get("name") or ""),
            value="" if data.get("value") is None else str(data["value"]),
            id=int(data.get("id") or 0),
            last_updated=parse_timestamp(data.get("updated")),
        )
