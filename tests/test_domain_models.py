from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from appliance_monitor.domain_models import (
    ActivityEvent,
    ActivityType,
    ConfigItem,
    StateTransition,
    format_event_key,
    parse_timestamp,
)


def test_event_keys_are_fixed_width_and_sort_chronologically() -> None:
    base = datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC)
    times = [base, base + timedelta(microseconds=5), base + timedelta(seconds=1, milliseconds=7)]
    keys = [format_event_key(t) for t in times]
    assert len({len(k) for k in keys}) == 1
    assert keys == sorted(keys)
    assert keys[0] == "2024-03-01T12:00:00.000000Z"


def test_event_key_normalizes_offsets_to_utc() -> None:
    plus_two = timezone(timedelta(hours=2))
    assert format_event_key(datetime(2024, 3, 1, 14, 0, tzinfo=plus_two)) == (
        "2024-03-01T12:00:00.000000Z"
    )


def test_activity_event_json_shape() -> None:
    stamp = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)
    event = ActivityEvent(timestamp=stamp, type=ActivityType.STOPPED)
    data = event.to_dict()
    assert data == {"timestamp": "2024-03-01T12:00:00Z", "eventtype": 2}
    assert ActivityEvent.from_dict(data) == event


def test_zero_event_has_no_key() -> None:
    event = ActivityEvent(timestamp=None, type=ActivityType.UNKNOWN)
    assert event.to_dict() == {"timestamp": None, "eventtype": 0}
    with pytest.raises(ValueError):
        _ = event.key


def test_parse_timestamp_accepts_z_and_offsets() -> None:
    assert parse_timestamp("2024-03-01T12:00:00Z") == datetime(2024, 3, 1, 12, tzinfo=UTC)
    assert parse_timestamp("2024-03-01T13:00:00+01:00") == datetime(2024, 3, 1, 12, tzinfo=UTC)
    assert parse_timestamp("") is None


def test_config_item_json_shape() -> None:
    item = ConfigItem(name="name", value="Washer", id=3)
    assert item.to_dict() == {"id": 3, "name": "name", "value": "Washer", "updated": None}
    assert ConfigItem.from_dict(item.to_dict()) == item


def test_run_minutes_rounds_down() -> None:
    event = ActivityEvent(timestamp=None, type=ActivityType.STOPPED)
    assert StateTransition(event, timedelta(minutes=4, seconds=59)).run_minutes == 4
    assert StateTransition(event).run_minutes is None


def test_activity_type_labels() -> None:
    assert ActivityType.RUNNING.label == "running"
    assert ActivityType.APP_STARTED.label == "app started"
