from __future__ import annotations

from datetime import UTC, datetime

import pytest

from appliance_monitor.domain_models import ConfigItem
from appliance_monitor.monitor_db import MonitorDB
from appliance_monitor.settings_store import ConfigValidationError, SettingsStore

T0 = datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC)

DEFAULTS = {"itemwithdefault": "default-value", "name": "appliance-monitor"}


def _store(db: MonitorDB) -> SettingsStore:
    return SettingsStore(db, DEFAULTS, clock=lambda: T0)


def test_get_returns_default_when_not_persisted(db: MonitorDB) -> None:
    item = _store(db).get("itemwithdefault")
    assert item.value == "default-value"
    assert item.id == 0


def test_get_unknown_name_returns_empty_value(db: MonitorDB) -> None:
    item = _store(db).get("nosuchitem")
    assert item.name == "nosuchitem"
    assert item.value == ""


def test_persisted_value_overrides_default(db: MonitorDB) -> None:
    store = _store(db)
    store.set(ConfigItem(name="itemwithdefault", value="x"))
    item = store.get("itemwithdefault")
    assert item.value == "x"
    assert item.last_updated == T0


def test_blank_name_is_rejected_before_any_write(db: MonitorDB) -> None:
    store = _store(db)
    with pytest.raises(ConfigValidationError, match="blank"):
        store.set(ConfigItem(name="   ", value="x"))
    assert db.list_config_records() == []
    assert isinstance(ConfigValidationError("x"), ValueError)


def test_set_keeps_id_for_existing_name(db: MonitorDB) -> None:
    store = _store(db)
    first = store.set(ConfigItem(name="a", value="1"))
    second = store.set(ConfigItem(name="a", value="2"))
    assert first.id == second.id
    assert store.get("a").value == "2"


def test_new_names_get_increasing_ids_never_reused(db: MonitorDB) -> None:
    store = _store(db)
    a = store.set(ConfigItem(name="a", value="1"))
    b = store.set(ConfigItem(name="b", value="1"))
    assert b.id > a.id
    store.remove("b")
    c = store.set(ConfigItem(name="c", value="1"))
    assert c.id > b.id


def test_get_all_merges_defaults_and_overrides_once_per_name(db: MonitorDB) -> None:
    store = _store(db)
    store.set(ConfigItem(name="name", value="washer"))
    store.set(ConfigItem(name="extra", value="e"))
    items = store.get_all()
    names = [i.name for i in items]
    assert names == ["itemwithdefault", "name", "extra"]
    assert len(names) == len(set(names))
    by_name = {i.name: i.value for i in items}
    assert by_name == {"itemwithdefault": "default-value", "name": "washer", "extra": "e"}


def test_remove_reverts_to_default(db: MonitorDB) -> None:
    store = _store(db)
    store.set(ConfigItem(name="itemwithdefault", value="x"))
    store.remove("itemwithdefault")
    assert store.get("itemwithdefault").value == "default-value"
    # Defaults themselves cannot be removed; removing again is a no-op.
    store.remove("itemwithdefault")
    assert store.get("itemwithdefault").value == "default-value"


def test_remove_blank_name_is_rejected(db: MonitorDB) -> None:
    with pytest.raises(ConfigValidationError):
        _store(db).remove("")


def test_set_many_validates_all_names_first(db: MonitorDB) -> None:
    store = _store(db)
    with pytest.raises(ConfigValidationError):
        store.set_many([ConfigItem(name="ok", value="1"), ConfigItem(name="", value="2")])
    assert store.get("ok").value == ""
    merged = store.set_many([ConfigItem(name="ok", value="1")])
    assert {i.name for i in merged} >= {"ok", "itemwithdefault"}


def test_read_failure_falls_back_to_default(db: MonitorDB, caplog) -> None:
    store = _store(db)
    db.close()
    with caplog.at_level("WARNING", logger="appliance_monitor.settings_store"):
        item = store.get("itemwithdefault")
    assert item.value == "default-value"
    assert "using default" in caplog.text


def test_defaults_are_read_only(db: MonitorDB) -> None:
    store = _store(db)
    with pytest.raises(TypeError):
        store.defaults["name"] = "other"  # type: ignore[index]
