"""SQLite-backed persistence for the appliance monitor.

A single database file holds two independent namespaces: the
append-mostly activity log keyed by fixed-width RFC 3339 timestamps, and
the named configuration overrides keyed by config name.  Records are
stored as JSON documents so the on-disk shape matches the API shape.

Every public method is one short transaction; a process crash leaves the
file consistent.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from threading import RLock
from typing import Any

LOGGER = logging.getLogger(__name__)

_SCHEMA_VERSION = 1

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS schema_meta (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS activities (
    event_key   TEXT PRIMARY KEY,
    record_json TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS config_items (
    name        TEXT PRIMARY KEY,
    record_json TEXT NOT NULL
);
"""

_CONFIG_SEQ_KEY = "config_item_seq"


class StorageError(RuntimeError):
    """Raised when the underlying database rejects a read or write."""


class MonitorDB:
    """Thin wrapper around a SQLite database for activity and config records."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._lock = RLock()
        db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA wal_autocheckpoint=500")
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open database {db_path}: {exc}") from exc
        self._ensure_schema()

    # -- lifecycle ------------------------------------------------------------

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def _cursor(self, *, commit: bool = True) -> Iterator[sqlite3.Cursor]:
        with self._lock:
            try:
                cur = self._conn.cursor()
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc
            try:
                yield cur
                if commit:
                    self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise StorageError(str(exc)) from exc
            except Exception:
                self._conn.rollback()
                raise
            finally:
                cur.close()

    @staticmethod
    def _json_dumps(value: dict[str, Any]) -> str:
        return json.dumps(value, ensure_ascii=False, allow_nan=False, separators=(",", ":"))

    @staticmethod
    def _safe_json_loads(value: str | None, *, context: str) -> dict[str, Any] | None:
        if not value:
            return None
        try:
            data = json.loads(value)
        except json.JSONDecodeError:
            LOGGER.warning("Skipping invalid JSON payload while reading %s", context, exc_info=True)
            return None
        if not isinstance(data, dict):
            LOGGER.warning("Skipping non-object JSON payload while reading %s", context)
            return None
        return data

    def _ensure_schema(self) -> None:
        with self._cursor() as cur:
            cur.executescript(_SCHEMA_SQL)
        with self._cursor() as cur:
            cur.execute("SELECT value FROM schema_meta WHERE key = ?", ("version",))
            row = cur.fetchone()
            if row is None:
                cur.execute(
                    "INSERT INTO schema_meta (key, value) VALUES (?, ?)",
                    ("version", str(_SCHEMA_VERSION)),
                )
            elif int(row[0]) != _SCHEMA_VERSION:
                LOGGER.warning(
                    "Database %s has schema version %s; expected %s",
                    self.db_path,
                    row[0],
                    _SCHEMA_VERSION,
                )

    def _decode_rows(self, rows: list[tuple[str, str]], *, context: str) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        for key, raw in rows:
            record = self._safe_json_loads(raw, context=f"{context} {key}")
            if record is not None:
                out.append(record)
        return out

    # -- activity log ---------------------------------------------------------

    def put_activity(self, event_key: str, record: dict[str, Any]) -> None:
        with self._cursor() as cur:
            cur.execute(
                "INSERT INTO activities (event_key, record_json) VALUES (?, ?) "
                "ON CONFLICT(event_key) DO UPDATE SET record_json = excluded.record_json",
                (event_key, self._json_dumps(record)),
            )

    def activities_between(self, start_key: str, end_key: str) -> list[dict[str, Any]]:
        with self._cursor(commit=False) as cur:
            cur.execute(
                "SELECT event_key, record_json FROM activities "
                "WHERE event_key >= ? AND event_key <= ? ORDER BY event_key",
                (start_key, end_key),
            )
            rows = cur.fetchall()
        return self._decode_rows(rows, context="activity")

    def all_activities(self) -> list[dict[str, Any]]:
        with self._cursor(commit=False) as cur:
            cur.execute("SELECT event_key, record_json FROM activities ORDER BY event_key")
            rows = cur.fetchall()
        return self._decode_rows(rows, context="activity")

    def latest_activity(self) -> dict[str, Any] | None:
        with self._cursor(commit=False) as cur:
            cur.execute(
                "SELECT event_key, record_json FROM activities ORDER BY event_key DESC LIMIT 1"
            )
            row = cur.fetchone()
        if row is None:
            return None
        return self._safe_json_loads(row[1], context=f"activity {row[0]}")

    def delete_activities_between(self, start_key: str, end_key: str) -> int:
        with self._cursor() as cur:
            cur.execute(
                "DELETE FROM activities WHERE event_key >= ? AND event_key <= ?",
                (start_key, end_key),
            )
            return cur.rowcount

    # -- config items ---------------------------------------------------------

    def get_config_record(self, name: str) -> dict[str, Any] | None:
        with self._cursor(commit=False) as cur:
            cur.execute("SELECT record_json FROM config_items WHERE name = ?", (name,))
            row = cur.fetchone()
        if row is None:
            return None
        return self._safe_json_loads(row[0], context=f"config item {name!r}")

    def list_config_records(self) -> list[dict[str, Any]]:
        with self._cursor(commit=False) as cur:
            cur.execute("SELECT name, record_json FROM config_items ORDER BY name")
            rows = cur.fetchall()
        return self._decode_rows(rows, context="config item")

    def upsert_config_record(self, name: str, value: str, updated: str) -> dict[str, Any]:
        """Store *value* under *name*, keeping an existing id or allocating the next one."""
        with self._cursor() as cur:
            cur.execute("SELECT record_json FROM config_items WHERE name = ?", (name,))
            row = cur.fetchone()
            existing = (
                self._safe_json_loads(row[0], context=f"config item {name!r}") if row else None
            )
            item_id = int(existing.get("id") or 0) if existing else 0
            if item_id <= 0:
                item_id = self._next_config_id(cur)
            record = {"id": item_id, "name": name, "value": value, "updated": updated}
            cur.execute(
                "INSERT INTO config_items (name, record_json) VALUES (?, ?) "
                "ON CONFLICT(name) DO UPDATE SET record_json = excluded.record_json",
                (name, self._json_dumps(record)),
            )
            return record

    def delete_config_record(self, name: str) -> bool:
        with self._cursor() as cur:
            cur.execute("DELETE FROM config_items WHERE name = ?", (name,))
            return cur.rowcount > 0

    @staticmethod
    def _next_config_id(cur: sqlite3.Cursor) -> int:
        # Sequence lives outside config_items so removed ids are never reissued.
        cur.execute("SELECT value FROM schema_meta WHERE key = ?", (_CONFIG_SEQ_KEY,))
        row = cur.fetchone()
        next_id = (int(row[0]) if row is not None else 0) + 1
        cur.execute(
            "INSERT INTO schema_meta (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (_CONFIG_SEQ_KEY, str(next_id)),
        )
        return next_id
