"""Durable, time-ordered log of appliance activity events."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime

from .domain_models import ActivityEvent, ActivityType, format_event_key
from .monitor_db import MonitorDB

LOGGER = logging.getLogger(__name__)


class ActivityStore:
    """Activity log backed by the ``activities`` table of :class:`MonitorDB`.

    Events are keyed by their timestamp, so two events with the same
    timestamp overwrite one another.  Range queries are inclusive on both
    ends and return events in ascending time order.
    """

    def __init__(
        self,
        db: MonitorDB,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._db = db
        self._clock = clock or (lambda: datetime.now(UTC))

    def add(self, event: ActivityEvent) -> ActivityEvent:
        """Persist *event*, stamping the current time if it has none.

        Returns the event as stored.  Raises :class:`StorageError` when the
        write fails.
        """
        if event.timestamp is None:
            event = replace(event, timestamp=self._clock())
        self._db.put_activity(event.key, event.to_dict())
        LOGGER.debug("Stored activity %s at %s", event.type.name, event.key)
        return event

    def get_range(self, start: datetime, end: datetime) -> list[ActivityEvent]:
        start_key, end_key = format_event_key(start), format_event_key(end)
        if end_key < start_key:
            return []
        records = self._db.activities_between(start_key, end_key)
        return self._decode(records)

    def get_all(self) -> list[ActivityEvent]:
        return self._decode(self._db.all_activities())

    def get_latest(self) -> ActivityEvent:
        """Most recent event, or the zero ``UNKNOWN`` event when the log is empty."""
        record = self._db.latest_activity()
        if record is not None:
            decoded = self._decode([record])
            if decoded:
                return decoded[0]
        return ActivityEvent(timestamp=None, type=ActivityType.UNKNOWN)

    def delete_range(self, start: datetime, end: datetime) -> int:
        """Remove every event in ``[start, end]``; returns how many were removed."""
        start_key, end_key = format_event_key(start), format_event_key(end)
        if end_key < start_key:
            return 0
        removed = self._db.delete_activities_between(start_key, end_key)
        if removed:
            LOGGER.info("Deleted %d activity event(s) between %s and %s", removed, start, end)
        return removed

    @staticmethod
    def _decode(records: list[dict]) -> list[ActivityEvent]:
        events: list[ActivityEvent] = []
        for record in records:
            try:
                events.append(ActivityEvent.from_dict(record))
            except (TypeError, ValueError):
                LOGGER.warning("Skipping undecodable activity record %r", record, exc_info=True)
        return events
