"""Hysteresis state machine deciding whether the appliance is running.

All three axes must agree: the appliance starts when every scaled
deviation is strictly above the threshold and stops when every one is
strictly below it.  Mixed readings leave the latched state unchanged, so
a single-axis bump never toggles the state.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime

from ..constants import DEFAULT_RUN_THRESHOLD, DEVIATION_SCALE
from ..domain_models import ActivityEvent, ActivityType, StateTransition

LOGGER = logging.getLogger(__name__)


class StateDetector:
    def __init__(
        self,
        threshold: float = DEFAULT_RUN_THRESHOLD,
        scale: float = DEVIATION_SCALE,
    ) -> None:
        self.threshold = float(threshold)
        self.scale = float(scale)
        self._state = ActivityType.UNKNOWN
        self._started_at: datetime | None = None

    @property
    def state(self) -> ActivityType:
        return self._state

    @property
    def started_at(self) -> datetime | None:
        """Start time of the current run, or ``None`` when not running."""
        return self._started_at

    def scaled(self, deviations: Sequence[float]) -> tuple[float, ...]:
        return tuple(float(d) * self.scale for d in deviations)

    def update(self, deviations: Sequence[float], now: datetime) -> StateTransition | None:
        """Feed one tick of per-axis deviations; return a transition or ``None``."""
        if len(deviations) != 3:
            raise ValueError(f"Expected 3 axis deviations, got {len(deviations)}")
        scaled = self.scaled(deviations)
        if self._state != ActivityType.RUNNING and all(d > self.threshold for d in scaled):
            self._state = ActivityType.RUNNING
            self._started_at = now
            LOGGER.debug("Detector latched RUNNING with scaled deviations %s", scaled)
            return StateTransition(event=ActivityEvent(timestamp=now, type=ActivityType.RUNNING))
        if self._state == ActivityType.RUNNING and all(d < self.threshold for d in scaled):
            started_at = self._started_at or now
            self._state = ActivityType.STOPPED
            self._started_at = None
            LOGGER.debug("Detector latched STOPPED with scaled deviations %s", scaled)
            return StateTransition(
                event=ActivityEvent(timestamp=now, type=ActivityType.STOPPED),
                run_duration=now - started_at,
            )
        return None
