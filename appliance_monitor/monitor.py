"""Sampling loop: sensor -> rolling windows -> detector -> log + fan-out.

One :class:`ApplianceMonitor` owns the three axis windows, the detector
and the sample source handle.  ``tick`` is a single cycle; ``run`` drives
ticks at a fixed cadence until its stop event is set, always letting the
in-flight tick finish.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from .constants import (
    DEFAULT_INTERVAL_S,
    DEFAULT_MAX_POINTS,
    DEFAULT_MAX_READ_FAILURES,
    DEFAULT_RUN_THRESHOLD,
    DEVIATION_SCALE,
)
from .domain_models import ActivityEvent, ActivityType, Sample, StateTransition, format_timestamp
from .monitor_db import StorageError
from .processing import RollingWindow, StateDetector

if TYPE_CHECKING:
    from .activity_store import ActivityStore
    from .notifications import NotificationFanout
    from .sample_source import SampleSource

LOGGER = logging.getLogger(__name__)


class ApplianceMonitor:
    def __init__(
        self,
        *,
        source: SampleSource,
        activity_store: ActivityStore,
        fanout: NotificationFanout | None = None,
        interval_s: float = DEFAULT_INTERVAL_S,
        max_points: int = DEFAULT_MAX_POINTS,
        threshold: float = DEFAULT_RUN_THRESHOLD,
        deviation_scale: float = DEVIATION_SCALE,
        max_consecutive_read_failures: int = DEFAULT_MAX_READ_FAILURES,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.source = source
        self.activity_store = activity_store
        self.fanout = fanout
        self.interval_s = interval_s
        self.max_consecutive_read_failures = max(1, max_consecutive_read_failures)
        self._clock = clock or (lambda: datetime.now(UTC))
        self.windows = (
            RollingWindow(max_points),
            RollingWindow(max_points),
            RollingWindow(max_points),
        )
        self.detector = StateDetector(threshold=threshold, scale=deviation_scale)
        self.sensor_state = "ok"
        self.consecutive_read_failures = 0
        self.read_failure_count = 0
        self.storage_failure_count = 0
        self.tick_count = 0
        self.last_sample: Sample | None = None
        self.last_deviations: tuple[float, float, float] = (0.0, 0.0, 0.0)

    @property
    def state(self) -> ActivityType:
        return self.detector.state

    @property
    def threshold(self) -> float:
        return self.detector.threshold

    def set_threshold(self, threshold: float) -> None:
        if threshold != self.detector.threshold:
            LOGGER.info("Run threshold changed %s -> %s", self.detector.threshold, threshold)
        self.detector.threshold = float(threshold)

    def record_app_started(self) -> ActivityEvent | None:
        """Log the startup marker event; a storage failure is logged, not raised."""
        try:
            return self.activity_store.add(
                ActivityEvent(timestamp=self._clock(), type=ActivityType.APP_STARTED)
            )
        except StorageError:
            self.storage_failure_count += 1
            LOGGER.warning("Could not record app start event", exc_info=True)
            return None

    async def _read_sample(self) -> Sample | None:
        try:
            x, y, z = await asyncio.to_thread(self.source.read)
        except Exception:
            self.consecutive_read_failures += 1
            self.read_failure_count += 1
            if self.consecutive_read_failures == self.max_consecutive_read_failures:
                self.sensor_state = "unhealthy"
                LOGGER.error(
                    "Sensor read failed %d consecutive times; sensor flagged unhealthy",
                    self.consecutive_read_failures,
                    exc_info=True,
                )
            elif self.consecutive_read_failures < self.max_consecutive_read_failures:
                self.sensor_state = "degraded"
                LOGGER.warning("Sensor read failed; skipping tick", exc_info=True)
            else:
                LOGGER.debug("Sensor read still failing (%d)", self.consecutive_read_failures)
            return None
        if self.consecutive_read_failures:
            LOGGER.info(
                "Sensor read recovered after %d failure(s)", self.consecutive_read_failures
            )
        self.consecutive_read_failures = 0
        self.sensor_state = "ok"
        return Sample(x=float(x), y=float(y), z=float(z), taken_at=self._clock())

    async def tick(self) -> StateTransition | None:
        """Run one sampling cycle; returns the transition it produced, if any."""
        self.tick_count += 1
        sample = await self._read_sample()
        if sample is None:
            return None
        self.last_sample = sample
        for window, value in zip(self.windows, (sample.x, sample.y, sample.z), strict=True):
            window.push(value)
        deviations = tuple(window.population_std() for window in self.windows)
        self.last_deviations = deviations  # type: ignore[assignment]
        transition = self.detector.update(deviations, sample.taken_at)
        if transition is None:
            return None

        LOGGER.info(
            "Appliance state: %s (scaled deviations %s)",
            transition.event.type.label,
            ", ".join(f"{d:.2f}" for d in self.detector.scaled(deviations)),
        )
        try:
            await asyncio.to_thread(self.activity_store.add, transition.event)
        except StorageError:
            self.storage_failure_count += 1
            LOGGER.warning("Could not persist %s event", transition.event.type.name, exc_info=True)
        if self.fanout is not None:
            await self.fanout.notify(transition)
        return transition

    async def run(self, stop_event: asyncio.Event) -> None:
        loop = asyncio.get_running_loop()
        LOGGER.info("Sampling loop started (interval %.2fs)", self.interval_s)
        while not stop_event.is_set():
            tick_start = loop.time()
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                LOGGER.warning("Sampling tick failed; will retry.", exc_info=True)
            delay = max(0.0, self.interval_s - (loop.time() - tick_start))
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=delay)
            except TimeoutError:
                pass
        LOGGER.info("Sampling loop stopped after %d tick(s)", self.tick_count)

    def status(self) -> dict[str, Any]:
        return {
            "state": self.detector.state.label,
            "eventtype": int(self.detector.state),
            "running_since": format_timestamp(self.detector.started_at),
            "threshold": self.detector.threshold,
            "deviations": [round(d, 3) for d in self.detector.scaled(self.last_deviations)],
            "samples": len(self.windows[0]),
            "sensor_state": self.sensor_state,
            "consecutive_read_failures": self.consecutive_read_failures,
            "read_failures": self.read_failure_count,
            "storage_failures": self.storage_failure_count,
            "ticks": self.tick_count,
        }
