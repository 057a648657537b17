from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from appliance_monitor.domain_models import ActivityType
from appliance_monitor.processing.detector import StateDetector

T0 = datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC)


def _dev(*scaled: float) -> tuple[float, ...]:
    """Raw deviations that scale (x1000) to *scaled*."""
    return tuple(v / 1000.0 for v in scaled)


def test_starts_unknown() -> None:
    detector = StateDetector()
    assert detector.state == ActivityType.UNKNOWN
    assert detector.started_at is None


def test_start_and_stop_scenario() -> None:
    detector = StateDetector(threshold=8)

    started = detector.update(_dev(9, 10, 12), T0)
    assert started is not None
    assert started.event.type == ActivityType.RUNNING
    assert started.event.timestamp == T0
    assert started.run_duration is None

    assert detector.update(_dev(5, 10, 12), T0 + timedelta(minutes=10)) is None
    assert detector.state == ActivityType.RUNNING

    stopped = detector.update(_dev(1, 1, 1), T0 + timedelta(minutes=42))
    assert stopped is not None
    assert stopped.event.type == ActivityType.STOPPED
    assert stopped.run_duration == timedelta(minutes=42)
    assert stopped.run_minutes == 42


def test_mixed_axes_never_start() -> None:
    detector = StateDetector(threshold=8)
    assert detector.update(_dev(9, 9, 7), T0) is None
    assert detector.state == ActivityType.UNKNOWN


def test_values_equal_to_threshold_do_not_transition() -> None:
    detector = StateDetector(threshold=8, scale=1.0)
    assert detector.update((8.0, 8.0, 8.0), T0) is None
    detector.update((9.0, 9.0, 9.0), T0)
    assert detector.update((8.0, 8.0, 8.0), T0 + timedelta(seconds=1)) is None
    assert detector.state == ActivityType.RUNNING


def test_quiet_readings_while_unknown_do_not_emit_stop() -> None:
    detector = StateDetector()
    assert detector.update(_dev(0, 0, 0), T0) is None
    assert detector.state == ActivityType.UNKNOWN


def test_no_duplicate_transitions() -> None:
    detector = StateDetector(threshold=8)
    readings = [(9, 9, 9)] * 3 + [(1, 1, 1)] * 3 + [(20, 20, 20)] * 2 + [(0, 0, 0)]
    emitted = []
    for i, r in enumerate(readings):
        transition = detector.update(_dev(*r), T0 + timedelta(seconds=i))
        if transition is not None:
            emitted.append(transition.event.type)
    assert emitted == [
        ActivityType.RUNNING,
        ActivityType.STOPPED,
        ActivityType.RUNNING,
        ActivityType.STOPPED,
    ]


def test_threshold_can_change_at_runtime() -> None:
    detector = StateDetector(threshold=8)
    assert detector.update(_dev(6, 6, 6), T0) is None
    detector.threshold = 5
    assert detector.update(_dev(6, 6, 6), T0) is not None


def test_requires_three_axes() -> None:
    with pytest.raises(ValueError):
        StateDetector().update((0.1, 0.2), T0)
