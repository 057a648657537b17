from __future__ import annotations

import numpy as np
import pytest

from appliance_monitor.processing.buffers import RollingWindow


def test_empty_and_single_sample_have_zero_deviation() -> None:
    window = RollingWindow(5)
    assert window.population_std() == 0.0
    window.push(3.5)
    assert len(window) == 1
    assert window.population_std() == 0.0


def test_population_std_matches_numpy_ddof0() -> None:
    window = RollingWindow(10)
    values = [1.0, 2.0, 4.0, 8.0]
    for v in values:
        window.push(v)
    assert window.population_std() == pytest.approx(float(np.std(values)))


def test_constant_values_have_zero_deviation() -> None:
    window = RollingWindow(4)
    for _ in range(9):
        window.push(0.98)
    assert window.population_std() == pytest.approx(0.0, abs=1e-12)


def test_evicts_oldest_once_full() -> None:
    window = RollingWindow(3)
    for v in (1.0, 2.0, 3.0, 4.0, 5.0):
        window.push(v)
    assert len(window) == 3
    assert window.values().tolist() == [3.0, 4.0, 5.0]
    assert window.population_std() == pytest.approx(float(np.std([3.0, 4.0, 5.0])))


def test_length_never_exceeds_capacity() -> None:
    window = RollingWindow(120)
    for i in range(500):
        window.push(float(i))
        assert len(window) <= 120
    assert window.values()[0] == 380.0
    assert window.values()[-1] == 499.0


def test_values_before_full_are_in_insertion_order() -> None:
    window = RollingWindow(5)
    for v in (7.0, 8.0):
        window.push(v)
    assert window.values().tolist() == [7.0, 8.0]


def test_clear_resets_window() -> None:
    window = RollingWindow(3)
    for v in (1.0, 5.0):
        window.push(v)
    window.clear()
    assert len(window) == 0
    assert window.population_std() == 0.0


def test_rejects_non_positive_capacity() -> None:
    with pytest.raises(ValueError):
        RollingWindow(0)
