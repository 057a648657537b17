"""Fixed-capacity rolling window over one accelerometer axis.

``RollingWindow`` keeps the most recent ``max_points`` samples in a
preallocated numpy arena indexed by a write cursor, so pushing a sample
and evicting the oldest are both O(1).
"""

from __future__ import annotations

import numpy as np

from ..constants import DEFAULT_MAX_POINTS


class RollingWindow:
    def __init__(self, max_points: int = DEFAULT_MAX_POINTS) -> None:
        if max_points < 1:
            raise ValueError(f"max_points must be >= 1, got {max_points!r}")
        self.capacity = int(max_points)
        self.data = np.zeros(self.capacity, dtype=np.float64)
        self.write_idx = 0
        self.count = 0

    def __len__(self) -> int:
        return self.count

    def push(self, value: float) -> None:
        """Append *value*, overwriting the oldest sample once full."""
        self.data[self.write_idx] = value
        self.write_idx = (self.write_idx + 1) % self.capacity
        self.count = min(self.capacity, self.count + 1)

    def values(self) -> np.ndarray:
        """Copy of the retained samples, oldest first."""
        if self.count < self.capacity:
            return self.data[: self.count].copy()
        return np.concatenate((self.data[self.write_idx :], self.data[: self.write_idx]))

    def population_std(self) -> float:
        """Population standard deviation (ddof=0); 0.0 with fewer than 2 samples."""
        if self.count < 2:
            return 0.0
        return float(np.std(self.data[: self.count] if self.count < self.capacity else self.data))

    def clear(self) -> None:
        self.write_idx = 0
        self.count = 0
