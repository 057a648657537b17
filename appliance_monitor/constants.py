"""Shared detection and sampling constants.

Values that appear in more than one module live here so that a change
only needs to happen in one place.
"""

from __future__ import annotations

from typing import Final

# ---------------------------------------------------------------------------
# Rolling window
# ---------------------------------------------------------------------------
DEFAULT_MAX_POINTS: Final[int] = 120
"""Samples retained per axis (two minutes at the default 1 Hz cadence)."""

# ---------------------------------------------------------------------------
# State detection
# ---------------------------------------------------------------------------
DEVIATION_SCALE: Final[float] = 1000.0
"""Raw standard deviations (in g) are multiplied by this before comparison."""

DEFAULT_RUN_THRESHOLD: Final[float] = 8.0
"""Scaled deviation every axis must exceed (or fall below) to change state."""

# ---------------------------------------------------------------------------
# Sampling loop
# ---------------------------------------------------------------------------
DEFAULT_INTERVAL_S: Final[float] = 1.0
"""Seconds between sampling ticks."""

DEFAULT_MAX_READ_FAILURES: Final[int] = 10
"""Consecutive sensor read failures before the sensor is flagged unhealthy."""

SECONDS_PER_MINUTE: Final[float] = 60.0
"""Seconds-to-minutes conversion for run duration messages."""

# ---------------------------------------------------------------------------
# Config keys read at runtime
# ---------------------------------------------------------------------------
KEY_NAME: Final[str] = "name"
KEY_DEVICE_ID: Final[str] = "deviceID"
KEY_THRESHOLD: Final[str] = "monitor_threshold"
KEY_PUSHOVER_API_KEY: Final[str] = "pushoverapikey"
KEY_PUSHOVER_RECIPIENT: Final[str] = "pushoverrecipient"
