"""Vibration processing package.

- :mod:`~appliance_monitor.processing.buffers` - fixed-capacity rolling windows.
- :mod:`~appliance_monitor.processing.detector` - hysteresis state machine.
"""

from .buffers import RollingWindow
from .detector import StateDetector

__all__ = [
    "RollingWindow",
    "StateDetector",
]
