"""Tri-axis accelerometer sources.

``Lsm303dSampleSource`` talks to the LSM303D on an Enviro pHAT over I2C
(``smbus2``, install the ``hardware`` extra).  ``SimulatedSampleSource``
produces noise with alternating idle and running periods so the monitor
can run on a development machine.
"""

from __future__ import annotations

import logging
import platform
from pathlib import Path
from typing import Any, Protocol

import numpy as np

LOGGER = logging.getLogger(__name__)

# LSM303D register map (accelerometer half)
_LSM303D_ADDRESS = 0x1D
_LSM303D_WHO_AM_I = 0x0F
_LSM303D_WHO_AM_I_VALUE = 0x49
_LSM303D_CTRL1 = 0x20
_LSM303D_CTRL2 = 0x21
_LSM303D_OUT_X_L_A = 0x28
_LSM303D_AUTO_INCREMENT = 0x80
_CTRL1_50HZ_XYZ = 0x57
_CTRL2_2G = 0x00
_FULL_SCALE_G = 2.0

_I2C_DEVICE = Path("/dev/i2c-1")
_ARM_MACHINES = ("arm", "aarch64")


class SampleSource(Protocol):
    def open(self) -> None: ...

    def read(self) -> tuple[float, float, float]: ...

    def close(self) -> None: ...


def _to_signed_16(low: int, high: int) -> int:
    val = (high << 8) | low
    if val >= 0x8000:
        return val - 0x10000
    return val


class Lsm303dSampleSource:
    """LSM303D accelerometer on I2C bus *bus_number*, +/-2 g range."""

    def __init__(self, bus_number: int = 1, address: int = _LSM303D_ADDRESS) -> None:
        self.bus_number = bus_number
        self.address = address
        self._bus: Any = None

    def open(self) -> None:
        import smbus2

        LOGGER.info("Initializing LSM303D on I2C bus %d...", self.bus_number)
        bus = smbus2.SMBus(self.bus_number)
        try:
            who_am_i = bus.read_byte_data(self.address, _LSM303D_WHO_AM_I)
            if who_am_i != _LSM303D_WHO_AM_I_VALUE:
                LOGGER.warning(
                    "Unexpected WHO_AM_I 0x%02X at address 0x%02X (expected 0x%02X)",
                    who_am_i,
                    self.address,
                    _LSM303D_WHO_AM_I_VALUE,
                )
            bus.write_byte_data(self.address, _LSM303D_CTRL1, _CTRL1_50HZ_XYZ)
            bus.write_byte_data(self.address, _LSM303D_CTRL2, _CTRL2_2G)
        except OSError:
            bus.close()
            raise
        self._bus = bus
        LOGGER.info("LSM303D ready at address 0x%02X", self.address)

    def read(self) -> tuple[float, float, float]:
        if self._bus is None:
            raise RuntimeError("LSM303D source is not open")
        raw = self._bus.read_i2c_block_data(
            self.address, _LSM303D_OUT_X_L_A | _LSM303D_AUTO_INCREMENT, 6
        )
        scale = _FULL_SCALE_G / 32768.0
        x = _to_signed_16(raw[0], raw[1]) * scale
        y = _to_signed_16(raw[2], raw[3]) * scale
        z = _to_signed_16(raw[4], raw[5]) * scale
        return x, y, z

    def close(self) -> None:
        if self._bus is not None:
            self._bus.close()
            self._bus = None


class SimulatedSampleSource:
    """Gaussian noise around 1 g on z, louder while the fake appliance runs.

    The source alternates between ``idle_ticks`` quiet reads and
    ``run_ticks`` noisy reads.
    """

    def __init__(
        self,
        *,
        idle_ticks: int = 180,
        run_ticks: int = 300,
        idle_noise_g: float = 0.001,
        run_noise_g: float = 0.05,
        seed: int | None = None,
    ) -> None:
        self.idle_ticks = max(1, idle_ticks)
        self.run_ticks = max(1, run_ticks)
        self.idle_noise_g = idle_noise_g
        self.run_noise_g = run_noise_g
        self._rng = np.random.default_rng(seed)
        self._tick = 0
        self._open = False

    @property
    def running(self) -> bool:
        cycle = self.idle_ticks + self.run_ticks
        return (self._tick % cycle) >= self.idle_ticks

    def open(self) -> None:
        self._open = True
        LOGGER.info(
            "Using simulated sample source (idle=%d ticks, run=%d ticks)",
            self.idle_ticks,
            self.run_ticks,
        )

    def read(self) -> tuple[float, float, float]:
        if not self._open:
            raise RuntimeError("Simulated source is not open")
        noise = self.run_noise_g if self.running else self.idle_noise_g
        self._tick += 1
        x, y, z = self._rng.normal(0.0, noise, size=3)
        return float(x), float(y), float(1.0 + z)

    def close(self) -> None:
        self._open = False


def hardware_available() -> bool:
    machine = platform.machine().lower()
    return (
        platform.system() == "Linux"
        and machine.startswith(_ARM_MACHINES)
        and _I2C_DEVICE.exists()
    )


def create_sample_source(kind: str = "auto") -> SampleSource:
    """Build the source named by *kind* (``auto``, ``lsm303d`` or ``simulated``)."""
    kind = kind.strip().lower()
    if kind == "auto":
        kind = "lsm303d" if hardware_available() else "simulated"
        LOGGER.info("Sensor auto-detection selected %s", kind)
    if kind == "lsm303d":
        return Lsm303dSampleSource()
    if kind == "simulated":
        return SimulatedSampleSource()
    raise ValueError(f"Unknown sample source {kind!r}")
