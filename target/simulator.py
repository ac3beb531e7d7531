"""
Simulated miniquad: accepts throttle command frames like the real board and
streams telemetry frames back, driven by a small rigid-body attitude model.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence

import numpy as np

from common.interface import Transmitter
from common.logger import get_logger
from common.math import Quaternion
from common.types import THROTTLE_MAX, Acceleration, Rotation, check_throttles
from miniquad.control import X_MIX
from miniquad.protocol import decode_command, encode_telemetry

logger = get_logger("simulator")


class SimVehicle:
    """
    Attitude and vertical dynamics of an X quad, in the units the board reports:
    angles in degrees, rates in deg/s, acceleration in g.

    Throttle differences drive the three attitude axes through the same mixing
    layout the ground station uses; the collective sets the body-z specific force.
    """

    def __init__(
        self,
        dt: float = 0.01,
        torque_gain: float = 4.0,
        drag: float = 2.0,
        hover_throttle: float = 110.0,
        noise_std: float = 0.0,
        seed: Optional[int] = None,
    ):
        if dt <= 0.0:
            raise ValueError("dt must be positive")
        if hover_throttle <= 0.0:
            raise ValueError("hover_throttle must be positive")
        self.dt = dt
        self.torque_gain = torque_gain
        self.drag = drag
        self.hover_throttle = hover_throttle
        self.noise_std = noise_std
        self._rng = np.random.default_rng(seed)
        self.angles = np.zeros(3)  # roll, pitch, yaw
        self.rates = np.zeros(3)
        self.throttles = np.zeros(4)
        self.time = 0.0

    def set_attitude(self, roll: float = 0.0, pitch: float = 0.0, yaw: float = 0.0) -> None:
        self.angles = np.array([roll, pitch, yaw], dtype=float)
        self.rates = np.zeros(3)

    def apply_throttles(self, throttles: Sequence[int]) -> None:
        self.throttles = np.asarray(check_throttles(throttles), dtype=float)

    def specific_force(self) -> float:
        """Body-z specific force in g; 1.0 at hover."""
        return float(self.throttles.sum() / (4.0 * self.hover_throttle))

    def step(self) -> None:
        drive = X_MIX.T @ (self.throttles / THROTTLE_MAX)
        accel = -self.torque_gain * drive[:3] * 100.0 - self.drag * self.rates
        self.rates = self.rates + accel * self.dt
        self.angles = self.angles + self.rates * self.dt
        # A grounded airframe cannot tip past vertical
        self.angles[:2] = np.clip(self.angles[:2], -85.0, 85.0)
        self.angles[2] = (self.angles[2] + 180.0) % 360.0 - 180.0
        self.time += self.dt

    def quaternion(self) -> Quaternion:
        """Attitude quaternion whose yaw/pitch/roll view reproduces ``angles``."""
        roll, pitch, yaw = (math.radians(a) for a in self.angles)
        return Quaternion.from_euler(roll, -pitch, -yaw)

    def rotation(self) -> Rotation:
        return Rotation(*self._noisy(self.rates))

    def acceleration(self) -> Acceleration:
        # Rotor thrust is the only specific force, always along body z
        return Acceleration(*self._noisy(np.array([0.0, 0.0, self.specific_force()])))

    def _noisy(self, values: np.ndarray) -> list:
        if self.noise_std > 0.0:
            values = values + self._rng.normal(0.0, self.noise_std, size=values.shape)
        return [float(v) for v in values]


class SimulatedMiniquad(Transmitter):
    """
    Stand-in for the serial link plus vehicle. ``send`` consumes principal-mode
    command frames; ``emit`` returns the next telemetry frame.
    """

    def __init__(self, vehicle: Optional[SimVehicle] = None, dt: float = 0.01):
        self.vehicle = vehicle or SimVehicle(dt=dt)
        self.connected = True
        self.frames_received = 0
        self.frames_rejected = 0

    def send(self, data: bytes, count: int) -> None:
        if not self.connected:
            raise OSError("simulated link is closed")
        throttles = decode_command(bytes(data[:count]))
        if throttles is None:
            self.frames_rejected += 1
            logger.warning(f"Ignoring malformed command frame ({count} bytes)")
            return
        self.vehicle.apply_throttles(throttles)
        self.frames_received += 1

    def emit(self) -> bytes:
        v = self.vehicle
        return encode_telemetry(
            v.quaternion(),
            v.rotation(),
            v.acceleration(),
            [int(t) for t in v.throttles],
        )

    def tick(self) -> bytes:
        """Advance the model one period and return the telemetry it produces."""
        self.vehicle.step()
        return self.emit()

    def close(self) -> None:
        self.connected = False


__all__ = ["SimVehicle", "SimulatedMiniquad"]
