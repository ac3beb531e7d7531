"""
Shared data structures for the codec ↔ controller ↔ link boundaries.
"""

from __future__ import annotations

import operator
from dataclasses import dataclass, field
from typing import Iterable, Sequence, Tuple

from common.math import EulerAngle, Gravity, Quaternion, Vector3D, YawPitchRoll

THROTTLE_MIN = 0
THROTTLE_MAX = 255
PROPELLER_COUNT = 4


def check_throttle(value) -> int:
    """Validate a wire-level throttle value and return it as an int."""
    throttle = operator.index(value)
    if throttle < THROTTLE_MIN or throttle > THROTTLE_MAX:
        raise ValueError(f"throttle must be between {THROTTLE_MIN} and {THROTTLE_MAX}, got {throttle}")
    return throttle


def check_throttles(values: Iterable) -> Tuple[int, int, int, int]:
    throttles = tuple(check_throttle(v) for v in values)
    if len(throttles) != PROPELLER_COUNT:
        raise ValueError(f"expected {PROPELLER_COUNT} throttle values, got {len(throttles)}")
    return throttles


@dataclass(frozen=True)
class Rotation:
    """Angular rate about the body axes, deg/s, as reported by the sensor."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def as_vector(self) -> Vector3D:
        return Vector3D(self.x, self.y, self.z)


@dataclass(frozen=True)
class Acceleration:
    """Body-frame acceleration in multiples of g, as reported by the sensor."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def as_vector(self) -> Vector3D:
        return Vector3D(self.x, self.y, self.z)


class Propeller:
    """One rotor: a fixed output pin and its last known throttle (0..255)."""

    def __init__(self, pin: int = 0, throttle: int = 0):
        pin = operator.index(pin)
        if pin < 0:
            raise ValueError(f"propeller pin must be non-negative, got {pin}")
        self._pin = pin
        self._throttle = check_throttle(throttle)

    @property
    def pin(self) -> int:
        return self._pin

    @property
    def throttle(self) -> int:
        return self._throttle

    @throttle.setter
    def throttle(self, value) -> None:
        self._throttle = check_throttle(value)

    def __repr__(self) -> str:
        return f"Propeller(pin={self._pin}, throttle={self._throttle})"


@dataclass(frozen=True)
class TelemetryFrame:
    """Fields decoded from one telemetry frame."""

    quaternion: Quaternion
    rotation: Rotation
    acceleration: Acceleration
    throttles: Tuple[int, int, int, int]


@dataclass
class MiniquadStatus:
    """
    Snapshot of the vehicle as last reported: attitude quaternion, angular rate,
    acceleration and the four propellers. Derived attitude views are computed on access.
    """

    propellers: Tuple[Propeller, ...] = field(
        default_factory=lambda: tuple(Propeller() for _ in range(PROPELLER_COUNT))
    )
    quaternion: Quaternion = field(default_factory=Quaternion)
    rotation: Rotation = field(default_factory=Rotation)
    acceleration: Acceleration = field(default_factory=Acceleration)

    def __post_init__(self):
        if len(self.propellers) != PROPELLER_COUNT:
            raise ValueError(f"a miniquad has {PROPELLER_COUNT} propellers, got {len(self.propellers)}")

    @classmethod
    def from_pins(cls, pins: Sequence[int]) -> "MiniquadStatus":
        return cls(propellers=tuple(Propeller(pin) for pin in pins))

    # -- Derived views -------------------------------------------------------

    @property
    def euler_angle(self) -> EulerAngle:
        return self.quaternion.to_euler_angle()

    @property
    def gravity(self) -> Gravity:
        return self.quaternion.to_gravity()

    @property
    def yaw_pitch_roll(self) -> YawPitchRoll:
        return self.quaternion.to_yaw_pitch_roll()

    @property
    def linear_acceleration(self) -> Vector3D:
        """Measured acceleration with the gravity component removed (g)."""
        return self.acceleration.as_vector() - self.gravity.as_vector()

    @property
    def world_acceleration(self) -> Vector3D:
        """Measured acceleration expressed in the reference frame (g)."""
        return self.quaternion.rotate(self.acceleration.as_vector())

    @property
    def pins(self) -> Tuple[int, ...]:
        return tuple(p.pin for p in self.propellers)

    @property
    def throttles(self) -> Tuple[int, ...]:
        return tuple(p.throttle for p in self.propellers)

    # -- Updates -------------------------------------------------------------

    def set_throttles(self, values: Iterable) -> None:
        """Validate all four values before touching any propeller."""
        throttles = check_throttles(values)
        for propeller, throttle in zip(self.propellers, throttles):
            propeller.throttle = throttle

    def apply_frame(self, frame: TelemetryFrame) -> None:
        throttles = check_throttles(frame.throttles)
        self.quaternion = frame.quaternion
        self.rotation = frame.rotation
        self.acceleration = frame.acceleration
        for propeller, throttle in zip(self.propellers, throttles):
            propeller.throttle = throttle


__all__ = [
    "THROTTLE_MIN",
    "THROTTLE_MAX",
    "PROPELLER_COUNT",
    "check_throttle",
    "check_throttles",
    "Rotation",
    "Acceleration",
    "Propeller",
    "TelemetryFrame",
    "MiniquadStatus",
]
