"""
Vector and quaternion primitives plus the attitude representations derived from them.

The quaternion is the authoritative orientation reported by the vehicle; Euler
angles, the gravity vector and yaw/pitch/roll are always recomputed from it.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import ClassVar, Dict, Tuple

import numpy as np

GRAVITY = 9.7833  # m/s^2, local gravity used by the physics-model controller


def clamp(value, low, high):
    """Clamp ``value`` to [low, high]; NaN passes through unchanged."""
    return float(np.clip(value, low, high))


class Vector3D:
    """Minimal 3-vector backed by a numpy array."""

    def __init__(self, x: float = 0.0, y: float = 0.0, z: float = 0.0):
        self.v = np.array([x, y, z], dtype=float)

    @property
    def x(self) -> float:
        return float(self.v[0])

    @property
    def y(self) -> float:
        return float(self.v[1])

    @property
    def z(self) -> float:
        return float(self.v[2])

    def magnitude(self) -> float:
        return float(np.linalg.norm(self.v))

    def __sub__(self, other: "Vector3D") -> "Vector3D":
        return Vector3D(*(self.v - other.v))

    def __repr__(self) -> str:
        return f"Vector3D({self.x:.6g}, {self.y:.6g}, {self.z:.6g})"


class _RangeChecked:
    """Rejects assignments outside the per-field limits declared in ``_limits``."""

    _limits: ClassVar[Dict[str, Tuple[float, float]]] = {}

    def __setattr__(self, name, value):
        limits = self._limits.get(name)
        if limits is not None:
            value = float(value)
            low, high = limits
            # NaN is not out of range: it only appears from degenerate input
            if value < low or value > high:
                raise ValueError(
                    f"{type(self).__name__}.{name} must lie in [{low:g}, {high:g}] degrees, got {value!r}"
                )
        super().__setattr__(name, value)


@dataclass
class EulerAngle(_RangeChecked):
    """Precession (psi), nutation (theta) and spin (phi) angles, degrees."""

    psi: float = 0.0
    theta: float = 0.0
    phi: float = 0.0

    _limits: ClassVar[Dict[str, Tuple[float, float]]] = {
        "psi": (-180.0, 180.0),
        "theta": (-180.0, 180.0),
        "phi": (-180.0, 180.0),
    }


@dataclass
class YawPitchRoll(_RangeChecked):
    """Yaw in [-180, 180], pitch and roll in [-90, 90], degrees."""

    yaw: float = 0.0
    pitch: float = 0.0
    roll: float = 0.0

    _limits: ClassVar[Dict[str, Tuple[float, float]]] = {
        "yaw": (-180.0, 180.0),
        "pitch": (-90.0, 90.0),
        "roll": (-90.0, 90.0),
    }


@dataclass
class Gravity:
    """Gravity projected onto the body axes, in multiples of g."""

    x: float = 0.0
    y: float = 0.0
    z: float = 1.0

    def as_vector(self) -> Vector3D:
        return Vector3D(self.x, self.y, self.z)


class Quaternion:
    """
    Rotation quaternion (w, x, y, z). Represents a rotation only when normalized;
    normalization is never applied implicitly.
    """

    def __init__(self, w: float = 1.0, x: float = 0.0, y: float = 0.0, z: float = 0.0):
        self.q = np.array([w, x, y, z], dtype=float)

    @property
    def w(self) -> float:
        return float(self.q[0])

    @property
    def x(self) -> float:
        return float(self.q[1])

    @property
    def y(self) -> float:
        return float(self.q[2])

    @property
    def z(self) -> float:
        return float(self.q[3])

    def magnitude(self) -> float:
        return float(math.sqrt(float(np.dot(self.q, self.q))))

    def normalize(self) -> None:
        """Scale to unit length in place. A zero quaternion becomes all NaN."""
        with np.errstate(divide="ignore", invalid="ignore"):
            self.q = self.q / self.magnitude()

    def normalized(self) -> "Quaternion":
        copy = Quaternion(*self.q)
        copy.normalize()
        return copy

    def conjugate(self) -> "Quaternion":
        w, x, y, z = self.q
        return Quaternion(w, -x, -y, -z)

    def product(self, other: "Quaternion") -> "Quaternion":
        """Hamilton product ``self * other``; the order matters."""
        w1, x1, y1, z1 = self.q
        w2, x2, y2, z2 = other.q
        return Quaternion(
            w1 * w2 - x1 * x2 - y1 * y2 - z1 * z2,
            w1 * x2 + x1 * w2 + y1 * z2 - z1 * y2,
            w1 * y2 - x1 * z2 + y1 * w2 + z1 * x2,
            w1 * z2 + x1 * y2 - y1 * x2 + z1 * w2,
        )

    def __mul__(self, other):
        if isinstance(other, Quaternion):
            return self.product(other)
        return Quaternion(*(self.q * other))

    def rotate(self, vector: Vector3D) -> Vector3D:
        """Rotate a body-frame vector into the reference frame: q * v * q'."""
        pure = Quaternion(0.0, *vector.v)
        rotated = self.product(pure).product(self.conjugate())
        return Vector3D(*rotated.q[1:])

    @classmethod
    def from_axis_angle(cls, axis, angle: float) -> "Quaternion":
        axis = np.asarray(axis, dtype=float)
        norm = np.linalg.norm(axis)
        if norm == 0.0:
            return cls()
        axis = axis / norm
        half = 0.5 * angle
        return cls(math.cos(half), *(axis * math.sin(half)))

    @classmethod
    def from_euler(cls, roll: float, pitch: float, yaw: float) -> "Quaternion":
        """Build from roll/pitch/yaw in radians (intrinsic Z-Y-X)."""
        cr, sr = math.cos(roll / 2), math.sin(roll / 2)
        cp, sp = math.cos(pitch / 2), math.sin(pitch / 2)
        cy, sy = math.cos(yaw / 2), math.sin(yaw / 2)
        return cls(
            cr * cp * cy + sr * sp * sy,
            sr * cp * cy - cr * sp * sy,
            cr * sp * cy + sr * cp * sy,
            cr * cp * sy - sr * sp * cy,
        )

    def as_rotation_matrix(self) -> np.ndarray:
        w, x, y, z = self.q
        return np.array([
            [1 - 2 * (y * y + z * z), 2 * (x * y - w * z), 2 * (x * z + w * y)],
            [2 * (x * y + w * z), 1 - 2 * (x * x + z * z), 2 * (y * z - w * x)],
            [2 * (x * z - w * y), 2 * (y * z + w * x), 1 - 2 * (x * x + y * y)],
        ])

    # -- Derived attitude ----------------------------------------------------

    def to_euler_angle(self) -> EulerAngle:
        w, x, y, z = (float(c) for c in self.q)
        psi = math.atan2(2 * x * y - 2 * z * z, 2 * w * w + 2 * x * x - 1)
        # Sensor noise can push the sine past +/-1; saturate at the gimbal edge
        theta = -math.asin(clamp(2 * x * z + 2 * w * y, -1.0, 1.0))
        phi = math.atan2(2 * y * z - 2 * w * x, 2 * w * w + 2 * z * z - 1)
        return EulerAngle(math.degrees(psi), math.degrees(theta), math.degrees(phi))

    def to_gravity(self) -> Gravity:
        w, x, y, z = (float(c) for c in self.q)
        return Gravity(
            2 * (x * z - w * y),
            2 * (w * x + y * z),
            w * w - x * x - y * y + z * z,
        )

    def to_yaw_pitch_roll(self) -> YawPitchRoll:
        w, x, y, z = (float(c) for c in self.q)
        g = self.to_gravity()
        yaw = math.atan2(2 * x * y - 2 * w * z, 2 * w * w + 2 * x * x - 1)
        # atan2 with a non-negative denominator equals atan(num / den) and saturates at +/-90
        pitch = math.atan2(g.x, math.sqrt(g.y * g.y + g.z * g.z))
        roll = math.atan2(g.y, math.sqrt(g.x * g.x + g.z * g.z))
        return YawPitchRoll(math.degrees(yaw), math.degrees(pitch), math.degrees(roll))

    def __repr__(self) -> str:
        w, x, y, z = self.q
        return f"Quaternion({w:.6g}, {x:.6g}, {y:.6g}, {z:.6g})"


__all__ = [
    "GRAVITY",
    "clamp",
    "Vector3D",
    "Quaternion",
    "EulerAngle",
    "YawPitchRoll",
    "Gravity",
]
