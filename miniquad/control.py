"""
Control module: per-axis PID terms and the X-quad mixers that turn them into throttles.
"""

from __future__ import annotations

import math
from typing import List, Tuple

import numpy as np

from common.interface import Controller
from common.logger import get_logger
from common.math import clamp
from common.types import THROTTLE_MAX, THROTTLE_MIN, MiniquadStatus
from miniquad.params import MixerParams, StaticParams

logger = get_logger("control")

# Rotor deltas per correction for the "X" airframe.
# Columns: roll (x), pitch (y), yaw (z), vertical acceleration (a); rows: rotors 1..4.
X_MIX = np.array([
    [-1.0, 1.0, -1.0, 1.0],
    [-1.0, -1.0, 1.0, 1.0],
    [1.0, -1.0, -1.0, 1.0],
    [1.0, 1.0, 1.0, 1.0],
])

# Same airframe as seen by the physics-model controller (yaw torque sign per rotor spin).
X_MIX_STATIC = np.array([
    [-1.0, 1.0, 1.0, 1.0],
    [-1.0, -1.0, -1.0, 1.0],
    [1.0, -1.0, 1.0, 1.0],
    [1.0, 1.0, -1.0, 1.0],
])


def _check_gain(name: str, value: float, signed: bool = False) -> float:
    value = float(value)
    if signed:
        return value
    if not value >= 0.0:
        raise ValueError(f"{name} cannot be negative, got {value}")
    return value


def _check_direction(value: int) -> int:
    if value not in (-1, 1):
        raise ValueError(f"propeller direction must be either -1 or 1, got {value!r}")
    return int(value)


class AxisPID:
    """
    PD term for one attitude axis. Holds the latest measured angle, the angle
    from the previous sample, the sensor-reported rate, and two bias pairs:
    (setpoint, trim) on the angle and (rate_setpoint, rate_trim) on the rate.
    """

    def __init__(self, name: str, kp: float, kd: float, signed: bool = False):
        self.name = name
        self.signed = signed
        self.kp = kp
        self.kd = kd
        self.setpoint = 0.0
        self.trim = 0.0
        self.rate_setpoint = 0.0
        self.rate_trim = 0.0
        self.angle = 0.0
        self.last_angle = 0.0
        self.rate = 0.0

    @property
    def kp(self) -> float:
        return self._kp

    @kp.setter
    def kp(self, value: float) -> None:
        self._kp = _check_gain(f"KP_{self.name}", value, self.signed)

    @property
    def kd(self) -> float:
        return self._kd

    @kd.setter
    def kd(self, value: float) -> None:
        self._kd = _check_gain(f"KD_{self.name}", value, self.signed)

    def sample(self, angle: float, rate: float = 0.0) -> None:
        self.last_angle = self.angle
        self.angle = angle
        self.rate = rate

    def angle_error(self) -> float:
        return self.angle - self.setpoint - self.trim

    def rate_error(self) -> float:
        return self.rate - self.rate_setpoint - self.rate_trim

    def correction(self) -> float:
        """Velocity-form correction: proportional on angle, damped by measured rate."""
        return self.kp * self.angle_error() - self.kd * self.rate_error()

    def reset(self) -> None:
        self.angle = 0.0
        self.last_angle = 0.0
        self.rate = 0.0


class VerticalPID:
    """
    Vertical-acceleration term. ``ki`` and the velocity bias pair are part of the
    tunable surface but are not applied to the output; the running sum of
    acceleration samples is still kept so it can be inspected and reset.
    """

    def __init__(self, kp: float, ki: float, signed: bool = False):
        self.signed = signed
        self.kp = kp
        self.ki = ki
        self.setpoint = 0.0
        self.trim = 0.0
        self.velocity_setpoint = 0.0
        self.velocity_trim = 0.0
        self.accel = 0.0
        self.accel_sum = 0.0

    @property
    def kp(self) -> float:
        return self._kp

    @kp.setter
    def kp(self, value: float) -> None:
        self._kp = _check_gain("KP_a", value, self.signed)

    @property
    def ki(self) -> float:
        return self._ki

    @ki.setter
    def ki(self, value: float) -> None:
        self._ki = _check_gain("KI_a", value, self.signed)

    def sample(self, accel: float) -> None:
        self.accel = accel
        if math.isfinite(accel):
            self.accel_sum += accel

    def error(self) -> float:
        return self.accel - self.setpoint - self.trim

    def correction(self) -> float:
        return self.kp * self.error()

    def reset(self) -> None:
        self.accel = 0.0
        self.accel_sum = 0.0


class IncrementalPIDMixer(Controller):
    """
    Velocity-form PID mixer for an X quad. Each step adds the mixed per-axis
    corrections onto four persistent throttle accumulators, then clamps them to
    [min_throttle, max_throttle]. The clamp is the only anti-windup.
    """

    def __init__(self, params: MixerParams | None = None):
        params = params or MixerParams()
        self.roll = AxisPID("x", params.roll.kp, params.roll.kd)
        self.pitch = AxisPID("y", params.pitch.kp, params.pitch.kd)
        self.yaw = AxisPID("z", params.yaw.kp, params.yaw.kd)
        self.vertical = VerticalPID(params.vertical.kp, params.vertical.ki)
        # Stored for the tunable surface; the fixed mixing matrix already encodes rotor spin.
        self.propeller_direction = params.propeller_direction
        self._min_throttle = 0.0
        self._max_throttle = float(THROTTLE_MAX)
        self.set_throttle_band(params.min_throttle, params.max_throttle)
        self._throttles = np.zeros(4)

    @property
    def propeller_direction(self) -> int:
        return self._propeller_direction

    @propeller_direction.setter
    def propeller_direction(self, value: int) -> None:
        self._propeller_direction = _check_direction(value)

    @property
    def min_throttle(self) -> float:
        return self._min_throttle

    @property
    def max_throttle(self) -> float:
        return self._max_throttle

    def set_throttle_band(self, min_throttle: float, max_throttle: float) -> None:
        """The band must fit the wire range so every output stays encodable."""
        low, high = float(min_throttle), float(max_throttle)
        if not (THROTTLE_MIN <= low <= high <= THROTTLE_MAX):
            raise ValueError(
                f"throttle band must satisfy {THROTTLE_MIN} <= min <= max <= {THROTTLE_MAX}, got [{low}, {high}]"
            )
        self._min_throttle, self._max_throttle = low, high
        logger.debug(f"Throttle band set to [{low:g}, {high:g}]")

    @property
    def accumulators(self) -> Tuple[float, ...]:
        return tuple(float(t) for t in self._throttles)

    def reset(self) -> None:
        """Zero the throttle accumulators and every axis' sampled state."""
        self._throttles = np.zeros(4)
        for axis in (self.roll, self.pitch, self.yaw):
            axis.reset()
        self.vertical.reset()
        logger.debug("Mixer accumulators reset")

    def corrections(self) -> np.ndarray:
        return np.array([
            self.roll.correction(),
            self.pitch.correction(),
            self.yaw.correction(),
            self.vertical.correction(),
        ])

    def step(
        self,
        roll: float,
        pitch: float,
        yaw: float,
        accel_z: float,
        roll_rate: float = 0.0,
        pitch_rate: float = 0.0,
        yaw_rate: float = 0.0,
    ) -> List[int]:
        """Advance one control step; angles in degrees, rates in deg/s, acceleration in g."""
        self.roll.sample(roll, roll_rate)
        self.pitch.sample(pitch, pitch_rate)
        self.yaw.sample(yaw, yaw_rate)
        self.vertical.sample(accel_z)
        corrections = self.corrections()
        if not np.all(np.isfinite(corrections)):
            logger.warning(f"Dropping non-finite corrections {corrections.tolist()}")
            # The accumulators must stay finite; a degenerate sample contributes nothing
            corrections = np.nan_to_num(corrections, nan=0.0, posinf=0.0, neginf=0.0)
        deltas = X_MIX @ corrections
        self._throttles = np.clip(self._throttles + deltas, self._min_throttle, self._max_throttle)
        return [int(t) for t in self._throttles]

    def update(self, status: MiniquadStatus) -> List[int]:
        ypr = status.yaw_pitch_roll
        rot = status.rotation
        return self.step(ypr.roll, ypr.pitch, ypr.yaw, status.acceleration.z, rot.x, rot.y, rot.z)


class StaticPIDController(Controller):
    """
    Physics-model alternative: computes the per-axis torque and collective
    thrust required from airframe inertia and motor coefficients, then inverts
    the rotor thrust model ``throttle = F^(tau/2) / 4 / Kt`` per rotor.
    Not used by default.
    """

    def __init__(self, params: StaticParams | None = None):
        self.params = params or StaticParams()
        p = self.params
        _check_direction(p.propeller_direction)
        self.roll = AxisPID("x", *self._attitude_gains(p.roll, p.jx), signed=True)
        self.pitch = AxisPID("y", *self._attitude_gains(p.pitch, p.jy), signed=True)
        self.yaw = AxisPID("z", *self._attitude_gains(p.yaw, p.jz), signed=True)
        s = p.vertical
        self.vertical = VerticalPID(kp=s.a * s.b * p.mass, ki=-(s.a - 1) * (s.b - 1) * p.mass, signed=True)
        self.tilt = 0.0  # rad, angle between body z and gravity

    def _attitude_gains(self, strength, inertia: float) -> Tuple[float, float]:
        T = self.params.period
        kp = -(strength.a - 1) * (strength.b - 1) * inertia / T
        kd = (1 - strength.a * strength.b) / T / T
        return kp, kd

    def reset(self) -> None:
        for axis in (self.roll, self.pitch, self.yaw):
            axis.reset()
        self.vertical.reset()

    def _attitude_term(self, axis: AxisPID) -> float:
        T = self.params.period
        return axis.kp * axis.angle_error() + axis.kd / T * (axis.angle - axis.last_angle)

    def forces(self) -> np.ndarray:
        """Per-rotor net force terms before the thrust-model inversion."""
        p = self.params
        T = p.period
        v = self.vertical
        x = self._attitude_term(self.roll) / (math.sqrt(0.5) * p.arm_length * p.k1)
        y = self._attitude_term(self.pitch) / (math.sqrt(0.5) * p.arm_length * p.k1)
        z = self._attitude_term(self.yaw) / (p.k2 * p.propeller_direction)
        with np.errstate(divide="ignore"):
            hover = p.mass * p.gravity / np.float64(math.cos(self.tilt))
        a = (
            v.kp * v.error()
            + v.ki * (v.accel_sum - v.velocity_setpoint / T - v.velocity_trim / T)
            + hover
        ) / p.k1
        return X_MIX_STATIC @ np.array([x, y, z, a])

    def step(self, roll: float, pitch: float, yaw: float, accel_z: float, tilt: float = 0.0) -> List[int]:
        """Angles in degrees, acceleration in g; converted to radians and m/s^2 internally."""
        p = self.params
        self.roll.sample(math.radians(roll))
        self.pitch.sample(math.radians(pitch))
        self.yaw.sample(math.radians(yaw))
        self.vertical.sample(accel_z * p.gravity)
        self.tilt = math.radians(tilt)
        with np.errstate(invalid="ignore", over="ignore"):
            # A negative net force has no real root; treat it as no thrust
            thrust = np.power(np.clip(self.forces(), 0.0, None), p.tau / 2) / 4 / p.kt
        thrust = np.nan_to_num(thrust, nan=0.0, posinf=THROTTLE_MAX)
        return [int(t) for t in np.clip(thrust, THROTTLE_MIN, THROTTLE_MAX)]

    def update(self, status: MiniquadStatus) -> List[int]:
        ypr = status.yaw_pitch_roll
        g = status.gravity
        norm = math.sqrt(g.x * g.x + g.y * g.y + g.z * g.z)
        tilt = math.degrees(math.acos(clamp(g.z / norm, -1.0, 1.0))) if norm > 0.0 else 0.0
        return self.step(ypr.roll, ypr.pitch, ypr.yaw, status.acceleration.z, tilt)


__all__ = [
    "X_MIX",
    "X_MIX_STATIC",
    "AxisPID",
    "VerticalPID",
    "IncrementalPIDMixer",
    "StaticPIDController",
]
