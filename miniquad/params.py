"""
Tunable parameters for the flight-control algorithms and the ground-station link.
Defaults are the values flown on the miniquad; nothing here is persisted.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Tuple

from common.buffer import DEFAULT_CAPACITY
from common.math import GRAVITY
from miniquad.protocol import ComputingMode

DEFAULT_PINS = (3, 5, 6, 9)


@dataclass
class AxisGains:
    kp: float
    kd: float


@dataclass
class VerticalGains:
    kp: float = 0.01
    ki: float = 2.0  # exposed but not applied to the output


@dataclass
class MixerParams:
    roll: AxisGains = field(default_factory=lambda: AxisGains(kp=0.00005, kd=0.0025))
    pitch: AxisGains = field(default_factory=lambda: AxisGains(kp=0.00005, kd=0.0025))
    yaw: AxisGains = field(default_factory=lambda: AxisGains(kp=0.0005, kd=0.005))
    vertical: VerticalGains = field(default_factory=VerticalGains)
    propeller_direction: int = 1
    min_throttle: float = 60.0
    max_throttle: float = 160.0


@dataclass
class ControlStrength:
    """Closed-loop pole placement used to derive the physics-model gains."""

    a: float = -0.1
    b: float = -0.25


@dataclass
class StaticParams:
    # Motor / propeller characteristics
    k1: float = 2.24e-10  # thrust coefficient
    k2: float = 1.32e-12  # reaction-torque coefficient
    kt: float = 2925923.0
    tau: float = 2.0
    propeller_direction: int = 1
    # Airframe
    mass: float = 0.0338  # kg
    arm_length: float = 0.44  # m
    jx: float = 0.0000158 / 2
    jy: float = 0.0000158 / 2
    jz: float = 0.0000158
    gravity: float = GRAVITY
    period: float = 0.053  # s
    roll: ControlStrength = field(default_factory=ControlStrength)
    pitch: ControlStrength = field(default_factory=ControlStrength)
    yaw: ControlStrength = field(default_factory=ControlStrength)
    vertical: ControlStrength = field(default_factory=ControlStrength)


def _env_bool(value: str) -> bool:
    return value.strip().lower() not in {"0", "false", "no", "off"}


@dataclass
class LinkParams:
    pins: Tuple[int, int, int, int] = DEFAULT_PINS
    mode: ComputingMode = ComputingMode.PRINCIPAL
    buffer_size: int = DEFAULT_CAPACITY
    rate_hz: float = 100.0
    target: str = "sim"
    auto_control: bool = True

    @classmethod
    def from_env(cls, environ=None) -> "LinkParams":
        """Build link parameters, letting MINIQUAD_* environment variables override defaults."""
        env = os.environ if environ is None else environ
        params = cls()
        if "MINIQUAD_TARGET" in env:
            params.target = env["MINIQUAD_TARGET"].strip().lower()
        if "MINIQUAD_RATE_HZ" in env:
            params.rate_hz = float(env["MINIQUAD_RATE_HZ"])
        if "MINIQUAD_BUFFER_SIZE" in env:
            params.buffer_size = int(env["MINIQUAD_BUFFER_SIZE"])
        if "MINIQUAD_PINS" in env:
            pins = tuple(int(p) for p in env["MINIQUAD_PINS"].split(","))
            if len(pins) != 4:
                raise ValueError(f"MINIQUAD_PINS needs four comma-separated pins, got {env['MINIQUAD_PINS']!r}")
            params.pins = pins
        if "MINIQUAD_MODE" in env:
            params.mode = ComputingMode(env["MINIQUAD_MODE"].strip().lower())
        if "MINIQUAD_AUTO_CONTROL" in env:
            params.auto_control = _env_bool(env["MINIQUAD_AUTO_CONTROL"])
        return params


__all__ = [
    "DEFAULT_PINS",
    "AxisGains",
    "VerticalGains",
    "MixerParams",
    "ControlStrength",
    "StaticParams",
    "LinkParams",
]
