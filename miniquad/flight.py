"""
Ground-station flight controller: decodes telemetry into the vehicle status,
runs the control algorithm and issues throttle commands over the link.

State machine:
    IDLE  <->  ARMED  <->  ACTIVE
Entering ACTIVE resets the controller accumulators. Leaving ACTIVE, and
entering IDLE, commands all-zero throttle.
"""

from __future__ import annotations

import enum
from typing import List, Optional, Sequence

from common.buffer import ReceiveBuffer
from common.interface import Controller, Transmitter
from common.logger import get_logger
from common.types import MiniquadStatus
from miniquad.control import IncrementalPIDMixer
from miniquad.params import DEFAULT_PINS
from miniquad.protocol import ComputingMode, decode_telemetry, encode_command

logger = get_logger("flight")

ZERO_THROTTLE = (0, 0, 0, 0)


class LinkState(enum.Enum):
    IDLE = "idle"  # no usable link
    ARMED = "armed"  # link ready, not controlling
    ACTIVE = "active"  # closed-loop control engaged


class StateTransitionError(RuntimeError):
    """Raised when a state change is requested from a state that does not allow it."""


class FlightController:
    """
    Owns one vehicle's status snapshot and controller state. Not safe for
    concurrent control steps; the receive buffer is the only shared resource.
    """

    def __init__(
        self,
        transmitter: Transmitter,
        controller: Optional[Controller] = None,
        pins: Sequence[int] = DEFAULT_PINS,
        mode: ComputingMode = ComputingMode.PRINCIPAL,
        auto_control: bool = True,
    ):
        self.transmitter = transmitter
        self.controller = controller or IncrementalPIDMixer()
        self.status = MiniquadStatus.from_pins(pins)
        self.mode = mode
        self.auto_control = auto_control
        self._state = LinkState.IDLE
        self.last_command: Optional[List[int]] = None
        self.controller.reset()

    @property
    def state(self) -> LinkState:
        return self._state

    # -- State machine -------------------------------------------------------

    def arm(self) -> None:
        """IDLE -> ARMED, or ACTIVE -> ARMED (disengage)."""
        if self._state is LinkState.ACTIVE:
            self.disengage()
            return
        if self._state is LinkState.ARMED:
            return
        self._set_state(LinkState.ARMED)

    def engage(self) -> None:
        """ARMED -> ACTIVE. Starts a control session from zeroed accumulators."""
        if self._state is LinkState.ACTIVE:
            return
        if self._state is not LinkState.ARMED:
            raise StateTransitionError(f"cannot engage control from {self._state.value}")
        if self.mode is ComputingMode.SLAVE:
            raise NotImplementedError("closed-loop control in slave-computer mode is not supported")
        self.controller.reset()
        self._set_state(LinkState.ACTIVE)

    def disengage(self) -> None:
        """ACTIVE -> ARMED, commanding zero throttle."""
        if self._state is not LinkState.ACTIVE:
            raise StateTransitionError(f"cannot disengage control from {self._state.value}")
        self._leave_active()
        self._set_state(LinkState.ARMED)

    def disarm(self) -> None:
        """Any state -> IDLE, commanding zero throttle."""
        if self._state is LinkState.ACTIVE:
            self._leave_active()
        elif self._state is LinkState.ARMED:
            self._send_zero()
        self._set_state(LinkState.IDLE)

    def _leave_active(self) -> None:
        self.controller.reset()
        self._send_zero()

    def _send_zero(self) -> None:
        if self.mode is ComputingMode.SLAVE:
            logger.warning("Slave-computer mode has no command frame; zero throttle not sent")
            return
        logger.info("Commanding zero throttle")
        self.send_throttles(ZERO_THROTTLE)

    def _set_state(self, state: LinkState) -> None:
        if state is not self._state:
            logger.info(f"Link state {self._state.value} -> {state.value}")
        self._state = state

    # -- Status / control ----------------------------------------------------

    def refresh_status(self, buffer: bytes) -> bool:
        """
        Decode the newest telemetry frame in ``buffer`` into the status.
        Returns False, leaving the status untouched, when no valid frame is found.
        """
        frame = decode_telemetry(buffer)
        if frame is None:
            return False
        try:
            self.status.apply_frame(frame)
        except ValueError as exc:
            logger.warning(f"Rejected telemetry frame: {exc}")
            return False
        return True

    def compute_throttles(self) -> List[int]:
        """Run the control algorithm against the current status."""
        if self.mode is ComputingMode.SLAVE:
            raise NotImplementedError("slave-computer mode runs the controller on the vehicle; not supported")
        return self.controller.update(self.status)

    def send_throttles(self, throttles: Sequence[int]) -> bool:
        """
        Encode and transmit a throttle command. Out-of-range values raise
        ValueError; a failed write is logged and reported as False.
        """
        if self._state is LinkState.IDLE:
            raise StateTransitionError("cannot send throttle commands while idle")
        frame = encode_command(throttles, self.mode)
        try:
            self.transmitter.send(frame, len(frame))
        except OSError as exc:
            logger.warning(f"Failed to send throttle command: {exc}")
            return False
        self.status.set_throttles(throttles)
        self.last_command = list(throttles)
        return True

    def step(self, buffer: ReceiveBuffer) -> Optional[List[int]]:
        """
        One control tick, called after each received chunk. While ACTIVE: refresh
        the status, drop the bytes it was decoded from, compute throttles and (with auto
        control on) transmit them. Returns the computed throttles, or None when
        nothing was computed this tick.
        """
        if self._state is not LinkState.ACTIVE:
            return None
        data, position = buffer.peek()
        if not self.refresh_status(data):
            return None
        buffer.consume(position)
        throttles = self.compute_throttles()
        if self.auto_control:
            self.send_throttles(throttles)
        return throttles


__all__ = ["LinkState", "StateTransitionError", "FlightController", "ZERO_THROTTLE"]
