#!/usr/bin/env python3
"""
Entry point for the ground station: load link parameters, open the link and
run the receive/control loop.
"""

from __future__ import annotations

from typing import List, Optional

from common.buffer import ReceiveBuffer
from common.logger import get_logger
from common.realtime import RateKeeper
from miniquad.control import IncrementalPIDMixer
from miniquad.flight import FlightController
from miniquad.params import LinkParams, MixerParams

logger = get_logger("station")


def init_link(target_name: str, dt: float):
    """Open the link to the vehicle. Only the simulator is wired up."""
    target = (target_name or "sim").lower()
    if target == "sim":
        from target.simulator import SimulatedMiniquad

        return SimulatedMiniquad(dt=dt)
    raise NotImplementedError(f"Unsupported target '{target}'")


class GroundStation:
    """Station loop: receive() -> control() -> run()."""

    def __init__(self, params: Optional[LinkParams] = None, mixer: Optional[MixerParams] = None):
        self.params = params or LinkParams()
        if self.params.rate_hz <= 0.0:
            raise ValueError("rate_hz must be positive")
        self.dt = 1.0 / self.params.rate_hz
        self.link = init_link(self.params.target, self.dt)
        self.buffer = ReceiveBuffer(self.params.buffer_size)
        self.flight = FlightController(
            self.link,
            IncrementalPIDMixer(mixer),
            pins=self.params.pins,
            mode=self.params.mode,
            auto_control=self.params.auto_control,
        )
        logger.info(f"Link initialized ({type(self.link).__name__}, {self.params.mode.value} mode)")

    # -- Pipeline stages -----------------------------------------------------

    def receive(self) -> None:
        """Pull whatever the vehicle sent since the last tick into the buffer."""
        self.buffer.append(self.link.tick())

    def control(self) -> Optional[List[int]]:
        return self.flight.step(self.buffer)

    # -- Lifecycle -----------------------------------------------------------

    def start(self) -> None:
        self.flight.arm()
        self.flight.engage()

    def stop(self) -> None:
        self.flight.disarm()
        self.link.close()

    def run(self, max_frames: Optional[int] = None) -> None:
        logger.info("Starting ground-station loop")
        rk = RateKeeper(rate_hz=self.params.rate_hz, lag_threshold=None)
        self.start()
        try:
            while max_frames is None or rk.frame < max_frames:
                self.receive()
                throttles = self.control()
                if throttles is not None:
                    logger.debug(f"Frame {rk.frame}: throttles {throttles}")
                rk.keep_time()
        finally:
            self.stop()


def main():
    GroundStation(LinkParams.from_env()).run()


if __name__ == "__main__":
    main()
