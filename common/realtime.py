"""
Fixed-period loop helper for the ground-station control cadence.
"""

from __future__ import annotations

import time

from common.logger import get_logger

logger = get_logger("realtime")


def monotonic_time() -> float:
    """Return monotonic time in seconds."""
    return time.monotonic()


class RateKeeper:
    """
    Keep a loop on a fixed period:
    - monitor_time(): advance the schedule, return remaining time (negative if late)
    - keep_time(): monitor_time(), then sleep off whatever time remains
    A late frame is reported once it overruns by more than ``lag_threshold`` seconds.
    """

    def __init__(self, rate_hz: float, clock=monotonic_time, sleep=time.sleep, lag_threshold: float | None = 0.01):
        if rate_hz <= 0.0:
            raise ValueError("rate_hz must be positive")
        self.period = 1.0 / rate_hz
        self.clock = clock
        self.sleep = sleep
        self.lag_threshold = lag_threshold
        self.frame = 0
        self.lagged_frames = 0
        self._next = self.clock() + self.period

    def monitor_time(self) -> float:
        now = self.clock()
        remaining = self._next - now
        if remaining < 0.0:
            self.lagged_frames += 1
            if self.lag_threshold is not None and -remaining > self.lag_threshold:
                logger.warning(f"Control loop lagging by {-remaining * 1000:.2f} ms (frame {self.frame})")
            # Skip missed ticks instead of bursting to catch up
            if -remaining > self.period:
                self._next = now
        self._next += self.period
        self.frame += 1
        return remaining

    def keep_time(self) -> None:
        remaining = self.monitor_time()
        if remaining > 0.0:
            self.sleep(remaining)
