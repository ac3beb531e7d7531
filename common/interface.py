"""
Interface definitions for flight-control algorithms and the outbound byte link.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from common.types import MiniquadStatus


class Transmitter(ABC):
    """Collaborator that pushes raw bytes to the vehicle; owns the port lifecycle."""

    @abstractmethod
    def send(self, data: bytes, count: int) -> None:
        """Transmit exactly ``count`` bytes from ``data``. Raises OSError on failure."""


class Controller(ABC):
    """Abstract base for control algorithms producing four throttle values."""

    @abstractmethod
    def update(self, status: MiniquadStatus) -> List[int]:
        """Compute the next throttle command from the latest vehicle status."""

    def reset(self) -> None:
        """Drop any accumulated state before a new control session."""
        return None
