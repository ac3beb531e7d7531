"""
Bounded byte buffer shared between the serial receiver and the control step.
"""

from __future__ import annotations

import threading
from typing import Tuple

MIN_CAPACITY = 32
DEFAULT_CAPACITY = 1024


class ReceiveBuffer:
    """
    Thread-safe, append-only byte buffer. The receiver appends chunks as they
    arrive; once ``capacity`` is exceeded the oldest bytes are evicted so the
    frame scan stays bounded. Readers get a consistent copy, never a buffer
    caught mid-append.

    Positions handed out by ``peek`` count bytes since the buffer was created,
    so ``consume`` drops exactly what the reader saw even if the receiver
    appended (or evicted) in between.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self._lock = threading.Lock()
        self._data = bytearray()
        self._head = 0  # stream position of _data[0]
        self._capacity = DEFAULT_CAPACITY
        self.capacity = capacity

    @property
    def capacity(self) -> int:
        return self._capacity

    @capacity.setter
    def capacity(self, value: int) -> None:
        if value < MIN_CAPACITY:
            raise ValueError(f"receive buffer capacity cannot be less than {MIN_CAPACITY} bytes, got {value}")
        with self._lock:
            self._capacity = int(value)
            self._trim()

    def append(self, chunk: bytes) -> None:
        if not chunk:
            return
        with self._lock:
            self._data.extend(chunk)
            self._trim()

    def snapshot(self) -> bytes:
        with self._lock:
            return bytes(self._data)

    def peek(self) -> Tuple[bytes, int]:
        """Copy of the buffered bytes plus the stream position just past them."""
        with self._lock:
            return bytes(self._data), self._head + len(self._data)

    def consume(self, position: int) -> None:
        """Drop every byte before ``position``; bytes appended after the peek are kept."""
        with self._lock:
            count = position - self._head
            if count > 0:
                del self._data[:count]
                self._head += count

    def clear(self) -> None:
        with self._lock:
            self._head += len(self._data)
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def _trim(self) -> None:
        excess = len(self._data) - self._capacity
        if excess > 0:
            del self._data[:excess]
            self._head += excess


__all__ = ["ReceiveBuffer", "MIN_CAPACITY", "DEFAULT_CAPACITY"]
