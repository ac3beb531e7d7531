"""
Binary framing between the ground station and the miniquad board.

Telemetry (vehicle -> ground), 52 bytes, little-endian fields:
    '$' 0x02 | quaternion 4*f32 (w,x,y,z) | rotation 3*f32 | acceleration 3*f32 | throttle 4*u16 | '\\r' '\\n'

Command, principal-computer mode (ground -> vehicle), 12 bytes:
    '@' 0x04 | throttle 4*u16 (channels 1..4) | '\\r' '\\n'

There is no checksum and no length field; telemetry is synchronised by
scanning backward for the newest terminator whose header bytes line up.
"""

from __future__ import annotations

import enum
import struct
from typing import Optional, Sequence, Tuple

from common.logger import get_logger
from common.math import Quaternion
from common.types import Acceleration, Rotation, TelemetryFrame, check_throttles

logger = get_logger("protocol")

TERMINATOR = b"\r\n"

TELEMETRY_HEADER = b"$\x02"
TELEMETRY_PAYLOAD = struct.Struct("<4f3f3f4H")
TELEMETRY_FRAME_SIZE = len(TELEMETRY_HEADER) + TELEMETRY_PAYLOAD.size + len(TERMINATOR)  # 52

COMMAND_HEADER = b"@\x04"
COMMAND_FRAME_SIZE = 12
SLAVE_COMMAND_FRAME_SIZE = 6

THROTTLES = struct.Struct("<4H")
# Offset of the throttle block inside each frame
TELEMETRY_THROTTLE_OFFSET = len(TELEMETRY_HEADER) + TELEMETRY_PAYLOAD.size - THROTTLES.size  # 42
COMMAND_THROTTLE_OFFSET = len(COMMAND_HEADER)  # 2


class ComputingMode(enum.Enum):
    """Where the flight-control algorithm runs."""

    PRINCIPAL = "principal"  # on the ground station, throttles sent in 12-byte frames
    SLAVE = "slave"  # on the vehicle; 6-byte frame layout is not defined


def find_telemetry_frame(buffer: bytes) -> Optional[int]:
    """
    Return the start offset of the most recent complete telemetry frame, or None.

    Scans from the end: each ``\\r\\n`` found is accepted only if ``$``/0x02 sit
    exactly 50 bytes before its last byte. The first match wins; older frames
    are never considered.
    """
    if len(buffer) < TELEMETRY_FRAME_SIZE:
        return None
    head_span = TELEMETRY_FRAME_SIZE - len(TERMINATOR)
    end = len(buffer)
    while True:
        pos = buffer.rfind(TERMINATOR, 0, end)
        if pos < head_span:
            return None
        start = pos - head_span
        if buffer[start:start + len(TELEMETRY_HEADER)] == TELEMETRY_HEADER:
            return start
        # Keep only terminators that end before this candidate's last byte
        end = pos + 1


def unpack_throttles(data: bytes, offset: int) -> Tuple[int, int, int, int]:
    return THROTTLES.unpack_from(data, offset)


def unpack_telemetry(frame: bytes, offset: int = 0) -> TelemetryFrame:
    """Decode the fields of a telemetry frame starting at ``offset``; no sync checks."""
    values = TELEMETRY_PAYLOAD.unpack_from(frame, offset + len(TELEMETRY_HEADER))
    return TelemetryFrame(
        quaternion=Quaternion(*values[0:4]),
        rotation=Rotation(*values[4:7]),
        acceleration=Acceleration(*values[7:10]),
        throttles=unpack_throttles(frame, offset + TELEMETRY_THROTTLE_OFFSET),
    )


def decode_telemetry(buffer: bytes) -> Optional[TelemetryFrame]:
    """Decode the newest telemetry frame in ``buffer``. Returns None if there is none."""
    data = bytes(buffer)
    start = find_telemetry_frame(data)
    if start is None:
        logger.debug(f"No telemetry frame in {len(data)} buffered bytes")
        return None
    return unpack_telemetry(data, start)


def encode_telemetry(
    quaternion: Quaternion,
    rotation: Rotation,
    acceleration: Acceleration,
    throttles: Sequence[int],
) -> bytes:
    """Build a telemetry frame the way the vehicle firmware emits it."""
    payload = TELEMETRY_PAYLOAD.pack(
        *quaternion.q.tolist(),
        rotation.x, rotation.y, rotation.z,
        acceleration.x, acceleration.y, acceleration.z,
        *check_throttles(throttles),
    )
    return TELEMETRY_HEADER + payload + TERMINATOR


def encode_command(throttles: Sequence[int], mode: ComputingMode = ComputingMode.PRINCIPAL) -> bytes:
    """
    Build an outbound throttle command. Each throttle must be an integer in
    0..255; out-of-range values are rejected, never clamped.
    """
    if mode is ComputingMode.SLAVE:
        raise NotImplementedError(
            f"slave-computer command frames ({SLAVE_COMMAND_FRAME_SIZE} bytes) have no defined layout"
        )
    return COMMAND_HEADER + THROTTLES.pack(*check_throttles(throttles)) + TERMINATOR


def decode_command(frame: bytes) -> Optional[Tuple[int, int, int, int]]:
    """Return the throttles of a principal-mode command frame, or None if malformed."""
    frame = bytes(frame)
    if (
        len(frame) != COMMAND_FRAME_SIZE
        or not frame.startswith(COMMAND_HEADER)
        or not frame.endswith(TERMINATOR)
    ):
        return None
    return unpack_throttles(frame, COMMAND_THROTTLE_OFFSET)


__all__ = [
    "ComputingMode",
    "TELEMETRY_FRAME_SIZE",
    "COMMAND_FRAME_SIZE",
    "SLAVE_COMMAND_FRAME_SIZE",
    "TELEMETRY_THROTTLE_OFFSET",
    "COMMAND_THROTTLE_OFFSET",
    "find_telemetry_frame",
    "unpack_throttles",
    "unpack_telemetry",
    "decode_telemetry",
    "encode_telemetry",
    "encode_command",
    "decode_command",
]
