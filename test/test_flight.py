import math
import unittest

from common.buffer import ReceiveBuffer
from common.interface import Transmitter
from common.math import Quaternion
from common.types import Acceleration, Rotation
from miniquad.control import IncrementalPIDMixer
from miniquad.flight import FlightController, LinkState, StateTransitionError
from miniquad.params import AxisGains, MixerParams, VerticalGains
from miniquad.protocol import ComputingMode, decode_command, encode_telemetry


class RecordingTransmitter(Transmitter):
    def __init__(self):
        self.frames = []
        self.fail = False

    def send(self, data: bytes, count: int) -> None:
        if self.fail:
            raise OSError("port closed")
        self.frames.append(bytes(data[:count]))

    def throttles(self):
        return [decode_command(f) for f in self.frames]


def roll_frame(degrees: float, throttles=(0, 0, 0, 0)) -> bytes:
    q = Quaternion.from_axis_angle([1, 0, 0], math.radians(degrees))
    return encode_telemetry(q, Rotation(), Acceleration(0.0, 0.0, 1.0), throttles)


def roll_only_mixer() -> IncrementalPIDMixer:
    return IncrementalPIDMixer(MixerParams(
        roll=AxisGains(kp=1.0, kd=0.0),
        pitch=AxisGains(0.0, 0.0),
        yaw=AxisGains(0.0, 0.0),
        vertical=VerticalGains(0.0, 0.0),
    ))


class TestStateMachine(unittest.TestCase):
    def setUp(self):
        self.tx = RecordingTransmitter()
        self.flight = FlightController(self.tx, roll_only_mixer())

    def test_starts_idle(self):
        self.assertIs(self.flight.state, LinkState.IDLE)
        self.assertEqual(self.flight.status.pins, (3, 5, 6, 9))

    def test_engage_requires_armed(self):
        with self.assertRaises(StateTransitionError):
            self.flight.engage()
        self.flight.arm()
        self.flight.engage()
        self.assertIs(self.flight.state, LinkState.ACTIVE)

    def test_disengage_requires_active(self):
        self.flight.arm()
        with self.assertRaises(StateTransitionError):
            self.flight.disengage()

    def test_disarm_from_active_commands_zero_and_resets(self):
        buf = ReceiveBuffer()
        self.flight.arm()
        self.flight.engage()
        for _ in range(3):
            buf.append(roll_frame(30.5))
            self.flight.step(buf)
        self.assertNotEqual(self.flight.controller.accumulators, (0.0,) * 4)
        self.flight.disarm()
        self.assertIs(self.flight.state, LinkState.IDLE)
        self.assertEqual(self.tx.throttles()[-1], (0, 0, 0, 0))
        self.assertEqual(self.flight.controller.accumulators, (0.0,) * 4)
        self.assertEqual(self.flight.status.throttles, (0, 0, 0, 0))

    def test_arm_from_active_disengages(self):
        self.flight.arm()
        self.flight.engage()
        self.flight.arm()
        self.assertIs(self.flight.state, LinkState.ARMED)
        self.assertEqual(self.tx.throttles(), [(0, 0, 0, 0)])

    def test_reengage_starts_from_zero(self):
        buf = ReceiveBuffer()
        self.flight.arm()
        self.flight.engage()
        buf.append(roll_frame(30.5))
        self.flight.step(buf)
        buf.append(roll_frame(30.5))
        first = self.flight.step(buf)
        self.flight.disengage()
        self.flight.engage()
        buf.append(roll_frame(30.5))
        self.flight.step(buf)
        buf.append(roll_frame(30.5))
        self.assertEqual(self.flight.step(buf), first)

    def test_slave_mode_cannot_engage(self):
        flight = FlightController(self.tx, mode=ComputingMode.SLAVE)
        flight.arm()
        with self.assertRaises(NotImplementedError):
            flight.engage()
        with self.assertRaises(NotImplementedError):
            flight.compute_throttles()
        with self.assertLogs("miniquad.flight", level="WARNING"):
            flight.disarm()
        self.assertEqual(self.tx.frames, [])


class TestControlStep(unittest.TestCase):
    def setUp(self):
        self.tx = RecordingTransmitter()
        self.flight = FlightController(self.tx, roll_only_mixer())
        self.buf = ReceiveBuffer()

    def engage(self):
        self.flight.arm()
        self.flight.engage()

    def test_step_ignored_unless_active(self):
        self.buf.append(roll_frame(10.0))
        self.assertIsNone(self.flight.step(self.buf))
        self.flight.arm()
        self.assertIsNone(self.flight.step(self.buf))
        self.assertEqual(len(self.buf), 52)
        self.assertEqual(self.tx.frames, [])

    def test_step_sends_and_consumes_buffer(self):
        self.engage()
        self.buf.append(b"noise" + roll_frame(30.5))
        self.assertEqual(self.flight.step(self.buf), [60, 60, 60, 60])
        self.assertEqual(len(self.buf), 0)
        self.buf.append(roll_frame(30.5))
        self.assertEqual(self.flight.step(self.buf), [60, 60, 90, 90])
        self.assertEqual(self.tx.throttles()[-1], (60, 60, 90, 90))
        self.assertEqual(self.flight.last_command, [60, 60, 90, 90])
        self.assertEqual(self.flight.status.throttles, (60, 60, 90, 90))

    def test_incomplete_frame_keeps_status_and_buffer(self):
        self.engage()
        self.buf.append(roll_frame(20.0, throttles=(1, 2, 3, 4)))
        self.flight.step(self.buf)
        before = self.flight.status.quaternion.q.copy()
        self.buf.append(roll_frame(40.0)[:40])
        self.assertIsNone(self.flight.step(self.buf))
        self.assertEqual(self.flight.status.quaternion.q.tolist(), before.tolist())
        self.assertEqual(len(self.buf), 40)

    def test_auto_control_off_computes_without_sending(self):
        self.flight.auto_control = False
        self.engage()
        self.buf.append(roll_frame(30.5))
        self.assertEqual(self.flight.step(self.buf), [60, 60, 60, 60])
        self.assertEqual(self.tx.frames, [])

    def test_refresh_status_updates_views(self):
        self.assertTrue(self.flight.refresh_status(roll_frame(25.0, throttles=(5, 6, 7, 8))))
        self.assertAlmostEqual(self.flight.status.yaw_pitch_roll.roll, 25.0, places=4)
        self.assertEqual(self.flight.status.throttles, (5, 6, 7, 8))

    def test_refresh_without_frame_returns_false(self):
        self.assertFalse(self.flight.refresh_status(b"\r\n" * 40))


class TestManualCommands(unittest.TestCase):
    def setUp(self):
        self.tx = RecordingTransmitter()
        self.flight = FlightController(self.tx)

    def test_send_refused_while_idle(self):
        with self.assertRaises(StateTransitionError):
            self.flight.send_throttles([1, 2, 3, 4])

    def test_send_when_armed(self):
        self.flight.arm()
        self.assertTrue(self.flight.send_throttles([1, 2, 3, 4]))
        self.assertEqual(self.tx.frames, [b"@\x04\x01\x00\x02\x00\x03\x00\x04\x00\r\n"])

    def test_write_failure_reported(self):
        self.flight.arm()
        self.tx.fail = True
        with self.assertLogs("miniquad.flight", level="WARNING"):
            self.assertFalse(self.flight.send_throttles([1, 2, 3, 4]))
        self.assertIsNone(self.flight.last_command)
        self.assertEqual(self.flight.status.throttles, (0, 0, 0, 0))

    def test_out_of_range_throttle_rejected(self):
        self.flight.arm()
        with self.assertRaises(ValueError):
            self.flight.send_throttles([0, 0, 0, 256])
        self.assertEqual(self.tx.frames, [])


class TestDegenerateTelemetry(unittest.TestCase):
    def setUp(self):
        self.tx = RecordingTransmitter()
        self.flight = FlightController(self.tx, IncrementalPIDMixer())
        self.buf = ReceiveBuffer()
        self.flight.arm()
        self.flight.engage()

    def frame(self, quaternion=None, rotation=None, acceleration=None) -> bytes:
        return encode_telemetry(
            quaternion or Quaternion(),
            rotation or Rotation(),
            acceleration or Acceleration(0.0, 0.0, 1.0),
            (0, 0, 0, 0),
        )

    def assert_step_survives(self, frame: bytes):
        self.buf.append(frame)
        out = self.flight.step(self.buf)
        self.assertEqual(len(out), 4)
        for value in out:
            self.assertGreaterEqual(value, 60)
            self.assertLessEqual(value, 160)
        self.assertTrue(all(math.isfinite(t) for t in self.flight.controller.accumulators))
        # A following clean frame still controls normally
        self.buf.append(self.frame())
        self.assertEqual(self.flight.step(self.buf), out)
        return out

    def test_nan_rotation(self):
        with self.assertLogs("miniquad.control", level="WARNING"):
            self.assert_step_survives(self.frame(rotation=Rotation(float("nan"), 0.0, 0.0)))

    def test_infinite_quaternion(self):
        with self.assertLogs("miniquad.control", level="WARNING"):
            self.assert_step_survives(self.frame(quaternion=Quaternion(float("inf"), 0.0, 0.0, 0.0)))

    def test_nan_acceleration(self):
        with self.assertLogs("miniquad.control", level="WARNING"):
            self.assert_step_survives(self.frame(acceleration=Acceleration(0.0, 0.0, float("nan"))))
        self.assertEqual(self.flight.controller.vertical.accel_sum, 1.0)

    def test_zero_quaternion(self):
        self.assert_step_survives(self.frame(quaternion=Quaternion(0.0, 0.0, 0.0, 0.0)))


class TestBufferHandoff(unittest.TestCase):
    def test_bytes_arriving_during_step_are_kept(self):
        tx = RecordingTransmitter()
        flight = FlightController(tx, roll_only_mixer())
        flight.arm()
        flight.engage()
        buf = ReceiveBuffer()
        buf.append(roll_frame(10.0))
        newer = roll_frame(20.0)
        peek = buf.peek

        def peek_then_receive():
            seen = peek()
            buf.append(newer)
            return seen

        buf.peek = peek_then_receive
        self.assertIsNotNone(flight.step(buf))
        self.assertEqual(buf.snapshot(), newer)


if __name__ == '__main__':
    unittest.main()
