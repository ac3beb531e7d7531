import unittest

from common.realtime import RateKeeper


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class TestRateKeeper(unittest.TestCase):
    def test_sleeps_off_remaining_time(self):
        clock = FakeClock()
        rk = RateKeeper(100.0, clock=clock, sleep=clock.sleep)
        clock.now = 0.004
        rk.keep_time()
        self.assertEqual(len(clock.sleeps), 1)
        self.assertAlmostEqual(clock.sleeps[0], 0.006)
        self.assertEqual(rk.frame, 1)

    def test_late_frame_is_reported_and_skipped(self):
        clock = FakeClock()
        rk = RateKeeper(100.0, clock=clock, sleep=clock.sleep)
        clock.now = 0.05
        with self.assertLogs("miniquad.realtime", level="WARNING"):
            remaining = rk.monitor_time()
        self.assertAlmostEqual(remaining, -0.04)
        self.assertEqual(rk.lagged_frames, 1)
        # The schedule restarts from the late tick instead of bursting
        clock.now = 0.055
        rk.keep_time()
        self.assertEqual(len(clock.sleeps), 1)
        self.assertAlmostEqual(clock.sleeps[0], 0.005)

    def test_rejects_non_positive_rate(self):
        with self.assertRaises(ValueError):
            RateKeeper(0.0)


if __name__ == '__main__':
    unittest.main()
