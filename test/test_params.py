import unittest

from miniquad.params import DEFAULT_PINS, LinkParams, MixerParams, StaticParams
from miniquad.protocol import ComputingMode


class TestDefaults(unittest.TestCase):
    def test_mixer_defaults(self):
        p = MixerParams()
        self.assertEqual((p.roll.kp, p.roll.kd), (0.00005, 0.0025))
        self.assertEqual((p.yaw.kp, p.yaw.kd), (0.0005, 0.005))
        self.assertEqual((p.vertical.kp, p.vertical.ki), (0.01, 2.0))
        self.assertEqual((p.min_throttle, p.max_throttle), (60.0, 160.0))
        self.assertEqual(p.propeller_direction, 1)

    def test_defaults_are_not_shared(self):
        a, b = MixerParams(), MixerParams()
        a.roll.kp = 1.0
        self.assertEqual(b.roll.kp, 0.00005)

    def test_static_airframe(self):
        p = StaticParams()
        self.assertEqual(p.mass, 0.0338)
        self.assertAlmostEqual(p.jx, 7.9e-6)
        self.assertEqual(p.period, 0.053)


class TestLinkParamsFromEnv(unittest.TestCase):
    def test_no_overrides(self):
        p = LinkParams.from_env({})
        self.assertEqual(p, LinkParams())
        self.assertEqual(p.pins, DEFAULT_PINS)

    def test_overrides(self):
        p = LinkParams.from_env({
            "MINIQUAD_TARGET": " SIM ",
            "MINIQUAD_RATE_HZ": "50",
            "MINIQUAD_BUFFER_SIZE": "256",
            "MINIQUAD_PINS": "2,4,7,8",
            "MINIQUAD_MODE": "slave",
            "MINIQUAD_AUTO_CONTROL": "off",
        })
        self.assertEqual(p.target, "sim")
        self.assertEqual(p.rate_hz, 50.0)
        self.assertEqual(p.buffer_size, 256)
        self.assertEqual(p.pins, (2, 4, 7, 8))
        self.assertIs(p.mode, ComputingMode.SLAVE)
        self.assertFalse(p.auto_control)

    def test_bad_values(self):
        for env in ({"MINIQUAD_PINS": "1,2,3"}, {"MINIQUAD_MODE": "remote"}, {"MINIQUAD_RATE_HZ": "fast"}):
            with self.subTest(env=env):
                with self.assertRaises(ValueError):
                    LinkParams.from_env(env)


if __name__ == '__main__':
    unittest.main()
