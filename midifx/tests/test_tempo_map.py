import unittest

from midifx.tempo_map import PPQN, beats_to_ticks, pulse_interval, songpos_to_beats, ticks_to_beats


class TestTempoMap(unittest.TestCase):
    def test_pulse_interval(self):
        self.assertAlmostEqual(pulse_interval(120), 60.0 / (120 * PPQN))
        self.assertEqual(pulse_interval(0), pulse_interval(1))
        self.assertEqual(pulse_interval(-50), pulse_interval(1))

    def test_ticks_and_beats(self):
        self.assertEqual(ticks_to_beats(960, 480), 2.0)
        self.assertEqual(beats_to_ticks(1.083, 480), 520)
        self.assertEqual(beats_to_ticks(-1.0, 480), 0)
        # zero resolution clamps rather than dividing by zero
        self.assertEqual(ticks_to_beats(5, 0), 5.0)

    def test_songpos(self):
        self.assertEqual(songpos_to_beats(16), 4.0)
        self.assertEqual(songpos_to_beats(-3), 0.0)


if __name__ == "__main__":
    unittest.main()
