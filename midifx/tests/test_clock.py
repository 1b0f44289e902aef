import unittest

import mido

from midifx.clock import ExternalClock, InternalClock, _percentile
from midifx.tempo_map import PPQN, pulse_interval
from midifx.timing import TimingTracker


class TestExternalClock(unittest.TestCase):
    def setUp(self):
        self.seen = []
        self.clk = ExternalClock(self.seen.append, 3, 4)

    def test_start_clock_stop(self):
        clk = self.clk
        self.assertTrue(clk.on_message(mido.Message("start")))
        for _ in range(PPQN):
            clk.on_message(mido.Message("clock"))
        self.assertTrue(clk.on_message(mido.Message("stop")))
        self.assertEqual(len(self.seen), PPQN + 2)
        self.assertTrue(self.seen[0].playing)
        self.assertEqual(self.seen[0].block_start_beat, 0.0)
        self.assertEqual(self.seen[-2].block_start_beat, 1.0)
        self.assertFalse(self.seen[-1].playing)
        self.assertEqual(self.seen[-1].meter_numerator, 3)

    def test_pulses_while_stopped_do_not_advance(self):
        clk = self.clk
        clk.on_message(mido.Message("clock"))
        self.assertEqual(clk.beat, 0.0)
        self.assertEqual(self.seen, [])

    def test_songpos_then_continue(self):
        clk = self.clk
        self.assertTrue(clk.on_message(mido.Message("songpos", pos=16)))
        self.assertEqual(self.seen, [])
        clk.on_message(mido.Message("continue"))
        self.assertEqual(self.seen[-1].block_start_beat, 4.0)
        self.assertTrue(self.seen[-1].playing)

    def test_start_rewinds(self):
        clk = self.clk
        clk.on_message(mido.Message("songpos", pos=8))
        clk.on_message(mido.Message("start"))
        self.assertEqual(self.seen[-1].block_start_beat, 0.0)

    def test_start_while_playing_reports_a_stop_first(self):
        clk = self.clk
        clk.on_message(mido.Message("start"))
        for _ in range(4 * PPQN):
            clk.on_message(mido.Message("clock"))
        clk.on_message(mido.Message("start"))
        self.assertFalse(self.seen[-2].playing)
        self.assertEqual(self.seen[-2].block_start_beat, 4.0)
        self.assertTrue(self.seen[-1].playing)
        self.assertEqual(self.seen[-1].block_start_beat, 0.0)

    def test_restart_reanchors_bar_tracking(self):
        tracker = TimingTracker()
        clk = ExternalClock(tracker.on_tick)
        clk.on_message(mido.Message("start"))
        for _ in range(5 * PPQN):
            clk.on_message(mido.Message("clock"))
        self.assertEqual(tracker.current_bar, 1)
        clk.on_message(mido.Message("start"))
        self.assertEqual(tracker.current_bar, 0)

    def test_non_transport_messages_are_not_consumed(self):
        self.assertFalse(self.clk.on_message(mido.Message("note_on", note=60)))

    def test_tempo_follows_pulse_spacing(self):
        clk = self.clk
        dt = pulse_interval(90)
        for i in range(50):
            clk.on_message(mido.Message("clock"), now=i * dt)
        self.assertAlmostEqual(clk.bpm, 90.0, places=3)
        self.assertEqual(clk.get_metrics()["externalBpm"], 90.0)


class TestInternalClock(unittest.TestCase):
    def test_snapshot_and_set_bpm(self):
        clk = InternalClock(100, lambda _info: None, 6, 8)
        snap = clk.snapshot()
        self.assertFalse(snap.playing)
        self.assertEqual(snap.block_start_beat, 0.0)
        self.assertEqual((snap.meter_numerator, snap.meter_denominator), (6, 8))
        clk.set_bpm(150)
        self.assertEqual(clk.snapshot().tempo, 150.0)
        self.assertAlmostEqual(clk._interval, pulse_interval(150))

    def test_stop_reports_transport_stop(self):
        seen = []
        clk = InternalClock(120, seen.append)
        clk.stop()
        self.assertEqual(len(seen), 1)
        self.assertFalse(seen[0].playing)

    def test_percentile(self):
        self.assertEqual(_percentile([], 0.95), 0.0)
        self.assertEqual(_percentile([3.0], 0.5), 3.0)
        self.assertAlmostEqual(_percentile([1.0, 2.0, 3.0, 4.0], 0.5), 2.5)


if __name__ == "__main__":
    unittest.main()
