import unittest

from midifx.report import BarReporter, ReportOptions


class TestBarReporter(unittest.TestCase):
    def test_summary_and_semitone_lines(self):
        lines = BarReporter().report(0, [67, 60, 64])
        self.assertEqual(lines, [
            "Bar 1: C  | bass=60  | PCs=C-E-G  | notes=60,64,67",
            "          semitones=0,4,7",
        ])

    def test_notes_list_can_be_left_out(self):
        rep = BarReporter(ReportOptions(include_notes_list=False))
        self.assertEqual(rep.report(1, [62, 65, 69])[0], "Bar 2: Dm  | bass=62  | PCs=D-F-A")

    def test_flat_spelling_applies_to_label_and_pcs(self):
        rep = BarReporter(ReportOptions(pitch_class_style="flats", include_notes_list=False))
        self.assertEqual(rep.report(0, [61, 65, 68])[0], "Bar 1: Db  | bass=61  | PCs=Db-F-Ab")

    def test_empty_bar_is_silent_by_default(self):
        self.assertEqual(BarReporter().report(2, []), [])

    def test_empty_bar_logged_when_enabled(self):
        rep = BarReporter(ReportOptions(log_empty_bars=True))
        self.assertEqual(rep.report(2, []), ["Bar 3: (no notes)"])


if __name__ == "__main__":
    unittest.main()
