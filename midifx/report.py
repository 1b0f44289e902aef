from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List

from midifx.chords import NO_NOTES, name_chord


@dataclass
class ReportOptions:
    pitch_class_style: str = "sharps"
    log_empty_bars: bool = False
    include_notes_list: bool = True


class BarReporter:
    def __init__(self, options: ReportOptions | None = None) -> None:
        self.options = options or ReportOptions()

    def report(self, bar_index: int, pitches: Iterable[int]) -> List[str]:
        """Summary lines for a flushed bar; bar_index is 0-based, output is 1-based."""
        opts = self.options
        number = int(bar_index) + 1
        pitches = list(pitches)
        if not pitches:
            return [f"Bar {number}: {NO_NOTES}"] if opts.log_empty_bars else []

        info = name_chord(pitches, opts.pitch_class_style)
        line = (
            f"Bar {number}: {info.label}"
            f"  | bass={info.bass}"
            f"  | PCs={'-'.join(info.pc_names(opts.pitch_class_style))}"
        )
        if opts.include_notes_list:
            line += "  | notes=" + ",".join(str(p) for p in info.pitches)
        return [line, "          semitones=" + ",".join(str(i) for i in info.intervals)]
