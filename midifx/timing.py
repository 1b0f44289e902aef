from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from midifx.midi_engine import TimingInfo, is_finite


DEFAULT_BEATS_PER_BAR = 4.0


def beats_per_bar(numerator, denominator) -> float:
    """Quarter-note beats per bar; malformed meters fall back to 4."""
    if not is_finite(denominator) or denominator <= 0:
        return DEFAULT_BEATS_PER_BAR
    num = numerator if is_finite(numerator) and numerator > 0 else 4
    bpb = float(num) * (4.0 / float(denominator))
    if not math.isfinite(bpb) or bpb <= 0:
        return DEFAULT_BEATS_PER_BAR
    return bpb


@dataclass
class TickResult:
    flushed_bars: List[int] = field(default_factory=list)
    bar_advanced_to: Optional[int] = None
    did_reset: bool = False


class TimingTracker:
    """Zero-based bar index from the host's beat position and meter.

    - playing true->false clears the current bar and reports did_reset
    - the first playing tick anchors the current bar without flushing
    - an advance of K bars reports K flushes, oldest first
    """

    def __init__(self) -> None:
        self.current_bar: Optional[int] = None
        self.last_playing: bool = False
        self.last_beat: Optional[float] = None

    def reset(self) -> None:
        self.current_bar = None

    def on_tick(self, info: TimingInfo) -> TickResult:
        res = TickResult()
        playing = bool(info.playing)
        if not playing and self.last_playing:
            self.reset()
            res.did_reset = True
        self.last_playing = playing

        beat = info.block_start_beat
        if is_finite(beat):
            self.last_beat = float(beat)
        else:
            beat = self.last_beat

        if not playing or beat is None:
            return res

        bpb = beats_per_bar(info.meter_numerator, info.meter_denominator)
        bar_index = int(math.floor(float(beat) / bpb))

        if self.current_bar is None:
            self.current_bar = bar_index
            return res

        # backward jumps (loop restart) hold the current bar
        while self.current_bar < bar_index:
            res.flushed_bars.append(self.current_bar)
            self.current_bar += 1
        if res.flushed_bars:
            res.bar_advanced_to = self.current_bar
        return res


class BarAccumulator:
    """Pitches sounded in the open bar.

    Append-only: a note-off never removes a pitch from the open bar, it only
    stops the note from being carried into the bars that follow.
    """

    def __init__(self) -> None:
        self._pitches: List[int] = []
        # (pitch, channel) -> pitch, notes still held at bar close
        self._held: Dict[Tuple[int, int], int] = {}

    def __len__(self) -> int:
        return len(self._pitches)

    def on_note_on(self, pitch: int, channel: int = 0) -> None:
        p = int(pitch)
        self._pitches.append(p)
        self._held[(p, int(channel))] = p

    def on_note_off(self, pitch: int, channel: int = 0) -> None:
        self._held.pop((int(pitch), int(channel)), None)

    def on_bar_close(self) -> List[int]:
        out = self._pitches
        self._pitches = list(self._held.values())
        return out

    def reset(self) -> None:
        self._pitches = []
        self._held.clear()
