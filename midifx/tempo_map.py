from __future__ import annotations

PPQN = 24  # MIDI clock pulses per quarter note


def pulse_interval(bpm: float, ppqn: int = PPQN) -> float:
    """Seconds between clock pulses; non-positive tempos clamp to 1 BPM."""
    b = max(1.0, float(bpm))
    return 60.0 / (b * ppqn)


def ticks_to_beats(ticks: int, ticks_per_beat: int) -> float:
    return float(ticks) / float(max(1, int(ticks_per_beat)))


def beats_to_ticks(beats: float, ticks_per_beat: int) -> int:
    """Nearest file tick for a beat position, never negative."""
    return max(0, int(round(float(beats) * max(1, int(ticks_per_beat)))))


def songpos_to_beats(pos: int) -> float:
    """Song Position Pointer counts sixteenth notes."""
    return max(0, int(pos)) / 4.0
