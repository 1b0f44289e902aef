from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Optional, Tuple


NoteKey = Tuple[int, int]  # (pitch, channel)


@dataclass
class Note:
    pitch: int
    velocity: int
    channel: int
    origin_beat: Optional[float] = None


@dataclass
class Released:
    note: Note
    held_beats: float
    release_beat: float


def _beat_or(value, fallback: float) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
        return float(value)
    return fallback


class NoteLifecycleTracker:
    """Pairs note-ons with their note-offs and measures held length in beats.

    One open note per (pitch, channel): a retrigger before release replaces
    the earlier note-on.
    """

    def __init__(self) -> None:
        self.active: Dict[NoteKey, Note] = {}
        self.last_beat: float = 0.0

    def update_block_start(self, beat) -> None:
        self.last_beat = _beat_or(beat, self.last_beat)

    def on_note_on(self, note: Note) -> Note:
        stored = Note(
            pitch=int(note.pitch),
            velocity=int(note.velocity),
            channel=int(note.channel),
            origin_beat=_beat_or(note.origin_beat, self.last_beat),
        )
        self.active[(stored.pitch, stored.channel)] = stored
        return stored

    def on_note_off(self, pitch: int, channel: int, beat=None) -> Optional[Released]:
        note = self.active.pop((int(pitch), int(channel)), None)
        if note is None:
            return None
        end = _beat_or(beat, self.last_beat)
        start = note.origin_beat if note.origin_beat is not None else end
        return Released(note=note, held_beats=max(0.0, end - start), release_beat=end)

    def reset(self) -> None:
        self.active.clear()
