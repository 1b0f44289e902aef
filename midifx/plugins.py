from __future__ import annotations

from typing import List, Optional

from midifx.midi_engine import NOTE_OFF, NOTE_ON, Effect, LogLine, MidiEvent, SendAtBeat, SendNow, TimingInfo
from midifx.notes import Note, NoteLifecycleTracker
from midifx.params import CHORD_LOGGER_PARAMS, TAIL_PARAMS, ParameterStore
from midifx.report import BarReporter, ReportOptions
from midifx.tail import TailEvent, TailParams, TailScheduler
from midifx.timing import BarAccumulator, TimingTracker


class ChordLogger:
    """Bar chord logger: one summary per completed bar, notes pass through."""

    def __init__(self, params: Optional[ParameterStore] = None) -> None:
        self.params = params or ParameterStore(CHORD_LOGGER_PARAMS)
        self.timing = TimingTracker()
        self.bar = BarAccumulator()
        self.reporter = BarReporter()

    def options(self) -> ReportOptions:
        p = self.params
        return ReportOptions(
            pitch_class_style="flats" if p.get("pitchClassStyle") == 1 else "sharps",
            log_empty_bars=p.get("logEmptyBars") == 1,
            include_notes_list=p.get("includeNotesList") == 1,
        )

    def on_event(self, event: MidiEvent) -> List[Effect]:
        if event.kind == NOTE_ON:
            self.bar.on_note_on(event.pitch, event.channel)
        elif event.kind == NOTE_OFF:
            self.bar.on_note_off(event.pitch, event.channel)
        return [SendNow(event)]

    def on_tick(self, info: TimingInfo) -> List[Effect]:
        res = self.timing.on_tick(info)
        if res.did_reset:
            self.bar.reset()
        if not res.flushed_bars:
            return []
        self.reporter.options = self.options()
        out: List[Effect] = []
        for idx in res.flushed_bars:
            for line in self.reporter.report(idx, self.bar.on_bar_close()):
                out.append(LogLine(line))
        return out

    def reset(self) -> None:
        self.timing.reset()
        self.bar.reset()


class TailGenerator:
    """Schedules a decaying run of repeats after each note is released."""

    def __init__(self, params: Optional[ParameterStore] = None) -> None:
        self.params = params or ParameterStore(TAIL_PARAMS)
        self.notes = NoteLifecycleTracker()
        self.scheduler = TailScheduler()
        self.last_playing = False
        # last scheduled batch, for inspection
        self.last_tail: List[TailEvent] = []

    def on_tick(self, info: TimingInfo) -> List[Effect]:
        self.notes.update_block_start(info.block_start_beat)
        playing = bool(info.playing)
        if self.last_playing and not playing:
            self.notes.reset()
        self.last_playing = playing
        return []

    def on_event(self, event: MidiEvent) -> List[Effect]:
        out: List[Effect] = []
        if event.kind == NOTE_ON:
            self.notes.on_note_on(Note(event.pitch, event.velocity, event.channel, event.beat_pos))
        elif event.kind == NOTE_OFF:
            released = self.notes.on_note_off(event.pitch, event.channel, event.beat_pos)
            if released is not None:
                params = TailParams.from_values(self.params.values())
                self.last_tail = self.scheduler.schedule(released.note, released.held_beats, released.release_beat, params)
                for ev in self.last_tail:
                    out.append(SendAtBeat(MidiEvent(NOTE_ON, ev.pitch, ev.velocity, ev.channel), ev.on_beat))
                    out.append(SendAtBeat(MidiEvent(NOTE_OFF, ev.pitch, 0, ev.channel), ev.off_beat))
        # pass-through goes first so the release precedes its tail
        return [SendNow(event)] + out

    def reset(self) -> None:
        self.notes.reset()
