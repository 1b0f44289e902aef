"""Offline host: run a Standard MIDI File through the plugin chain.

Playback starts at beat 0 and a tick is delivered at every beat that carries
messages (the engine sees the transport as playing for the whole file).
Releases on a beat are handled before its tick and onsets after it, so a
note ending on a bar line belongs to the closing bar only. Time-signature
meta messages set the meter, and the last bar is flushed at its closing
boundary. Deferred tail events are delivered at their own beats, so the
optional output file holds the pass-through stream merged with the tails.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

import mido

from midifx.midi_engine import Engine, TimingInfo
from midifx.midi_out import CoreSink, event_from_mido
from midifx.params import stores_from_preset
from midifx.plugins import ChordLogger, TailGenerator
from midifx.tempo_map import beats_to_ticks, ticks_to_beats
from midifx.timing import beats_per_bar


class RecordingSink(CoreSink):
    """Collects (beat, message) pairs; `now` is set by the replay loop."""

    def __init__(self) -> None:
        self.now: float = 0.0
        self.events: List[Tuple[float, Any]] = []

    def note_on(self, channel: int, pitch: int, velocity: int) -> None:
        self.events.append((self.now, mido.Message("note_on", note=int(pitch), velocity=int(velocity), channel=int(channel))))

    def note_off(self, channel: int, pitch: int) -> None:
        self.events.append((self.now, mido.Message("note_off", note=int(pitch), velocity=0, channel=int(channel))))

    def send_raw(self, msg: Any) -> None:
        if msg is not None:
            self.events.append((self.now, msg))

    def panic(self) -> None:
        pass


@dataclass
class ReplayResult:
    lines: List[str] = field(default_factory=list)
    events: List[Tuple[float, Any]] = field(default_factory=list)
    end_beat: float = 0.0


class _Replay:
    def __init__(self, engine: Engine, sink: RecordingSink) -> None:
        self.engine = engine
        self.sink = sink
        self.num = 4
        self.den = 4

    def drain(self, beat: float) -> None:
        while True:
            pending = self.engine.pending()
            if not pending or pending[0][0] > beat:
                return
            due = pending[0][0]
            self.sink.now = due
            self.engine.flush_until(due)

    def advance(self, beat: float, playing: bool = True) -> None:
        self.drain(beat)
        self.sink.now = beat
        self.engine.on_tick(TimingInfo(playing, beat, self.num, self.den))


def _is_release(msg) -> bool:
    return msg.type == "note_off" or (msg.type == "note_on" and msg.velocity == 0)


def _by_beat(mid: mido.MidiFile) -> Iterator[Tuple[float, List[Any]]]:
    """Merged messages grouped by their beat position, in file order."""
    abs_ticks = 0
    group: List[Any] = []
    for msg in mido.merge_tracks(mid.tracks):
        if msg.time and group:
            yield ticks_to_beats(abs_ticks, mid.ticks_per_beat), group
            group = []
        abs_ticks += msg.time
        group.append(msg)
    if group:
        yield ticks_to_beats(abs_ticks, mid.ticks_per_beat), group


def replay_file(path: str, preset: Optional[Dict[str, Any]] = None, out_path: Optional[str] = None) -> ReplayResult:
    mid = mido.MidiFile(path)
    tpb = mid.ticks_per_beat
    stores = stores_from_preset(preset or {})

    result = ReplayResult()
    sink = RecordingSink()
    engine = Engine(sink, [ChordLogger(stores["chordLogger"]), TailGenerator(stores["tail"])], log=result.lines.append)
    run = _Replay(engine, sink)
    meta_events: List[Tuple[float, Any]] = []

    beat = 0.0
    started = False
    for beat, msgs in _by_beat(mid):
        if not started and beat > 0:
            # the host plays from the top of the song, so leading empty bars are seen
            run.advance(0.0)
        for msg in msgs:
            if msg.type == "time_signature":
                run.num, run.den = msg.numerator, msg.denominator
            if msg.type in ("time_signature", "set_tempo", "key_signature"):
                meta_events.append((beat, msg.copy(time=0)))
        played = [m for m in msgs if not m.is_meta]
        # releases at a bar line end the closing bar; onsets open the next one.
        # A note that starts and ends on this beat keeps its file order.
        onsets = {(m.channel, m.note) for m in played if m.type == "note_on" and not _is_release(m)}
        early = {id(m) for m in played if _is_release(m) and (m.channel, m.note) not in onsets}
        run.drain(beat)
        sink.now = beat
        for msg in played:
            if id(msg) in early:
                engine.on_event(event_from_mido(msg.copy(time=0), beat=beat))
        run.advance(beat)
        started = True
        for msg in played:
            if id(msg) not in early:
                engine.on_event(event_from_mido(msg.copy(time=0), beat=beat))
    if not started:
        run.advance(0.0)

    # close the last bar at its boundary, then let remaining tails play out
    bpb = beats_per_bar(run.num, run.den)
    boundary = (math.floor(beat / bpb) + 1) * bpb
    run.advance(boundary)
    pending = engine.pending()
    if pending:
        run.drain(pending[-1][0])
    end = max([boundary] + [b for b, _m in sink.events])
    run.advance(end, playing=False)

    result.events = sorted(sink.events, key=lambda e: e[0])
    result.end_beat = end
    print(f"[replay] {path}: {len(result.lines)} log lines, {engine.get_metrics()['tail_scheduled']} tail notes", flush=True)

    if out_path:
        write_midi(out_path, meta_events + result.events, tpb)
    return result


def write_midi(path: str, events: List[Tuple[float, Any]], ticks_per_beat: int) -> None:
    out = mido.MidiFile(type=0, ticks_per_beat=ticks_per_beat)
    track = mido.MidiTrack()
    out.tracks.append(track)
    last = 0
    # stable sort keeps host delivery order within a beat
    for b, msg in sorted(events, key=lambda e: e[0]):
        t = beats_to_ticks(b, ticks_per_beat)
        track.append(msg.copy(time=max(0, t - last)))
        last = max(last, t)
    track.append(mido.MetaMessage("end_of_track", time=0))
    out.save(path)
