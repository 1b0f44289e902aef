from __future__ import annotations

from typing import Any, Optional

import mido

from midifx.midi_engine import NOTE_OFF, NOTE_ON, OTHER, MidiEvent


class CoreSink:
    """Abstract sink interface used by Engine."""

    def note_on(self, channel: int, pitch: int, velocity: int) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def note_off(self, channel: int, pitch: int) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def send_raw(self, msg: Any) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def panic(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class MidoSink(CoreSink):
    def __init__(self, out_port):
        self.out = out_port

    def note_on(self, channel: int, pitch: int, velocity: int) -> None:
        self.out.send(mido.Message("note_on", note=int(pitch), velocity=int(velocity), channel=int(channel)))

    def note_off(self, channel: int, pitch: int) -> None:
        self.out.send(mido.Message("note_off", note=int(pitch), velocity=0, channel=int(channel)))

    def send_raw(self, msg: Any) -> None:
        if msg is not None:
            self.out.send(msg)

    def panic(self) -> None:
        # Tail notes may still be sounding on any channel
        for ch in range(16):
            # Sustain off
            self.out.send(mido.Message("control_change", control=64, value=0, channel=ch))
            # All Sound Off (120) then All Notes Off (123)
            self.out.send(mido.Message("control_change", control=120, value=0, channel=ch))
            self.out.send(mido.Message("control_change", control=123, value=0, channel=ch))


def event_from_mido(msg, beat: Optional[float] = None) -> MidiEvent:
    """Wrap an incoming mido message; note_on with velocity 0 is a note-off."""
    if msg.type == "note_on" and msg.velocity > 0:
        return MidiEvent(NOTE_ON, msg.note, msg.velocity, msg.channel, beat, raw=msg)
    if msg.type in ("note_on", "note_off"):
        return MidiEvent(NOTE_OFF, msg.note, 0, msg.channel, beat, raw=msg)
    return MidiEvent(OTHER, channel=getattr(msg, "channel", 0), beat_pos=beat, raw=msg)


class _InertOut:
    def send(self, *_args, **_kwargs):
        pass

    def close(self):
        pass


class _InertIn:
    def close(self):
        pass


def open_mido_output(name_filter: Optional[str] = None):
    """Open a Mido output port with safe fallbacks.

    If the system MIDI stack is inaccessible or no port matches, return an
    inert object exposing `.send()` rather than crashing in headless runs.
    """
    try:
        names = mido.get_output_names()
    except Exception as e:
        print(f"[midi-out] MIDI backend unavailable ({e}); output discarded", flush=True)
        return _InertOut()
    if name_filter:
        names = [n for n in names if name_filter in n]
    if not names:
        print(f"[midi-out] no output port matching {name_filter!r}; output discarded", flush=True)
        return _InertOut()
    try:
        return mido.open_output(names[0])
    except Exception as e:
        print(f"[midi-out] could not open {names[0]!r}: {e}", flush=True)
        return _InertOut()


def open_mido_input(name_filter: Optional[str] = None, callback=None):
    """Open a Mido input port with safe fallbacks.

    Returns an inert object with `.close()` when system MIDI is unavailable or
    access fails (e.g., CI, sandboxed runners).
    """
    try:
        names = mido.get_input_names()
    except Exception as e:
        print(f"[midi-in] MIDI backend unavailable ({e}); no input", flush=True)
        return _InertIn()
    if name_filter:
        names = [n for n in names if name_filter in n]
    if not names:
        print(f"[midi-in] no input port matching {name_filter!r}", flush=True)
        return _InertIn()
    try:
        return mido.open_input(names[0], callback=callback)
    except Exception as e:
        print(f"[midi-in] could not open {names[0]!r}: {e}", flush=True)
        return _InertIn()
