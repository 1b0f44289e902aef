from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, List, Optional

from midifx.envelope import amplitude, sync_duration
from midifx.notes import Note


@dataclass
class TailParams:
    """Tail settings as read from the parameter store.

    Envelope stages (attack/hold/decay/release) are menu indices into
    SYNC_DURATIONS, like the host's menu controls.
    """

    numerator: float = 1
    denominator: float = 12
    quantity: float = 2
    tail_decay: float = 1.0
    gate: float = 0.5
    pitch_decay: float = 0.0
    pitch_decay_multiplier: float = 1
    highpass_hz: float = 20
    lowpass_hz: float = 2000
    delay_beats: float = 0.083
    attack: int = 0
    hold: int = 0
    decay: int = 10
    sustain: float = 0.8
    release: int = 10
    voices: float = 12

    @classmethod
    def from_values(cls, values: dict) -> "TailParams":
        return cls(
            numerator=values.get("numerator", cls.numerator),
            denominator=values.get("denominator", cls.denominator),
            quantity=values.get("quantity", cls.quantity),
            tail_decay=values.get("tailDecay", cls.tail_decay),
            gate=values.get("gate", cls.gate),
            pitch_decay=values.get("pitchDecay", cls.pitch_decay),
            pitch_decay_multiplier=values.get("pitchDecayMultiplier", cls.pitch_decay_multiplier),
            highpass_hz=values.get("highpassHz", cls.highpass_hz),
            lowpass_hz=values.get("lowpassHz", cls.lowpass_hz),
            delay_beats=values.get("delayBeats", cls.delay_beats),
            attack=values.get("attack", cls.attack),
            hold=values.get("hold", cls.hold),
            decay=values.get("decay", cls.decay),
            sustain=values.get("sustain", cls.sustain),
            release=values.get("release", cls.release),
            voices=values.get("voices", cls.voices),
        )


@dataclass
class TailEvent:
    pitch: int
    velocity: int
    channel: int
    on_beat: float
    off_beat: float


def round_half_up(x: float) -> int:
    return int(math.floor(float(x) + 0.5))


def clamp(val, lo, hi):
    if val < lo:
        return lo
    if val > hi:
        return hi
    return val


def midi_pitch_to_hz(pitch: float) -> float:
    return 440.0 * (2.0 ** ((float(pitch) - 69.0) / 12.0))


def _num(x, default: float = 0.0) -> float:
    try:
        v = float(x)
    except (TypeError, ValueError):
        return default
    return v if math.isfinite(v) else default


class TailScheduler:
    def schedule(
        self,
        note: Note,
        held_beats: float,
        release_beat: float,
        params: TailParams,
        submit: Optional[Callable[[TailEvent], None]] = None,
    ) -> List[TailEvent]:
        """Compute the decaying repeats for a released note.

        Events come back (and are submitted) in ascending on_beat order.
        Degenerate spacing yields no events. held_beats is accepted for
        callers' bookkeeping; the repeat grid is parameter-driven.
        """
        denominator = _num(params.denominator)
        numerator = _num(params.numerator)
        spacing = numerator / denominator if denominator != 0 else 0.0
        if not math.isfinite(spacing) or spacing <= 0:
            return []

        quantity = max(1, round_half_up(_num(params.quantity, 1)))
        voices = max(1, round_half_up(_num(params.voices, 1)))
        repeats = min(quantity, voices)

        gate_beats = spacing * _num(params.gate)
        if gate_beats <= 0:
            gate_beats = spacing * 0.5

        hp = _num(params.highpass_hz, 20.0)
        lp = _num(params.lowpass_hz, 20000.0)
        if lp < hp:
            hp, lp = lp, hp

        env_a = sync_duration(params.attack)
        env_h = sync_duration(params.hold)
        env_d = sync_duration(params.decay)
        env_s = clamp(_num(params.sustain, 1.0), 0.0, 1.0)
        env_r = sync_duration(params.release)
        total_span = spacing * max(0, repeats - 1) + env_r

        vel_decay = _num(params.tail_decay, 1.0)
        step = _num(params.pitch_decay) * _num(params.pitch_decay_multiplier, 1.0)
        delay = _num(params.delay_beats)
        base_vel = int(note.velocity)
        start = _num(release_beat)

        out: List[TailEvent] = []
        for i in range(repeats):
            on_beat = start + delay + spacing * i
            # a decay of 0 switches per-repeat decay off
            tail_env = vel_decay ** i if vel_decay > 0 else 1.0
            env = amplitude(i * spacing, env_a, env_h, env_d, env_s, env_r, total_span)
            vel = clamp(round_half_up(base_vel * tail_env * env), 1, 127)
            pitch = clamp(round_half_up(note.pitch + step * i), 0, 127)

            hz = midi_pitch_to_hz(pitch)
            if hz < hp or hz > lp:
                continue

            ev = TailEvent(pitch=pitch, velocity=vel, channel=int(note.channel), on_beat=on_beat, off_beat=on_beat + gate_beats)
            out.append(ev)
            if submit is not None:
                submit(ev)
        return out
