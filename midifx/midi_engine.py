from __future__ import annotations

import heapq
import itertools
import math
import threading
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union


NOTE_ON = "note_on"
NOTE_OFF = "note_off"
OTHER = "other"


@dataclass
class TimingInfo:
    """Per-block transport snapshot, as reported by the host."""

    playing: bool
    block_start_beat: Optional[float]
    meter_numerator: int = 4
    meter_denominator: int = 4
    tempo: float = 120.0


@dataclass
class MidiEvent:
    kind: str
    pitch: int = 0
    velocity: int = 0
    channel: int = 0
    beat_pos: Optional[float] = None
    # Untouched host message for pass-through of non-note events
    raw: Any = None


@dataclass(frozen=True)
class LogLine:
    text: str


@dataclass(frozen=True)
class SendNow:
    event: MidiEvent


@dataclass(frozen=True)
class SendAtBeat:
    event: MidiEvent
    beat: float


Effect = Union[LogLine, SendNow, SendAtBeat]


class VirtualSink:
    """A minimal sink capturing events for tests and demos.

    Records tuples like (type, args...). Types: 'on', 'off', 'other', 'panic'.
    """

    def __init__(self) -> None:
        self.events: List[Tuple[str, int, int, int]] = []
        self.raw: List[Any] = []

    def note_on(self, channel: int, pitch: int, velocity: int) -> None:
        self.events.append(("on", channel, pitch, velocity))

    def note_off(self, channel: int, pitch: int) -> None:
        self.events.append(("off", channel, pitch, 0))

    def send_raw(self, msg: Any) -> None:
        self.events.append(("other", -1, -1, 0))
        self.raw.append(msg)

    def panic(self) -> None:
        self.events.append(("panic", -1, -1, 0))


def is_finite(x) -> bool:
    return isinstance(x, (int, float)) and not isinstance(x, bool) and math.isfinite(x)


def print_log(text: str) -> None:
    print(text, flush=True)


class Engine:
    """Host emulation for a chain of MIDI-FX plugins.

    - on_event: the event enters the first plugin; whatever a plugin sends
      feeds the next one, the last plugin's output reaches the sink.
    - on_tick: every plugin sees the timing snapshot, then deferred events
      due at or before the block start beat are delivered.
    - Deferred events are ordered by (beat, submission order) and are not
      cancelled by a transport stop.
    """

    def __init__(self, sink, plugins: Sequence[Any], log: Callable[[str], None] = print_log) -> None:
        self.sink = sink
        self.plugins = list(plugins)
        self.log = log
        self.beat: float = 0.0
        self.playing: bool = False
        # RLock: WS handlers may hold it while touching plugin params
        self.lock = threading.RLock()
        # (beat, seq, event, index of the plugin that receives it next)
        self._queue: List[Tuple[float, int, MidiEvent, int]] = []
        self._seq = itertools.count()
        self._reported_errors: set = set()
        self.metrics: Dict[str, int] = {
            "msgs_note_on": 0,
            "msgs_note_off": 0,
            "msgs_other": 0,
            "log_lines": 0,
            "tail_scheduled": 0,
            "handler_errors": 0,
        }

    # --- Host entry points ---
    def on_event(self, event: MidiEvent) -> None:
        with self.lock:
            self._dispatch(event, 0)

    def on_tick(self, info: TimingInfo) -> None:
        with self.lock:
            if is_finite(info.block_start_beat):
                self.beat = float(info.block_start_beat)
            self.playing = bool(info.playing)
            for idx, plugin in enumerate(self.plugins):
                effects = self._guard(plugin, "on_tick", info)
                self._apply(effects or [], idx + 1)
            self._emit_due(self.beat)

    def flush_until(self, beat: float) -> None:
        """Deliver every deferred event due at or before beat."""
        with self.lock:
            self._emit_due(beat)

    def pending(self) -> List[Tuple[float, MidiEvent]]:
        with self.lock:
            return [(b, ev) for (b, _s, ev, _i) in sorted(self._queue)]

    def panic(self) -> None:
        # Deliver queued note-offs now so nothing hangs, drop the rest
        with self.lock:
            for _beat, _seq, ev, _idx in sorted(self._queue):
                if ev.kind == NOTE_OFF:
                    self.sink.note_off(ev.channel, ev.pitch)
                    self.metrics["msgs_note_off"] += 1
            self._queue.clear()
            for plugin in self.plugins:
                if hasattr(plugin, "reset"):
                    plugin.reset()
            self.sink.panic()

    def get_metrics(self) -> Dict[str, int]:
        with self.lock:
            out = dict(self.metrics)
            out["queue_depth"] = len(self._queue)
            return out

    # --- Internals ---
    def _guard(self, plugin, method: str, arg) -> Optional[List[Effect]]:
        try:
            return getattr(plugin, method)(arg)
        except Exception as e:
            # Real-time path: count and report once per plugin/method, never raise to the host
            self.metrics["handler_errors"] += 1
            key = (type(plugin).__name__, method)
            if key not in self._reported_errors:
                self._reported_errors.add(key)
                print(f"[engine] {key[0]}.{method} failed: {e!r}", flush=True)
            return None

    def _dispatch(self, event: MidiEvent, start: int) -> None:
        if start >= len(self.plugins):
            self._send(event)
            return
        plugin = self.plugins[start]
        effects = self._guard(plugin, "on_event", event)
        if effects is None:
            # failed handler: keep the stream flowing
            effects = [SendNow(event)]
        self._apply(effects, start + 1)

    def _apply(self, effects: List[Effect], next_index: int) -> None:
        for eff in effects:
            if isinstance(eff, LogLine):
                self.metrics["log_lines"] += 1
                self.log(eff.text)
            elif isinstance(eff, SendNow):
                self._dispatch(eff.event, next_index)
            elif isinstance(eff, SendAtBeat):
                if eff.event.kind == NOTE_ON:
                    self.metrics["tail_scheduled"] += 1
                heapq.heappush(self._queue, (float(eff.beat), next(self._seq), eff.event, next_index))

    def _emit_due(self, beat: float) -> None:
        while self._queue and self._queue[0][0] <= beat:
            due, _seq, ev, idx = heapq.heappop(self._queue)
            self._dispatch(replace(ev, beat_pos=due), idx)

    def _send(self, event: MidiEvent) -> None:
        if event.kind == NOTE_ON:
            self.sink.note_on(event.channel, event.pitch, event.velocity)
            self.metrics["msgs_note_on"] += 1
        elif event.kind == NOTE_OFF:
            self.sink.note_off(event.channel, event.pitch)
            self.metrics["msgs_note_off"] += 1
        else:
            self.sink.send_raw(event.raw)
            self.metrics["msgs_other"] += 1
