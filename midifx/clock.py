from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable, Deque, List, Optional

from midifx.midi_engine import TimingInfo
from midifx.tempo_map import PPQN, pulse_interval, songpos_to_beats


TimingHandler = Callable[[TimingInfo], None]


def _percentile(values: List[float], pct: float) -> float:
    if not values:
        return 0.0
    xs = sorted(values)
    k = (len(xs) - 1) * pct
    f = int(k)
    c = min(f + 1, len(xs) - 1)
    if f == c:
        return xs[f]
    d0 = xs[f] * (c - k)
    d1 = xs[c] * (k - f)
    return d0 + d1


class InternalClock:
    """Free-running transport: one TimingInfo per 24-PPQN pulse."""

    def __init__(self, bpm: float, handler: TimingHandler, meter_numerator: int = 4, meter_denominator: int = 4):
        self.bpm = float(bpm)
        self.handler = handler
        self.meter_numerator = int(meter_numerator)
        self.meter_denominator = int(meter_denominator)
        self.beat: float = 0.0
        self.playing: bool = False
        self._pulses: int = 0
        self._t: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._jitter_ms: Deque[float] = deque(maxlen=512)
        self._lock = threading.Lock()
        self._interval = pulse_interval(self.bpm)

    def snapshot(self) -> TimingInfo:
        return TimingInfo(
            playing=self.playing,
            block_start_beat=self.beat,
            meter_numerator=self.meter_numerator,
            meter_denominator=self.meter_denominator,
            tempo=self.bpm,
        )

    def start(self):
        if self._t and self._t.is_alive():
            return
        self._stop.clear()
        self.playing = True
        self._t = threading.Thread(target=self._run, daemon=True)
        self._t.start()

    def stop(self):
        self._stop.set()
        if self._t:
            self._t.join(timeout=1.0)
        self.playing = False
        # final snapshot lets trackers see the stop transition
        self.handler(self.snapshot())

    def _run(self):
        next_call = time.monotonic()
        while not self._stop.is_set():
            now = time.monotonic()
            if now >= next_call:
                jitter_ms = max(0.0, (now - next_call) * 1000.0)
                with self._lock:
                    self._jitter_ms.append(jitter_ms)
                    interval = self._interval
                next_call += interval
                self.handler(self.snapshot())
                # beats are derived from the pulse count to avoid float drift
                self._pulses += 1
                self.beat = self._pulses / float(PPQN)
            else:
                time.sleep(min(0.002, max(0.0, next_call - now)))

    def get_metrics(self) -> dict:
        with self._lock:
            samples = list(self._jitter_ms)
        return {
            "bpm": self.bpm,
            "beat": round(self.beat, 3),
            "jitterMsP95": round(_percentile(samples, 0.95), 3),
            "jitterMsP99": round(_percentile(samples, 0.99), 3),
        }

    def set_bpm(self, bpm: float) -> None:
        with self._lock:
            self.bpm = float(bpm)
            self._interval = pulse_interval(self.bpm)


class ExternalClock:
    """Follows a device's MIDI realtime messages (start/stop/continue/songpos/clock).

    Every clock pulse while playing produces a TimingInfo; start/continue/stop
    produce one so transport transitions are seen immediately.
    """

    def __init__(self, handler: TimingHandler, meter_numerator: int = 4, meter_denominator: int = 4):
        self.handler = handler
        self.meter_numerator = int(meter_numerator)
        self.meter_denominator = int(meter_denominator)
        self.playing = False
        self._pulses = 0
        self._last_ts: Optional[float] = None
        self._interval_ema: Optional[float] = None
        self.bpm: float = 120.0

    @property
    def beat(self) -> float:
        return self._pulses / float(PPQN)

    def snapshot(self) -> TimingInfo:
        return TimingInfo(
            playing=self.playing,
            block_start_beat=self.beat,
            meter_numerator=self.meter_numerator,
            meter_denominator=self.meter_denominator,
            tempo=self.bpm,
        )

    def on_message(self, msg, now: Optional[float] = None) -> bool:
        """Feed one incoming message; returns True if it was a transport message."""
        t = getattr(msg, "type", None)
        if t == "start":
            if self.playing:
                # restart without a stop: report one so trackers re-anchor at 0
                self.playing = False
                self.handler(self.snapshot())
            self._pulses = 0
            self.playing = True
        elif t == "continue":
            self.playing = True
        elif t == "stop":
            self.playing = False
        elif t == "songpos":
            self._pulses = int(round(songpos_to_beats(msg.pos) * PPQN))
            return True
        elif t == "clock":
            self._track_tempo(time.monotonic() if now is None else now)
            if not self.playing:
                return True
            self._pulses += 1
        else:
            return False
        self.handler(self.snapshot())
        return True

    def _track_tempo(self, now: float) -> None:
        if self._last_ts is not None:
            dt = max(1e-6, now - self._last_ts)
            self._interval_ema = dt if self._interval_ema is None else (0.85 * self._interval_ema + 0.15 * dt)
            self.bpm = float(60.0 / (max(1e-6, self._interval_ema) * PPQN))
        self._last_ts = now

    def get_metrics(self) -> dict:
        return {"externalBpm": round(self.bpm, 2), "beat": round(self.beat, 3), "playing": self.playing}
