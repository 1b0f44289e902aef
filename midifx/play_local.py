from __future__ import annotations

import argparse
import signal
import sys
import threading
import time
from typing import Any, Dict, Optional

from midifx.clock import ExternalClock, InternalClock
from midifx.midi_engine import Engine
from midifx.midi_out import MidoSink, event_from_mido, open_mido_input, open_mido_output
from midifx.params import stores_from_preset
from midifx.plugins import ChordLogger, TailGenerator
from midifx.replay import replay_file
from midifx.validator import ValidationError, load_preset
from midifx.ws_server import ControlServer, start_ws_server


def build_engine(preset: Dict[str, Any], sink) -> tuple:
    stores = stores_from_preset(preset)
    eng = Engine(sink, [ChordLogger(stores["chordLogger"]), TailGenerator(stores["tail"])])
    return eng, stores


def _input_handler(eng: Engine, transport: Optional[ExternalClock] = None):
    def on_input(msg):
        try:
            if transport is not None and transport.on_message(msg):
                return
            if msg.type in ("clock", "start", "stop", "continue", "songpos", "active_sensing"):
                return
            # beat_pos left empty: plugins backfill from the last tick
            eng.on_event(event_from_mido(msg))
        except Exception as e:
            print(f"[midi-in] dropped {msg}: {e!r}", flush=True)

    return on_input


def _metrics_printer(eng: Engine, done: threading.Event):
    while not done.is_set():
        m = eng.get_metrics()
        print(f"[metrics] note_on={m['msgs_note_on']} note_off={m['msgs_note_off']} tail={m['tail_scheduled']} queued={m['queue_depth']} errors={m['handler_errors']}", flush=True)
        time.sleep(1.0)


def _serve(eng: Engine, stores, clock, preset, print_metrics: bool, ws: bool, ws_port: int, done: threading.Event):
    if ws:
        start_ws_server(ControlServer(eng, stores, clock=clock, meta=preset.get("meta")), port=ws_port)
    if print_metrics:
        threading.Thread(target=_metrics_printer, args=(eng, done), daemon=True).start()


def run_internal(preset: Dict[str, Any], in_filter: Optional[str], out_filter: Optional[str], bpm: Optional[float], print_metrics: bool = False, ws: bool = False, ws_port: int = 8765):
    meta = preset.get("meta", {})
    out = open_mido_output(out_filter)
    eng, stores = build_engine(preset, MidoSink(out))
    clk = InternalClock(
        bpm=float(bpm if bpm else meta.get("tempo", 120)),
        handler=eng.on_tick,
        meter_numerator=int(meta.get("meterNumerator", 4)),
        meter_denominator=int(meta.get("meterDenominator", 4)),
    )
    inp = open_mido_input(in_filter, callback=_input_handler(eng))
    done = threading.Event()

    def shutdown(*_):
        done.set()
        clk.stop()
        eng.panic()
        inp.close()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    clk.start()
    _serve(eng, stores, clk, preset, print_metrics, ws, ws_port, done)
    threading.Event().wait()  # sleep forever


def run_external(preset: Dict[str, Any], in_filter: Optional[str], out_filter: Optional[str], print_metrics: bool = False, ws: bool = False, ws_port: int = 8765):
    meta = preset.get("meta", {})
    out = open_mido_output(out_filter)
    eng, stores = build_engine(preset, MidoSink(out))
    transport = ExternalClock(
        eng.on_tick,
        meter_numerator=int(meta.get("meterNumerator", 4)),
        meter_denominator=int(meta.get("meterDenominator", 4)),
    )
    inp = open_mido_input(in_filter, callback=_input_handler(eng, transport))
    done = threading.Event()

    def shutdown(*_):
        done.set()
        eng.panic()
        inp.close()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)
    _serve(eng, stores, transport, preset, print_metrics, ws, ws_port, done)
    # Run forever; callbacks drive the engine
    threading.Event().wait()


def run_replay(preset: Dict[str, Any], path: str, out_path: Optional[str]) -> int:
    res = replay_file(path, preset, out_path=out_path)
    for line in res.lines:
        print(line)
    if out_path:
        print(f"[replay] wrote {out_path}", flush=True)
    return 0


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Bar chord logger + decaying note tails over live MIDI or a MIDI file")
    ap.add_argument("--preset", help="Preset JSON (defaults when omitted)")
    sub = ap.add_subparsers(dest="mode", required=True)

    p_int = sub.add_parser("internal", help="Run on an internal clock")
    p_ext = sub.add_parser("external", help="Follow a device's MIDI clock and transport")
    for p in (p_int, p_ext):
        p.add_argument("--in", dest="in_port", help="Substring to match the MIDI input port")
        p.add_argument("--out", dest="out_port", help="Substring to match the MIDI output port")
        p.add_argument("--metrics", action="store_true", help="Print runtime metrics once per second")
        p.add_argument("--ws", action="store_true", help="Start the WS control surface")
        p.add_argument("--ws-port", type=int, default=8765)
    p_int.add_argument("--bpm", type=float, help="Tempo (default: preset meta.tempo)")

    p_rep = sub.add_parser("replay", help="Process a MIDI file offline")
    p_rep.add_argument("midi", help="Path to a .mid file")
    p_rep.add_argument("--write", help="Write pass-through plus tails to this .mid path")

    args = ap.parse_args(argv)
    try:
        preset = load_preset(args.preset)
    except ValidationError as e:
        print("invalid preset:", file=sys.stderr)
        for err in e.errors:
            print(f" - {err}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        print(f"error: failed to read {args.preset}: {e}", file=sys.stderr)
        return 2

    if args.mode == "replay":
        try:
            return run_replay(preset, args.midi, args.write)
        except (OSError, EOFError, ValueError) as e:
            print(f"error: failed to replay {args.midi}: {e}", file=sys.stderr)
            return 2
    if args.mode == "internal":
        run_internal(preset, args.in_port, args.out_port, args.bpm, print_metrics=args.metrics, ws=args.ws, ws_port=args.ws_port)
    else:
        run_external(preset, args.in_port, args.out_port, print_metrics=args.metrics, ws=args.ws, ws_port=args.ws_port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
