from midifx.midi_engine import NOTE_OFF, NOTE_ON, Engine, MidiEvent, TimingInfo, VirtualSink
from midifx.plugins import ChordLogger, TailGenerator


def main():
    sink = VirtualSink()
    eng = Engine(sink, [ChordLogger(), TailGenerator()])

    # Bar 1: C major triad held for two beats, then released
    eng.on_tick(TimingInfo(True, 0.0))
    for p in (60, 64, 67):
        eng.on_event(MidiEvent(NOTE_ON, p, 100, 0, 0.0))
    eng.on_tick(TimingInfo(True, 2.0))
    for p in (60, 64, 67):
        eng.on_event(MidiEvent(NOTE_OFF, p, 0, 0, 2.0))

    # Walk into bar 2 in 1/24-beat blocks so the tails are delivered
    for i in range(2 * 24, 4 * 24 + 1):
        eng.on_tick(TimingInfo(True, i / 24.0))

    print("events:")
    for e in sink.events:
        print(e)


if __name__ == "__main__":
    main()
