from pathlib import Path

import mido

from midifx.play_local import main
from midifx.replay import replay_file, write_midi


TPB = 480


def _write_song(path: Path, bars, meter=None):
    """bars: list of (pitches, on_beat, off_beat)."""
    mid = mido.MidiFile(type=1, ticks_per_beat=TPB)
    track = mido.MidiTrack()
    mid.tracks.append(track)
    if meter:
        track.append(mido.MetaMessage("time_signature", numerator=meter[0], denominator=meter[1], time=0))
    timeline = []
    for pitches, on, off in bars:
        for p in pitches:
            timeline.append((int(on * TPB), 1, mido.Message("note_on", note=p, velocity=100)))
            timeline.append((int(off * TPB), 0, mido.Message("note_off", note=p, velocity=0)))
    last = 0
    for t, _order, msg in sorted(timeline, key=lambda e: (e[0], e[1])):
        track.append(msg.copy(time=t - last))
        last = t
    track.append(mido.MetaMessage("end_of_track", time=0))
    mid.save(str(path))


def test_replay_logs_each_bar(tmp_path):
    song = tmp_path / "song.mid"
    _write_song(song, [((60, 64, 67), 0, 2), ((62, 65, 69), 4, 6)])
    res = replay_file(str(song))
    assert res.lines == [
        "Bar 1: C  | bass=60  | PCs=C-E-G  | notes=60,64,67",
        "          semitones=0,4,7",
        "Bar 2: Dm  | bass=62  | PCs=D-F-A  | notes=62,65,69",
        "          semitones=0,3,7",
    ]
    ons = [m for _b, m in res.events if m.type == "note_on"]
    # six played notes plus two repeats each
    assert len(ons) == 18
    beats = [b for b, _m in res.events]
    assert beats == sorted(beats)
    assert res.end_beat >= 8.0


def test_whole_bar_chords_stay_in_their_own_bar(tmp_path):
    song = tmp_path / "legato.mid"
    _write_song(song, [((60, 64, 67), 0, 4), ((62, 65, 69), 4, 8)])
    res = replay_file(str(song))
    assert res.lines == [
        "Bar 1: C  | bass=60  | PCs=C-E-G  | notes=60,64,67",
        "          semitones=0,4,7",
        "Bar 2: Dm  | bass=62  | PCs=D-F-A  | notes=62,65,69",
        "          semitones=0,3,7",
    ]


def test_note_held_across_bar_line_counts_in_both_bars(tmp_path):
    song = tmp_path / "tie.mid"
    _write_song(song, [((48,), 2, 6), ((64, 67), 4, 5)])
    res = replay_file(str(song), {"chordLogger": {"includeNotesList": "No"}})
    assert res.lines[0] == "Bar 1: C  | bass=48  | PCs=C"
    assert res.lines[2] == "Bar 2: C  | bass=48  | PCs=C-E-G"


def test_leading_empty_bars_are_reported(tmp_path):
    song = tmp_path / "late.mid"
    _write_song(song, [((60, 64, 67), 8, 10)])
    res = replay_file(str(song), {"chordLogger": {"logEmptyBars": "Yes"}})
    assert res.lines[:3] == [
        "Bar 1: (no notes)",
        "Bar 2: (no notes)",
        "Bar 3: C  | bass=60  | PCs=C-E-G  | notes=60,64,67",
    ]


def test_restruck_chord_on_bar_line(tmp_path):
    song = tmp_path / "restrike.mid"
    _write_song(song, [((60, 64, 67), 0, 4), ((60, 64, 67), 4, 8), ((62,), 8, 9)])
    res = replay_file(str(song))
    assert res.lines[0] == "Bar 1: C  | bass=60  | PCs=C-E-G  | notes=60,64,67"
    assert res.lines[2] == "Bar 2: C  | bass=60  | PCs=C-E-G  | notes=60,64,67"
    # the restruck notes were released at beat 8, so bar 3 holds only the D
    assert res.lines[4] == "Bar 3: D  | bass=62  | PCs=D  | notes=62"


def test_replay_honours_preset_and_meter(tmp_path):
    song = tmp_path / "waltz.mid"
    _write_song(song, [((61, 65, 68), 0, 1), ((61, 65, 68), 3, 4)], meter=(3, 4))
    preset = {
        "chordLogger": {"pitchClassStyle": "Flats", "includeNotesList": "No"},
        "tail": {"quantity": 1},
    }
    res = replay_file(str(song), preset)
    assert res.lines[0] == "Bar 1: Db  | bass=61  | PCs=Db-F-Ab"
    assert res.lines[2] == "Bar 2: Db  | bass=61  | PCs=Db-F-Ab"
    ons = [m for _b, m in res.events if m.type == "note_on"]
    assert len(ons) == 12


def test_replay_writes_merged_stream(tmp_path):
    song = tmp_path / "song.mid"
    out = tmp_path / "out.mid"
    _write_song(song, [((60,), 0, 1)])
    replay_file(str(song), out_path=str(out))
    written = mido.MidiFile(str(out))
    assert written.ticks_per_beat == TPB
    notes = [m for m in written.tracks[0] if m.type == "note_on"]
    assert [m.note for m in notes] == [60, 60, 60]
    assert notes[1].velocity == 1


def test_write_midi_orders_by_beat(tmp_path):
    out = tmp_path / "o.mid"
    events = [
        (1.0, mido.Message("note_off", note=60)),
        (0.0, mido.Message("note_on", note=60, velocity=90)),
    ]
    write_midi(str(out), events, TPB)
    msgs = [m for m in mido.MidiFile(str(out)).tracks[0] if not m.is_meta]
    assert [m.type for m in msgs] == ["note_on", "note_off"]
    assert msgs[1].time == TPB


def test_cli_replay(tmp_path, capsys):
    song = tmp_path / "song.mid"
    _write_song(song, [((62, 65, 69), 0, 2)])
    assert main(["replay", str(song)]) == 0
    assert "Bar 1: Dm" in capsys.readouterr().out


def test_cli_rejects_bad_preset(tmp_path):
    preset = tmp_path / "p.json"
    preset.write_text('{"tail": {"gate": 9}}')
    assert main(["--preset", str(preset), "replay", "missing.mid"]) == 1
