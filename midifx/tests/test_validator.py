import json
import unittest

from midifx.validator import PRESET_VERSION, ValidationError, canonicalize, load_preset, main, sha256_canonical, validate_preset


class TestValidatePreset(unittest.TestCase):
    def test_empty_and_default_presets_are_valid(self):
        self.assertEqual(validate_preset({}), [])
        self.assertEqual(validate_preset(canonicalize({})), [])

    def test_reports_json_pointer_paths(self):
        doc = {
            "version": "other-2.0",
            "meta": {"tempo": 0, "meterDenominator": 0},
            "tail": {"gate": 5, "wobble": 1, "attack": "1/3"},
            "chordLogger": {"logEmptyBars": "maybe"},
            "extra": True,
        }
        errors = validate_preset(doc)
        paths = {e.split(":")[0] for e in errors}
        self.assertEqual(paths, {
            "/version",
            "/meta/tempo",
            "/meta/meterDenominator",
            "/tail/gate",
            "/tail/wobble",
            "/tail/attack",
            "/chordLogger/logEmptyBars",
            "/extra",
        })

    def test_menu_value_forms(self):
        ok = {"chordLogger": {"pitchClassStyle": "flats", "logEmptyBars": True, "includeNotesList": 0}}
        self.assertEqual(validate_preset(ok), [])
        self.assertNotEqual(validate_preset({"tail": {"decay": True}}), [])
        self.assertNotEqual(validate_preset({"tail": {"decay": 18}}), [])

    def test_not_an_object(self):
        self.assertEqual(validate_preset([]), ["/: preset must be an object"])


class TestCanonicalize(unittest.TestCase):
    def test_fills_defaults_and_labels_menus(self):
        doc = canonicalize({"tail": {"decay": 13, "gate": 0.257}, "docVersion": 3})
        self.assertEqual(doc["version"], PRESET_VERSION)
        self.assertEqual(doc["docVersion"], 3)
        self.assertEqual(doc["meta"], {"tempo": 120, "meterNumerator": 4, "meterDenominator": 4})
        self.assertEqual(doc["tail"]["decay"], "1/2")
        self.assertEqual(doc["tail"]["gate"], 0.26)
        self.assertEqual(doc["tail"]["release"], "1/4")
        self.assertEqual(doc["chordLogger"]["includeNotesList"], "Yes")

    def test_is_stable(self):
        once = canonicalize({"tail": {"quantity": 4}})
        self.assertEqual(canonicalize(once), once)
        self.assertEqual(sha256_canonical(once), sha256_canonical(canonicalize(once)))

    def test_does_not_touch_input(self):
        src = {"tail": {"quantity": 4}}
        canonicalize(src)
        self.assertEqual(src, {"tail": {"quantity": 4}})


def test_load_preset_defaults_without_path():
    doc = load_preset(None)
    assert doc["tail"]["denominator"] == 12


def test_load_preset_rejects_invalid(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"tail": {"voices": 0}}))
    try:
        load_preset(str(path))
    except ValidationError as e:
        assert e.errors == ["/tail/voices: must be within 1..64"]
    else:
        raise AssertionError("expected ValidationError")


def test_cli_writes_canonical_form(tmp_path, capsys):
    path = tmp_path / "preset.json"
    path.write_text(json.dumps({"tail": {"quantity": 3}}))
    assert main([str(path), "--write", "--print-hash"]) == 0
    written = json.loads(path.read_text())
    assert written["tail"]["quantity"] == 3
    assert written["tail"]["attack"] == "1/64"
    out = capsys.readouterr().out
    assert sha256_canonical(written) in out


def test_cli_exit_codes(tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"tail": {"gate": "wide"}}))
    assert main([str(bad)]) == 1
    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    assert main([str(broken)]) == 2


if __name__ == "__main__":
    unittest.main()
