from __future__ import annotations

import argparse
import copy
import hashlib
import json
import math
import sys
from typing import Any, Dict, List

from midifx.params import SECTIONS, ParamSpec, menu_index, quantize


PRESET_VERSION = "midifx-1.0"

DEFAULT_META = {"tempo": 120, "meterNumerator": 4, "meterDenominator": 4}


class ValidationError(Exception):
    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


def _err(errors: List[str], path: str, msg: str) -> None:
    errors.append(f"{path}: {msg}")


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)


def _check_param(errors: List[str], path: str, spec: ParamSpec, value: Any) -> None:
    if spec.kind == "menu":
        if isinstance(value, bool):
            if len(spec.value_strings) != 2:
                _err(errors, path, "boolean only allowed for two-entry menus")
            return
        if isinstance(value, str):
            if menu_index(spec, value) is None:
                _err(errors, path, f"must be one of {'|'.join(spec.value_strings)}")
            return
        if isinstance(value, int) and 0 <= value < len(spec.value_strings):
            return
        _err(errors, path, f"menu index 0..{len(spec.value_strings) - 1} or label required")
        return
    if not _is_number(value):
        _err(errors, path, "number required")
        return
    if not (spec.min_value <= value <= spec.max_value):
        _err(errors, path, f"must be within {spec.min_value:g}..{spec.max_value:g}")


def validate_preset(doc: Dict[str, Any]) -> List[str]:
    """Check a preset document; returns human-readable errors with JSON-pointer paths.

    Sections and keys are optional (defaults fill in); unknown keys are errors
    so typos don't silently fall back to defaults.
    """
    errors: List[str] = []
    if not isinstance(doc, dict):
        return ["/: preset must be an object"]

    if doc.get("version", PRESET_VERSION) != PRESET_VERSION:
        _err(errors, "/version", f"must equal '{PRESET_VERSION}'")

    meta = doc.get("meta")
    if meta is not None:
        if not isinstance(meta, dict):
            _err(errors, "/meta", "must be an object if present")
        else:
            tempo = meta.get("tempo", DEFAULT_META["tempo"])
            if not _is_number(tempo) or tempo <= 0:
                _err(errors, "/meta/tempo", "positive number (BPM) required")
            for key in ("meterNumerator", "meterDenominator"):
                v = meta.get(key, DEFAULT_META[key])
                if not isinstance(v, int) or isinstance(v, bool) or v < 1:
                    _err(errors, f"/meta/{key}", "integer ≥1 required")

    for section, specs in SECTIONS.items():
        body = doc.get(section)
        if body is None:
            continue
        if not isinstance(body, dict):
            _err(errors, f"/{section}", "must be an object if present")
            continue
        by_key = {s.key: s for s in specs}
        for key, value in body.items():
            spec = by_key.get(key)
            if spec is None:
                _err(errors, f"/{section}/{key}", "unknown parameter")
                continue
            _check_param(errors, f"/{section}/{key}", spec, value)

    known = {"version", "meta", "docVersion"} | set(SECTIONS)
    for key in doc:
        if key not in known:
            _err(errors, f"/{key}", "unknown top-level key")
    return errors


def canonicalize(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Return a deep-copied preset with defaults filled and menus as labels."""
    src = copy.deepcopy(doc) if isinstance(doc, dict) else {}
    out: Dict[str, Any] = {"version": PRESET_VERSION}
    if "docVersion" in src:
        out["docVersion"] = int(src["docVersion"])
    meta = dict(DEFAULT_META)
    meta.update(src.get("meta") or {})
    out["meta"] = meta
    for section, specs in SECTIONS.items():
        body = src.get(section) or {}
        vals: Dict[str, Any] = {}
        for spec in specs:
            v = quantize(spec, body.get(spec.key, spec.default))
            vals[spec.key] = spec.value_strings[v] if spec.kind == "menu" else v
        out[section] = vals
    return out


def load_preset(path: str | None) -> Dict[str, Any]:
    """Read, validate and canonicalize a preset file; None gives the defaults."""
    if path is None:
        return canonicalize({})
    with open(path, "r", encoding="utf-8") as f:
        doc = json.load(f)
    errors = validate_preset(doc)
    if errors:
        raise ValidationError(errors)
    return canonicalize(doc)


def sha256_canonical(doc: Dict[str, Any]) -> str:
    """Compute SHA-256 of canonical JSON string (sorted keys, compact)."""
    s = json.dumps(doc, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def main(argv: List[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Validate and canonicalize a midifx preset JSON")
    ap.add_argument("path", help="Path to preset JSON file")
    ap.add_argument("--write", "-w", action="store_true", help="Rewrite file with canonical formatting and defaults")
    ap.add_argument("--print-hash", action="store_true", help="Print SHA-256 of canonical JSON")
    args = ap.parse_args(argv)

    try:
        with open(args.path, "r", encoding="utf-8") as f:
            preset = json.load(f)
    except Exception as e:
        print(f"error: failed to read {args.path}: {e}", file=sys.stderr)
        return 2

    errors = validate_preset(preset)
    if errors:
        print("invalid preset:")
        for e in errors:
            print(f" - {e}")
        return 1

    doc = canonicalize(preset)
    if args.print_hash:
        print(sha256_canonical(doc))

    if args.write:
        data = json.dumps(doc, sort_keys=True, indent=2, ensure_ascii=False)
        if not data.endswith("\n"):
            data += "\n"
        with open(args.path, "w", encoding="utf-8") as f:
            f.write(data)
        print(f"wrote canonical form to {args.path}")
    else:
        print("ok: valid and canonicalizable")

    return 0


if __name__ == "__main__":
    sys.exit(main())
