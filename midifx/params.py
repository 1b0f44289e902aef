from __future__ import annotations

import math
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from midifx.envelope import sync_labels


@dataclass(frozen=True)
class ParamSpec:
    """One host control: a linear slider or a menu of labels."""

    key: str
    name: str
    kind: str  # "lin" | "menu"
    default: Any
    min_value: float = 0.0
    max_value: float = 1.0
    steps: int = 0
    value_strings: Tuple[str, ...] = field(default_factory=tuple)


def _menu(key: str, name: str, values, default: int) -> ParamSpec:
    return ParamSpec(key=key, name=name, kind="menu", default=default, min_value=0, max_value=len(values) - 1, steps=len(values) - 1, value_strings=tuple(values))


def _lin(key: str, name: str, lo: float, hi: float, steps: int, default: float) -> ParamSpec:
    return ParamSpec(key=key, name=name, kind="lin", default=default, min_value=lo, max_value=hi, steps=steps)


CHORD_LOGGER_PARAMS: Tuple[ParamSpec, ...] = (
    _menu("pitchClassStyle", "Pitch Class Style", ("Sharps", "Flats"), 0),
    _menu("logEmptyBars", "Log Empty Bars", ("No", "Yes"), 0),
    _menu("includeNotesList", "Include Notes List", ("No", "Yes"), 1),
)

_SYNC = tuple(sync_labels())

TAIL_PARAMS: Tuple[ParamSpec, ...] = (
    _lin("numerator", "Numerator", 0, 64, 64, 1),
    _lin("denominator", "Denominator", 0, 64, 64, 12),
    _lin("quantity", "Quantity", 1, 64, 63, 2),
    _lin("tailDecay", "Tail Decay", 0, 1, 100, 1),
    _lin("gate", "Gate", 0.05, 1, 95, 0.5),
    _lin("pitchDecay", "Pitch Decay", 0, 1, 1000, 0),
    _lin("pitchDecayMultiplier", "Pitch Decay Multiplier", 1, 60, 59, 1),
    _lin("highpassHz", "High-pass (Hz)", 20, 20000, 19980, 20),
    _lin("lowpassHz", "Low-pass (Hz)", 1, 20000, 19999, 2000),
    # 1000 steps keeps 1/12-beat multiples reachable
    _lin("delayBeats", "Delay (beats)", 0, 1, 1000, 0.083),
    _menu("attack", "Attack", _SYNC, 0),
    _menu("hold", "Hold", _SYNC, 0),
    _menu("decay", "Decay", _SYNC, 10),
    _lin("sustain", "Sustain", 0, 1, 1000, 0.8),
    _menu("release", "Release", _SYNC, 10),
    _lin("voices", "Voices", 1, 64, 63, 12),
)

SECTIONS: Dict[str, Tuple[ParamSpec, ...]] = {
    "chordLogger": CHORD_LOGGER_PARAMS,
    "tail": TAIL_PARAMS,
}


def menu_index(spec: ParamSpec, value: Any) -> Optional[int]:
    """Resolve a menu value given as index, bool or label (case-insensitive)."""
    if isinstance(value, str):
        want = value.strip().lower()
        for i, s in enumerate(spec.value_strings):
            if s.lower() == want:
                return i
        return None
    if isinstance(value, (int, float)) and math.isfinite(value):
        return int(max(0, min(len(spec.value_strings) - 1, math.floor(float(value) + 0.5))))
    return None


def quantize(spec: ParamSpec, value: Any) -> Any:
    """Clamp and snap a value the way the host's control would."""
    if spec.kind == "menu":
        idx = menu_index(spec, value)
        return spec.default if idx is None else idx
    try:
        v = float(value)
    except (TypeError, ValueError):
        return spec.default
    if not math.isfinite(v):
        return spec.default
    lo, hi = float(spec.min_value), float(spec.max_value)
    v = max(lo, min(hi, v))
    if spec.steps <= 0 or hi <= lo:
        return v
    unit = (hi - lo) / spec.steps
    v = lo + round((v - lo) / unit) * unit
    if unit == int(unit):
        return int(round(v))
    return round(v, 9)


class ParameterStore:
    """Current values for one plugin's controls.

    Reads and writes may come from different threads (clock, WS server).
    """

    def __init__(self, specs: Tuple[ParamSpec, ...], values: Optional[Dict[str, Any]] = None) -> None:
        self.specs: Dict[str, ParamSpec] = {s.key: s for s in specs}
        self._lock = threading.Lock()
        self._values: Dict[str, Any] = {s.key: s.default for s in specs}
        if values:
            self.update(values)

    def get(self, key: str) -> Any:
        with self._lock:
            return self._values[key]

    def set(self, key: str, value: Any) -> Any:
        spec = self.specs.get(key)
        if spec is None:
            raise KeyError(f"unknown parameter: {key}")
        v = quantize(spec, value)
        with self._lock:
            self._values[key] = v
        return v

    def update(self, values: Dict[str, Any]) -> None:
        for k, v in values.items():
            if k in self.specs:
                self.set(k, v)

    def values(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._values)

    def label(self, key: str) -> str:
        spec = self.specs[key]
        v = self.get(key)
        if spec.kind == "menu":
            return spec.value_strings[int(v)]
        return str(v)

    def snapshot(self) -> Dict[str, Any]:
        """Plain dict for presets/WS: menus as labels, sliders as numbers."""
        out: Dict[str, Any] = {}
        for key, spec in self.specs.items():
            out[key] = self.label(key) if spec.kind == "menu" else self.get(key)
        return out


def stores_from_preset(doc: Dict[str, Any]) -> Dict[str, ParameterStore]:
    return {section: ParameterStore(specs, (doc or {}).get(section) or {}) for section, specs in SECTIONS.items()}


def describe(specs: Tuple[ParamSpec, ...]) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for s in specs:
        ent: Dict[str, Any] = {"key": s.key, "name": s.name, "type": s.kind, "defaultValue": s.default}
        if s.kind == "menu":
            ent["valueStrings"] = list(s.value_strings)
        else:
            ent.update({"minValue": s.min_value, "maxValue": s.max_value, "numberOfSteps": s.steps})
        out.append(ent)
    return out
