from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple


NAMES_SHARPS = ("C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B")
NAMES_FLATS = ("C", "Db", "D", "Eb", "E", "F", "Gb", "G", "Ab", "A", "Bb", "B")

NO_NOTES = "(no notes)"

# (quality, required intervals, label token); first match wins
QUALITIES: Tuple[Tuple[str, Tuple[int, int], str], ...] = (
    ("major", (4, 7), ""),
    ("minor", (3, 7), "m"),
    ("dim", (3, 6), "dim"),
    ("aug", (4, 8), "aug"),
    ("sus2", (2, 7), "sus2"),
    ("sus4", (5, 7), "sus4"),
)


def pc_name(pc: int, style: str = "sharps") -> str:
    names = NAMES_FLATS if str(style).lower() == "flats" else NAMES_SHARPS
    return names[int(pc) % 12]


@dataclass
class ChordResult:
    label: str
    root_pc: Optional[int]
    bass: Optional[int]
    quality: Optional[str]
    quality_token: str
    suffix_tokens: List[str] = field(default_factory=list)
    pitch_classes: List[int] = field(default_factory=list)
    intervals: List[int] = field(default_factory=list)
    pitches: List[int] = field(default_factory=list)

    @property
    def suffix(self) -> str:
        return "".join(self.suffix_tokens)

    def pc_names(self, style: str = "sharps") -> List[str]:
        return [pc_name(pc, style) for pc in self.pitch_classes]


def _classify(ints: Iterable[int]) -> Tuple[Optional[str], str]:
    present = set(ints)
    for quality, (a, b), token in QUALITIES:
        if a in present and b in present:
            return quality, token
    return None, ""


def _suffix_tokens(ints: List[int], quality: Optional[str], token: str) -> List[str]:
    """Extension/alteration tokens, appended in a fixed order.

    Checks are not mutually exclusive; later checks look at what is already
    in the suffix, so the order below is part of the naming contract.
    """
    present = set(ints)
    tokens: List[str] = []

    def suffix() -> str:
        return "".join(tokens)

    if 10 in present:
        tokens.append("7")
    elif 11 in present:
        tokens.append("maj7")

    # a 6 only when there's no 7th yet ("maj7" counts as a 7th)
    if 9 in present and "7" not in suffix():
        tokens.append("6")

    if 2 in present:
        tokens.append("add9" if not tokens else "9")

    # sus4 already implies the 4th
    if 5 in present and quality != "sus4":
        tokens.append("add11")

    if 9 in present and (10 in present or 11 in present):
        tokens.append("13")

    if 6 in present and quality != "dim":
        tokens.append("b5")
    if 8 in present and quality != "aug":
        tokens.append("#5")
    if 1 in present:
        tokens.append("b9")
    # a minor third on a triad with no quality token (major or none) reads as #9
    if 3 in present and token == "":
        tokens.append("#9")
    return tokens


def name_chord(pitches: Iterable[int], style: str = "sharps") -> ChordResult:
    """Name the chord built on the lowest sounding pitch.

    Root is always the pitch class of the lowest pitch, not the theoretical
    root. Never fails: unclassifiable sets fall back to an interval list and
    an empty input yields the "(no notes)" label.
    """
    uniq = sorted({int(p) for p in pitches})
    if not uniq:
        return ChordResult(label=NO_NOTES, root_pc=None, bass=None, quality=None, quality_token="")

    bass = uniq[0]
    root_pc = bass % 12
    pcs = sorted({p % 12 for p in uniq})
    ints = sorted({(pc - root_pc) % 12 for pc in pcs})

    quality, token = _classify(ints)
    tokens = _suffix_tokens(ints, quality, token)
    root_name = pc_name(root_pc, style)
    label = root_name + token + "".join(tokens)

    if quality is None and not tokens and len(pcs) > 1:
        label = f"{root_name} ({','.join(str(i) for i in ints if i != 0)})"

    return ChordResult(
        label=label,
        root_pc=root_pc,
        bass=bass,
        quality=quality,
        quality_token=token,
        suffix_tokens=tokens,
        pitch_classes=pcs,
        intervals=ints,
        pitches=uniq,
    )
