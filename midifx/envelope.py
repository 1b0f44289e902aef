from __future__ import annotations

import math
from typing import List, Tuple


# Beat-synced stage lengths (quarter note = 1 beat). "t" = triplet, "*" = dotted.
# Menu order is part of the preset format; do not sort.
SYNC_DURATIONS: Tuple[Tuple[str, float], ...] = (
    ("1/64", 0.0625),
    ("1/32t", 0.0833333333),
    ("1/32", 0.125),
    ("1/16t", 0.1666666667),
    ("1/16", 0.25),
    ("1/16*", 0.375),
    ("1/8t", 0.3333333333),
    ("1/8", 0.5),
    ("1/8*", 0.75),
    ("1/4t", 0.6666666667),
    ("1/4", 1.0),
    ("1/4*", 1.5),
    ("1/2t", 1.3333333333),
    ("1/2", 2.0),
    ("1/2*", 3.0),
    ("1t", 2.6666666667),
    ("1", 4.0),
    ("1*", 6.0),
)


def sync_labels() -> List[str]:
    return [label for label, _beats in SYNC_DURATIONS]


def sync_duration(index: float) -> float:
    """Beats for a menu selection; out-of-range or junk selections clamp."""
    try:
        idx = int(math.floor(float(index) + 0.5))
    except (TypeError, ValueError, OverflowError):
        idx = 0
    idx = max(0, min(len(SYNC_DURATIONS) - 1, idx))
    return SYNC_DURATIONS[idx][1]


def amplitude(t: float, attack: float, hold: float, decay: float, sustain: float, release: float, total_span: float) -> float:
    """AHDSR level at beat offset t, in [0, 1].

    The release window is anchored to the end of total_span, so sustain is
    only held when the span is longer than attack+hold+decay+release.
    """
    attack_end = attack
    hold_end = attack_end + hold
    decay_end = hold_end + decay
    release_start = max(decay_end, total_span - release)

    if t <= 0:
        return 0.0 if attack > 0 else 1.0
    if t < attack_end and attack > 0:
        return t / attack
    if t < hold_end:
        return 1.0
    if t < decay_end and decay > 0:
        k = (t - hold_end) / decay
        return 1.0 + k * (sustain - 1.0)
    if t < release_start:
        return sustain
    if release <= 0:
        return 0.0
    k_rel = 1.0 - min(1.0, (t - release_start) / release)
    return sustain * k_rel
