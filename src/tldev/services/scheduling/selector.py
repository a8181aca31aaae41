from __future__ import annotations

import math
from collections.abc import Sequence


class EmptyCandidateSet(Exception):
    pass


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def string_hash(text: str) -> int:
    """Polynomial rolling hash (h * 31 + c) wrapped to a signed 32-bit int."""
    h = 0
    for char in text:
        h = _to_int32((h << 5) - h + ord(char))
    return h


def slot_seed(date: str, slot: int) -> int:
    return abs(string_hash(f"{date}-{slot}"))


def seeded_random(seed: int) -> float:
    x = math.sin(seed) * 10000
    return x - math.floor(x)


def select_index(seed: int, candidates: Sequence) -> int:
    """Pick an index into ``candidates``; same seed and list give the same pick."""
    if not candidates:
        raise EmptyCandidateSet("No candidates to select from")
    index = math.floor(seeded_random(seed) * len(candidates))
    return min(index, len(candidates) - 1)
