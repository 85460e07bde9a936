"""
abmeter.tier1_assignment.bucketing
───────────────────────────────────
Deterministic bucketing: SHA-256 of ``"<salt>:<id>"``, first 64 bits as an
unsigned integer, scaled onto 1..100 with multiply-and-shift (no modulo
bias). Output must stay bit-compatible with every other SDK that buckets
the same salt/id pair, so the hash, byte order and width are fixed.
"""
from __future__ import annotations

import hashlib
from collections.abc import Iterable
from typing import Any, NamedTuple

from abmeter.tier1_assignment.types import stringify


class PercentRange(NamedTuple):
    """Inclusive percentage window. ``start > end`` is an empty window."""

    start: int
    end: int

    def includes(self, percentage: float) -> bool:
        return self.start <= percentage <= self.end


def to_percentage(salt: Any, id: Any) -> int:
    """Return a stable percentage in [1, 100] for ``id`` under ``salt``."""
    digest = hashlib.sha256(f"{stringify(salt)}:{stringify(id)}".encode()).digest()
    num = int.from_bytes(digest[:8], "big")
    return ((num * 100) >> 64) + 1


def percentages_to_ranges(percentages: Iterable[float]) -> list[PercentRange]:
    """
    Fold percentages into consecutive windows starting at 1.

    [10, 20, 30, 40] -> [(1, 10), (11, 30), (31, 60), (61, 100)]

    Zero and negative inputs are not special-cased: they yield empty or
    inverted windows.
    """
    ranges: list[PercentRange] = []
    for percentage in percentages:
        last_end = ranges[-1].end if ranges else 0
        ranges.append(PercentRange(last_end + 1, last_end + percentage))
    return ranges


__all__ = ["PercentRange", "to_percentage", "percentages_to_ranges"]
