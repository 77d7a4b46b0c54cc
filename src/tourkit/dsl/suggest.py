"""Nearest-match suggestions for unresolved identifiers.

Quadratic per pair; fine for an offline compile step, not for hot paths.
"""

from __future__ import annotations

from typing import Iterable


def levenshtein(a: str, b: str) -> int:
    """Case-insensitive edit distance; zero when one string prefixes the other."""
    a = a.lower()
    b = b.lower()
    if a.startswith(b) or b.startswith(a):
        return 0

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def nearest(value: str, candidates: Iterable[str], limit: int = 3) -> list[str]:
    ranked = sorted({c for c in candidates}, key=lambda candidate: (levenshtein(value, candidate), candidate))
    return ranked[:limit]
