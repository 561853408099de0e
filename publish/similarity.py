"""Jaro string similarity for near-duplicate title suppression."""

from __future__ import annotations

from rapidfuzz.distance import Jaro


def jaro(first: str, second: str) -> float:
    """Return the Jaro similarity of two strings in ``[0, 1]``."""
    return Jaro.similarity(first, second)
