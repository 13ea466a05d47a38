"""Quartile cut points and rudeness bucket classification."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import Iterable


class InvalidInput(ValueError):
    """Raised when quartiles cannot be computed from the given scores."""


def format_score(value: float) -> str:
    text = repr(float(value))
    return text[:-2] if text.endswith(".0") else text


@dataclass(frozen=True)
class Quartiles:
    q1: float
    q2: float
    q3: float

    def as_tuple(self) -> tuple:
        return self.q1, self.q2, self.q3


class Bucket(enum.Enum):
    MOST_POLITE = ("Most Polite", "#13D0B4")
    POLITE = ("Polite", "#5DD2EF")
    RUDE = ("Rude", "#F59A66")
    RUDEST = ("Rudest", "#ED5F80")

    def __init__(self, label: str, color: str) -> None:
        self.label = label
        self.color = color

    @property
    def order(self) -> int:
        return list(Bucket).index(self)

    def range_label(self, quartiles: Quartiles) -> str:
        q1, q2, q3 = (format_score(q) for q in quartiles.as_tuple())
        if self is Bucket.MOST_POLITE:
            return f"≤{q1}"
        if self is Bucket.POLITE:
            return f"{q1}–{q2}"
        if self is Bucket.RUDE:
            return f"{q2}–{q3}"
        return f">{q3}"


def compute_quartiles(scores: Iterable[float]) -> Quartiles:
    """Return the 25th/50th/75th percentile cut points of ``scores``.

    Cut points are taken straight from the sorted values at indices
    ``floor(n * p)`` with no interpolation, so each one is an input value.
    """
    ordered = sorted(float(score) for score in scores)
    if not ordered:
        raise InvalidInput("Cannot compute quartiles of an empty score set.")
    if not all(math.isfinite(score) for score in ordered):
        raise InvalidInput("Scores must be finite numbers.")

    n = len(ordered)
    return Quartiles(
        q1=ordered[math.floor(n * 0.25)],
        q2=ordered[math.floor(n * 0.5)],
        q3=ordered[math.floor(n * 0.75)],
    )


def classify(score: float, quartiles: Quartiles) -> Bucket:
    if score <= quartiles.q1:
        return Bucket.MOST_POLITE
    if score <= quartiles.q2:
        return Bucket.POLITE
    if score <= quartiles.q3:
        return Bucket.RUDE
    return Bucket.RUDEST
