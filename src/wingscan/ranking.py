"""Ranking and display formatting of raw classifier output."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from wingscan.ml.classifier import Prediction

_ONE_DECIMAL = Decimal("0.1")


@dataclass(frozen=True)
class RankedPrediction:
    """A prediction ready for display."""

    label: str
    percentage: str
    probability: float


def format_label(raw_label: str) -> str:
    """Return the first synonym of ``raw_label`` with each word capitalized.

    Classifier labels are often comma-separated synonym lists
    (``"red admiral, vanessa atalanta"``); only the first is shown.
    """
    first = raw_label.split(",")[0]
    words = [word[:1].upper() + word[1:] for word in first.split()]
    return " ".join(words)


def format_percentage(probability: float) -> str:
    """Format a probability in [0, 1] as a percentage with one decimal place."""
    # str() keeps the shortest repr so 0.999 * 100 rounds as 99.9, not 99.89999...
    value = (Decimal(str(probability)) * 100).quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP)
    return f"{value}%"


def rank(predictions: Sequence[Prediction]) -> list[RankedPrediction]:
    """Map raw predictions 1:1 to display entries, keeping the classifier's order."""
    return [
        RankedPrediction(
            label=format_label(p.label),
            percentage=format_percentage(p.probability),
            probability=p.probability,
        )
        for p in predictions
    ]
