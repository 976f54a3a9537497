"""
Weighted-factor helpers shared by the neighborhood scorer and the matcher.
"""

import math
from typing import Dict, Iterable, List, Tuple

from fedspace.models import FactorScore

# (minimum score, grade), highest first
GRADE_THRESHOLDS: List[Tuple[float, str]] = [
    (95, "A+"),
    (90, "A"),
    (85, "B+"),
    (80, "B"),
    (75, "C+"),
    (70, "C"),
    (60, "D"),
]


def round_half_up(value: float, digits: int = 0) -> float:
    """
    Round with halves going up (2.5 -> 3), unlike Python's banker's rounding.

    Scores are published with one decimal, and 70.25 should read 70.3.
    """
    factor = 10 ** digits
    # Nudge to absorb float noise such as 70.25 being stored as 70.24999...
    return math.floor(value * factor + 0.5 + 1e-9) / factor


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def make_factor(score: float, weight: float, explanation: str) -> FactorScore:
    """Build a FactorScore from a raw 0-100 score, clamped and rounded to one decimal."""
    score = round_half_up(clamp(score), 1)
    return FactorScore(
        score=score,
        weight=weight,
        weighted=score * weight / 100,
        explanation=explanation,
    )


def weighted_total(factors: Iterable[FactorScore]) -> float:
    """Sum of weighted contributions, rounded to one decimal."""
    return round_half_up(sum(f.weighted for f in factors), 1)


def assign_grade(score: float) -> str:
    """Letter grade for a 0-100 score."""
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return "F"


def check_weights(weights: Dict[str, float]):
    """Weights are percentages and must add up to 100."""
    total = sum(weights.values())
    if abs(total - 100) > 1e-9:
        raise ValueError(f"Factor weights must sum to 100, got {total}")
