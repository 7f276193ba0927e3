"""Numeric aggregation helpers used by metrics."""

from __future__ import annotations

from typing import Callable, Iterable

# Returned instead of a number when there is nothing to aggregate. Callers
# pick their own substitute (metrics here use 0).
NO_DATA = None


def weighted_mean(scores: Iterable[float], weight_fn: Callable[[float], float]) -> float | None:
    """
    Weighted mean of ``scores`` where each score is weighted by ``weight_fn(score)``.

    Args:
        scores: Finite real values
        weight_fn: Non-negative, monotone weighting transform

    Returns:
        sum(s * w(s)) / sum(w(s)), or NO_DATA for empty input or zero total weight
    """
    weighted = []
    total_weight = 0.0
    for score in scores:
        weight = weight_fn(score)
        if weight < 0:
            raise ValueError(f"weight_fn returned a negative weight for {score}")
        weighted.append((score, weight))
        total_weight += weight
    if total_weight == 0:
        return NO_DATA
    # Normalise weights first so a single sample comes back bit-for-bit.
    return sum(score * (weight / total_weight) for score, weight in weighted)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def interpolate(x: float, x0: float, y0: float, x1: float, y1: float) -> float:
    """Linear interpolation of y at x on the segment (x0, y0)-(x1, y1)."""
    if x1 == x0:
        return y0
    return y0 + (y1 - y0) * (x - x0) / (x1 - x0)
