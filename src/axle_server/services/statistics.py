"""Small numeric helpers shared by baselines and scoring.

Standard deviation here is the population formula (divide by N). Historical
scores were computed that way, so keep it for parity.
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass


@dataclass(frozen=True)
class Baseline:
    """Rolling statistics for one metric."""

    mean: float = 0.0
    std: float = 0.0
    count: int = 0


EMPTY_BASELINE = Baseline()


@dataclass(frozen=True)
class MetricBaselines:
    """Baselines for the five metrics that feed the scorers."""

    hrv: Baseline = EMPTY_BASELINE
    resting_hr: Baseline = EMPTY_BASELINE
    sleep_score: Baseline = EMPTY_BASELINE
    stress: Baseline = EMPTY_BASELINE
    steps: Baseline = EMPTY_BASELINE


def clamp(value: float, lo: float, hi: float) -> float:
    """Bound value to [lo, hi]."""
    return max(lo, min(hi, value))


def safe_div(numerator: float, denominator: float) -> float:
    """Divide, returning 0 for a zero or non-finite operand."""
    if denominator == 0 or not math.isfinite(numerator) or not math.isfinite(denominator):
        return 0.0
    return numerator / denominator


def winsorize(
    values: Sequence[float],
    lower_pct: float = 0.05,
    upper_pct: float = 0.95,
) -> list[float]:
    """Cap values at the lower/upper percentile of the sample.

    Input order is preserved. Used to blunt sensor glitches before
    computing a baseline.

    Args:
        values: Raw samples
        lower_pct: Lower percentile as a fraction (0-1)
        upper_pct: Upper percentile as a fraction (0-1)

    Returns:
        New list with every value inside [sorted[lower_idx], sorted[upper_idx]]
    """
    if not values:
        return []

    ordered = sorted(values)
    n = len(ordered)
    lower_idx = min(n - 1, math.floor(n * lower_pct))
    upper_idx = min(n - 1, math.floor(n * upper_pct))
    lower_cap = ordered[lower_idx]
    upper_cap = ordered[upper_idx]

    return [clamp(v, lower_cap, upper_cap) for v in values]


def compute_rolling_baseline(values: Sequence[float]) -> Baseline:
    """Mean, population std and count of values; zeros when empty."""
    if not values:
        return EMPTY_BASELINE

    n = len(values)
    mean = sum(values) / n
    variance = sum((v - mean) ** 2 for v in values) / n
    return Baseline(mean=mean, std=math.sqrt(variance), count=n)
