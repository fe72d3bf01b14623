"""Derived metrics recomputed from additive totals.

Ratios reported per row by the source cannot be summed, so the engine keeps
additive totals while folding and derives the ratios once at the end.
"""

import math
from typing import Iterable


def safe_ratio(numerator: float, denominator: float) -> float:
    """Divide, returning 0 when the denominator is not positive."""
    if denominator <= 0:
        return 0.0
    return numerator / denominator


def clamp_unit(value: float) -> float:
    return min(1.0, max(0.0, value))


def recompute_bounce_rate(sessions: int, engaged_sessions: int) -> float:
    """Bounce rate as ``1 - engaged / sessions``, clamped to [0, 1]."""
    if sessions <= 0:
        return 0.0
    return clamp_unit(1.0 - engaged_sessions / sessions)


def mean_duration(durations: Iterable[float]) -> float:
    """Arithmetic mean of per-row average durations.

    Rows are not weighted by their session counts, so a single-session row
    counts as much as a busy one.
    """
    values = list(durations)
    if not values:
        return 0.0
    return sum(values) / len(values)


def approximate_bounced_sessions(sessions: int, bounce_rate: float) -> int:
    """Bounced sessions of one row, rounding ``sessions * bounce_rate`` half up."""
    return int(math.floor(sessions * clamp_unit(bounce_rate) + 0.5))
