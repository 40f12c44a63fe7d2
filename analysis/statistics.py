"""
Latency Statistics

Nearest-rank percentiles over per-execution totals.
"""

import math
from typing import Dict, Iterable, Sequence

from analysis.config import PERCENTILES


def nearest_rank(sorted_values: Sequence[float], percentile: float) -> float:
    """
    Nearest-rank percentile of an ascending sequence.

    rank = ceil(percentile * n), clamped to [1, n]. Empty input yields 0.
    """
    n = len(sorted_values)
    if n == 0:
        return 0.0
    # Round first so 0.95 * 20 is rank 19, not 20
    rank = math.ceil(round(percentile * n, 9))
    rank = min(max(rank, 1), n)
    return float(sorted_values[rank - 1])


def latency_summary(values: Iterable[float]) -> Dict[str, float]:
    """p50/p90/p95/p99 plus min, max and mean; all zero for no samples."""
    ordered = sorted(values)
    summary = {
        f"p{int(round(p * 100))}": nearest_rank(ordered, p)
        for p in PERCENTILES
    }
    if ordered:
        summary["min"] = float(ordered[0])
        summary["max"] = float(ordered[-1])
        summary["mean"] = sum(ordered) / len(ordered)
    else:
        summary.update({"min": 0.0, "max": 0.0, "mean": 0.0})
    return summary


def safe_ratio(numerator: float, denominator: float) -> float:
    """numerator / denominator, or 0 when the denominator is zero."""
    if not denominator:
        return 0.0
    return numerator / denominator
