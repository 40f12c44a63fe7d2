"""
Analysis and Planning Configuration

Tunable thresholds for bottleneck detection and optimization planning.

DESIGN RULES:
- Declarative (data, not code)
- Defaults come from application settings
- Deterministic evaluation
"""

from dataclasses import dataclass, field
from typing import Tuple

from app.core.config import settings


# Percentiles reported for per-execution total latency
PERCENTILES: Tuple[float, ...] = (0.50, 0.90, 0.95, 0.99)


@dataclass
class AnalysisConfig:
    """
    Bottleneck policy: a step is flagged if its share of total latency
    exceeds threshold_percent OR it ranks in the top_k by average latency.
    """

    threshold_percent: float = field(default_factory=lambda: settings.bottleneck_threshold_percent)
    top_k: int = field(default_factory=lambda: settings.bottleneck_top_k)


@dataclass
class PlannerConfig:
    """
    Optimization planner tunables.

    batch_discount_factor is the assumed saving per merged call when batching
    (sub-linear scaling): a run with m merges saves 1 - (1 - d) ** m of its
    combined latency and cost.
    """

    batch_discount_factor: float = field(default_factory=lambda: settings.batch_discount_factor)
    enable_parallelization: bool = True
    enable_caching: bool = True
    enable_batching: bool = True

    def __post_init__(self):
        if not 0.0 <= self.batch_discount_factor < 1.0:
            raise ValueError("batch_discount_factor must be in [0, 1)")


DEFAULT_ANALYSIS_CONFIG = AnalysisConfig()
DEFAULT_PLANNER_CONFIG = PlannerConfig()
