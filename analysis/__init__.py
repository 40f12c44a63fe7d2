# Analysis Package
from analysis.config import AnalysisConfig, PlannerConfig
from analysis.aggregator import MetricsAggregator
from analysis.bottleneck import BottleneckDetector

__all__ = ["AnalysisConfig", "PlannerConfig", "MetricsAggregator", "BottleneckDetector"]
