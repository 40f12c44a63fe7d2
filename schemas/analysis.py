from typing import Dict, List
from pydantic import Field

from schemas.base import CamelModel
from schemas.workflow import StrategyKind


# --- Analysis Schemas ---

class LatencyMetrics(CamelModel):
    """Percentiles over per-execution total latencies (ms)."""
    p50: float = 0.0
    p90: float = 0.0
    p95: float = 0.0
    p99: float = 0.0
    min: float = 0.0
    max: float = 0.0
    mean: float = 0.0


class QualityMetrics(CamelModel):
    success_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    error_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    failed_steps: int = 0
    total_executions: int = 0


class StepAnalysis(CamelModel):
    """Per-step breakdown aggregated across all completed traces."""
    step_id: str
    agent_id: str
    agent_name: str
    latency: float = Field(default=0.0, description="Average latency (ms)")
    cost: float = Field(default=0.0, description="Average cost (USD)")
    percentage_of_total: float = 0.0
    invocations: int = 0
    failures: int = 0
    is_bottleneck: bool = False


class AnalysisResult(CamelModel):
    """
    Derived view over the completed traces of one workflow id.

    total_latency and total_cost are per-execution averages.
    """
    workflow_id: str
    execution_count: int = 0
    total_latency: float = 0.0
    total_cost: float = 0.0
    cumulative_cost: float = 0.0
    quality_metrics: QualityMetrics = Field(default_factory=QualityMetrics)
    latency_metrics: LatencyMetrics = Field(default_factory=LatencyMetrics)
    step_analysis: List[StepAnalysis] = Field(default_factory=list)
    repeated_calls: Dict[str, str] = Field(default_factory=dict, description="Repeated step id -> first step with the same call")

    @property
    def bottlenecks(self) -> List[StepAnalysis]:
        return [s for s in self.step_analysis if s.is_bottleneck]


# --- Optimization Schemas ---

class Improvements(CamelModel):
    """Predicted reductions, in percent of the unoptimized baseline."""
    latency_reduction: float = 0.0
    cost_reduction: float = 0.0


class OptimizationResult(CamelModel):
    """One applied strategy."""
    type: StrategyKind
    improvements: Improvements = Field(default_factory=Improvements)
    affected_steps: List[str] = Field(default_factory=list)
    description: str = ""
