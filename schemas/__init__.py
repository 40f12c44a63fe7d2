# Schemas Package
from schemas.agent import Agent
from schemas.workflow import Step, Workflow, WorkflowDescription, OptimizedWorkflow, StrategyKind
from schemas.analysis import AnalysisResult, StepAnalysis, OptimizationResult

__all__ = [
    "Agent",
    "Step",
    "Workflow",
    "WorkflowDescription",
    "OptimizedWorkflow",
    "StrategyKind",
    "AnalysisResult",
    "StepAnalysis",
    "OptimizationResult",
]
