"""
Agent Chain Optimizer

The library entry point. Wires the agent registry, execution tracer,
metrics aggregator, bottleneck detector and optimization planner behind
one narrow, synchronous API.
"""

import logging
from threading import Lock
from typing import Any, Dict, Mapping, Optional, Union

from analysis.aggregator import MetricsAggregator
from analysis.bottleneck import BottleneckDetector
from analysis.config import AnalysisConfig, PlannerConfig
from app.core.config import settings
from app.core.errors import DisposedError, UnknownWorkflowError
from observability.sink import TraceSink, sink_from_name
from observability.trace import Execution, StepEvent
from observability.tracer import ExecutionTracer
from orchestration.planner import OptimizationOutcome, OptimizationPlanner
from orchestration.state import ExecutionStatus
from registry.agent_registry import AgentRegistry
from schemas.agent import Agent
from schemas.analysis import AnalysisResult
from schemas.workflow import Step, Workflow, WorkflowDescription

logger = logging.getLogger(__name__)


class AgentChainOptimizer:
    """
    Analyzes and optimizes multi-agent workflows.

    Flow:
    1. Caller registers agents (and optionally workflows)
    2. Caller drives the tracer through one or more executions
    3. analyze_workflow aggregates completed traces and flags bottlenecks
    4. optimize_workflow rewrites a workflow using the measured metrics

    After dispose() every call raises DisposedError.
    """

    def __init__(
        self,
        analysis_config: Optional[AnalysisConfig] = None,
        planner_config: Optional[PlannerConfig] = None,
        sink: Optional[TraceSink] = None,
        auto_optimize: bool = False,
        clock=None,
    ):
        """
        Initialize the optimizer.

        Args:
            analysis_config: Bottleneck thresholds
            planner_config: Strategy toggles and batching discount
            sink: Receives each completed execution
            auto_optimize: Re-plan registered workflows whenever an execution completes
            clock: Time source for the tracer (defaults to datetime.now)
        """
        self._registry = AgentRegistry()
        self._workflows: Dict[str, Workflow] = {}
        self._optimizations: Dict[str, OptimizationOutcome] = {}
        self._lock = Lock()
        self._disposed = False

        tracer_kwargs = {"sink": sink}
        if clock is not None:
            tracer_kwargs["clock"] = clock
        self._tracer = ExecutionTracer(**tracer_kwargs)
        self._aggregator = MetricsAggregator(agent_lookup=self._registry.get)
        self._detector = BottleneckDetector(analysis_config)
        self._planner = OptimizationPlanner(agent_lookup=self._registry.get, config=planner_config)
        self._auto_optimize = auto_optimize

    # --- Agents & workflows ---

    def register_agent(self, agent: Union[Agent, Mapping[str, Any]]) -> Agent:
        self._ensure_active()
        registered = self._registry.register(agent)
        logger.debug(f"Registered agent {registered.id}")
        return registered

    def lookup_agent(self, agent_id: str) -> Agent:
        self._ensure_active()
        return self._registry.lookup(agent_id)

    def register_workflow(self, workflow: Union[Workflow, Mapping[str, Any]]) -> Workflow:
        """
        Register a workflow definition for validation and auto-optimization.

        Agents carried by a WorkflowDescription are registered too.
        Re-registering a workflow id replaces the definition.
        """
        self._ensure_active()
        workflow = self._coerce_workflow(workflow)
        with self._lock:
            self._workflows[workflow.id] = workflow
        return workflow

    def get_workflow(self, workflow_id: str) -> Workflow:
        self._ensure_active()
        with self._lock:
            workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise UnknownWorkflowError(workflow_id)
        return workflow

    # --- Tracing ---

    def start_execution(self, workflow_id: str, label: Optional[str] = None, validate: bool = False) -> str:
        """
        Start an execution; returns its trace id.

        The execution id is the label when given, otherwise the trace id.
        With validate=True the workflow id must have been registered.
        """
        self._ensure_active()
        if validate:
            self.get_workflow(workflow_id)
        return self._tracer.start_execution(workflow_id, label)

    def start_step(
        self,
        execution_id: str,
        step: Union[Step, Mapping[str, Any]],
        trace_id: Optional[str] = None,
    ) -> StepEvent:
        self._ensure_active()
        if not isinstance(step, Step):
            step = Step.model_validate(step)
        return self._tracer.start_step(execution_id, step, trace_id)

    def complete_step(
        self,
        execution_id: str,
        step_id: str,
        input_tokens: int,
        output_tokens: int,
        success: bool,
        error: Optional[str] = None,
    ) -> StepEvent:
        self._ensure_active()
        return self._tracer.complete_step(execution_id, step_id, input_tokens, output_tokens, success, error)

    def complete_execution(
        self,
        execution_id: str,
        final_status: Union[ExecutionStatus, str] = ExecutionStatus.COMPLETED,
    ) -> Execution:
        self._ensure_active()
        execution = self._tracer.complete_execution(execution_id, final_status)
        if self._auto_optimize:
            self._reoptimize(execution.workflow_id)
        return execution

    def get_execution(self, execution_id: str) -> Execution:
        self._ensure_active()
        return self._tracer.get_execution(execution_id)

    # --- Analysis & optimization ---

    def analyze_workflow(self, workflow_id: str) -> AnalysisResult:
        """
        Aggregate all completed executions of a workflow id.

        Running executions are excluded; zero executions yield zeroed metrics.
        """
        self._ensure_active()
        executions = self._tracer.completed_executions(workflow_id)
        result = self._aggregator.aggregate(workflow_id, executions)
        return self._detector.apply(result)

    def optimize_workflow(
        self,
        workflow: Union[Workflow, Mapping[str, Any]],
        historical: Optional[AnalysisResult] = None,
    ) -> OptimizationOutcome:
        """
        Optimize a workflow definition.

        Without explicit metrics, completed executions recorded for the
        workflow id are used; with none, declared agent profiles are.
        """
        self._ensure_active()
        workflow = self._coerce_workflow(workflow)

        if historical is None:
            historical = self.analyze_workflow(workflow.id)
        return self._planner.optimize(workflow, historical)

    def latest_optimization(self, workflow_id: str) -> Optional[OptimizationOutcome]:
        """Most recent auto-optimization outcome for a workflow, if any."""
        self._ensure_active()
        with self._lock:
            return self._optimizations.get(workflow_id)

    # --- Lifecycle ---

    def dispose(self) -> None:
        """Release all registries and traces. Further calls raise DisposedError."""
        if self._disposed:
            return
        self._disposed = True
        self._tracer.clear()
        self._registry.clear()
        with self._lock:
            self._workflows.clear()
            self._optimizations.clear()
        logger.debug("Optimizer disposed")

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _ensure_active(self) -> None:
        if self._disposed:
            raise DisposedError()

    def _coerce_workflow(self, workflow: Union[Workflow, Mapping[str, Any]]) -> Workflow:
        """Validate a raw description; register agents it carries that are not known yet."""
        if not isinstance(workflow, Workflow):
            workflow = WorkflowDescription.model_validate(workflow)
        if isinstance(workflow, WorkflowDescription):
            for agent in workflow.agents:
                self._registry.register_if_absent(agent)
            workflow = workflow.to_workflow()
        return workflow

    def _reoptimize(self, workflow_id: str) -> None:
        with self._lock:
            workflow = self._workflows.get(workflow_id)
        if workflow is None:
            return
        outcome = self._planner.optimize(workflow, self.analyze_workflow(workflow_id))
        with self._lock:
            self._optimizations[workflow_id] = outcome


def create_optimizer(
    auto_optimize: Optional[bool] = None,
    analysis_config: Optional[AnalysisConfig] = None,
    planner_config: Optional[PlannerConfig] = None,
    sink: Optional[TraceSink] = None,
    clock=None,
) -> AgentChainOptimizer:
    """
    Build an optimizer with defaults taken from settings.
    """
    if auto_optimize is None:
        auto_optimize = settings.auto_optimize
    if sink is None:
        sink = sink_from_name(settings.trace_sink)
    return AgentChainOptimizer(
        analysis_config=analysis_config,
        planner_config=planner_config,
        sink=sink,
        auto_optimize=auto_optimize,
        clock=clock,
    )
