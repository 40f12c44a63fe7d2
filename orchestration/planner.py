"""
Optimization Planner

Produces a rewritten workflow plus the list of applied strategies, each with a
predicted latency/cost reduction against the unoptimized baseline.

DESIGN RULES:
- Pure computation over a workflow definition and (optional) metrics
- Never fails for lack of applicable strategies: identity is valid output
- The input workflow is never mutated
"""

import logging
from typing import Callable, List, Optional

from analysis.config import DEFAULT_PLANNER_CONFIG, PlannerConfig
from cost.estimator import estimate_step_cost
from orchestration.graph import materialize_steps
from orchestration.strategies import (
    Baseline,
    PlanState,
    apply_caching,
    assign_parallel_groups,
    batching_result,
    merge_batch_runs,
    parallel_groups,
    parallelization_result,
)
from schemas.agent import Agent
from schemas.analysis import AnalysisResult, OptimizationResult
from schemas.base import CamelModel
from schemas.workflow import OptimizedWorkflow, StrategyKind, Workflow

logger = logging.getLogger(__name__)


class OptimizationOutcome(CamelModel):
    """{optimizedWorkflow, results} returned to callers."""
    optimized_workflow: OptimizedWorkflow
    results: List[OptimizationResult]

    @property
    def workflow(self) -> Workflow:
        return self.optimized_workflow.workflow


class OptimizationPlanner:
    """
    Applies strategies in a fixed priority order:
    1. Parallelization
    2. Caching
    3. Batching

    Each strategy sees the workflow as rewritten by the ones before it.
    Concurrent groups claim their steps first, so batching never merges them.
    Groups are recomputed whenever caching or batching reshapes the dependency
    graph, and the parallelization result reports the groups that survive
    into the returned workflow.
    """

    def __init__(
        self,
        agent_lookup: Optional[Callable[[str], Optional[Agent]]] = None,
        config: Optional[PlannerConfig] = None,
    ):
        self._agent_lookup = agent_lookup or (lambda agent_id: None)
        self._config = config or DEFAULT_PLANNER_CONFIG

    def optimize(
        self,
        workflow: Workflow,
        historical: Optional[AnalysisResult] = None,
    ) -> OptimizationOutcome:
        """
        Optimize a workflow.

        Args:
            workflow: Workflow definition (left untouched)
            historical: Aggregated metrics of past executions. Without them
                (or with zero executions) the declared agent profiles are used.

        Returns:
            OptimizationOutcome with the rewritten workflow and applied strategies
        """
        baseline = self.baseline(workflow, historical)
        state = PlanState(steps=materialize_steps(workflow))
        config = self._config

        keep = {frozenset(members): label for label, members in parallel_groups(state).items()}
        regroup = config.enable_parallelization
        if regroup:
            assign_parallel_groups(state, keep)

        caching = None
        if config.enable_caching:
            caching = apply_caching(state, baseline)
            # Cache lookups wait on their original, which reshapes the groups
            if caching is not None and regroup:
                assign_parallel_groups(state, keep)

        batching = None
        if config.enable_batching:
            while merge_batch_runs(state):
                if regroup:
                    assign_parallel_groups(state, keep)
            batching = batching_result(state, baseline, config.batch_discount_factor)

        parallelization = None
        if regroup:
            parallelization = parallelization_result(state, baseline, set(keep))

        results: List[OptimizationResult] = []
        for result in (parallelization, caching, batching):
            if result is None:
                continue
            logger.info(
                f"Applied {result.type.value} to {workflow.id}: "
                f"-{result.improvements.latency_reduction:.1f}% latency, "
                f"-{result.improvements.cost_reduction:.1f}% cost"
            )
            results.append(result)

        if not results:
            logger.info(f"No optimization applicable to {workflow.id}")
            return OptimizationOutcome(
                optimized_workflow=OptimizedWorkflow(workflow=workflow.model_copy(deep=True)),
                results=[],
            )

        priority = list(StrategyKind)
        provenance = {
            step_id: sorted(kinds, key=priority.index)
            for step_id, kinds in state.provenance.items()
        }
        optimized = workflow.model_copy(update={"steps": state.steps}, deep=True)
        return OptimizationOutcome(
            optimized_workflow=OptimizedWorkflow(workflow=optimized, provenance=provenance),
            results=results,
        )

    def baseline(self, workflow: Workflow, historical: Optional[AnalysisResult] = None) -> Baseline:
        """
        Per-step latency/cost the predictions are relative to.

        Measured values win; steps never observed fall back to the agent's
        declared latency and cost-per-token.
        """
        measured = historical is not None and historical.execution_count > 0
        observed = {s.step_id: s for s in historical.step_analysis} if measured else {}

        step_latency = {}
        step_cost = {}
        for step in workflow.steps:
            if step.id in observed:
                step_latency[step.id] = observed[step.id].latency
                step_cost[step.id] = observed[step.id].cost
                continue
            agent = self._agent_lookup(step.agent_id)
            step_latency[step.id] = (agent.avg_latency_ms or 0.0) if agent else 0.0
            step_cost[step.id] = estimate_step_cost(agent, step.input_tokens, step.output_tokens)

        if measured:
            total_latency = historical.total_latency
            total_cost = historical.total_cost
        else:
            # Dry structural pass: declared profiles, steps assumed sequential
            total_latency = sum(step_latency.values())
            total_cost = sum(step_cost.values())

        return Baseline(
            step_latency=step_latency,
            step_cost=step_cost,
            total_latency=total_latency,
            total_cost=total_cost,
            repeated_calls=dict(historical.repeated_calls) if measured else {},
            measured=measured,
        )
