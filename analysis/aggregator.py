"""
Metrics Aggregator

Turns frozen traces of completed executions into latency, cost and quality
metrics, workflow-wide and per step.

DESIGN RULES:
- Pure function of the executions passed in plus agent cost profiles
- Reads frozen traces only, never contends with a running execution
- Never divides by zero: empty inputs yield zeroed metrics
- A missing agent costs nothing; analysis never fails on incomplete metadata
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from analysis.statistics import latency_summary, safe_ratio
from cost.estimator import estimate_step_cost
from observability.trace import Execution, StepEvent
from schemas.agent import Agent
from schemas.analysis import AnalysisResult, LatencyMetrics, QualityMetrics, StepAnalysis
from schemas.workflow import call_signature

logger = logging.getLogger(__name__)

AgentLookup = Callable[[str], Optional[Agent]]


@dataclass
class _StepAccumulator:
    agent_id: str
    latencies: List[float] = field(default_factory=list)
    costs: List[float] = field(default_factory=list)
    failures: int = 0


def steps_overlap(events: Sequence[StepEvent]) -> bool:
    """True if any two closed events overlap in wall time."""
    latest_end = None
    for event in sorted(events, key=lambda e: e.started_at):
        if latest_end is not None and event.started_at < latest_end:
            return True
        if event.ended_at is not None:
            latest_end = event.ended_at if latest_end is None else max(latest_end, event.ended_at)
    return False


def execution_latency(execution: Execution) -> float:
    """
    Total latency of one execution (ms).

    Sum of step latencies when the trace shows steps running one after another;
    the observed wall clock when branches overlapped, to avoid double counting.
    """
    events = execution.trace.events
    if steps_overlap(events):
        return execution.wall_clock_ms
    return sum(e.latency_ms for e in events)


class MetricsAggregator:
    """
    Aggregates completed executions of one workflow id.
    """

    def __init__(self, agent_lookup: Optional[AgentLookup] = None):
        """
        Args:
            agent_lookup: Lenient agent resolver (returns None for unknown ids).
        """
        self._agent_lookup = agent_lookup or (lambda agent_id: None)

    def aggregate(self, workflow_id: str, executions: Sequence[Execution]) -> AnalysisResult:
        """
        Compute metrics over the given executions.

        Running executions are ignored. Bottleneck flags are left unset.
        """
        completed = [e for e in executions if e.is_closed]
        if not completed:
            return AnalysisResult(workflow_id=workflow_id)

        agents: Dict[str, Optional[Agent]] = {}
        steps: Dict[str, _StepAccumulator] = {}
        totals: List[float] = []
        costs: List[float] = []
        repeated: Dict[str, str] = {}
        succeeded = 0
        event_count = 0
        failed_steps = 0

        for execution in completed:
            totals.append(execution_latency(execution))
            if execution.succeeded:
                succeeded += 1

            execution_cost = 0.0
            seen_calls: Dict[str, str] = {}
            for event in execution.trace.events:
                if event.agent_id not in agents:
                    agents[event.agent_id] = self._resolve(event.agent_id)
                cost = estimate_step_cost(agents[event.agent_id], event.input_tokens, event.output_tokens)
                execution_cost += cost

                acc = steps.setdefault(event.step_id, _StepAccumulator(agent_id=event.agent_id))
                acc.latencies.append(event.latency_ms)
                acc.costs.append(cost)
                event_count += 1
                if not event.success:
                    acc.failures += 1
                    failed_steps += 1

                signature = call_signature(event.agent_id, event.input)
                if signature is not None:
                    first = seen_calls.setdefault(signature, event.step_id)
                    if first != event.step_id:
                        repeated.setdefault(event.step_id, first)

            costs.append(execution_cost)

        total_latency = sum(totals) / len(totals)
        summary = latency_summary(totals)

        step_analysis = []
        for step_id, acc in steps.items():
            average = sum(acc.latencies) / len(acc.latencies)
            agent = agents.get(acc.agent_id)
            step_analysis.append(StepAnalysis(
                step_id=step_id,
                agent_id=acc.agent_id,
                agent_name=agent.name if agent else acc.agent_id,
                latency=average,
                cost=sum(acc.costs) / len(acc.costs),
                percentage_of_total=safe_ratio(average, total_latency) * 100,
                invocations=len(acc.latencies),
                failures=acc.failures,
            ))

        return AnalysisResult(
            workflow_id=workflow_id,
            execution_count=len(completed),
            total_latency=total_latency,
            total_cost=sum(costs) / len(costs),
            cumulative_cost=sum(costs),
            quality_metrics=QualityMetrics(
                success_rate=safe_ratio(succeeded, len(completed)),
                error_rate=safe_ratio(failed_steps, event_count),
                failed_steps=failed_steps,
                total_executions=len(completed),
            ),
            latency_metrics=LatencyMetrics(**summary),
            step_analysis=step_analysis,
            repeated_calls=repeated,
        )

    def _resolve(self, agent_id: str) -> Optional[Agent]:
        try:
            agent = self._agent_lookup(agent_id)
        except Exception as e:
            logger.warning(f"Agent lookup failed for {agent_id}: {e}")
            agent = None
        if agent is None:
            logger.debug(f"Agent {agent_id} not registered; costing it at zero")
        return agent
