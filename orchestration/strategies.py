"""
Optimization Strategies

Structural rewrite rules applied by the planner, in priority order:
parallelization, caching, batching. Each one checks its precondition on the
current (possibly already rewritten) plan.

DESIGN RULES:
- Predicted reductions are relative to the unoptimized baseline
- Rewrites never break dependency order
- Concurrent groups are derived from the plan's dependency graph, so the
  groups of an optimized plan are stable when it is optimized again
- Deterministic: same input, same rewrite
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Set

import networkx as nx

from orchestration.graph import build_dependency_graph, bypass_nodes, independent_groups, is_acyclic
from schemas.analysis import Improvements, OptimizationResult
from schemas.workflow import Step, StrategyKind, call_signature

logger = logging.getLogger(__name__)


@dataclass
class Baseline:
    """Per-step and total latency (ms) / cost (USD) the predictions are measured against."""
    step_latency: Dict[str, float]
    step_cost: Dict[str, float]
    total_latency: float
    total_cost: float
    repeated_calls: Dict[str, str] = field(default_factory=dict)
    measured: bool = False

    def latency(self, step: Step) -> float:
        if step.id in self.step_latency:
            return self.step_latency[step.id]
        return sum(self.step_latency.get(m, 0.0) for m in step.batched_from)

    def cost(self, step: Step) -> float:
        if step.id in self.step_cost:
            return self.step_cost[step.id]
        return sum(self.step_cost.get(m, 0.0) for m in step.batched_from)


@dataclass
class PlanState:
    """
    Mutable working copy of the workflow being rewritten.

    units maps each step merged during this run to the input steps it replaces.
    """
    steps: List[Step]
    provenance: Dict[str, List[StrategyKind]] = field(default_factory=dict)
    units: Dict[str, List[str]] = field(default_factory=dict)

    def index(self) -> Dict[str, Step]:
        return {step.id: step for step in self.steps}

    def mark(self, step_id: str, kind: StrategyKind) -> None:
        kinds = self.provenance.setdefault(step_id, [])
        if kind not in kinds:
            kinds.append(kind)


def percent(part: float, whole: float) -> float:
    """part as a percentage of whole, capped at 100; 0 for an empty whole."""
    if whole <= 0:
        return 0.0
    return round(min(part * 100 / whole, 100.0), 6)


# --- Parallelization ---

def parallel_groups(state: PlanState) -> Dict[str, List[str]]:
    """Group label -> member step ids, in plan order."""
    groups: Dict[str, List[str]] = {}
    for step in state.steps:
        if step.parallel_group:
            groups.setdefault(step.parallel_group, []).append(step.id)
    return groups


def assign_parallel_groups(state: PlanState, keep: Dict[FrozenSet[str], str]) -> None:
    """
    Relabel the plan with one concurrent group per topological generation of
    two or more mutually independent steps.

    Cache lookups are never grouped; they are bypassed when computing the
    generations. A group with exactly the members of an entry in `keep`
    retains that label, other groups get fresh parallel-N labels.
    """
    lookups = [step.id for step in state.steps if step.is_cache_lookup]
    graph = bypass_nodes(build_dependency_graph(state.steps), lookups)
    order = {step.id: i for i, step in enumerate(state.steps)}
    groups = sorted(
        (sorted(members, key=order.get) for members in independent_groups(graph)),
        key=lambda members: order[members[0]],
    )

    steps = state.index()
    for step in state.steps:
        step.parallel_group = None

    used = set(keep.values())
    counter = 0
    for members in groups:
        label = keep.get(frozenset(members))
        if label is None:
            counter += 1
            while f"parallel-{counter}" in used:
                counter += 1
            label = f"parallel-{counter}"
            used.add(label)
        for m in members:
            steps[m].parallel_group = label
        logger.debug(f"Parallel group {label}: {members}")


def parallelization_result(
    state: PlanState,
    baseline: Baseline,
    existing: Set[FrozenSet[str]],
) -> Optional[OptimizationResult]:
    """
    Report the concurrent groups of the final plan that the input did not have.

    Saves, per group, the sum of member latencies minus the slowest member.
    Cost is unchanged: the total work is the same.
    """
    added = [
        members for members in parallel_groups(state).values()
        if frozenset(members) not in existing
    ]
    if not added:
        return None

    steps = state.index()
    saved = 0.0
    affected = []
    for members in added:
        latencies = [baseline.latency(steps[m]) for m in members]
        saved += sum(latencies) - max(latencies)
        for m in members:
            state.mark(m, StrategyKind.PARALLELIZATION)
        affected.extend(members)

    return OptimizationResult(
        type=StrategyKind.PARALLELIZATION,
        improvements=Improvements(
            latency_reduction=percent(saved, baseline.total_latency),
            cost_reduction=0.0,
        ),
        affected_steps=affected,
        description=f"Run {len(added)} group(s) of independent steps concurrently",
    )


# --- Caching ---

def apply_caching(state: PlanState, baseline: Baseline, **_) -> Optional[OptimizationResult]:
    """
    Replace repeated (agent, input) calls with cache lookups of the first call.

    Repeats come from identical payloads in the workflow and from calls that
    repeated within historical traces. Batched calls are never cache candidates.
    """
    steps = state.index()
    graph = build_dependency_graph(state.steps)

    def eligible(step: Step) -> bool:
        return not step.is_cache_lookup and not step.batched_from

    first_by_signature: Dict[str, str] = {}
    candidates: Dict[str, str] = {}
    for step in state.steps:
        if not eligible(step):
            continue
        signature = call_signature(step.agent_id, step.input)
        if signature is None:
            continue
        first = first_by_signature.setdefault(signature, step.id)
        if first != step.id:
            candidates[step.id] = first

    for repeated, first in baseline.repeated_calls.items():
        if repeated in steps and first in steps and repeated not in candidates:
            if eligible(steps[repeated]) and eligible(steps[first]):
                candidates[repeated] = first

    elided = []
    for step_id, first in candidates.items():
        while steps[first].cached_from is not None:
            first = steps[first].cached_from
        if first == step_id or steps[step_id].agent_id != steps[first].agent_id:
            continue
        # A step upstream of its original cannot wait for it
        if nx.has_path(graph, step_id, first):
            continue
        step = steps[step_id]
        step.cached_from = first
        if not nx.has_path(graph, first, step_id):
            step.depends_on = list(step.depends_on or []) + [first]
            graph.add_edge(first, step_id)
            _leave_parallel_group(state, step)
        state.mark(step_id, StrategyKind.CACHING)
        elided.append(step_id)

    if not elided:
        return None

    saved_latency = sum(baseline.latency(steps[s]) for s in elided)
    saved_cost = sum(baseline.cost(steps[s]) for s in elided)
    return OptimizationResult(
        type=StrategyKind.CACHING,
        improvements=Improvements(
            latency_reduction=percent(saved_latency, baseline.total_latency),
            cost_reduction=percent(saved_cost, baseline.total_cost),
        ),
        affected_steps=elided,
        description=f"Serve {len(elided)} repeated call(s) from cache",
    )


def _leave_parallel_group(state: PlanState, step: Step) -> None:
    label = step.parallel_group
    if label is None:
        return
    step.parallel_group = None
    remaining = [s for s in state.steps if s.parallel_group == label]
    if len(remaining) < 2:
        for s in remaining:
            s.parallel_group = None


# --- Batching ---

def merge_batch_runs(state: PlanState) -> List[str]:
    """
    Merge runs of consecutive steps on the same agent into one call with
    combined token counts. Returns the ids of the merged steps.

    A step joins a run only if everything it depends on is already in the run
    or already a dependency of the run. Cache lookups and members of a
    concurrent group are left alone.
    """
    merged_ids = []
    for run in _batch_runs(state.steps):
        # Earlier merges in this round may have rewritten the members' dependencies
        current = state.index()
        run = [current[s.id] for s in run]

        merged = _merge(run)
        candidate = _replace_run(state.steps, run, merged)
        if not is_acyclic(candidate):
            logger.debug(f"Skipping batch {merged.id}: merge would create a cycle")
            continue
        state.steps = candidate

        units = _units(run, state)
        kinds: List[StrategyKind] = []
        for member in run:
            state.units.pop(member.id, None)
            for kind in state.provenance.pop(member.id, []):
                if kind not in kinds:
                    kinds.append(kind)
        state.provenance[merged.id] = kinds
        state.mark(merged.id, StrategyKind.BATCHING)
        state.units[merged.id] = units
        merged_ids.append(merged.id)
    return merged_ids


def batching_result(state: PlanState, baseline: Baseline, discount: float = 0.10) -> Optional[OptimizationResult]:
    """
    Predicted saving of the batches in the final plan.

    A batch replacing n input steps (n - 1 merges) saves 1 - (1 - discount) ** (n - 1)
    of their combined baseline latency and cost.
    """
    batches = [step.id for step in state.steps if step.id in state.units]
    if not batches:
        return None

    saved_latency = 0.0
    saved_cost = 0.0
    for batch_id in batches:
        units = state.units[batch_id]
        factor = 1 - (1 - discount) ** (len(units) - 1)
        saved_latency += sum(baseline.step_latency.get(u, 0.0) for u in units) * factor
        saved_cost += sum(baseline.step_cost.get(u, 0.0) for u in units) * factor

    return OptimizationResult(
        type=StrategyKind.BATCHING,
        improvements=Improvements(
            latency_reduction=percent(saved_latency, baseline.total_latency),
            cost_reduction=percent(saved_cost, baseline.total_cost),
        ),
        affected_steps=batches,
        description=f"Batch {len(batches)} run(s) of consecutive same-agent calls",
    )


def _batch_runs(steps: List[Step]) -> List[List[Step]]:
    runs: List[List[Step]] = []
    current: List[Step] = []

    def batchable(step: Step) -> bool:
        return not step.is_cache_lookup and step.parallel_group is None

    def can_join(step: Step) -> bool:
        if not current or not batchable(step):
            return False
        if step.agent_id != current[0].agent_id:
            return False
        allowed = {s.id for s in current}
        for member in current:
            allowed.update(member.depends_on or [])
        return set(step.depends_on or []) <= allowed

    for step in steps:
        if can_join(step):
            current.append(step)
            continue
        if len(current) > 1:
            runs.append(current)
        current = [step] if batchable(step) else []

    if len(current) > 1:
        runs.append(current)
    return runs


def _units(run: List[Step], state: PlanState) -> List[str]:
    units: List[str] = []
    for member in run:
        units.extend(state.units.get(member.id, [member.id]))
    return units


def _merge(run: List[Step]) -> Step:
    member_ids = [s.id for s in run]
    depends_on: List[str] = []
    for member in run:
        for dependency in member.depends_on or []:
            if dependency not in member_ids and dependency not in depends_on:
                depends_on.append(dependency)

    batched_from: List[str] = []
    for member in run:
        batched_from.extend(member.batched_from or [member.id])

    inputs = [s.input for s in run]
    head = run[0]
    return head.model_copy(update={
        "id": "+".join(member_ids),
        "input_tokens": sum(s.input_tokens for s in run),
        "output_tokens": sum(s.output_tokens for s in run),
        "depends_on": depends_on,
        "input": inputs if any(i is not None for i in inputs) else None,
        "batched_from": batched_from,
    })


def _replace_run(steps: List[Step], run: List[Step], merged: Step) -> List[Step]:
    member_ids = {s.id for s in run}
    rewritten: List[Step] = []
    inserted = False
    for step in steps:
        if step.id in member_ids:
            if not inserted:
                rewritten.append(merged)
                inserted = True
            continue
        deps = step.depends_on or []
        if member_ids.intersection(deps):
            new_deps: List[str] = []
            for dependency in deps:
                target = merged.id if dependency in member_ids else dependency
                if target not in new_deps:
                    new_deps.append(target)
            step = step.model_copy(update={"depends_on": new_deps})
        rewritten.append(step)
    return rewritten
