import pytest

from analysis.config import PlannerConfig
from orchestration.planner import OptimizationPlanner
from registry.agent_registry import AgentRegistry
from schemas.agent import Agent
from schemas.analysis import AnalysisResult, StepAnalysis
from schemas.workflow import Step, StrategyKind, Workflow


def registry_with(*agents: Agent) -> AgentRegistry:
    registry = AgentRegistry()
    for agent in agents:
        registry.register(agent)
    return registry


def measured(total_latency: float, steps, total_cost: float = 0.0, repeated=None) -> AnalysisResult:
    return AnalysisResult(
        workflow_id="wf",
        execution_count=1,
        total_latency=total_latency,
        total_cost=total_cost,
        step_analysis=[
            StepAnalysis(step_id=sid, agent_id=agent, agent_name=agent, latency=lat, cost=cost)
            for sid, agent, lat, cost in steps
        ],
        repeated_calls=repeated or {},
    )


# --- Parallelization ---

def test_parallelization_example():
    """Test: independent 100ms and 150ms steps run sequentially -> (250-150)/250 = 40%."""
    workflow = Workflow(id="wf", steps=[
        Step(id="a", agent_id="search", depends_on=[]),
        Step(id="b", agent_id="writer", depends_on=[]),
    ])
    history = measured(250, [("a", "search", 100, 0.0), ("b", "writer", 150, 0.0)])

    outcome = OptimizationPlanner().optimize(workflow, history)

    assert [r.type for r in outcome.results] == [StrategyKind.PARALLELIZATION]
    assert outcome.results[0].improvements.latency_reduction == pytest.approx(40.0)
    assert outcome.results[0].improvements.cost_reduction == 0.0

    steps = {s.id: s for s in outcome.workflow.steps}
    assert steps["a"].parallel_group is not None
    assert steps["a"].parallel_group == steps["b"].parallel_group
    assert outcome.optimized_workflow.provenance == {
        "a": [StrategyKind.PARALLELIZATION],
        "b": [StrategyKind.PARALLELIZATION],
    }


def test_parallelization_fixed_point():
    """Test: re-optimizing an optimized workflow changes nothing."""
    workflow = Workflow(id="wf", steps=[
        Step(id="a", agent_id="search", depends_on=[]),
        Step(id="b", agent_id="writer", depends_on=[]),
    ])
    history = measured(250, [("a", "search", 100, 0.0), ("b", "writer", 150, 0.0)])
    planner = OptimizationPlanner()

    first = planner.optimize(workflow, history)
    second = planner.optimize(first.workflow, history)

    assert second.results == []
    assert second.workflow == first.workflow


def test_transitive_dependency_blocks_parallelization():
    """Test: a -> b -> c, with c also declaring a, has no independent pair."""
    workflow = Workflow(id="wf", steps=[
        Step(id="a", agent_id="x", depends_on=[]),
        Step(id="b", agent_id="y", depends_on=["a"]),
        Step(id="c", agent_id="z", depends_on=["b", "a"]),
    ])

    outcome = OptimizationPlanner().optimize(workflow)

    assert outcome.results == []


def test_diamond_parallelizes_middle_branches():
    workflow = Workflow(id="wf", steps=[
        Step(id="start", agent_id="planner"),
        Step(id="left", agent_id="search", depends_on=["start"]),
        Step(id="right", agent_id="writer", depends_on=["start"]),
        Step(id="join", agent_id="critic", depends_on=["left", "right"]),
    ])
    registry = registry_with(
        Agent(id="planner", avg_latency_ms=50),
        Agent(id="search", avg_latency_ms=200),
        Agent(id="writer", avg_latency_ms=300),
        Agent(id="critic", avg_latency_ms=50),
    )

    outcome = OptimizationPlanner(agent_lookup=registry.get).optimize(workflow)

    result = outcome.results[0]
    assert result.type == StrategyKind.PARALLELIZATION
    assert result.affected_steps == ["left", "right"]
    # Dry pass: declared latencies summed as a sequence (600ms); saves 200ms
    assert result.improvements.latency_reduction == pytest.approx(200 * 100 / 600)


# --- Identity ---

def test_sequential_chain_is_identity():
    """Test: no applicable strategy returns the input workflow and no results."""
    workflow = Workflow(id="wf", steps=[
        Step(id="s1", agent_id="planner"),
        Step(id="s2", agent_id="search"),
        Step(id="s3", agent_id="writer"),
    ])

    outcome = OptimizationPlanner().optimize(workflow)

    assert outcome.results == []
    assert outcome.workflow == workflow
    assert outcome.optimized_workflow.provenance == {}


def test_input_workflow_is_not_mutated():
    workflow = Workflow(id="wf", steps=[
        Step(id="a", agent_id="search", depends_on=[]),
        Step(id="b", agent_id="search", depends_on=[]),
    ])
    snapshot = workflow.model_copy(deep=True)

    OptimizationPlanner().optimize(workflow)

    assert workflow == snapshot


# --- Caching ---

def test_caching_repeated_calls_in_definition():
    """Test: a repeated (agent, input) call becomes a cache lookup of the first one."""
    workflow = Workflow(id="wf", steps=[
        Step(id="s1", agent_id="search", input={"q": "pricing"}, input_tokens=100, output_tokens=50),
        Step(id="s2", agent_id="writer", input_tokens=100, output_tokens=50),
        Step(id="s3", agent_id="search", input={"q": "pricing"}, input_tokens=100, output_tokens=50),
    ])
    registry = registry_with(
        Agent(id="search", avg_latency_ms=200, cost_per_token=0.001),
        Agent(id="writer", avg_latency_ms=100, cost_per_token=0.002),
    )

    outcome = OptimizationPlanner(agent_lookup=registry.get).optimize(workflow)

    assert [r.type for r in outcome.results] == [StrategyKind.CACHING]
    result = outcome.results[0]
    assert result.affected_steps == ["s3"]
    assert result.improvements.latency_reduction == pytest.approx(40.0)   # 200 / 500
    assert result.improvements.cost_reduction == pytest.approx(25.0)      # 0.15 / 0.60

    s3 = outcome.workflow.get_step("s3")
    assert s3.cached_from == "s1"
    assert s3.depends_on == ["s2"]


def test_caching_from_historical_traces():
    """Test: repeats observed in traces are cached even without input payloads."""
    workflow = Workflow(id="wf", steps=[
        Step(id="s1", agent_id="search"),
        Step(id="s2", agent_id="writer"),
        Step(id="s3", agent_id="search"),
    ])
    history = measured(
        400,
        [("s1", "search", 100, 0.1), ("s2", "writer", 200, 0.2), ("s3", "search", 100, 0.1)],
        total_cost=0.4,
        repeated={"s3": "s1"},
    )

    outcome = OptimizationPlanner().optimize(workflow, history)

    assert [r.type for r in outcome.results] == [StrategyKind.CACHING]
    assert outcome.results[0].improvements.latency_reduction == pytest.approx(25.0)
    assert outcome.results[0].improvements.cost_reduction == pytest.approx(25.0)


def test_parallel_duplicates_become_cache_lookup():
    """Test: a duplicate call is served from cache instead of running beside its original."""
    workflow = Workflow(id="wf", steps=[
        Step(id="p", agent_id="search", depends_on=[], input="q"),
        Step(id="r", agent_id="search", depends_on=[], input="q"),
    ])
    registry = registry_with(Agent(id="search", avg_latency_ms=100, cost_per_token=0.001))
    planner = OptimizationPlanner(agent_lookup=registry.get)

    first = planner.optimize(workflow)

    # No group survives, so only caching is reported
    assert [r.type for r in first.results] == [StrategyKind.CACHING]
    assert first.results[0].improvements.latency_reduction == pytest.approx(50.0)
    r = first.workflow.get_step("r")
    assert r.cached_from == "p"
    assert r.depends_on == ["p"]
    assert all(s.parallel_group is None for s in first.workflow.steps)
    assert first.optimized_workflow.provenance == {"r": [StrategyKind.CACHING]}

    second = planner.optimize(first.workflow)
    assert second.results == []
    assert second.workflow == first.workflow


def test_independent_same_agent_steps_stay_concurrent():
    """Test: steps grouped for concurrency are not batched afterwards."""
    workflow = Workflow(id="wf", steps=[
        Step(id="a", agent_id="search", depends_on=[]),
        Step(id="b", agent_id="search", depends_on=[]),
    ])
    registry = registry_with(Agent(id="search", avg_latency_ms=100))
    planner = OptimizationPlanner(agent_lookup=registry.get)

    first = planner.optimize(workflow)

    assert [r.type for r in first.results] == [StrategyKind.PARALLELIZATION]
    assert [s.id for s in first.workflow.steps] == ["a", "b"]
    assert first.workflow.get_step("a").parallel_group == first.workflow.get_step("b").parallel_group
    assert planner.optimize(first.workflow).results == []


def test_groups_recomputed_after_cache_edges():
    """
    Test: A(x,q) -> B and C(x,q) -> D. C becomes a lookup of A, so only B and D
    remain concurrent, and optimizing the result again changes nothing.
    """
    workflow = Workflow(id="wf", steps=[
        Step(id="A", agent_id="x", depends_on=[], input="q"),
        Step(id="B", agent_id="y", depends_on=["A"]),
        Step(id="C", agent_id="x", depends_on=[], input="q"),
        Step(id="D", agent_id="z", depends_on=["C"]),
    ])
    registry = registry_with(
        Agent(id="x", avg_latency_ms=100),
        Agent(id="y", avg_latency_ms=200),
        Agent(id="z", avg_latency_ms=300),
    )
    planner = OptimizationPlanner(agent_lookup=registry.get)

    first = planner.optimize(workflow)

    assert [r.type for r in first.results] == [StrategyKind.PARALLELIZATION, StrategyKind.CACHING]
    parallel, caching = first.results
    assert parallel.affected_steps == ["B", "D"]
    assert parallel.improvements.latency_reduction == pytest.approx(200 * 100 / 700)
    assert caching.improvements.latency_reduction == pytest.approx(100 * 100 / 700)

    groups = {s.id: s.parallel_group for s in first.workflow.steps}
    assert groups["A"] is None and groups["C"] is None
    assert groups["B"] is not None and groups["B"] == groups["D"]
    assert first.workflow.get_step("C").cached_from == "A"

    second = planner.optimize(first.workflow)
    assert second.results == []
    assert second.workflow == first.workflow


# --- Batching ---

def batching_workflow() -> Workflow:
    return Workflow(id="wf", steps=[
        Step(id="a1", agent_id="classifier", input_tokens=100, output_tokens=10),
        Step(id="a2", agent_id="classifier", input_tokens=200, output_tokens=20),
        Step(id="a3", agent_id="classifier", input_tokens=300, output_tokens=30),
        Step(id="b", agent_id="writer", input_tokens=50, output_tokens=50),
    ])


def batching_registry() -> AgentRegistry:
    return registry_with(
        Agent(id="classifier", avg_latency_ms=100),
        Agent(id="writer", avg_latency_ms=50),
    )


def test_batching_merges_consecutive_same_agent_steps():
    outcome = OptimizationPlanner(agent_lookup=batching_registry().get).optimize(batching_workflow())

    assert [r.type for r in outcome.results] == [StrategyKind.BATCHING]
    merged = outcome.workflow.steps[0]
    assert merged.id == "a1+a2+a3"
    assert merged.batched_from == ["a1", "a2", "a3"]
    assert merged.input_tokens == 600
    assert merged.output_tokens == 60
    assert outcome.workflow.get_step("b").depends_on == ["a1+a2+a3"]

    # Two merges at 10% each: 1 - 0.9^2 = 19% of 300ms, over a 350ms baseline
    assert outcome.results[0].improvements.latency_reduction == pytest.approx(300 * 0.19 * 100 / 350)
    assert outcome.optimized_workflow.provenance == {"a1+a2+a3": [StrategyKind.BATCHING]}


def test_batching_discount_is_configurable():
    planner = OptimizationPlanner(
        agent_lookup=batching_registry().get,
        config=PlannerConfig(batch_discount_factor=0.2),
    )

    outcome = planner.optimize(batching_workflow())

    assert outcome.results[0].improvements.latency_reduction == pytest.approx(300 * 0.36 * 100 / 350)


def test_batching_blocked_by_dependency_on_other_agent():
    """Test: a2 waits for x (another agent's output), so it cannot join a1."""
    workflow = Workflow(id="wf", steps=[
        Step(id="x", agent_id="writer", depends_on=[]),
        Step(id="a1", agent_id="classifier", depends_on=[]),
        Step(id="a2", agent_id="classifier", depends_on=["x"]),
    ])
    planner = OptimizationPlanner(config=PlannerConfig(enable_parallelization=False))

    assert planner.optimize(workflow).results == []


def test_batching_fixed_point():
    planner = OptimizationPlanner(agent_lookup=batching_registry().get)
    first = planner.optimize(batching_workflow())
    second = planner.optimize(first.workflow)

    assert second.results == []
    assert second.workflow == first.workflow


def test_invalid_discount_rejected():
    with pytest.raises(ValueError):
        PlannerConfig(batch_discount_factor=1.5)


def test_adjacent_batches_keep_valid_dependencies():
    """Test: a batch following another batch depends on the merged step, not a removed id."""
    workflow = Workflow(id="wf", steps=[
        Step(id="a1", agent_id="classifier"),
        Step(id="a2", agent_id="classifier"),
        Step(id="b1", agent_id="writer"),
        Step(id="b2", agent_id="writer"),
    ])

    outcome = OptimizationPlanner().optimize(workflow)

    assert [s.id for s in outcome.workflow.steps] == ["a1+a2", "b1+b2"]
    assert outcome.workflow.get_step("b1+b2").depends_on == ["a1+a2"]
    assert outcome.results[0].affected_steps == ["a1+a2", "b1+b2"]
