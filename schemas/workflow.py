import json
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import Field, model_validator

from schemas.agent import Agent
from schemas.base import CamelModel


def call_signature(agent_id: str, payload: Any) -> Optional[str]:
    """
    Cache key for an agent invocation: agent id plus canonical input.

    None when there is no input payload to compare.
    """
    if payload is None:
        return None
    return f"{agent_id}:{json.dumps(payload, sort_keys=True, default=str)}"


class StrategyKind(str, Enum):
    """Structural rewrite rules, in the order the planner applies them."""
    PARALLELIZATION = "parallelization"
    CACHING = "caching"
    BATCHING = "batching"


class Step(CamelModel):
    """
    A single invocation of an agent within a workflow.

    depends_on=None means "sequential successor of the previous step".
    An explicit empty list declares the step independent.
    """
    id: str = Field(..., min_length=1, description="Step id, unique within its workflow")
    agent_id: str = Field(..., min_length=1, description="Agent invoked by this step")
    input_tokens: int = Field(default=0, ge=0, description="Declared input size")
    output_tokens: int = Field(default=0, ge=0, description="Declared output size")
    depends_on: Optional[List[str]] = Field(default=None, description="Step ids that must complete first")
    input: Optional[Any] = Field(default=None, description="Input payload, used for cache keys")

    # Rewrite provenance (set by the planner only)
    parallel_group: Optional[str] = Field(default=None, description="Concurrent group label")
    cached_from: Optional[str] = Field(default=None, description="Step whose result this step reuses")
    batched_from: List[str] = Field(default_factory=list, description="Step ids merged into this step")

    @property
    def is_cache_lookup(self) -> bool:
        return self.cached_from is not None


class Workflow(CamelModel):
    """
    A graph/sequence of steps to be executed by agents.
    """
    id: str = Field(..., min_length=1)
    name: str = ""
    steps: List[Step] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_step_ids(self):
        seen = set()
        for step in self.steps:
            if step.id in seen:
                raise ValueError(f"duplicate step id: {step.id}")
            seen.add(step.id)
        return self

    def get_step(self, step_id: str) -> Optional[Step]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def dependencies(self) -> Dict[str, List[str]]:
        """
        Effective dependency map: step id -> ids it waits for.

        Steps without a declared list depend on the previous step.
        """
        deps: Dict[str, List[str]] = {}
        previous: Optional[str] = None
        for step in self.steps:
            if step.depends_on is not None:
                deps[step.id] = list(step.depends_on)
            elif previous is not None:
                deps[step.id] = [previous]
            else:
                deps[step.id] = []
            previous = step.id
        return deps


class WorkflowDescription(Workflow):
    """
    In-memory equivalent of the JSON workflow description: {id, agents[], steps[], simulate?}.
    """
    agents: List[Agent] = Field(default_factory=list)
    simulate: bool = False

    def to_workflow(self) -> Workflow:
        return Workflow(id=self.id, name=self.name, steps=list(self.steps))


class OptimizedWorkflow(CamelModel):
    """
    A rewritten workflow plus which strategies changed which steps.
    """
    workflow: Workflow
    provenance: Dict[str, List[StrategyKind]] = Field(default_factory=dict)
