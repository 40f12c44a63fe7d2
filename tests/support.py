"""
Shared test helpers: a controllable clock and step drivers.
"""

from datetime import datetime, timedelta
from typing import Optional

from schemas.workflow import Step


class FakeClock:
    """Deterministic time source; advance() moves it forward."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += timedelta(milliseconds=ms)


def make_step(step_id: str, agent_id: str = "agent-a", depends_on=None, **kwargs) -> Step:
    return Step(id=step_id, agent_id=agent_id, depends_on=depends_on, **kwargs)


def run_step(
    target,
    clock: FakeClock,
    execution_id: str,
    step: Step,
    latency_ms: float,
    input_tokens: int = 100,
    output_tokens: int = 50,
    success: bool = True,
    error: Optional[str] = None,
):
    """Start a step, advance the clock, complete it."""
    target.start_step(execution_id, step)
    clock.advance(latency_ms)
    return target.complete_step(execution_id, step.id, input_tokens, output_tokens, success, error)


def run_sequential(target, clock: FakeClock, workflow_id: str, label: str, timings, status="completed"):
    """
    Drive one execution whose steps run one after another.

    timings: list of (Step, latency_ms)
    """
    target.start_execution(workflow_id, label)
    for step, latency in timings:
        run_step(target, clock, label, step, latency)
    return target.complete_execution(label, status)
