"""
Execution Trace Model

Captures the lifecycle of one workflow execution as ordered step events.

DESIGN RULES:
- Pure data containers, no aggregation logic
- A trace is appended to only by the thread driving its execution
- Frozen once the execution completes
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from app.core.errors import ExecutionClosedError
from orchestration.state import ExecutionStatus


@dataclass
class StepEvent:
    """
    One step start/completion record.

    ended_at is stamped exactly once, by completion, and never precedes started_at.
    """

    step_id: str
    agent_id: str
    started_at: datetime
    input: Any = None
    ended_at: Optional[datetime] = None
    input_tokens: int = 0
    output_tokens: int = 0
    success: bool = False
    error: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    @property
    def latency_ms(self) -> float:
        """Elapsed milliseconds; 0 while the step is still open."""
        if self.ended_at is None:
            return 0.0
        return (self.ended_at - self.started_at).total_seconds() * 1000

    def close(
        self,
        ended_at: datetime,
        input_tokens: int,
        output_tokens: int,
        success: bool,
        error: Optional[str] = None,
    ) -> None:
        if self.ended_at is not None:
            raise ValueError(f"step event {self.step_id} already closed")
        self.ended_at = max(ended_at, self.started_at)
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.success = success
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "agent_id": self.agent_id,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "latency_ms": self.latency_ms,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "success": self.success,
            "error": self.error,
        }


@dataclass
class Trace:
    """Ordered step events of one execution."""

    trace_id: str
    execution_id: str
    workflow_id: str
    _events: List[StepEvent] = field(default_factory=list)
    _frozen: bool = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def events(self) -> Tuple[StepEvent, ...]:
        return tuple(self._events)

    def append(self, event: StepEvent) -> None:
        if self._frozen:
            raise ExecutionClosedError(self.execution_id)
        self._events.append(event)

    def open_event(self, step_id: str) -> Optional[StepEvent]:
        """Latest still-open event for a step id."""
        for event in reversed(self._events):
            if event.step_id == step_id and event.is_open:
                return event
        return None

    def open_events(self) -> List[StepEvent]:
        return [e for e in self._events if e.is_open]

    def freeze(self) -> None:
        self._frozen = True

    @property
    def has_failures(self) -> bool:
        return any(not e.success for e in self._events)


@dataclass
class Execution:
    """
    One run of a workflow and its owning trace.
    """

    execution_id: str
    workflow_id: str
    trace: Trace
    started_at: datetime
    label: Optional[str] = None
    status: ExecutionStatus = ExecutionStatus.RUNNING
    finished_at: Optional[datetime] = None

    @property
    def is_closed(self) -> bool:
        return self.status.is_final

    @property
    def wall_clock_ms(self) -> float:
        """Execution start to end; 0 while running."""
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds() * 1000

    @property
    def succeeded(self) -> bool:
        return self.status is ExecutionStatus.COMPLETED and not self.trace.has_failures

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for logging/export."""
        return {
            "execution_id": self.execution_id,
            "trace_id": self.trace.trace_id,
            "workflow_id": self.workflow_id,
            "label": self.label,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "wall_clock_ms": self.wall_clock_ms,
            "steps": [e.to_dict() for e in self.trace.events],
        }
