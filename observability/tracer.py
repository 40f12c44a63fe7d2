"""
Execution Tracer

Records the lifecycle of workflow executions as ordered step events.
Single point of trace management for the optimizer.

DESIGN RULES:
- Workflow-agnostic: trusts the caller's step identity, no dependency checks
- The execution registry is the only shared state; it is guarded by one lock
  held for bookkeeping only
- Step events are appended and closed under that lock, so they cannot
  interleave with completion freezing the trace
- Completed traces are frozen and safe to read concurrently
"""

import logging
import uuid
from datetime import datetime
from threading import Lock
from typing import Callable, Dict, List, Optional, Union

from app.core.errors import (
    DuplicateExecutionError,
    ExecutionClosedError,
    ExecutionNotFoundError,
    InvalidStatusError,
    StepAlreadyRunningError,
    StepNotRunningError,
)
from observability.sink import TraceSink
from observability.trace import Execution, StepEvent, Trace
from orchestration.state import TIMEOUT_ERROR, ExecutionStatus
from schemas.workflow import Step

logger = logging.getLogger(__name__)


class ExecutionTracer:
    """
    Coordinates execution and trace lifecycle.

    Responsibilities:
    - Allocate executions and their traces
    - Append step start/completion events
    - Force-close open steps and freeze traces on completion
    - Forward completed executions to the configured sink
    """

    def __init__(
        self,
        sink: Optional[TraceSink] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize the tracer.

        Args:
            sink: Optional TraceSink receiving each execution once it completes.
            clock: Time source for all timestamps (injectable for tests).
        """
        self._sink = sink
        self._clock = clock
        self._executions: Dict[str, Execution] = {}
        self._lock = Lock()

    # --- Execution lifecycle ---

    def start_execution(self, workflow_id: str, label: Optional[str] = None) -> str:
        """
        Allocate a running execution with an empty trace.

        Args:
            workflow_id: Workflow this execution belongs to (tag only)
            label: Execution id to use; a fresh id is generated when omitted

        Returns:
            The trace id of the new execution
        """
        trace_id = str(uuid.uuid4())
        execution_id = label or trace_id
        execution = Execution(
            execution_id=execution_id,
            workflow_id=workflow_id,
            trace=Trace(trace_id=trace_id, execution_id=execution_id, workflow_id=workflow_id),
            started_at=self._clock(),
            label=label,
        )

        with self._lock:
            if execution_id in self._executions:
                raise DuplicateExecutionError(execution_id)
            self._executions[execution_id] = execution

        logger.debug(f"Started execution {execution_id} of workflow {workflow_id} (trace {trace_id})")
        return trace_id

    def complete_execution(
        self,
        execution_id: str,
        final_status: Union[ExecutionStatus, str] = ExecutionStatus.COMPLETED,
    ) -> Execution:
        """
        Finalize an execution.

        Steps still open are force-closed as failed with a timeout error.
        The trace is frozen and becomes eligible for aggregation.
        """
        try:
            status = ExecutionStatus(final_status)
        except ValueError:
            raise InvalidStatusError(str(final_status))
        if not status.is_final:
            raise InvalidStatusError(status.value)

        with self._lock:
            execution = self._get(execution_id)
            if execution.is_closed:
                raise ExecutionClosedError(execution_id)

            now = self._clock()
            forced = execution.trace.open_events()
            for event in forced:
                event.close(now, 0, 0, success=False, error=TIMEOUT_ERROR)
            execution.trace.freeze()
            execution.finished_at = max(now, execution.started_at)
            execution.status = status

        if forced:
            logger.warning(
                f"Execution {execution_id} completed with {len(forced)} open step(s); "
                f"recorded as failed: {[e.step_id for e in forced]}"
            )
        self._emit(execution)
        return execution

    # --- Step lifecycle ---

    def start_step(
        self,
        execution_id: str,
        step: Step,
        trace_id: Optional[str] = None,
    ) -> StepEvent:
        """
        Append an open step event stamped with the current time.

        Raises:
            ExecutionNotFoundError: unknown execution, or trace id mismatch
            ExecutionClosedError: execution already completed
            StepAlreadyRunningError: the step id is already open in this execution
        """
        execution = self._lookup(execution_id)
        if trace_id is not None and trace_id != execution.trace.trace_id:
            raise ExecutionNotFoundError(execution_id, f"trace {trace_id} does not belong to it")
        event = StepEvent(
            step_id=step.id,
            agent_id=step.agent_id,
            started_at=self._clock(),
            input=step.input,
        )
        with self._lock:
            if execution.is_closed:
                raise ExecutionClosedError(execution_id)
            if execution.trace.open_event(step.id) is not None:
                raise StepAlreadyRunningError(execution_id, step.id)
            execution.trace.append(event)
        return event

    def complete_step(
        self,
        execution_id: str,
        step_id: str,
        input_tokens: int,
        output_tokens: int,
        success: bool,
        error: Optional[str] = None,
    ) -> StepEvent:
        """
        Close the open event for a step, stamping the end time.

        Raises:
            ExecutionNotFoundError: unknown execution
            ExecutionClosedError: execution already completed
            StepNotRunningError: no open event for that step id
        """
        execution = self._lookup(execution_id)
        ended_at = self._clock()
        with self._lock:
            if execution.is_closed:
                raise ExecutionClosedError(execution_id)
            event = execution.trace.open_event(step_id)
            if event is None:
                raise StepNotRunningError(execution_id, step_id)
            event.close(ended_at, input_tokens, output_tokens, success, error)
        if not success:
            logger.info(f"Step {step_id} failed in execution {execution_id}: {error}")
        return event

    # --- Queries ---

    def get_execution(self, execution_id: str) -> Execution:
        return self._lookup(execution_id)

    def completed_executions(self, workflow_id: str) -> List[Execution]:
        """Snapshot of finished executions for a workflow; running ones are excluded."""
        with self._lock:
            return [
                e for e in self._executions.values()
                if e.workflow_id == workflow_id and e.is_closed
            ]

    def running_count(self) -> int:
        with self._lock:
            return sum(1 for e in self._executions.values() if not e.is_closed)

    def clear(self) -> None:
        """Release all executions (used by dispose)."""
        with self._lock:
            self._executions.clear()

    # --- Internal ---

    def _lookup(self, execution_id: str) -> Execution:
        with self._lock:
            return self._get(execution_id)

    def _get(self, execution_id: str) -> Execution:
        # Caller holds the lock
        execution = self._executions.get(execution_id)
        if execution is None:
            raise ExecutionNotFoundError(execution_id)
        return execution

    def _emit(self, execution: Execution) -> None:
        if self._sink is None:
            return
        try:
            self._sink.emit(execution)
        except Exception as e:
            # Sink failure must not affect the caller
            logger.warning(f"Trace sink failed for execution {execution.execution_id}: {e}")
