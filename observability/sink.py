"""
Trace Sink Interface

Abstract sink for completed executions.
Storage-agnostic - implementations can write to logs, console, JSON lines, etc.

DESIGN RULES:
- Side-effect only
- Never throw exceptions
- Storage-agnostic interface
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Optional

from observability.trace import Execution

logger = logging.getLogger(__name__)


class TraceSink(ABC):
    """
    Abstract base for trace output destinations.

    Implementations:
    - LoggingTraceSink (default)
    - ConsoleTraceSink
    - JsonTraceSink
    """

    @abstractmethod
    def emit(self, execution: Execution) -> None:
        """
        Emit a completed execution to the sink.

        Must not throw - failures should be logged and ignored.
        """
        pass


class LoggingTraceSink(TraceSink):
    """Default sink: one summary log line per completed execution."""

    def __init__(self, level: int = logging.DEBUG):
        self._level = level

    def emit(self, execution: Execution) -> None:
        try:
            events = execution.trace.events
            failed = sum(1 for e in events if not e.success)
            logger.log(
                self._level,
                f"Execution {execution.execution_id} of {execution.workflow_id} "
                f"{execution.status.value}: {len(events)} steps, {failed} failed, "
                f"{execution.wall_clock_ms:.2f}ms",
            )
        except Exception as e:
            logger.warning(f"Failed to emit trace: {e}")


class ConsoleTraceSink(TraceSink):
    """
    Sink that prints executions to console.

    Format: structured but human-readable.
    """

    def __init__(self, verbose: bool = True):
        """
        Initialize console sink.

        Args:
            verbose: If True, print every step. If False, summary only.
        """
        self._verbose = verbose

    def emit(self, execution: Execution) -> None:
        """Print execution to console."""
        try:
            status = "✓" if execution.succeeded else "✗"

            print(f"\n{'='*60}")
            print(f"[TRACE] {status} {execution.execution_id}")
            print(f"{'='*60}")
            print(f"  Workflow: {execution.workflow_id}")
            print(f"  Status:   {execution.status.value}")
            print(f"  Latency:  {execution.wall_clock_ms:.2f}ms")

            if self._verbose:
                for event in execution.trace.events:
                    mark = "✓" if event.success else "✗"
                    line = f"    {mark} {event.step_id} ({event.agent_id}) {event.latency_ms:.2f}ms"
                    if event.error:
                        line += f" - {event.error}"
                    print(line)

            print(f"{'='*60}\n")

        except Exception as e:
            logger.warning(f"Failed to emit trace: {e}")


class JsonTraceSink(TraceSink):
    """
    Sink that outputs executions as JSON lines.

    Useful for log aggregation systems.
    """

    def emit(self, execution: Execution) -> None:
        try:
            print(json.dumps(execution.to_dict(), default=str))
        except Exception as e:
            logger.warning(f"Failed to emit JSON trace: {e}")


def sink_from_name(name: Optional[str]) -> Optional[TraceSink]:
    """Build a sink from a settings value (logging | console | json | none)."""
    name = (name or "none").lower()
    if name == "logging":
        return LoggingTraceSink()
    if name == "console":
        return ConsoleTraceSink(verbose=True)
    if name == "json":
        return JsonTraceSink()
    return None
