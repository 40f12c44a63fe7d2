# Observability Package
from observability.trace import Execution, StepEvent, Trace
from observability.sink import TraceSink, LoggingTraceSink, ConsoleTraceSink, JsonTraceSink
from observability.tracer import ExecutionTracer

__all__ = [
    "Execution",
    "StepEvent",
    "Trace",
    "TraceSink",
    "LoggingTraceSink",
    "ConsoleTraceSink",
    "JsonTraceSink",
    "ExecutionTracer",
]
