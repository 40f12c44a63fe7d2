from enum import Enum


class ExecutionStatus(str, Enum):
    """
    Lifecycle of one workflow execution.
    """
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_final(self) -> bool:
        return self is not ExecutionStatus.RUNNING


# Error recorded on steps still open when their execution is completed
TIMEOUT_ERROR = "timeout: step was not completed before its execution ended"
