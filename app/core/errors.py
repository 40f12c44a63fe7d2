"""
Optimizer Errors

Local, synchronous failures raised at the point of the violated precondition.
None of them are retried internally.
"""


class OptimizerError(Exception):
    """Base class for all optimizer errors."""


class DuplicateAgentError(OptimizerError):
    def __init__(self, agent_id: str):
        super().__init__(f"Agent already registered: {agent_id}")
        self.agent_id = agent_id


class UnknownAgentError(OptimizerError):
    def __init__(self, agent_id: str):
        super().__init__(f"No agent registered with id: {agent_id}")
        self.agent_id = agent_id


class UnknownWorkflowError(OptimizerError):
    def __init__(self, workflow_id: str):
        super().__init__(f"No workflow registered with id: {workflow_id}")
        self.workflow_id = workflow_id


class ExecutionNotFoundError(OptimizerError):
    def __init__(self, execution_id: str, detail: str = ""):
        message = f"Execution not found: {execution_id}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.execution_id = execution_id


class DuplicateExecutionError(OptimizerError):
    def __init__(self, execution_id: str):
        super().__init__(f"Execution already exists: {execution_id}")
        self.execution_id = execution_id


class ExecutionClosedError(OptimizerError):
    def __init__(self, execution_id: str):
        super().__init__(f"Execution already completed: {execution_id}")
        self.execution_id = execution_id


class InvalidStatusError(OptimizerError):
    def __init__(self, status: str):
        super().__init__(f"Final status must be 'completed' or 'failed', got: {status}")
        self.status = status


class StepAlreadyRunningError(OptimizerError):
    def __init__(self, execution_id: str, step_id: str):
        super().__init__(f"Step '{step_id}' is already running in execution {execution_id}")
        self.execution_id = execution_id
        self.step_id = step_id


class StepNotRunningError(OptimizerError):
    def __init__(self, execution_id: str, step_id: str):
        super().__init__(f"Step '{step_id}' is not running in execution {execution_id}")
        self.execution_id = execution_id
        self.step_id = step_id


class DisposedError(OptimizerError):
    def __init__(self):
        super().__init__("Optimizer has been disposed")
