from typing import Optional


class TaskEngineError(Exception):
    """Base class for errors raised by the task engine"""


class CapacityExceeded(TaskEngineError):
    def __init__(self, max_size: int):
        self.max_size = max_size
        super().__init__(f"Queue is full. Maximum size: {max_size}")


class TaskNotFound(TaskEngineError):
    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class InvalidStateTransition(TaskEngineError):
    def __init__(self, task_id: str, status, operation: str, reason: Optional[str] = None):
        self.task_id = task_id
        self.status = status
        self.operation = operation
        status_value = getattr(status, "value", status)
        message = reason or f"Cannot {operation} task with status: {status_value}"
        super().__init__(message)


class HandlerExecutionError(TaskEngineError):
    """A handler failed while executing a task"""

    retryable = True

    def __init__(self, task_id: str, task_type, message: str):
        self.task_id = task_id
        self.task_type = task_type
        super().__init__(message)


class UnregisteredHandler(HandlerExecutionError):
    retryable = False

    def __init__(self, task_id: str, task_type):
        type_value = getattr(task_type, "value", task_type)
        super().__init__(task_id, task_type, f"No handler registered for task type: {type_value}")


class HandlerTimeout(HandlerExecutionError):
    def __init__(self, task_id: str, task_type, timeout: float):
        self.timeout = timeout
        super().__init__(task_id, task_type, f"Task timed out after {timeout:g}s")
