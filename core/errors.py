from typing import Optional


class TaskError(Exception):
    """Base class for task engine errors. `status_code` is what the API responds with."""
    status_code: int = 500
    error: str = "Task operation failed"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(TaskError):
    """Text empty/too long, or a one-time task without a due date. Nothing was written."""
    status_code = 400
    error = "Validation failed"


class NotFoundError(TaskError):
    status_code = 404
    error = "Task not found"

    def __init__(self, task_id: str):
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class TransitionError(TaskError):
    """Only raised when strict transitions are switched on."""
    status_code = 409
    error = "Transition not allowed"

    def __init__(self, task_id: str, current: str, operation: str):
        super().__init__(f"Cannot {operation} task {task_id} while it is {current}")
        self.task_id = task_id
        self.current = current
        self.operation = operation


class StoreError(TaskError):
    """
    The store could not be reached, timed out, or returned a document that
    does not decode into a Task. Never retried by the engine.
    """
    status_code = 503
    error = "Task store unavailable"
