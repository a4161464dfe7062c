from typing import Optional


class TaskSchedulerError(Exception):
    """
    Base class for every error raised by the scheduling and execution engine.
    """

    def __init__(self, message: str, task_type: Optional[str] = None):
        super().__init__(message)
        self.task_type: Optional[str] = task_type


class UnknownTaskTypeError(TaskSchedulerError):
    def __init__(self, task_type: str):
        super().__init__(f"Unknown task type: {task_type}", task_type)


class InvalidParametersError(TaskSchedulerError, ValueError):
    """
    Raised when explicit parameters do not satisfy a task's parameters schema.
    Never retried.
    """

    def __init__(self, task_type: str, details: str):
        super().__init__(f"Invalid parameters for task {task_type}: {details}", task_type)
        self.details: str = details


class InvalidCronExpressionError(TaskSchedulerError, ValueError):
    def __init__(self, cron_expression: str, task_type: Optional[str] = None):
        message = f"Invalid cron expression: {cron_expression}"
        if task_type:
            message += f" for task {task_type}"
        super().__init__(message, task_type)
        self.cron_expression: str = cron_expression


class ExecutionTimeoutError(TaskSchedulerError, TimeoutError):
    """
    Raised when a handler does not settle before its deadline.

    The handler itself is not stopped: it keeps running in the background and
    whatever it eventually produces is discarded.
    """

    def __init__(self, task_type: str, timeout_ms: int):
        super().__init__(f"Task {task_type} timed out after {timeout_ms}ms", task_type)
        self.timeout_ms: int = timeout_ms


class HandlerError(TaskSchedulerError):
    """
    Raised when a task handler fails. The message of the original exception is
    kept as-is since retry policies match against it.
    """


class ExhaustedRetriesError(TaskSchedulerError):
    def __init__(self, task_type: str, retry_count: int, last_error: BaseException):
        super().__init__(
            f"Task {task_type} failed after {retry_count} retries: {last_error}", task_type
        )
        self.retry_count: int = retry_count
        self.last_error: BaseException = last_error
