from typing import Any, Awaitable, Dict, Protocol, Union

from task_scheduler.domain.task import TaskContext


class TaskHandler(Protocol):
    """
    Protocol for task handlers.

    A handler is any callable taking the merged parameters and a TaskContext.
    Coroutine functions run on the event loop; plain callables run in a worker
    thread so the deadline can still be enforced. Raising any exception marks
    the attempt as failed; its message is what retry policies match against.
    """

    def __call__(self, parameters: Dict[str, Any], context: TaskContext) -> Union[Any, Awaitable[Any]]:
        ...
