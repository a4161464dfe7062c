import inspect
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Optional, Tuple, Union

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class TaskEventType(str, Enum):
    START = "task_start"
    SUCCESS = "task_success"
    FAILURE = "task_failure"


class TaskEvent(BaseModel):
    """
    Lifecycle notification for one execution.
    """
    type: TaskEventType
    task_type: str
    execution_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_ms: Optional[int] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[Any] = None
    error: Optional[str] = None


TaskEventListener = Callable[[TaskEvent], Union[None, Awaitable[None]]]


class TaskEventBus:
    """
    Typed callback registry for execution lifecycle events.

    Listeners may be plain functions or coroutines. A failing listener is
    logged and skipped; it never affects the execution that emitted the event.
    """

    def __init__(self):
        self._listeners: List[Tuple[TaskEventListener, Optional[FrozenSet[TaskEventType]]]] = []

    def subscribe(self, listener: TaskEventListener, event_types: Optional[List[TaskEventType]] = None) -> Callable[[], None]:
        """
        Register a listener, optionally for a subset of event types.

        Returns:
            A callable that removes the listener again.
        """
        entry = (listener, frozenset(event_types) if event_types else None)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def emit(self, event: TaskEvent) -> None:
        for listener, event_types in list(self._listeners):
            if event_types is not None and event.type not in event_types:
                continue
            try:
                outcome = listener(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.exception(
                    f"Listener {listener!r} failed for {event.type.value} event",
                    extra={"task_type": event.task_type, "execution_id": event.execution_id},
                )
