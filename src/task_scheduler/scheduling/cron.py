import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Set

from croniter import croniter

from task_scheduler.errors import InvalidCronExpressionError

logger = logging.getLogger(__name__)


def validate_cron_expression(cron_expression: str, task_type: Optional[str] = None) -> None:
    """
    Accept five-field (minute first) or six-field (seconds first) expressions.

    Raises:
        InvalidCronExpressionError: If the expression cannot be parsed.
    """
    if not isinstance(cron_expression, str) or len(cron_expression.split()) not in (5, 6):
        raise InvalidCronExpressionError(str(cron_expression), task_type)
    try:
        croniter(cron_expression, datetime.now(timezone.utc), second_at_beginning=True)
    except (ValueError, KeyError, TypeError) as e:
        raise InvalidCronExpressionError(cron_expression, task_type) from e


class CronTrigger:
    """
    Fires a callback on every tick of a cron expression.

    Each tick is spawned as its own asyncio task, so a slow callback never
    delays the next tick. Stopping the trigger ends the timer loop only;
    ticks already spawned run to completion.
    """

    def __init__(self, task_type: str, cron_expression: str, callback: Callable[[], Awaitable[Any]]):
        validate_cron_expression(cron_expression, task_type)
        self.task_type: str = task_type
        self.cron_expression: str = cron_expression
        self.callback: Callable[[], Awaitable[Any]] = callback
        self.next_fire_time: Optional[datetime] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._ticks: Set[asyncio.Task] = set()

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._loop_task = asyncio.create_task(self._run(), name=f"cron:{self.task_type}")

    def cancel(self) -> None:
        """
        Stop the timer loop without waiting for it. No tick fires afterwards.
        """
        if self._loop_task is not None:
            self._loop_task.cancel()
        self.next_fire_time = None

    async def stop(self) -> None:
        loop_task = self._loop_task
        if loop_task is None:
            return
        self.cancel()
        try:
            await loop_task
        except asyncio.CancelledError:
            pass
        if self._loop_task is loop_task:
            self._loop_task = None

    async def _run(self):
        schedule = croniter(self.cron_expression, datetime.now(timezone.utc), second_at_beginning=True)
        self.next_fire_time = schedule.get_next(datetime)
        while True:
            delay = (self.next_fire_time - datetime.now(timezone.utc)).total_seconds()
            if delay > 0:
                await asyncio.sleep(delay)

            self._fire()

            now = datetime.now(timezone.utc)
            self.next_fire_time = schedule.get_next(datetime)
            if self.next_fire_time <= now:
                # The loop stalled past one or more ticks; skip them.
                logger.warning(
                    f"Skipping missed ticks of task {self.task_type}",
                    extra={"task_type": self.task_type},
                )
                schedule = croniter(self.cron_expression, now, second_at_beginning=True)
                self.next_fire_time = schedule.get_next(datetime)

    def _fire(self) -> None:
        tick = asyncio.create_task(self.callback())
        self._ticks.add(tick)
        tick.add_done_callback(self._ticks.discard)
