import asyncio
import copy
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from task_scheduler.config import SchedulerConfig
from task_scheduler.domain.diagnostics import (
    ExecutionStats,
    LastExecution,
    ScheduleEntry,
    SchedulerDiagnostics,
    TaskSummary,
)
from task_scheduler.domain.execution import (
    ExecutionRecord,
    ExecutionResult,
    HistoryPage,
    HistoryQuery,
    new_execution_id,
)
from task_scheduler.domain.task import TaskDefinition
from task_scheduler.errors import TaskSchedulerError
from task_scheduler.events import TaskEvent, TaskEventBus, TaskEventType
from task_scheduler.executors.engine import ExecutionEngine
from task_scheduler.registry import TaskRegistry
from task_scheduler.scheduling.cron import CronTrigger, validate_cron_expression
from task_scheduler.storages.protocol import HistoryStore

logger = logging.getLogger(__name__)


class SchedulerController:
    """
    Owns the live schedule table and is the single entry point for running tasks.

    Every execution, cron-triggered or manual, goes through execute_task(), which
    records one ExecutionRecord and emits lifecycle events around the engine call.
    Executions of the same task type are not serialised: a manual run may overlap
    a cron tick, and a slow handler may overlap its own next tick.
    """

    def __init__(
        self,
        registry: TaskRegistry,
        history: HistoryStore,
        engine: Optional[ExecutionEngine] = None,
        config: Optional[SchedulerConfig] = None,
        events: Optional[TaskEventBus] = None,
    ):
        self.registry: TaskRegistry = registry
        self.config: SchedulerConfig = config or SchedulerConfig()
        self.history: HistoryStore = history
        self.engine: ExecutionEngine = engine or ExecutionEngine(registry, self.config)
        self.events: TaskEventBus = events or TaskEventBus()
        self._schedules: Dict[str, CronTrigger] = {}
        self._ready: bool = False
        self._started_at: float = time.monotonic()

    async def initialize(self) -> None:
        """
        Install a cron trigger for every definition that declares one.

        All expressions are validated before any trigger is installed, so an
        invalid one fails startup without touching the existing schedules.

        Raises:
            InvalidCronExpressionError: If any declared cron expression is invalid.
        """
        logger.info("Initializing scheduler service")
        recurring = [d for d in self.registry.definitions.values() if d.cron_schedule]
        try:
            for definition in recurring:
                validate_cron_expression(definition.cron_schedule, definition.task_type)
            for definition in recurring:
                await self.schedule_task(definition.task_type, definition.cron_schedule)
        except TaskSchedulerError as e:
            logger.error(f"Failed to initialize scheduler service: {e}")
            raise

        self._ready = True
        logger.info(f"Scheduler service initialized with {len(self._schedules)} scheduled tasks")

    async def schedule_task(self, task_type: str, cron_expression: str) -> bool:
        """
        Install a cron trigger for a task type, replacing any existing one.

        Raises:
            UnknownTaskTypeError: If the task type is not registered.
            InvalidCronExpressionError: If the expression cannot be parsed.
        """
        try:
            self.registry.get(task_type)
            trigger = CronTrigger(task_type, cron_expression, lambda: self._run_scheduled(task_type))
        except TaskSchedulerError as e:
            logger.error(f"Failed to schedule task {task_type}: {e}", extra={"task_type": task_type})
            raise

        previous = self._schedules.pop(task_type, None)
        if previous is not None:
            previous.cancel()
        self._schedules[task_type] = trigger
        trigger.start()

        if previous is not None:
            await previous.stop()
            logger.info(f"Stopped previous schedule for task {task_type}", extra={"task_type": task_type})
        logger.info(f"Scheduled task {task_type} with cron expression {cron_expression}", extra={"task_type": task_type})
        return True

    async def unschedule_task(self, task_type: str) -> bool:
        trigger = self._schedules.pop(task_type, None)
        if trigger is None:
            return False
        await trigger.stop()
        logger.info(f"Unscheduled task {task_type}", extra={"task_type": task_type})
        return True

    async def _run_scheduled(self, task_type: str) -> None:
        logger.info(f"Running scheduled task: {task_type}", extra={"task_type": task_type})
        try:
            result = await self.execute_task(task_type, {})
        except Exception as e:
            # A failed tick is terminal for that tick only; the trigger keeps firing.
            logger.error(f"Failed to execute scheduled task {task_type}: {e}", extra={"task_type": task_type})
            return
        logger.info(
            f"Completed scheduled task: {task_type} in {result.duration_ms}ms",
            extra={"task_type": task_type, "execution_id": result.execution_id},
        )

    async def execute_task(self, task_type: str, parameters: Optional[Mapping[str, Any]] = None) -> ExecutionResult:
        """
        Run a task now and record the outcome.

        Returns:
            ExecutionResult: The success envelope.

        Raises:
            UnknownTaskTypeError: Raised before anything is recorded.
            TaskSchedulerError: The terminal error of the execution, re-raised
                after the failure has been written to history.
            asyncio.CancelledError: The caller cancelled; the execution is recorded
                as failed with "Execution cancelled" before re-raising.
        """
        parameters = dict(parameters or {})
        definition = self.registry.get(task_type)

        execution_id = new_execution_id()
        start_time = datetime.now(timezone.utc)
        started = time.monotonic()
        merged = definition.merge_parameters(parameters)
        extra = {"task_type": task_type, "execution_id": execution_id}

        logger.info(f"Executing task {task_type} with parameters {parameters}", extra=extra)
        await self.events.emit(TaskEvent(
            type=TaskEventType.START,
            task_type=task_type,
            execution_id=execution_id,
            start_time=start_time,
            parameters=copy.deepcopy(merged),
        ))

        try:
            result = await self.engine.execute(task_type, parameters, execution_id)
        except asyncio.CancelledError:
            # The caller gave up; the handler is left running but the execution is closed out.
            await self._fail(task_type, execution_id, merged, start_time, started, "Execution cancelled")
            raise
        except Exception as error:
            await self._fail(task_type, execution_id, merged, start_time, started, str(error) or error.__class__.__name__)
            raise

        end_time = datetime.now(timezone.utc)
        duration_ms = int((time.monotonic() - started) * 1000)
        await self._record(
            execution_id=execution_id,
            task_type=task_type,
            parameters=copy.deepcopy(merged),
            start_time=start_time,
            end_time=end_time,
            duration_ms=duration_ms,
            success=True,
            result=result,
        )
        await self.events.emit(TaskEvent(
            type=TaskEventType.SUCCESS,
            task_type=task_type,
            execution_id=execution_id,
            start_time=start_time,
            end_time=end_time,
            duration_ms=duration_ms,
            parameters=copy.deepcopy(merged),
            result=result,
        ))
        logger.info(f"Task {task_type} executed successfully in {duration_ms}ms", extra=extra)

        return ExecutionResult(
            execution_id=execution_id,
            start_time=start_time,
            end_time=end_time,
            duration_ms=duration_ms,
            result=result,
        )

    async def _fail(
        self,
        task_type: str,
        execution_id: str,
        parameters: Dict[str, Any],
        start_time: datetime,
        started: float,
        message: str,
    ) -> None:
        end_time = datetime.now(timezone.utc)
        duration_ms = int((time.monotonic() - started) * 1000)
        await self._record(
            execution_id=execution_id,
            task_type=task_type,
            parameters=copy.deepcopy(parameters),
            start_time=start_time,
            end_time=end_time,
            duration_ms=duration_ms,
            success=False,
            error=message,
        )
        await self.events.emit(TaskEvent(
            type=TaskEventType.FAILURE,
            task_type=task_type,
            execution_id=execution_id,
            start_time=start_time,
            end_time=end_time,
            duration_ms=duration_ms,
            parameters=copy.deepcopy(parameters),
            error=message,
        ))
        logger.error(
            f"Task {task_type} execution failed after {duration_ms}ms: {message}",
            extra={"task_type": task_type, "execution_id": execution_id},
        )

    async def _record(self, **fields: Any) -> None:
        # The audit trail must never mask the task outcome.
        try:
            await self.history.append(ExecutionRecord(**fields))
        except Exception:
            logger.exception(
                f"Failed to save task history for {fields['task_type']}",
                extra={"task_type": fields["task_type"], "execution_id": fields["execution_id"]},
            )

    async def get_history(
        self,
        task_type: Optional[str] = None,
        query: Optional[HistoryQuery] = None,
        **options: Any,
    ) -> HistoryPage:
        """
        Read execution history, optionally for a single task type.

        Args:
            task_type: Exact task type to filter on, or None for all.
            query: Pagination and sort options; keyword options build one when omitted.
        """
        if query is None:
            query = HistoryQuery(**options)
        return await self.history.query(task_type, query)

    async def get_execution(self, execution_id: str) -> Optional[ExecutionRecord]:
        return await self.history.get(execution_id)

    def is_ready(self) -> bool:
        return self._ready

    async def shutdown(self) -> bool:
        """
        Stop every schedule and mark the service as not ready.
        In-flight executions are left to finish on their own.
        """
        logger.info("Shutting down scheduler service")
        triggers = list(self._schedules.items())
        self._schedules.clear()
        for task_type, trigger in triggers:
            await trigger.stop()
            logger.info(f"Stopped scheduled job for task {task_type}", extra={"task_type": task_type})
        self._ready = False
        logger.info("Scheduler service shut down successfully")
        return True

    def get_task_definitions(self) -> Mapping[str, TaskDefinition]:
        return self.registry.definitions

    def get_schedules(self) -> List[ScheduleEntry]:
        return [
            ScheduleEntry(
                task_type=task_type,
                cron_expression=trigger.cron_expression,
                next_fire_time=trigger.next_fire_time,
            )
            for task_type, trigger in self._schedules.items()
        ]

    async def get_diagnostics(self) -> SchedulerDiagnostics:
        """
        Summarise task definitions, live schedules and recent execution statistics.
        """
        page = await self.history.query(None, HistoryQuery(limit=self.config.history_capacity))
        records = page.records

        last_by_type: Dict[str, ExecutionRecord] = {}
        for record in records:
            last_by_type.setdefault(record.task_type, record)

        tasks = []
        for task_type, definition in self.registry.definitions.items():
            trigger = self._schedules.get(task_type)
            last = last_by_type.get(task_type)
            tasks.append(TaskSummary(
                task_type=task_type,
                description=definition.description,
                cron_schedule=trigger.cron_expression if trigger else None,
                next_execution=trigger.next_fire_time if trigger else None,
                last_execution=LastExecution(
                    execution_id=last.execution_id,
                    start_time=last.start_time,
                    success=last.success,
                    duration_ms=last.duration_ms,
                ) if last else None,
            ))

        stats = ExecutionStats()
        if records:
            durations = [r.duration_ms for r in records]
            successful = sum(1 for r in records if r.success)
            stats = ExecutionStats(
                total_executions=len(records),
                successful_executions=successful,
                failed_executions=len(records) - successful,
                avg_duration_ms=sum(durations) / len(durations),
                max_duration_ms=max(durations),
            )

        return SchedulerDiagnostics(
            uptime_seconds=time.monotonic() - self._started_at,
            ready=self._ready,
            tasks=tasks,
            stats=stats,
        )
