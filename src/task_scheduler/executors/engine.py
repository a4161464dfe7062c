import asyncio
import copy
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Set

from task_scheduler.config import SchedulerConfig
from task_scheduler.domain.execution import RetryState, retry_execution_id
from task_scheduler.domain.task import TaskContext, TaskDefinition
from task_scheduler.errors import ExecutionTimeoutError, ExhaustedRetriesError, HandlerError
from task_scheduler.log import get_task_logger
from task_scheduler.registry import TaskRegistry

logger = logging.getLogger(__name__)


def _is_coroutine_handler(handler: Callable[..., Any]) -> bool:
    return inspect.iscoroutinefunction(handler) or inspect.iscoroutinefunction(getattr(handler, "__call__", None))


async def _invoke(handler: Callable[..., Any], parameters: Dict[str, Any], context: TaskContext) -> Any:
    if _is_coroutine_handler(handler):
        return await handler(parameters, context)
    outcome = await asyncio.to_thread(handler, parameters, context)
    if inspect.isawaitable(outcome):
        outcome = await outcome
    return outcome


class ExecutionEngine:
    """
    Runs task handlers with parameter validation, a deadline and retries.

    The engine has no side effects besides invoking handlers: recording
    history and emitting events is left to the caller.
    """

    def __init__(
        self,
        registry: TaskRegistry,
        config: Optional[SchedulerConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.registry: TaskRegistry = registry
        self.config: SchedulerConfig = config or SchedulerConfig()
        self._sleep = sleep
        # Timed out handlers that are still running; referenced until they settle.
        self._abandoned: Set[asyncio.Future] = set()

    @property
    def abandoned_count(self) -> int:
        return len(self._abandoned)

    async def execute(self, task_type: str, parameters: Mapping[str, Any], execution_id: str) -> Any:
        """
        Execute a task once, retrying according to its retry policy.

        Args:
            task_type (str): Registered task type.
            parameters (Mapping[str, Any]): Explicit parameters, validated then merged over the defaults.
            execution_id (str): Identifier of this logical execution.

        Returns:
            Whatever the handler returned.

        Raises:
            UnknownTaskTypeError: The task type is not registered.
            InvalidParametersError: The parameters do not match the task's schema.
            ExecutionTimeoutError: The handler missed its deadline and the error was not retried.
            HandlerError: The handler failed and the error was not retried.
            ExhaustedRetriesError: Every retry failed.
        """
        definition = self.registry.get(task_type)
        definition.validate_parameters(parameters)
        logger.debug(
            f"Task {task_type} parameters validated successfully",
            extra={"task_type": task_type, "execution_id": execution_id},
        )
        merged = definition.merge_parameters(parameters)

        try:
            return await self._attempt(definition, merged, execution_id, 0)
        except (HandlerError, ExecutionTimeoutError) as error:
            logger.error(
                f"Error executing task {task_type}: {error}",
                extra={"task_type": task_type, "execution_id": execution_id},
            )
            policy = definition.retry_policy
            if policy is None or not policy.should_retry(error):
                raise
            state = RetryState(
                attempts_remaining=policy.max_retries,
                last_error=error,
                original_execution_id=execution_id,
            )

        return await self._retry(definition, merged, state)

    async def _retry(self, definition: TaskDefinition, parameters: Dict[str, Any], state: RetryState) -> Any:
        policy = definition.retry_policy
        task_type = definition.task_type

        while state.attempts_remaining > 0:
            state.attempts_remaining -= 1
            state.retry_count += 1
            delay_ms = policy.delay_ms(state.retry_count)

            logger.info(
                f"Retrying task {task_type} in {delay_ms}ms (attempt {state.retry_count}): {state.last_error}",
                extra={"task_type": task_type, "execution_id": state.original_execution_id},
            )
            await self._sleep(delay_ms / 1000)

            retry_id = retry_execution_id(state.original_execution_id, state.retry_count)
            try:
                return await self._attempt(definition, parameters, retry_id, state.retry_count)
            except (HandlerError, ExecutionTimeoutError) as error:
                state.last_error = error
                logger.error(
                    f"Retry {state.retry_count} of task {task_type} failed: {error}",
                    extra={"task_type": task_type, "execution_id": retry_id},
                )

        logger.warning(
            f"Task {task_type} exhausted {state.retry_count} retries",
            extra={"task_type": task_type, "execution_id": state.original_execution_id},
        )
        raise ExhaustedRetriesError(task_type, state.retry_count, state.last_error) from state.last_error

    async def _attempt(self, definition: TaskDefinition, parameters: Dict[str, Any], execution_id: str, attempt: int) -> Any:
        """
        Run the handler once, racing it against the task's deadline.
        """
        timeout_ms = definition.timeout_ms or self.config.default_timeout_ms
        context = TaskContext(
            execution_id=execution_id,
            task_type=definition.task_type,
            attempt=attempt,
            logger=get_task_logger(definition.task_type, execution_id),
        )
        invocation = asyncio.ensure_future(_invoke(definition.handler, copy.deepcopy(parameters), context))

        try:
            done, _ = await asyncio.wait({invocation}, timeout=timeout_ms / 1000)
        except asyncio.CancelledError:
            self._abandon(definition.task_type, execution_id, invocation)
            raise

        if not done:
            self._abandon(definition.task_type, execution_id, invocation)
            raise ExecutionTimeoutError(definition.task_type, timeout_ms)

        try:
            return invocation.result()
        except HandlerError:
            raise
        except Exception as e:
            raise HandlerError(str(e) or e.__class__.__name__, definition.task_type) from e

    def _abandon(self, task_type: str, execution_id: str, invocation: asyncio.Future) -> None:
        # No cancellation: the handler runs to completion and its outcome is dropped.
        self._abandoned.add(invocation)

        def settled(future: asyncio.Future) -> None:
            self._abandoned.discard(future)
            if future.cancelled():
                return
            error = future.exception()
            if error is not None:
                logger.warning(
                    f"Timed out handler of task {task_type} failed after its deadline: {error}",
                    extra={"task_type": task_type, "execution_id": execution_id},
                )
            else:
                logger.debug(
                    f"Discarding late result of timed out task {task_type}",
                    extra={"task_type": task_type, "execution_id": execution_id},
                )

        invocation.add_done_callback(settled)
