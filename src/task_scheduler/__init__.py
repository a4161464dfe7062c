"""
Task Scheduling and Execution Engine

Runs time-triggered and on-demand units of work with bounded execution time,
retry on transient failure and an auditable execution history.

Core Concepts:

TaskDefinition:
    Describes a task type: its handler, parameter schema and defaults, timeout,
    retry policy and optional cron expression. Definitions are loaded once into
    a TaskRegistry and never change afterwards.

Execution:
    A single run of a task type, identified by an execution id. Retries of a run
    carry derived ids but belong to the same execution.

ExecutionRecord:
    Immutable audit entry written to the history store once an execution
    settles, whether it succeeded or failed.

Components:
    - TaskRegistry: task type -> definition lookup.
    - ExecutionEngine: validation, deadline race and retry/backoff.
    - SchedulerController: cron schedule table, manual execution, history and events.
    - HistoryStore: capacity-bounded record of execution outcomes.
"""

from .config import SchedulerConfig
from .domain import ExecutionRecord, ExecutionResult, HistoryPage, HistoryQuery, RetryPolicy, TaskContext, TaskDefinition
from .errors import (
    ExecutionTimeoutError,
    ExhaustedRetriesError,
    HandlerError,
    InvalidCronExpressionError,
    InvalidParametersError,
    TaskSchedulerError,
    UnknownTaskTypeError,
)
from .events import TaskEvent, TaskEventBus, TaskEventType
from .executors import ExecutionEngine
from .factory import create_history_store, create_scheduler
from .log import configure_logging
from .registry import TaskRegistry
from .scheduling import SchedulerController
from .storages import HistoryStore, InMemoryHistoryStore

__all__ = [
    "SchedulerConfig",
    "ExecutionRecord", "ExecutionResult", "HistoryPage", "HistoryQuery", "RetryPolicy", "TaskContext", "TaskDefinition",
    "ExecutionTimeoutError", "ExhaustedRetriesError", "HandlerError", "InvalidCronExpressionError",
    "InvalidParametersError", "TaskSchedulerError", "UnknownTaskTypeError",
    "TaskEvent", "TaskEventBus", "TaskEventType",
    "ExecutionEngine", "create_history_store", "create_scheduler", "configure_logging",
    "TaskRegistry", "SchedulerController", "HistoryStore", "InMemoryHistoryStore",
]
