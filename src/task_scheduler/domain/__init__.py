from .task import TaskDefinition, RetryPolicy, TaskContext
from .execution import (
    ExecutionRecord,
    ExecutionResult,
    HistoryPage,
    HistoryQuery,
    Pagination,
    RetryState,
    SortField,
    SortOrder,
    new_execution_id,
    retry_execution_id,
)
from .diagnostics import ScheduleEntry, SchedulerDiagnostics, TaskSummary, ExecutionStats, LastExecution

__all__ = [
    "TaskDefinition", "RetryPolicy", "TaskContext",
    "ExecutionRecord", "ExecutionResult", "HistoryPage", "HistoryQuery", "Pagination", "RetryState",
    "SortField", "SortOrder", "new_execution_id", "retry_execution_id",
    "ScheduleEntry", "SchedulerDiagnostics", "TaskSummary", "ExecutionStats", "LastExecution",
]
