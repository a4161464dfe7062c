from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class ScheduleEntry(BaseModel):
    """
    A live cron trigger installed for a task type.
    """
    task_type: str
    cron_expression: str
    next_fire_time: Optional[datetime] = None


class LastExecution(BaseModel):
    execution_id: str
    start_time: datetime
    success: bool
    duration_ms: int


class TaskSummary(BaseModel):
    task_type: str
    description: str
    cron_schedule: Optional[str] = Field(None, description="Cron expression currently installed, if any")
    next_execution: Optional[datetime] = None
    last_execution: Optional[LastExecution] = None


class ExecutionStats(BaseModel):
    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    avg_duration_ms: float = 0.0
    max_duration_ms: int = 0


class SchedulerDiagnostics(BaseModel):
    uptime_seconds: float
    ready: bool
    tasks: List[TaskSummary]
    stats: ExecutionStats
