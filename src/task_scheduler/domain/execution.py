import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def new_execution_id() -> str:
    return f"exec_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


def retry_execution_id(original_execution_id: str, retry_count: int) -> str:
    return f"retry_{retry_count}_{original_execution_id}"


def _as_utc(v: datetime) -> datetime:
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v


class ExecutionRecord(BaseModel):
    """
    Immutable audit entry for one logical execution, written once it settles.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"hist_{uuid.uuid4().hex[:8]}", description="History entry identifier")
    execution_id: str = Field(..., description="Execution identifier shared with logs and events")
    task_type: str
    parameters: Dict[str, Any] = Field(default_factory=dict, description="Parameters as merged with the defaults")
    start_time: datetime
    end_time: datetime
    duration_ms: int = Field(..., ge=0)
    success: bool
    result: Optional[Any] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator('start_time', 'end_time', 'created_at')
    def check_timezone(cls, v: datetime) -> datetime:
        return _as_utc(v)

    @model_validator(mode='after')
    def check_outcome(self) -> "ExecutionRecord":
        if self.success:
            if self.error is not None:
                raise ValueError("A successful execution cannot carry an error")
        else:
            if not self.error:
                raise ValueError("A failed execution must carry an error message")
            if self.result is not None:
                raise ValueError("A failed execution cannot carry a result")
        return self


class ExecutionResult(BaseModel):
    """
    Envelope returned to callers of a successful execution.
    """
    execution_id: str
    success: bool = True
    start_time: datetime
    end_time: datetime
    duration_ms: int
    result: Optional[Any] = None


class SortField(str, Enum):
    START_TIME = "start_time"
    END_TIME = "end_time"
    DURATION = "duration"

    @property
    def attribute(self) -> str:
        if self is SortField.DURATION:
            return "duration_ms"
        return self.value


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class HistoryQuery(BaseModel):
    limit: int = Field(10, ge=1)
    offset: int = Field(0, ge=0)
    sort_by: SortField = SortField.START_TIME
    sort_order: SortOrder = SortOrder.DESC


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class HistoryPage(BaseModel):
    """
    One page of execution history. Serialised by alias as ``{history, pagination}``.
    """
    model_config = ConfigDict(populate_by_name=True)

    records: List[ExecutionRecord] = Field(alias="history")
    pagination: Pagination

    @property
    def history(self) -> List[ExecutionRecord]:
        return self.records

    @classmethod
    def build(cls, records: List[ExecutionRecord], total: int, query: HistoryQuery) -> "HistoryPage":
        return cls(
            records=records,
            pagination=Pagination(
                total=total,
                limit=query.limit,
                offset=query.offset,
                has_more=query.offset + query.limit < total,
            ),
        )


class RetryState(BaseModel):
    """
    Transient state of one retry chain, owned by the execution engine.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    attempts_remaining: int
    retry_count: int = 0
    last_error: BaseException
    original_execution_id: str
