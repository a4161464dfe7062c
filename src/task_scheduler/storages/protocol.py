from typing import Optional, Protocol

from task_scheduler.domain.execution import ExecutionRecord, HistoryPage, HistoryQuery


class HistoryStore(Protocol):
    async def append(self, record: ExecutionRecord) -> None:
        """Append one record, evicting the oldest records first when over capacity."""
        ...

    async def query(self, task_type: Optional[str] = None, query: Optional[HistoryQuery] = None) -> HistoryPage:
        """Filter by exact task type, sort, then paginate. ``total`` counts the filtered set."""
        ...

    async def get(self, execution_id: str) -> Optional[ExecutionRecord]:
        """Retrieve a record by its execution ID."""
        ...

    async def count(self) -> int:
        """Number of records currently held."""
        ...
