import asyncio
import logging
from collections import deque
from typing import Deque, List, Optional

from task_scheduler.config import DEFAULT_HISTORY_CAPACITY
from task_scheduler.domain.execution import ExecutionRecord, HistoryPage, HistoryQuery, SortOrder
from task_scheduler.storages.protocol import HistoryStore

logger = logging.getLogger(__name__)


class InMemoryHistoryStore(HistoryStore):
    """
    Capacity-bounded ring buffer of execution records.
    Records are lost when the process exits.
    """

    def __init__(self, capacity: int = DEFAULT_HISTORY_CAPACITY):
        if capacity <= 0:
            raise ValueError("History capacity must be positive")
        self.capacity: int = capacity
        self._records: Deque[ExecutionRecord] = deque(maxlen=capacity)
        self._lock = asyncio.Lock()

    async def append(self, record: ExecutionRecord) -> None:
        async with self._lock:
            if len(self._records) == self.capacity:
                evicted = self._records[0]
                logger.debug(f"History full, evicting execution {evicted.execution_id}")
            self._records.append(record.model_copy(deep=True))
        logger.debug(
            f"Saved task history entry for {record.task_type}",
            extra={"task_type": record.task_type, "execution_id": record.execution_id},
        )

    async def query(self, task_type: Optional[str] = None, query: Optional[HistoryQuery] = None) -> HistoryPage:
        query = query or HistoryQuery()
        records: List[ExecutionRecord] = list(self._records)
        if task_type is not None:
            records = [r for r in records if r.task_type == task_type]

        attribute = query.sort_by.attribute
        records.sort(key=lambda r: getattr(r, attribute), reverse=query.sort_order == SortOrder.DESC)

        page = [r.model_copy(deep=True) for r in records[query.offset:query.offset + query.limit]]
        return HistoryPage.build(page, len(records), query)

    async def get(self, execution_id: str) -> Optional[ExecutionRecord]:
        for record in reversed(self._records):
            if record.execution_id == execution_id:
                return record.model_copy(deep=True)
        return None

    async def count(self) -> int:
        return len(self._records)
