import logging
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String, Text, delete, func
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.future import select
from sqlalchemy.orm import declarative_base, sessionmaker

from task_scheduler.domain.execution import ExecutionRecord, HistoryPage, HistoryQuery, SortOrder
from task_scheduler.storages.protocol import HistoryStore

logger = logging.getLogger(__name__)

Base = declarative_base()


class ExecutionRecordModel(Base):
    __tablename__ = 'task_history'

    # Insertion order, used for FIFO eviction and to break sort ties.
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(255), nullable=False, unique=True)
    execution_id = Column(String(255), nullable=False, unique=True, index=True)
    task_type = Column(String(255), nullable=False, index=True)
    parameters = Column(JSON)
    start_time = Column(DateTime(timezone=True), nullable=False, index=True)
    end_time = Column(DateTime(timezone=True), nullable=False)
    duration_ms = Column(Integer, nullable=False)
    success = Column(Boolean, nullable=False, default=False, index=True)
    result = Column(JSON)
    error = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False)


class SqlAlchemyHistoryStore(HistoryStore):
    """
    Durable history store keyed by execution id.

    Args:
        db_url: Async SQLAlchemy URL, e.g. ``postgresql+asyncpg://...`` or ``sqlite+aiosqlite:///history.db``.
        max_records: When set, the oldest rows beyond this count are deleted on append.
    """

    def __init__(self, db_url: str, max_records: Optional[int] = None):
        if max_records is not None and max_records <= 0:
            raise ValueError("max_records must be positive")
        self.max_records: Optional[int] = max_records
        self.engine = create_async_engine(db_url)
        self.async_session = sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def create_tables(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self):
        await self.engine.dispose()

    async def append(self, record: ExecutionRecord) -> None:
        async with self.async_session() as session:
            session.add(ExecutionRecordModel(
                id=record.id,
                execution_id=record.execution_id,
                task_type=record.task_type,
                parameters=record.parameters,
                start_time=record.start_time,
                end_time=record.end_time,
                duration_ms=record.duration_ms,
                success=record.success,
                result=record.result,
                error=record.error,
                created_at=record.created_at,
            ))
            await session.flush()

            if self.max_records is not None:
                total = await session.scalar(select(func.count()).select_from(ExecutionRecordModel))
                overflow = total - self.max_records
                if overflow > 0:
                    result = await session.execute(
                        select(ExecutionRecordModel.seq)
                        .order_by(ExecutionRecordModel.seq.asc())
                        .limit(overflow)
                    )
                    stale = list(result.scalars())
                    await session.execute(
                        delete(ExecutionRecordModel).where(ExecutionRecordModel.seq.in_(stale))
                    )
                    logger.debug(f"Evicted {len(stale)} history rows over capacity")

            await session.commit()

    async def query(self, task_type: Optional[str] = None, query: Optional[HistoryQuery] = None) -> HistoryPage:
        query = query or HistoryQuery()
        stmt = select(ExecutionRecordModel)
        count_stmt = select(func.count()).select_from(ExecutionRecordModel)
        if task_type is not None:
            stmt = stmt.where(ExecutionRecordModel.task_type == task_type)
            count_stmt = count_stmt.where(ExecutionRecordModel.task_type == task_type)

        column = getattr(ExecutionRecordModel, query.sort_by.attribute)
        ordering = column.desc() if query.sort_order == SortOrder.DESC else column.asc()
        stmt = stmt.order_by(ordering, ExecutionRecordModel.seq.asc()).offset(query.offset).limit(query.limit)

        async with self.async_session() as session:
            total = await session.scalar(count_stmt)
            result = await session.execute(stmt)
            records = [self._db_to_record(row) for row in result.scalars()]
        return HistoryPage.build(records, total, query)

    async def get(self, execution_id: str) -> Optional[ExecutionRecord]:
        async with self.async_session() as session:
            result = await session.execute(select(ExecutionRecordModel).filter_by(execution_id=execution_id))
            row = result.scalar_one_or_none()
            if row:
                return self._db_to_record(row)
            return None

    async def count(self) -> int:
        async with self.async_session() as session:
            return await session.scalar(select(func.count()).select_from(ExecutionRecordModel))

    def _db_to_record(self, row: ExecutionRecordModel) -> ExecutionRecord:
        # SQLite drops timezone information; ExecutionRecord restores UTC.
        return ExecutionRecord(
            id=row.id,
            execution_id=row.execution_id,
            task_type=row.task_type,
            parameters=row.parameters or {},
            start_time=row.start_time,
            end_time=row.end_time,
            duration_ms=row.duration_ms,
            success=row.success,
            result=row.result,
            error=row.error,
            created_at=row.created_at,
        )


class SqliteMemoryHistoryStore(SqlAlchemyHistoryStore):
    def __init__(self, max_records: Optional[int] = None):
        super().__init__("sqlite+aiosqlite:///:memory:", max_records)
