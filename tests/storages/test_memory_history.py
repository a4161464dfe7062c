from datetime import datetime, timedelta, timezone

import pytest

from task_scheduler.domain.execution import ExecutionRecord, HistoryQuery
from task_scheduler.storages.memory import InMemoryHistoryStore

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_record(index: int, task_type: str = "cleanup", duration_ms: int = 100, success: bool = True) -> ExecutionRecord:
    start = BASE_TIME + timedelta(minutes=index)
    return ExecutionRecord(
        execution_id=f"exec_{index}",
        task_type=task_type,
        parameters={"index": index},
        start_time=start,
        end_time=start + timedelta(milliseconds=duration_ms),
        duration_ms=duration_ms,
        success=success,
        result={"index": index} if success else None,
        error=None if success else "boom",
    )


@pytest.mark.asyncio
async def test_append_and_get():
    store = InMemoryHistoryStore()
    await store.append(make_record(1))

    record = await store.get("exec_1")
    assert record is not None
    assert record.parameters == {"index": 1}
    assert await store.get("exec_missing") is None
    assert await store.count() == 1


@pytest.mark.asyncio
async def test_capacity_evicts_oldest_first():
    store = InMemoryHistoryStore(capacity=3)
    for i in range(5):
        await store.append(make_record(i))

    assert await store.count() == 3
    assert await store.get("exec_0") is None
    assert await store.get("exec_1") is None

    page = await store.query(query=HistoryQuery(sort_order="asc"))
    assert [r.execution_id for r in page.records] == ["exec_2", "exec_3", "exec_4"]


@pytest.mark.asyncio
async def test_default_query_is_newest_first():
    store = InMemoryHistoryStore()
    for i in range(3):
        await store.append(make_record(i))

    page = await store.query()
    assert [r.execution_id for r in page.records] == ["exec_2", "exec_1", "exec_0"]


@pytest.mark.asyncio
async def test_pagination():
    store = InMemoryHistoryStore()
    for i in range(25):
        await store.append(make_record(i))

    first = await store.query(query=HistoryQuery(limit=10, offset=0))
    assert len(first.records) == 10
    assert first.pagination.total == 25
    assert first.pagination.has_more is True

    last = await store.query(query=HistoryQuery(limit=10, offset=20))
    assert len(last.records) == 5
    assert last.pagination.has_more is False

    beyond = await store.query(query=HistoryQuery(limit=10, offset=30))
    assert beyond.records == []
    assert beyond.pagination.total == 25


@pytest.mark.asyncio
async def test_filter_counts_only_matching_records():
    store = InMemoryHistoryStore()
    for i in range(6):
        await store.append(make_record(i, task_type="cleanup" if i % 2 else "email-digest"))

    page = await store.query("cleanup", HistoryQuery(limit=2))
    assert page.pagination.total == 3
    assert page.pagination.has_more is True
    assert all(r.task_type == "cleanup" for r in page.records)

    assert (await store.query("unknown")).pagination.total == 0


@pytest.mark.asyncio
async def test_sort_by_duration():
    store = InMemoryHistoryStore()
    await store.append(make_record(1, duration_ms=300))
    await store.append(make_record(2, duration_ms=100))
    await store.append(make_record(3, duration_ms=200))

    ascending = await store.query(query=HistoryQuery(sort_by="duration", sort_order="asc"))
    assert [r.duration_ms for r in ascending.records] == [100, 200, 300]

    descending = await store.query(query=HistoryQuery(sort_by="duration", sort_order="desc"))
    assert [r.duration_ms for r in descending.records] == [300, 200, 100]


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        InMemoryHistoryStore(capacity=0)


@pytest.mark.asyncio
async def test_returned_records_are_copies():
    store = InMemoryHistoryStore()
    original = make_record(1)
    await store.append(original)

    original.parameters["index"] = 99
    page = await store.query()
    page.records[0].parameters["injected"] = True
    (await store.get("exec_1")).parameters["index"] = 42

    assert (await store.get("exec_1")).parameters == {"index": 1}
    assert (await store.query()).records[0].parameters == {"index": 1}


@pytest.mark.asyncio
async def test_page_serialises_as_history():
    store = InMemoryHistoryStore()
    await store.append(make_record(1))

    page = await store.query("cleanup")
    assert page.history == page.records
    dumped = page.model_dump(by_alias=True)
    assert set(dumped) == {"history", "pagination"}
    assert dumped["history"][0]["execution_id"] == "exec_1"
