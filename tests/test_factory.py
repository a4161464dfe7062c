import pytest

from task_scheduler import SchedulerConfig, TaskDefinition, create_scheduler
from task_scheduler.storages.memory import InMemoryHistoryStore
from task_scheduler.storages.sqlalchemy import SqlAlchemyHistoryStore


async def send_digest(parameters, context):
    context.logger.info("Sending digest")
    return {"sent": parameters["batch_size"]}


DEFINITIONS = {
    "email-digest": {
        "description": "Send daily email digests",
        "handler": send_digest,
        "cronSchedule": "0 8 * * *",
        "defaultParameters": {"batch_size": 50},
    },
}


@pytest.mark.asyncio
async def test_create_scheduler_in_memory() -> None:
    scheduler = await create_scheduler(DEFINITIONS)
    assert isinstance(scheduler.history, InMemoryHistoryStore)

    await scheduler.initialize()
    try:
        result = await scheduler.execute_task("email-digest")
        assert result.result == {"sent": 50}
        assert [s.task_type for s in scheduler.get_schedules()] == ["email-digest"]
    finally:
        await scheduler.shutdown()


@pytest.mark.asyncio
async def test_create_scheduler_with_sql_history() -> None:
    config = SchedulerConfig(history_url="sqlite+aiosqlite:///:memory:", history_capacity=2)
    scheduler = await create_scheduler(DEFINITIONS, config)
    store = scheduler.history
    assert isinstance(store, SqlAlchemyHistoryStore)

    try:
        for batch_size in (1, 2, 3):
            await scheduler.execute_task("email-digest", {"batch_size": batch_size})

        page = await scheduler.get_history("email-digest")
        assert page.pagination.total == 2
        assert [r.result for r in page.records] == [{"sent": 3}, {"sent": 2}]
    finally:
        await store.dispose()
