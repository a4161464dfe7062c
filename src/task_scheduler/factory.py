import logging
from typing import Optional, Union

from task_scheduler.config import SchedulerConfig
from task_scheduler.events import TaskEventBus
from task_scheduler.executors.engine import ExecutionEngine
from task_scheduler.registry import DefinitionSource, TaskRegistry
from task_scheduler.scheduling.controller import SchedulerController
from task_scheduler.storages.memory import InMemoryHistoryStore
from task_scheduler.storages.protocol import HistoryStore

logger = logging.getLogger(__name__)


async def create_history_store(config: SchedulerConfig) -> HistoryStore:
    """
    Build the history store selected by the configuration: a SQLAlchemy store
    when ``history_url`` is set (tables are created), the in-memory ring
    buffer otherwise. Both are bounded by ``history_capacity``.
    """
    if config.history_url:
        from task_scheduler.storages.sqlalchemy import SqlAlchemyHistoryStore

        store = SqlAlchemyHistoryStore(config.history_url, max_records=config.history_capacity)
        await store.create_tables()
        logger.info("Using SQL history store")
        return store
    return InMemoryHistoryStore(config.history_capacity)


async def create_scheduler(
    definitions: Union[TaskRegistry, DefinitionSource],
    config: Optional[SchedulerConfig] = None,
    events: Optional[TaskEventBus] = None,
    history: Optional[HistoryStore] = None,
) -> SchedulerController:
    """
    Wire registry, engine, history store and controller together.

    The returned controller is not initialized yet; call ``initialize()`` to
    install the cron schedules.
    """
    config = config or SchedulerConfig()
    registry = definitions if isinstance(definitions, TaskRegistry) else TaskRegistry(definitions)
    if history is None:
        history = await create_history_store(config)
    engine = ExecutionEngine(registry, config)
    return SchedulerController(registry, history, engine=engine, config=config, events=events)
