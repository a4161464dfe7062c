import asyncio
import re

from pydantic import BaseModel, Field

from task_scheduler import SchedulerConfig, TaskEvent, TaskEventType, configure_logging, create_scheduler
from task_scheduler.executors.http import HttpTaskHandler


class CleanupParameters(BaseModel):
    retention_days: int = Field(90, description="Delete notifications older than this many days")


async def cleanup_notifications(parameters, context):
    context.logger.info(f"Deleting notifications older than {parameters['retention_days']} days")
    await asyncio.sleep(0.1)
    return {"deleted": 12}


def rebuild_search_index(parameters, context):
    # Plain functions run in a worker thread.
    context.logger.info("Rebuilding search index")
    return {"documents": 1024}


def load_tasks():
    return {
        "cleanup-notifications": {
            "description": "Clean up old notifications",
            "handler": cleanup_notifications,
            "cronSchedule": "*/5 * * * * *",
            "parametersSchema": CleanupParameters,
            "defaultParameters": {"retention_days": 90},
            "timeoutMs": 10000,
        },
        "rebuild-search-index": {
            "description": "Rebuild the search index",
            "handler": rebuild_search_index,
            "retryPolicy": {"maxRetries": 2, "baseDelayMs": 500, "retryableErrors": [re.compile("timeout", re.I)]},
        },
        "ping-webhook": {
            "description": "Notify the status webhook",
            "handler": HttpTaskHandler(url="https://httpbin.org/post"),
            "defaultParameters": {"body": {"status": "alive"}},
            "retryPolicy": {"maxRetries": 3, "retryableErrors": ["connection error", "HTTP 5"]},
        },
    }


def print_event(event: TaskEvent) -> None:
    if event.type == TaskEventType.START:
        print(f"-> {event.task_type} ({event.execution_id})")
    else:
        print(f"<- {event.task_type} {event.type.value} in {event.duration_ms}ms")


async def main():
    config = SchedulerConfig.from_env()
    configure_logging(config.log_level)

    scheduler = await create_scheduler(load_tasks(), config)
    scheduler.events.subscribe(print_event)
    await scheduler.initialize()

    result = await scheduler.execute_task("rebuild-search-index")
    print(f"Manual run finished: {result.result}")

    await asyncio.sleep(12)

    page = await scheduler.get_history(limit=5)
    for record in page.records:
        print(f"{record.start_time:%H:%M:%S} {record.task_type} success={record.success}")

    await scheduler.shutdown()

if __name__ == "__main__":
    asyncio.run(main())
