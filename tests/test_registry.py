import re

import pytest
from pydantic import BaseModel, ValidationError

from task_scheduler.domain.task import TaskDefinition
from task_scheduler.errors import UnknownTaskTypeError
from task_scheduler.registry import TaskRegistry


class SubscriptionParameters(BaseModel):
    batch_size: int = 10


async def handler(parameters, context):
    return None


def load_tasks():
    return {
        "run-subscriptions": {
            "description": "Process all active subscriptions",
            "handler": handler,
            "cronSchedule": "0 0 * * *",
            "parametersSchema": SubscriptionParameters,
            "defaultParameters": {"batch_size": 10},
            "timeoutMs": 300000,
            "retryPolicy": {
                "maxRetries": 3,
                "baseDelayMs": 1000,
                "maxDelayMs": 30000,
                "retryableErrors": ["timeout", "connection", re.compile("database", re.I)],
            },
        },
        "cleanup": {
            "description": "Clean up old notifications",
            "handler": handler,
        },
    }


def test_load_from_mapping() -> None:
    registry = TaskRegistry.load(load_tasks)

    assert len(registry) == 2
    assert "cleanup" in registry
    assert registry.task_types() == ["run-subscriptions", "cleanup"]

    definition = registry.get("run-subscriptions")
    assert definition.task_type == "run-subscriptions"
    assert definition.cron_schedule == "0 0 * * *"
    assert definition.timeout_ms == 300000
    assert definition.retry_policy.max_retries == 3
    assert definition.retry_policy.should_retry(RuntimeError("Database locked"))

    cleanup = registry.get("cleanup")
    assert cleanup.cron_schedule is None
    assert cleanup.retry_policy is None
    assert cleanup.default_parameters == {}


def test_load_from_definitions() -> None:
    registry = TaskRegistry([
        TaskDefinition(task_type="a", handler=handler),
        TaskDefinition(task_type="b", handler=handler),
    ])
    assert registry.task_types() == ["a", "b"]


def test_duplicate_task_type() -> None:
    with pytest.raises(ValueError, match="A task definition for 'a' is already registered"):
        TaskRegistry([
            TaskDefinition(task_type="a", handler=handler),
            TaskDefinition(task_type="a", handler=handler),
        ])


def test_mismatched_key() -> None:
    with pytest.raises(ValueError, match="registered under key 'b'"):
        TaskRegistry({"b": TaskDefinition(task_type="a", handler=handler)})


def test_invalid_definition() -> None:
    with pytest.raises(ValidationError):
        TaskRegistry({"bad": {"handler": handler, "timeoutMs": -5}})


def test_unknown_task_type() -> None:
    registry = TaskRegistry()
    with pytest.raises(UnknownTaskTypeError, match="Unknown task type: missing-type") as exc_info:
        registry.get("missing-type")
    assert exc_info.value.task_type == "missing-type"


def test_definitions_are_read_only() -> None:
    registry = TaskRegistry([TaskDefinition(task_type="a", handler=handler)])

    with pytest.raises(TypeError):
        registry.definitions["b"] = registry.get("a")
    with pytest.raises(ValidationError):
        registry.get("a").timeout_ms = 10


def test_load_from_iterable_of_mappings() -> None:
    registry = TaskRegistry([
        {"taskType": "cleanup", "handler": handler, "cronSchedule": "0 3 * * *"},
        TaskDefinition(task_type="digest", handler=handler),
    ])
    assert registry.task_types() == ["cleanup", "digest"]
    assert registry.get("cleanup").cron_schedule == "0 3 * * *"


def test_iterable_entries_must_be_definitions() -> None:
    with pytest.raises(ValueError, match="Expected a TaskDefinition or a mapping, got str"):
        TaskRegistry(["cleanup"])
    with pytest.raises(ValidationError):
        TaskRegistry([{"handler": handler}])
