import re
from datetime import datetime, timezone

import pytest
from pydantic import BaseModel, ValidationError

from task_scheduler.domain.execution import ExecutionRecord, new_execution_id, retry_execution_id
from task_scheduler.domain.task import RetryPolicy, TaskDefinition
from task_scheduler.errors import InvalidParametersError


class DigestParameters(BaseModel):
    timezone: str
    batch_size: int


async def handler(parameters, context):
    return None


def test_retry_delay_doubles_until_capped() -> None:
    policy = RetryPolicy(max_retries=6, base_delay_ms=5000, max_delay_ms=60000)
    assert [policy.delay_ms(n) for n in range(1, 7)] == [5000, 10000, 20000, 40000, 60000, 60000]


def test_retry_defaults() -> None:
    policy = RetryPolicy()
    assert policy.max_retries == 3
    assert policy.base_delay_ms == 1000
    assert policy.max_delay_ms == 30000


def test_should_retry_matches_substrings_and_patterns() -> None:
    policy = RetryPolicy(retryable_errors=["timeout", re.compile(r"email service", re.I)])

    assert policy.should_retry(RuntimeError("socket timeout"))
    assert policy.should_retry(RuntimeError("Email Service returned 502"))
    assert not policy.should_retry(RuntimeError("invalid recipient"))


def test_should_retry_everything_when_unset() -> None:
    assert RetryPolicy().should_retry(RuntimeError("anything"))
    assert not RetryPolicy(max_retries=0).should_retry(RuntimeError("anything"))


def test_retryable_errors_reject_other_types() -> None:
    with pytest.raises(ValidationError):
        RetryPolicy(retryable_errors=[42])


def test_validate_parameters() -> None:
    definition = TaskDefinition(task_type="email-digest", handler=handler, parameters_schema=DigestParameters)

    definition.validate_parameters({"timezone": "UTC", "batch_size": 50})
    with pytest.raises(InvalidParametersError, match="batch_size"):
        definition.validate_parameters({"timezone": "UTC", "batch_size": "many"})


def test_merge_parameters_explicit_wins() -> None:
    definition = TaskDefinition(
        task_type="email-digest",
        handler=handler,
        default_parameters={"timezone": "UTC", "batch_size": 50},
    )
    assert definition.merge_parameters({"batch_size": 5}) == {"timezone": "UTC", "batch_size": 5}
    assert definition.default_parameters == {"timezone": "UTC", "batch_size": 50}


def test_execution_record_outcome_consistency() -> None:
    now = datetime.now(timezone.utc)
    common = dict(execution_id="exec_1", task_type="noop", start_time=now, end_time=now, duration_ms=0)

    ExecutionRecord(success=True, result={"ok": True}, **common)
    ExecutionRecord(success=False, error="boom", **common)

    with pytest.raises(ValidationError):
        ExecutionRecord(success=False, **common)
    with pytest.raises(ValidationError):
        ExecutionRecord(success=False, error="boom", result={"partial": True}, **common)
    with pytest.raises(ValidationError):
        ExecutionRecord(success=True, error="boom", **common)


def test_execution_record_is_immutable() -> None:
    now = datetime.now(timezone.utc)
    record = ExecutionRecord(execution_id="exec_1", task_type="noop", start_time=now, end_time=now, duration_ms=0, success=True)
    with pytest.raises(ValidationError):
        record.success = False


def test_naive_datetimes_default_to_utc() -> None:
    record = ExecutionRecord(
        execution_id="exec_1",
        task_type="noop",
        start_time=datetime(2024, 1, 1, 12, 0),
        end_time=datetime(2024, 1, 1, 12, 1),
        duration_ms=60000,
        success=True,
    )
    assert record.start_time.tzinfo == timezone.utc


def test_execution_ids() -> None:
    ids = {new_execution_id() for _ in range(1000)}
    assert len(ids) == 1000
    assert retry_execution_id("exec_1_abc", 2) == "retry_2_exec_1_abc"
