import aiohttp
import pytest
from aioresponses import aioresponses

from task_scheduler.domain.task import TaskContext
from task_scheduler.errors import HandlerError
from task_scheduler.executors.http import HttpTaskHandler
from task_scheduler.log import get_task_logger


@pytest.fixture(scope="function")
def context() -> TaskContext:
    return TaskContext(
        execution_id="exec_1",
        task_type="notify",
        logger=get_task_logger("notify", "exec_1"),
    )


@pytest.fixture(scope="function")
def http_handler() -> HttpTaskHandler:
    return HttpTaskHandler(
        url="https://backend.example.com/api/v1/admin/cleanup/notifications",
        headers={"Authorization": "Bearer test-key"},
    )


@pytest.mark.asyncio
async def test_call_success(http_handler, context):
    with aioresponses() as m:
        m.post(
            "https://backend.example.com/api/v1/admin/cleanup/notifications",
            status=200,
            payload={"deleted": 12},
        )

        result = await http_handler({"body": {"retentionDays": 90}}, context)

    assert result["status"] == 200
    assert result["body"] == {"deleted": 12}


@pytest.mark.asyncio
async def test_parameters_override_defaults(http_handler, context):
    with aioresponses() as m:
        m.get("https://other.example.com/status?verbose=1", status=200, body="ok", content_type="text/plain")

        result = await http_handler(
            {"url": "https://other.example.com/status", "method": "GET", "params": {"verbose": "1"}},
            context,
        )

    assert result["body"] == "ok"


@pytest.mark.asyncio
async def test_error_status_raises_handler_error(http_handler, context):
    with aioresponses() as m:
        m.post(
            "https://backend.example.com/api/v1/admin/cleanup/notifications",
            status=503,
            body="unavailable",
            content_type="text/plain",
        )

        with pytest.raises(HandlerError, match="HTTP 503"):
            await http_handler({}, context)


@pytest.mark.asyncio
async def test_connection_failure_raises_handler_error(http_handler, context):
    with aioresponses() as m:
        m.post(
            "https://backend.example.com/api/v1/admin/cleanup/notifications",
            exception=aiohttp.ClientConnectionError("Connection refused"),
        )

        with pytest.raises(HandlerError, match="connection error"):
            await http_handler({}, context)


@pytest.mark.asyncio
async def test_missing_url_is_rejected(context):
    with pytest.raises(HandlerError, match="Invalid HTTP call parameters") as exc_info:
        await HttpTaskHandler()({}, context)
    assert exc_info.value.task_type == "notify"
