import json
from typing import Any, Dict, Optional

import aiohttp
from pydantic import BaseModel, Field, ValidationError

from task_scheduler.domain.task import TaskContext
from task_scheduler.errors import HandlerError
from task_scheduler.executors.protocol import TaskHandler


class HttpCallParameters(BaseModel):
    url: str = Field(..., description="The URL to make the HTTP request to")
    method: str = Field("POST", description="The HTTP method to use (e.g. GET, POST, PUT, DELETE)")
    headers: Dict[str, str] = Field(default={}, description="Optional headers to include in the request")
    body: Optional[Dict[str, Any]] = Field(default=None, description="Optional JSON body for the request")
    params: Dict[str, str] = Field(default={}, description="Optional query parameters for the request")


class HttpTaskHandler(TaskHandler):
    """
    Task handler that calls another service over HTTP using aiohttp.

    Values given to the constructor act as defaults; the task parameters
    override them field by field, headers are merged. A non-2xx response or a
    transport failure raises HandlerError, with "connection error" in the
    message for the latter so retry policies can single it out.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        method: str = "POST",
        headers: Optional[Dict[str, str]] = None,
        timeout_s: Optional[float] = None,
    ):
        self.url: Optional[str] = url
        self.method: str = method
        self.headers: Dict[str, str] = dict(headers or {})
        self.timeout_s: Optional[float] = timeout_s

    def build_request(self, parameters: Dict[str, Any], task_type: Optional[str] = None) -> HttpCallParameters:
        values: Dict[str, Any] = {"method": self.method}
        if self.url is not None:
            values["url"] = self.url
        values.update({k: v for k, v in parameters.items() if k in HttpCallParameters.model_fields})
        values["headers"] = {**self.headers, **(parameters.get("headers") or {})}
        try:
            return HttpCallParameters.model_validate(values)
        except ValidationError as e:
            raise HandlerError(f"Invalid HTTP call parameters: {e}", task_type) from e

    async def __call__(self, parameters: Dict[str, Any], context: TaskContext) -> Dict[str, Any]:
        request = self.build_request(parameters, context.task_type)
        context.logger.info(f"{request.method} {request.url}")

        timeout = aiohttp.ClientTimeout(total=self.timeout_s) if self.timeout_s else None
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(
                    method=request.method,
                    url=request.url,
                    headers=request.headers,
                    params=request.params,
                    json=request.body
                ) as response:
                    body: Any = await response.text()
                    if response.content_type == "application/json" and body:
                        try:
                            body = json.loads(body)
                        except ValueError:
                            # Mislabelled body, keep the raw text.
                            pass
                    result: Dict[str, Any] = {
                        "status": response.status,
                        "headers": dict(response.headers),
                        "body": body
                    }
        except aiohttp.ClientError as e:
            raise HandlerError(f"connection error calling {request.url}: {e}", context.task_type) from e

        if not 200 <= result["status"] < 300:
            raise HandlerError(f"HTTP {result['status']} from {request.url}: {result['body']}", context.task_type)
        return result
