import copy
import logging
import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from task_scheduler.errors import InvalidParametersError


class RetryPolicy(BaseModel):
    """
    Governs whether and how often a failed execution is retried, and how long
    to back off between attempts.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    max_retries: int = Field(3, ge=0, description="Maximum number of retries after the first failed attempt")
    base_delay_ms: int = Field(1000, gt=0, description="Delay before the first retry, doubled for every further retry")
    max_delay_ms: int = Field(30000, gt=0, description="Upper bound for the backoff delay")
    retryable_errors: Optional[List[Any]] = Field(
        None,
        description="Substrings or compiled regular expressions matched against the error message. "
                    "When unset every error is retryable."
    )

    @field_validator('retryable_errors')
    def check_matchers(cls, v: Optional[List[Any]]) -> Optional[List[Any]]:
        if v is None:
            return v
        for matcher in v:
            if not isinstance(matcher, (str, re.Pattern)):
                raise ValueError(f"Retryable error matchers must be strings or compiled patterns, got {matcher!r}")
        return v

    def should_retry(self, error: BaseException) -> bool:
        if self.max_retries <= 0:
            return False
        if self.retryable_errors is None:
            return True

        message = str(error)
        for matcher in self.retryable_errors:
            if isinstance(matcher, str):
                if matcher in message:
                    return True
            elif matcher.search(message):
                return True
        return False

    def delay_ms(self, retry_count: int) -> int:
        """
        Exponential backoff for the given retry (1-based), capped at max_delay_ms.
        """
        return min(self.base_delay_ms * 2 ** (retry_count - 1), self.max_delay_ms)


class TaskDefinition(BaseModel):
    """
    Immutable description of a task type: what runs, how it is validated,
    how long it may take and how it is retried.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        arbitrary_types_allowed=True,
    )

    task_type: str = Field(..., min_length=1, description="Unique task type name")
    description: str = Field("", description="Human readable description of the task")
    handler: Callable[..., Any] = Field(..., description="Callable invoked as handler(parameters, context)")
    cron_schedule: Optional[str] = Field(None, description="Cron expression for recurring execution")
    parameters_schema: Optional[Type[BaseModel]] = Field(None, description="Pydantic model the explicit parameters must satisfy")
    default_parameters: Dict[str, Any] = Field(default_factory=dict, description="Parameters merged under the explicit ones")
    timeout_ms: Optional[int] = Field(None, gt=0, description="Execution deadline, falls back to the configured default")
    retry_policy: Optional[RetryPolicy] = Field(None, description="Retry policy applied on handler failure")

    def validate_parameters(self, parameters: Mapping[str, Any]) -> None:
        if self.parameters_schema is None:
            return
        try:
            self.parameters_schema.model_validate(dict(parameters))
        except ValidationError as e:
            details = "; ".join(
                f"{'.'.join(str(part) for part in err['loc']) or '<root>'}: {err['msg']}"
                for err in e.errors()
            )
            raise InvalidParametersError(self.task_type, details) from e

    def merge_parameters(self, parameters: Mapping[str, Any]) -> Dict[str, Any]:
        # Each execution gets its own copy of nested defaults.
        return copy.deepcopy({**self.default_parameters, **parameters})

    @property
    def is_recurring(self) -> bool:
        return self.cron_schedule is not None


class TaskContext(BaseModel):
    """
    Execution context handed to a task handler alongside its parameters.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    execution_id: str
    task_type: str
    attempt: int = Field(0, description="0 for the first run, n for the n-th retry")
    logger: logging.LoggerAdapter
