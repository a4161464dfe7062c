import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_HISTORY_CAPACITY = 1000
DEFAULT_TIMEOUT_MS = 300000  # 5 minutes


class SchedulerConfig(BaseModel):
    """
    Configuration shared by the registry, engine, controller and history store.
    Built once at startup and passed to each component explicitly.
    """
    history_capacity: int = Field(DEFAULT_HISTORY_CAPACITY, gt=0, description="Maximum number of execution records kept")
    default_timeout_ms: int = Field(DEFAULT_TIMEOUT_MS, gt=0, description="Deadline for tasks that do not declare one")
    history_url: Optional[str] = Field(None, description="Async SQLAlchemy URL for durable history. In-memory when unset")
    log_level: str = Field("INFO", description="Level for the task_scheduler logger")

    @field_validator('log_level')
    def check_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unsupported log level: {v}")
        return level

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SchedulerConfig":
        """
        Build a configuration from environment variables, falling back to the
        defaults for anything unset or empty.
        """
        if environ is None:
            environ = os.environ

        values = {}
        for env_key, field_name in (
            ("SCHEDULER_HISTORY_CAPACITY", "history_capacity"),
            ("SCHEDULER_TASK_TIMEOUT_MS", "default_timeout_ms"),
            ("SCHEDULER_HISTORY_URL", "history_url"),
            ("LOG_LEVEL", "log_level"),
        ):
            value = environ.get(env_key)
            if value:
                values[field_name] = value
        return cls(**values)
