"""
Logging setup for the scheduler.

Every module logs through ``logging.getLogger(__name__)``; entry points call
configure_logging() once. Task handlers receive a TaskLoggerAdapter so their
messages carry the task type and execution id.

Levels:
- DEBUG: parameter validation, history writes, discarded late results
- INFO: executions starting and finishing, schedules installed, retries
- WARNING: exhausted retries, skipped cron ticks
- ERROR: failed executions, history write failures
"""

import logging
import sys
from typing import Any, MutableMapping, Optional, TextIO, Tuple

ROOT_LOGGER_NAME = "task_scheduler"

_CONTEXT_FIELDS = ("task_type", "execution_id")


class TaskContextFormatter(logging.Formatter):
    """
    Appends task context extras to the formatted line when a record has them.
    """

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = [
            f"{name}={getattr(record, name)}"
            for name in _CONTEXT_FIELDS
            if getattr(record, name, None) is not None
        ]
        if context:
            line = f"{line} [{' '.join(context)}]"
        return line


class TaskLoggerAdapter(logging.LoggerAdapter):
    """
    Logger handed to task handlers, prefixing messages with the task type.
    """

    def __init__(self, logger: logging.Logger, task_type: str, execution_id: str):
        super().__init__(logger, {"task_type": task_type, "execution_id": execution_id})

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        extra = dict(self.extra)
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return f"[Task: {self.extra['task_type']}] {msg}", kwargs


def get_task_logger(task_type: str, execution_id: str) -> TaskLoggerAdapter:
    return TaskLoggerAdapter(logging.getLogger(f"{ROOT_LOGGER_NAME}.tasks"), task_type, execution_id)


def configure_logging(level: str = "INFO", stream: Optional[TextIO] = None) -> logging.Logger:
    """
    Install a single stream handler on the package logger. Safe to call more
    than once; the previous handler is replaced.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, "_task_scheduler_handler", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(TaskContextFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    handler._task_scheduler_handler = True
    logger.addHandler(handler)
    logger.setLevel(level.upper())
    return logger
