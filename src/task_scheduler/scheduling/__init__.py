from .cron import CronTrigger, validate_cron_expression
from .controller import SchedulerController

__all__ = ["CronTrigger", "validate_cron_expression", "SchedulerController"]
