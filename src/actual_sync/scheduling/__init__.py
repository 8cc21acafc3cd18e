"""Schedule grouping and cron scheduling."""

from .grouper import ScheduleGroup, ScheduleGrouper
from .scheduler import CronScheduler

__all__ = ["CronScheduler", "ScheduleGroup", "ScheduleGrouper"]
