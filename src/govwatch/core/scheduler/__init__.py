"""Scheduler service - APScheduler integration."""

from .locks import LockManager
from .service import SchedulerService, execute_scheduled_check

__all__ = [
    "LockManager",
    "SchedulerService",
    "execute_scheduled_check",
]
