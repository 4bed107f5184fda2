"""
Reminder feature module: check-in prompts and content release for dead-man's switch messages
"""
from .recovery import recover
from .registry import ScheduleKey, ScheduleRegistry, TaskKind
from .service import FiringOutcome, FiringResult, ReminderScheduler

__all__ = [
    "FiringOutcome",
    "FiringResult",
    "ReminderScheduler",
    "ScheduleKey",
    "ScheduleRegistry",
    "TaskKind",
    "recover",
]
