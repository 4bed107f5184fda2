"""
Schedule registry: tracks the live APScheduler job for each (message, task kind).
"""
import logging
from enum import Enum
from typing import Dict, List, Optional, Tuple

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError

logger = logging.getLogger("schedule_registry")


class TaskKind(str, Enum):
    PROMPT = "prompt"
    ESCALATION = "escalation"


ScheduleKey = Tuple[int, TaskKind]


class ScheduleRegistry:
    """At most one live job handle per key.

    Entries are derived state only; the message store decides whether a
    message is active. All methods are synchronous, so a replace can never
    interleave with another coroutine on the event loop.
    """

    def __init__(self) -> None:
        self._handles: Dict[ScheduleKey, Job] = {}

    def put(self, key: ScheduleKey, job: Job) -> None:
        """Register ``job`` for ``key``, cancelling whatever was there first."""
        previous = self._handles.pop(key, None)
        if previous is not None:
            self._cancel_job(key, previous)
        self._handles[key] = job

    def cancel(self, key: ScheduleKey) -> bool:
        """Remove and cancel the handle for ``key``; True only if a pending job was stopped."""
        job = self._handles.pop(key, None)
        if job is None:
            logger.debug("No existing %s task found for message %s to cancel", key[1].value, key[0])
            return False
        return self._cancel_job(key, job)

    def cancel_all(self, message_id: int) -> int:
        cancelled = 0
        for kind in TaskKind:
            if self.cancel((message_id, kind)):
                cancelled += 1
        return cancelled

    def get(self, key: ScheduleKey) -> Optional[Job]:
        return self._handles.get(key)

    def holds(self, key: ScheduleKey, job_id: str) -> bool:
        """Whether ``job_id`` is still the live handle for ``key``."""
        job = self._handles.get(key)
        return job is not None and job.id == job_id

    def release(self, key: ScheduleKey, job_id: str) -> bool:
        """Forget a handle whose one-shot job already ran, without cancelling anything."""
        if not self.holds(key, job_id):
            return False
        del self._handles[key]
        return True

    def keys(self) -> List[ScheduleKey]:
        return list(self._handles)

    def clear(self) -> None:
        self._handles.clear()

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, key: object) -> bool:
        return key in self._handles

    @staticmethod
    def _cancel_job(key: ScheduleKey, job: Job) -> bool:
        message_id, kind = key
        try:
            # Never interrupts a run already in progress, only future ones
            job.remove()
        except JobLookupError:
            logger.warning(
                "Failed to cancel %s task for message %s - task may have already completed or not scheduled yet",
                kind.value,
                message_id,
            )
            return False
        logger.info("Cancelled %s task for message %s", kind.value, message_id)
        return True
