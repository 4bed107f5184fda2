"""
Reminder Service: arms, fires, cancels and rebuilds the prompt/escalation jobs of each message
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, List, Optional

from apscheduler.events import EVENT_JOB_ERROR, JobExecutionEvent
from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import SQLAlchemyError

from deadswitch.config import Settings, get_settings
from deadswitch.crud import MessageStore
from deadswitch.features.reminders.locks import MessageLocks
from deadswitch.features.reminders.registry import ScheduleKey, ScheduleRegistry, TaskKind
from deadswitch.models.models import Message
from deadswitch.services.notifier import Notifier
from deadswitch.utils.formatting import as_utc, format_display_datetime, format_duration
from deadswitch.utils.tokens import parse_token, split_recipients

logger = logging.getLogger("reminder_service")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FiringOutcome(str, Enum):
    SENT = "sent"
    SKIPPED_CHECKED_IN = "skipped_checked_in"
    SKIPPED_STALE = "skipped_stale"
    SKIPPED_MISSING = "skipped_missing"
    SKIPPED_DISABLED = "skipped_disabled"
    NOTIFY_FAILED = "notify_failed"
    STORE_FAILED = "store_failed"


@dataclass(frozen=True)
class FiringResult:
    kind: TaskKind
    message_id: int
    outcome: FiringOutcome
    detail: str = ""

    @property
    def failed(self) -> bool:
        return self.outcome in (FiringOutcome.NOTIFY_FAILED, FiringOutcome.STORE_FAILED)


class ReminderScheduler:
    """Owns the APScheduler instance, the schedule registry and the per-message locks.

    Firing handlers only ever capture a message id; every firing re-reads the
    message from the store before acting on it.
    """

    def __init__(
        self,
        store: MessageStore,
        notifier: Notifier,
        settings: Optional[Settings] = None,
        *,
        scheduler: Optional[AsyncIOScheduler] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        settings = settings or get_settings()
        self.store = store
        self.notifier = notifier
        self.escalation_window: timedelta = settings.escalation_window_delta
        self.interval_override: Optional[timedelta] = settings.prompt_interval_override_delta
        self.escalate_on_prompt_failure = settings.escalate_on_prompt_failure
        self.registry = ScheduleRegistry()
        self.locks = MessageLocks()
        self._clock = clock or _utcnow
        self._firing_slots = asyncio.Semaphore(max(1, settings.scheduler_max_concurrent_firings))
        self._scheduler = scheduler or AsyncIOScheduler(
            timezone=timezone.utc,
            job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": None},
        )
        self._scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)

    # --- Lifecycle -----------------------------------------------------------

    def start(self, *, paused: bool = False) -> None:
        if self._scheduler.running:
            logger.warning("Scheduler already running")
            return
        self._scheduler.start(paused=paused)
        logger.info(
            "Reminder scheduler started (escalation window %s%s)",
            format_duration(self.escalation_window),
            f", prompt interval override {format_duration(self.interval_override)}" if self.interval_override else "",
        )

    def shutdown(self) -> None:
        if not self._scheduler.running:
            logger.warning("Scheduler not running")
            return
        self._scheduler.shutdown(wait=False)
        self.registry.clear()
        logger.info("Reminder scheduler stopped")

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def now(self) -> datetime:
        return self._clock()

    def get_jobs(self) -> List[Job]:
        return self._scheduler.get_jobs()

    def interval_for(self, message: Message) -> timedelta:
        if self.interval_override is not None:
            return self.interval_override
        return message.interval

    # --- Arming --------------------------------------------------------------

    def arm_prompt(self, message: Message) -> Job:
        """Register the recurring prompt job, first firing at ``next_reminder_due`` (or now if overdue)."""
        now = self.now()
        interval = self.interval_for(message)
        initial_delay = max(timedelta(0), as_utc(message.next_reminder_due) - now)
        first_run = now + initial_delay

        key: ScheduleKey = (message.id, TaskKind.PROMPT)
        job_id = self._job_id(key)
        job = self._scheduler.add_job(
            self._run_prompt,
            trigger=IntervalTrigger(
                seconds=int(interval.total_seconds()), start_date=first_run, timezone=timezone.utc
            ),
            next_run_time=first_run,
            id=job_id,
            name=f"Check-in prompt for message {message.id}",
            kwargs={"message_id": message.id, "job_id": job_id},
            coalesce=True,
            max_instances=1,
            misfire_grace_time=None,
        )
        self.registry.put(key, job)
        logger.info(
            "Scheduling check-in prompt for message %s in %s, then every %s",
            message.id,
            format_duration(initial_delay),
            format_duration(interval),
        )
        return job

    def arm_escalation(self, message: Message, *, prompted_at: datetime) -> Job:
        """Register the one-shot escalation job, one escalation window after the prompt."""
        run_at = as_utc(prompted_at) + self.escalation_window

        key: ScheduleKey = (message.id, TaskKind.ESCALATION)
        job_id = self._job_id(key)
        job = self._scheduler.add_job(
            self._run_escalation,
            trigger=DateTrigger(run_date=run_at, timezone=timezone.utc),
            id=job_id,
            name=f"Content release for message {message.id}",
            kwargs={"message_id": message.id, "job_id": job_id, "prompted_at": as_utc(prompted_at)},
            max_instances=1,
            misfire_grace_time=None,
        )
        self.registry.put(key, job)
        logger.info(
            "Scheduling content message %s to be sent in %s, if not cancelled",
            message.id,
            format_duration(run_at - self.now()),
        )
        return job

    # --- Firing --------------------------------------------------------------

    async def _run_prompt(self, message_id: int, job_id: str) -> None:
        async with self._firing_slots:
            result = await self.fire_prompt(message_id, job_id)
        self._log_result(result)

    async def _run_escalation(self, message_id: int, job_id: str, prompted_at: datetime) -> None:
        async with self._firing_slots:
            result = await self.fire_escalation(message_id, job_id, prompted_at)
        self._log_result(result)

    async def fire_prompt(self, message_id: int, job_id: str) -> FiringResult:
        key: ScheduleKey = (message_id, TaskKind.PROMPT)
        async with self.locks.hold(message_id):
            if not self.registry.holds(key, job_id):
                return FiringResult(TaskKind.PROMPT, message_id, FiringOutcome.SKIPPED_STALE, job_id)

            logger.info("Handling check-in prompt for message %s", message_id)
            try:
                message = await self.store.get_message(message_id)
                owner_email = await self.store.get_owner_email(message.owner_id) if message else None
            except SQLAlchemyError as e:
                return FiringResult(TaskKind.PROMPT, message_id, FiringOutcome.STORE_FAILED, str(e))

            if message is None or owner_email is None:
                self.registry.cancel_all(message_id)
                return FiringResult(TaskKind.PROMPT, message_id, FiringOutcome.SKIPPED_MISSING)
            if not message.is_active:
                self.registry.cancel_all(message_id)
                return FiringResult(TaskKind.PROMPT, message_id, FiringOutcome.SKIPPED_DISABLED)

            sent = await self.notifier.send_prompt([owner_email], message.reminder_token, self.escalation_window)
            if not sent:
                logger.error("Failed to send check-in prompt for message %s", message_id)

            # The schedule advances even when the send failed
            now = self.now()
            try:
                await self.store.mark_reminder_sent(
                    message_id, sent_at=now, next_reminder_due=now + self.interval_for(message)
                )
            except SQLAlchemyError as e:
                return FiringResult(TaskKind.PROMPT, message_id, FiringOutcome.STORE_FAILED, str(e))

            if (message_id, TaskKind.ESCALATION) in self.registry:
                # Keep the earliest deadline; later prompts never push it back
                logger.info("Content message %s already scheduled, keeping its deadline", message_id)
            elif sent or self.escalate_on_prompt_failure:
                self.arm_escalation(message, prompted_at=now)

            outcome = FiringOutcome.SENT if sent else FiringOutcome.NOTIFY_FAILED
            return FiringResult(TaskKind.PROMPT, message_id, outcome)

    async def fire_escalation(self, message_id: int, job_id: str, prompted_at: datetime) -> FiringResult:
        key: ScheduleKey = (message_id, TaskKind.ESCALATION)
        async with self.locks.hold(message_id):
            if not self.registry.holds(key, job_id):
                return FiringResult(TaskKind.ESCALATION, message_id, FiringOutcome.SKIPPED_STALE, job_id)
            # One-shot: APScheduler already dropped the job from its store
            self.registry.release(key, job_id)

            logger.info("Handling content message schedule for message %s", message_id)
            try:
                message = await self.store.get_message(message_id)
            except SQLAlchemyError as e:
                return FiringResult(TaskKind.ESCALATION, message_id, FiringOutcome.STORE_FAILED, str(e))

            if message is None:
                self.registry.cancel_all(message_id)
                return FiringResult(TaskKind.ESCALATION, message_id, FiringOutcome.SKIPPED_MISSING)
            if not message.is_active:
                self.registry.cancel_all(message_id)
                return FiringResult(TaskKind.ESCALATION, message_id, FiringOutcome.SKIPPED_DISABLED)

            now = self.now()
            if self._checked_in_since(message, as_utc(prompted_at), now):
                logger.info("Skipping content message. Owner of message %s did the check in", message_id)
                return FiringResult(TaskKind.ESCALATION, message_id, FiringOutcome.SKIPPED_CHECKED_IN)

            logger.info("Owner of message %s didn't check in. Sending content message.", message_id)
            sent = await self.notifier.send_content(
                split_recipients(message.recipients), message.subject, message.content
            )
            if not sent:
                # Stays enabled; the next prompt cycle arms another escalation
                return FiringResult(TaskKind.ESCALATION, message_id, FiringOutcome.NOTIFY_FAILED)

            self.registry.cancel_all(message_id)
            try:
                await self.store.disable_message(message_id, disabled_at=now)
            except SQLAlchemyError as e:
                return FiringResult(
                    TaskKind.ESCALATION, message_id, FiringOutcome.STORE_FAILED,
                    f"content sent but message not disabled: {e}",
                )
            return FiringResult(TaskKind.ESCALATION, message_id, FiringOutcome.SENT)

    def _checked_in_since(self, message: Message, prompted_at: datetime, now: datetime) -> bool:
        if message.last_check_in is None:
            return False
        last_check_in = as_utc(message.last_check_in)
        logger.info(
            "Time since last check-in for message %s is %s",
            message.id,
            format_duration(now - last_check_in),
        )
        return last_check_in >= prompted_at or now - last_check_in < self.escalation_window

    # --- Orchestration -------------------------------------------------------

    async def on_create(self, message: Message) -> Optional[Message]:
        async with self.locks.hold(message.id):
            return await self._rebuild(message.id)

    async def on_update(self, message: Message) -> Optional[Message]:
        async with self.locks.hold(message.id):
            logger.info("Rebuilding schedule for updated message %s", message.id)
            return await self._rebuild(message.id)

    async def on_delete(self, message_id: int) -> bool:
        async with self.locks.hold(message_id):
            self.registry.cancel_all(message_id)
            deleted = await self.store.delete_message(message_id)
        self.locks.discard(message_id)
        logger.info("Disabled schedule engine for message %s", message_id)
        return deleted

    async def on_check_in(self, token: str) -> Optional[str]:
        """Record a check-in by public token; returns the next due time for display, or None."""
        logger.info("Registering check-in for confirmation id %s", token)
        try:
            token = parse_token(token)
        except ValueError:
            logger.info("Message not found for the confirmation id %s", token)
            return None

        message = await self.store.get_message_by_token(token)
        if message is None:
            logger.info("Message not found for the confirmation id %s", token)
            return None

        async with self.locks.hold(message.id):
            updated = await self.store.record_check_in(message.id, checked_in_at=self.now())
            if updated is None:
                return None
            # The prompt keeps its cadence; only the pending escalation goes away
            self.registry.cancel((message.id, TaskKind.ESCALATION))

        next_due = format_display_datetime(updated.next_reminder_due)
        logger.info("Content message cancelled upon check in. Next due at %s", next_due)
        return next_due

    async def _rebuild(self, message_id: int) -> Optional[Message]:
        self.registry.cancel_all(message_id)
        message = await self.store.get_message(message_id)
        if message is None:
            return None

        message = await self.store.reset_schedule(
            message_id, next_reminder_due=self.now() + self.interval_for(message)
        )
        if message is None:
            return None
        if message.is_active:
            self.arm_prompt(message)
        else:
            logger.info("Message %s is disabled, no reminders scheduled", message_id)
        return message

    # --- Helpers -------------------------------------------------------------

    @staticmethod
    def _job_id(key: ScheduleKey) -> str:
        message_id, kind = key
        return f"{kind.value}:{message_id}:{uuid.uuid4().hex[:12]}"

    @staticmethod
    def _log_result(result: FiringResult) -> None:
        if result.failed:
            logger.error(
                "%s firing for message %s failed (%s) %s",
                result.kind.value, result.message_id, result.outcome.value, result.detail,
            )
        elif result.outcome is FiringOutcome.SKIPPED_STALE:
            logger.debug("Stale %s firing for message %s ignored", result.kind.value, result.message_id)
        else:
            logger.info("%s firing for message %s: %s", result.kind.value, result.message_id, result.outcome.value)

    @staticmethod
    def _on_job_error(event: JobExecutionEvent) -> None:
        logger.error("Reminder job %s raised %r\n%s", event.job_id, event.exception, event.traceback)
