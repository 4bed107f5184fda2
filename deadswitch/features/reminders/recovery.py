"""
Startup recovery: re-arm the prompt job of every message that is still active
"""
import logging
from typing import Optional

from deadswitch.crud import MessageStore
from deadswitch.features.reminders.service import ReminderScheduler
from deadswitch.utils.formatting import format_display_datetime

logger = logging.getLogger("reminder_recovery")


async def recover(scheduler: ReminderScheduler, store: Optional[MessageStore] = None) -> int:
    """Arm one prompt per active message from its persisted ``next_reminder_due``.

    Overdue messages fire as soon as the scheduler runs. Escalations that were
    pending when the previous process stopped are not rebuilt; the next prompt
    arms a fresh one.
    """
    store = store or scheduler.store
    messages = await store.get_active_messages()
    logger.info("Recovering schedules for %d active message(s)", len(messages))

    armed = 0
    for message in messages:
        try:
            scheduler.arm_prompt(message)
        except Exception as e:
            logger.error("Could not re-arm message %s: %s", message.id, e)
            continue
        armed += 1
        logger.debug("Re-armed message %s, due %s", message.id, format_display_datetime(message.next_reminder_due))

    logger.info("Recovered %d prompt schedule(s)", armed)
    return armed
