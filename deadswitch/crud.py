import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from deadswitch.exceptions import DuplicateRecipientsError
from deadswitch.models import models as db
from deadswitch.utils.tokens import join_recipients, reminder_token

logger = logging.getLogger("crud")

_UNSET = object()


# --- Generic DB helpers ------------------------------------------------------

async def _get_or_none(session, model, id_):
    obj = await session.get(model, id_)
    if not obj:
        logger.warning("%s with id=%s not found.", model.__name__, id_)
    return obj


async def _commit_refresh(session, obj):
    await session.commit()
    await session.refresh(obj)
    return obj


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MessageStore:
    """Persisted users and messages. The single source of truth for message state."""

    def __init__(self, sessionmaker: async_sessionmaker):
        self._sessionmaker = sessionmaker

    # --- User Operations -----------------------------------------------------

    async def upsert_user(self, email: str) -> db.User:
        """Sign up or sign in: create the user or refresh its last check-in."""
        email = email.strip().lower()
        async with self._sessionmaker() as dbs:
            result = await dbs.execute(select(db.User).where(db.User.email == email))
            user = result.scalar_one_or_none()
            if user:
                user.last_check_in = _now()
                await _commit_refresh(dbs, user)
                logger.info("User %s signed in", user.id)
            else:
                user = db.User(email=email, last_check_in=_now())
                dbs.add(user)
                await _commit_refresh(dbs, user)
                logger.info("Registered user %s", user.id)
            return user

    async def get_user_by_email(self, email: str) -> Optional[db.User]:
        async with self._sessionmaker() as dbs:
            result = await dbs.execute(select(db.User).where(db.User.email == email.strip().lower()))
            return result.scalar_one_or_none()

    async def get_owner_email(self, owner_id: int) -> Optional[str]:
        async with self._sessionmaker() as dbs:
            user = await _get_or_none(dbs, db.User, owner_id)
            return user.email if user else None

    # --- Message Operations --------------------------------------------------

    async def create_message(
        self,
        owner_id: int,
        *,
        recipients: Iterable[str],
        subject: str,
        content: str,
        interval_amount: int,
        interval_unit: str,
        next_reminder_due: datetime,
        disabled_at: Optional[datetime] = None,
    ) -> db.Message:
        targets = join_recipients(recipients)
        async with self._sessionmaker() as dbs:
            message = db.Message(
                owner_id=owner_id,
                recipients=targets,
                subject=subject,
                content=content,
                interval_amount=interval_amount,
                interval_unit=interval_unit,
                next_reminder_due=next_reminder_due,
                reminder_token=reminder_token(targets),
                created_at=_now(),
                disabled_at=disabled_at,
            )
            dbs.add(message)
            try:
                await _commit_refresh(dbs, message)
            except IntegrityError as e:
                await dbs.rollback()
                logger.warning("Rejected message for user %s: recipient set already in use", owner_id)
                raise DuplicateRecipientsError() from e
            logger.info("Created message %s for user %s", message.id, owner_id)
            return message

    async def get_message(self, message_id: int) -> Optional[db.Message]:
        async with self._sessionmaker() as dbs:
            return await dbs.get(db.Message, message_id)

    async def get_messages_by_owner(self, owner_id: int) -> List[db.Message]:
        async with self._sessionmaker() as dbs:
            result = await dbs.execute(
                select(db.Message).where(db.Message.owner_id == owner_id).order_by(db.Message.id)
            )
            messages = list(result.scalars())
            logger.info("Fetched %d message(s) for user %s", len(messages), owner_id)
            return messages

    async def get_message_by_token(self, token: str) -> Optional[db.Message]:
        async with self._sessionmaker() as dbs:
            result = await dbs.execute(select(db.Message).where(db.Message.reminder_token == token))
            return result.scalar_one_or_none()

    async def get_active_messages(self) -> List[db.Message]:
        async with self._sessionmaker() as dbs:
            result = await dbs.execute(
                select(db.Message).where(db.Message.disabled_at.is_(None)).order_by(db.Message.id)
            )
            return list(result.scalars())

    async def update_message(
        self,
        message_id: int,
        *,
        subject: Optional[str] = None,
        content: Optional[str] = None,
        recipients: Optional[Iterable[str]] = None,
        interval_amount: Optional[int] = None,
        interval_unit: Optional[str] = None,
        disabled_at=_UNSET,
    ) -> Optional[db.Message]:
        """Apply owner edits. ``disabled_at=None`` re-activates a message."""
        async with self._sessionmaker() as dbs:
            message = await _get_or_none(dbs, db.Message, message_id)
            if not message:
                return None
            if subject is not None:
                message.subject = subject
            if content is not None:
                message.content = content
            if recipients is not None:
                message.recipients = join_recipients(recipients)
                message.reminder_token = reminder_token(message.recipients)
            if interval_amount is not None:
                message.interval_amount = interval_amount
            if interval_unit is not None:
                message.interval_unit = interval_unit
            if disabled_at is not _UNSET:
                message.disabled_at = disabled_at
            message.updated_at = _now()
            try:
                await _commit_refresh(dbs, message)
            except IntegrityError as e:
                await dbs.rollback()
                raise DuplicateRecipientsError() from e
            logger.info("Updated message %s", message.id)
            return message

    async def delete_message(self, message_id: int) -> bool:
        async with self._sessionmaker() as dbs:
            message = await _get_or_none(dbs, db.Message, message_id)
            if not message:
                return False
            await dbs.delete(message)
            await dbs.commit()
            logger.info("Deleted message %s", message_id)
            return True

    # --- Reminder Operations -------------------------------------------------

    async def reset_schedule(self, message_id: int, *, next_reminder_due: datetime) -> Optional[db.Message]:
        """Start a fresh prompt cycle after create/edit."""
        async with self._sessionmaker() as dbs:
            message = await _get_or_none(dbs, db.Message, message_id)
            if not message:
                return None
            message.last_reminder_sent = None
            message.next_reminder_due = next_reminder_due
            await _commit_refresh(dbs, message)
            return message

    async def mark_reminder_sent(self, message_id: int, *, sent_at: datetime, next_reminder_due: datetime) -> bool:
        """Mark that a prompt was sent for this message."""
        async with self._sessionmaker() as dbs:
            message = await _get_or_none(dbs, db.Message, message_id)
            if not message:
                return False
            message.last_reminder_sent = sent_at
            message.next_reminder_due = next_reminder_due
            message.updated_at = sent_at
            await dbs.commit()
            logger.info("Marked reminder sent for message %s", message_id)
            return True

    async def record_check_in(self, message_id: int, *, checked_in_at: datetime) -> Optional[db.Message]:
        async with self._sessionmaker() as dbs:
            message = await _get_or_none(dbs, db.Message, message_id)
            if not message:
                return None
            message.last_check_in = checked_in_at
            message.updated_at = checked_in_at
            await _commit_refresh(dbs, message)
            logger.info("Recorded check-in for message %s", message_id)
            return message

    async def disable_message(self, message_id: int, *, disabled_at: datetime) -> bool:
        async with self._sessionmaker() as dbs:
            message = await _get_or_none(dbs, db.Message, message_id)
            if not message:
                return False
            message.disabled_at = disabled_at
            message.updated_at = disabled_at
            await dbs.commit()
            logger.info("Disabled message %s", message_id)
            return True
