import logging
from typing import List, Optional

from deadswitch.crud import MessageStore
from deadswitch.exceptions import InvalidUserError, MessageNotFoundError
from deadswitch.features.reminders import ReminderScheduler
from deadswitch.models import models as db
from deadswitch.utils.tokens import normalize_recipients

logger = logging.getLogger("services.message")


class MessageService:
    """Owner-facing message operations; every write is followed by the matching scheduler hook."""

    def __init__(self, store: MessageStore, scheduler: ReminderScheduler):
        self.store = store
        self.scheduler = scheduler

    async def sign_in(self, email: str) -> db.User:
        return await self.store.upsert_user(email)

    async def _owner(self, email: str) -> db.User:
        user = await self.store.get_user_by_email(email)
        if user is None:
            raise InvalidUserError("User not registered")
        return user

    async def _owned_message(self, owner: db.User, message_id: int) -> db.Message:
        message = await self.store.get_message(message_id)
        if message is None or message.owner_id != owner.id:
            raise MessageNotFoundError()
        return message

    async def list_messages(self, email: str) -> List[db.Message]:
        owner = await self._owner(email)
        return await self.store.get_messages_by_owner(owner.id)

    async def get_message(self, email: str, message_id: int) -> db.Message:
        owner = await self._owner(email)
        return await self._owned_message(owner, message_id)

    async def create_message(
        self,
        email: str,
        *,
        recipients: List[str],
        subject: str,
        content: str,
        interval_amount: int,
        interval_unit: str,
        active: bool = True,
    ) -> db.Message:
        owner = await self._owner(email)
        now = self.scheduler.now()
        message = await self.store.create_message(
            owner.id,
            recipients=normalize_recipients(recipients),
            subject=subject,
            content=content,
            interval_amount=interval_amount,
            interval_unit=interval_unit,
            next_reminder_due=now + db.interval_delta(interval_amount, interval_unit),
            disabled_at=None if active else now,
        )
        return await self.scheduler.on_create(message) or message

    async def update_message(
        self,
        email: str,
        message_id: int,
        *,
        recipients: Optional[List[str]] = None,
        subject: Optional[str] = None,
        content: Optional[str] = None,
        interval_amount: Optional[int] = None,
        interval_unit: Optional[str] = None,
        active: Optional[bool] = None,
    ) -> db.Message:
        owner = await self._owner(email)
        current = await self._owned_message(owner, message_id)

        changes = {}
        if active is True:
            changes["disabled_at"] = None
        elif active is False and current.is_active:
            changes["disabled_at"] = self.scheduler.now()

        message = await self.store.update_message(
            message_id,
            subject=subject,
            content=content,
            recipients=normalize_recipients(recipients) if recipients is not None else None,
            interval_amount=interval_amount,
            interval_unit=interval_unit,
            **changes,
        )
        if message is None:
            raise MessageNotFoundError()
        return await self.scheduler.on_update(message) or message

    async def delete_message(self, email: str, message_id: int) -> None:
        owner = await self._owner(email)
        await self._owned_message(owner, message_id)
        if not await self.scheduler.on_delete(message_id):
            raise MessageNotFoundError()

    async def check_in(self, token: str) -> Optional[str]:
        return await self.scheduler.on_check_in(token)
