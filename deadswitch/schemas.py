from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from deadswitch.models.models import IntervalUnit
from deadswitch.utils.formatting import format_time_ago
from deadswitch.utils.tokens import normalize_recipients, split_recipients


def _clean_recipients(value: Optional[List[str]]) -> Optional[List[str]]:
    if value is None:
        return None
    cleaned = normalize_recipients(value)
    if not cleaned:
        raise ValueError("at least one recipient is required")
    return cleaned


# ---------------------------------------------------------------------------
# Message Schemas
# ---------------------------------------------------------------------------
class MessageCreate(BaseModel):
    recipients: List[str] = Field(..., description="Addresses the content is released to")
    subject: str = Field(..., min_length=1, max_length=300, description="Subject of the content message")
    content: str = Field(..., description="HTML body released when the owner stops checking in")
    interval_amount: int = Field(..., gt=0, description="How many units between check-in prompts")
    interval_unit: IntervalUnit = Field(IntervalUnit.days, description="Unit of the prompt interval")
    active: bool = Field(True, description="Whether reminders run for this message")

    @field_validator("recipients")
    @classmethod
    def clean_recipients(cls, value):
        return _clean_recipients(value)


class MessageUpdate(BaseModel):
    recipients: Optional[List[str]] = Field(None, description="Replacement recipient list")
    subject: Optional[str] = Field(None, min_length=1, max_length=300, description="Updated subject")
    content: Optional[str] = Field(None, description="Updated HTML body")
    interval_amount: Optional[int] = Field(None, gt=0, description="Updated prompt interval amount")
    interval_unit: Optional[IntervalUnit] = Field(None, description="Updated prompt interval unit")
    active: Optional[bool] = Field(None, description="Enable or disable the message")

    @field_validator("recipients")
    @classmethod
    def clean_recipients(cls, value):
        return _clean_recipients(value)


class MessageOut(BaseModel):
    id: int = Field(..., description="Unique identifier for the message")
    recipients: List[str] = Field(..., description="Addresses the content is released to")
    subject: str
    content: str
    interval_amount: int
    interval_unit: IntervalUnit
    active: bool = Field(..., description="False once disabled by the owner or after the content was sent")
    last_check_in: Optional[datetime] = None
    last_check_in_ago: str = Field("none", description="Human readable time since the last check-in")
    last_reminder_sent: Optional[datetime] = None
    next_reminder_due: datetime
    created_at: datetime
    disabled_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @classmethod
    def from_message(cls, message) -> "MessageOut":
        return cls(
            id=message.id,
            recipients=split_recipients(message.recipients),
            subject=message.subject,
            content=message.content,
            interval_amount=message.interval_amount,
            interval_unit=message.interval_unit,
            active=message.is_active,
            last_check_in=message.last_check_in,
            last_check_in_ago=format_time_ago(message.last_check_in),
            last_reminder_sent=message.last_reminder_sent,
            next_reminder_due=message.next_reminder_due,
            created_at=message.created_at,
            disabled_at=message.disabled_at,
        )


class ConfirmationOut(BaseModel):
    next_check_in: str = Field(..., description="When the next check-in prompt is due")
