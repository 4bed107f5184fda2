from __future__ import annotations

import enum
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IntervalUnit(str, enum.Enum):
    days = "days"
    hours = "hours"
    minutes = "minutes"


def interval_delta(amount: int, unit: str) -> timedelta:
    unit = IntervalUnit(unit)
    if unit is IntervalUnit.days:
        return timedelta(days=amount)
    if unit is IntervalUnit.hours:
        return timedelta(hours=amount)
    return timedelta(minutes=amount)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True)
    last_check_in: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, onupdate=_utcnow)


class Message(Base):
    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    owner_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True)
    recipients: Mapped[str] = mapped_column(String(3000))
    subject: Mapped[str] = mapped_column(String(300))
    content: Mapped[str] = mapped_column(Text)
    interval_amount: Mapped[int] = mapped_column(Integer)
    interval_unit: Mapped[str] = mapped_column(String(16), default=IntervalUnit.days.value)
    last_check_in: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_reminder_sent: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    next_reminder_due: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    reminder_token: Mapped[str] = mapped_column(String(36), unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    disabled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)

    @property
    def is_active(self) -> bool:
        return self.disabled_at is None

    @property
    def interval(self) -> timedelta:
        return interval_delta(self.interval_amount, self.interval_unit)
