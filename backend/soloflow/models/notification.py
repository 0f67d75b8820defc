from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, Index
from sqlmodel import Field

from soloflow.models.base import NaiveDateTime, TimestampedModel, UUIDModel


class UserNotification(UUIDModel, TimestampedModel, table=True):
    """In-app message derived from a subscription transition (see ``subscription_notifications``)."""

    __tablename__ = "user_notifications"
    __table_args__ = (Index("ix_user_notifications_recipient_unread", "recipient_id", "read_at"),)

    recipient_id: UUID = Field(foreign_key="users.id", index=True)
    event_type: str = Field(max_length=64, index=True)
    payload: dict | None = Field(default=None, sa_type=JSON)
    read_at: datetime | None = Field(default=None, sa_type=NaiveDateTime)

    @property
    def is_read(self) -> bool:
        return self.read_at is not None
