from __future__ import annotations

from uuid import UUID

from sqlalchemy import JSON, Index
from sqlmodel import Field

from soloflow.models.base import TimestampedModel, UUIDModel


class AuditLog(UUIDModel, TimestampedModel, table=True):
    """Billing and admin actions. ``actor_id`` is empty for webhook and scheduler writes."""

    __tablename__ = "audit_logs"
    __table_args__ = (Index("ix_audit_logs_subject_created", "subject_user_id", "created_at"),)

    event_type: str = Field(max_length=64, index=True)
    actor_id: UUID | None = Field(default=None, foreign_key="users.id")
    subject_user_id: UUID | None = Field(default=None, foreign_key="users.id")
    details: dict | None = Field(default_factory=dict, sa_type=JSON)


class AuthLog(UUIDModel, TimestampedModel, table=True):
    """Register and login attempts; failed logins carry no ``user_id``."""

    __tablename__ = "auth_logs"

    user_id: UUID | None = Field(default=None, foreign_key="users.id", index=True)
    event_type: str = Field(max_length=32)
    success: bool = Field(default=True, index=True)
    ip_address: str | None = Field(default=None, max_length=64)
    user_agent: str | None = Field(default=None)
