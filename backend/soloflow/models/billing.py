from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlmodel import Field

from soloflow.models.base import NaiveDateTime, TimestampedModel, UUIDModel


class SubscriptionStatus(str, Enum):
    TRIAL = "trial"
    ACTIVE = "active"
    PENDING_CANCELLATION = "pending_cancellation"
    CANCELLED = "cancelled"
    # Present in the schema; nothing transitions into or out of it yet.
    PAST_DUE = "past_due"


class CancellationReason(str, Enum):
    TOO_EXPENSIVE = "too_expensive"
    NOT_USING_ENOUGH = "not_using_enough"
    MISSING_FEATURES = "missing_features"
    SWITCHING_SERVICE = "switching_service"
    TEMPORARY_BREAK = "temporary_break"
    OTHER = "other"


class Plan(str, Enum):
    TRIAL = "trial"
    PRO = "pro"


class LimitFeature(str, Enum):
    MAX_CLIENTS = "max_clients"
    MAX_PROJECTS = "max_projects"
    MAX_INVOICES_PER_MONTH = "max_invoices_per_month"
    CAN_EXPORT_PDF = "can_export_pdf"
    HAS_ADVANCED_FEATURES = "has_advanced_features"


class Subscription(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "user_subscriptions"

    user_id: UUID = Field(foreign_key="users.id", index=True, unique=True)
    status: SubscriptionStatus = Field(default=SubscriptionStatus.TRIAL)
    cancel_at_period_end: bool = Field(default=False)
    period_end: datetime | None = Field(default=None, sa_type=NaiveDateTime)
    cancellation_reason: str | None = Field(default=None, max_length=64)
    cancellation_feedback: str | None = Field(default=None)
    external_subscription_id: str | None = Field(default=None, index=True)
