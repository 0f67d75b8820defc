from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from soloflow.models.billing import SubscriptionStatus

HealthStatus = Literal["ACTIVE", "EXPIRED", "TRIAL", "CANCELLED", "UNKNOWN"]


class SubscriptionSummaryRead(BaseModel):
    user_id: UUID
    freelancer_name: str
    currency: str
    status: SubscriptionStatus
    cancel_at_period_end: bool
    period_end: datetime | None
    days_remaining: int | None
    subscription_summary: str
    health_status: HealthStatus
    last_updated: datetime | None


class SubscriptionCounts(BaseModel):
    total_users: int
    active_pro: int
    trial_users: int
    cancelled_users: int
    expired_users: int
    cancelling_soon: int


class SubscriptionOverview(BaseModel):
    summary: SubscriptionCounts
    subscriptions: list[SubscriptionSummaryRead]


class ExtendTrialRequest(BaseModel):
    days: int = Field(default=30, ge=1, le=365)


class AdminActionResponse(BaseModel):
    success: bool = True
    message: str
    period_end: datetime | None = None
