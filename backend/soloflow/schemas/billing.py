from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from soloflow.models.billing import CancellationReason, LimitFeature, Plan, SubscriptionStatus
from soloflow.schemas.common import IDModel, Timestamped


class PlanLimitsRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    max_clients: int
    max_projects: int
    max_invoices_per_month: int
    can_export_pdf: bool
    has_advanced_features: bool


class PlanRead(BaseModel):
    plan: Plan
    limits: PlanLimitsRead
    price_paise: int
    currency: str


class SubscriptionRead(IDModel, Timestamped):
    user_id: UUID
    status: SubscriptionStatus
    effective_status: SubscriptionStatus
    plan: Plan
    cancel_at_period_end: bool
    period_end: datetime | None
    cancellation_reason: str | None = None
    external_subscription_id: str | None = None
    limits: PlanLimitsRead


class LimitCheckRead(BaseModel):
    plan: Plan
    feature: LimitFeature
    current_count: int | None = None
    allowed: bool
    message: str | None = None


class CheckoutRequest(BaseModel):
    plan_id: str = "pro"


class CheckoutResponse(BaseModel):
    subscription_id: str
    short_url: str
    status: str


class CheckoutWaitResponse(BaseModel):
    outcome: Literal["activated", "timed_out", "cancelled"]
    attempts: int
    status: SubscriptionStatus
    message: str | None = None


class CancelRequest(BaseModel):
    reason: CancellationReason
    feedback: str | None = Field(default=None, max_length=2000)


class MaintenanceRecordResult(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: UUID
    subscription_id: UUID
    success: bool
    error: str | None = None


class MaintenanceReportRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    success: bool
    message: str
    processed: int
    total: int
    results: list[MaintenanceRecordResult] = []


# ---------------------------------------------------------------------------
# Realtime payloads
# ---------------------------------------------------------------------------
class SubscriptionSnapshot(BaseModel):
    """Wire shape of one subscription row as carried on the realtime channel."""

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    user_id: UUID
    status: SubscriptionStatus
    cancel_at_period_end: bool = False
    period_end: datetime | None = None
    cancellation_reason: str | None = None
    external_subscription_id: str | None = None
    updated_at: datetime | None = None

    @model_validator(mode="after")
    def _scheduled_needs_period_end(self) -> "SubscriptionSnapshot":
        if self.cancel_at_period_end and self.period_end is None:
            raise ValueError("cancel_at_period_end requires period_end")
        return self


class SubscriptionChange(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event: Literal["INSERT", "UPDATE"]
    user_id: UUID
    old: SubscriptionSnapshot | None = None
    new: SubscriptionSnapshot

    @model_validator(mode="after")
    def _same_user(self) -> "SubscriptionChange":
        if self.new.user_id != self.user_id:
            raise ValueError("change payload belongs to a different user")
        if self.old is not None and self.old.user_id != self.user_id:
            raise ValueError("change payload belongs to a different user")
        return self


class ContextSnapshot(BaseModel):
    """What a client session currently knows about its subscription."""

    model_config = ConfigDict(frozen=True)

    plan: Plan = Plan.TRIAL
    status: SubscriptionStatus = SubscriptionStatus.TRIAL
    cancel_at_period_end: bool = False
    period_end: datetime | None = None
    limits: PlanLimitsRead
    loading: bool = False


# ---------------------------------------------------------------------------
# Razorpay webhook payloads
# ---------------------------------------------------------------------------
class RazorpayEntity(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    status: str | None = None
    subscription_id: str | None = None
    current_end: int | None = None
    notes: dict[str, Any] = {}

    @field_validator("notes", mode="before")
    @classmethod
    def _empty_notes(cls, value: Any) -> Any:
        # Razorpay serializes empty notes as an empty list.
        if value is None or value == []:
            return {}
        return value


class RazorpayEntityWrapper(BaseModel):
    model_config = ConfigDict(extra="allow")

    entity: RazorpayEntity


class RazorpayWebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    subscription: RazorpayEntityWrapper | None = None
    payment: RazorpayEntityWrapper | None = None


class RazorpayWebhookEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    event: str
    payload: RazorpayWebhookPayload = RazorpayWebhookPayload()
