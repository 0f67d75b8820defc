from __future__ import annotations

import math
from datetime import datetime, timedelta
from uuid import UUID

from sqlmodel import Session, select

from soloflow.core.config import settings
from soloflow.core.logging_setup import logger
from soloflow.models.base import utcnow
from soloflow.models.billing import Subscription, SubscriptionStatus
from soloflow.models.user import User
from soloflow.schemas.admin import HealthStatus, SubscriptionCounts, SubscriptionOverview, SubscriptionSummaryRead
from soloflow.services.audit import AuditService
from soloflow.services.maintenance import MaintenanceReport, run_subscription_maintenance
from soloflow.services.subscription import SubscriptionService

HEALTH_ORDER: dict[str, int] = {"ACTIVE": 1, "EXPIRED": 2, "TRIAL": 3, "CANCELLED": 4}


def health_status(record: Subscription, now: datetime) -> HealthStatus:
    status = SubscriptionStatus(record.status)
    if status == SubscriptionStatus.ACTIVE:
        if record.period_end is not None and record.period_end <= now:
            return "EXPIRED"
        return "ACTIVE"
    if status == SubscriptionStatus.TRIAL:
        return "TRIAL"
    if status == SubscriptionStatus.CANCELLED:
        return "CANCELLED"
    return "UNKNOWN"


def days_remaining(period_end: datetime | None, now: datetime) -> int | None:
    if period_end is None:
        return None
    return math.ceil((period_end - now).total_seconds() / 86400)


def subscription_summary(record: Subscription) -> str:
    status = SubscriptionStatus(record.status)
    if status == SubscriptionStatus.ACTIVE and not record.cancel_at_period_end:
        price = settings.pro_plan_amount_paise // 100
        return f"Active Pro - ₹{price}/month"
    if status == SubscriptionStatus.ACTIVE and record.period_end is not None:
        return f"Cancelling on {record.period_end.date().isoformat()}"
    if status == SubscriptionStatus.TRIAL:
        return "Free Trial"
    if status == SubscriptionStatus.CANCELLED:
        return "Cancelled"
    return status.value


class SubscriptionAdminService:
    def __init__(self, session: Session, subscriptions: SubscriptionService | None = None) -> None:
        self.session = session
        self.subscriptions = subscriptions or SubscriptionService(session)
        self.audit = AuditService(session)

    def overview(self, now: datetime | None = None) -> SubscriptionOverview:
        now = now or utcnow()
        rows = self.session.exec(
            select(Subscription, User)
            .join(User, User.id == Subscription.user_id)
            .order_by(Subscription.updated_at.desc())
        ).all()

        items: list[SubscriptionSummaryRead] = []
        for record, user in rows:
            items.append(
                SubscriptionSummaryRead(
                    user_id=record.user_id,
                    freelancer_name=user.full_name,
                    currency=user.currency or "INR",
                    status=record.status,
                    cancel_at_period_end=record.cancel_at_period_end,
                    period_end=record.period_end,
                    days_remaining=days_remaining(record.period_end, now),
                    subscription_summary=subscription_summary(record),
                    health_status=health_status(record, now),
                    last_updated=record.updated_at,
                )
            )

        # Stable sort keeps most-recently-updated first within a group.
        items.sort(key=lambda item: HEALTH_ORDER.get(item.health_status, 5))
        counts = SubscriptionCounts(
            total_users=len(items),
            active_pro=sum(1 for item in items if item.health_status == "ACTIVE"),
            trial_users=sum(1 for item in items if item.health_status == "TRIAL"),
            cancelled_users=sum(1 for item in items if item.health_status == "CANCELLED"),
            expired_users=sum(1 for item in items if item.health_status == "EXPIRED"),
            cancelling_soon=sum(
                1 for item in items if item.cancel_at_period_end and item.health_status == "ACTIVE"
            ),
        )
        return SubscriptionOverview(summary=counts, subscriptions=items)

    def fix_expired(self, actor_id: UUID | None = None, now: datetime | None = None) -> MaintenanceReport:
        report = run_subscription_maintenance(
            self.session, now=now, service=self.subscriptions, include_lapsed=True
        )
        self.audit.record_event(
            "admin.subscriptions_fixed",
            actor_id=actor_id,
            details={"processed": report.processed, "total": report.total},
        )
        return report

    def extend_trial(self, user_id: UUID, days: int, actor_id: UUID | None = None, now: datetime | None = None) -> Subscription:
        if days < 1:
            raise ValueError("days must be at least 1")
        self._require_user(user_id)
        now = now or utcnow()
        record = self.subscriptions.set_period_end(user_id, now + timedelta(days=days), now=now)
        logger.info("Admin %s extended period for user %s by %s days", actor_id, user_id, days)
        self.audit.record_event(
            "admin.trial_extended",
            actor_id=actor_id,
            subject_user_id=user_id,
            details={"days": days, "period_end": record.period_end.isoformat() if record.period_end else None},
        )
        return record

    def activate_pro(self, user_id: UUID, actor_id: UUID | None = None, now: datetime | None = None) -> Subscription:
        self._require_user(user_id)
        now = now or utcnow()
        record = self.subscriptions.activate(
            user_id,
            period_end=now + timedelta(days=settings.admin_activation_days),
            now=now,
        )
        logger.info("Admin %s activated Pro for user %s", actor_id, user_id)
        self.audit.record_event(
            "admin.pro_activated",
            actor_id=actor_id,
            subject_user_id=user_id,
            details={"period_end": record.period_end.isoformat() if record.period_end else None},
        )
        return record

    def _require_user(self, user_id: UUID) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise ValueError("User not found")
        return user
