"""Subscription store access and the lifecycle state machine.

One ``Subscription`` row exists per user. Every write goes through
``SubscriptionService._apply`` so that the derived notifications are stored
in the same transaction and the change is published on the realtime channel
after commit.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from soloflow.core.config import settings
from soloflow.core.logging_setup import logger
from soloflow.models.base import utcnow
from soloflow.models.billing import CancellationReason, Plan, Subscription, SubscriptionStatus
from soloflow.schemas.billing import SubscriptionChange, SubscriptionSnapshot
from soloflow.services.realtime import SubscriptionChannel, subscription_channel
from soloflow.services.subscription_notifications import build_notifications


class SubscriptionError(ValueError):
    """Base class for lifecycle precondition failures."""


class SubscriptionValidationError(SubscriptionError):
    pass


class NotScheduledForCancellationError(SubscriptionError):
    def __init__(self) -> None:
        super().__init__("Subscription is not scheduled for cancellation")


class CancellationPeriodEndedError(SubscriptionError):
    def __init__(self) -> None:
        super().__init__("Subscription period has already ended. Please create a new subscription.")


def is_cancellation_due(record: Subscription | SubscriptionSnapshot, now: datetime) -> bool:
    """Expiry predicate shared by the lazy read path and the maintenance job."""
    return bool(record.cancel_at_period_end and record.period_end is not None and record.period_end <= now)


def plan_for_status(status: SubscriptionStatus) -> Plan:
    if status == SubscriptionStatus.ACTIVE:
        return Plan.PRO
    if status == SubscriptionStatus.PENDING_CANCELLATION:
        return Plan.PRO
    if status == SubscriptionStatus.TRIAL:
        return Plan.TRIAL
    if status == SubscriptionStatus.CANCELLED:
        return Plan.TRIAL
    if status == SubscriptionStatus.PAST_DUE:
        return Plan.TRIAL
    raise ValueError(f"Unhandled subscription status: {status!r}")


def effective_status(record: Subscription | SubscriptionSnapshot) -> SubscriptionStatus:
    """Status as shown to users: an active row scheduled for cancellation reads as pending."""
    if record.status == SubscriptionStatus.ACTIVE and record.cancel_at_period_end:
        return SubscriptionStatus.PENDING_CANCELLATION
    return SubscriptionStatus(record.status)


def snapshot_of(record: Subscription) -> SubscriptionSnapshot:
    return SubscriptionSnapshot.model_validate(record)


class SubscriptionService:
    def __init__(self, session: Session, channel: SubscriptionChannel | None = None) -> None:
        self.session = session
        self.channel = channel or subscription_channel

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get(self, user_id: UUID) -> Subscription | None:
        return self.session.exec(select(Subscription).where(Subscription.user_id == user_id)).first()

    def fetch(self, user_id: UUID) -> Subscription:
        """Return the user's record, creating a trial record when none exists."""
        record = self.get(user_id)
        if record:
            return record

        record = Subscription(user_id=user_id, status=SubscriptionStatus.TRIAL, updated_at=utcnow())
        self.session.add(record)
        try:
            self.session.commit()
        except IntegrityError:
            # Another request created it first.
            self.session.rollback()
            existing = self.get(user_id)
            if existing is None:
                raise
            return existing
        self.session.refresh(record)
        logger.info("Created trial subscription for user %s", user_id)
        self._publish("INSERT", None, record)
        return record

    def list_due(self, now: datetime) -> list[Subscription]:
        return list(
            self.session.exec(
                select(Subscription)
                .where(Subscription.cancel_at_period_end.is_(True))
                .where(Subscription.period_end.is_not(None))
                .where(Subscription.period_end <= now)
                .order_by(Subscription.period_end)
            ).all()
        )

    def list_lapsed(self, now: datetime) -> list[Subscription]:
        """Active rows whose paid period is over, whether or not a cancellation was scheduled."""
        return list(
            self.session.exec(
                select(Subscription)
                .where(Subscription.status == SubscriptionStatus.ACTIVE)
                .where(Subscription.period_end.is_not(None))
                .where(Subscription.period_end <= now)
                .order_by(Subscription.period_end)
            ).all()
        )

    def derive_plan(self, record: Subscription, now: datetime | None = None) -> Plan:
        """Plan the record grants right now, reconciling a stale cancellation first."""
        now = now or utcnow()
        if is_cancellation_due(record, now):
            logger.info("Cancellation period elapsed for user %s; reconciling on read", record.user_id)
            self.mark_cancelled(record, now)
            return Plan.TRIAL
        return plan_for_status(SubscriptionStatus(record.status))

    def current(self, user_id: UUID, now: datetime | None = None) -> tuple[Subscription, Plan]:
        record = self.fetch(user_id)
        plan = self.derive_plan(record, now)
        return record, plan

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def mark_cancelled(self, record: Subscription, now: datetime | None = None) -> Subscription:
        """Terminal transition once the paid period is over. ``period_end`` is kept as history."""
        return self._apply(
            record,
            {"status": SubscriptionStatus.CANCELLED, "cancel_at_period_end": False},
            now or utcnow(),
        )

    def cancel(
        self,
        user_id: UUID,
        reason: CancellationReason | str,
        feedback: str | None = None,
        now: datetime | None = None,
    ) -> Subscription:
        now = now or utcnow()
        record = self.fetch(user_id)
        self.derive_plan(record, now)

        if record.cancel_at_period_end:
            return record

        status = SubscriptionStatus(record.status)
        if status not in {SubscriptionStatus.ACTIVE, SubscriptionStatus.PENDING_CANCELLATION}:
            raise SubscriptionValidationError("No active subscription to cancel")

        reason_value = CancellationReason(reason).value
        period_end = now + timedelta(days=settings.cancellation_period_days)
        updated = self._apply(
            record,
            {
                "cancel_at_period_end": True,
                "period_end": period_end,
                "cancellation_reason": reason_value,
                "cancellation_feedback": (feedback or "").strip() or None,
            },
            now,
        )
        logger.info("Cancellation scheduled for user %s at %s (reason=%s)", user_id, period_end, reason_value)
        return updated

    def reactivate(self, user_id: UUID, now: datetime | None = None) -> Subscription:
        now = now or utcnow()
        record = self.fetch(user_id)

        if not record.cancel_at_period_end:
            raise NotScheduledForCancellationError()
        if record.period_end is None or record.period_end <= now:
            raise CancellationPeriodEndedError()

        updated = self._apply(
            record,
            {
                "status": SubscriptionStatus.ACTIVE,
                "cancel_at_period_end": False,
                "cancellation_reason": None,
                "cancellation_feedback": None,
            },
            now,
        )
        logger.info("Subscription reactivated for user %s", user_id)
        return updated

    def activate(
        self,
        user_id: UUID,
        *,
        period_end: datetime | None = None,
        external_subscription_id: str | None = None,
        now: datetime | None = None,
    ) -> Subscription:
        record = self.fetch(user_id)
        changes: dict[str, Any] = {
            "status": SubscriptionStatus.ACTIVE,
            "cancel_at_period_end": False,
            "period_end": period_end,
            "cancellation_reason": None,
            "cancellation_feedback": None,
        }
        if external_subscription_id:
            changes["external_subscription_id"] = external_subscription_id
        updated = self._apply(record, changes, now or utcnow())
        logger.info("Subscription activated for user %s (period_end=%s)", user_id, period_end)
        return updated

    def end(self, user_id: UUID, now: datetime | None = None) -> Subscription:
        """Gateway-side cancellation or expiry."""
        record = self.fetch(user_id)
        updated = self.mark_cancelled(record, now)
        logger.info("Subscription ended for user %s", user_id)
        return updated

    def set_period_end(self, user_id: UUID, period_end: datetime, now: datetime | None = None) -> Subscription:
        record = self.fetch(user_id)
        return self._apply(record, {"period_end": period_end}, now or utcnow())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _apply(self, record: Subscription, changes: dict[str, Any], now: datetime) -> Subscription:
        old = snapshot_of(record)
        for field, value in changes.items():
            setattr(record, field, value)
        record.updated_at = now
        new = snapshot_of(record)

        self.session.add(record)
        for notification in build_notifications(old, new):
            self.session.add(notification)
        self.session.commit()
        self.session.refresh(record)

        self._publish("UPDATE", old, record)
        return record

    def _publish(self, event: str, old: SubscriptionSnapshot | None, record: Subscription) -> None:
        change = SubscriptionChange(event=event, user_id=record.user_id, old=old, new=snapshot_of(record))
        self.channel.publish(change)
