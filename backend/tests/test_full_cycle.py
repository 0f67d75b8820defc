from datetime import datetime, timedelta

import pytest
from sqlmodel import select

from soloflow.models.billing import Plan, SubscriptionStatus
from soloflow.models.notification import UserNotification
from soloflow.services.maintenance import run_subscription_maintenance
from soloflow.services.plans import limits_for
from soloflow.services.subscription import (
    NotScheduledForCancellationError,
    SubscriptionService,
    effective_status,
)

T = datetime(2026, 3, 1, 9, 30, 0)


@pytest.fixture()
def cycle(db_session, make_user, channel):
    user = make_user()
    changes: list[dict] = []
    channel.subscribe(user.id, changes.append)
    return user, SubscriptionService(db_session, channel=channel), changes


def test_pro_cancel_and_lapse_on_read(cycle, db_session):
    user, service, changes = cycle

    service.activate(user.id, now=T)
    record, plan = service.current(user.id, now=T)
    assert plan == Plan.PRO
    assert record.period_end is None

    cancelled = service.cancel(user.id, "too_expensive", "  Going back to spreadsheets ", now=T + timedelta(days=10))
    assert cancelled.period_end == T + timedelta(days=40)
    assert cancelled.cancellation_feedback == "Going back to spreadsheets"
    assert effective_status(cancelled) == SubscriptionStatus.PENDING_CANCELLATION

    again = service.cancel(user.id, "other", now=T + timedelta(days=15))
    assert again.period_end == T + timedelta(days=40)
    assert again.cancellation_reason == "too_expensive"

    _, plan = service.current(user.id, now=T + timedelta(days=39))
    assert plan == Plan.PRO

    record, plan = service.current(user.id, now=T + timedelta(days=41))
    assert plan == Plan.TRIAL
    assert record.status == SubscriptionStatus.CANCELLED
    assert record.cancel_at_period_end is False
    assert record.period_end == T + timedelta(days=40)
    assert limits_for(plan).max_clients == 3

    with pytest.raises(NotScheduledForCancellationError):
        service.reactivate(user.id, now=T + timedelta(days=41))

    assert [change["event"] for change in changes] == ["INSERT", "UPDATE", "UPDATE", "UPDATE"]
    assert changes[-1]["new"]["status"] == "cancelled"

    events = db_session.exec(
        select(UserNotification.event_type)
        .where(UserNotification.recipient_id == user.id)
        .order_by(UserNotification.created_at)
    ).all()
    assert sorted(events) == sorted(
        ["subscription_activated", "subscription_cancellation_scheduled", "subscription_ended"]
    )


def test_batch_job_and_lazy_read_agree(cycle, db_session):
    user, service, changes = cycle
    service.activate(user.id, now=T)
    service.cancel(user.id, "temporary_break", now=T + timedelta(days=1))

    report = run_subscription_maintenance(db_session, now=T + timedelta(days=32), service=service)
    assert report.processed == 1
    writes = len(changes)

    record, plan = service.current(user.id, now=T + timedelta(days=33))

    assert plan == Plan.TRIAL
    assert record.status == SubscriptionStatus.CANCELLED
    assert record.period_end == T + timedelta(days=31)
    assert len(changes) == writes

    second = run_subscription_maintenance(db_session, now=T + timedelta(days=34), service=service)
    assert second.total == 0


def test_reactivate_before_period_end_restores_pro(cycle):
    user, service, _ = cycle
    service.activate(user.id, now=T)
    service.cancel(user.id, "other", now=T + timedelta(days=5))

    record = service.reactivate(user.id, now=T + timedelta(days=20))

    assert record.status == SubscriptionStatus.ACTIVE
    assert record.cancel_at_period_end is False
    assert record.cancellation_reason is None
    _, plan = service.current(user.id, now=T + timedelta(days=60))
    assert plan == Plan.PRO


def test_cancel_reactivate_recancel_then_batch_job(cycle, db_session):
    user, service, _ = cycle
    service.activate(user.id, now=T - timedelta(days=1))

    first = service.cancel(user.id, "too_expensive", now=T)
    assert first.period_end == T + timedelta(days=30)

    service.reactivate(user.id, now=T + timedelta(days=10))
    second = service.cancel(user.id, "other", now=T + timedelta(days=10))
    assert second.cancel_at_period_end is True
    assert second.period_end == T + timedelta(days=40)
    assert second.cancellation_reason == "other"

    still_pro = run_subscription_maintenance(db_session, now=T + timedelta(days=31), service=service)
    assert still_pro.total == 0

    report = run_subscription_maintenance(db_session, now=T + timedelta(days=41), service=service)
    assert (report.processed, report.total) == (1, 1)

    record = service.get(user.id)
    assert record.status == SubscriptionStatus.CANCELLED
    assert record.cancel_at_period_end is False
    assert service.derive_plan(record, now=T + timedelta(days=41)) == Plan.TRIAL
    assert limits_for(Plan.TRIAL).max_clients == 3
