from __future__ import annotations

from soloflow.models.billing import SubscriptionStatus
from soloflow.models.notification import UserNotification
from soloflow.schemas.billing import SubscriptionSnapshot

SUBSCRIPTION_ACTIVATED = "subscription_activated"
SUBSCRIPTION_CANCELLATION_SCHEDULED = "subscription_cancellation_scheduled"
SUBSCRIPTION_REACTIVATED = "subscription_reactivated"
SUBSCRIPTION_ENDED = "subscription_ended"


def _is_scheduled(snapshot: SubscriptionSnapshot | None) -> bool:
    if snapshot is None:
        return False
    if snapshot.status == SubscriptionStatus.PENDING_CANCELLATION:
        return True
    return snapshot.status == SubscriptionStatus.ACTIVE and snapshot.cancel_at_period_end


def transition_events(old: SubscriptionSnapshot | None, new: SubscriptionSnapshot) -> list[str]:
    """Names of the user-facing events implied by moving from ``old`` to ``new``."""
    old_status = old.status if old else None
    events: list[str] = []

    if old_status != SubscriptionStatus.ACTIVE and new.status == SubscriptionStatus.ACTIVE and not _is_scheduled(old):
        events.append(SUBSCRIPTION_ACTIVATED)

    if not _is_scheduled(old) and _is_scheduled(new):
        events.append(SUBSCRIPTION_CANCELLATION_SCHEDULED)

    if _is_scheduled(old) and not _is_scheduled(new) and new.status == SubscriptionStatus.ACTIVE:
        events.append(SUBSCRIPTION_REACTIVATED)

    if old_status in {SubscriptionStatus.ACTIVE, SubscriptionStatus.PENDING_CANCELLATION} and (
        new.status == SubscriptionStatus.CANCELLED
    ):
        events.append(SUBSCRIPTION_ENDED)

    return events


def build_notifications(old: SubscriptionSnapshot | None, new: SubscriptionSnapshot) -> list[UserNotification]:
    notifications = []
    for event_type in transition_events(old, new):
        payload: dict[str, str | None] = {"status": new.status.value}
        if event_type == SUBSCRIPTION_CANCELLATION_SCHEDULED:
            payload["period_end"] = new.period_end.isoformat() if new.period_end else None
            payload["reason"] = new.cancellation_reason
        notifications.append(UserNotification(recipient_id=new.user_id, event_type=event_type, payload=payload))
    return notifications
