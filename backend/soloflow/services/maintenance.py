from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlmodel import Session

from soloflow.core.logging_setup import logger
from soloflow.models.base import utcnow
from soloflow.services.subscription import SubscriptionService

# Closes out subscriptions whose scheduled cancellation period has elapsed.


@dataclass
class MaintenanceRecordResult:
    user_id: UUID
    subscription_id: UUID
    success: bool
    error: str | None = None


@dataclass
class MaintenanceReport:
    success: bool
    message: str
    processed: int
    total: int
    results: list[MaintenanceRecordResult] = field(default_factory=list)


def run_subscription_maintenance(
    session: Session,
    now: datetime | None = None,
    service: SubscriptionService | None = None,
    *,
    include_lapsed: bool = False,
) -> MaintenanceReport:
    """Close out due cancellations. With ``include_lapsed`` also end active rows past ``period_end``."""
    now = now or utcnow()
    service = service or SubscriptionService(session)
    due = service.list_due(now)
    if include_lapsed:
        seen = {record.id for record in due}
        due += [record for record in service.list_lapsed(now) if record.id not in seen]

    if not due:
        logger.info("Subscription maintenance: nothing to reconcile")
        return MaintenanceReport(success=True, message="No subscriptions to process", processed=0, total=0)

    # Read identifiers up front; a rollback expires the loaded rows.
    targets = [(record, record.id, record.user_id) for record in due]
    results: list[MaintenanceRecordResult] = []
    processed = 0
    for record, subscription_id, user_id in targets:
        try:
            service.mark_cancelled(record, now)
        except Exception as exc:  # noqa: BLE001
            session.rollback()
            logger.exception("Subscription maintenance failed for user %s", user_id)
            results.append(
                MaintenanceRecordResult(
                    user_id=user_id, subscription_id=subscription_id, success=False, error=str(exc)
                )
            )
            continue
        processed += 1
        results.append(MaintenanceRecordResult(user_id=user_id, subscription_id=subscription_id, success=True))

    total = len(targets)
    message = f"Processed {processed} of {total} expired subscriptions"
    logger.info("Subscription maintenance: %s", message)
    return MaintenanceReport(success=True, message=message, processed=processed, total=total, results=results)
