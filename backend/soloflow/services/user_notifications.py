from __future__ import annotations

from uuid import UUID

from sqlalchemy import update
from sqlmodel import Session, func, select

from soloflow.core.logging_setup import logger
from soloflow.models.base import utcnow
from soloflow.models.notification import UserNotification


def _for_recipient(recipient_id: UUID, *, unread: bool = False):
    conditions = [UserNotification.recipient_id == recipient_id]
    if unread:
        conditions.append(UserNotification.read_at.is_(None))
    return conditions


class UserNotificationService:
    """Inbox queries over ``user_notifications``; rows are written by ``SubscriptionService``."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def unread_count(self, recipient_id: UUID) -> int:
        count = self.session.exec(
            select(func.count()).select_from(UserNotification).where(*_for_recipient(recipient_id, unread=True))
        ).one()
        return int(count or 0)

    def list_notifications(
        self,
        *,
        recipient_id: UUID,
        limit: int = 20,
        offset: int = 0,
        only_unread: bool = False,
    ) -> tuple[list[UserNotification], int]:
        items = self.session.exec(
            select(UserNotification)
            .where(*_for_recipient(recipient_id, unread=only_unread))
            .order_by(UserNotification.created_at.desc(), UserNotification.id)
            .offset(offset)
            .limit(limit)
        ).all()
        return list(items), self.unread_count(recipient_id)

    def mark_as_read(self, *, recipient_id: UUID, notification_id: UUID) -> UserNotification:
        notification = self.session.get(UserNotification, notification_id)
        if notification is None or notification.recipient_id != recipient_id:
            raise ValueError("Notification not found")
        if notification.is_read:
            return notification

        notification.read_at = utcnow()
        self.session.add(notification)
        self.session.commit()
        self.session.refresh(notification)
        return notification

    def mark_all_as_read(self, *, recipient_id: UUID) -> int:
        result = self.session.exec(
            update(UserNotification)
            .where(*_for_recipient(recipient_id, unread=True))
            .values(read_at=utcnow())
        )
        self.session.commit()
        updated = int(result.rowcount or 0)
        if updated:
            logger.info("Marked %s notification(s) read for user %s", updated, recipient_id)
        return updated
