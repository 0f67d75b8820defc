from typing import Optional
from uuid import UUID

from sqlalchemy import func
from sqlmodel import Session, select

from soloflow.models.audit import AuditLog, AuthLog


class AuditService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def record_auth(
        self,
        user_id: UUID | None,
        event_type: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
        success: bool = True,
    ) -> None:
        log = AuthLog(
            user_id=user_id,
            event_type=event_type,
            ip_address=ip_address,
            user_agent=user_agent,
            success=success,
        )
        self.session.add(log)
        self.session.commit()

    def record_event(
        self,
        event_type: str,
        actor_id: UUID | None = None,
        subject_user_id: UUID | None = None,
        details: dict | None = None,
    ) -> None:
        log = AuditLog(
            event_type=event_type,
            actor_id=actor_id,
            subject_user_id=subject_user_id,
            details=details or {},
        )
        self.session.add(log)
        self.session.commit()

    def list_events(
        self,
        subject_user_id: UUID | None = None,
        event_type: Optional[str] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[AuditLog], int]:
        query = select(AuditLog)
        if subject_user_id:
            query = query.where(AuditLog.subject_user_id == subject_user_id)
        if event_type:
            query = query.where(AuditLog.event_type == event_type)

        total = self.session.exec(
            select(func.count()).select_from(query.subquery())
        ).one()

        items = self.session.exec(
            query.order_by(AuditLog.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).all()
        return list(items), int(total or 0)
