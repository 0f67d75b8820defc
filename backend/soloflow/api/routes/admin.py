from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session

from soloflow.api.deps import get_db, require_admin
from soloflow.models.user import User
from soloflow.schemas.admin import AdminActionResponse, ExtendTrialRequest, SubscriptionOverview
from soloflow.schemas.billing import MaintenanceReportRead
from soloflow.services.subscription_admin import SubscriptionAdminService

router = APIRouter(prefix="/admin/subscriptions", tags=["admin"])


@router.get("", response_model=SubscriptionOverview)
def list_subscriptions(
    session: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
) -> SubscriptionOverview:
    return SubscriptionAdminService(session).overview()


@router.post("/fix-expired", response_model=MaintenanceReportRead)
def fix_expired_subscriptions(
    session: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
) -> MaintenanceReportRead:
    report = SubscriptionAdminService(session).fix_expired(actor_id=current_user.id)
    return MaintenanceReportRead.model_validate(report, from_attributes=True)


@router.post("/{user_id}/extend-trial", response_model=AdminActionResponse)
def extend_trial(
    user_id: UUID,
    payload: ExtendTrialRequest,
    session: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
) -> AdminActionResponse:
    try:
        record = SubscriptionAdminService(session).extend_trial(user_id, payload.days, actor_id=current_user.id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return AdminActionResponse(
        message=f"Extended trial for user by {payload.days} days",
        period_end=record.period_end,
    )


@router.post("/{user_id}/activate-pro", response_model=AdminActionResponse)
def activate_pro(
    user_id: UUID,
    session: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
) -> AdminActionResponse:
    try:
        record = SubscriptionAdminService(session).activate_pro(user_id, actor_id=current_user.id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return AdminActionResponse(message="Activated Pro subscription for user", period_end=record.period_end)
