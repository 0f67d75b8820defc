from __future__ import annotations

import asyncio
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import ValidationError
from sqlmodel import Session
from starlette.concurrency import run_in_threadpool

from soloflow.api.deps import get_current_active_user, get_db, require_maintenance_access
from soloflow.core.config import settings
from soloflow.core.logging_setup import logger
from soloflow.models.billing import LimitFeature, Plan, Subscription, SubscriptionStatus
from soloflow.models.user import User
from soloflow.schemas.billing import (
    CancelRequest,
    CheckoutRequest,
    CheckoutResponse,
    CheckoutWaitResponse,
    LimitCheckRead,
    MaintenanceReportRead,
    PlanLimitsRead,
    PlanRead,
    RazorpayWebhookEvent,
    SubscriptionRead,
)
from soloflow.services.billing import BillingService, PaymentGateway, gateway_from_settings, verify_webhook_signature
from soloflow.services.maintenance import run_subscription_maintenance
from soloflow.services.plans import PLAN_LIMITS, check_limit, limits_for
from soloflow.services.razorpay import PaymentGatewayError
from soloflow.services.subscription import SubscriptionService, effective_status, plan_for_status
from soloflow.services.subscription_context import CheckoutPoller

router = APIRouter(prefix="/billing", tags=["billing"])

GATEWAY_ERROR_DETAIL = "Payment provider is unavailable. Please try again later."
DISCONNECT_CHECK_SECONDS = 0.5


def get_payment_gateway() -> PaymentGateway:
    return gateway_from_settings()


def _service(session: Session, gateway: PaymentGateway | None = None) -> BillingService:
    return BillingService(session, gateway=gateway)


def _subscription_read(record: Subscription, plan: Plan) -> SubscriptionRead:
    return SubscriptionRead(
        id=record.id,
        created_at=record.created_at,
        updated_at=record.updated_at,
        user_id=record.user_id,
        status=record.status,
        effective_status=effective_status(record),
        plan=plan,
        cancel_at_period_end=record.cancel_at_period_end,
        period_end=record.period_end,
        cancellation_reason=record.cancellation_reason,
        external_subscription_id=record.external_subscription_id,
        limits=PlanLimitsRead.model_validate(limits_for(plan)),
    )


@router.get("/plans", response_model=List[PlanRead])
def list_plans() -> List[PlanRead]:
    plans: list[PlanRead] = []
    for plan, limits in PLAN_LIMITS.items():
        price = settings.pro_plan_amount_paise if plan == Plan.PRO else 0
        plans.append(
            PlanRead(
                plan=plan,
                limits=PlanLimitsRead.model_validate(limits),
                price_paise=price,
                currency=settings.pro_plan_currency,
            )
        )
    return plans


@router.get("/subscription", response_model=SubscriptionRead)
def get_subscription(
    session: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> SubscriptionRead:
    record, plan = SubscriptionService(session).current(current_user.id)
    return _subscription_read(record, plan)


@router.get("/limits/check", response_model=LimitCheckRead)
def check_plan_limit(
    feature: LimitFeature,
    current_count: int | None = Query(default=None, ge=0),
    session: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> LimitCheckRead:
    _, plan = SubscriptionService(session).current(current_user.id)
    result = check_limit(plan, feature, current_count)
    return LimitCheckRead(
        plan=plan,
        feature=feature,
        current_count=current_count,
        allowed=result.allowed,
        message=result.message,
    )


@router.post("/checkout", response_model=CheckoutResponse, status_code=status.HTTP_201_CREATED)
def create_checkout(
    payload: CheckoutRequest,
    session: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    current_user: User = Depends(get_current_active_user),
) -> CheckoutResponse:
    service = _service(session, gateway)
    try:
        result = service.create_checkout(current_user.id, payload.plan_id)
    except PaymentGatewayError as exc:
        logger.error("Checkout failed for user %s: %s", current_user.id, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=GATEWAY_ERROR_DETAIL) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return CheckoutResponse(**result)


async def _cancel_on_disconnect(request: Request, poller: CheckoutPoller) -> None:
    while not await request.is_disconnected():
        await asyncio.sleep(DISCONNECT_CHECK_SECONDS)
    logger.info("Client disconnected during checkout wait; stopping poll")
    poller.cancel()


@router.post("/checkout/wait", response_model=CheckoutWaitResponse)
async def wait_for_checkout(
    request: Request,
    session: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> CheckoutWaitResponse:
    user_id: UUID = current_user.id
    subscriptions = SubscriptionService(session)

    def _read_status() -> SubscriptionStatus:
        session.expire_all()
        record, _ = subscriptions.current(user_id)
        return SubscriptionStatus(record.status)

    async def load_status() -> SubscriptionStatus:
        return await run_in_threadpool(_read_status)

    poller = CheckoutPoller(load_status)
    watcher = asyncio.create_task(_cancel_on_disconnect(request, poller))
    try:
        result = await poller.run()
    finally:
        watcher.cancel()
    message = None
    if result.outcome == "timed_out":
        message = "Payment not confirmed yet. Refresh the page in a moment."
    return CheckoutWaitResponse(
        outcome=result.outcome,
        attempts=result.attempts,
        status=result.status,
        message=message,
    )


@router.post("/cancel", response_model=SubscriptionRead)
def cancel_subscription(
    payload: CancelRequest,
    session: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> SubscriptionRead:
    service = _service(session, gateway=None)
    try:
        record = service.cancel(current_user.id, payload.reason, payload.feedback)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return _subscription_read(record, plan_for_status(record.status))


@router.post("/reactivate", response_model=SubscriptionRead)
def reactivate_subscription(
    session: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> SubscriptionRead:
    service = _service(session, gateway=None)
    try:
        record = service.reactivate(current_user.id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return _subscription_read(record, plan_for_status(record.status))


@router.post("/webhook/razorpay", status_code=status.HTTP_200_OK)
async def razorpay_webhook(
    request: Request,
    session: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> dict:
    """Razorpay webhook; the X-Razorpay-Signature header carries hex(HMAC-SHA256(secret, raw body))."""
    raw_body = await request.body()
    signature = request.headers.get("X-Razorpay-Signature")
    if not verify_webhook_signature(raw_body, signature):
        logger.warning("Rejected Razorpay webhook with invalid signature")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature")

    try:
        event = RazorpayWebhookEvent.model_validate_json(raw_body)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload") from exc

    _service(session, gateway).handle_webhook(event)
    return {"ok": True}


@router.post("/maintenance/run", response_model=MaintenanceReportRead)
def run_maintenance(
    session: Session = Depends(get_db),
    actor: User | None = Depends(require_maintenance_access),
) -> MaintenanceReportRead:
    logger.info("Subscription maintenance triggered by %s", actor.id if actor else "maintenance token")
    report = run_subscription_maintenance(session)
    return MaintenanceReportRead.model_validate(report, from_attributes=True)
