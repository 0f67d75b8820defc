from __future__ import annotations

import hashlib
import hmac
import uuid
from datetime import datetime, timezone
from typing import Any, Protocol
from uuid import UUID

from sqlmodel import Session

from soloflow.core.config import settings
from soloflow.core.logging_setup import logger
from soloflow.models.base import utcnow
from soloflow.models.billing import CancellationReason, Plan, Subscription
from soloflow.models.user import User
from soloflow.schemas.billing import RazorpayEntity, RazorpayWebhookEvent
from soloflow.services.audit import AuditService
from soloflow.services.razorpay import PaymentGatewayError, RazorpayGateway
from soloflow.services.subscription import SubscriptionService, SubscriptionValidationError

ACTIVATION_EVENTS = frozenset(
    {
        "subscription.activated",
        "subscription.charged",
        "invoice.paid",
        "payment.captured",
    }
)
TERMINATION_EVENTS = frozenset({"subscription.cancelled", "subscription.expired"})

PRO_PLAN_NAME = "SoloFlow Pro Plan"
PRO_PLAN_DESCRIPTION = "Unlimited clients & projects, advanced invoicing"


class PaymentGateway(Protocol):
    name: str

    def create_plan(
        self,
        *,
        name: str,
        description: str,
        amount: int,
        currency: str,
        period: str = "monthly",
        interval: int = 1,
    ) -> dict[str, Any]:
        ...

    def create_subscription(self, *, plan_id: str, total_count: int, notes: dict[str, str]) -> dict[str, Any]:
        ...

    def fetch_subscription(self, subscription_id: str) -> dict[str, Any]:
        ...


class ManualGateway:
    """In-process gateway used when no Razorpay credentials are configured."""

    name = "manual"

    def __init__(self) -> None:
        self.plans: dict[str, dict[str, Any]] = {}
        self.subscriptions: dict[str, dict[str, Any]] = {}

    def create_plan(
        self,
        *,
        name: str,
        description: str,
        amount: int,
        currency: str,
        period: str = "monthly",
        interval: int = 1,
    ) -> dict[str, Any]:  # noqa: D401
        plan_id = f"plan_manual_{uuid.uuid4().hex[:12]}"
        plan = {
            "id": plan_id,
            "period": period,
            "interval": interval,
            "item": {"name": name, "description": description, "amount": amount, "currency": currency},
        }
        self.plans[plan_id] = plan
        return plan

    def create_subscription(self, *, plan_id: str, total_count: int, notes: dict[str, str]) -> dict[str, Any]:
        if plan_id not in self.plans:
            raise PaymentGatewayError("Plan not found", status_code=400)
        subscription_id = f"sub_manual_{uuid.uuid4().hex[:12]}"
        subscription = {
            "id": subscription_id,
            "plan_id": plan_id,
            "status": "created",
            "total_count": total_count,
            "notes": dict(notes),
            "short_url": f"{settings.resolved_public_app_url()}/checkout/{subscription_id}",
        }
        self.subscriptions[subscription_id] = subscription
        return subscription

    def fetch_subscription(self, subscription_id: str) -> dict[str, Any]:
        subscription = self.subscriptions.get(subscription_id)
        if subscription is None:
            raise PaymentGatewayError("Subscription not found", status_code=404)
        return subscription


def gateway_from_settings() -> PaymentGateway:
    gateway_name = (settings.billing_gateway or "manual").lower()
    if gateway_name == "razorpay" and settings.razorpay_key_id and settings.razorpay_key_secret:
        return RazorpayGateway()
    return ManualGateway()


def verify_webhook_signature(raw_body: bytes, signature: str | None, secret: str | None = None) -> bool:
    """Razorpay signs the raw body with HMAC-SHA256 and sends the hex digest."""
    secret = secret if secret is not None else settings.razorpay_webhook_secret
    if not secret:
        return True
    if not signature:
        return False
    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.strip())


class BillingService:
    def __init__(
        self,
        session: Session,
        gateway: PaymentGateway | None = None,
        subscriptions: SubscriptionService | None = None,
    ) -> None:
        self.session = session
        self.gateway = gateway or gateway_from_settings()
        self.subscriptions = subscriptions or SubscriptionService(session)
        self.audit = AuditService(session)

    def create_checkout(self, user_id: UUID, plan_id: str) -> dict[str, str]:
        if (plan_id or "").strip().lower() != Plan.PRO.value:
            raise SubscriptionValidationError("Invalid plan selected")

        plan = self.gateway.create_plan(
            name=PRO_PLAN_NAME,
            description=PRO_PLAN_DESCRIPTION,
            amount=settings.pro_plan_amount_paise,
            currency=settings.pro_plan_currency,
            period="monthly",
            interval=1,
        )
        plan_ref = plan.get("id")
        if not plan_ref:
            raise PaymentGatewayError("Gateway did not return a plan id", details=plan)

        subscription = self.gateway.create_subscription(
            plan_id=plan_ref,
            total_count=settings.pro_plan_total_count,
            notes={"user_id": str(user_id), "plan": Plan.PRO.value},
        )
        if not subscription.get("id"):
            raise PaymentGatewayError("Gateway did not return a subscription id", details=subscription)

        logger.info("Checkout created for user %s: %s", user_id, subscription["id"])
        self.audit.record_event(
            "billing.checkout_created",
            actor_id=user_id,
            subject_user_id=user_id,
            details={"gateway": self.gateway.name, "subscription_id": subscription["id"]},
        )
        return {
            "subscription_id": str(subscription["id"]),
            "short_url": str(subscription.get("short_url") or ""),
            "status": str(subscription.get("status") or "created"),
        }

    def cancel(
        self,
        user_id: UUID,
        reason: CancellationReason | str,
        feedback: str | None = None,
        now: datetime | None = None,
    ) -> Subscription:
        record = self.subscriptions.cancel(user_id, reason, feedback, now=now)
        self.audit.record_event(
            "billing.cancellation_scheduled",
            actor_id=user_id,
            subject_user_id=user_id,
            details={
                "reason": record.cancellation_reason,
                "period_end": record.period_end.isoformat() if record.period_end else None,
            },
        )
        return record

    def reactivate(self, user_id: UUID, now: datetime | None = None) -> Subscription:
        record = self.subscriptions.reactivate(user_id, now=now)
        self.audit.record_event("billing.reactivated", actor_id=user_id, subject_user_id=user_id)
        return record

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------
    def handle_webhook(self, event: RazorpayWebhookEvent) -> Subscription | None:
        logger.info("Razorpay webhook received: %s", event.event)
        if event.event in ACTIVATION_EVENTS:
            return self._handle_activation(event)
        if event.event in TERMINATION_EVENTS:
            return self._handle_termination(event)
        logger.info("Ignoring Razorpay event %s", event.event)
        return None

    def _handle_activation(self, event: RazorpayWebhookEvent) -> Subscription | None:
        subscription_entity = event.payload.subscription.entity if event.payload.subscription else None
        payment_entity = event.payload.payment.entity if event.payload.payment else None

        user_ref = _note(subscription_entity, "user_id") or _note(payment_entity, "user_id")
        plan = _note(subscription_entity, "plan") or _note(payment_entity, "plan")

        external_id = (subscription_entity.id if subscription_entity else None) or (
            payment_entity.subscription_id if payment_entity else None
        )
        if not user_ref or not plan:
            fetched = self._backfill_notes(external_id)
            user_ref = user_ref or fetched.get("user_id")
            plan = plan or fetched.get("plan")

        user_id = self._known_user(_parse_user_id(user_ref))
        if user_id is None or not plan:
            logger.warning("Razorpay %s without user_id/plan for %s; ignoring", event.event, external_id)
            return None
        if str(plan).lower() != Plan.PRO.value:
            logger.warning("Razorpay %s for unsupported plan %s; ignoring", event.event, plan)
            return None

        period_end = None
        if subscription_entity and subscription_entity.current_end:
            period_end = datetime.fromtimestamp(subscription_entity.current_end, tz=timezone.utc).replace(tzinfo=None)

        record = self.subscriptions.activate(
            user_id,
            period_end=period_end,
            external_subscription_id=external_id,
        )
        self.audit.record_event(
            "billing.webhook_activated",
            subject_user_id=user_id,
            details={"event": event.event, "subscription_id": external_id},
        )
        return record

    def _handle_termination(self, event: RazorpayWebhookEvent) -> Subscription | None:
        entity = event.payload.subscription.entity if event.payload.subscription else None
        user_id = self._known_user(_parse_user_id(_note(entity, "user_id")))
        if user_id is None:
            logger.warning("Razorpay %s without user_id; ignoring", event.event)
            return None
        record = self.subscriptions.end(user_id, now=utcnow())
        self.audit.record_event(
            "billing.webhook_ended",
            subject_user_id=user_id,
            details={"event": event.event, "subscription_id": entity.id if entity else None},
        )
        return record

    def _known_user(self, user_id: UUID | None) -> UUID | None:
        if user_id is None:
            return None
        if self.session.get(User, user_id) is None:
            logger.warning("Razorpay notes reference unknown user %s", user_id)
            return None
        return user_id

    def _backfill_notes(self, subscription_id: str | None) -> dict[str, Any]:
        if not subscription_id:
            return {}
        try:
            fetched = self.gateway.fetch_subscription(subscription_id)
        except PaymentGatewayError as exc:
            logger.warning("Could not backfill notes for %s: %s", subscription_id, exc)
            return {}
        notes = fetched.get("notes") or {}
        return notes if isinstance(notes, dict) else {}


def _note(entity: RazorpayEntity | None, key: str) -> str | None:
    if entity is None:
        return None
    value = entity.notes.get(key)
    return str(value) if value else None


def _parse_user_id(value: str | None) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        logger.warning("Invalid user_id in Razorpay notes: %s", value)
        return None
