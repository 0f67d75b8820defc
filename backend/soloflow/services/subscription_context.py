"""Per-session view of a user's subscription.

``SubscriptionContext`` keeps the current plan for one connected client and
follows changes pushed on the realtime channel. ``CheckoutPoller`` waits a
bounded amount of time for a checkout to be confirmed by the gateway webhook.
"""
from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Literal
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.engine import Engine
from sqlmodel import Session

from soloflow.core.config import settings
from soloflow.core.logging_setup import logger
from soloflow.models.base import utcnow
from soloflow.models.billing import LimitFeature, Plan, SubscriptionStatus
from soloflow.schemas.billing import ContextSnapshot, PlanLimitsRead, SubscriptionChange, SubscriptionSnapshot
from soloflow.services.plans import LimitCheck, check_limit, limits_for
from soloflow.services.realtime import SubscriptionChannel, subscription_channel
from soloflow.services.subscription import (
    SubscriptionService,
    effective_status,
    is_cancellation_due,
    plan_for_status,
    snapshot_of,
)

Loader = Callable[[UUID], tuple[SubscriptionSnapshot, Plan]]
Observer = Callable[[ContextSnapshot], None]


def session_loader(engine: Engine, channel: SubscriptionChannel | None = None) -> Loader:
    """Loader that reads through a short-lived session, applying the lazy expiry correction."""

    def load(user_id: UUID) -> tuple[SubscriptionSnapshot, Plan]:
        with Session(engine) as session:
            service = SubscriptionService(session, channel=channel)
            record, plan = service.current(user_id)
            return snapshot_of(record), plan

    return load


def _build_snapshot(record: SubscriptionSnapshot, plan: Plan) -> ContextSnapshot:
    return ContextSnapshot(
        plan=plan,
        status=effective_status(record),
        cancel_at_period_end=record.cancel_at_period_end,
        period_end=record.period_end,
        limits=PlanLimitsRead.model_validate(limits_for(plan)),
        loading=False,
    )


def _fallback_snapshot(loading: bool = False) -> ContextSnapshot:
    return ContextSnapshot(limits=PlanLimitsRead.model_validate(limits_for(Plan.TRIAL)), loading=loading)


class SubscriptionContext:
    def __init__(
        self,
        user_id: UUID,
        loader: Loader,
        channel: SubscriptionChannel | None = None,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self.user_id = user_id
        self._loader = loader
        self._channel = channel or subscription_channel
        self._now = now
        self._lock = threading.Lock()
        self._snapshot = _fallback_snapshot(loading=True)
        self._observers: list[Observer] = []
        self._unsubscribe: Callable[[], None] | None = None

    def attach(self) -> ContextSnapshot:
        snapshot = self.refresh()
        with self._lock:
            if self._unsubscribe is None:
                self._unsubscribe = self._channel.subscribe(self.user_id, self._on_change)
        return snapshot

    def detach(self) -> None:
        with self._lock:
            unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe:
            unsubscribe()

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        with self._lock:
            self._observers.append(observer)

        def unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    def get_snapshot(self) -> ContextSnapshot:
        with self._lock:
            return self._snapshot

    def check_limit(self, feature: LimitFeature | str, current_count: int | None = None) -> LimitCheck:
        return check_limit(self.get_snapshot().plan, feature, current_count)

    def refresh(self) -> ContextSnapshot:
        try:
            record, plan = self._loader(self.user_id)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to load subscription for user %s; using trial limits", self.user_id)
            snapshot = _fallback_snapshot()
        else:
            snapshot = _build_snapshot(record, plan)
        self._set(snapshot)
        return snapshot

    def _on_change(self, payload: dict[str, Any]) -> None:
        try:
            change = SubscriptionChange.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Dropping malformed subscription change for user %s: %s", self.user_id, exc)
            return
        if change.user_id != self.user_id:
            logger.warning("Dropping subscription change for user %s on context of %s", change.user_id, self.user_id)
            return

        if is_cancellation_due(change.new, self._now()):
            self.refresh()
            return
        self._set(_build_snapshot(change.new, plan_for_status(change.new.status)))

    def _set(self, snapshot: ContextSnapshot) -> None:
        with self._lock:
            self._snapshot = snapshot
            observers = list(self._observers)
        for observer in observers:
            try:
                observer(snapshot)
            except Exception:  # noqa: BLE001
                logger.exception("Subscription context observer failed for user %s", self.user_id)


# ---------------------------------------------------------------------------
# Checkout polling
# ---------------------------------------------------------------------------
PollOutcome = Literal["activated", "timed_out", "cancelled"]


@dataclass
class PollResult:
    outcome: PollOutcome
    attempts: int
    status: SubscriptionStatus


class CheckoutPoller:
    """Re-reads the subscription until it is active, the attempts run out or ``cancel`` is called."""

    def __init__(
        self,
        load_status: Callable[[], Awaitable[SubscriptionStatus]],
        *,
        interval_seconds: float | None = None,
        max_attempts: int | None = None,
    ) -> None:
        self._load_status = load_status
        self.interval_seconds = (
            settings.checkout_poll_interval_seconds if interval_seconds is None else interval_seconds
        )
        self.max_attempts = max(settings.checkout_poll_max_attempts if max_attempts is None else max_attempts, 1)
        self._cancelled = asyncio.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    async def run(self) -> PollResult:
        status = SubscriptionStatus.TRIAL
        for attempt in range(1, self.max_attempts + 1):
            if self._cancelled.is_set():
                return PollResult(outcome="cancelled", attempts=attempt - 1, status=status)

            status = await self._load_status()
            if status == SubscriptionStatus.ACTIVE:
                logger.info("Checkout confirmed after %s attempt(s)", attempt)
                return PollResult(outcome="activated", attempts=attempt, status=status)

            if attempt < self.max_attempts and await self._wait_or_cancel():
                return PollResult(outcome="cancelled", attempts=attempt, status=status)

        logger.info("Checkout not confirmed after %s attempts", self.max_attempts)
        return PollResult(outcome="timed_out", attempts=self.max_attempts, status=status)

    async def _wait_or_cancel(self) -> bool:
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=self.interval_seconds)
        except asyncio.TimeoutError:
            return False
        return True
