"""In-process publish/subscribe channel for subscription row changes.

Every write made through :class:`SubscriptionService` is published here,
keyed by user id. Delivery is synchronous on the publishing thread; callers
that live on an event loop must hop back to it themselves. The channel is
process-local: writes from another process are seen on the next refresh.
"""
from __future__ import annotations

import threading
from collections import defaultdict
from typing import Any, Callable
from uuid import UUID

from soloflow.core.logging_setup import logger
from soloflow.schemas.billing import SubscriptionChange

ChangeCallback = Callable[[dict[str, Any]], None]


class SubscriptionChannel:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[UUID, list[ChangeCallback]] = defaultdict(list)

    def subscribe(self, user_id: UUID, callback: ChangeCallback) -> Callable[[], None]:
        with self._lock:
            self._subscribers[user_id].append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(user_id)
                if not callbacks or callback not in callbacks:
                    return
                callbacks.remove(callback)
                if not callbacks:
                    del self._subscribers[user_id]

        return unsubscribe

    def subscriber_count(self, user_id: UUID) -> int:
        with self._lock:
            return len(self._subscribers.get(user_id, ()))

    def publish(self, change: SubscriptionChange) -> int:
        """Deliver ``change`` as a JSON-compatible dict; returns the number of callbacks reached."""
        with self._lock:
            callbacks = list(self._subscribers.get(change.user_id, ()))
        if not callbacks:
            return 0

        payload = change.model_dump(mode="json")
        delivered = 0
        for callback in callbacks:
            try:
                callback(payload)
                delivered += 1
            except Exception:  # noqa: BLE001
                logger.exception("Subscription channel subscriber failed for user %s", change.user_id)
        return delivered


subscription_channel = SubscriptionChannel()
