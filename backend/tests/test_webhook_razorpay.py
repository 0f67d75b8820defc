from __future__ import annotations

import hashlib
import hmac
import json
from datetime import datetime, timezone
from uuid import UUID

from fastapi import status

from soloflow.core.config import settings

API = settings.api_v1_str
WEBHOOK = f"{API}/billing/webhook/razorpay"
CURRENT_END = 1_900_000_000


def _sign(secret: str, raw: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw.encode("utf-8"), hashlib.sha256).hexdigest()


def _user_id(client, headers) -> UUID:
    return UUID(client.get(f"{API}/auth/me", headers=headers).json()["id"])


def _subscription(client, headers) -> dict:
    return client.get(f"{API}/billing/subscription", headers=headers).json()


def _activation_event(user_id: UUID, event: str = "subscription.activated") -> dict:
    return {
        "event": event,
        "payload": {
            "subscription": {
                "entity": {
                    "id": "sub_rzp_001",
                    "status": "active",
                    "current_end": CURRENT_END,
                    "notes": {"user_id": str(user_id), "plan": "pro"},
                }
            }
        },
    }


def test_webhook_signature_verification(client, register_and_login, auth_headers, monkeypatch):
    secret = "rzp_whsec_test"
    monkeypatch.setattr(settings, "razorpay_webhook_secret", secret)
    token, _ = register_and_login()
    user_id = _user_id(client, auth_headers(token))
    raw = json.dumps(_activation_event(user_id))

    missing = client.post(WEBHOOK, content=raw)
    assert missing.status_code == status.HTTP_400_BAD_REQUEST

    tampered = client.post(WEBHOOK, content=raw, headers={"X-Razorpay-Signature": "deadbeef"})
    assert tampered.status_code == status.HTTP_400_BAD_REQUEST

    response = client.post(WEBHOOK, content=raw, headers={"X-Razorpay-Signature": _sign(secret, raw)})
    assert response.status_code == status.HTTP_200_OK, response.text
    assert response.json() == {"ok": True}


def test_activation_event_upgrades_user(client, register_and_login, auth_headers, monkeypatch):
    monkeypatch.setattr(settings, "razorpay_webhook_secret", None)
    token, _ = register_and_login()
    headers = auth_headers(token)
    user_id = _user_id(client, headers)

    response = client.post(WEBHOOK, json=_activation_event(user_id, "subscription.charged"))
    assert response.status_code == status.HTTP_200_OK, response.text

    body = _subscription(client, headers)
    assert body["status"] == "active"
    assert body["plan"] == "pro"
    assert body["cancel_at_period_end"] is False
    assert body["external_subscription_id"] == "sub_rzp_001"
    expected_end = datetime.fromtimestamp(CURRENT_END, tz=timezone.utc).replace(tzinfo=None)
    assert datetime.fromisoformat(body["period_end"]) == expected_end

    notifications = client.get(f"{API}/notifications", headers=headers).json()
    assert [item["event_type"] for item in notifications["items"]] == ["subscription_activated"]


def test_payment_event_backfills_notes_from_gateway(client, register_and_login, auth_headers, gateway, monkeypatch):
    monkeypatch.setattr(settings, "razorpay_webhook_secret", None)
    token, _ = register_and_login()
    headers = auth_headers(token)

    checkout = client.post(f"{API}/billing/checkout", json={"plan_id": "pro"}, headers=headers).json()
    event = {
        "event": "payment.captured",
        "payload": {
            "payment": {
                "entity": {
                    "id": "pay_001",
                    "subscription_id": checkout["subscription_id"],
                    "notes": [],
                }
            }
        },
    }

    response = client.post(WEBHOOK, json=event)

    assert response.status_code == status.HTTP_200_OK, response.text
    body = _subscription(client, headers)
    assert body["status"] == "active"
    assert body["period_end"] is None
    assert body["external_subscription_id"] == checkout["subscription_id"]


def test_activation_without_identifiable_user_is_ignored(client, monkeypatch):
    monkeypatch.setattr(settings, "razorpay_webhook_secret", None)
    event = {"event": "subscription.activated", "payload": {"subscription": {"entity": {"id": "sub_unknown"}}}}

    response = client.post(WEBHOOK, json=event)

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"ok": True}


def test_cancelled_event_ends_subscription(client, register_and_login, auth_headers, monkeypatch):
    monkeypatch.setattr(settings, "razorpay_webhook_secret", None)
    token, _ = register_and_login()
    headers = auth_headers(token)
    user_id = _user_id(client, headers)
    client.post(WEBHOOK, json=_activation_event(user_id))

    cancelled = _activation_event(user_id, "subscription.cancelled")
    response = client.post(WEBHOOK, json=cancelled)

    assert response.status_code == status.HTTP_200_OK
    body = _subscription(client, headers)
    assert body["status"] == "cancelled"
    assert body["plan"] == "trial"
    assert body["cancel_at_period_end"] is False
    assert body["limits"]["max_clients"] == 3


def test_unrelated_event_is_acknowledged(client, register_and_login, auth_headers, monkeypatch):
    monkeypatch.setattr(settings, "razorpay_webhook_secret", None)
    token, _ = register_and_login()
    headers = auth_headers(token)
    user_id = _user_id(client, headers)

    response = client.post(WEBHOOK, json=_activation_event(user_id, "subscription.paused"))

    assert response.status_code == status.HTTP_200_OK
    assert _subscription(client, headers)["status"] == "trial"


def test_malformed_payload_rejected(client, monkeypatch):
    monkeypatch.setattr(settings, "razorpay_webhook_secret", None)

    response = client.post(WEBHOOK, content="{not json", headers={"Content-Type": "application/json"})

    assert response.status_code == status.HTTP_400_BAD_REQUEST
