from __future__ import annotations

from uuid import UUID

from fastapi import Request, status

from soloflow.api.routes.billing import get_payment_gateway
from soloflow.core.config import settings
from soloflow.main import app
from soloflow.services.billing import ManualGateway
from soloflow.services.razorpay import PaymentGatewayError
from soloflow.services.subscription import SubscriptionService

API = settings.api_v1_str


def _user_id(client, headers) -> UUID:
    response = client.get(f"{API}/auth/me", headers=headers)
    assert response.status_code == status.HTTP_200_OK, response.text
    return UUID(response.json()["id"])


def _activate(db_session, user_id: UUID) -> None:
    SubscriptionService(db_session).activate(user_id, external_subscription_id="sub_manual_test")


def test_new_user_starts_on_trial(client, register_and_login, auth_headers):
    token, _ = register_and_login()
    headers = auth_headers(token)

    response = client.get(f"{API}/billing/subscription", headers=headers)

    assert response.status_code == status.HTTP_200_OK, response.text
    body = response.json()
    assert body["status"] == "trial"
    assert body["plan"] == "trial"
    assert body["cancel_at_period_end"] is False
    assert body["limits"]["max_clients"] == 3


def test_subscription_requires_authentication(client):
    response = client.get(f"{API}/billing/subscription")
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_plans_listing(client):
    response = client.get(f"{API}/billing/plans")

    assert response.status_code == status.HTTP_200_OK
    plans = {item["plan"]: item for item in response.json()}
    assert plans["pro"]["price_paise"] == 79900
    assert plans["pro"]["limits"]["can_export_pdf"] is True
    assert plans["trial"]["price_paise"] == 0


def test_limit_check_endpoint(client, register_and_login, auth_headers):
    token, _ = register_and_login()
    headers = auth_headers(token)

    allowed = client.get(f"{API}/billing/limits/check", params={"feature": "max_clients", "current_count": 2}, headers=headers)
    denied = client.get(f"{API}/billing/limits/check", params={"feature": "max_clients", "current_count": 3}, headers=headers)
    unknown = client.get(f"{API}/billing/limits/check", params={"feature": "max_rockets"}, headers=headers)

    assert allowed.json()["allowed"] is True
    assert denied.json()["allowed"] is False
    assert denied.json()["message"] == "You've reached the limit of 3 for your trial plan"
    assert unknown.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_checkout_returns_gateway_link(client, register_and_login, auth_headers, gateway):
    token, _ = register_and_login()
    headers = auth_headers(token)
    user_id = _user_id(client, headers)

    response = client.post(f"{API}/billing/checkout", json={"plan_id": "pro"}, headers=headers)

    assert response.status_code == status.HTTP_201_CREATED, response.text
    body = response.json()
    assert body["status"] == "created"
    assert gateway.subscriptions[body["subscription_id"]]["notes"]["user_id"] == str(user_id)

    still_trial = client.get(f"{API}/billing/subscription", headers=headers).json()
    assert still_trial["status"] == "trial"


def test_checkout_rejects_unknown_plan(client, register_and_login, auth_headers):
    token, _ = register_and_login()

    response = client.post(f"{API}/billing/checkout", json={"plan_id": "gold"}, headers=auth_headers(token))

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["detail"] == "Invalid plan selected"


def test_checkout_gateway_failure_is_generic(client, register_and_login, auth_headers):
    class BrokenGateway(ManualGateway):
        def create_plan(self, **kwargs):
            raise PaymentGatewayError("Authentication failed: key rzp_live_xxx", status_code=401)

    app.dependency_overrides[get_payment_gateway] = lambda: BrokenGateway()
    token, _ = register_and_login()

    response = client.post(f"{API}/billing/checkout", json={"plan_id": "pro"}, headers=auth_headers(token))

    assert response.status_code == status.HTTP_502_BAD_GATEWAY
    assert "rzp_live" not in response.json()["detail"]


def test_cancel_requires_active_subscription(client, register_and_login, auth_headers):
    token, _ = register_and_login()

    response = client.post(f"{API}/billing/cancel", json={"reason": "too_expensive"}, headers=auth_headers(token))

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["detail"] == "No active subscription to cancel"


def test_cancel_and_reactivate_flow(client, register_and_login, auth_headers, db_session):
    token, _ = register_and_login()
    headers = auth_headers(token)
    _activate(db_session, _user_id(client, headers))

    cancelled = client.post(
        f"{API}/billing/cancel",
        json={"reason": "temporary_break", "feedback": "Taking a month off"},
        headers=headers,
    )
    assert cancelled.status_code == status.HTTP_200_OK, cancelled.text
    body = cancelled.json()
    assert body["status"] == "active"
    assert body["effective_status"] == "pending_cancellation"
    assert body["plan"] == "pro"
    assert body["cancel_at_period_end"] is True
    assert body["period_end"] is not None

    again = client.post(f"{API}/billing/cancel", json={"reason": "other"}, headers=headers)
    assert again.json()["period_end"] == body["period_end"]

    reactivated = client.post(f"{API}/billing/reactivate", headers=headers)
    assert reactivated.status_code == status.HTTP_200_OK, reactivated.text
    assert reactivated.json()["effective_status"] == "active"
    assert reactivated.json()["cancellation_reason"] is None

    not_scheduled = client.post(f"{API}/billing/reactivate", headers=headers)
    assert not_scheduled.status_code == status.HTTP_400_BAD_REQUEST
    assert not_scheduled.json()["detail"] == "Subscription is not scheduled for cancellation"


def test_cancel_rejects_unknown_reason(client, register_and_login, auth_headers):
    token, _ = register_and_login()

    response = client.post(f"{API}/billing/cancel", json={"reason": "bored"}, headers=auth_headers(token))

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_checkout_wait_times_out(client, register_and_login, auth_headers, monkeypatch):
    monkeypatch.setattr(settings, "checkout_poll_interval_seconds", 0)
    monkeypatch.setattr(settings, "checkout_poll_max_attempts", 2)
    token, _ = register_and_login()

    response = client.post(f"{API}/billing/checkout/wait", headers=auth_headers(token))

    assert response.status_code == status.HTTP_200_OK, response.text
    body = response.json()
    assert body["outcome"] == "timed_out"
    assert body["attempts"] == 2
    assert body["status"] == "trial"


def test_checkout_wait_sees_activation(client, register_and_login, auth_headers, db_session, monkeypatch):
    monkeypatch.setattr(settings, "checkout_poll_interval_seconds", 0)
    token, _ = register_and_login()
    headers = auth_headers(token)
    _activate(db_session, _user_id(client, headers))

    body = client.post(f"{API}/billing/checkout/wait", headers=headers).json()

    assert body["outcome"] == "activated"
    assert body["attempts"] == 1
    assert body["status"] == "active"


def test_checkout_wait_stops_when_client_disconnects(client, register_and_login, auth_headers, monkeypatch):
    async def disconnected(self) -> bool:
        return True

    monkeypatch.setattr(settings, "checkout_poll_interval_seconds", 5)
    monkeypatch.setattr(settings, "checkout_poll_max_attempts", 3)
    monkeypatch.setattr(Request, "is_disconnected", disconnected)
    token, _ = register_and_login()

    response = client.post(f"{API}/billing/checkout/wait", headers=auth_headers(token))

    assert response.status_code == status.HTTP_200_OK, response.text
    body = response.json()
    assert body["outcome"] == "cancelled"
    assert body["attempts"] <= 1
    assert body["status"] == "trial"


def test_maintenance_endpoint_access(client, register_and_login, auth_headers, db_session, monkeypatch):
    monkeypatch.setattr(settings, "maintenance_token", "cron-secret")

    assert client.post(f"{API}/billing/maintenance/run").status_code == status.HTTP_401_UNAUTHORIZED
    wrong = client.post(f"{API}/billing/maintenance/run", headers={"X-Maintenance-Token": "nope"})
    assert wrong.status_code == status.HTTP_403_FORBIDDEN

    token, _ = register_and_login()
    headers = auth_headers(token)
    assert client.post(f"{API}/billing/maintenance/run", headers=headers).status_code == status.HTTP_403_FORBIDDEN

    response = client.post(f"{API}/billing/maintenance/run", headers={"X-Maintenance-Token": "cron-secret"})
    assert response.status_code == status.HTTP_200_OK, response.text
    assert response.json() == {
        "success": True,
        "message": "No subscriptions to process",
        "processed": 0,
        "total": 0,
        "results": [],
    }
