from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from soloflow.core.config import settings
from soloflow.core.logging_setup import logger


class PaymentGatewayError(RuntimeError):
    """Raised when the payment gateway is unreachable or rejects a request."""

    def __init__(
        self,
        message: str,
        *,
        details: Optional[Dict[str, Any]] = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.details = details or {}
        self.status_code = status_code


class RazorpayGateway:
    """HTTP client for the Razorpay plans and subscriptions API."""

    name = "razorpay"

    def __init__(
        self,
        key_id: str | None = None,
        key_secret: str | None = None,
        *,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._key_id = key_id or settings.razorpay_key_id
        self._key_secret = key_secret or settings.razorpay_key_secret
        if not self._key_id or not self._key_secret:
            raise PaymentGatewayError("Razorpay credentials not configured.")
        self._base_url = (base_url or settings.razorpay_base_url or "").rstrip("/")
        self._timeout = timeout_seconds or settings.razorpay_timeout_seconds or 15.0
        self._transport = transport

    def _request(self, method: str, path: str, *, json: dict[str, Any] | None = None) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            with httpx.Client(
                auth=(self._key_id, self._key_secret),
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = client.request(method, url, json=json)
        except httpx.RequestError as exc:
            raise PaymentGatewayError(f"Failed to reach Razorpay: {exc}") from exc

        if response.status_code >= 400:
            try:
                payload = response.json()
            except ValueError:
                payload = {"error": response.text}
            error = payload.get("error") if isinstance(payload, dict) else None
            if isinstance(error, dict):
                message = str(error.get("description") or error.get("code") or "Razorpay request failed.")
            else:
                message = str(error or "Razorpay request failed.")
            logger.error("Razorpay %s %s failed with %s: %s", method, path, response.status_code, message)
            raise PaymentGatewayError(message, details=payload, status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as exc:
            raise PaymentGatewayError("Invalid response from Razorpay.", details={"raw": response.text[:200]}) from exc
        if not isinstance(data, dict):
            raise PaymentGatewayError("Invalid response from Razorpay.", details={"raw": data})
        return data

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
        payload = {
            "period": period,
            "interval": interval,
            "item": {"name": name, "description": description, "amount": amount, "currency": currency},
        }
        plan = self._request("POST", "/plans", json=payload)
        logger.info("Razorpay plan created: %s", plan.get("id"))
        return plan

    def create_subscription(self, *, plan_id: str, total_count: int, notes: dict[str, str]) -> dict[str, Any]:
        payload = {
            "plan_id": plan_id,
            "customer_notify": 1,
            "quantity": 1,
            "total_count": total_count,
            "addons": [],
            "notes": notes,
        }
        subscription = self._request("POST", "/subscriptions", json=payload)
        logger.info("Razorpay subscription created: %s (%s)", subscription.get("id"), subscription.get("status"))
        return subscription

    def fetch_subscription(self, subscription_id: str) -> dict[str, Any]:
        return self._request("GET", f"/subscriptions/{subscription_id}")
