# functions/payments.py
from __future__ import annotations

import logging
from typing import Any, Dict

import requests
from django.conf import settings
from django.utils import timezone

logger = logging.getLogger(__name__)

CONFIRM_PATH = "/v1/payments/confirm"


class PaymentGatewayError(Exception):
    """The gateway refused the confirmation or could not be reached."""

    def __init__(self, message: str, code: str = "GATEWAY_ERROR") -> None:
        super().__init__(message)
        self.code = code


class _SandboxGateway:
    """
    Default gateway when payments are disabled:
    - Never hits the network.
    - Approves every confirmation and logs it.
    """
    enabled = False

    def confirm(self, *, payment_key: str, order_id: str, amount: int) -> Dict[str, Any]:
        logger.info("[Payments:SANDBOX] confirm order=%s amount=%s key=%s", order_id, amount, payment_key)
        return {
            "paymentKey": payment_key,
            "orderId": order_id,
            "totalAmount": amount,
            "method": "SANDBOX",
            "status": "DONE",
            "approvedAt": timezone.now().isoformat(),
        }


class _UnconfiguredGateway:
    """
    Stands in when payments are enabled but the secret key is missing.
    Every confirmation is refused so no order is confirmed unpaid.
    """
    enabled = True

    def __init__(self, reason: str) -> None:
        self.reason = reason

    def confirm(self, *, payment_key: str, order_id: str, amount: int) -> Dict[str, Any]:
        logger.error("Refusing payment confirm for %s: %s", order_id, self.reason)
        raise PaymentGatewayError("Payments are temporarily unavailable.", code="GATEWAY_MISCONFIGURED")


class _TossPaymentsGateway:
    """
    Minimal Toss Payments client:
    - Secret key as HTTP basic auth user, empty password.
    - Confirms a payment the customer already authorized in the browser.
    """
    def __init__(self) -> None:
        self.secret_key = getattr(settings, "TOSS_SECRET_KEY", "")
        self.api_base = getattr(settings, "PAYMENTS_API_BASE", "https://api.tosspayments.com").rstrip("/")
        self.enabled = bool(self.secret_key)

        if not self.enabled:
            raise RuntimeError("Payment gateway misconfigured: missing TOSS_SECRET_KEY")

        self.auth = (self.secret_key, "")

    def confirm(self, *, payment_key: str, order_id: str, amount: int) -> Dict[str, Any]:
        payload = {"paymentKey": payment_key, "orderId": order_id, "amount": amount}
        try:
            r = requests.post(self.api_base + CONFIRM_PATH, auth=self.auth, json=payload, timeout=15)
        except requests.RequestException as exc:
            logger.warning("Payment confirm transport error for %s: %s", order_id, exc)
            raise PaymentGatewayError(f"Payment gateway unreachable: {exc}") from exc

        if r.status_code not in (200, 201):
            try:
                body = r.json()
            except ValueError:
                body = {}
            code = body.get("code", f"HTTP_{r.status_code}")
            message = body.get("message", r.text)
            logger.warning("Payment confirm failed for %s: %s %s", order_id, code, message)
            raise PaymentGatewayError(message, code=code)

        return r.json()


# ----- Public API --------------------------------------------------------------

_gateway_singleton = None


def get_payment_gateway():
    """
    Returns a gateway exposing .confirm(payment_key=, order_id=, amount=) -> dict.
    - If PAYMENTS_ENABLED is off, returns the sandbox gateway.
    - If enabled but the secret key is missing, logs an error and returns a gateway
      that refuses every confirmation.
    """
    global _gateway_singleton
    if _gateway_singleton is not None:
        return _gateway_singleton

    if not getattr(settings, "PAYMENTS_ENABLED", False):
        _gateway_singleton = _SandboxGateway()
        return _gateway_singleton

    try:
        _gateway_singleton = _TossPaymentsGateway()
    except RuntimeError as exc:
        logger.error("Payment gateway unavailable: %s", exc)
        _gateway_singleton = _UnconfiguredGateway(str(exc))

    return _gateway_singleton


def reset_payment_gateway() -> None:
    """Drop the cached gateway so the next call re-reads settings."""
    global _gateway_singleton
    _gateway_singleton = None


__all__ = ["PaymentGatewayError", "get_payment_gateway", "reset_payment_gateway"]
