"""MercadoPago HTTP calls."""

import logging
from decimal import Decimal

import requests
from django.conf import settings

from common.exceptions import RemoteUnavailableError

logger = logging.getLogger("payments")

PREFERENCE_TITLE = "Suscripción Premium - WorkingGo"


def _base_url():
    return getattr(settings, "MERCADOPAGO_API_URL", "https://api.mercadopago.com").rstrip("/")


def _headers():
    token = getattr(settings, "MERCADOPAGO_ACCESS_TOKEN", None)
    if not token:
        logger.error("MERCADOPAGO_ACCESS_TOKEN is not configured")
        raise RemoteUnavailableError("Payment provider is not configured.")
    return {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
    }


def create_preference(user_id, currency: str, amount: Decimal, timeout=10) -> dict:
    """
    Create a checkout preference for one premium period. Returns provider json;
    ``init_point`` is the checkout URL.
    """
    payload = {
        "items": [
            {
                "title": PREFERENCE_TITLE,
                "unit_price": float(amount),
                "quantity": 1,
                "currency_id": currency,
            }
        ],
        "back_urls": {
            "success": settings.SUBSCRIPTION_SUCCESS_URL,
            "failure": settings.SUBSCRIPTION_FAILURE_URL,
        },
        "auto_return": "approved",
        "external_reference": str(user_id),
    }
    if getattr(settings, "MERCADOPAGO_WEBHOOK_URL", ""):
        payload["notification_url"] = settings.MERCADOPAGO_WEBHOOK_URL

    try:
        resp = requests.post(
            f"{_base_url()}/checkout/preferences", json=payload, headers=_headers(), timeout=timeout
        )
        resp.raise_for_status()
        return resp.json()
    except requests.RequestException as e:
        logger.exception("create_preference failed for user %s: %s", user_id, e)
        raise RemoteUnavailableError("Could not reach the payment provider.") from e


def fetch_payment(payment_id, timeout=10) -> dict:
    """
    Server-to-server lookup of a payment; webhook bodies are never trusted.
    """
    try:
        resp = requests.get(f"{_base_url()}/v1/payments/{payment_id}", headers=_headers(), timeout=timeout)
        resp.raise_for_status()
        return resp.json()
    except requests.RequestException as e:
        logger.exception("fetch_payment %s failed: %s", payment_id, e)
        raise RemoteUnavailableError("Could not reach the payment provider.") from e
