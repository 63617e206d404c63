# Overview: Thin wrapper around the Razorpay SDK used by subscription billing.

"""
Payment Gateway (Razorpay)

The gateway is opaque to the billing logic: it creates orders and verifies
signatures. Credentials come from app config (RAZORPAY_KEY_ID,
RAZORPAY_KEY_SECRET, RAZORPAY_WEBHOOK_SECRET).

Verification helpers return booleans; the SDK signals a bad signature with
razorpay.errors.SignatureVerificationError.
"""

from __future__ import annotations

import logging

import razorpay
from flask import current_app
from razorpay.errors import SignatureVerificationError


logger = logging.getLogger(__name__)

CURRENCY = "INR"
MIN_ORDER_AMOUNT_PAISE = 100


class GatewayError(Exception):
    """Raised when the gateway is unconfigured or refuses a request."""
    pass


def _client() -> razorpay.Client:
    key_id = current_app.config.get("RAZORPAY_KEY_ID")
    key_secret = current_app.config.get("RAZORPAY_KEY_SECRET")
    if not key_id or not key_secret:
        raise GatewayError("Payment gateway is not configured")
    return razorpay.Client(auth=(key_id, key_secret))


def key_id() -> str:
    return current_app.config.get("RAZORPAY_KEY_ID", "")


def create_order(amount_paise: int, receipt: str, notes: dict | None = None) -> dict:
    """Create a gateway order. Returns the SDK response (contains "id")."""
    if amount_paise < MIN_ORDER_AMOUNT_PAISE:
        raise GatewayError("Amount must be at least ₹1")
    client = _client()
    try:
        return client.order.create(data={
            "amount": amount_paise,
            "currency": CURRENCY,
            "receipt": receipt[:40],
            "notes": notes or {},
        })
    except (razorpay.errors.BadRequestError, razorpay.errors.GatewayError, razorpay.errors.ServerError) as e:
        logger.exception("Gateway order creation failed")
        raise GatewayError(f"Payment gateway error: {e}")


def verify_payment_signature(order_id: str, payment_id: str, signature: str) -> bool:
    client = _client()
    try:
        client.utility.verify_payment_signature({
            "razorpay_order_id": order_id,
            "razorpay_payment_id": payment_id,
            "razorpay_signature": signature,
        })
    except SignatureVerificationError:
        return False
    return True


def verify_webhook_signature(body: str, signature: str | None) -> bool:
    secret = current_app.config.get("RAZORPAY_WEBHOOK_SECRET")
    if not secret or not signature:
        return False
    # Webhook verification only needs the webhook secret, not API credentials
    client = razorpay.Client(auth=(key_id(), current_app.config.get("RAZORPAY_KEY_SECRET", "")))
    try:
        client.utility.verify_webhook_signature(body, signature, secret)
    except SignatureVerificationError:
        return False
    return True
