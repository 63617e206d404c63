# Overview: Fire-and-forget customer push messages through the Expo relay.

from __future__ import annotations

import logging

import httpx
from flask import current_app


logger = logging.getLogger(__name__)


# Customer-facing copy per order status
ORDER_STATUS_PUSH_MESSAGES = {
    "IN_PROGRESS": ("Order Picked Up", "Your order {order_number} is being processed."),
    "AT_WORKSHOP": ("Special Care", "Your order {order_number} is receiving specialist treatment."),
    "READY": ("Order Ready", "Your order {order_number} is ready!"),
    "OUT_FOR_DELIVERY": ("Out for Delivery", "Your order {order_number} is on its way."),
    "COMPLETED": ("Order Delivered", "Your order {order_number} has been delivered. Thank you!"),
    "CANCELLED": ("Order Cancelled", "Your order {order_number} has been cancelled."),
}


def send_push(token: str, title: str, body: str, data: dict | None = None) -> bool:
    """
    POST one message to the push relay.

    Returns True on an accepted ticket. Transport errors, non-2xx responses
    and error tickets are logged and reported as False, never raised.
    """
    if not current_app.config.get("PUSH_ENABLED", True):
        return False

    message = {"to": token, "sound": "default", "title": title, "body": body}
    if data:
        message["data"] = data

    try:
        response = httpx.post(
            current_app.config["PUSH_RELAY_URL"],
            json=message,
            headers={"Accept": "application/json"},
            timeout=current_app.config.get("PUSH_TIMEOUT_SECONDS", 5),
        )
        response.raise_for_status()
        payload = response.json()
    except (httpx.HTTPError, ValueError):
        logger.exception("Push relay request failed")
        return False

    if not isinstance(payload, dict):
        logger.error("Push relay returned an unexpected body: %r", payload)
        return False
    ticket = payload.get("data") or {}
    if isinstance(ticket, dict) and ticket.get("status") == "error":
        logger.error("Push relay rejected message: %s", ticket.get("message"))
        return False
    return True


def send_customer_push(customer, title: str, body: str, data: dict | None = None) -> bool:
    if customer is None or not customer.push_enabled or not customer.expo_push_token:
        return False
    return send_push(customer.expo_push_token, title, body, data)


def send_order_status_push(order) -> bool:
    template = ORDER_STATUS_PUSH_MESSAGES.get(order.status)
    if not template:
        return False
    title, body = template
    return send_customer_push(
        order.customer,
        title,
        body.format(order_number=order.order_number),
        {"type": "ORDER_STATUS", "order_id": order.id, "status": order.status},
    )
