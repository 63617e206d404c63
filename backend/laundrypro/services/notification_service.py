# Overview: Service-layer operations for the dashboard notification feed.

"""
Business notification feed.

Notifications are side effects of business operations (order created, low
stock, payment received). They are written AFTER the originating transaction
has committed, and a failure here is logged and swallowed: it must never fail
or roll back the operation that triggered it.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Notification
from laundrypro.time_utils import utcnow


logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = {
    "ORDER_CREATED",
    "ORDER_READY",
    "ORDER_COMPLETED",
    "PAYMENT_RECEIVED",
    "LOW_STOCK",
    "SYSTEM",
}


def create_notification(
    business_id: int,
    type: str,
    title: str,
    message: str,
    data: dict | None = None,
) -> Notification | None:
    """Create a business-wide notification. Returns None on failure."""
    try:
        notification = Notification(
            business_id=business_id,
            user_id=None,
            type=type,
            title=title,
            message=message,
            data=data,
        )
        db.session.add(notification)
        db.session.commit()
        return notification
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to create %s notification for business %s", type, business_id)
        return None


def notify_order_created(order) -> None:
    create_notification(
        order.business_id,
        "ORDER_CREATED",
        "New Order Created",
        f"Order {order.order_number} has been created",
        {"order_id": order.id, "order_number": order.order_number},
    )


def notify_order_ready(order) -> None:
    create_notification(
        order.business_id,
        "ORDER_READY",
        "Order Ready",
        f"Order {order.order_number} is ready for pickup/delivery",
        {"order_id": order.id, "order_number": order.order_number},
    )


def notify_order_completed(order) -> None:
    create_notification(
        order.business_id,
        "ORDER_COMPLETED",
        "Order Completed",
        f"Order {order.order_number} has been completed",
        {"order_id": order.id, "order_number": order.order_number},
    )


def notify_payment_received(order, amount_paise: int) -> None:
    create_notification(
        order.business_id,
        "PAYMENT_RECEIVED",
        "Payment Received",
        f"Payment of ₹{amount_paise / 100:,.2f} received for order {order.order_number}",
        {"order_id": order.id, "amount_paise": amount_paise},
    )


def notify_stock_level(item, *, previous_stock: int, adjustment_type: str) -> None:
    """
    Stock threshold notifications after an adjustment:
    - Out of Stock: stock reached 0
    - Low Stock: stock crossed to <= min_stock (and > 0)
    - Stock Replenished: ADD moved stock from <= min_stock to > min_stock
    """
    data = {
        "item_id": item.id,
        "item_name": item.name,
        "current_stock": item.current_stock,
        "min_stock": item.min_stock,
    }
    was_low = previous_stock <= item.min_stock
    now_low = item.current_stock <= item.min_stock

    if item.current_stock == 0 and previous_stock > 0:
        create_notification(
            item.business_id,
            "LOW_STOCK",
            "Out of Stock",
            f"{item.name} is now out of stock",
            data,
        )
    elif now_low and not was_low:
        create_notification(
            item.business_id,
            "LOW_STOCK",
            "Low Stock Alert",
            f"{item.name} is running low ({item.current_stock} {item.unit} left)",
            data,
        )
    elif adjustment_type == "ADD" and was_low and not now_low:
        create_notification(
            item.business_id,
            "SYSTEM",
            "Stock Replenished",
            f"{item.name} restocked to {item.current_stock} {item.unit}",
            data,
        )


def list_notifications(business_id: int, *, unread_only: bool = False, limit: int = 50) -> dict:
    query = db.session.query(Notification).filter_by(business_id=business_id)
    if unread_only:
        query = query.filter_by(is_read=False)
    rows = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()
    unread = db.session.query(Notification).filter_by(business_id=business_id, is_read=False).count()
    return {"notifications": rows, "unread_count": unread}


def mark_read(business_id: int, notification_ids: list[int] | None = None) -> int:
    """Mark the given notifications (or all, when ids is None) as read."""
    query = db.session.query(Notification).filter_by(business_id=business_id, is_read=False)
    if notification_ids is not None:
        query = query.filter(Notification.id.in_(notification_ids))
    now = utcnow()
    count = 0
    for notification in query.all():
        notification.is_read = True
        notification.read_at = now
        count += 1
    db.session.commit()
    return count
