# Overview: Owner dashboard aggregates; period comparisons and today's workload for a business.

"""
Dashboard Aggregates

Periods are rolling windows ending now: week = the last 7 days, month = since the
same day last month, year = since the same day last year. The
previous period is the window of the same length immediately before.

Revenue is money collected (paid_paise) on orders created in the window;
CANCELLED orders are excluded from revenue, order counts and customers.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import and_, func, or_

from ..extensions import db
from ..models import Customer, Order
from ..validation import ValidationError
from .order_service import CLOSED_STATUSES, ORDER_STATUSES
from laundrypro.time_utils import add_months, start_of_day, to_utc_z, utcnow


TIME_RANGES = ("week", "month", "year")
RECENT_ORDER_LIMIT = 5


def period_bounds(time_range: str, now: datetime) -> tuple[datetime, datetime]:
    """(current_start, previous_start) for a rolling window ending now."""
    today = start_of_day(now)
    if time_range == "week":
        current = today - timedelta(days=7)
        return current, current - timedelta(days=7)
    if time_range == "month":
        current = add_months(today, -1)
        return current, add_months(current, -1)
    if time_range == "year":
        current = add_months(today, -12)
        return current, add_months(current, -12)
    raise ValidationError(f"time_range must be one of: {', '.join(TIME_RANGES)}")


def _period_totals(scope: list, start: datetime, end: datetime | None) -> dict:
    window = [*scope, Order.status != "CANCELLED", Order.created_at >= start]
    if end is not None:
        window.append(Order.created_at < end)
    revenue, orders, customers = (
        db.session.query(
            func.coalesce(func.sum(Order.paid_paise), 0),
            func.count(Order.id),
            func.count(func.distinct(Order.customer_id)),
        )
        .filter(*window)
        .one()
    )
    return {"revenue_paise": int(revenue or 0), "orders": orders, "active_customers": customers}


def _change_percent(current: int, previous: int) -> float:
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round((current - previous) * 100 / previous, 1)


def dashboard_stats(business_id: int, time_range: str = "week", store_id: int | None = None) -> dict:
    now = utcnow()
    current_start, previous_start = period_bounds(time_range, now)
    today = start_of_day(now)
    tomorrow = today + timedelta(days=1)

    scope = [Order.business_id == business_id]
    if store_id:
        scope.append(Order.store_id == store_id)

    current = _period_totals(scope, current_start, None)
    previous = _period_totals(scope, previous_start, current_start)
    summary = {
        key: {
            "current": current[key],
            "previous": previous[key],
            "change_percent": _change_percent(current[key], previous[key]),
        }
        for key in current
    }

    open_orders = db.session.query(Order).filter(*scope, Order.status.notin_(CLOSED_STATUSES))
    summary["pending_orders"] = open_orders.count()

    today_pickups = db.session.query(Order).filter(
        *scope,
        Order.order_type == "PICKUP",
        Order.pickup_date >= today,
        Order.pickup_date < tomorrow,
        Order.status.in_(("PICKUP", "IN_PROGRESS")),
    ).count()
    today_deliveries = db.session.query(Order).filter(
        *scope,
        Order.delivery_date >= today,
        Order.delivery_date < tomorrow,
        Order.status.in_(("READY", "OUT_FOR_DELIVERY")),
    ).count()
    pending_actions = db.session.query(Order).filter(
        *scope,
        or_(
            Order.status.in_(("PICKUP", "WORKSHOP_RETURNED")),
            and_(Order.status == "READY", Order.delivery_date < tomorrow),
        ),
    ).count()

    counts = dict(
        db.session.query(Order.status, func.count(Order.id))
        .filter(*scope, Order.created_at >= current_start)
        .group_by(Order.status)
        .all()
    )
    counted = sum(counts.values())
    distribution = [
        {
            "status": status,
            "count": counts[status],
            "percentage": round(counts[status] * 100 / counted) if counted else 0,
        }
        for status in ORDER_STATUSES
        if counts.get(status)
    ]

    recent = (
        db.session.query(Order, Customer.name)
        .join(Customer, Customer.id == Order.customer_id)
        .filter(*scope)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(RECENT_ORDER_LIMIT)
        .all()
    )

    return {
        "time_range": time_range,
        "summary": summary,
        "quick_stats": {
            "today_pickups": today_pickups,
            "today_deliveries": today_deliveries,
            "pending_actions": pending_actions,
        },
        "status_distribution": distribution,
        "recent_orders": [
            {
                "id": order.id,
                "order_number": order.order_number,
                "customer_name": customer_name,
                "status": order.status,
                "total_paise": order.total_paise,
                "created_at": to_utc_z(order.created_at),
            }
            for order, customer_name in recent
        ],
    }
