# Overview: Service-layer operations for orders; encapsulates business logic and database work.

"""
Order Lifecycle Service

================================================================================
STATE MACHINE (order)
================================================================================

    PICKUP -> IN_PROGRESS -> {AT_WORKSHOP | READY} -> OUT_FOR_DELIVERY -> COMPLETED

    PICKUP:            pickup requested, items not yet received
    IN_PROGRESS:       items at the store being processed
    AT_WORKSHOP:       every item is with an external partner
    WORKSHOP_RETURNED: items back from the partner, awaiting QC
    READY:             ready for collection or delivery
    OUT_FOR_DELIVERY:  with a driver
    COMPLETED:         handed over and fully paid (rework may reopen it)
    CANCELLED:         terminal; reachable from every non-terminal state

Item statuses are finer grained (RECEIVED, IN_PROGRESS, AT_WORKSHOP,
WORKSHOP_RETURNED, READY, COMPLETED). An explicit order status change pushes
the mapped status down to every item (ORDER_TO_ITEM_STATUS); item-level
workshop routing pushes back up only when ALL items agree (workshop_service).

RULES:
1. Only transitions listed in STATUS_TRANSITIONS are legal
2. COMPLETED requires paid >= total
3. READY is refused while any item is still AT_WORKSHOP (except coming back
   from OUT_FOR_DELIVERY)
4. Every status change appends one OrderStatusHistory row in the same
   transaction as the change
5. Notifications and customer push run AFTER commit and never fail the change

FINANCIALS (paise):
    total = subtotal - discount + (gst if gst_enabled else legacy flat tax)
    gst   = round((subtotal - discount) * gst_percentage_bps / 10000)
================================================================================
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, or_

from ..extensions import db
from ..models import Customer, Order, OrderItem, OrderPayment, OrderStatusHistory, User
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    apply_patch,
    require_amount_paise,
    validate_payload,
)
from . import catalog_service, notification_service, push_service
from .concurrency import lock_for_update, run_with_retry
from .order_number_service import create_order_with_retry, generate_order_number, generate_tag_number
from .tenant_service import (
    get_settings,
    require_customer_in_business,
    require_order_in_business,
    require_store_in_business,
)
from laundrypro.time_utils import parse_iso_datetime, start_of_day, utcnow


ORDER_STATUSES = (
    "PICKUP",
    "IN_PROGRESS",
    "AT_WORKSHOP",
    "WORKSHOP_RETURNED",
    "READY",
    "OUT_FOR_DELIVERY",
    "COMPLETED",
    "CANCELLED",
)
ITEM_STATUSES = ("RECEIVED", "IN_PROGRESS", "AT_WORKSHOP", "WORKSHOP_RETURNED", "READY", "COMPLETED")
ORDER_TYPES = ("WALKIN", "PICKUP")
PAYMENT_MODES = ("CASH", "UPI", "CARD", "ONLINE", "OTHER")

STATUS_TRANSITIONS = {
    "PICKUP": ("IN_PROGRESS", "CANCELLED"),
    "IN_PROGRESS": ("READY", "AT_WORKSHOP", "CANCELLED"),
    "AT_WORKSHOP": ("WORKSHOP_RETURNED", "IN_PROGRESS", "CANCELLED"),
    "WORKSHOP_RETURNED": ("READY", "IN_PROGRESS", "AT_WORKSHOP", "CANCELLED"),
    "READY": ("OUT_FOR_DELIVERY", "COMPLETED", "IN_PROGRESS", "AT_WORKSHOP", "CANCELLED"),
    "OUT_FOR_DELIVERY": ("COMPLETED", "READY", "CANCELLED"),
    "COMPLETED": ("IN_PROGRESS",),
    "CANCELLED": (),
}

# None: items keep their status
ORDER_TO_ITEM_STATUS = {
    "PICKUP": "RECEIVED",
    "IN_PROGRESS": "IN_PROGRESS",
    "AT_WORKSHOP": "AT_WORKSHOP",
    "WORKSHOP_RETURNED": "WORKSHOP_RETURNED",
    "READY": "READY",
    "OUT_FOR_DELIVERY": "READY",
    "COMPLETED": "COMPLETED",
    "CANCELLED": None,
}

# The cancel endpoint is narrower than the transition matrix: an order with a
# driver on the road has to come back to READY first.
CANCELLABLE_STATUSES = {"PICKUP", "IN_PROGRESS", "AT_WORKSHOP", "WORKSHOP_RETURNED", "READY"}
ITEM_EDITABLE_STATUSES = {"PICKUP", "IN_PROGRESS"}
CLOSED_STATUSES = {"COMPLETED", "CANCELLED"}

DEFAULT_WORKSHOP_PARTNER = "External Workshop"

DEFAULT_STATUS_NOTES = {
    ("PICKUP", "IN_PROGRESS"): "Items picked up from customer and received at store",
    ("PICKUP", "CANCELLED"): "Pickup request cancelled",
    ("IN_PROGRESS", "READY"): "Processing completed, order ready for customer",
    ("IN_PROGRESS", "AT_WORKSHOP"): "All items sent to external workshop",
    ("IN_PROGRESS", "CANCELLED"): "Order cancelled during processing",
    ("AT_WORKSHOP", "WORKSHOP_RETURNED"): "All items received back from workshop",
    ("AT_WORKSHOP", "IN_PROGRESS"): "Items recalled from workshop, processing in-house",
    ("AT_WORKSHOP", "CANCELLED"): "Order cancelled while at workshop",
    ("WORKSHOP_RETURNED", "READY"): "Items verified and ready for customer",
    ("WORKSHOP_RETURNED", "IN_PROGRESS"): "Issues found, sent back for rework",
    ("WORKSHOP_RETURNED", "AT_WORKSHOP"): "Sent back to workshop for corrections",
    ("WORKSHOP_RETURNED", "CANCELLED"): "Order cancelled after workshop return",
    ("READY", "OUT_FOR_DELIVERY"): "Order dispatched for home delivery",
    ("READY", "COMPLETED"): "Customer picked up order from store",
    ("READY", "IN_PROGRESS"): "Order sent back for additional processing",
    ("READY", "AT_WORKSHOP"): "Order sent to workshop for special treatment",
    ("READY", "CANCELLED"): "Order cancelled before delivery",
    ("OUT_FOR_DELIVERY", "COMPLETED"): "Order successfully delivered to customer",
    ("OUT_FOR_DELIVERY", "READY"): "Delivery attempt failed, order returned to store",
    ("OUT_FOR_DELIVERY", "CANCELLED"): "Order cancelled during delivery",
    ("COMPLETED", "IN_PROGRESS"): "Order returned for reprocessing due to issues",
}

ORDER_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"pickup_date", "delivery_date", "special_instructions", "discount_paise"},
)


class OrderError(Exception):
    """
    Raised when an order operation violates a lifecycle or payment rule.

    This is a state-conflict error (400), not a technical error.
    """
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _rupees(paise: int) -> str:
    return f"₹{paise / 100:.2f}"


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in STATUS_TRANSITIONS.get(from_status, ())


def derive_payment_status(paid_paise: int, total_paise: int) -> str:
    if paid_paise <= 0:
        return "UNPAID"
    if paid_paise >= total_paise:
        return "PAID"
    return "PARTIAL"


def price_line(unit_price_paise: int, quantity: int, is_express: bool, express_multiplier_bps: int) -> int:
    """unit x qty, times the express multiplier (basis points) when flagged."""
    base = unit_price_paise * quantity
    if not is_express:
        return base
    return (base * express_multiplier_bps + 5000) // 10000


def line_subtotal(spec: dict, express_multiplier_bps: int) -> int:
    """Catalogue express prices replace the multiplier for express lines."""
    if spec["is_express"] and spec.get("express_unit_price_paise") is not None:
        return spec["express_unit_price_paise"] * spec["quantity"]
    return price_line(spec["unit_price_paise"], spec["quantity"], spec["is_express"], express_multiplier_bps)


def recalculate_totals(order: Order) -> None:
    """Recompute gst/total from subtotal, discount and the order's frozen tax settings."""
    taxable = max(order.subtotal_paise - order.discount_paise, 0)
    if order.gst_enabled:
        order.gst_paise = (taxable * order.gst_percentage_bps + 5000) // 10000
        order.total_paise = taxable + order.gst_paise
    else:
        order.gst_paise = 0
        order.total_paise = taxable + (order.tax_paise or 0)


def _parse_date(value, field: str) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO-8601 datetime")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


def _treatment_name(raw: dict, catalog: dict) -> str | None:
    name = raw.get("treatment_name") or catalog.get("treatment_name")
    return str(name).strip()[:120] if name else None


def _clean_items(business_id: int, items) -> list[dict]:
    """
    Validate the item payload list up front (before any transaction starts).

    A line naming item_id + treatment_id is priced from the catalogue; an
    explicit item_name or unit_price_paise on the line still wins.
    """
    if items is None:
        return []
    if not isinstance(items, list):
        raise ValidationError("items must be a list")

    cleaned = []
    for position, raw in enumerate(items, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"Item {position}: must be an object")
        catalog = {}
        item_id, treatment_id = raw.get("item_id"), raw.get("treatment_id")
        if item_id is not None or treatment_id is not None:
            if not (item_id and treatment_id):
                raise ValidationError(f"Item {position}: item_id and treatment_id must be given together")
            catalog = catalog_service.resolve_line(business_id, item_id, treatment_id)

        name = str(raw.get("item_name") or catalog.get("item_name") or "").strip()
        if not name:
            raise ValidationError(f"Item {position}: item_name is required")
        quantity = raw.get("quantity", 1)
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError(f"Item {position}: quantity must be at least 1")
        unit_price = raw.get("unit_price_paise")
        express_price = None
        if unit_price is None and catalog:
            unit_price = catalog["unit_price_paise"]
            express_price = catalog["express_price_paise"]
        if isinstance(unit_price, bool) or not isinstance(unit_price, int) or unit_price < 0:
            raise ValidationError(f"Item {position}: unit_price_paise must be >= 0")
        require_amount_paise(unit_price, f"Item {position}: unit_price_paise")
        cleaned.append({
            "item_name": name[:120],
            "treatment_name": _treatment_name(raw, catalog),
            "catalog_item_id": item_id,
            "treatment_id": treatment_id,
            "quantity": quantity,
            "unit_price_paise": unit_price,
            "express_unit_price_paise": express_price,
            "is_express": bool(raw.get("is_express", False)),
            "color": raw.get("color"),
            "notes": raw.get("notes"),
        })
    return cleaned


def _build_items(order: Order, specs: list[dict], *, start_index: int, status: str, express_bps: int) -> int:
    """Attach OrderItems to the order; returns the subtotal they add."""
    added = 0
    for offset, spec in enumerate(specs):
        subtotal = line_subtotal(spec, express_bps)
        item = OrderItem(
            order_id=order.id,
            business_id=order.business_id,
            tag_number=generate_tag_number(order.order_number, start_index + offset),
            item_name=spec["item_name"],
            treatment_name=spec["treatment_name"],
            catalog_item_id=spec["catalog_item_id"],
            treatment_id=spec["treatment_id"],
            quantity=spec["quantity"],
            unit_price_paise=spec["unit_price_paise"],
            is_express=spec["is_express"],
            subtotal_paise=subtotal,
            status=status,
            color=spec["color"],
            notes=spec["notes"],
        )
        db.session.add(item)
        added += subtotal
    return added


def append_history(order: Order, from_status: str | None, to_status: str, actor_id: int | None, notes: str | None) -> OrderStatusHistory:
    entry = OrderStatusHistory(
        order_id=order.id,
        from_status=from_status,
        to_status=to_status,
        changed_by_user_id=actor_id,
        notes=notes,
    )
    db.session.add(entry)
    return entry


def _reverse_customer_totals(order: Order) -> None:
    customer = db.session.get(Customer, order.customer_id)
    if customer is None or not order.items:
        return
    customer.total_orders = max((customer.total_orders or 0) - 1, 0)
    customer.total_spent_paise = max((customer.total_spent_paise or 0) - order.total_paise, 0)


def _after_status_change(order: Order) -> None:
    if order.status == "READY":
        notification_service.notify_order_ready(order)
    elif order.status == "COMPLETED":
        notification_service.notify_order_completed(order)
    push_service.send_order_status_push(order)


def _check_monthly_limit(business_id: int, limit: int) -> None:
    month_start = start_of_day(utcnow()).replace(day=1)
    count = (
        db.session.query(Order)
        .filter(Order.business_id == business_id, Order.created_at >= month_start)
        .count()
    )
    if count >= limit:
        raise OrderError(
            f"Monthly order limit reached ({limit}). Upgrade your plan to create more orders.",
            details={"limit": limit},
        )


# -- Queries --

def get_order(business_id: int, order_id: int) -> Order:
    return require_order_in_business(order_id, business_id)


def list_orders(
    business_id: int,
    *,
    status: str | None = None,
    store_id: int | None = None,
    customer_id: int | None = None,
    search: str | None = None,
    page: int = 1,
    per_page: int = 20,
) -> dict:
    query = db.session.query(Order).filter(Order.business_id == business_id)
    if status:
        statuses = [s.strip().upper() for s in status.split(",") if s.strip()]
        query = query.filter(Order.status.in_(statuses))
    if store_id:
        query = query.filter(Order.store_id == store_id)
    if customer_id:
        query = query.filter(Order.customer_id == customer_id)
    if search:
        like = f"%{search.strip()}%"
        query = query.join(Customer, Customer.id == Order.customer_id).filter(
            or_(
                Order.order_number.ilike(like),
                Customer.name.ilike(like),
                Customer.phone.ilike(like),
            )
        )

    page = max(page, 1)
    per_page = min(max(per_page, 1), 100)
    total = query.count()
    orders = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {"orders": orders, "total": total, "page": page, "per_page": per_page}


def list_status_history(business_id: int, order_id: int) -> list[OrderStatusHistory]:
    order = require_order_in_business(order_id, business_id)
    return (
        db.session.query(OrderStatusHistory)
        .filter_by(order_id=order.id)
        .order_by(OrderStatusHistory.created_at.asc(), OrderStatusHistory.id.asc())
        .all()
    )


def order_stats(business_id: int, store_id: int | None = None) -> dict:
    """
    Counts per status, the active total (not COMPLETED or CANCELLED), items
    currently with a workshop, and today's order count and billed total.
    """
    scope = [Order.business_id == business_id]
    if store_id:
        scope.append(Order.store_id == store_id)

    counts = dict(
        db.session.query(Order.status, func.count(Order.id))
        .filter(*scope)
        .group_by(Order.status)
        .all()
    )
    by_status = {status: counts.get(status, 0) for status in ORDER_STATUSES}

    workshop_items = (
        db.session.query(func.count(OrderItem.id))
        .join(Order, Order.id == OrderItem.order_id)
        .filter(*scope, OrderItem.sent_to_workshop.is_(True), OrderItem.status == "AT_WORKSHOP")
        .scalar()
    )

    today_count, today_revenue = (
        db.session.query(func.count(Order.id), func.coalesce(func.sum(Order.total_paise), 0))
        .filter(*scope, Order.created_at >= start_of_day(utcnow()))
        .one()
    )
    return {
        "by_status": by_status,
        "active": sum(n for status, n in by_status.items() if status not in CLOSED_STATUSES),
        "workshop_items": workshop_items or 0,
        "today": {"orders": today_count, "revenue_paise": int(today_revenue or 0)},
    }


# -- Intake --

def create_order(business_id: int, payload: dict, actor_id: int | None = None) -> Order:
    """
    Create an order (walk-in counter intake or a pickup request).

    WALKIN: items required; starts IN_PROGRESS with items IN_PROGRESS.
    PICKUP: pickup_date required; starts PICKUP with items RECEIVED (items
            are usually added later by the driver or at the counter).
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    order_type = str(payload.get("order_type") or "WALKIN").upper()
    if order_type not in ORDER_TYPES:
        raise ValidationError(f"order_type must be one of: {', '.join(ORDER_TYPES)}")

    store_id = payload.get("store_id")
    customer_id = payload.get("customer_id")
    if not store_id or not customer_id:
        raise ValidationError("store_id and customer_id are required")

    specs = _clean_items(business_id, payload.get("items"))
    pickup_date = _parse_date(payload.get("pickup_date"), "pickup_date")
    delivery_date = _parse_date(payload.get("delivery_date"), "delivery_date")

    if order_type == "WALKIN" and not specs:
        raise ValidationError("Walk-in orders require at least one item")
    if order_type == "PICKUP" and pickup_date is None:
        raise ValidationError("pickup_date is required for pickup orders")

    discount = require_amount_paise(payload.get("discount_paise", 0) or 0, "discount_paise")
    paid = require_amount_paise(payload.get("paid_paise", 0) or 0, "paid_paise")
    payment_mode = str(payload.get("payment_mode") or "CASH").upper()
    if paid and payment_mode not in PAYMENT_MODES:
        raise ValidationError(f"payment_mode must be one of: {', '.join(PAYMENT_MODES)}")

    store = require_store_in_business(store_id, business_id, active_only=True)
    customer = require_customer_in_business(customer_id, business_id)
    settings = get_settings(business_id)
    _check_monthly_limit(business_id, settings.max_monthly_orders)

    initial_status = "PICKUP" if order_type == "PICKUP" else "IN_PROGRESS"
    item_status = "RECEIVED" if order_type == "PICKUP" else "IN_PROGRESS"

    subtotal_preview = sum(line_subtotal(s, settings.express_multiplier_bps) for s in specs)
    if discount > subtotal_preview:
        raise ValidationError("discount_paise cannot exceed the order subtotal")

    def _create():
        now = utcnow()
        order = Order(
            business_id=business_id,
            store_id=store.id,
            customer_id=customer.id,
            order_number=generate_order_number(business_id, store.name, now),
            order_type=order_type,
            status=initial_status,
            discount_paise=discount,
            gst_enabled=settings.gst_enabled,
            gst_percentage_bps=settings.gst_percentage_bps if settings.gst_enabled else 0,
            tax_paise=0 if settings.gst_enabled else settings.legacy_tax_paise,
            pickup_date=pickup_date,
            delivery_date=delivery_date,
            picked_up_at=now if order_type == "WALKIN" else None,
            special_instructions=payload.get("special_instructions"),
            created_by_user_id=actor_id,
        )
        db.session.add(order)
        db.session.flush()

        order.subtotal_paise = _build_items(
            order, specs, start_index=1, status=item_status, express_bps=settings.express_multiplier_bps
        )
        recalculate_totals(order)

        if paid > order.total_paise:
            raise ValidationError("paid_paise cannot exceed the order total")
        order.paid_paise = paid
        order.payment_status = derive_payment_status(paid, order.total_paise)

        append_history(
            order,
            None,
            initial_status,
            actor_id,
            "Pickup requested" if order_type == "PICKUP" else "Order created at counter",
        )

        if paid > 0:
            db.session.add(OrderPayment(
                order_id=order.id,
                amount_paise=paid,
                mode=payment_mode,
                notes="Advance payment at order creation",
                received_by_user_id=actor_id,
            ))

        if specs:
            customer.total_orders = (customer.total_orders or 0) + 1
            customer.total_spent_paise = (customer.total_spent_paise or 0) + order.total_paise

        db.session.commit()
        return order

    order = create_order_with_retry(_create)
    notification_service.notify_order_created(order)
    return order


def add_items(
    business_id: int,
    order_id: int,
    items,
    *,
    transition_to_in_progress: bool = True,
    delivery_date=None,
    actor_id: int | None = None,
) -> dict:
    """
    Add items to a PICKUP or IN_PROGRESS order.

    Tag numbers continue from the existing item count. With
    transition_to_in_progress (default) a PICKUP order moves to IN_PROGRESS.
    delivery_date is only applied when the order has none yet.
    """
    specs = _clean_items(business_id, items)
    if not specs:
        raise ValidationError("At least one item is required")
    delivery_dt = _parse_date(delivery_date, "delivery_date")

    def _op():
        order = require_order_in_business(order_id, business_id, for_update=True)
        if order.status not in ITEM_EDITABLE_STATUSES:
            raise OrderError(
                f"Cannot add items to order in {order.status} status",
                details={"allowed_statuses": sorted(ITEM_EDITABLE_STATUSES)},
            )

        settings = get_settings(business_id)
        existing = list(order.items)
        had_items = bool(existing)
        previous_total = order.total_paise
        will_transition = transition_to_in_progress and order.status == "PICKUP"
        item_status = "IN_PROGRESS" if (order.status == "IN_PROGRESS" or will_transition) else "RECEIVED"

        order.subtotal_paise += _build_items(
            order,
            specs,
            start_index=len(existing) + 1,
            status=item_status,
            express_bps=settings.express_multiplier_bps,
        )
        recalculate_totals(order)
        order.payment_status = derive_payment_status(order.paid_paise, order.total_paise)

        if will_transition:
            for item in existing:
                if item.status == "RECEIVED":
                    item.status = "IN_PROGRESS"
            order.status = "IN_PROGRESS"
            order.picked_up_at = order.picked_up_at or utcnow()
            append_history(
                order,
                "PICKUP",
                "IN_PROGRESS",
                actor_id,
                f"Items received ({len(specs)} items added). Processing started.",
            )

        if delivery_dt is not None and order.delivery_date is None:
            order.delivery_date = delivery_dt

        customer = db.session.get(Customer, order.customer_id)
        if customer is not None:
            if not had_items:
                customer.total_orders = (customer.total_orders or 0) + 1
            customer.total_spent_paise = (customer.total_spent_paise or 0) + (order.total_paise - previous_total)

        db.session.commit()
        return {"order": order, "items_added": len(specs), "transitioned": will_transition}

    result = run_with_retry(_op)
    if result["transitioned"]:
        push_service.send_order_status_push(result["order"])
    return result


# -- Status changes --

def update_status(
    business_id: int,
    order_id: int,
    new_status: str,
    *,
    actor_id: int | None = None,
    notes: str | None = None,
    rework_reason: str | None = None,
    workshop_partner_name: str | None = None,
    workshop_notes: str | None = None,
) -> dict:
    """
    Move the order to new_status, pushing the mapped status down to items.

    Returns {"order", "previous_status", "is_rework"}.
    """
    new_status = str(new_status or "").upper()
    if new_status not in ORDER_STATUSES:
        raise ValidationError("Invalid status provided")

    def _op():
        order = require_order_in_business(order_id, business_id, for_update=True)
        current = order.status
        allowed = STATUS_TRANSITIONS[current]

        if new_status not in allowed:
            raise OrderError(
                f"Cannot transition from {current} to {new_status}. "
                f"Allowed: {', '.join(allowed) or 'none'}",
                details={"current_status": current, "allowed": list(allowed)},
            )

        if new_status == "COMPLETED" and order.paid_paise < order.total_paise:
            raise OrderError(
                f"Cannot mark as completed. Outstanding balance: {_rupees(order.due_paise)}",
                details={"due_paise": order.due_paise},
            )

        items = list(order.items)
        if new_status == "READY" and current != "OUT_FOR_DELIVERY":
            at_workshop = [item for item in items if item.status == "AT_WORKSHOP"]
            if at_workshop:
                raise OrderError(f"Cannot mark as ready. {len(at_workshop)} item(s) still at workshop.")

        now = utcnow()
        is_rework = current == "COMPLETED" and new_status == "IN_PROGRESS"
        history_notes = notes or DEFAULT_STATUS_NOTES.get((current, new_status))

        if is_rework:
            order.is_rework = True
            order.rework_count = (order.rework_count or 0) + 1
            order.completed_at = None
            if rework_reason:
                order.rework_reason = rework_reason
                history_notes = f"Rework reason: {rework_reason}. {history_notes}"
            for item in items:
                item.status = "IN_PROGRESS"
                item.sent_to_workshop = False
                item.workshop_partner_name = None
                item.workshop_sent_date = None
                item.workshop_returned_date = None
                item.workshop_notes = None

        elif new_status == "AT_WORKSHOP":
            partner = workshop_partner_name or DEFAULT_WORKSHOP_PARTNER
            for item in items:
                item.status = "AT_WORKSHOP"
                item.sent_to_workshop = True
                item.workshop_partner_name = partner
                item.workshop_sent_date = now
                item.workshop_returned_date = None
                if workshop_notes is not None:
                    item.workshop_notes = workshop_notes
            if workshop_partner_name:
                history_notes = f"Sent to: {workshop_partner_name}. {history_notes}"

        elif current == "AT_WORKSHOP" and new_status == "WORKSHOP_RETURNED":
            for item in items:
                item.status = "WORKSHOP_RETURNED"
                item.workshop_returned_date = now

        elif current == "WORKSHOP_RETURNED" and new_status == "IN_PROGRESS":
            for item in items:
                item.status = "IN_PROGRESS"
                item.sent_to_workshop = False
                item.workshop_sent_date = None
                item.workshop_returned_date = None

        elif new_status == "CANCELLED":
            _reverse_customer_totals(order)

        else:
            item_status = ORDER_TO_ITEM_STATUS[new_status]
            if item_status:
                for item in items:
                    item.status = item_status

        if current == "PICKUP" and new_status == "IN_PROGRESS":
            order.picked_up_at = order.picked_up_at or now
        if new_status == "COMPLETED":
            order.completed_at = now
            order.delivered_at = order.delivered_at or now
            order.payment_status = "PAID"

        order.status = new_status
        append_history(order, current, new_status, actor_id, history_notes)
        db.session.commit()
        return {"order": order, "previous_status": current, "is_rework": is_rework}

    result = run_with_retry(_op)
    _after_status_change(result["order"])
    return result


def cancel_order(business_id: int, order_id: int, actor_id: int | None = None) -> Order:
    def _op():
        order = require_order_in_business(order_id, business_id, for_update=True)
        if order.status not in CANCELLABLE_STATUSES:
            raise OrderError(
                f"Cannot cancel order in {order.status} status",
                details={"cancellable_statuses": sorted(CANCELLABLE_STATUSES)},
            )
        previous = order.status
        _reverse_customer_totals(order)
        order.status = "CANCELLED"
        append_history(order, previous, "CANCELLED", actor_id, "Order cancelled by user")
        db.session.commit()
        return order

    order = run_with_retry(_op)
    push_service.send_order_status_push(order)
    return order


# -- Payments and edits --

def record_payment(
    business_id: int,
    order_id: int,
    amount_paise,
    mode,
    *,
    notes: str | None = None,
    actor_id: int | None = None,
) -> dict:
    amount = require_amount_paise(amount_paise, "amount_paise", allow_zero=False)
    mode = str(mode or "").upper()
    if not mode:
        raise ValidationError("Payment mode is required")
    if mode not in PAYMENT_MODES:
        raise ValidationError(f"mode must be one of: {', '.join(PAYMENT_MODES)}")

    def _op():
        order = require_order_in_business(order_id, business_id, for_update=True)
        if order.status == "CANCELLED":
            raise OrderError("Cannot record payment for a cancelled order")
        due = order.due_paise
        if amount > due:
            raise OrderError(
                f"Payment amount ({_rupees(amount)}) exceeds due amount ({_rupees(due)})",
                details={"due_paise": due},
            )

        payment = OrderPayment(
            order_id=order.id,
            amount_paise=amount,
            mode=mode,
            notes=notes,
            received_by_user_id=actor_id,
        )
        db.session.add(payment)
        order.paid_paise += amount
        order.payment_status = derive_payment_status(order.paid_paise, order.total_paise)
        db.session.commit()
        return {"order": order, "payment": payment}

    result = run_with_retry(_op)
    notification_service.notify_payment_received(result["order"], amount)
    return result


def update_order(business_id: int, order_id: int, payload: dict) -> Order:
    """
    Patch scheduling/notes/discount fields.

    Absent keys are unchanged; explicit null clears (discount null -> 0).
    """
    patch = validate_payload(model=Order, payload=payload, policy=ORDER_UPDATE_POLICY, partial=True)
    if patch.get("discount_paise") is not None:
        require_amount_paise(patch["discount_paise"], "discount_paise")

    def _op():
        order = require_order_in_business(order_id, business_id, for_update=True)
        if order.status in CLOSED_STATUSES:
            raise OrderError(f"Cannot edit an order in {order.status} status")

        if "discount_paise" in patch:
            discount = patch.pop("discount_paise") or 0
            if discount > order.subtotal_paise:
                raise ValidationError("discount_paise cannot exceed the order subtotal")
            previous_total = order.total_paise
            order.discount_paise = discount
            recalculate_totals(order)
            if order.total_paise < order.paid_paise:
                raise OrderError("Discount would make the total less than the amount already paid")
            order.payment_status = derive_payment_status(order.paid_paise, order.total_paise)
            customer = db.session.get(Customer, order.customer_id)
            if customer is not None and order.items:
                customer.total_spent_paise = max(
                    (customer.total_spent_paise or 0) + order.total_paise - previous_total, 0
                )

        apply_patch(order, patch)
        db.session.commit()
        return order

    return run_with_retry(_op)


def assign_driver(business_id: int, order_id: int, driver_id: int | None) -> Order:
    def _op():
        order = require_order_in_business(order_id, business_id, for_update=True)
        if order.status in CLOSED_STATUSES:
            raise OrderError(f"Cannot assign a driver to an order in {order.status} status")

        if driver_id:
            driver = db.session.get(User, driver_id)
            if (
                not driver
                or driver.business_id != business_id
                or driver.role != "DRIVER"
                or not driver.is_active
            ):
                raise ValidationError("Driver not found or inactive")
            order.driver_id = driver.id
            order.assigned_at = utcnow()
        else:
            order.driver_id = None
            order.assigned_at = None

        db.session.commit()
        return order

    return run_with_retry(_op)


# -- Driver app --

def list_driver_orders(business_id: int, driver_id: int) -> list[Order]:
    return (
        db.session.query(Order)
        .filter(
            Order.business_id == business_id,
            Order.driver_id == driver_id,
            Order.status.in_(("PICKUP", "READY", "OUT_FOR_DELIVERY")),
        )
        .order_by(Order.pickup_date.asc(), Order.id.asc())
        .all()
    )


def _driver_transition(
    business_id: int,
    order_id: int,
    driver_id: int,
    *,
    from_statuses: set[str],
    to_status: str,
    note: str,
    not_found: str,
) -> Order:
    def _op():
        order = lock_for_update(
            db.session.query(Order).filter(
                Order.id == order_id,
                Order.business_id == business_id,
                Order.driver_id == driver_id,
                Order.status.in_(from_statuses),
            )
        ).first()
        if not order:
            raise NotFoundError(not_found)
        if to_status == "COMPLETED" and order.paid_paise < order.total_paise:
            raise OrderError(
                f"Cannot mark as completed. Outstanding balance: {_rupees(order.due_paise)}",
                details={"due_paise": order.due_paise},
            )

        now = utcnow()
        previous = order.status
        item_status = ORDER_TO_ITEM_STATUS[to_status]
        for item in order.items:
            if to_status == "IN_PROGRESS" and item.status != "RECEIVED":
                continue
            item.status = item_status

        if to_status == "IN_PROGRESS":
            order.picked_up_at = now
        if to_status == "COMPLETED":
            order.delivered_at = now
            order.completed_at = now
            order.payment_status = "PAID"

        order.status = to_status
        append_history(order, previous, to_status, driver_id, note)
        db.session.commit()
        return order

    order = run_with_retry(_op)
    _after_status_change(order)
    return order


def driver_pickup(business_id: int, order_id: int, driver_id: int) -> Order:
    return _driver_transition(
        business_id, order_id, driver_id,
        from_statuses={"PICKUP"},
        to_status="IN_PROGRESS",
        note="Picked up by driver",
        not_found="Order not found or not available for pickup",
    )


def driver_start_delivery(business_id: int, order_id: int, driver_id: int) -> Order:
    return _driver_transition(
        business_id, order_id, driver_id,
        from_statuses={"READY"},
        to_status="OUT_FOR_DELIVERY",
        note="Out for delivery",
        not_found="Order not found or not ready for delivery",
    )


def driver_deliver(business_id: int, order_id: int, driver_id: int) -> Order:
    """Driver hand-over. Cash collected at the door is recorded first (record_payment)."""
    return _driver_transition(
        business_id, order_id, driver_id,
        from_statuses={"READY", "OUT_FOR_DELIVERY"},
        to_status="COMPLETED",
        note="Delivered by driver",
        not_found="Order not found or cannot be delivered",
    )
