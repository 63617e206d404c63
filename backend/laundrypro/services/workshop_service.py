# Overview: Service-layer operations for workshop routing; encapsulates business logic and database work.

"""
Workshop Routing

Moves individual order items to and from an external processing partner and
reconciles the parent order once every item agrees.

SEND (batch, partial success):
    order must be IN_PROGRESS or READY
    eligible item: status in {RECEIVED, IN_PROGRESS, READY} and not yet sent
    ineligible items are skipped; if none are eligible the call fails with a
    reason per item
    order -> AT_WORKSHOP only when ALL of its items are AT_WORKSHOP

ITEM ACTIONS (single item):
    mark_returned    AT_WORKSHOP                    -> WORKSHOP_RETURNED
    mark_ready       WORKSHOP_RETURNED              -> READY (QC passed)
    return_to_store  AT_WORKSHOP | WORKSHOP_RETURNED -> READY
    then: order -> READY when ALL items are READY/COMPLETED and the order is
    AT_WORKSHOP, WORKSHOP_RETURNED or IN_PROGRESS

Each call runs as one transaction: items, order and history row commit
together or not at all.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Order, OrderItem
from ..validation import NotFoundError, ValidationError
from . import notification_service, push_service
from .concurrency import lock_for_update, run_with_retry
from .order_service import DEFAULT_WORKSHOP_PARTNER, append_history
from .tenant_service import require_order_in_business
from laundrypro.time_utils import start_of_day, utcnow


SENDABLE_ORDER_STATUSES = ("IN_PROGRESS", "READY")
SENDABLE_ITEM_STATUSES = ("RECEIVED", "IN_PROGRESS", "READY")
READY_ITEM_STATUSES = {"READY", "COMPLETED"}
AUTO_READY_ORDER_STATUSES = {"AT_WORKSHOP", "WORKSHOP_RETURNED", "IN_PROGRESS"}
WORKSHOP_ACTIONS = ("mark_returned", "mark_ready", "return_to_store")
WORKSHOP_TABS = ("processing", "ready", "history")


class WorkshopError(Exception):
    """Raised when an item or order is not in a state that allows the workshop action."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _append_note(existing: str | None, note: str) -> str:
    return f"{existing}\n{note}" if existing else note


def item_rejection_reason(item: OrderItem | None, item_id: int) -> str | None:
    """Why an item cannot be sent, or None when it is eligible."""
    if item is None:
        return f"Item {item_id}: not found in order"
    if item.sent_to_workshop:
        return f"{item.item_name}: already at workshop"
    if item.status not in SENDABLE_ITEM_STATUSES:
        return f"{item.item_name}: status is {item.status}"
    return None


def send_items_to_workshop(
    business_id: int,
    order_id: int,
    item_ids: list[int],
    *,
    partner_name: str | None = None,
    notes: str | None = None,
    actor_id: int | None = None,
) -> dict:
    if not isinstance(item_ids, list) or not item_ids:
        raise ValidationError("item_ids must be a non-empty list")
    if any(isinstance(i, bool) or not isinstance(i, int) for i in item_ids):
        raise ValidationError("item_ids must contain integer ids")
    requested = list(dict.fromkeys(item_ids))
    partner = (partner_name or "").strip() or DEFAULT_WORKSHOP_PARTNER

    def _op():
        order = require_order_in_business(order_id, business_id, for_update=True)
        if order.status not in SENDABLE_ORDER_STATUSES:
            raise WorkshopError(
                "Cannot send items to workshop. Order must be in IN_PROGRESS or READY "
                f"status (current: {order.status})",
                details={"order_status": order.status},
            )

        items_by_id = {item.id: item for item in order.items}

        # Pre-filter: the transaction never fails halfway on business rules
        valid: list[OrderItem] = []
        reasons: list[str] = []
        for item_id in requested:
            item = items_by_id.get(item_id)
            reason = item_rejection_reason(item, item_id)
            if reason:
                reasons.append(reason)
            else:
                valid.append(item)

        if not valid:
            raise WorkshopError(
                f"No valid items to send to workshop. {'; '.join(reasons)}",
                details={"reasons": reasons},
            )

        now = utcnow()
        for item in valid:
            item.status = "AT_WORKSHOP"
            item.sent_to_workshop = True
            item.workshop_partner_name = partner
            item.workshop_sent_date = now
            item.workshop_returned_date = None
            item.workshop_notes = notes

        all_at_workshop = all(item.status == "AT_WORKSHOP" for item in order.items)
        order_moved = False
        if all_at_workshop and order.status != "AT_WORKSHOP":
            previous = order.status
            order.status = "AT_WORKSHOP"
            append_history(order, previous, "AT_WORKSHOP", actor_id, f"All items sent to workshop: {partner}")
            order_moved = True

        db.session.commit()

        updated = len(valid)
        if updated == len(requested):
            message = f"{updated} item(s) sent to workshop"
        else:
            message = f"{updated} of {len(requested)} item(s) sent to workshop"
        if order_moved:
            message += ". Order moved to Workshop status."

        return {
            "order": order,
            "items_updated": updated,
            "items_requested": len(requested),
            "all_items_at_workshop": all_at_workshop,
            "order_status": order.status,
            "order_moved": order_moved,
            "skipped": reasons,
            "message": message,
        }

    result = run_with_retry(_op)
    if result["order_moved"]:
        push_service.send_order_status_push(result["order"])
    return result


def _get_workshop_item(business_id: int, item_id: int) -> OrderItem:
    item = lock_for_update(
        db.session.query(OrderItem).filter_by(id=item_id, business_id=business_id)
    ).first()
    if not item:
        raise NotFoundError("Workshop item not found")
    return item


def update_workshop_item(
    business_id: int,
    item_id: int,
    action: str,
    *,
    notes: str | None = None,
    actor_id: int | None = None,
) -> dict:
    if action not in WORKSHOP_ACTIONS:
        raise ValidationError("Invalid action")

    def _op():
        item = _get_workshop_item(business_id, item_id)
        now = utcnow()

        if action == "mark_returned":
            if item.status != "AT_WORKSHOP":
                raise WorkshopError("Item is not currently at workshop", details={"item_status": item.status})
            item.status = "WORKSHOP_RETURNED"
            item.workshop_returned_date = now
            if notes:
                item.workshop_notes = _append_note(item.workshop_notes, f"[Returned] {notes}")

        elif action == "mark_ready":
            if item.status != "WORKSHOP_RETURNED":
                raise WorkshopError(
                    "Item must be in WORKSHOP_RETURNED status",
                    details={"item_status": item.status},
                )
            item.status = "READY"
            if notes:
                item.workshop_notes = _append_note(item.workshop_notes, f"[QC Passed] {notes}")

        else:  # return_to_store
            if item.status not in ("AT_WORKSHOP", "WORKSHOP_RETURNED"):
                raise WorkshopError(
                    "Item cannot be returned to store from current status",
                    details={"item_status": item.status},
                )
            item.status = "READY"
            item.workshop_returned_date = item.workshop_returned_date or now
            if notes:
                item.workshop_notes = _append_note(item.workshop_notes, f"[Returned to store] {notes}")

        order = lock_for_update(db.session.query(Order).filter_by(id=item.order_id)).first()
        all_ready = all(sibling.status in READY_ITEM_STATUSES for sibling in order.items)
        order_moved = False
        if all_ready and order.status in AUTO_READY_ORDER_STATUSES:
            previous = order.status
            order.status = "READY"
            append_history(order, previous, "READY", actor_id, "Auto-updated: All items are ready")
            order_moved = True

        db.session.commit()
        return {"item": item, "order": order, "order_moved": order_moved, "order_status": order.status}

    result = run_with_retry(_op)
    if result["order_moved"]:
        notification_service.notify_order_ready(result["order"])
        push_service.send_order_status_push(result["order"])
    return result


def list_workshop_items(business_id: int, tab: str = "processing", store_id: int | None = None) -> dict:
    """
    Workshop board.

    processing: at the partner (AT_WORKSHOP, not yet returned)
    ready:      back from the partner, awaiting QC (WORKSHOP_RETURNED)
    history:    finished workshop items (READY/COMPLETED with a returned date)
    """
    if tab not in WORKSHOP_TABS:
        raise ValidationError(f"tab must be one of: {', '.join(WORKSHOP_TABS)}")

    base = (
        db.session.query(OrderItem)
        .join(Order, Order.id == OrderItem.order_id)
        .filter(OrderItem.business_id == business_id, OrderItem.sent_to_workshop.is_(True))
    )
    if store_id:
        base = base.filter(Order.store_id == store_id)

    if tab == "processing":
        query = base.filter(OrderItem.status == "AT_WORKSHOP", OrderItem.workshop_returned_date.is_(None))
    elif tab == "ready":
        query = base.filter(OrderItem.status == "WORKSHOP_RETURNED")
    else:
        query = base.filter(
            OrderItem.status.in_(("READY", "COMPLETED")),
            OrderItem.workshop_returned_date.isnot(None),
        )

    items = query.order_by(OrderItem.workshop_sent_date.desc(), OrderItem.id.desc()).all()

    today = start_of_day(utcnow())
    stats = {
        "at_workshop": base.filter(OrderItem.status == "AT_WORKSHOP").count(),
        "returned": base.filter(OrderItem.status == "WORKSHOP_RETURNED").count(),
        "returned_today": base.filter(OrderItem.workshop_returned_date >= today).count(),
    }
    return {"items": items, "stats": stats}
