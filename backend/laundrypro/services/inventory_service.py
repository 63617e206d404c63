# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

"""
Consumable Inventory Invariants

Stock model:
- current_stock is a stored integer with a hard floor at zero.
- current_stock only moves through adjust_stock / restock; update_item never
  touches it.
- Every movement writes exactly one InventoryRestockLog row in the same DB
  transaction as the stock change:
      new_stock == previous_stock + added_stock   (added_stock is signed)
- A REMOVE that would go below zero is rejected before anything is written.
- Items are soft deleted (deleted_at). Their log rows are never removed and a
  deleted item keeps its SKU reserved.

Notifications:
- Threshold notifications (Out of Stock, Low Stock Alert, Stock Replenished)
  are emitted after commit and never fail the adjustment.
"""

from __future__ import annotations

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import InventoryItem, InventoryRestockLog
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    apply_patch,
    enforce_rules_inventory_item,
    require_amount_paise,
    require_positive_int,
    validate_payload,
)
from . import notification_service
from .concurrency import lock_for_update, run_with_retry
from laundrypro.time_utils import utcnow


ADJUSTMENT_TYPES = ("ADD", "REMOVE")
ADJUSTMENT_REASONS = (
    "DAMAGED",
    "EXPIRED",
    "LOST",
    "STOLEN",
    "COUNT_CORRECTION",
    "RETURN_TO_SUPPLIER",
    "INTERNAL_USE",
    "SAMPLE",
    "OTHER",
)

INVENTORY_ITEM_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "sku",
        "category",
        "unit",
        "description",
        "min_stock",
        "cost_per_unit_paise",
        "supplier",
    },
    required_on_create={"name"},
)


class InventoryError(Exception):
    """Raised when a stock movement would break the stock invariants."""
    pass


def _get_item(
    business_id: int, item_id: int, *, lock: bool = False, include_deleted: bool = False
) -> InventoryItem:
    query = db.session.query(InventoryItem).filter_by(id=item_id, business_id=business_id)
    if not include_deleted:
        query = query.filter(InventoryItem.deleted_at.is_(None))
    if lock:
        query = lock_for_update(query)
    item = query.first()
    if item is None:
        raise NotFoundError("Inventory item not found")
    return item


def _sku_taken(business_id: int, sku: str | None, exclude_id: int | None = None) -> bool:
    if not sku:
        return False
    query = db.session.query(InventoryItem.id).filter_by(business_id=business_id, sku=sku)
    if exclude_id is not None:
        query = query.filter(InventoryItem.id != exclude_id)
    return query.first() is not None


def get_item(business_id: int, item_id: int) -> InventoryItem:
    return _get_item(business_id, item_id)


def list_items(
    business_id: int,
    *,
    category: str | None = None,
    low_stock: bool = False,
    search: str | None = None,
) -> list[InventoryItem]:
    query = db.session.query(InventoryItem).filter(
        InventoryItem.business_id == business_id,
        InventoryItem.deleted_at.is_(None),
    )
    if category:
        query = query.filter(InventoryItem.category == category.upper())
    if low_stock:
        query = query.filter(InventoryItem.current_stock <= InventoryItem.min_stock)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            or_(
                InventoryItem.name.ilike(like),
                InventoryItem.sku.ilike(like),
                InventoryItem.supplier.ilike(like),
            )
        )
    return query.order_by(InventoryItem.name.asc(), InventoryItem.id.asc()).all()


def create_item(business_id: int, payload: dict, actor_id: int | None = None) -> InventoryItem:
    """
    Create an inventory item. An optional initial current_stock is recorded as
    the first restock log row so the ledger always explains the stock level.
    """
    payload = dict(payload or {})
    initial_stock = payload.pop("current_stock", 0) or 0
    if isinstance(initial_stock, bool) or not isinstance(initial_stock, int) or initial_stock < 0:
        raise ValidationError("current_stock must be a whole number >= 0")

    data = validate_payload(model=InventoryItem, payload=payload, policy=INVENTORY_ITEM_POLICY, partial=False)
    enforce_rules_inventory_item(data)

    def _op():
        if _sku_taken(business_id, data.get("sku")):
            raise ConflictError(f"SKU {data['sku']} already exists")

        item = InventoryItem(business_id=business_id, **data)
        item.current_stock = initial_stock
        db.session.add(item)
        db.session.flush()

        if initial_stock > 0:
            item.last_restocked_at = utcnow()
            db.session.add(InventoryRestockLog(
                inventory_item_id=item.id,
                previous_stock=0,
                added_stock=initial_stock,
                new_stock=initial_stock,
                cost_per_unit_paise=item.cost_per_unit_paise,
                total_cost_paise=(item.cost_per_unit_paise or 0) * initial_stock,
                supplier=item.supplier,
                notes="Initial stock",
                created_by_user_id=actor_id,
            ))

        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(f"SKU {data.get('sku')} already exists")
        return item

    return run_with_retry(_op)


def update_item(business_id: int, item_id: int, payload: dict) -> InventoryItem:
    """Patch item metadata. Stock levels are not patchable; use adjust_stock."""
    if isinstance(payload, dict) and "current_stock" in payload:
        raise ValidationError("current_stock cannot be edited directly. Use a stock adjustment.")
    patch = validate_payload(model=InventoryItem, payload=payload, policy=INVENTORY_ITEM_POLICY, partial=True)
    enforce_rules_inventory_item(patch)

    def _op():
        item = _get_item(business_id, item_id, lock=True)
        if "sku" in patch and _sku_taken(business_id, patch["sku"], exclude_id=item.id):
            raise ConflictError(f"SKU {patch['sku']} already exists")
        apply_patch(item, patch)
        db.session.commit()
        return item

    return run_with_retry(_op)


def delete_item(business_id: int, item_id: int) -> InventoryItem:
    """Soft delete. The item leaves lists and stats; its stock log stays intact."""
    def _op():
        item = _get_item(business_id, item_id, lock=True)
        item.deleted_at = utcnow()
        db.session.commit()
        return item

    return run_with_retry(_op)


def adjust_stock(
    business_id: int,
    item_id: int,
    adjustment_type: str,
    quantity,
    reason: str,
    notes: str | None = None,
    actor_id: int | None = None,
) -> dict:
    """
    Manual stock movement.

    ADD raises stock and stamps last_restocked_at; REMOVE lowers it and is
    refused when it would go negative. Returns {"item", "log"}.
    """
    adjustment_type = str(adjustment_type or "").upper()
    if adjustment_type not in ADJUSTMENT_TYPES:
        raise ValidationError("Adjustment type must be ADD or REMOVE")
    quantity = require_positive_int(quantity, "quantity")
    reason = str(reason or "").upper()
    if reason not in ADJUSTMENT_REASONS:
        raise ValidationError(f"Invalid reason. Must be one of: {', '.join(ADJUSTMENT_REASONS)}")

    def _op():
        item = _get_item(business_id, item_id, lock=True)
        previous = item.current_stock

        if adjustment_type == "REMOVE" and quantity > previous:
            raise InventoryError(f"Cannot remove {quantity} units. Only {previous} units available.")

        delta = quantity if adjustment_type == "ADD" else -quantity
        item.current_stock = previous + delta
        if adjustment_type == "ADD":
            item.last_restocked_at = utcnow()

        log_notes = f"[{adjustment_type}] {reason}"
        if notes:
            log_notes += f": {notes}"

        log = InventoryRestockLog(
            inventory_item_id=item.id,
            previous_stock=previous,
            added_stock=delta,
            new_stock=item.current_stock,
            cost_per_unit_paise=item.cost_per_unit_paise,
            total_cost_paise=(item.cost_per_unit_paise or 0) * quantity,
            notes=log_notes,
            created_by_user_id=actor_id,
        )
        db.session.add(log)
        db.session.commit()
        return {"item": item, "log": log, "previous_stock": previous}

    result = run_with_retry(_op)
    notification_service.notify_stock_level(
        result["item"],
        previous_stock=result.pop("previous_stock"),
        adjustment_type=adjustment_type,
    )
    return result


def restock(
    business_id: int,
    item_id: int,
    quantity,
    *,
    cost_per_unit_paise=None,
    supplier: str | None = None,
    notes: str | None = None,
    actor_id: int | None = None,
) -> dict:
    """Supplier delivery: a positive movement that may update unit cost and supplier."""
    quantity = require_positive_int(quantity, "quantity")
    if cost_per_unit_paise is not None:
        require_amount_paise(cost_per_unit_paise, "cost_per_unit_paise")

    def _op():
        item = _get_item(business_id, item_id, lock=True)
        previous = item.current_stock
        if cost_per_unit_paise is not None:
            item.cost_per_unit_paise = cost_per_unit_paise
        if supplier:
            item.supplier = supplier
        item.current_stock = previous + quantity
        item.last_restocked_at = utcnow()

        log = InventoryRestockLog(
            inventory_item_id=item.id,
            previous_stock=previous,
            added_stock=quantity,
            new_stock=item.current_stock,
            cost_per_unit_paise=item.cost_per_unit_paise,
            total_cost_paise=(item.cost_per_unit_paise or 0) * quantity,
            supplier=supplier or item.supplier,
            notes=notes,
            created_by_user_id=actor_id,
        )
        db.session.add(log)
        db.session.commit()
        return {"item": item, "log": log, "previous_stock": previous}

    result = run_with_retry(_op)
    notification_service.notify_stock_level(
        result["item"],
        previous_stock=result.pop("previous_stock"),
        adjustment_type="ADD",
    )
    return result


def list_stock_logs(business_id: int, item_id: int, limit: int = 50) -> list[InventoryRestockLog]:
    item = _get_item(business_id, item_id, include_deleted=True)
    return (
        db.session.query(InventoryRestockLog)
        .filter_by(inventory_item_id=item.id)
        .order_by(InventoryRestockLog.created_at.desc(), InventoryRestockLog.id.desc())
        .limit(limit)
        .all()
    )


def inventory_stats(business_id: int) -> dict:
    live = (InventoryItem.business_id == business_id, InventoryItem.deleted_at.is_(None))
    base = db.session.query(InventoryItem).filter(*live)
    total_value = (
        db.session.query(
            func.coalesce(func.sum(InventoryItem.current_stock * InventoryItem.cost_per_unit_paise), 0)
        )
        .filter(*live)
        .scalar()
    )
    return {
        "total_items": base.count(),
        "low_stock": base.filter(
            InventoryItem.current_stock <= InventoryItem.min_stock,
            InventoryItem.current_stock > 0,
        ).count(),
        "out_of_stock": base.filter(InventoryItem.current_stock == 0).count(),
        "total_value_paise": int(total_value or 0),
    }
