# Overview: Service-layer operations for the service catalogue; treatments, items and the price matrix.

"""
Service Catalogue

A business prices its work as a matrix: catalogue items (Shirt, Saree...)
down one side, treatments (Wash & Iron, Dry Clean...) across the other.
Each cell is an ItemTreatmentPrice.

RULES:
1. Treatment codes are uppercase [A-Z0-9_]; a missing code is derived from
   the name. Codes are unique per business.
2. Item names are unique per business among live items (case-insensitive).
3. A treatment used by an order that is not COMPLETED or CANCELLED cannot
   be deleted. Finished orders keep their copied names; their reference is
   cleared.
4. An item used by any order is archived (deleted_at, inactive); an unused
   item is removed with its prices.
5. Order lines that name item_id + treatment_id are priced from the matrix
   (see resolve_line). Names and prices are copied onto the order item.
"""

from __future__ import annotations

import logging
import re

from sqlalchemy import func

from ..extensions import db
from ..models import CatalogItem, ItemTreatmentPrice, Order, OrderItem, Treatment
from ..models.catalog import CATALOG_ITEM_CATEGORIES
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    apply_patch,
    require_amount_paise,
    validate_payload,
)
from .concurrency import run_with_retry
from laundrypro.time_utils import utcnow


logger = logging.getLogger(__name__)

_CODE_RE = re.compile(r"^[A-Z0-9_]+$")
FINISHED_ORDER_STATUSES = ("COMPLETED", "CANCELLED")

TREATMENT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "code", "description", "is_combo", "turnaround_hours", "is_active", "sort_order"},
    required_on_create={"name"},
)

CATALOG_ITEM_POLICY = ModelValidationPolicy(
    writable_fields={"name", "category", "is_active", "sort_order"},
    required_on_create={"name"},
)


class CatalogError(Exception):
    """Raised when a catalogue change would orphan live orders or a line cannot be priced."""
    pass


def derive_code(name: str) -> str:
    """'Wash & Iron' -> 'WASH_IRON'"""
    code = re.sub(r"[^A-Z0-9]+", "_", name.upper()).strip("_")
    return code[:32]


# -- Treatments --

def _get_treatment(business_id: int, treatment_id: int) -> Treatment:
    treatment = db.session.query(Treatment).filter_by(id=treatment_id, business_id=business_id).first()
    if treatment is None:
        raise NotFoundError("Treatment not found")
    return treatment


def _enforce_treatment_rules(patch: dict) -> None:
    if "code" in patch and patch["code"] is not None:
        patch["code"] = patch["code"].upper()
        if not _CODE_RE.match(patch["code"]):
            raise ValidationError("code may only contain A-Z, 0-9 and underscores")
    if "turnaround_hours" in patch and not 1 <= patch["turnaround_hours"] <= 720:
        raise ValidationError("turnaround_hours must be between 1 and 720")


def _code_taken(business_id: int, code: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(Treatment.id).filter_by(business_id=business_id, code=code)
    if exclude_id is not None:
        query = query.filter(Treatment.id != exclude_id)
    return query.first() is not None


def list_treatments(business_id: int, *, active_only: bool = False) -> dict:
    query = db.session.query(Treatment).filter_by(business_id=business_id)
    treatments = query.order_by(Treatment.sort_order.asc(), Treatment.name.asc()).all()
    stats = {
        "total": len(treatments),
        "active": sum(1 for t in treatments if t.is_active),
        "inactive": sum(1 for t in treatments if not t.is_active),
        "combo": sum(1 for t in treatments if t.is_combo),
    }
    if active_only:
        treatments = [t for t in treatments if t.is_active]
    return {"treatments": treatments, "stats": stats}


def create_treatment(business_id: int, payload: dict) -> Treatment:
    data = validate_payload(model=Treatment, payload=payload, policy=TREATMENT_POLICY, partial=False)
    if not data.get("code"):
        data["code"] = derive_code(data["name"])
        if not data["code"]:
            raise ValidationError("code is required when the name has no letters or digits")
    _enforce_treatment_rules(data)

    def _op():
        if _code_taken(business_id, data["code"]):
            raise ConflictError(f"Treatment code {data['code']} already exists")
        treatment = Treatment(business_id=business_id, **data)
        db.session.add(treatment)
        db.session.commit()
        return treatment

    return run_with_retry(_op)


def update_treatment(business_id: int, treatment_id: int, payload: dict) -> Treatment:
    patch = validate_payload(model=Treatment, payload=payload, policy=TREATMENT_POLICY, partial=True)
    _enforce_treatment_rules(patch)

    def _op():
        treatment = _get_treatment(business_id, treatment_id)
        if "code" in patch and _code_taken(business_id, patch["code"], exclude_id=treatment.id):
            raise ConflictError(f"Treatment code {patch['code']} already exists")
        apply_patch(treatment, patch)
        db.session.commit()
        return treatment

    return run_with_retry(_op)


def toggle_treatment(business_id: int, treatment_id: int) -> Treatment:
    def _op():
        treatment = _get_treatment(business_id, treatment_id)
        treatment.is_active = not treatment.is_active
        db.session.commit()
        return treatment

    return run_with_retry(_op)


def delete_treatment(business_id: int, treatment_id: int) -> None:
    def _op():
        treatment = _get_treatment(business_id, treatment_id)
        active_orders = (
            db.session.query(func.count(func.distinct(OrderItem.order_id)))
            .join(Order, Order.id == OrderItem.order_id)
            .filter(
                OrderItem.treatment_id == treatment.id,
                Order.status.notin_(FINISHED_ORDER_STATUSES),
            )
            .scalar()
        )
        if active_orders:
            raise CatalogError(
                f"Cannot delete treatment with {active_orders} active order(s). "
                "Complete or cancel them first."
            )

        db.session.query(OrderItem).filter(OrderItem.treatment_id == treatment.id).update(
            {OrderItem.treatment_id: None}, synchronize_session=False
        )
        db.session.query(ItemTreatmentPrice).filter_by(treatment_id=treatment.id).delete(
            synchronize_session=False
        )
        db.session.delete(treatment)
        db.session.commit()

    run_with_retry(_op)
    logger.info("Treatment %s deleted for business %s", treatment_id, business_id)


# -- Items and prices --

def _get_item(business_id: int, item_id: int) -> CatalogItem:
    item = (
        db.session.query(CatalogItem)
        .filter_by(id=item_id, business_id=business_id)
        .filter(CatalogItem.deleted_at.is_(None))
        .first()
    )
    if item is None:
        raise NotFoundError("Item not found")
    return item


def _enforce_item_rules(patch: dict) -> None:
    if "name" in patch and len(patch["name"]) < 2:
        raise ValidationError("name must be at least 2 characters")
    if "category" in patch:
        patch["category"] = patch["category"].upper()
        if patch["category"] not in CATALOG_ITEM_CATEGORIES:
            raise ValidationError(f"Invalid category. Must be one of: {', '.join(CATALOG_ITEM_CATEGORIES)}")


def _name_taken(business_id: int, name: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(CatalogItem.id).filter(
        CatalogItem.business_id == business_id,
        CatalogItem.deleted_at.is_(None),
        func.lower(CatalogItem.name) == name.lower(),
    )
    if exclude_id is not None:
        query = query.filter(CatalogItem.id != exclude_id)
    return query.first() is not None


def _clean_prices(prices) -> list[dict]:
    """Validate the inline price cells. A null price_paise removes the cell."""
    if prices is None:
        return []
    if not isinstance(prices, list):
        raise ValidationError("prices must be a list")
    cleaned = []
    for position, raw in enumerate(prices, start=1):
        if not isinstance(raw, dict) or not raw.get("treatment_id"):
            raise ValidationError(f"Price {position}: treatment_id is required")
        price = raw.get("price_paise")
        express = raw.get("express_price_paise")
        if price is not None:
            require_amount_paise(price, f"Price {position}: price_paise")
        if express is not None:
            require_amount_paise(express, f"Price {position}: express_price_paise")
        is_available = raw.get("is_available", True)
        if not isinstance(is_available, bool):
            raise ValidationError(f"Price {position}: is_available must be true or false")
        cleaned.append({
            "treatment_id": raw["treatment_id"],
            "price_paise": price,
            "express_price_paise": express,
            "is_available": is_available,
        })
    return cleaned


def _apply_prices(business_id: int, item: CatalogItem, cells: list[dict]) -> None:
    existing = {p.treatment_id: p for p in item.prices}
    for cell in cells:
        _get_treatment(business_id, cell["treatment_id"])
        current = existing.get(cell["treatment_id"])
        if cell["price_paise"] is None:
            if current is not None:
                item.prices.remove(current)
            continue
        if current is None:
            current = ItemTreatmentPrice(treatment_id=cell["treatment_id"])
            item.prices.append(current)
            existing[cell["treatment_id"]] = current
        current.price_paise = cell["price_paise"]
        current.express_price_paise = cell["express_price_paise"]
        current.is_available = cell["is_available"]


def get_item(business_id: int, item_id: int) -> CatalogItem:
    return _get_item(business_id, item_id)


def list_items(
    business_id: int,
    *,
    category: str | None = None,
    search: str | None = None,
    active_only: bool = False,
) -> list[CatalogItem]:
    query = db.session.query(CatalogItem).filter(
        CatalogItem.business_id == business_id,
        CatalogItem.deleted_at.is_(None),
    )
    if category:
        query = query.filter(CatalogItem.category == category.upper())
    if search:
        query = query.filter(CatalogItem.name.ilike(f"%{search.strip()}%"))
    if active_only:
        query = query.filter(CatalogItem.is_active.is_(True))
    return query.order_by(CatalogItem.sort_order.asc(), CatalogItem.name.asc()).all()


def price_matrix(business_id: int) -> dict:
    """Active treatments as columns, live active items as rows keyed by treatment_id."""
    treatments = list_treatments(business_id, active_only=True)["treatments"]
    rows = []
    for item in list_items(business_id, active_only=True):
        cells = {p.treatment_id: p for p in item.prices}
        rows.append({
            "item_id": item.id,
            "name": item.name,
            "category": item.category,
            "prices": {
                str(t.id): cells[t.id].to_dict() if t.id in cells else None
                for t in treatments
            },
        })
    return {"treatments": [t.to_dict() for t in treatments], "items": rows}


def create_item(business_id: int, payload: dict) -> CatalogItem:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    payload = dict(payload)
    cells = _clean_prices(payload.pop("prices", None))
    data = validate_payload(model=CatalogItem, payload=payload, policy=CATALOG_ITEM_POLICY, partial=False)
    _enforce_item_rules(data)

    def _op():
        if _name_taken(business_id, data["name"]):
            raise ConflictError("An item with this name already exists")
        item = CatalogItem(business_id=business_id, **data)
        db.session.add(item)
        _apply_prices(business_id, item, cells)
        db.session.commit()
        return item

    return run_with_retry(_op)


def update_item(business_id: int, item_id: int, payload: dict) -> CatalogItem:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    payload = dict(payload)
    cells = _clean_prices(payload.pop("prices", None))
    patch = validate_payload(model=CatalogItem, payload=payload, policy=CATALOG_ITEM_POLICY, partial=True)
    _enforce_item_rules(patch)

    def _op():
        item = _get_item(business_id, item_id)
        if "name" in patch and _name_taken(business_id, patch["name"], exclude_id=item.id):
            raise ConflictError("An item with this name already exists")
        apply_patch(item, patch)
        _apply_prices(business_id, item, cells)
        db.session.commit()
        return item

    return run_with_retry(_op)


def toggle_item(business_id: int, item_id: int) -> CatalogItem:
    def _op():
        item = _get_item(business_id, item_id)
        item.is_active = not item.is_active
        db.session.commit()
        return item

    return run_with_retry(_op)


def delete_item(business_id: int, item_id: int) -> dict:
    """Archive an item used by orders; remove an unused one. Returns {"archived", "message"}."""
    def _op():
        item = _get_item(business_id, item_id)
        used_in = (
            db.session.query(func.count(func.distinct(OrderItem.order_id)))
            .filter(OrderItem.catalog_item_id == item.id)
            .scalar()
        )
        if used_in:
            item.deleted_at = utcnow()
            item.is_active = False
            db.session.commit()
            return {"archived": True, "message": f"Item archived (used in {used_in} orders)"}

        db.session.delete(item)
        db.session.commit()
        return {"archived": False, "message": "Item deleted"}

    return run_with_retry(_op)


def resolve_line(business_id: int, item_id, treatment_id) -> dict:
    """
    Price one order line from the matrix.

    Returns the copied names and prices:
    {"item_name", "treatment_name", "unit_price_paise", "express_price_paise"}.
    """
    item = db.session.query(CatalogItem).filter_by(id=item_id, business_id=business_id).first()
    if item is None or item.deleted_at is not None or not item.is_active:
        raise NotFoundError("Item not found or inactive")
    treatment = db.session.query(Treatment).filter_by(id=treatment_id, business_id=business_id).first()
    if treatment is None or not treatment.is_active:
        raise NotFoundError("Treatment not found or inactive")

    cell = (
        db.session.query(ItemTreatmentPrice)
        .filter_by(item_id=item.id, treatment_id=treatment.id)
        .first()
    )
    if cell is None or not cell.is_available:
        raise CatalogError(f"{item.name} is not offered with {treatment.name}")

    return {
        "item_name": item.name,
        "treatment_name": treatment.name,
        "unit_price_paise": cell.price_paise,
        "express_price_paise": cell.express_price_paise,
    }
