# Overview: Service-layer operations for customers; encapsulates business logic and database work.

from __future__ import annotations

import re

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer, Order
from ..validation import ConflictError, ModelValidationPolicy, ValidationError, apply_patch, validate_payload
from .concurrency import run_with_retry
from .tenant_service import require_customer_in_business


CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "email", "address", "notes", "push_enabled"},
    required_on_create={"name", "phone"},
)

_PHONE_RE = re.compile(r"^\+?[0-9]{7,15}$")


def normalize_phone(phone: str) -> str:
    """Strip spaces and dashes; keep a leading +."""
    cleaned = re.sub(r"[\s\-()]", "", phone or "")
    if not _PHONE_RE.match(cleaned):
        raise ValidationError("Invalid phone number")
    return cleaned


def _phone_taken(business_id: int, phone: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(Customer.id).filter_by(business_id=business_id, phone=phone)
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    return query.first() is not None


def create_customer(business_id: int, payload: dict) -> Customer:
    data = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    data["phone"] = normalize_phone(data["phone"])

    def _op():
        if _phone_taken(business_id, data["phone"]):
            raise ConflictError("Customer with this phone number already exists")
        customer = Customer(business_id=business_id, **data)
        db.session.add(customer)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("Customer with this phone number already exists")
        return customer

    return run_with_retry(_op)


def list_customers(
    business_id: int,
    *,
    search: str | None = None,
    page: int = 1,
    per_page: int = 20,
) -> dict:
    query = db.session.query(Customer).filter(Customer.business_id == business_id)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            or_(Customer.name.ilike(like), Customer.phone.ilike(like), Customer.email.ilike(like))
        )
    page = max(page, 1)
    per_page = min(max(per_page, 1), 100)
    total = query.count()
    customers = (
        query.order_by(Customer.created_at.desc(), Customer.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {"customers": customers, "total": total, "page": page, "per_page": per_page}


def get_customer(business_id: int, customer_id: int, *, recent_orders: int = 10) -> dict:
    customer = require_customer_in_business(customer_id, business_id)
    orders = (
        db.session.query(Order)
        .filter_by(business_id=business_id, customer_id=customer.id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(recent_orders)
        .all()
    )
    return {"customer": customer, "recent_orders": orders}


def update_customer(business_id: int, customer_id: int, payload: dict) -> Customer:
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
    if "phone" in patch:
        patch["phone"] = normalize_phone(patch["phone"])

    def _op():
        customer = require_customer_in_business(customer_id, business_id)
        if "phone" in patch and _phone_taken(business_id, patch["phone"], exclude_id=customer.id):
            raise ConflictError("Customer with this phone number already exists")
        apply_patch(customer, patch)
        db.session.commit()
        return customer

    return run_with_retry(_op)


def register_push_token(business_id: int, customer_id: int, token: str | None, *, enabled: bool = True) -> Customer:
    """Store (or clear, with None) the customer's device push token."""
    if token is not None:
        token = str(token).strip()
        if not token.startswith(("ExponentPushToken[", "ExpoPushToken[")):
            raise ValidationError("Invalid push token")

    def _op():
        customer = require_customer_in_business(customer_id, business_id)
        customer.expo_push_token = token
        customer.push_enabled = bool(enabled)
        db.session.commit()
        return customer

    return run_with_retry(_op)
