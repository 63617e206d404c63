"""
Multi-Tenant Service: Business Scoping Helpers

Every business-scoped lookup goes through these helpers with an explicit
business_id. An entity owned by another business is reported exactly like a
missing one (NotFoundError -> 404) so its existence is not revealed.

USAGE:
    from laundrypro.services.tenant_service import require_store_in_business

    store = require_store_in_business(store_id, business_id)
"""

from __future__ import annotations

import logging

from flask import current_app

from ..extensions import db
from ..models import Business, BusinessSettings, Customer, Order, Store, User
from ..validation import ModelValidationPolicy, NotFoundError, ValidationError, apply_patch, validate_payload
from ..plans import enabled_features, get_plan_limits, get_trial_end_date
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry


logger = logging.getLogger(__name__)


def _log_cross_tenant_attempt(entity: str, entity_id: int, owner_id: int, business_id: int) -> None:
    logger.warning(
        "Cross-tenant access denied: %s %s belongs to business %s, not %s",
        entity, entity_id, owner_id, business_id,
    )


def require_business(business_id: int) -> Business:
    business = db.session.get(Business, business_id)
    if not business:
        raise NotFoundError("Business not found")
    return business


def get_settings(business_id: int) -> BusinessSettings:
    """Settings row for the business, created with defaults when missing."""
    settings = db.session.query(BusinessSettings).filter_by(business_id=business_id).first()
    if settings is None:
        settings = BusinessSettings(business_id=business_id)
        db.session.add(settings)
        db.session.flush()
    return settings


def require_store_in_business(store_id: int, business_id: int, *, active_only: bool = False) -> Store:
    store = db.session.get(Store, store_id)
    if not store:
        raise NotFoundError("Store not found")
    if store.business_id != business_id:
        _log_cross_tenant_attempt("store", store_id, store.business_id, business_id)
        raise NotFoundError("Store not found")
    if active_only and not store.is_active:
        raise NotFoundError("Store not found or inactive")
    return store


def require_customer_in_business(customer_id: int, business_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError("Customer not found")
    if customer.business_id != business_id:
        _log_cross_tenant_attempt("customer", customer_id, customer.business_id, business_id)
        raise NotFoundError("Customer not found")
    return customer


def require_order_in_business(order_id: int, business_id: int, *, for_update: bool = False) -> Order:
    query = db.session.query(Order).filter_by(id=order_id, business_id=business_id)
    if for_update:
        query = lock_for_update(query)
    order = query.first()
    if not order:
        raise NotFoundError("Order not found")
    return order


def require_user_in_business(user_id: int, business_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user or user.business_id != business_id:
        raise NotFoundError("User not found")
    return user


SETTINGS_POLICY = ModelValidationPolicy(
    writable_fields={"gst_enabled", "gst_percentage_bps", "legacy_tax_paise", "express_multiplier_bps"},
)


def update_settings(business_id: int, payload: dict) -> BusinessSettings:
    """Patch tax and pricing settings. Plan limits are owned by billing and are not writable."""
    patch = validate_payload(model=BusinessSettings, payload=payload, policy=SETTINGS_POLICY, partial=True)
    for field in ("gst_percentage_bps", "legacy_tax_paise"):
        if patch.get(field) is not None and patch[field] < 0:
            raise ValidationError(f"{field} must be >= 0")
    if patch.get("gst_percentage_bps") is not None and patch["gst_percentage_bps"] > 10000:
        raise ValidationError("gst_percentage_bps cannot exceed 10000")
    if patch.get("express_multiplier_bps") is not None and patch["express_multiplier_bps"] < 10000:
        raise ValidationError("express_multiplier_bps must be >= 10000")

    settings = get_settings(business_id)
    apply_patch(settings, patch)
    db.session.commit()
    return settings


def apply_plan_to_settings(settings: BusinessSettings, plan_type: str) -> None:
    """Copy a plan's limits and feature set onto the settings row."""
    limits = get_plan_limits(plan_type)
    settings.max_stores = limits["max_stores"]
    settings.max_staff = limits["max_staff"]
    settings.max_monthly_orders = limits["max_monthly_orders"]
    settings.features = enabled_features(plan_type)


def provision_business(
    name: str,
    *,
    email: str | None = None,
    phone: str | None = None,
    store_name: str | None = None,
) -> tuple[Business, Store | None]:
    """
    Add a trial business, its settings and an optional first store to the
    session. Flushes but does not commit; callers own the transaction.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("Business name is required")

    now = utcnow()
    business = Business(
        name=name,
        email=email,
        phone=phone,
        plan_type="TRIAL",
        plan_status="TRIAL",
        trial_ends_at=get_trial_end_date(now, current_app.config.get("TRIAL_DAYS", 14)),
    )
    db.session.add(business)
    db.session.flush()

    settings = BusinessSettings(business_id=business.id)
    apply_plan_to_settings(settings, "TRIAL")
    db.session.add(settings)

    store = None
    if store_name:
        store = Store(business_id=business.id, name=store_name.strip())
        db.session.add(store)
    db.session.flush()
    return business, store


def create_business(
    name: str,
    *,
    email: str | None = None,
    phone: str | None = None,
    store_name: str | None = None,
) -> Business:
    """
    Provision a tenant on the trial plan: the business row, its settings with
    trial limits and, optionally, a first store.
    """
    def _op():
        business, _ = provision_business(name, email=email, phone=phone, store_name=store_name)
        db.session.commit()
        return business

    business = run_with_retry(_op)
    logger.info("Business %s created: %s", business.id, business.name)
    return business
