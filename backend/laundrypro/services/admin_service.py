# Overview: Platform console operations for super admins; queries span every business.

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import func

from ..extensions import db
from ..models import Business, Customer, Order, Store, SubscriptionPayment, User
from ..models.tenancy import PLAN_STATUSES, PLAN_TYPES
from ..validation import ValidationError
from .concurrency import run_with_retry
from .tenant_service import apply_plan_to_settings, get_settings, require_business
from laundrypro.time_utils import utcnow


logger = logging.getLogger(__name__)

MAX_TRIAL_EXTENSION_DAYS = 90

# Feature switches a super admin may flip per business
OVERRIDABLE_FEATURES = ("pickup_enabled", "delivery_enabled", "workshop_enabled", "multi_store_enabled")


def _counts_by_business(model) -> dict[int, int]:
    rows = (
        db.session.query(model.business_id, func.count(model.id))
        .group_by(model.business_id)
        .all()
    )
    return {business_id: count for business_id, count in rows}


def list_businesses(*, plan_status: str | None = None, search: str | None = None) -> list[dict]:
    query = db.session.query(Business)
    if plan_status:
        query = query.filter(Business.plan_status == plan_status.upper())
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(Business.name.ilike(like), Business.email.ilike(like)))

    businesses = query.order_by(Business.created_at.desc(), Business.id.desc()).all()
    stores = _counts_by_business(Store)
    users = _counts_by_business(User)
    orders = _counts_by_business(Order)
    customers = _counts_by_business(Customer)

    rows = []
    for business in businesses:
        row = business.to_dict()
        row["counts"] = {
            "stores": stores.get(business.id, 0),
            "users": users.get(business.id, 0),
            "orders": orders.get(business.id, 0),
            "customers": customers.get(business.id, 0),
        }
        rows.append(row)
    return rows


def get_business_detail(business_id: int) -> dict:
    business = require_business(business_id)
    revenue = (
        db.session.query(func.coalesce(func.sum(SubscriptionPayment.amount_paise), 0))
        .filter(SubscriptionPayment.business_id == business_id, SubscriptionPayment.status == "COMPLETED")
        .scalar()
    )
    return {
        "business": business.to_dict(),
        "settings": get_settings(business_id).to_dict(),
        "stores": [s.to_dict() for s in db.session.query(Store).filter_by(business_id=business_id).all()],
        "users": [u.to_dict() for u in db.session.query(User).filter_by(business_id=business_id).all()],
        "order_count": db.session.query(Order).filter_by(business_id=business_id).count(),
        "customer_count": db.session.query(Customer).filter_by(business_id=business_id).count(),
        "revenue_paise": int(revenue or 0),
    }


def set_business_active(business_id: int, is_active: bool) -> Business:
    def _op():
        business = require_business(business_id)
        business.is_active = bool(is_active)
        db.session.commit()
        return business

    business = run_with_retry(_op)
    logger.info("Business %s %s", business_id, "activated" if is_active else "deactivated")
    return business


def extend_trial(business_id: int, days) -> Business:
    """Push the trial end out by `days` from max(now, current trial end)."""
    if isinstance(days, bool) or not isinstance(days, int) or not 1 <= days <= MAX_TRIAL_EXTENSION_DAYS:
        raise ValidationError(f"days must be between 1 and {MAX_TRIAL_EXTENSION_DAYS}")

    def _op():
        business = require_business(business_id)
        now = utcnow()
        base = business.trial_ends_at if business.trial_ends_at and business.trial_ends_at > now else now
        business.trial_ends_at = base + timedelta(days=days)
        business.plan_type = "TRIAL"
        business.plan_status = "TRIAL"
        db.session.commit()
        return business

    return run_with_retry(_op)


def set_business_plan(business_id: int, *, plan_type: str | None = None, plan_status: str | None = None) -> Business:
    """
    Manual plan override. A new plan_type also resets settings limits and
    features to that plan's defaults.
    """
    if plan_type is None and plan_status is None:
        raise ValidationError("plan_type or plan_status is required")
    if plan_type is not None:
        plan_type = str(plan_type).upper()
        if plan_type not in PLAN_TYPES:
            raise ValidationError(f"plan_type must be one of: {', '.join(PLAN_TYPES)}")
    if plan_status is not None:
        plan_status = str(plan_status).upper()
        if plan_status not in PLAN_STATUSES:
            raise ValidationError(f"plan_status must be one of: {', '.join(PLAN_STATUSES)}")

    def _op():
        business = require_business(business_id)
        if plan_type is not None and plan_type != business.plan_type:
            business.plan_type = plan_type
            apply_plan_to_settings(get_settings(business_id), plan_type)
        if plan_status is not None:
            business.plan_status = plan_status
        db.session.commit()
        return business

    business = run_with_retry(_op)
    logger.info("Business %s plan set to %s/%s", business_id, business.plan_type, business.plan_status)
    return business


def set_business_features(business_id: int, overrides: dict):
    """Switch individual features on or off; other features are left as they are."""
    if not isinstance(overrides, dict) or not overrides:
        raise ValidationError(f"Provide at least one of: {', '.join(OVERRIDABLE_FEATURES)}")
    for key, value in overrides.items():
        if key not in OVERRIDABLE_FEATURES:
            raise ValidationError(f"Unknown feature: {key}")
        if not isinstance(value, bool):
            raise ValidationError(f"{key} must be true or false")

    def _op():
        require_business(business_id)
        settings = get_settings(business_id)
        features = list(settings.features or [])
        for key, enabled in overrides.items():
            if enabled and key not in features:
                features.append(key)
            elif not enabled and key in features:
                features.remove(key)
        # Reassign so the JSON column is marked dirty
        settings.features = features
        db.session.commit()
        return settings

    return run_with_retry(_op)


def platform_stats() -> dict:
    by_status = dict(
        db.session.query(Business.plan_status, func.count(Business.id))
        .group_by(Business.plan_status)
        .all()
    )
    revenue = (
        db.session.query(func.coalesce(func.sum(SubscriptionPayment.amount_paise), 0))
        .filter(SubscriptionPayment.status == "COMPLETED")
        .scalar()
    )
    return {
        "total_businesses": db.session.query(Business).count(),
        "active_businesses": db.session.query(Business).filter_by(is_active=True).count(),
        "businesses_by_plan_status": by_status,
        "total_orders": db.session.query(Order).count(),
        "total_customers": db.session.query(Customer).count(),
        "revenue_paise": int(revenue or 0),
    }
