# Overview: Plan catalogue (pricing, features, limits) and billing-cycle helpers.

from __future__ import annotations

import math
from datetime import datetime, timedelta


BILLING_CYCLE_MONTHS = {
    "MONTHLY": 1,
    "SEMI_ANNUAL": 6,
    "ANNUAL": 12,
}

DEFAULT_TRIAL_DAYS = 14


def _features(
    *,
    workshop: bool,
    multi_store: bool,
    sms: bool,
    whatsapp: bool,
    advanced_reports: bool,
    priority_support: bool,
    api_access: bool,
    custom_branding: bool,
    dedicated_manager: bool,
) -> dict:
    return {
        "pickup_enabled": True,
        "delivery_enabled": True,
        "workshop_enabled": workshop,
        "multi_store_enabled": multi_store,
        "sms_notifications": sms,
        "email_notifications": True,
        "whatsapp_integration": whatsapp,
        "advanced_reports": advanced_reports,
        "priority_support": priority_support,
        "api_access": api_access,
        "custom_branding": custom_branding,
        "dedicated_manager": dedicated_manager,
    }


# Prices in paise per billing cycle; None = free (TRIAL) or custom (ENTERPRISE)
PLANS = {
    "TRIAL": {
        "name": "Trial",
        "description": "Try all features free for 14 days",
        "pricing": None,
        "features": _features(
            workshop=True, multi_store=False, sms=False, whatsapp=False,
            advanced_reports=True, priority_support=False, api_access=False,
            custom_branding=False, dedicated_manager=False,
        ),
        "limits": {"max_stores": 1, "max_staff": 3, "max_monthly_orders": 50},
    },
    "BASIC": {
        "name": "Basic",
        "description": "Perfect for small laundry shops",
        "pricing": {"MONTHLY": 49_900, "SEMI_ANNUAL": 270_000, "ANNUAL": 499_900},
        "features": _features(
            workshop=False, multi_store=False, sms=False, whatsapp=False,
            advanced_reports=False, priority_support=False, api_access=False,
            custom_branding=False, dedicated_manager=False,
        ),
        "limits": {"max_stores": 1, "max_staff": 5, "max_monthly_orders": 500},
    },
    "PROFESSIONAL": {
        "name": "Pro",
        "description": "For growing laundry businesses",
        "pricing": {"MONTHLY": 162_500, "SEMI_ANNUAL": 875_000, "ANNUAL": 1_750_000},
        "popular": True,
        "features": _features(
            workshop=True, multi_store=True, sms=True, whatsapp=True,
            advanced_reports=True, priority_support=True, api_access=False,
            custom_branding=True, dedicated_manager=False,
        ),
        "limits": {"max_stores": 5, "max_staff": 20, "max_monthly_orders": 2000},
    },
    "ENTERPRISE": {
        "name": "Enterprise",
        "description": "For large operations & chains",
        "pricing": None,
        "features": _features(
            workshop=True, multi_store=True, sms=True, whatsapp=True,
            advanced_reports=True, priority_support=True, api_access=True,
            custom_branding=True, dedicated_manager=True,
        ),
        "limits": {"max_stores": 999, "max_staff": 999, "max_monthly_orders": 999_999},
    },
}


def get_plan(plan_type: str) -> dict:
    try:
        return PLANS[plan_type]
    except KeyError:
        raise ValueError(f"Unknown plan: {plan_type}")


def get_plan_price_paise(plan_type: str, billing_cycle: str) -> int:
    pricing = get_plan(plan_type)["pricing"]
    if not pricing:
        return 0
    return pricing.get(billing_cycle, pricing["MONTHLY"])


def get_billing_cycle_months(billing_cycle: str) -> int:
    return BILLING_CYCLE_MONTHS.get(billing_cycle, 1)


def get_plan_limits(plan_type: str) -> dict:
    return dict(get_plan(plan_type)["limits"])


def enabled_features(plan_type: str) -> list[str]:
    return sorted(k for k, v in get_plan(plan_type)["features"].items() if v)


def is_purchasable(plan_type: str) -> bool:
    return plan_type in PLANS and PLANS[plan_type]["pricing"] is not None


def get_trial_end_date(start: datetime, days: int = DEFAULT_TRIAL_DAYS) -> datetime:
    return start + timedelta(days=days)


def days_remaining(end: datetime, now: datetime) -> int:
    """Whole days left, rounded up (any partial day counts as one)."""
    return max(0, math.ceil((end - now).total_seconds() / 86400))


def catalogue() -> list[dict]:
    """Public plan list for the pricing page."""
    rows = []
    for plan_type, plan in PLANS.items():
        rows.append({
            "plan_type": plan_type,
            "name": plan["name"],
            "description": plan["description"],
            "pricing_paise": plan["pricing"],
            "popular": plan.get("popular", False),
            "features": plan["features"],
            "limits": plan["limits"],
        })
    return rows
