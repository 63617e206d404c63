# Overview: Service-layer operations for plans, access status and subscription billing.

"""
Subscription & Access Status

================================================================================
ACCESS RESOLVER (resolve_access_status)
================================================================================

Evaluated fresh on every check; the decision itself is never cached.

    super admin            -> access, days_remaining 999
    TRIAL (type or status) -> backfill trial_ends_at when missing
                              now > trial_ends_at  -> denied, trial_expired
                              otherwise            -> access, banner "trial"
    plan_status CANCELLED  -> denied, cancelled
    paid, no end date      -> access, days_remaining 999
    paid, now > end date   -> plan_status := SUSPENDED, denied,
                              subscription_expired (no grace period)
    paid, <= 3 days left   -> access, banner "expiring"
    paid                   -> access

UPSERT-ON-READ: the trial backfill and the SUSPENDED flip are written and
committed by the check itself. Callers must treat a status check as
non-idempotent with respect to wall-clock time.

================================================================================
BILLING
================================================================================

    create_checkout -> gateway order + PENDING SubscriptionPayment
    verify_payment  -> checkout signature; activation on success
    handle_webhook  -> payment.captured | payment.failed | refund.created |
                       order.paid, matched by gateway order id

Activation (one transaction): payment COMPLETED, subscription ACTIVE with
period dates, business plan ACTIVE with subscription_ends_at, settings limits
from the plan, one invoice. Activation of an already COMPLETED payment is a
no-op, so checkout verification and the capture webhook can both arrive.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Business, Invoice, Subscription, SubscriptionPayment
from ..plans import (
    BILLING_CYCLE_MONTHS,
    DEFAULT_TRIAL_DAYS,
    days_remaining,
    get_billing_cycle_months,
    get_plan_price_paise,
    get_trial_end_date,
    is_purchasable,
)
from ..validation import NotFoundError, ValidationError
from . import payment_gateway
from .concurrency import lock_for_update, run_with_retry
from .tenant_service import apply_plan_to_settings, get_settings, require_business
from laundrypro.time_utils import add_months, to_utc_z, utcnow


logger = logging.getLogger(__name__)

EXPIRING_BANNER_DAYS = 3
UNLIMITED_DAYS = 999


class SubscriptionError(Exception):
    """Raised when a billing request conflicts with the subscription state."""
    pass


def _status(
    *,
    is_active: bool,
    reason: str,
    days: int,
    plan_type: str,
    plan_status: str,
    expires_at: datetime | None,
    banner_type: str = "none",
) -> dict:
    return {
        "is_active": is_active,
        "reason": reason,
        "days_remaining": days,
        "can_access": is_active,
        "plan_type": plan_type,
        "plan_status": plan_status,
        "expires_at": to_utc_z(expires_at),
        "show_banner": banner_type != "none",
        "banner_type": banner_type,
    }


def resolve_access_status(
    business: Business | None,
    *,
    is_super_admin: bool = False,
    now: datetime | None = None,
) -> dict:
    """Point-in-time access decision for a business. May write (see module docstring)."""
    if is_super_admin:
        return _status(
            is_active=True,
            reason="active",
            days=UNLIMITED_DAYS,
            plan_type="SUPER_ADMIN",
            plan_status="ACTIVE",
            expires_at=None,
        )
    if business is None:
        raise NotFoundError("Business not found")

    now = now or utcnow()

    if business.plan_type == "TRIAL" or business.plan_status == "TRIAL":
        if business.trial_ends_at is None:
            trial_days = current_app.config.get("TRIAL_DAYS", DEFAULT_TRIAL_DAYS)
            business.trial_ends_at = get_trial_end_date(now, trial_days)
            db.session.commit()

        trial_ends_at = business.trial_ends_at
        if now > trial_ends_at:
            return _status(
                is_active=False,
                reason="trial_expired",
                days=0,
                plan_type=business.plan_type,
                plan_status="EXPIRED",
                expires_at=trial_ends_at,
            )
        return _status(
            is_active=True,
            reason="trial",
            days=days_remaining(trial_ends_at, now),
            plan_type=business.plan_type,
            plan_status=business.plan_status,
            expires_at=trial_ends_at,
            banner_type="trial",
        )

    if business.plan_status == "CANCELLED":
        return _status(
            is_active=False,
            reason="cancelled",
            days=0,
            plan_type=business.plan_type,
            plan_status=business.plan_status,
            expires_at=business.subscription_ends_at,
        )

    ends_at = business.subscription_ends_at
    if ends_at is None:
        return _status(
            is_active=True,
            reason="active",
            days=UNLIMITED_DAYS,
            plan_type=business.plan_type,
            plan_status=business.plan_status,
            expires_at=None,
        )

    if now > ends_at:
        if business.plan_status != "SUSPENDED":
            business.plan_status = "SUSPENDED"
            db.session.commit()
            logger.info("Business %s suspended: subscription ended %s", business.id, to_utc_z(ends_at))
        return _status(
            is_active=False,
            reason="subscription_expired",
            days=0,
            plan_type=business.plan_type,
            plan_status="EXPIRED",
            expires_at=ends_at,
        )

    days = days_remaining(ends_at, now)
    return _status(
        is_active=True,
        reason="active",
        days=days,
        plan_type=business.plan_type,
        plan_status=business.plan_status,
        expires_at=ends_at,
        banner_type="expiring" if days <= EXPIRING_BANNER_DAYS else "none",
    )


def get_access_status(business_id: int, *, is_super_admin: bool = False) -> dict:
    if is_super_admin:
        return resolve_access_status(None, is_super_admin=True)
    return resolve_access_status(require_business(business_id))


def current_subscription(business_id: int) -> Subscription | None:
    return (
        db.session.query(Subscription)
        .filter_by(business_id=business_id)
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .first()
    )


# -- Checkout --

def create_checkout(business_id: int, plan_type: str, billing_cycle: str) -> dict:
    """
    Start a plan purchase: creates the gateway order and a PENDING payment.

    Returns what the client checkout widget needs (key id, order id, amount).
    """
    plan_type = str(plan_type or "").upper()
    billing_cycle = str(billing_cycle or "MONTHLY").upper()
    if not is_purchasable(plan_type):
        raise ValidationError("Invalid plan. Choose BASIC or PROFESSIONAL.")
    if billing_cycle not in BILLING_CYCLE_MONTHS:
        raise ValidationError(f"billing_cycle must be one of: {', '.join(BILLING_CYCLE_MONTHS)}")

    business = require_business(business_id)
    amount = get_plan_price_paise(plan_type, billing_cycle)

    gateway_order = payment_gateway.create_order(
        amount,
        receipt=f"sub_{business.id}_{int(utcnow().timestamp())}",
        notes={
            "business_id": str(business.id),
            "business_name": business.name,
            "plan_type": plan_type,
            "billing_cycle": billing_cycle,
        },
    )

    def _op():
        subscription = Subscription(
            business_id=business.id,
            plan_type=plan_type,
            billing_cycle=billing_cycle,
            status="PENDING",
            amount_paise=amount,
        )
        db.session.add(subscription)
        db.session.flush()
        payment = SubscriptionPayment(
            business_id=business.id,
            subscription_id=subscription.id,
            amount_paise=amount,
            status="PENDING",
            gateway_order_id=gateway_order["id"],
        )
        db.session.add(payment)
        db.session.commit()
        return payment

    payment = run_with_retry(_op)
    return {
        "key_id": payment_gateway.key_id(),
        "order_id": payment.gateway_order_id,
        "amount_paise": amount,
        "currency": payment.currency,
        "plan_type": plan_type,
        "billing_cycle": billing_cycle,
        "business_name": business.name,
    }


def _payment_by_gateway_order(gateway_order_id: str, *, lock: bool = False) -> SubscriptionPayment | None:
    query = db.session.query(SubscriptionPayment).filter_by(gateway_order_id=gateway_order_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def _activate(payment: SubscriptionPayment, gateway_payment_id: str | None, method: str | None = None) -> bool:
    """Apply a successful payment. Caller commits. Returns False when already applied."""
    if payment.status == "COMPLETED":
        return False

    now = utcnow()
    subscription = payment.subscription
    period_end = add_months(now, get_billing_cycle_months(subscription.billing_cycle))

    payment.status = "COMPLETED"
    payment.gateway_payment_id = gateway_payment_id or payment.gateway_payment_id
    payment.payment_method = method or payment.payment_method
    payment.paid_at = now
    payment.failure_code = None
    payment.failure_reason = None

    subscription.status = "ACTIVE"
    subscription.current_period_start = now
    subscription.current_period_end = period_end
    subscription.cancelled_at = None

    business = db.session.get(Business, subscription.business_id)
    business.plan_type = subscription.plan_type
    business.plan_status = "ACTIVE"
    business.subscription_ends_at = period_end

    apply_plan_to_settings(get_settings(business.id), subscription.plan_type)

    db.session.flush()
    db.session.add(Invoice(
        business_id=business.id,
        subscription_payment_id=payment.id,
        invoice_number=f"INV-{now:%Y%m%d}-{payment.id:06d}",
        amount_paise=payment.amount_paise,
        plan_type=subscription.plan_type,
        billing_cycle=subscription.billing_cycle,
        period_start=now,
        period_end=period_end,
        issued_at=now,
    ))
    logger.info("Subscription activated for business %s (%s)", business.id, subscription.plan_type)
    return True


def verify_payment(business_id: int, order_id: str, payment_id: str, signature: str) -> dict:
    """Checkout callback: verify the signature and activate the plan."""
    if not order_id or not payment_id or not signature:
        raise ValidationError("order_id, payment_id and signature are required")

    payment = _payment_by_gateway_order(order_id)
    if payment is None or payment.business_id != business_id:
        raise NotFoundError("Payment not found")

    if not payment_gateway.verify_payment_signature(order_id, payment_id, signature):
        def _fail():
            row = _payment_by_gateway_order(order_id, lock=True)
            if row.status == "PENDING":
                row.status = "FAILED"
                row.gateway_payment_id = payment_id
                row.failure_reason = "Signature verification failed"
            db.session.commit()

        run_with_retry(_fail)
        logger.warning("Payment signature mismatch for gateway order %s", order_id)
        raise SubscriptionError("Payment verification failed")

    def _op():
        row = _payment_by_gateway_order(order_id, lock=True)
        row.gateway_signature = signature
        activated = _activate(row, payment_id)
        db.session.commit()
        return {"payment": row, "subscription": row.subscription, "activated": activated}

    return run_with_retry(_op)


# -- Webhooks --

def _on_payment_captured(entity: dict) -> None:
    order_id = entity.get("order_id")

    def _op():
        payment = _payment_by_gateway_order(order_id, lock=True) if order_id else None
        if payment is None:
            logger.info("Captured payment %s has no matching record", entity.get("id"))
            return
        if not _activate(payment, entity.get("id"), entity.get("method")):
            logger.info("Payment for gateway order %s already processed", order_id)
        db.session.commit()

    run_with_retry(_op)


def _on_payment_failed(entity: dict) -> None:
    order_id = entity.get("order_id")

    def _op():
        payment = _payment_by_gateway_order(order_id, lock=True) if order_id else None
        if payment is None:
            return
        if payment.status == "COMPLETED":
            logger.warning("Ignoring failure event for completed gateway order %s", order_id)
            return
        payment.status = "FAILED"
        payment.gateway_payment_id = entity.get("id")
        payment.failure_code = entity.get("error_code")
        payment.failure_reason = entity.get("error_description")
        db.session.commit()

    run_with_retry(_op)
    logger.info("Payment failed for gateway order %s: %s", order_id, entity.get("error_description"))


def _on_refund_created(entity: dict) -> None:
    gateway_payment_id = entity.get("payment_id")

    def _op():
        rows = (
            db.session.query(SubscriptionPayment)
            .filter_by(gateway_payment_id=gateway_payment_id)
            .all()
        ) if gateway_payment_id else []
        now = utcnow()
        for row in rows:
            row.status = "REFUNDED"
            row.refunded_at = now
        db.session.commit()

    run_with_retry(_op)
    logger.info("Refund recorded for gateway payment %s", gateway_payment_id)


def _entity(payload: dict, key: str) -> dict:
    entity = (payload.get(key) or {}).get("entity")
    if not isinstance(entity, dict):
        raise ValidationError(f"Webhook payload is missing {key}.entity")
    return entity


def handle_webhook(raw_body: str, signature: str | None) -> dict:
    """
    Verify and dispatch a gateway event. Unknown events are acknowledged.

    Raises SubscriptionError on a missing or invalid signature.
    """
    if not signature:
        raise SubscriptionError("Missing signature")
    if not payment_gateway.verify_webhook_signature(raw_body, signature):
        logger.warning("Rejected webhook with invalid signature")
        raise SubscriptionError("Invalid signature")

    try:
        event = json.loads(raw_body)
    except ValueError:
        raise ValidationError("Invalid webhook payload")

    event_type = event.get("event")
    payload = event.get("payload") or {}
    logger.info("Gateway webhook: %s", event_type)

    if event_type == "payment.captured":
        _on_payment_captured(_entity(payload, "payment"))
    elif event_type == "payment.failed":
        _on_payment_failed(_entity(payload, "payment"))
    elif event_type == "refund.created":
        _on_refund_created(_entity(payload, "refund"))
    elif event_type == "order.paid":
        logger.info("Order paid: %s", (payload.get("order") or {}).get("entity", {}).get("id"))
    else:
        logger.info("Unhandled webhook event: %s", event_type)

    return {"received": True, "event": event_type}


# -- Cancellation and history --

def cancel_subscription(business_id: int, *, immediate: bool = False, reason: str | None = None) -> dict:
    def _op():
        subscription = lock_for_update(
            db.session.query(Subscription).filter_by(business_id=business_id, status="ACTIVE")
        ).order_by(Subscription.id.desc()).first()
        if subscription is None:
            raise NotFoundError("No active subscription found")

        now = utcnow()
        business = require_business(business_id)
        subscription.status = "CANCELLED"
        subscription.cancelled_at = now

        if immediate:
            business.plan_type = "TRIAL"
            business.plan_status = "CANCELLED"
            business.subscription_ends_at = now
            settings = get_settings(business_id)
            apply_plan_to_settings(settings, "TRIAL")
            settings.features = []
            effective = now
        else:
            business.plan_status = "CANCELLED"
            effective = subscription.current_period_end

        db.session.commit()
        logger.info(
            "Subscription %s cancelled for business %s (immediate=%s, reason=%s)",
            subscription.id, business_id, immediate, reason or "User requested cancellation",
        )
        return {
            "message": (
                "Subscription cancelled immediately"
                if immediate
                else "Subscription will be cancelled at the end of the billing period"
            ),
            "effective_date": to_utc_z(effective),
        }

    return run_with_retry(_op)


def billing_history(business_id: int) -> dict:
    payments = (
        db.session.query(SubscriptionPayment)
        .filter_by(business_id=business_id)
        .order_by(SubscriptionPayment.created_at.desc(), SubscriptionPayment.id.desc())
        .all()
    )
    invoices = (
        db.session.query(Invoice)
        .filter_by(business_id=business_id)
        .order_by(Invoice.issued_at.desc(), Invoice.id.desc())
        .all()
    )
    return {"payments": payments, "invoices": invoices}
