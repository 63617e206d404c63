from __future__ import annotations

from ..extensions import db
from laundrypro.time_utils import to_utc_z


class Subscription(db.Model):
    """
    Paid subscription period for a business.

    STATUSES: PENDING, ACTIVE, CANCELLED, EXPIRED
    """
    __tablename__ = "subscriptions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    plan_type = db.Column(db.String(32), nullable=False)
    billing_cycle = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    amount_paise = db.Column(db.Integer, nullable=False)
    current_period_start = db.Column(db.DateTime(timezone=True), nullable=True)
    current_period_end = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    business = db.relationship("Business", backref=db.backref("subscriptions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "plan_type": self.plan_type,
            "billing_cycle": self.billing_cycle,
            "status": self.status,
            "amount_paise": self.amount_paise,
            "current_period_start": to_utc_z(self.current_period_start),
            "current_period_end": to_utc_z(self.current_period_end),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_at": to_utc_z(self.created_at),
        }


class SubscriptionPayment(db.Model):
    """
    Gateway payment attempt for a subscription.

    Matched to gateway events by gateway_order_id. STATUSES: PENDING,
    COMPLETED, FAILED, REFUNDED
    """
    __tablename__ = "subscription_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    subscription_id = db.Column(db.Integer, db.ForeignKey("subscriptions.id"), nullable=False)

    amount_paise = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(8), nullable=False, default="INR")
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    gateway_order_id = db.Column(db.String(64), nullable=False, unique=True, index=True)
    gateway_payment_id = db.Column(db.String(64), nullable=True, index=True)
    gateway_signature = db.Column(db.String(255), nullable=True)
    payment_method = db.Column(db.String(32), nullable=True)

    failure_code = db.Column(db.String(64), nullable=True)
    failure_reason = db.Column(db.Text, nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    subscription = db.relationship("Subscription", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "subscription_id": self.subscription_id,
            "amount_paise": self.amount_paise,
            "currency": self.currency,
            "status": self.status,
            "gateway_order_id": self.gateway_order_id,
            "gateway_payment_id": self.gateway_payment_id,
            "payment_method": self.payment_method,
            "failure_code": self.failure_code,
            "failure_reason": self.failure_reason,
            "paid_at": to_utc_z(self.paid_at),
            "refunded_at": to_utc_z(self.refunded_at),
            "created_at": to_utc_z(self.created_at),
        }


class Invoice(db.Model):
    """Invoice issued for a completed subscription payment."""
    __tablename__ = "invoices"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    subscription_payment_id = db.Column(
        db.Integer, db.ForeignKey("subscription_payments.id"), nullable=False, unique=True
    )
    invoice_number = db.Column(db.String(64), nullable=False, unique=True)
    amount_paise = db.Column(db.Integer, nullable=False)
    plan_type = db.Column(db.String(32), nullable=False)
    billing_cycle = db.Column(db.String(16), nullable=False)
    period_start = db.Column(db.DateTime(timezone=True), nullable=False)
    period_end = db.Column(db.DateTime(timezone=True), nullable=False)
    issued_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "subscription_payment_id": self.subscription_payment_id,
            "invoice_number": self.invoice_number,
            "amount_paise": self.amount_paise,
            "plan_type": self.plan_type,
            "billing_cycle": self.billing_cycle,
            "period_start": to_utc_z(self.period_start),
            "period_end": to_utc_z(self.period_end),
            "issued_at": to_utc_z(self.issued_at),
        }
