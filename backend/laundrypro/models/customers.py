from __future__ import annotations

from ..extensions import db
from laundrypro.time_utils import to_utc_z


class Customer(db.Model):
    """
    Laundry customer. Phone is the natural key within a business.

    total_orders / total_spent_paise are denormalised counters maintained by
    order_service on create, first item intake and cancellation.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("business_id", "phone", name="uq_customers_business_phone"),
        db.Index("ix_customers_business_name", "business_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    name = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(32), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    total_orders = db.Column(db.Integer, nullable=False, default=0)
    total_spent_paise = db.Column(db.Integer, nullable=False, default=0)

    # Customer app push registration
    expo_push_token = db.Column(db.String(255), nullable=True)
    push_enabled = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "notes": self.notes,
            "total_orders": self.total_orders,
            "total_spent_paise": self.total_spent_paise,
            "push_enabled": self.push_enabled,
            "has_push_token": bool(self.expo_push_token),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
