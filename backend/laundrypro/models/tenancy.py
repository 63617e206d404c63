from __future__ import annotations

from ..extensions import db
from laundrypro.time_utils import to_utc_z


PLAN_TYPES = ("TRIAL", "BASIC", "PROFESSIONAL", "ENTERPRISE")
PLAN_STATUSES = ("TRIAL", "ACTIVE", "CANCELLED", "SUSPENDED")


class Business(db.Model):
    """
    Multi-tenant root: every laundry business is a tenant.

    All stores, users, customers, orders and inventory belong to exactly one
    business. No data may cross business boundaries.

    Plan fields drive the subscription resolver (see subscription_service):
    - plan_type: TRIAL | BASIC | PROFESSIONAL | ENTERPRISE
    - plan_status: TRIAL | ACTIVE | CANCELLED | SUSPENDED
    - trial_ends_at: backfilled on first status check when missing
    - subscription_ends_at: end of the paid period (no grace period)
    """
    __tablename__ = "businesses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    plan_type = db.Column(db.String(32), nullable=False, default="TRIAL")
    plan_status = db.Column(db.String(32), nullable=False, default="TRIAL", index=True)
    trial_ends_at = db.Column(db.DateTime(timezone=True), nullable=True)
    subscription_ends_at = db.Column(db.DateTime(timezone=True), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    settings = db.relationship(
        "BusinessSettings",
        uselist=False,
        backref=db.backref("business", lazy=True),
    )

    def __repr__(self) -> str:
        return f"<Business id={self.id} name={self.name!r} plan={self.plan_type}/{self.plan_status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "plan_type": self.plan_type,
            "plan_status": self.plan_status,
            "trial_ends_at": to_utc_z(self.trial_ends_at),
            "subscription_ends_at": to_utc_z(self.subscription_ends_at),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class BusinessSettings(db.Model):
    """
    Per-business configuration: tax, pricing and plan limits.

    GST is stored in basis points (1800 = 18%). The express multiplier is
    stored in basis points too (15000 = 1.5x).
    """
    __tablename__ = "business_settings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(
        db.Integer, db.ForeignKey("businesses.id"), nullable=False, unique=True, index=True
    )

    gst_enabled = db.Column(db.Boolean, nullable=False, default=True)
    gst_percentage_bps = db.Column(db.Integer, nullable=False, default=1800)
    # Flat per-order tax used when GST is disabled
    legacy_tax_paise = db.Column(db.Integer, nullable=False, default=0)
    express_multiplier_bps = db.Column(db.Integer, nullable=False, default=15000)

    max_stores = db.Column(db.Integer, nullable=False, default=1)
    max_staff = db.Column(db.Integer, nullable=False, default=2)
    max_monthly_orders = db.Column(db.Integer, nullable=False, default=100)
    features = db.Column(db.JSON, nullable=True)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "business_id": self.business_id,
            "gst_enabled": self.gst_enabled,
            "gst_percentage_bps": self.gst_percentage_bps,
            "legacy_tax_paise": self.legacy_tax_paise,
            "express_multiplier_bps": self.express_multiplier_bps,
            "max_stores": self.max_stores,
            "max_staff": self.max_staff,
            "max_monthly_orders": self.max_monthly_orders,
            "features": self.features or [],
            "updated_at": to_utc_z(self.updated_at),
        }


class Store(db.Model):
    """
    Physical outlet within a business.

    Store names are unique within a business, not globally. The first three
    letters of the name become the order number prefix.
    """
    __tablename__ = "stores"
    __table_args__ = (
        db.UniqueConstraint("business_id", "name", name="uq_stores_business_name"),
        db.Index("ix_stores_business_id", "business_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    address = db.Column(db.Text, nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    business = db.relationship("Business", backref=db.backref("stores", lazy=True))

    def __repr__(self) -> str:
        return f"<Store id={self.id} business_id={self.business_id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
