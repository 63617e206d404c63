from __future__ import annotations

from ..extensions import db
from laundrypro.time_utils import to_utc_z


CATALOG_ITEM_CATEGORIES = ("GARMENT", "HOUSEHOLD", "SPECIALTY")


class Treatment(db.Model):
    """
    A cleaning process offered by the business (Wash & Iron, Dry Clean...).

    code is an uppercase identifier unique within the business.
    """
    __tablename__ = "treatments"
    __table_args__ = (
        db.UniqueConstraint("business_id", "code", name="uq_treatments_business_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_combo = db.Column(db.Boolean, nullable=False, default=False)
    turnaround_hours = db.Column(db.Integer, nullable=False, default=24)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

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
            "code": self.code,
            "description": self.description,
            "is_combo": self.is_combo,
            "turnaround_hours": self.turnaround_hours,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CatalogItem(db.Model):
    """
    A kind of article the business accepts (Shirt, Saree, Curtain...).

    Items used by past orders are archived (deleted_at) instead of removed.
    Names are unique per business among live items, case-insensitively.
    """
    __tablename__ = "catalog_items"
    __table_args__ = (
        db.Index("ix_catalog_items_business_category", "business_id", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    name = db.Column(db.String(120), nullable=False)
    category = db.Column(db.String(32), nullable=False, default="GARMENT")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    prices = db.relationship(
        "ItemTreatmentPrice",
        backref=db.backref("item", lazy=True),
        lazy=True,
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "name": self.name,
            "category": self.category,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
            "prices": [p.to_dict() for p in self.prices],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ItemTreatmentPrice(db.Model):
    """
    One cell of the price matrix: what an item costs under a treatment.

    express_price_paise, when set, replaces the business express multiplier
    for express lines of this item and treatment.
    """
    __tablename__ = "item_treatment_prices"
    __table_args__ = (
        db.UniqueConstraint("item_id", "treatment_id", name="uq_item_treatment_prices_item_treatment"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("catalog_items.id"), nullable=False, index=True)
    treatment_id = db.Column(db.Integer, db.ForeignKey("treatments.id"), nullable=False, index=True)
    price_paise = db.Column(db.Integer, nullable=False)
    express_price_paise = db.Column(db.Integer, nullable=True)
    is_available = db.Column(db.Boolean, nullable=False, default=True)

    treatment = db.relationship("Treatment", lazy=True)

    def to_dict(self) -> dict:
        return {
            "treatment_id": self.treatment_id,
            "treatment_name": self.treatment.name if self.treatment else None,
            "price_paise": self.price_paise,
            "express_price_paise": self.express_price_paise,
            "is_available": self.is_available,
        }
