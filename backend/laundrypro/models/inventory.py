from __future__ import annotations

from ..extensions import db
from laundrypro.time_utils import to_utc_z


INVENTORY_CATEGORIES = (
    "DETERGENT",
    "SOFTENER",
    "BLEACH",
    "PACKAGING",
    "EQUIPMENT",
    "CHEMICALS",
    "ACCESSORIES",
    "OTHER",
)


class InventoryItem(db.Model):
    """
    Consumable stock item (detergent, hangers, packaging...).

    current_stock only changes through inventory_service.adjust_stock / restock,
    each of which writes exactly one InventoryRestockLog row. Hard floor at zero.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.UniqueConstraint("business_id", "sku", name="uq_inventory_items_business_sku"),
        db.Index("ix_inventory_items_business_category", "business_id", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=True)
    category = db.Column(db.String(32), nullable=False, default="OTHER")
    unit = db.Column(db.String(32), nullable=False, default="pcs")
    description = db.Column(db.Text, nullable=True)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=0)
    cost_per_unit_paise = db.Column(db.Integer, nullable=True)
    supplier = db.Column(db.String(255), nullable=True)
    last_restocked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    # Soft delete: restock logs reference the row and are kept
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock <= self.min_stock

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "name": self.name,
            "sku": self.sku,
            "category": self.category,
            "unit": self.unit,
            "description": self.description,
            "current_stock": self.current_stock,
            "min_stock": self.min_stock,
            "is_low_stock": self.is_low_stock,
            "cost_per_unit_paise": self.cost_per_unit_paise,
            "supplier": self.supplier,
            "last_restocked_at": to_utc_z(self.last_restocked_at),
            "deleted_at": to_utc_z(self.deleted_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class InventoryRestockLog(db.Model):
    """
    Immutable stock movement row.

    added_stock is signed: positive for ADD/restock, negative for REMOVE.
    new_stock == previous_stock + added_stock always holds.
    """
    __tablename__ = "inventory_restock_logs"
    __table_args__ = (
        db.Index("ix_inventory_restock_logs_item_created", "inventory_item_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False)
    previous_stock = db.Column(db.Integer, nullable=False)
    added_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)
    cost_per_unit_paise = db.Column(db.Integer, nullable=True)
    total_cost_paise = db.Column(db.Integer, nullable=True)
    supplier = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    item = db.relationship("InventoryItem", backref=db.backref("restock_logs", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inventory_item_id": self.inventory_item_id,
            "previous_stock": self.previous_stock,
            "added_stock": self.added_stock,
            "new_stock": self.new_stock,
            "cost_per_unit_paise": self.cost_per_unit_paise,
            "total_cost_paise": self.total_cost_paise,
            "supplier": self.supplier,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
