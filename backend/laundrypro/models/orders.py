from __future__ import annotations

from ..extensions import db
from laundrypro.time_utils import to_utc_z


class Order(db.Model):
    """
    Laundry order: the aggregate for items, financials and lifecycle status.

    Order numbers are unique per business (STORECODE-YYMMDD-NNNN). The unique
    constraint is what the creation retry loop relies on; there is no lock.

    FINANCIALS (all amounts in paise):
        total = subtotal - discount + (gst if gst_enabled else legacy tax)
        due   = total - paid
    GST is computed on the post-discount amount and frozen on the order at
    creation so later settings changes do not reprice existing orders.

    Orders are never deleted. Cancellation is a status value.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("business_id", "order_number", name="uq_orders_business_order_number"),
        db.Index("ix_orders_business_status_created", "business_id", "status", "created_at"),
        db.Index("ix_orders_store_id", "store_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    order_number = db.Column(db.String(32), nullable=False)
    order_type = db.Column(db.String(16), nullable=False, default="WALKIN")
    status = db.Column(db.String(24), nullable=False, default="PICKUP", index=True)

    # Financials (paise)
    subtotal_paise = db.Column(db.Integer, nullable=False, default=0)
    discount_paise = db.Column(db.Integer, nullable=False, default=0)
    gst_enabled = db.Column(db.Boolean, nullable=False, default=True)
    gst_percentage_bps = db.Column(db.Integer, nullable=False, default=0)
    gst_paise = db.Column(db.Integer, nullable=False, default=0)
    tax_paise = db.Column(db.Integer, nullable=False, default=0)  # legacy flat tax
    total_paise = db.Column(db.Integer, nullable=False, default=0)
    paid_paise = db.Column(db.Integer, nullable=False, default=0)
    payment_status = db.Column(db.String(16), nullable=False, default="UNPAID", index=True)  # UNPAID, PARTIAL, PAID

    # Scheduling
    pickup_date = db.Column(db.DateTime(timezone=True), nullable=True)
    delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)
    picked_up_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Driver assignment
    driver_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    assigned_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Rework (COMPLETED -> IN_PROGRESS)
    is_rework = db.Column(db.Boolean, nullable=False, default=False)
    rework_count = db.Column(db.Integer, nullable=False, default=0)
    rework_reason = db.Column(db.Text, nullable=True)

    special_instructions = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("orders", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    driver = db.relationship("User", foreign_keys=[driver_id])
    items = db.relationship(
        "OrderItem",
        backref=db.backref("order", lazy=True),
        order_by="OrderItem.id",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def due_paise(self) -> int:
        return (self.total_paise or 0) - (self.paid_paise or 0)

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "business_id": self.business_id,
            "store_id": self.store_id,
            "customer_id": self.customer_id,
            "order_number": self.order_number,
            "order_type": self.order_type,
            "status": self.status,
            "subtotal_paise": self.subtotal_paise,
            "discount_paise": self.discount_paise,
            "gst_enabled": self.gst_enabled,
            "gst_percentage_bps": self.gst_percentage_bps,
            "gst_paise": self.gst_paise,
            "tax_paise": self.tax_paise,
            "total_paise": self.total_paise,
            "paid_paise": self.paid_paise,
            "due_paise": self.due_paise,
            "payment_status": self.payment_status,
            "pickup_date": to_utc_z(self.pickup_date),
            "delivery_date": to_utc_z(self.delivery_date),
            "picked_up_at": to_utc_z(self.picked_up_at),
            "delivered_at": to_utc_z(self.delivered_at),
            "completed_at": to_utc_z(self.completed_at),
            "driver_id": self.driver_id,
            "assigned_at": to_utc_z(self.assigned_at),
            "is_rework": self.is_rework,
            "rework_count": self.rework_count,
            "rework_reason": self.rework_reason,
            "special_instructions": self.special_instructions,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """
    Single garment/unit within an order.

    Item status is finer-grained than order status. Workshop fields stay null
    until the item is routed to an external partner.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.Index("ix_order_items_order_status", "order_id", "status"),
        db.Index("ix_order_items_business_workshop", "business_id", "sent_to_workshop", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False)

    tag_number = db.Column(db.String(48), nullable=False, index=True)
    item_name = db.Column(db.String(120), nullable=False)
    treatment_name = db.Column(db.String(120), nullable=True)
    # Catalogue references; names and prices above are copied at intake
    catalog_item_id = db.Column(db.Integer, db.ForeignKey("catalog_items.id"), nullable=True)
    treatment_id = db.Column(db.Integer, db.ForeignKey("treatments.id"), nullable=True, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price_paise = db.Column(db.Integer, nullable=False)
    is_express = db.Column(db.Boolean, nullable=False, default=False)
    subtotal_paise = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(24), nullable=False, default="RECEIVED", index=True)
    color = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # Workshop routing
    sent_to_workshop = db.Column(db.Boolean, nullable=False, default=False)
    workshop_partner_name = db.Column(db.String(255), nullable=True)
    workshop_sent_date = db.Column(db.DateTime(timezone=True), nullable=True)
    workshop_returned_date = db.Column(db.DateTime(timezone=True), nullable=True)
    workshop_notes = db.Column(db.Text, nullable=True)

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
            "order_id": self.order_id,
            "tag_number": self.tag_number,
            "item_name": self.item_name,
            "treatment_name": self.treatment_name,
            "catalog_item_id": self.catalog_item_id,
            "treatment_id": self.treatment_id,
            "quantity": self.quantity,
            "unit_price_paise": self.unit_price_paise,
            "is_express": self.is_express,
            "subtotal_paise": self.subtotal_paise,
            "status": self.status,
            "color": self.color,
            "notes": self.notes,
            "sent_to_workshop": self.sent_to_workshop,
            "workshop_partner_name": self.workshop_partner_name,
            "workshop_sent_date": to_utc_z(self.workshop_sent_date),
            "workshop_returned_date": to_utc_z(self.workshop_returned_date),
            "workshop_notes": self.workshop_notes,
            "created_at": to_utc_z(self.created_at),
        }


class OrderStatusHistory(db.Model):
    """
    Append-only audit trail of order status transitions.

    Rows are written in the same transaction as the status change and are
    never updated or deleted. from_status is null for the creation row.
    """
    __tablename__ = "order_status_history"
    __table_args__ = (
        db.Index("ix_order_status_history_order_created", "order_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)
    from_status = db.Column(db.String(24), nullable=True)
    to_status = db.Column(db.String(24), nullable=False)
    changed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("status_history", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "changed_by_user_id": self.changed_by_user_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class OrderPayment(db.Model):
    """
    Customer payment against an order (supports partial payments).

    PAYMENT MODES: CASH, UPI, CARD, ONLINE, OTHER
    """
    __tablename__ = "order_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    amount_paise = db.Column(db.Integer, nullable=False)
    mode = db.Column(db.String(16), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    received_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "amount_paise": self.amount_paise,
            "mode": self.mode,
            "notes": self.notes,
            "received_by_user_id": self.received_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
