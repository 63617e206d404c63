from __future__ import annotations

from ..extensions import db
from laundrypro.time_utils import to_utc_z


EXPENSE_CATEGORIES = (
    "UTILITIES",
    "SUPPLIES",
    "MAINTENANCE",
    "SALARIES",
    "MARKETING",
    "RENT",
    "EQUIPMENT",
    "OTHER",
)

EXPENSE_PAYMENT_METHODS = ("CASH", "CARD", "UPI", "BANK_TRANSFER")


class Expense(db.Model):
    """
    Operating cost paid by the business (rent, utilities, salaries...).

    amount_paise is strictly positive. Deleted expenses keep their row with
    deleted_at set and drop out of lists and totals.
    """
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_business_date", "business_id", "expense_date"),
        db.Index("ix_expenses_business_category", "business_id", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True)

    description = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(32), nullable=False)
    amount_paise = db.Column(db.Integer, nullable=False)
    expense_date = db.Column(db.DateTime(timezone=True), nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, default="CASH")
    vendor = db.Column(db.String(255), nullable=True)
    receipt_number = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    store = db.relationship("Store", lazy=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "store_id": self.store_id,
            "store_name": self.store.name if self.store else None,
            "description": self.description,
            "category": self.category,
            "amount_paise": self.amount_paise,
            "expense_date": to_utc_z(self.expense_date),
            "payment_method": self.payment_method,
            "vendor": self.vendor,
            "receipt_number": self.receipt_number,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
