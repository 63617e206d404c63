# Overview: Service-layer operations for expenses; records operating costs and summarizes them by period.

"""
Expense Ledger

- Amounts are positive integer paise.
- expense_date is required; a plain "YYYY-MM-DD" means midnight UTC.
- Deletes are soft (deleted_at). Deleted rows never appear in lists or stats.
- A store, when given, must belong to the same business.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import func, or_

from ..extensions import db
from ..models import Expense
from ..models.expenses import EXPENSE_CATEGORIES, EXPENSE_PAYMENT_METHODS
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    apply_patch,
    require_amount_paise,
    validate_payload,
)
from .concurrency import run_with_retry
from .tenant_service import require_store_in_business
from laundrypro.time_utils import DATE_RANGES, parse_iso_datetime, range_start, utcnow


logger = logging.getLogger(__name__)

EXPENSE_POLICY = ModelValidationPolicy(
    writable_fields={
        "description",
        "category",
        "amount_paise",
        "expense_date",
        "payment_method",
        "vendor",
        "receipt_number",
        "notes",
        "store_id",
    },
    required_on_create={"description", "category", "amount_paise", "expense_date"},
)

SORT_COLUMNS = {
    "date": Expense.expense_date,
    "amount": Expense.amount_paise,
    "created_at": Expense.created_at,
}


def _enforce_rules(business_id: int, patch: dict) -> None:
    if "description" in patch and len(patch["description"]) < 2:
        raise ValidationError("description must be at least 2 characters")
    if "category" in patch:
        patch["category"] = patch["category"].upper()
        if patch["category"] not in EXPENSE_CATEGORIES:
            raise ValidationError(f"Invalid category. Must be one of: {', '.join(EXPENSE_CATEGORIES)}")
    if "payment_method" in patch:
        patch["payment_method"] = patch["payment_method"].upper()
        if patch["payment_method"] not in EXPENSE_PAYMENT_METHODS:
            raise ValidationError(
                f"Invalid payment method. Must be one of: {', '.join(EXPENSE_PAYMENT_METHODS)}"
            )
    if "amount_paise" in patch:
        require_amount_paise(patch["amount_paise"], "amount_paise", allow_zero=False)
    if patch.get("store_id") is not None:
        require_store_in_business(patch["store_id"], business_id)


def _get_expense(business_id: int, expense_id: int) -> Expense:
    expense = (
        db.session.query(Expense)
        .filter_by(id=expense_id, business_id=business_id)
        .filter(Expense.deleted_at.is_(None))
        .first()
    )
    if expense is None:
        raise NotFoundError("Expense not found")
    return expense


def _live(business_id: int):
    return (Expense.business_id == business_id, Expense.deleted_at.is_(None))


def _date_filters(date_range: str | None, start_date: str | None, end_date: str | None) -> list:
    if start_date or end_date:
        if not (start_date and end_date):
            raise ValidationError("start_date and end_date must be given together")
        try:
            start = parse_iso_datetime(start_date)
            end = parse_iso_datetime(end_date)
        except ValueError:
            raise ValidationError("start_date and end_date must be ISO-8601 dates")
        if start > end:
            raise ValidationError("start_date must not be after end_date")
        # A date-only end_date covers that whole day
        if len(end_date.strip()) == 10:
            return [Expense.expense_date >= start, Expense.expense_date < end + timedelta(days=1)]
        return [Expense.expense_date >= start, Expense.expense_date <= end]

    date_range = (date_range or "all").lower()
    if date_range not in DATE_RANGES:
        raise ValidationError(f"Invalid date range. Must be one of: {', '.join(DATE_RANGES)}")
    start = range_start(date_range, utcnow())
    return [] if start is None else [Expense.expense_date >= start]


def get_expense(business_id: int, expense_id: int) -> Expense:
    return _get_expense(business_id, expense_id)


def list_expenses(
    business_id: int,
    *,
    search: str | None = None,
    category: str | None = None,
    payment_method: str | None = None,
    store_id: int | None = None,
    date_range: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    sort_by: str = "date",
    sort_order: str = "desc",
    page: int = 1,
    per_page: int = 20,
) -> dict:
    query = db.session.query(Expense).filter(*_live(business_id))
    query = query.filter(*_date_filters(date_range, start_date, end_date))
    if category:
        query = query.filter(Expense.category == category.upper())
    if payment_method:
        query = query.filter(Expense.payment_method == payment_method.upper())
    if store_id:
        query = query.filter(Expense.store_id == store_id)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Expense.description.ilike(like),
                Expense.vendor.ilike(like),
                Expense.receipt_number.ilike(like),
            )
        )

    column = SORT_COLUMNS.get(sort_by)
    if column is None:
        raise ValidationError(f"sort_by must be one of: {', '.join(SORT_COLUMNS)}")
    ordering = column.asc() if str(sort_order).lower() == "asc" else column.desc()

    page = max(page, 1)
    per_page = min(max(per_page, 1), 100)
    total = query.count()
    expenses = (
        query.order_by(ordering, Expense.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {"expenses": expenses, "total": total, "page": page, "per_page": per_page}


def create_expense(business_id: int, payload: dict, actor_id: int | None = None) -> Expense:
    data = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=False)
    _enforce_rules(business_id, data)

    def _op():
        expense = Expense(business_id=business_id, created_by_user_id=actor_id, **data)
        db.session.add(expense)
        db.session.commit()
        return expense

    expense = run_with_retry(_op)
    logger.info("Expense %s recorded for business %s: %s paise", expense.id, business_id, expense.amount_paise)
    return expense


def update_expense(business_id: int, expense_id: int, payload: dict) -> Expense:
    patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=True)
    _enforce_rules(business_id, patch)

    def _op():
        expense = _get_expense(business_id, expense_id)
        apply_patch(expense, patch)
        db.session.commit()
        return expense

    return run_with_retry(_op)


def delete_expense(business_id: int, expense_id: int) -> Expense:
    def _op():
        expense = _get_expense(business_id, expense_id)
        expense.deleted_at = utcnow()
        db.session.commit()
        return expense

    return run_with_retry(_op)


def expense_stats(business_id: int, date_range: str | None = "month") -> dict:
    """Total, count and per-category / per-payment-method sums for a calendar window."""
    filters = [*_live(business_id), *_date_filters(date_range or "month", None, None)]

    total, count = (
        db.session.query(func.coalesce(func.sum(Expense.amount_paise), 0), func.count(Expense.id))
        .filter(*filters)
        .one()
    )
    by_category = (
        db.session.query(Expense.category, func.sum(Expense.amount_paise))
        .filter(*filters)
        .group_by(Expense.category)
        .all()
    )
    by_payment_method = (
        db.session.query(Expense.payment_method, func.sum(Expense.amount_paise))
        .filter(*filters)
        .group_by(Expense.payment_method)
        .all()
    )
    return {
        "total_amount_paise": int(total or 0),
        "count": count,
        "by_category": {key: int(value or 0) for key, value in by_category},
        "by_payment_method": {key: int(value or 0) for key, value in by_payment_method},
    }
