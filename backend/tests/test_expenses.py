# Overview: Pytest coverage for the expense ledger, its filters and period stats.

"""
Expense Ledger Tests

Amounts are positive paise, deletes are soft, and lists and stats only see
live rows of the caller's business.
"""

from datetime import timedelta

import pytest

from laundrypro.models import Expense
from laundrypro.services import expense_service
from laundrypro.time_utils import range_start, utcnow
from laundrypro.validation import NotFoundError, ValidationError


def _expense(business, **overrides):
    payload = {
        "description": "Electricity bill",
        "category": "utilities",
        "amount_paise": 450000,
        "expense_date": utcnow().isoformat(),
        "payment_method": "upi",
    }
    payload.update(overrides)
    return expense_service.create_expense(business.id, payload)


class TestCreateExpense:

    def test_normalizes_enums(self, db_session, business_a):
        expense = _expense(business_a)

        assert expense.category == "UTILITIES"
        assert expense.payment_method == "UPI"
        assert expense.amount_paise == 450000

    @pytest.mark.parametrize("amount", [0, -100, 10.5, True])
    def test_amount_must_be_positive_paise(self, db_session, business_a, amount):
        with pytest.raises(ValidationError):
            _expense(business_a, amount_paise=amount)

    def test_unknown_category(self, db_session, business_a):
        with pytest.raises(ValidationError):
            _expense(business_a, category="PARTY")

    def test_short_description(self, db_session, business_a):
        with pytest.raises(ValidationError):
            _expense(business_a, description="x")

    def test_missing_date(self, db_session, business_a):
        with pytest.raises(ValidationError):
            expense_service.create_expense(business_a.id, {
                "description": "Rent", "category": "RENT", "amount_paise": 100,
            })

    def test_foreign_store_is_404(self, db_session, business_a, store_b):
        with pytest.raises(NotFoundError):
            _expense(business_a, store_id=store_b.id)


class TestListExpenses:

    def test_scoped_to_business(self, db_session, business_a, business_b):
        _expense(business_a)
        _expense(business_b)

        result = expense_service.list_expenses(business_a.id)

        assert result["total"] == 1
        assert result["expenses"][0].business_id == business_a.id

    def test_search_and_category(self, db_session, business_a):
        _expense(business_a, vendor="Tata Power")
        _expense(business_a, description="Hangers", category="SUPPLIES", vendor="Plastico")

        by_vendor = expense_service.list_expenses(business_a.id, search="tata")
        by_category = expense_service.list_expenses(business_a.id, category="supplies")

        assert [e.vendor for e in by_vendor["expenses"]] == ["Tata Power"]
        assert [e.description for e in by_category["expenses"]] == ["Hangers"]

    def test_explicit_range_includes_end_day(self, db_session, business_a):
        _expense(business_a, expense_date="2026-03-31T18:30:00Z")
        _expense(business_a, expense_date="2026-04-01T00:00:00Z")

        result = expense_service.list_expenses(business_a.id, start_date="2026-03-01", end_date="2026-03-31")

        assert result["total"] == 1

    def test_half_range_rejected(self, db_session, business_a):
        with pytest.raises(ValidationError):
            expense_service.list_expenses(business_a.id, start_date="2026-03-01")

    def test_sort_by_amount(self, db_session, business_a):
        _expense(business_a, amount_paise=300)
        _expense(business_a, amount_paise=100)
        _expense(business_a, amount_paise=200)

        result = expense_service.list_expenses(business_a.id, sort_by="amount", sort_order="asc")

        assert [e.amount_paise for e in result["expenses"]] == [100, 200, 300]

    def test_unknown_sort_rejected(self, db_session, business_a):
        with pytest.raises(ValidationError):
            expense_service.list_expenses(business_a.id, sort_by="vendor")


class TestDeleteExpense:

    def test_soft_delete(self, db_session, business_a):
        expense = _expense(business_a)

        expense_service.delete_expense(business_a.id, expense.id)

        assert db_session.get(Expense, expense.id).deleted_at is not None
        assert expense_service.list_expenses(business_a.id)["total"] == 0
        with pytest.raises(NotFoundError):
            expense_service.get_expense(business_a.id, expense.id)

    def test_other_business_cannot_delete(self, db_session, business_a, business_b):
        expense = _expense(business_a)

        with pytest.raises(NotFoundError):
            expense_service.delete_expense(business_b.id, expense.id)


class TestExpenseStats:

    def test_month_totals(self, db_session, business_a):
        _expense(business_a, amount_paise=1000)
        _expense(business_a, amount_paise=2500, category="RENT", payment_method="BANK_TRANSFER")
        deleted = _expense(business_a, amount_paise=9999)
        expense_service.delete_expense(business_a.id, deleted.id)
        last_month = range_start("month", utcnow()) - timedelta(days=1)
        _expense(business_a, amount_paise=7777, expense_date=last_month.isoformat())

        stats = expense_service.expense_stats(business_a.id, "month")

        assert stats["total_amount_paise"] == 3500
        assert stats["count"] == 2
        assert stats["by_category"] == {"UTILITIES": 1000, "RENT": 2500}
        assert stats["by_payment_method"] == {"UPI": 1000, "BANK_TRANSFER": 2500}

    def test_all_time(self, db_session, business_a):
        _expense(business_a, amount_paise=1000, expense_date="2020-01-01")

        assert expense_service.expense_stats(business_a.id, "all")["total_amount_paise"] == 1000

    def test_unknown_range(self, db_session, business_a):
        with pytest.raises(ValidationError):
            expense_service.expense_stats(business_a.id, "decade")


class TestExpensesApi:

    def test_create_and_list(self, client, headers_a):
        created = client.post('/api/expenses', json={
            'description': 'Iron repair',
            'category': 'MAINTENANCE',
            'amount_paise': 85000,
            'expense_date': '2026-10-01',
        }, headers=headers_a)
        listed = client.get('/api/expenses?date_range=all', headers=headers_a)

        assert created.status_code == 201
        assert created.json['expense']['payment_method'] == "CASH"
        assert listed.json['total'] == 1

    def test_stats_endpoint(self, client, headers_a):
        response = client.get('/api/expenses/stats?date_range=year', headers=headers_a)

        assert response.status_code == 200
        assert response.json['stats']['count'] == 0

    def test_bad_range_is_400(self, client, headers_a):
        response = client.get('/api/expenses?date_range=decade', headers=headers_a)

        assert response.status_code == 400
