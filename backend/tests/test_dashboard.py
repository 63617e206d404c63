# Overview: Pytest coverage for order stats and the owner dashboard aggregates.

"""
Reporting Tests

Status counts, today's workload and period revenue are computed per
business (and optionally per store). Cancelled orders never count as
revenue.
"""

from datetime import datetime, timedelta

import pytest

from laundrypro.services import dashboard_service, order_service
from laundrypro.services.dashboard_service import period_bounds
from laundrypro.time_utils import start_of_day, utcnow
from laundrypro.validation import ValidationError

from conftest import PASSWORD, auth_headers, get_auth_token


@pytest.fixture
def busy_day(db_session, business_a, store_a, customer_a, walkin_payload):
    """One paid walk-in, one cancelled walk-in and one pickup due today."""
    paid = order_service.create_order(
        business_a.id, walkin_payload(store_a, customer_a, paid_paise=10000, payment_mode="UPI")
    )
    cancelled = order_service.create_order(
        business_a.id, walkin_payload(store_a, customer_a, paid_paise=5000, payment_mode="CASH")
    )
    order_service.cancel_order(business_a.id, cancelled.id)
    pickup = order_service.create_order(business_a.id, {
        "order_type": "PICKUP",
        "store_id": store_a.id,
        "customer_id": customer_a.id,
        "pickup_date": (start_of_day(utcnow()) + timedelta(hours=23)).isoformat(),
    })
    return {"paid": paid, "cancelled": cancelled, "pickup": pickup}


class TestOrderStats:

    def test_counts_by_status(self, db_session, business_a, busy_day):
        stats = order_service.order_stats(business_a.id)

        assert stats["by_status"]["IN_PROGRESS"] == 1
        assert stats["by_status"]["CANCELLED"] == 1
        assert stats["by_status"]["PICKUP"] == 1
        assert set(stats["by_status"]) == set(order_service.ORDER_STATUSES)
        assert stats["active"] == 2

    def test_today_totals(self, db_session, business_a, busy_day):
        stats = order_service.order_stats(business_a.id)

        assert stats["today"]["orders"] == 3
        assert stats["today"]["revenue_paise"] == sum(o.total_paise for o in busy_day.values())

    def test_store_filter(self, db_session, business_a, busy_day):
        stats = order_service.order_stats(business_a.id, store_id=busy_day["paid"].store_id + 1000)

        assert stats["active"] == 0
        assert stats["today"]["orders"] == 0

    def test_other_business_sees_nothing(self, db_session, business_b, busy_day):
        assert order_service.order_stats(business_b.id)["active"] == 0

    def test_workshop_items_counted(self, db_session, business_a, busy_day):
        item = busy_day["paid"].items[0]
        item.sent_to_workshop = True
        item.status = "AT_WORKSHOP"
        db_session.commit()

        assert order_service.order_stats(business_a.id)["workshop_items"] == 1


class TestDashboard:

    def test_period_bounds(self):
        now = datetime(2026, 3, 31, 15, 0)

        assert period_bounds("week", now) == (datetime(2026, 3, 24), datetime(2026, 3, 17))
        assert period_bounds("month", now) == (datetime(2026, 2, 28), datetime(2026, 1, 28))
        assert period_bounds("year", now) == (datetime(2025, 3, 31), datetime(2024, 3, 31))

    def test_unknown_range(self, db_session, business_a):
        with pytest.raises(ValidationError):
            dashboard_service.dashboard_stats(business_a.id, "decade")

    def test_summary_excludes_cancelled(self, db_session, business_a, busy_day):
        stats = dashboard_service.dashboard_stats(business_a.id, "week")

        summary = stats["summary"]
        assert summary["revenue_paise"]["current"] == 10000
        assert summary["revenue_paise"]["previous"] == 0
        assert summary["revenue_paise"]["change_percent"] == 100.0
        assert summary["orders"]["current"] == 2
        assert summary["active_customers"]["current"] == 1
        assert summary["pending_orders"] == 2

    def test_quick_stats(self, db_session, business_a, busy_day):
        quick = dashboard_service.dashboard_stats(business_a.id)["quick_stats"]

        assert quick["today_pickups"] == 1
        assert quick["today_deliveries"] == 0
        assert quick["pending_actions"] == 1

    def test_ready_order_due_today_needs_action(self, db_session, business_a, busy_day):
        order = busy_day["paid"]
        order_service.update_status(business_a.id, order.id, "READY")
        order.delivery_date = start_of_day(utcnow()) + timedelta(hours=10)
        db_session.commit()

        quick = dashboard_service.dashboard_stats(business_a.id)["quick_stats"]

        assert quick["today_deliveries"] == 1
        assert quick["pending_actions"] == 2

    def test_previous_period(self, db_session, business_a, busy_day):
        old = busy_day["paid"]
        old.created_at = utcnow() - timedelta(days=10)
        db_session.commit()

        summary = dashboard_service.dashboard_stats(business_a.id, "week")["summary"]

        assert summary["revenue_paise"]["current"] == 0
        assert summary["revenue_paise"]["previous"] == 10000
        assert summary["revenue_paise"]["change_percent"] == -100.0

    def test_status_distribution(self, db_session, business_a, busy_day):
        distribution = dashboard_service.dashboard_stats(business_a.id)["status_distribution"]

        assert [row["status"] for row in distribution] == ["PICKUP", "IN_PROGRESS", "CANCELLED"]
        assert {row["percentage"] for row in distribution} == {33}

    def test_recent_orders(self, db_session, business_a, busy_day):
        recent = dashboard_service.dashboard_stats(business_a.id)["recent_orders"]

        assert len(recent) == 3
        assert recent[0]["customer_name"] == "Priya Sharma"


class TestReportingApi:

    def test_order_stats_route(self, client, headers_a, busy_day):
        response = client.get('/api/orders/stats', headers=headers_a)

        assert response.status_code == 200
        assert response.json['stats']['active'] == 2

    def test_dashboard_route(self, client, headers_a, busy_day):
        response = client.get('/api/dashboard/stats?time_range=month', headers=headers_a)

        assert response.status_code == 200
        assert response.json['stats']['time_range'] == "month"

    def test_dashboard_bad_range_is_400(self, client, headers_a):
        response = client.get('/api/dashboard/stats?time_range=decade', headers=headers_a)

        assert response.status_code == 400

    def test_driver_cannot_read_dashboard(self, client, driver_a):
        token = get_auth_token(client, driver_a.email, PASSWORD)

        response = client.get('/api/dashboard/stats', headers=auth_headers(token))

        assert response.status_code == 403
