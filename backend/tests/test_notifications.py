# Overview: Pytest coverage for the notification feed and customer push side effects.

"""
Side-effect Isolation Tests

Notifications and customer push run after the originating transaction has
committed. Their failures are logged and never surface to the caller.
"""

import httpx
import pytest
from sqlalchemy.exc import SQLAlchemyError

from laundrypro.models import Notification, Order
from laundrypro.services import notification_service, order_service, push_service


TOKEN = "ExponentPushToken[abc123]"


@pytest.fixture
def push_customer(db_session, customer_a):
    customer_a.expo_push_token = TOKEN
    customer_a.push_enabled = True
    db_session.commit()
    return customer_a


@pytest.fixture
def push_enabled(app, monkeypatch):
    monkeypatch.setitem(app.config, "PUSH_ENABLED", True)


class _FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            request = httpx.Request("POST", "https://push.test")
            raise httpx.HTTPStatusError("relay error", request=request, response=httpx.Response(self.status_code))

    def json(self):
        return self._payload


class TestNotificationFeed:

    def test_order_creation_notifies(self, db_session, business_a, store_a, customer_a, walkin_payload):
        order = order_service.create_order(business_a.id, walkin_payload(store_a, customer_a))

        feed = notification_service.list_notifications(business_a.id)
        assert feed["unread_count"] == 1
        assert feed["notifications"][0].type == "ORDER_CREATED"
        assert feed["notifications"][0].data == {"order_id": order.id, "order_number": order.order_number}

    def test_mark_read_scoped_to_business(self, db_session, business_a, business_b):
        own = notification_service.create_notification(business_a.id, "SYSTEM", "Hello", "A")
        other = notification_service.create_notification(business_b.id, "SYSTEM", "Hello", "B")

        updated = notification_service.mark_read(business_a.id, [own.id, other.id])

        assert updated == 1
        assert db_session.get(Notification, other.id).is_read is False
        assert notification_service.list_notifications(business_a.id)["unread_count"] == 0

    def test_mark_all_read(self, db_session, business_a):
        for i in range(3):
            notification_service.create_notification(business_a.id, "SYSTEM", f"Note {i}", "x")

        assert notification_service.mark_read(business_a.id) == 3
        assert notification_service.list_notifications(business_a.id, unread_only=True)["notifications"] == []

    def test_feed_failure_does_not_fail_status_change(
        self, db_session, business_a, store_a, customer_a, walkin_payload, monkeypatch
    ):
        order = order_service.create_order(business_a.id, walkin_payload(store_a, customer_a))

        def broken_notification(**kwargs):
            raise SQLAlchemyError("notification table unavailable")

        monkeypatch.setattr(notification_service, "Notification", broken_notification)

        result = order_service.update_status(business_a.id, order.id, "READY")

        assert result["order"].status == "READY"
        db_session.expire_all()
        assert db_session.get(Order, order.id).status == "READY"


class TestCustomerPush:

    def test_disabled_push_sends_nothing(self, db_session, push_customer, monkeypatch):
        def unexpected(*args, **kwargs):
            raise AssertionError("push relay must not be called")

        monkeypatch.setattr(push_service.httpx, "post", unexpected)

        assert push_service.send_push(TOKEN, "Title", "Body") is False

    def test_accepted_ticket(self, db_session, push_enabled, monkeypatch):
        sent = []

        def fake_post(url, json=None, headers=None, timeout=None):
            sent.append(json)
            return _FakeResponse({"data": {"status": "ok", "id": "ticket-1"}})

        monkeypatch.setattr(push_service.httpx, "post", fake_post)

        assert push_service.send_push(TOKEN, "Order Ready", "Your order is ready!", {"order_id": 1}) is True
        assert sent == [{
            "to": TOKEN,
            "sound": "default",
            "title": "Order Ready",
            "body": "Your order is ready!",
            "data": {"order_id": 1},
        }]

    def test_error_ticket_reported(self, db_session, push_enabled, monkeypatch):
        monkeypatch.setattr(
            push_service.httpx,
            "post",
            lambda *args, **kwargs: _FakeResponse({"data": {"status": "error", "message": "DeviceNotRegistered"}}),
        )

        assert push_service.send_push(TOKEN, "Title", "Body") is False

    def test_relay_http_error_reported(self, db_session, push_enabled, monkeypatch):
        monkeypatch.setattr(
            push_service.httpx, "post", lambda *args, **kwargs: _FakeResponse({}, status_code=500)
        )

        assert push_service.send_push(TOKEN, "Title", "Body") is False

    @pytest.mark.parametrize("body", [None, [], ["ok"], "accepted"])
    def test_non_object_body_reported(self, db_session, push_enabled, monkeypatch, body):
        monkeypatch.setattr(push_service.httpx, "post", lambda *args, **kwargs: _FakeResponse(body))

        assert push_service.send_push(TOKEN, "Title", "Body") is False

    def test_customer_without_token_skipped(self, db_session, push_enabled, customer_a):
        assert push_service.send_customer_push(customer_a, "Title", "Body") is False

    def test_push_failure_does_not_fail_status_change(
        self, db_session, business_a, store_a, push_customer, walkin_payload, push_enabled, monkeypatch
    ):
        """An unreachable relay is logged; the committed status change stands."""
        order = order_service.create_order(business_a.id, walkin_payload(store_a, push_customer))
        attempts = []

        def unreachable(url, **kwargs):
            attempts.append(url)
            raise httpx.ConnectError("relay unreachable")

        monkeypatch.setattr(push_service.httpx, "post", unreachable)

        result = order_service.update_status(business_a.id, order.id, "READY")

        assert result["order"].status == "READY"
        assert len(attempts) == 1
        db_session.expire_all()
        assert db_session.get(Order, order.id).status == "READY"
        titles = [n.title for n in notification_service.list_notifications(business_a.id)["notifications"]]
        assert "Order Ready" in titles
