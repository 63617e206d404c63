# Overview: Pytest coverage for HTTP authentication, tenant scoping and plan gating.

"""
API Boundary Tests

SECURITY TESTS: requests are authenticated by bearer session, scoped to the
session's business, and writes are gated by the plan resolver.

1. Missing, invalid and revoked tokens are rejected with 401
2. Another business's resources answer 404 (existence is not revealed)
3. Roles are enforced (403)
4. Expired plans block writes with 402 but keep reads open
"""

from datetime import timedelta

import pytest

from laundrypro.models import Business, BusinessSettings, User
from laundrypro.services import admin_service, order_service
from laundrypro.services.auth_service import create_user
from laundrypro.time_utils import utcnow
from laundrypro.validation import ValidationError

from conftest import PASSWORD, auth_headers, get_auth_token


@pytest.fixture
def order_a(db_session, business_a, store_a, customer_a, walkin_payload):
    return order_service.create_order(business_a.id, walkin_payload(store_a, customer_a))


@pytest.fixture
def super_admin(db_session):
    return create_user(
        name="Platform Admin",
        email="admin@laundrypro.test",
        password=PASSWORD,
        business_id=None,
        role="OWNER",
        is_super_admin=True,
    )


class TestAuthentication:

    def test_missing_token(self, client, db_session):
        response = client.get('/api/orders')

        assert response.status_code == 401
        assert response.json['error'] == "Authentication required"

    def test_invalid_token(self, client, db_session):
        response = client.get('/api/orders', headers=auth_headers('not-a-real-token'))

        assert response.status_code == 401
        assert response.json['error'] == "Invalid or expired token"

    def test_wrong_password(self, client, owner_a):
        response = client.post('/api/auth/login', json={'email': owner_a.email, 'password': 'Wrong12345'})

        assert response.status_code == 401

    def test_login_requires_fields(self, client, db_session):
        response = client.post('/api/auth/login', json={'email': 'owner@sparkle.in'})

        assert response.status_code == 400

    def test_me_returns_business_and_status(self, client, headers_a, business_a):
        response = client.get('/api/auth/me', headers=headers_a)

        assert response.status_code == 200
        assert response.json['business']['id'] == business_a.id
        assert response.json['subscription']['reason'] == "trial"

    def test_logout_revokes_token(self, client, headers_a):
        assert client.post('/api/auth/logout', headers=headers_a).status_code == 200

        response = client.get('/api/auth/me', headers=headers_a)
        assert response.status_code == 401


class TestTenantIsolation:
    """Business B must not see or touch Business A's data."""

    def test_foreign_order_read_is_404(self, client, headers_b, order_a):
        response = client.get(f'/api/orders/{order_a.id}', headers=headers_b)

        assert response.status_code == 404
        assert response.json['error'] == "Order not found"

    def test_foreign_order_status_change_is_404(self, client, db_session, headers_b, order_a):
        response = client.patch(f'/api/orders/{order_a.id}/status', json={'status': 'READY'}, headers=headers_b)

        assert response.status_code == 404
        db_session.expire_all()
        assert order_service.get_order(order_a.business_id, order_a.id).status == "IN_PROGRESS"

    def test_foreign_customer_in_order_payload(self, client, headers_b, store_b, customer_a, walkin_payload):
        response = client.post('/api/orders', json=walkin_payload(store_b, customer_a), headers=headers_b)

        assert response.status_code == 404

    def test_order_list_is_scoped(self, client, headers_a, headers_b, order_a):
        own = client.get('/api/orders', headers=headers_a)
        other = client.get('/api/orders', headers=headers_b)

        assert [o['id'] for o in own.json['orders']] == [order_a.id]
        assert other.json['orders'] == []
        assert other.json['total'] == 0


class TestOrdersApi:

    def test_create_and_advance(self, client, headers_a, store_a, customer_a, walkin_payload):
        created = client.post('/api/orders', json=walkin_payload(store_a, customer_a), headers=headers_a)
        assert created.status_code == 201
        order = created.json['order']
        assert order['total_paise'] == 35400
        assert len(order['items']) == 2

        response = client.patch(f"/api/orders/{order['id']}/status", json={'status': 'READY'}, headers=headers_a)
        assert response.status_code == 200
        assert response.json['previous_status'] == "IN_PROGRESS"
        assert response.json['message'] == "Order status updated to READY"

    def test_illegal_transition_is_400(self, client, headers_a, order_a):
        response = client.patch(f'/api/orders/{order_a.id}/status', json={'status': 'COMPLETED'}, headers=headers_a)

        assert response.status_code == 400
        assert response.json['error'].startswith("Cannot transition from IN_PROGRESS to COMPLETED")
        assert response.json['details']['current_status'] == "IN_PROGRESS"

    def test_overpayment_is_400(self, client, headers_a, order_a):
        response = client.post(
            f'/api/orders/{order_a.id}/payments',
            json={'amount_paise': 50000, 'mode': 'CASH'},
            headers=headers_a,
        )

        assert response.status_code == 400
        assert response.json['details']['due_paise'] == 35400

    def test_history_endpoint(self, client, headers_a, order_a):
        response = client.get(f'/api/orders/{order_a.id}/history', headers=headers_a)

        assert response.status_code == 200
        assert [row['to_status'] for row in response.json['history']] == ["IN_PROGRESS"]


class TestRoles:

    def test_driver_cannot_use_counter_routes(self, client, driver_a):
        token = get_auth_token(client, driver_a.email, PASSWORD)

        response = client.get('/api/orders', headers=auth_headers(token))

        assert response.status_code == 403
        assert response.json['error'] == "Permission denied"

    def test_driver_pickup_flow(self, client, business_a, store_a, customer_a, headers_a, driver_a):
        order = order_service.create_order(business_a.id, {
            'order_type': 'PICKUP',
            'store_id': store_a.id,
            'customer_id': customer_a.id,
            'pickup_date': '2026-10-20T09:00:00Z',
        })
        assigned = client.post(
            f'/api/orders/{order.id}/assign-driver', json={'driver_id': driver_a.id}, headers=headers_a
        )
        assert assigned.status_code == 200

        driver_headers = auth_headers(get_auth_token(client, driver_a.email, PASSWORD))
        listed = client.get('/api/driver/orders', headers=driver_headers)
        assert [o['id'] for o in listed.json['orders']] == [order.id]

        picked = client.post(f'/api/driver/orders/{order.id}/pickup', headers=driver_headers)
        assert picked.status_code == 200
        assert picked.json['order']['status'] == "IN_PROGRESS"

        again = client.post(f'/api/driver/orders/{order.id}/pickup', headers=driver_headers)
        assert again.status_code == 404

    def test_owner_cannot_use_admin_routes(self, client, headers_a):
        response = client.get('/api/admin/businesses', headers=headers_a)

        assert response.status_code == 403

    def test_super_admin_lists_businesses(self, client, super_admin, business_a, business_b):
        token = get_auth_token(client, super_admin.email, PASSWORD)

        response = client.get('/api/admin/businesses', headers=auth_headers(token))

        assert response.status_code == 200
        names = {row['name'] for row in response.json['businesses']}
        assert {"Sparkle Laundry", "Fresh Folds"} <= names


class TestPlatformOverrides:

    @pytest.fixture
    def admin_headers(self, client, super_admin):
        return auth_headers(get_auth_token(client, super_admin.email, PASSWORD))

    def test_plan_change_applies_plan_limits(self, db_session, business_a):
        business = admin_service.set_business_plan(business_a.id, plan_type="professional", plan_status="active")

        settings = db_session.query(BusinessSettings).filter_by(business_id=business_a.id).one()
        assert (business.plan_type, business.plan_status) == ("PROFESSIONAL", "ACTIVE")
        assert settings.max_stores == 5
        assert "multi_store_enabled" in settings.features

    def test_status_only_keeps_limits(self, db_session, business_a):
        admin_service.set_business_plan(business_a.id, plan_status="SUSPENDED")

        settings = db_session.query(BusinessSettings).filter_by(business_id=business_a.id).one()
        assert business_a.plan_type == "TRIAL"
        assert settings.max_monthly_orders == 50

    @pytest.mark.parametrize("kwargs", [{}, {"plan_type": "GOLD"}, {"plan_status": "PAUSED"}])
    def test_invalid_plan_values(self, db_session, business_a, kwargs):
        with pytest.raises(ValidationError):
            admin_service.set_business_plan(business_a.id, **kwargs)

    def test_feature_toggles(self, db_session, business_a):
        admin_service.set_business_features(business_a.id, {"multi_store_enabled": True})
        settings = admin_service.set_business_features(business_a.id, {"pickup_enabled": False})

        assert "multi_store_enabled" in settings.features
        assert "pickup_enabled" not in settings.features
        assert "workshop_enabled" in settings.features

    @pytest.mark.parametrize("overrides", [{}, {"sms_notifications": True}, {"pickup_enabled": "yes"}])
    def test_invalid_feature_overrides(self, db_session, business_a, overrides):
        with pytest.raises(ValidationError):
            admin_service.set_business_features(business_a.id, overrides)

    def test_plan_route(self, client, admin_headers, business_a):
        response = client.patch(
            f'/api/admin/businesses/{business_a.id}/plan', json={'plan_type': 'BASIC'}, headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json['business']['plan_type'] == "BASIC"

    def test_features_route(self, client, admin_headers, business_a):
        response = client.patch(
            f'/api/admin/businesses/{business_a.id}/features',
            json={'delivery_enabled': False},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert "delivery_enabled" not in response.json['settings']['features']

    def test_unknown_business_is_404(self, client, admin_headers, db_session):
        response = client.patch('/api/admin/businesses/99999/plan', json={'plan_status': 'ACTIVE'}, headers=admin_headers)

        assert response.status_code == 404

    def test_owner_cannot_override(self, client, headers_a, business_a):
        response = client.patch(
            f'/api/admin/businesses/{business_a.id}/features', json={'pickup_enabled': False}, headers=headers_a
        )

        assert response.status_code == 403


class TestSubscriptionGate:

    @pytest.fixture
    def expired_trial(self, db_session, business_a):
        business_a.trial_ends_at = utcnow() - timedelta(days=1)
        db_session.commit()
        return business_a

    def test_write_blocked_with_402(self, client, headers_a, expired_trial, store_a, customer_a, walkin_payload):
        response = client.post('/api/orders', json=walkin_payload(store_a, customer_a), headers=headers_a)

        assert response.status_code == 402
        assert response.json['error'] == "Subscription required"
        assert response.json['subscription']['reason'] == "trial_expired"

    def test_read_still_allowed(self, client, headers_a, expired_trial):
        response = client.get('/api/orders', headers=headers_a)

        assert response.status_code == 200

    def test_status_endpoint_reports_expiry(self, client, headers_a, expired_trial):
        response = client.get('/api/subscription/status', headers=headers_a)

        assert response.status_code == 200
        assert response.json['subscription']['is_active'] is False

    def test_plans_are_public(self, client, db_session):
        response = client.get('/api/subscription/plans')

        assert response.status_code == 200
        assert {"BASIC", "PROFESSIONAL"} <= {plan['plan_type'] for plan in response.json['plans']}


class TestCustomersApi:

    def test_duplicate_phone_is_409(self, client, headers_a, customer_a):
        response = client.post(
            '/api/customers', json={'name': 'Another Priya', 'phone': '98765-43210'}, headers=headers_a
        )

        assert response.status_code == 409
        assert response.json['error'] == "Customer with this phone number already exists"

    def test_same_phone_in_other_business(self, client, headers_b, customer_a):
        response = client.post('/api/customers', json={'name': 'Priya', 'phone': '9876543210'}, headers=headers_b)

        assert response.status_code == 201

    def test_unknown_field_rejected(self, client, headers_a):
        response = client.post(
            '/api/customers', json={'name': 'X', 'phone': '9000000000', 'total_orders': 9}, headers=headers_a
        )

        assert response.status_code == 400


class TestHealth:

    def test_health(self, client, db_session):
        response = client.get('/health')

        assert response.status_code == 200
        assert response.json['status'] == "healthy"
        assert response.json['checks']['database']['status'] == "healthy"
        assert response.json['timestamp'].endswith("Z")


class TestRegistration:

    def _payload(self, **overrides):
        payload = {
            'business_name': 'Bubble Wash',
            'name': 'Asha Nair',
            'email': 'Asha@BubbleWash.in',
            'password': 'Secret1234',
            'phone': '9988776655',
        }
        payload.update(overrides)
        return payload

    def test_register_creates_trial_business_and_logs_in(self, client, db_session):
        response = client.post('/api/auth/register', json=self._payload())

        assert response.status_code == 201
        body = response.json
        assert body['user']['role'] == "OWNER"
        assert body['user']['email'] == "asha@bubblewash.in"
        assert body['business']['name'] == "Bubble Wash"
        assert body['business']['plan_type'] == "TRIAL"

        me = client.get('/api/auth/me', headers=auth_headers(body['token']))
        assert me.status_code == 200
        assert me.json['subscription']['reason'] == "trial"

    def test_register_creates_main_store(self, client, db_session):
        token = client.post('/api/auth/register', json=self._payload()).json['token']

        response = client.get('/api/stores', headers=auth_headers(token))

        assert [store['name'] for store in response.json['stores']] == ["Main Store"]

    def test_duplicate_email_is_409(self, client, owner_a):
        response = client.post('/api/auth/register', json=self._payload(email='OWNER@sparkle.in'))

        assert response.status_code == 409
        assert response.json['error'] == "A user with this email already exists"

    def test_weak_password_writes_nothing(self, client, db_session):
        response = client.post('/api/auth/register', json=self._payload(password='short'))

        assert response.status_code == 400
        assert db_session.query(Business).count() == 0

    def test_business_name_required(self, client, db_session):
        response = client.post('/api/auth/register', json=self._payload(business_name='  '))

        assert response.status_code == 400
        assert db_session.query(Business).count() == 0
        assert db_session.query(User).count() == 0
