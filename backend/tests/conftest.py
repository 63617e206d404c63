"""
Pytest fixtures for LaundryPro backend tests.

Provides test database setup, two-tenant fixtures, and test client.
"""

import pytest

from laundrypro import create_app
from laundrypro.extensions import db
from laundrypro.models import Customer, Store
from laundrypro.services.auth_service import create_user
from laundrypro.services.tenant_service import create_business


PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'PUSH_ENABLED': False,
        'BCRYPT_ROUNDS': 4,
        'RAZORPAY_KEY_ID': 'rzp_test_key',
        'RAZORPAY_KEY_SECRET': 'rzp_test_secret',
        'RAZORPAY_WEBHOOK_SECRET': 'whsec_test',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def business_a(db_session):
    """Business A (first tenant), on an active trial."""
    return create_business("Sparkle Laundry", email="hello@sparkle.in")


@pytest.fixture(scope='function')
def business_b(db_session):
    """Business B (second tenant), on an active trial."""
    return create_business("Fresh Folds", email="hello@freshfolds.in")


@pytest.fixture(scope='function')
def store_a(db_session, business_a):
    store = Store(business_id=business_a.id, name="Main Street")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_b(db_session, business_b):
    store = Store(business_id=business_b.id, name="Lake Road")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def customer_a(db_session, business_a):
    customer = Customer(business_id=business_a.id, name="Priya Sharma", phone="9876543210")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def customer_b(db_session, business_b):
    customer = Customer(business_id=business_b.id, name="Rahul Mehta", phone="9123456780")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def owner_a(db_session, business_a, store_a):
    """OWNER of Business A."""
    return create_user(
        name="Owner A",
        email="owner@sparkle.in",
        password=PASSWORD,
        business_id=business_a.id,
        role="OWNER",
        store_id=store_a.id,
    )


@pytest.fixture(scope='function')
def owner_b(db_session, business_b, store_b):
    """OWNER of Business B."""
    return create_user(
        name="Owner B",
        email="owner@freshfolds.in",
        password=PASSWORD,
        business_id=business_b.id,
        role="OWNER",
        store_id=store_b.id,
    )


@pytest.fixture(scope='function')
def driver_a(db_session, business_a, store_a):
    return create_user(
        name="Driver A",
        email="driver@sparkle.in",
        password=PASSWORD,
        business_id=business_a.id,
        role="DRIVER",
        store_id=store_a.id,
    )


@pytest.fixture(scope='function')
def token_a(client, owner_a):
    return get_auth_token(client, owner_a.email, PASSWORD)


@pytest.fixture(scope='function')
def token_b(client, owner_b):
    return get_auth_token(client, owner_b.email, PASSWORD)


def get_auth_token(client, email: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def build_walkin_payload(store, customer, *, items=None, **extra) -> dict:
    payload = {
        'order_type': 'WALKIN',
        'store_id': store.id,
        'customer_id': customer.id,
        'items': items if items is not None else [
            {'item_name': 'Shirt', 'treatment_name': 'Wash & Iron', 'quantity': 2, 'unit_price_paise': 5000},
            {'item_name': 'Saree', 'treatment_name': 'Dry Clean', 'quantity': 1, 'unit_price_paise': 20000},
        ],
    }
    payload.update(extra)
    return payload


@pytest.fixture(scope='function')
def headers_a(token_a):
    return auth_headers(token_a)


@pytest.fixture(scope='function')
def headers_b(token_b):
    return auth_headers(token_b)


@pytest.fixture(scope='function')
def walkin_payload():
    """Builder for a two-line walk-in order payload (subtotal 30000 paise)."""
    return build_walkin_payload
