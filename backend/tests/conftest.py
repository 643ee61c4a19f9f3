"""
Pytest fixtures for store POS backend tests.

Provides an in-memory database, users for both roles, bearer headers,
and a product factory that posts opening stock through the ledger.
"""

from decimal import Decimal
from itertools import count

import pytest

from storepos import create_app
from storepos.extensions import db
from storepos.models import User
from storepos.permissions import ROLE_ADMIN, ROLE_CASHIER, ActorContext
from storepos.services import auth_service, products_service

TEST_PASSWORD = "Password123!"

_sku_counter = count(1)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'STORE_TIMEZONE': 'UTC',
        'RETRY_BACKOFF_BASE': 0.01,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function', autouse=True)
def db_session(app):
    """Create fresh database for each test."""
    # Clear all data but keep schema
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    # Cleanup after test
    db.session.rollback()
    db.session.remove()


def _make_user(username: str, role: str) -> User:
    # Low bcrypt cost keeps the suite fast
    return auth_service.create_user(username=username, password=TEST_PASSWORD, role=role, rounds=4)


@pytest.fixture
def admin_user(db_session):
    return _make_user("admin", ROLE_ADMIN)


@pytest.fixture
def cashier_user(db_session):
    return _make_user("cashier", ROLE_CASHIER)


@pytest.fixture
def admin_actor(admin_user):
    return ActorContext.for_user(admin_user)


@pytest.fixture
def cashier_actor(cashier_user):
    return ActorContext.for_user(cashier_user)


def get_auth_token(client, username: str, password: str = TEST_PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.username))


@pytest.fixture
def cashier_headers(client, cashier_user):
    return auth_headers(get_auth_token(client, cashier_user.username))


@pytest.fixture
def make_product(admin_actor):
    """
    Factory: make_product(name="Widget", price="50.00", qty="10", ...)

    qty is posted as opening stock; pass qty=None for a product with no stock row.
    """
    def _make(name="Widget", price="50.00", cost="30.00", qty="10", **extra):
        n = next(_sku_counter)
        patch = {
            "sku": extra.pop("sku", f"SKU-{n:04d}"),
            "name": name,
            "price": Decimal(price),
            "cost": Decimal(cost) if cost is not None else None,
        }
        patch.update(extra)
        return products_service.create_product(
            patch=patch,
            actor=admin_actor,
            opening_qty=Decimal(qty) if qty is not None else None,
        )

    return _make


@pytest.fixture
def product(make_product):
    """Widget priced 50.00 with 10 on hand."""
    return make_product()
