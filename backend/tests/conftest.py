"""
Pytest fixtures for stockledger backend tests.

Provides an in-memory app per test, the app's ledger and guard (the guard
driven by a controllable clock), default users, and auth helpers.
"""

from datetime import datetime, timedelta

import pytest

from stockledger import create_app
from stockledger.extensions import db, GUARD_KEY, LEDGER_KEY
from stockledger.services import auth_service
from stockledger.services.access_guard import AccessGuard


TEST_PASSWORDS = {
    "admin": "CG2024",
    "manager": "FERR2024",
    "clerk": "VENTA2024",
}


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start=datetime(2024, 1, 15, 9, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture(scope='function')
def app():
    """Create application for testing (fresh in-memory database per test)."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'BCRYPT_ROUNDS': 4,
        'SEED_SAMPLE_DATA': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    yield db.session
    db.session.rollback()


@pytest.fixture(scope='function')
def ledger(app):
    """The app's catalog ledger, loaded and empty."""
    ledger = app.extensions[LEDGER_KEY]
    ledger.init()
    return ledger


@pytest.fixture(scope='function')
def clock():
    return FakeClock()


@pytest.fixture(scope='function')
def guard(app, clock):
    """Replace the app's guard with one on the fake clock."""
    guard = AccessGuard.from_config(app.config, clock=clock)
    app.extensions[GUARD_KEY] = guard
    return guard


@pytest.fixture(scope='function')
def users(db_session):
    """Default admin, manager and clerk users."""
    return {
        role: auth_service.create_user(role, password, role, rounds=4)
        for role, password in TEST_PASSWORDS.items()
    }


@pytest.fixture(scope='function')
def login(client, users):
    """Log in through the API and return the Bearer token."""
    def _login(username="admin", password=None):
        response = client.post("/api/auth/login", json={
            "username": username,
            "password": password or TEST_PASSWORDS[username],
        })
        assert response.status_code == 200, response.get_json()
        return response.get_json()["token"]
    return _login


def auth_headers(token):
    """Create Authorization header for authenticated requests."""
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope='function')
def admin_headers(login):
    return auth_headers(login("admin"))


@pytest.fixture(scope='function')
def manager_headers(login):
    return auth_headers(login("manager"))


@pytest.fixture(scope='function')
def clerk_headers(login):
    return auth_headers(login("clerk"))


@pytest.fixture(scope='function')
def product_data():
    """Factory for valid raw product input (the TOR001 sample by default)."""
    def _make(**overrides):
        data = {
            "sku": "tor001",
            "name": 'Tornillo Madera 2" Phillips',
            "category": "Tornillos y Pernos",
            "price": "0.25",
            "quantity": 150,
            "min_stock": 20,
            "barcode": "1234567890123",
            "supplier": "Ferretería Central",
        }
        data.update(overrides)
        return data
    return _make


@pytest.fixture(scope='function')
def add_product(ledger, product_data):
    """Build and store a product through the ledger."""
    def _add(**overrides):
        return ledger.add_product(ledger.create_product(product_data(**overrides)))
    return _add
