"""
Pytest fixtures for the POS backend tests.

Provides the app on an in-memory database, per-test table cleanup, users with
bearer tokens, and a product factory that books initial stock through the
inventory ledger.
"""

import pytest

from pos_backend import create_app
from pos_backend.config import TestConfig
from pos_backend.extensions import db
from pos_backend.models import User
from pos_backend.services import session_service
from pos_backend.services.event_sink import InMemoryEventSink
from pos_backend.services.products_service import create_product


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

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
def events():
    """Event sink that records instead of writing system_logs rows."""
    return InMemoryEventSink()


@pytest.fixture(scope='function')
def admin_user(db_session):
    user = User(name="Admin User", email="admin@example.com", role="admin", is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def cashier_user(db_session):
    user = User(name="Cashier User", email="cashier@example.com", role="cashier", is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_token(admin_user):
    _, token = session_service.create_session(admin_user.id)
    return token


@pytest.fixture(scope='function')
def cashier_token(cashier_user):
    _, token = session_service.create_session(cashier_user.id)
    return token


@pytest.fixture(scope='function')
def make_product(db_session, admin_user):
    """
    Factory: make_product(sku="P-1", price_cents=1000, stock=10, threshold=10, **extra).

    Stock is recorded as an "Initial stock" restock movement.
    """
    sink = InMemoryEventSink()

    def _make(sku="PROD-001", name=None, price_cents=1000, stock=10, threshold=10, **extra):
        patch = {
            "sku": sku,
            "name": name or f"Product {sku}",
            "selling_price_cents": price_cents,
            "stock_quantity": stock,
            "low_stock_threshold": threshold,
        }
        patch.update(extra)
        return create_product(patch=patch, actor_id=admin_user.id, events=sink)

    return _make


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(admin_token):
    return auth_headers(admin_token)


@pytest.fixture(scope='function')
def cashier_headers(cashier_token):
    return auth_headers(cashier_token)
