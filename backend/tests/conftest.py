"""
Pytest fixtures for SMERP backend tests.

Provides an in-memory database, the test client, users with and without
permissions, and a small catalog (partner, supplier, items).
"""

import pytest

from smerp import create_app
from smerp.extensions import db
from smerp.models import Partner
from smerp.services import accounting_service, catalog_service, permission_service
from smerp.services.auth_service import create_user


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'LOG_LEVEL': 'WARNING',
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
    """Fresh data for each test; schema and config are shared."""
    with app.app_context():
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        saved = {key: app.config[key] for key in ("ALLOW_NEGATIVE_STOCK", "TAX_RATE_BPS")}

        yield db.session

        db.session.rollback()
        app.config.update(saved)


@pytest.fixture(scope='function')
def posting_accounts(db_session):
    created = accounting_service.ensure_posting_accounts()
    db_session.commit()
    return {account.code: account for account in created}


@pytest.fixture(scope='function')
def admin_user(db_session):
    user = create_user("admin", PASSWORD, "Administrator", role="admin", commit=False)
    permission_service.grant_default_permissions(user.id, full=True)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def staff_user(db_session):
    """Staff with the default grants: sales yes, purchases and users no."""
    user = create_user("staff", PASSWORD, "Staff Member", role="staff", commit=False)
    permission_service.grant_default_permissions(user.id)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def customer(db_session):
    partner = Partner(name="Acme Retail", type="customer", business_number="123-45-67890")
    db_session.add(partner)
    db_session.commit()
    return partner


@pytest.fixture(scope='function')
def supplier(db_session):
    partner = Partner(name="Widget Wholesale", type="supplier")
    db_session.add(partner)
    db_session.commit()
    return partner


@pytest.fixture(scope='function')
def item(db_session):
    return catalog_service.create_item({
        "code": "w-100",
        "name": "Widget",
        "unit_price_cents": 1500,
        "cost_price_cents": 900,
    })


@pytest.fixture(scope='function')
def other_item(db_session):
    return catalog_service.create_item({
        "code": "G-200",
        "name": "Gadget",
        "unit_price_cents": 2500,
        "cost_price_cents": 1200,
        "min_stock_level": 3,
    })


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
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


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, "admin"))


@pytest.fixture(scope='function')
def staff_headers(client, staff_user):
    return auth_headers(get_auth_token(client, "staff"))
