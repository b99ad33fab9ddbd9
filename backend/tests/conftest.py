"""
Pytest fixtures for pharmacy backend tests.

Provides test database setup, two isolated tenants with branches, users,
products and stock, plus an authenticated test client.
"""

import pytest
from pharmacy_api import create_app
from pharmacy_api.extensions import db
from pharmacy_api.models import Tenant, Branch, User, Product, InventoryRecord
from pharmacy_api.services.auth_service import hash_password
from pharmacy_api.services.tenant_service import TenantContext

PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
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

        db.session.rollback()


@pytest.fixture(scope='function')
def tenant_a(db_session):
    """Tenant A (first pharmacy business)."""
    tenant = Tenant(name="Tenant A - Acme Pharmacy", code="ACME", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Tenant B (second pharmacy business)."""
    tenant = Tenant(name="Tenant B - Beta Drugs", code="BETA", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def branch_a(db_session, tenant_a):
    branch = Branch(tenant_id=tenant_a.id, name="Branch A1", code="A1")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch_a2(db_session, tenant_a):
    """Second branch of Tenant A."""
    branch = Branch(tenant_id=tenant_a.id, name="Branch A2", code="A2")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch_b(db_session, tenant_b):
    branch = Branch(tenant_id=tenant_b.id, name="Branch B1", code="B1")
    db_session.add(branch)
    db_session.commit()
    return branch


def _make_user(db_session, tenant, branch, username):
    user = User(
        tenant_id=tenant.id,
        branch_id=branch.id if branch is not None else None,
        username=username,
        email=f"{username}@example.com",
        # Low cost factor keeps the suite fast
        password_hash=hash_password(PASSWORD, rounds=4),
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def user_a(db_session, tenant_a, branch_a):
    """Cashier at Branch A1."""
    return _make_user(db_session, tenant_a, branch_a, "user_a")


@pytest.fixture(scope='function')
def user_b(db_session, tenant_b, branch_b):
    """Cashier at Branch B1."""
    return _make_user(db_session, tenant_b, branch_b, "user_b")


@pytest.fixture(scope='function')
def manager_a(db_session, tenant_a):
    """Tenant-level user of Tenant A (no home branch)."""
    return _make_user(db_session, tenant_a, None, "manager_a")


def _make_product(db_session, tenant, sku, name, price_cents):
    product = Product(tenant_id=tenant.id, sku=sku, name=name, unit_price_cents=price_cents)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_a(db_session, tenant_a):
    return _make_product(db_session, tenant_a, "AMOX-500", "Amoxicillin 500mg", 500)


@pytest.fixture(scope='function')
def product_a2(db_session, tenant_a):
    return _make_product(db_session, tenant_a, "PARA-500", "Paracetamol 500mg", 150)


@pytest.fixture(scope='function')
def product_b(db_session, tenant_b):
    return _make_product(db_session, tenant_b, "IBU-200", "Ibuprofen 200mg", 300)


def make_stock(db_session, product, branch, quantity, reorder_level=0):
    record = InventoryRecord(
        product_id=product.id,
        branch_id=branch.id,
        quantity_on_hand=quantity,
        reorder_level=reorder_level,
    )
    db_session.add(record)
    db_session.commit()
    return record


@pytest.fixture(scope='function')
def stock_a(db_session, product_a, branch_a):
    """5 units of product_a on hand at Branch A1."""
    return make_stock(db_session, product_a, branch_a, 5)


@pytest.fixture(scope='function')
def stock_a2(db_session, product_a2, branch_a):
    """10 units of product_a2 on hand at Branch A1."""
    return make_stock(db_session, product_a2, branch_a, 10)


@pytest.fixture(scope='function')
def stock_b(db_session, product_b, branch_b):
    return make_stock(db_session, product_b, branch_b, 7)


@pytest.fixture(scope='function')
def ctx_a(user_a):
    return TenantContext(tenant_id=user_a.tenant_id, branch_id=user_a.branch_id, user_id=user_a.id)


@pytest.fixture(scope='function')
def ctx_b(user_b):
    return TenantContext(tenant_id=user_b.tenant_id, branch_id=user_b.branch_id, user_id=user_b.id)


def get_auth_token(client, username: str, password: str = PASSWORD, tenant_code: str = None) -> str:
    """Helper to get auth token for a user."""
    body = {'username': username, 'password': password}
    if tenant_code:
        body['tenant_code'] = tenant_code
    response = client.post('/api/auth/login', json=body)
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def headers_a(client, user_a):
    return auth_headers(get_auth_token(client, "user_a"))


@pytest.fixture(scope='function')
def headers_b(client, user_b):
    return auth_headers(get_auth_token(client, "user_b"))


@pytest.fixture(scope='function')
def headers_manager_a(client, manager_a):
    return auth_headers(get_auth_token(client, "manager_a"))
