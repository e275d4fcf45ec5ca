"""
Pytest fixtures for Aluro backend tests.

Provides test database setup, two isolated stores (tenant A and tenant B)
with their owners, session tokens, and a test client.
"""

import pytest
from aluro import create_app
from aluro.extensions import db
from aluro.models import TenantUser
from aluro.services.auth_service import create_user
from aluro.services.session_service import create_session
from aluro.services.tenant_service import create_tenant

PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'STRIPE_SECRET_KEY': 'sk_test_dummy',
        'STRIPE_WEBHOOK_SECRET': 'whsec_test_secret',
        'ADMIN_URL': 'http://admin.test',
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
        db.session.expunge_all()
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def owner_a(db_session):
    """Owner account of store A."""
    return create_user("owner_a@acme.test", PASSWORD, full_name="Owner A")


@pytest.fixture(scope='function')
def owner_b(db_session):
    """Owner account of store B."""
    return create_user("owner_b@beta.test", PASSWORD, full_name="Owner B")


@pytest.fixture(scope='function')
def tenant_a(owner_a):
    """Store A (first tenant) with default categories."""
    tenant, _ = create_tenant(owner=owner_a, name="Acme Store", subdomain="acme")
    return tenant


@pytest.fixture(scope='function')
def tenant_b(owner_b):
    """Store B (second tenant)."""
    tenant, _ = create_tenant(owner=owner_b, name="Beta Store", subdomain="beta")
    return tenant


@pytest.fixture(scope='function')
def platform_admin(db_session):
    return create_user("admin@aluro.test", PASSWORD, is_platform_admin=True)


def add_member(tenant, email: str, role: str):
    """Create an account and add it to `tenant` with `role`."""
    user = create_user(email, PASSWORD)
    db.session.add(TenantUser(tenant_id=tenant.id, user_id=user.id, role=role, is_active=True))
    db.session.commit()
    return user


def session_token(user, tenant=None) -> str:
    """Plaintext bearer token for `user` working inside `tenant`."""
    _, token = create_session(user_id=user.id, tenant_id=tenant.id if tenant else None)
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def headers_a(owner_a, tenant_a):
    """Authorization headers for the owner of store A."""
    return auth_headers(session_token(owner_a, tenant_a))


@pytest.fixture(scope='function')
def headers_b(owner_b, tenant_b):
    """Authorization headers for the owner of store B."""
    return auth_headers(session_token(owner_b, tenant_b))
