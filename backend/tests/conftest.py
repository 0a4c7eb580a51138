"""
Pytest fixtures for portal backend tests.

Provides test database setup, two tenant organizations with members of
every role, and helpers for signing in through the API.
"""

from datetime import timedelta

import pytest
from brfportal import create_app
from brfportal.config import TestingConfig
from brfportal.extensions import db
from brfportal.models import Organization, User, UserProfile, UserRole
from brfportal.permissions import Role
from brfportal.services import invoice_lifecycle_service, role_resolver
from brfportal.services.auth_service import hash_password
from brfportal.time_utils import utcnow


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app(TestingConfig)
    app.config.update({
        'ATTACHMENT_STORAGE_DIR': str(tmp_path_factory.mktemp("attachments")),
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


def create_portal_user(email: str, org: Organization | None, roles=(), password: str = PASSWORD,
                       first_name: str = "Test", last_name: str = "User", with_profile: bool = True) -> User:
    """Principal + (optional) profile + role rows, committed."""
    user = User(email=email, password_hash=hash_password(password), is_active=True)
    db.session.add(user)
    db.session.flush()

    if with_profile:
        db.session.add(UserProfile(
            user_id=user.id,
            org_id=org.id if org else None,
            email=email,
            first_name=first_name,
            last_name=last_name,
        ))
    for role in roles:
        db.session.add(UserRole(user_id=user.id, role=role))

    db.session.commit()
    return user


@pytest.fixture(scope='function')
def org_a(db_session):
    """Organization A (first tenant)."""
    org = Organization(name="BRF Almen", org_number="769600-0001", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Organization B (second tenant)."""
    org = Organization(name="BRF Björken", org_number="769600-0002", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def admin_a(db_session, org_a):
    return create_portal_user("admin@almen.se", org_a, [Role.BRF_ADMIN], first_name="Anna", last_name="Admin")


@pytest.fixture(scope='function')
def user_a(db_session, org_a):
    return create_portal_user("styrelse@almen.se", org_a, [Role.BRF_USER], first_name="Bo", last_name="Board")


@pytest.fixture(scope='function')
def admin_b(db_session, org_b):
    return create_portal_user("admin@bjorken.se", org_b, [Role.BRF_ADMIN])


@pytest.fixture(scope='function')
def user_b(db_session, org_b):
    return create_portal_user("styrelse@bjorken.se", org_b, [Role.BRF_USER])


@pytest.fixture(scope='function')
def superadmin(db_session):
    """Platform operator without a home organization."""
    return create_portal_user("ops@brfportal.se", None, [Role.SUPERADMIN])


@pytest.fixture(scope='function')
def unprovisioned(db_session):
    """Signed-up principal without profile or roles."""
    return create_portal_user("new@example.se", None, [], with_profile=False)


def ctx(user: User):
    """Fresh RoleContext for a user."""
    return role_resolver.resolve(user.id)


def make_invoice(actor_user: User, amount_cents: int = 1250000, due_in_days: int = 20, **fields):
    payload = {
        "amount_cents": amount_cents,
        "invoice_date": utcnow().date().isoformat(),
        "due_date": (utcnow().date() + timedelta(days=due_in_days)).isoformat(),
        "invoice_number": fields.pop("invoice_number", "F-1001"),
    }
    payload.update(fields)
    return invoice_lifecycle_service.create_invoice(ctx(actor_user), payload)


@pytest.fixture(scope='function')
def invoice_a(admin_a):
    """Invoice in org A, status new."""
    return make_invoice(admin_a)


@pytest.fixture(scope='function')
def invoice_b(admin_b):
    """Invoice in org B, status new."""
    return make_invoice(admin_b, invoice_number="B-2001")


def get_auth_token(client, email: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/sign-in', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_a_headers(client, admin_a):
    return auth_headers(get_auth_token(client, admin_a.email))


@pytest.fixture(scope='function')
def user_a_headers(client, user_a):
    return auth_headers(get_auth_token(client, user_a.email))


@pytest.fixture(scope='function')
def user_b_headers(client, user_b):
    return auth_headers(get_auth_token(client, user_b.email))


@pytest.fixture(scope='function')
def superadmin_headers(client, superadmin):
    return auth_headers(get_auth_token(client, superadmin.email))


@pytest.fixture
def make_user(db_session):
    """Factory fixture around create_portal_user."""
    return create_portal_user


@pytest.fixture
def invoice_factory(db_session):
    """Factory fixture around make_invoice."""
    return make_invoice


@pytest.fixture
def context_of(db_session):
    """Factory fixture around ctx."""
    return ctx


@pytest.fixture(scope='function')
def unprovisioned_headers(client, unprovisioned):
    return auth_headers(get_auth_token(client, unprovisioned.email))


@pytest.fixture(scope='function')
def admin_b_headers(client, admin_b):
    return auth_headers(get_auth_token(client, admin_b.email))
