"""
Pytest fixtures for fundflow backend tests.

Provides test database setup, a seeded organization tree with approvers,
and test client helpers.

The `org` fixture builds:

    한빛교회 (root, LEVEL_1)          binds 위원장, 부원
    │                                 chair (위원장)
    ├── 재정위원회 (LEVEL_2)
    │   └── 청년부 (LEVEL_3)          binds 부장, 회계, 부회계
    │           │                     head (부장), treasurer (회계),
    │           │                     assistant (부회계)
    │           └── 찬양팀 (LEVEL_4)
    └── 선교회 (LEVEL_2)              no bindings

Every approver has an email, so each gets a provisioned account.
"""

from types import SimpleNamespace

import pytest

from fundflow import create_app
from fundflow.config import TestConfig
from fundflow.extensions import db
from fundflow.models import OrganizationRole, UserAccount
from fundflow.services import hierarchy_service, membership_service


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
def tenant(db_session):
    tenant = hierarchy_service.create_tenant("한빛교회", "HANBIT")
    hierarchy_service.seed_standard_roles(tenant.id)
    return tenant


def role_named(tenant_id: int, name: str) -> OrganizationRole:
    return db.session.query(OrganizationRole).filter_by(tenant_id=tenant_id, name=name).one()


def account_for(email: str) -> UserAccount | None:
    return db.session.query(UserAccount).filter_by(email=email).first()


def add_member(tenant_id, unit, name, role_name=None, *, email=None, phone=None, is_primary=False):
    person = membership_service.create_person(tenant_id, name, email=email, phone=phone)
    role_id = role_named(tenant_id, role_name).id if role_name else None
    result = membership_service.add_membership(person.id, unit.id, role_id=role_id, is_primary=is_primary)
    return person, result


@pytest.fixture(scope='function')
def org(tenant):
    root = hierarchy_service.get_root_unit(tenant.id)
    committee = hierarchy_service.create_unit(tenant.id, "재정위원회", parent_id=root.id)
    department = hierarchy_service.create_unit(tenant.id, "청년부", parent_id=committee.id)
    team = hierarchy_service.create_unit(tenant.id, "찬양팀", parent_id=department.id)
    mission = hierarchy_service.create_unit(tenant.id, "선교회", parent_id=root.id)

    roles = {r.name: r for r in hierarchy_service.list_roles(tenant.id)}
    hierarchy_service.assign_role(root.id, [roles["위원장"].id, roles["부원"].id])
    hierarchy_service.assign_role(department.id, [roles["부장"].id, roles["회계"].id, roles["부회계"].id])

    chair, _ = add_member(tenant.id, root, "김위원", "위원장", email="chair@hanbit.org", is_primary=True)
    head, _ = add_member(tenant.id, department, "이부장", "부장", email="head@hanbit.org", is_primary=True)
    treasurer, _ = add_member(tenant.id, department, "박회계", "회계", email="treasurer@hanbit.org", is_primary=True)
    assistant, _ = add_member(tenant.id, department, "최부회계", "부회계", email="assistant@hanbit.org", is_primary=True)

    return SimpleNamespace(
        tenant=tenant,
        root=root,
        committee=committee,
        department=department,
        team=team,
        mission=mission,
        roles=roles,
        chair=account_for("chair@hanbit.org"),
        head=account_for("head@hanbit.org"),
        treasurer=account_for("treasurer@hanbit.org"),
        assistant=account_for("assistant@hanbit.org"),
        people=SimpleNamespace(chair=chair, head=head, treasurer=treasurer, assistant=assistant),
    )


def get_auth_token(client, email: str, password: str) -> str:
    """Helper to get auth token for an account."""
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


def activated_token(client, account, password: str = "Changed123") -> str:
    """Log in with the one-time credential (the email), change it, return the token."""
    token = get_auth_token(client, account.email, account.email)
    response = client.post(
        '/api/auth/change-credential',
        json={'current_password': account.email, 'new_password': password},
        headers=auth_headers(token),
    )
    assert response.status_code == 200, response.json
    return token
