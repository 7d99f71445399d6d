"""Shared fixtures: in-memory SQLite metadata DB, seeded users, fake engine."""

import os

# Must be set before any stellar module reads settings.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("DEBUG", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import stellar.models  # noqa: F401
from stellar.core.security import hash_password
from stellar.db.base import Base
from stellar.db.seeds.seed_permissions import seed_permissions
from stellar.db.seeds.seed_roles import seed_roles
from stellar.models.cluster import Cluster
from stellar.models.organization import Organization
from stellar.models.role import Role
from stellar.models.user import User
from stellar.services.identity_service import DatabaseIdentitySource
from stellar.services.permission_request_service import PermissionRequestService
from stellar.services.session_context import SessionRegistry

from tests.fakes import FakeExecutor

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

PASSWORD = "secret-pass"
PASSWORD_HASH = hash_password(PASSWORD)


def _user(db, username, org=None, roles=(), is_super_admin=False):
    user = User(
        username=username,
        hashed_password=PASSWORD_HASH,
        organization_id=org.id if org else None,
        is_super_admin=is_super_admin,
    )
    user.roles = db.query(Role).filter(Role.code.in_(list(roles))).all()
    db.add(user)
    return user


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def seeded(db):
    """Permission catalog, roles, two organizations, users and clusters."""
    seed_permissions(db)
    seed_roles(db)
    acme = Organization(code="acme", name="Acme")
    globex = Organization(code="globex", name="Globex")
    db.add_all([acme, globex])
    db.flush()

    users = {
        "root": _user(db, "root", roles=["super_admin"], is_super_admin=True),
        "alice": _user(db, "alice", acme, ["developer"]),
        "bob": _user(db, "bob", acme, ["approver"]),
        "dave": _user(db, "dave", acme, ["developer"]),
        "carol": _user(db, "carol", globex, ["approver"]),
        "erin": _user(db, "erin", acme, ["admin"]),
        "nobody": _user(db, "nobody"),
    }
    cluster = Cluster(name="prod", host="sr-fe.internal", username="root", organization_id=acme.id)
    retired = Cluster(name="old", host="old-fe.internal", username="root", is_active=False)
    db.add_all([cluster, retired])
    db.commit()
    return {"users": users, "orgs": {"acme": acme, "globex": globex}, "cluster": cluster, "retired": retired}


@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def password():
    return PASSWORD


@pytest.fixture
def registry():
    return SessionRegistry(DatabaseIdentitySource(TestingSessionLocal))


@pytest.fixture
def contexts(seeded, registry):
    """Open session contexts keyed by username."""
    return {name: registry.open(user.id) for name, user in seeded["users"].items()}


@pytest.fixture
def fake_executor():
    return FakeExecutor()


@pytest.fixture
def dispatched():
    return []


@pytest.fixture
def service(fake_executor, dispatched):
    return PermissionRequestService(
        dispatcher=dispatched.append,
        executor_factory=lambda cluster: fake_executor,
    )


@pytest.fixture
def table_grant(seeded):
    return {
        "cluster_id": seeded["cluster"].id,
        "request_type": "grant_permission",
        "request_details": {
            "target_user": "alice",
            "resource_type": "table",
            "database": "sales",
            "table": "orders",
            "permissions": ["SELECT"],
        },
        "reason": "quarterly report",
    }
