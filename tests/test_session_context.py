"""Session registry lifecycle against the metadata database."""

import pytest

from stellar.core.exceptions import AuthenticationError, AuthorizationError
from stellar.services.role_service import role_service


def test_open_builds_index_from_roles(contexts):
    alice = contexts["alice"]
    assert alice.has("menu:cluster-ops:auth")
    assert not alice.has("api:permission-requests:approve")
    assert contexts["root"].is_super_admin
    assert contexts["root"].has("api:anything:at-all")


def test_require_raises_authorization_error(contexts):
    with pytest.raises(AuthorizationError):
        contexts["alice"].require("api:roles:manage")
    contexts["bob"].require("api:permission-requests:approve")


def test_unknown_user_cannot_open_session(seeded, registry):
    with pytest.raises(AuthenticationError):
        registry.open(999)


def test_role_change_updates_live_menu(db, seeded, registry, contexts):
    alice = contexts["alice"]
    assert "system" not in [n.id for n in alice.menu()]

    role_service.assign_roles(db, registry, seeded["users"]["alice"].id, ["developer", "admin"])

    assert alice.has("api:roles:manage")
    assert "system" in [n.id for n in alice.menu()]


def test_close_clears_permissions(contexts, registry, seeded):
    alice = contexts["alice"]
    registry.close(seeded["users"]["alice"].id)
    assert not alice.has("menu:dashboard")
    assert alice.menu() == []
    assert registry.get(seeded["users"]["alice"].id) is None
