"""Role administration stays inside the actor's organization and grants."""

import pytest

from stellar.core.exceptions import AuthorizationError, ResourceNotFoundError
from stellar.models.role import Role
from stellar.services.role_service import role_service


@pytest.fixture
def org_roles(db, seeded):
    acme, globex = seeded["orgs"]["acme"], seeded["orgs"]["globex"]
    return {
        "acme": role_service.create_role(db, "acme_ops", "Acme ops", ["menu:dashboard"],
                                         organization_id=acme.id),
        "globex": role_service.create_role(db, "globex_ops", "Globex ops", ["menu:dashboard"],
                                           organization_id=globex.id),
    }


def test_org_admin_edits_own_roles_only(db, registry, contexts, org_roles):
    erin = contexts["erin"]
    role = role_service.set_permissions(db, registry, org_roles["acme"].id, ["menu:overview"], erin)
    assert role.permission_codes == {"menu:overview"}

    with pytest.raises(AuthorizationError):
        role_service.set_permissions(db, registry, org_roles["globex"].id, ["menu:overview"], erin)
    with pytest.raises(AuthorizationError):
        role_service.delete_role(db, registry, org_roles["globex"].id, erin)
    with pytest.raises(AuthorizationError):
        role_service.get(db, org_roles["globex"].id, erin)


def test_global_roles_are_not_editable_by_org_admins(db, registry, contexts):
    developer = db.query(Role).filter(Role.code == "developer").one()
    with pytest.raises(AuthorizationError):
        role_service.set_permissions(db, registry, developer.id, ["menu:dashboard"], contexts["erin"])
    with pytest.raises(AuthorizationError):
        role_service.delete_role(db, registry, developer.id, contexts["erin"])


def test_cannot_grant_codes_beyond_own(db, registry, contexts, seeded, org_roles):
    with pytest.raises(AuthorizationError):
        role_service.create_role(db, "escalate", "Escalate", ["menu:system:organizations"],
                                 organization_id=seeded["orgs"]["acme"].id, ctx=contexts["erin"])
    with pytest.raises(AuthorizationError):
        role_service.set_permissions(db, registry, org_roles["acme"].id,
                                     ["menu:system:organizations"], contexts["erin"])


def test_assignment_is_confined_to_own_organization(db, registry, contexts, seeded):
    erin = contexts["erin"]
    users = seeded["users"]

    with pytest.raises(AuthorizationError):
        role_service.assign_roles(db, registry, users["carol"].id, ["viewer"], erin)
    with pytest.raises(AuthorizationError):
        role_service.assign_roles(db, registry, users["erin"].id, ["admin", "super_admin"], erin)
    with pytest.raises(AuthorizationError):
        role_service.assign_roles(db, registry, users["dave"].id, ["super_admin"], erin)
    assert not contexts["dave"].has("menu:system:organizations")

    user = role_service.assign_roles(db, registry, users["dave"].id, ["developer", "approver"], erin)
    assert sorted(r.code for r in user.roles) == ["approver", "developer"]
    assert contexts["dave"].has("api:permission-requests:approve")


def test_cannot_strip_roles_beyond_own_grants(db, registry, contexts, seeded):
    dave_id = seeded["users"]["dave"].id
    role_service.assign_roles(db, registry, dave_id, ["super_admin"])
    with pytest.raises(AuthorizationError):
        role_service.assign_roles(db, registry, dave_id, [], contexts["erin"])


def test_super_admin_is_unrestricted(db, registry, contexts, seeded, org_roles):
    root = contexts["root"]
    role_service.set_permissions(db, registry, org_roles["globex"].id, ["menu:system:organizations"], root)
    role_service.assign_roles(db, registry, seeded["users"]["carol"].id, ["approver", "globex_ops"], root)
    assert contexts["carol"].has("menu:system:organizations")


def test_missing_role_is_not_found(db, contexts, seeded):
    with pytest.raises(ResourceNotFoundError):
        role_service.get(db, 9999, contexts["erin"])
