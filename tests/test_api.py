"""HTTP surface: auth, menus, the request workflow and admin routes."""

import pytest
from fastapi.testclient import TestClient

from stellar.db.session import get_db
from stellar.main import app
from stellar.models.permission_request import RequestStatus
from stellar.models.role import Role
from stellar.services.catalog_service import CatalogService, get_catalog_service
from stellar.services.permission_request_service import get_permission_request_service
from stellar.services.session_context import get_session_registry

from tests.fakes import FakeCache


@pytest.fixture
def client(seeded, session_factory, registry, service, fake_executor):
    browser = CatalogService(executor_factory=lambda cluster: fake_executor, cache=FakeCache())

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_registry] = lambda: registry
    app.dependency_overrides[get_permission_request_service] = lambda: service
    app.dependency_overrides[get_catalog_service] = lambda: browser
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def login(client, password):
    def _login(username):
        response = client.post("/api/auth/login", json={"username": username, "password": password})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}
    return _login


def test_login_rejects_bad_password(client):
    response = client.post("/api/auth/login", json={"username": "alice", "password": "wrong-pass"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid username or password"


def test_login_returns_tokens_and_permissions(client, password):
    response = client.post("/api/auth/login", json={"username": "bob", "password": password})
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["refresh_token"]
    assert body["user"]["username"] == "bob"
    assert "api:permission-requests:approve" in body["permissions"]
    assert response.headers["X-Request-Id"]


def test_unauthenticated_calls_are_rejected(client):
    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/auth/menu").status_code == 401


def test_menu_is_pruned_to_grants(client, login):
    headers = login("alice")
    ids = [item["id"] for item in client.get("/api/auth/menu", headers=headers).json()]
    assert "dashboard" in ids
    assert "cluster-ops" in ids
    assert "system" not in ids


def test_request_flow_over_http(client, login, table_grant, service, session_factory):
    alice, bob = login("alice"), login("bob")

    response = client.post("/api/permission-requests", json=table_grant, headers=alice)
    assert response.status_code == 201, response.text
    created = response.json()
    assert created["status"] == "pending"
    assert created["preview_sql"] == "GRANT SELECT ON TABLE sales.orders TO USER alice"
    request_id = created["id"]

    assert client.post(f"/api/permission-requests/{request_id}/approve", headers=alice).status_code == 403

    pending = client.get("/api/permission-requests/pending", headers=bob).json()
    assert [r["id"] for r in pending["requests"]] == [request_id]

    response = client.post(
        f"/api/permission-requests/{request_id}/approve", json={"comment": "ok"}, headers=bob,
    )
    assert response.status_code == 200, response.text
    assert response.json()["status"] == "executing"
    assert client.post(f"/api/permission-requests/{request_id}/approve", headers=bob).status_code == 409

    db = session_factory()
    try:
        assert service.execute(db, request_id).status is RequestStatus.completed
    finally:
        db.close()

    record = client.get(f"/api/permission-requests/{request_id}", headers=alice).json()
    assert record["status"] == "completed"
    assert record["is_terminal"] is True
    assert record["approver_name"] == "bob"


def test_invalid_submission_is_a_bad_request(client, login, table_grant):
    table_grant["request_details"]["resource_type"] = "warehouse"
    response = client.post("/api/permission-requests", json=table_grant, headers=login("alice"))
    assert response.status_code == 400


def test_preview_does_not_persist(client, login):
    headers = login("alice")
    response = client.post(
        "/api/permission-requests/preview",
        json={"request_type": "grant_role", "request_details": {"target_user": "alice", "target_role": "analyst"}},
        headers=headers,
    )
    assert response.json() == {"sql": "GRANT analyst TO alice", "request_type": "grant_role"}
    assert client.get("/api/permission-requests/my", headers=headers).json()["total"] == 0


def test_return_url(client):
    response = client.get(
        "/api/auth/return-url",
        params={"url": "/pages/starrocks/pages/starrocks/nodes", "current_path": "/pages/starrocks/overview"},
    )
    assert response.json() == {
        "url": "/pages/starrocks/nodes",
        "mode": "path",
        "login_path": "/auth/login",
    }


def test_admin_routes_need_capability(client, login):
    assert client.get("/api/admin/roles", headers=login("alice")).status_code == 403


def test_role_assignment_reaches_live_session(client, login, seeded):
    alice, root = login("alice"), login("root")
    before = client.get("/api/auth/permissions", headers=alice).json()["codes"]
    assert "api:permission-requests:approve" not in before

    response = client.put(
        f"/api/admin/users/{seeded['users']['alice'].id}/roles",
        json={"role_codes": ["developer", "approver"]},
        headers=root,
    )
    assert response.status_code == 200, response.text
    after = client.get("/api/auth/permissions", headers=alice).json()["codes"]
    assert "api:permission-requests:approve" in after


def test_system_roles_cannot_be_deleted(client, login, db):
    role = db.query(Role).filter(Role.code == "super_admin").one()
    assert client.delete(f"/api/admin/roles/{role.id}", headers=login("root")).status_code == 403


def test_logout_ends_the_session(client, login):
    headers = login("alice")
    assert client.post("/api/auth/logout", headers=headers).status_code == 200
    assert client.get("/api/auth/permissions", headers=headers).status_code == 401

    fresh = login("alice")
    assert client.get("/api/auth/permissions", headers=fresh).status_code == 200


def test_audit_entries_carry_the_request_id(client, login, seeded):
    root = login("root")
    client.put(
        f"/api/admin/users/{seeded['users']['dave'].id}/roles",
        json={"role_codes": ["viewer"]},
        headers={**root, "X-Request-Id": "trace-0001abcd"},
    )
    logs = client.get("/api/admin/audit", params={"request_id": "trace-0001abcd"}, headers=root).json()
    assert logs["total"] == 1
    assert logs["logs"][0]["action"] == "user.roles_updated"
    assert logs["logs"][0]["request_id"] == "trace-0001abcd"


def test_org_admin_cannot_reach_other_organizations(client, login, seeded, db):
    erin = login("erin")
    users = seeded["users"]
    globex_role = Role(code="globex_ops", name="Globex ops", organization_id=seeded["orgs"]["globex"].id)
    db.add(globex_role)
    db.commit()

    assert client.put(
        f"/api/admin/users/{users['carol'].id}/roles", json={"role_codes": ["viewer"]}, headers=erin,
    ).status_code == 403
    assert client.put(
        f"/api/admin/roles/{globex_role.id}/permissions",
        json={"permission_codes": ["menu:dashboard"]}, headers=erin,
    ).status_code == 403
    assert client.delete(f"/api/admin/roles/{globex_role.id}", headers=erin).status_code == 403


def test_org_admin_cannot_escalate(client, login, seeded):
    erin = login("erin")
    response = client.put(
        f"/api/admin/users/{seeded['users']['erin'].id}/roles",
        json={"role_codes": ["admin", "super_admin"]},
        headers=erin,
    )
    assert response.status_code == 403
    codes = client.get("/api/auth/permissions", headers=erin).json()["codes"]
    assert "menu:system:organizations" not in codes


@pytest.mark.parametrize("outsider", ["carol", "nobody"])
def test_catalog_browsing_is_limited_to_visible_clusters(client, login, seeded, fake_executor, outsider):
    fake_executor.names["SHOW CATALOGS"] = ["default_catalog", "hive"]
    url = f"/api/clusters/{seeded['cluster'].id}/catalogs"

    assert client.get(url, headers=login("alice")).json() == ["default_catalog", "hive"]
    assert client.get(url, headers=login(outsider)).status_code == 403
    assert fake_executor.queries == ["SHOW CATALOGS"]


def test_registered_cluster_belongs_to_callers_organization(client, login, seeded):
    response = client.post(
        "/api/clusters",
        json={"name": "staging", "host": "stg-fe.internal", "username": "root",
              "organization_id": seeded["orgs"]["globex"].id},
        headers=login("erin"),
    )
    assert response.status_code == 201, response.text
    assert response.json()["organization_id"] == seeded["orgs"]["acme"].id

    ids = [c["id"] for c in client.get("/api/clusters", headers=login("carol")).json()]
    assert response.json()["id"] not in ids
