import inspect
import threading

import pytest
from fastapi.testclient import TestClient

from rbac_console.core.dependencies import get_console_session, get_session_registry
from rbac_console.core.errors import ApiError, NotFoundError, TransportError, ValidationError
from rbac_console.core.exception_handlers import status_code_for
from rbac_console.core.sessions import SessionRegistry
from rbac_console.main import app
from rbac_console.modules.tenant_rbac.routes import get_tenant_state

from conftest import make_api

AUTH = {"Authorization": "Bearer token-a"}


@pytest.fixture
def registry(fake_api):
    return SessionRegistry(api_factory=lambda token: make_api(fake_api, token))


@pytest.fixture
def client(registry):
    app.dependency_overrides[get_session_registry] = lambda: registry
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_health_and_ready(client):
    assert client.get("/health").json() == {"status": "healthy"}
    client.get("/api/v1/rbac/state", headers=AUTH)
    assert client.get("/ready").json() == {"status": "ready", "sessions": 1}


def test_security_headers(client):
    response = client.get("/health")
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["Referrer-Policy"] == "no-referrer"
    assert response.headers["Cache-Control"] == "no-store"


@pytest.mark.parametrize(
    "exc,expected",
    [
        (ApiError(409, "exists"), 409),
        (NotFoundError(404, "gone"), 404),
        (TransportError("connection refused"), 502),
        (ValidationError("bad paging"), 400),
    ],
)
def test_console_error_status_codes(exc, expected):
    assert status_code_for(exc) == expected


def test_bearer_token_required(client):
    response = client.get("/api/v1/rbac/state")
    assert response.status_code in (401, 403)


def test_session_dependencies_run_on_the_event_loop(client, registry, monkeypatch):
    assert inspect.iscoroutinefunction(get_console_session)
    assert inspect.iscoroutinefunction(get_tenant_state)

    threads = []
    original_get = registry.get

    def recording_get(token):
        threads.append(threading.current_thread().name)
        return original_get(token)

    monkeypatch.setattr(registry, "get", recording_get)
    client.get("/api/v1/rbac/state", headers=AUTH)
    client.get("/api/v1/tenants/t1/rbac/state", headers=AUTH)
    assert len(threads) == 2
    assert not any(name.startswith("AnyIO worker thread") for name in threads)


def test_load_and_state(client, fake_api):
    response = client.post("/api/v1/rbac/load", headers=AUTH)
    assert response.status_code == 200
    body = response.json()
    assert {"name": "member", "domain": "tenant"} in body["roles"]
    assert [u["id"] for u in body["users"]] == ["u1", "u2"]
    assert body["loading"]["initial"] is False
    assert fake_api.requests[0].headers["Authorization"] == "Bearer token-a"

    state = client.get("/api/v1/rbac/state", headers=AUTH).json()
    assert state["roles"] == body["roles"]


def test_sessions_are_isolated_per_token(client):
    client.post("/api/v1/rbac/load", headers=AUTH)
    other = client.get("/api/v1/rbac/state", headers={"Authorization": "Bearer token-b"}).json()
    assert other["roles"] == []
    assert other["loading"]["initial"] is True


def test_grouped_role_permissions(client):
    response = client.get("/api/v1/rbac/roles/global/permissions", params={"role": "admin"}, headers=AUTH)
    assert response.json() == {
        "role": {"name": "admin", "domain": "global"},
        "permissions": {"users": ["read", "write"], "roles": ["read"]},
    }


def test_unknown_domain_is_rejected(client):
    response = client.get("/api/v1/rbac/roles/planet/permissions", params={"role": "admin"}, headers=AUTH)
    assert response.status_code == 422


def test_add_and_remove_permission(client, fake_api):
    response = client.post(
        "/api/v1/rbac/roles/global/permissions",
        params={"role": "viewer"},
        json={"object": "reports", "action": "export"},
        headers=AUTH,
    )
    entries = response.json()["role_permissions"]
    assert entries == [{"role": {"name": "viewer", "domain": "global"}, "permissions": [["reports", "export"]]}]

    response = client.delete(
        "/api/v1/rbac/roles/global/permissions",
        params={"role": "viewer", "object": "reports", "action": "export"},
        headers=AUTH,
    )
    assert response.json()["role_permissions"][0]["permissions"] == []


def test_permissions_with_slashes_can_be_removed(client, fake_api):
    params = {"role": "viewer"}
    client.get("/api/v1/rbac/roles/global/permissions", params=params, headers=AUTH)
    client.post(
        "/api/v1/rbac/roles/global/permissions",
        params=params,
        json={"object": "/api/users", "action": "read"},
        headers=AUTH,
    )
    grouped = client.get("/api/v1/rbac/roles/global/permissions", params=params, headers=AUTH).json()
    assert grouped["permissions"] == {"users": ["read"], "/api/users": ["read"]}

    response = client.delete(
        "/api/v1/rbac/roles/global/permissions",
        params={"role": "viewer", "object": "/api/users", "action": "read"},
        headers=AUTH,
    )
    assert response.status_code == 200
    entry = response.json()["role_permissions"][0]
    assert entry["permissions"] == [["users", "read"]]
    assert response.json()["error"] is None
    deleted = [r for r in fake_api.requests if r.method == "DELETE"]
    assert deleted[-1].url.raw_path.decode().endswith("/roles/viewer/permissions/%2Fapi%2Fusers/read")


def test_create_role(client, fake_api):
    response = client.post(
        "/api/v1/rbac/roles",
        json={"roleName": "editor", "domain": "tenant", "subject": "articles", "action": "write"},
        headers=AUTH,
    )
    body = response.json()
    assert body["roles"] == [{"name": "editor", "domain": "tenant"}]
    assert body["create_role_error"] is None


def test_action_failure_is_reported_in_snapshot(client, fake_api):
    fake_api.fail("POST", "/admin/rbac/users/u1/roles", status=500, body={"error": "db down"})
    response = client.post("/api/v1/rbac/users/u1/roles", json={"role": "viewer"}, headers=AUTH)
    assert response.status_code == 200
    assert response.json()["error"] == "Failed to add role: db down"


def test_user_role_endpoints(client, fake_api):
    body = client.get("/api/v1/rbac/users/u1/roles", headers=AUTH).json()
    assert body["user_roles_map"] == {"u1": ["admin"]}
    body = client.post("/api/v1/rbac/users/u1/roles", json={"role": "viewer"}, headers=AUTH).json()
    assert body["user_roles_map"]["u1"] == ["admin", "viewer"]
    body = client.delete("/api/v1/rbac/users/u1/roles", params={"role": "admin"}, headers=AUTH).json()
    assert body["user_roles_map"]["u1"] == ["viewer"]
    body = client.post("/api/v1/rbac/users/roles/fetch", json={"userIds": ["u2"]}, headers=AUTH).json()
    assert body["user_roles_map"]["u2"] == []


def test_user_list_and_search(client, fake_api):
    client.post("/api/v1/rbac/load", headers=AUTH)
    users = client.get("/api/v1/rbac/users", params={"q": "bob"}, headers=AUTH).json()
    assert [u["id"] for u in users] == ["u2"]
    page = client.get("/api/v1/rbac/users/search", params={"q": "alice"}, headers=AUTH).json()
    assert page["total"] == 1


def test_search_errors_map_to_http_status(client, fake_api):
    fake_api.fail("GET", "/users/search", status=404, body={"error": "search disabled"})
    response = client.get("/api/v1/rbac/users/search", headers=AUTH)
    assert response.status_code == 404
    assert response.json() == {"detail": "search disabled"}

    response = client.get("/api/v1/rbac/users/search", params={"limit": 0}, headers=AUTH)
    assert response.status_code == 400


def test_modals_and_inputs(client):
    body = client.post(
        "/api/v1/rbac/modals/role-permissions/global", params={"role": "admin"}, headers=AUTH
    ).json()
    assert body["is_role_perms_modal_open"] is True
    assert body["selected_role"] == {"name": "admin", "domain": "global"}
    body = client.patch("/api/v1/rbac/inputs", json={"new_perm_object": "users"}, headers=AUTH).json()
    assert body["new_perm_object"] == "users"
    body = client.delete("/api/v1/rbac/modals/role-permissions", headers=AUTH).json()
    assert body["selected_role"] is None
    body = client.post("/api/v1/rbac/modals/user-roles/u1", headers=AUTH).json()
    assert body["selected_user"]["id"] == "u1"
    assert body["user_roles_map"] == {"u1": ["admin"]}
    body = client.post("/api/v1/rbac/modals/create-role", headers=AUTH).json()
    assert body["is_create_role_modal_open"] is True


def test_tenant_routes_switch_tenant(client, fake_api):
    body = client.post("/api/v1/tenants/t1/rbac/load", headers=AUTH).json()
    assert body["tenant_id"] == "t1"
    assert body["roles"] == ["member", "owner"]

    grouped = client.get(
        "/api/v1/tenants/t1/rbac/roles/permissions", params={"role": "owner"}, headers=AUTH
    ).json()
    assert grouped == {"tenant_id": "t1", "role": "owner", "permissions": {"billing": ["read", "write"]}}

    body = client.get("/api/v1/tenants/t2/rbac/state", headers=AUTH).json()
    assert body["tenant_id"] == "t2"
    assert body["roles"] == ["auditor"]
    assert body["role_permissions"] == []


def test_tenant_state_loads_roles_on_first_visit(client, fake_api):
    body = client.get("/api/v1/tenants/t1/rbac/state", headers=AUTH).json()
    assert body["roles"] == ["member", "owner"]
    assert body["loading"]["initial_roles"] is False

    client.get("/api/v1/tenants/t1/rbac/state", headers=AUTH)
    assert fake_api.calls("GET", "/tenants/t1/rbac/roles") == 1


def test_tenant_role_lifecycle(client, fake_api):
    client.post("/api/v1/tenants/t1/rbac/load", headers=AUTH)
    body = client.post(
        "/api/v1/tenants/t1/rbac/roles",
        json={"roleName": "editor", "subject": "articles", "action": "write"},
        headers=AUTH,
    ).json()
    assert body["roles"] == ["editor", "member", "owner"]
    body = client.post(
        "/api/v1/tenants/t1/rbac/roles/permissions",
        params={"role": "editor"},
        json={"object": "articles", "action": "read"},
        headers=AUTH,
    ).json()
    editor = next(e for e in body["role_permissions"] if e["role"] == "editor")
    assert editor["permissions"] == [["articles", "write"], ["articles", "read"]]
    body = client.delete("/api/v1/tenants/t1/rbac/roles", params={"role": "editor"}, headers=AUTH).json()
    assert body["roles"] == ["member", "owner"]


def test_tenant_permission_with_slashes(client, fake_api):
    params = {"role": "member"}
    client.get("/api/v1/tenants/t1/rbac/roles/permissions", params=params, headers=AUTH)
    client.post(
        "/api/v1/tenants/t1/rbac/roles/permissions",
        params=params,
        json={"object": "/docs/*", "action": "read"},
        headers=AUTH,
    )
    body = client.delete(
        "/api/v1/tenants/t1/rbac/roles/permissions",
        params={"role": "member", "object": "/docs/*", "action": "read"},
        headers=AUTH,
    ).json()
    member = next(e for e in body["role_permissions"] if e["role"] == "member")
    assert member["permissions"] == [["documents", "read"]]
    assert fake_api.tenant_policies["t1"]["member"] == [["documents", "read"]]
