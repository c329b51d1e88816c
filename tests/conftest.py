import asyncio
import json
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import unquote

import httpx
import pytest

from rbac_console.api.policy_client import PolicyApiClient
from rbac_console.modules.rbac.service import RbacService
from rbac_console.modules.rbac.state import RbacStateManager
from rbac_console.modules.tenant_rbac.service import TenantRbacService
from rbac_console.modules.tenant_rbac.state import TenantRbacStateManager
from rbac_console.modules.users.service import UserService

BASE_URL = "http://policy.test/api/v1"


class FakePolicyApi:
    """In-memory policy API served through httpx.MockTransport"""

    def __init__(self):
        self.global_roles: List[str] = ["admin", "viewer"]
        self.tenant_roles: List[str] = ["member"]
        self.users: List[Dict[str, Any]] = [
            {"id": "u1", "email": "alice@example.com", "first_name": "Alice", "last_name": "Smith"},
            {"id": "u2", "email": "bob@example.com", "first_name": "Bob", "last_name": "Jones"},
        ]
        self.user_roles: Dict[str, List[str]] = {"u1": ["admin"], "u2": []}
        self.role_permissions: Dict[Tuple[str, str], List[List[str]]] = {
            ("admin", "global"): [["users", "read"], ["users", "write"], ["roles", "read"]],
            ("viewer", "global"): [["users", "read"]],
            ("member", "tenant"): [["documents", "read"]],
        }
        self.tenant_policies: Dict[str, Dict[str, List[List[str]]]] = {
            "t1": {"owner": [["billing", "read"], ["billing", "write"]], "member": [["documents", "read"]]},
            "t2": {"auditor": [["logs", "read"]]},
        }
        self.requests: List[httpx.Request] = []
        self.failures: Dict[Tuple[str, str], Tuple[int, Any]] = {}
        self.gates: Dict[Tuple[str, str], asyncio.Event] = {}

    # Test controls

    def fail(self, method: str, path: str, status: int = 500, body: Any = None) -> None:
        self.failures[(method, path)] = (status, {"error": "boom"} if body is None else body)

    def gate(self, method: str, path: str) -> asyncio.Event:
        event = asyncio.Event()
        self.gates[(method, path)] = event
        return event

    def calls(self, method: str, path: str) -> int:
        return sum(1 for r in self.requests if r.method == method and self._path(r) == path)

    @staticmethod
    def _path(request: httpx.Request) -> str:
        raw = request.url.raw_path.decode().split("?")[0]
        return raw[len("/api/v1"):] if raw.startswith("/api/v1") else raw

    # Transport

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = self._path(request)
        key = (request.method, path)
        if key in self.gates:
            await self.gates[key].wait()
        if key in self.failures:
            status, body = self.failures[key]
            if isinstance(body, str):
                return httpx.Response(status, text=body)
            return httpx.Response(status, json=body)
        segments = [unquote(s) for s in path.strip("/").split("/")]
        body = json.loads(request.content) if request.content else None
        result = self._route(request.method, segments, body, request)
        if isinstance(result, httpx.Response):
            return result
        if result is None:
            return httpx.Response(204)
        return httpx.Response(200, json=result)

    def _route(self, method: str, seg: List[str], body: Any, request: httpx.Request) -> Any:
        if seg[:2] == ["admin", "rbac"]:
            return self._rbac(method, seg[2:], body)
        if seg[:2] == ["users", "search"] and method == "GET":
            q = request.url.params.get("q", "").lower()
            users = [u for u in self.users if q in u["email"].lower()]
            return {"users": users, "total": len(users)}
        if seg[:1] == ["tenants"] and len(seg) > 2 and seg[2] == "rbac":
            return self._tenant(method, seg[1], seg[3:], body)
        return httpx.Response(404, json={"error": "route not found"})

    def _rbac(self, method: str, seg: List[str], body: Any) -> Any:
        if method == "GET" and seg == ["roles"]:
            return {"roles": {"global": self.global_roles, "tenant": self.tenant_roles}}
        if method == "GET" and seg == ["permissions"]:
            rows = []
            for (role, domain), perms in self.role_permissions.items():
                rows.extend([role, domain, obj, act] for obj, act in perms)
            return {"permissions": rows}
        if method == "POST" and seg == ["users", "roles"]:
            return [{"userId": uid, "roles": self.user_roles.get(uid, [])} for uid in body["userIds"]]
        if seg[:1] == ["users"] and len(seg) >= 3 and seg[2] == "roles":
            user_id = seg[1]
            if method == "GET" and len(seg) == 3:
                return {"userId": user_id, "roles": self.user_roles.get(user_id, [])}
            if method == "POST" and len(seg) == 3:
                self.user_roles.setdefault(user_id, []).append(body["role"])
                return {"message": "ok"}
            if method == "DELETE" and len(seg) == 4:
                self.user_roles[user_id] = [r for r in self.user_roles.get(user_id, []) if r != seg[3]]
                return None
        if method == "POST" and seg[:2] == ["roles", "permissions"] and len(seg) == 3:
            perms = self.role_permissions.setdefault((body["role"], seg[2]), [])
            perms.extend(list(p) for p in body["permissions"] if list(p) not in perms)
            return {"message": "ok"}
        if seg[:1] == ["roles"] and len(seg) == 4 and seg[2] == "permissions" and method == "GET":
            return {"role": seg[1], "permissions": self.role_permissions.get((seg[1], seg[3]), [])}
        if seg[:1] == ["roles"] and len(seg) == 5 and seg[2] == "permissions" and method == "DELETE":
            for (role, _), perms in self.role_permissions.items():
                if role == seg[1]:
                    perms[:] = [p for p in perms if p != [seg[3], seg[4]]]
            return None
        if seg[:1] == ["roles"] and len(seg) == 3 and method == "DELETE":
            self.role_permissions.pop((seg[1], seg[2]), None)
            return None
        return httpx.Response(404, json={"error": "route not found"})

    def _tenant(self, method: str, tenant_id: str, seg: List[str], body: Any) -> Any:
        policies = self.tenant_policies.setdefault(tenant_id, {})
        if method == "GET" and seg == ["roles"]:
            return {"roles": sorted(policies)}
        if method == "POST" and seg == ["roles", "permissions"]:
            perms = policies.setdefault(body["role"], [])
            for p in body["permissions"]:
                if [p["object"], p["action"]] not in perms:
                    perms.append([p["object"], p["action"]])
            return {"message": "ok"}
        if seg[:1] == ["roles"] and len(seg) == 3 and seg[2] == "permissions" and method == "GET":
            if seg[1] not in policies:
                return httpx.Response(404, json={"error": f"role {seg[1]} not found"})
            return {"permissions": policies[seg[1]]}
        if seg[:1] == ["roles"] and len(seg) == 5 and method == "DELETE":
            policies[seg[1]] = [p for p in policies.get(seg[1], []) if p != [seg[3], seg[4]]]
            return None
        if seg[:1] == ["roles"] and len(seg) == 2 and method == "DELETE":
            policies.pop(seg[1], None)
            return None
        return httpx.Response(404, json={"error": "route not found"})


def make_api(fake: FakePolicyApi, token: Optional[str] = "test-token") -> PolicyApiClient:
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(fake.handler))
    return PolicyApiClient(token=token, client=client)


@pytest.fixture
def fake_api() -> FakePolicyApi:
    return FakePolicyApi()


@pytest.fixture
async def policy_api(fake_api):
    api = make_api(fake_api)
    yield api
    await api.client.aclose()


@pytest.fixture
def rbac(policy_api) -> RbacStateManager:
    return RbacStateManager(RbacService(policy_api), UserService(policy_api))


@pytest.fixture
def tenant_rbac(policy_api) -> TenantRbacStateManager:
    return TenantRbacStateManager(TenantRbacService(policy_api))
