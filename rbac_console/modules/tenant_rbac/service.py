from typing import List, Optional

from rbac_console.api.policy_client import PolicyApiClient, quote_segment
from rbac_console.config.settings import settings
from rbac_console.modules.rbac.schemas import PermissionInput, RolePermissionsOutput
from rbac_console.modules.tenant_rbac.schemas import RoleListTenantOutput, TenantRolePermissionInput


class TenantRbacService:
    """Tenant-scoped RBAC routes: /tenants/{tenant_id}/rbac/..."""

    def __init__(self, api: PolicyApiClient, prefix: Optional[str] = None):
        self.api = api
        self.prefix = (prefix or settings.tenants_api_prefix).rstrip("/")

    def _path(self, tenant_id: str, *segments: str) -> str:
        return "/".join([self.prefix, quote_segment(tenant_id), "rbac", *segments])

    async def get_tenant_roles(self, tenant_id: str) -> RoleListTenantOutput:
        data = await self.api.get(self._path(tenant_id, "roles"))
        if isinstance(data, list):
            return RoleListTenantOutput(roles=data)
        return RoleListTenantOutput.model_validate(data or {})

    async def get_tenant_role_permissions(self, tenant_id: str, role_name: str) -> RolePermissionsOutput:
        data = await self.api.get(self._path(tenant_id, "roles", quote_segment(role_name), "permissions"))
        result = RolePermissionsOutput.model_validate(data or {})
        # the endpoint does not always echo the role back
        if not result.role:
            result.role = role_name
        return result

    async def assign_permissions_to_tenant_role(
        self,
        tenant_id: str,
        role_name: str,
        permissions: List[PermissionInput]
    ) -> None:
        payload = TenantRolePermissionInput(role=role_name, permissions=permissions)
        await self.api.post(self._path(tenant_id, "roles", "permissions"), json=payload.model_dump())

    async def revoke_permission_from_tenant_role(
        self,
        tenant_id: str,
        role_name: str,
        obj: str,
        action: str
    ) -> None:
        await self.api.delete(
            self._path(
                tenant_id, "roles", quote_segment(role_name), "permissions",
                quote_segment(obj), quote_segment(action),
            )
        )

    async def delete_tenant_role(self, tenant_id: str, role_name: str) -> None:
        await self.api.delete(self._path(tenant_id, "roles", quote_segment(role_name)))
