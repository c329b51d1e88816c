from typing import List, Optional

from rbac_console.api.policy_client import PolicyApiClient, quote_segment
from rbac_console.config.settings import settings
from rbac_console.modules.rbac.models import Role
from rbac_console.modules.rbac.schemas import (
    CreateRoleFormValues, CreateRoleWithPermissionInput,
    PermissionListOutput, RoleListOutput,
    RolePermissionInput, RolePermissionsOutput,
    UserIdsRequest, UserRoleInput, UserRolesOutput,
)


class RbacService:
    """Global RBAC routes of the policy API"""

    def __init__(self, api: PolicyApiClient, prefix: Optional[str] = None):
        self.api = api
        self.prefix = (prefix or settings.rbac_api_prefix).rstrip("/")

    def _path(self, *segments: str) -> str:
        return "/".join([self.prefix, *segments])

    # General RBAC info

    async def get_all_roles(self) -> RoleListOutput:
        data = await self.api.get(self._path("roles"))
        return RoleListOutput.from_api(data)

    async def get_all_permissions(self) -> PermissionListOutput:
        data = await self.api.get(self._path("permissions"))
        if isinstance(data, list):
            return PermissionListOutput(permissions=data)
        return PermissionListOutput.model_validate(data or {})

    # User role management

    async def get_roles_for_user(self, user_id: str) -> UserRolesOutput:
        data = await self.api.get(self._path("users", quote_segment(user_id), "roles"))
        result = UserRolesOutput.model_validate(data or {})
        if result.user_id is None:
            result.user_id = user_id
        return result

    async def get_roles_for_users(self, user_ids: List[str]) -> List[UserRolesOutput]:
        """Bulk variant: one request for a batch of users"""
        payload = UserIdsRequest(user_ids=user_ids).model_dump(by_alias=True)
        data = await self.api.post(self._path("users", "roles"), json=payload)
        return [UserRolesOutput.model_validate(item) for item in data or []]

    async def add_role_for_user(self, user_id: str, role_name: str) -> None:
        payload = UserRoleInput(role=role_name).model_dump()
        await self.api.post(self._path("users", quote_segment(user_id), "roles"), json=payload)

    async def remove_role_for_user(self, user_id: str, role_name: str) -> None:
        await self.api.delete(self._path("users", quote_segment(user_id), "roles", quote_segment(role_name)))

    # Role permission management

    async def get_permissions_for_role(self, role: Role) -> RolePermissionsOutput:
        data = await self.api.get(
            self._path("roles", quote_segment(role.name), "permissions", quote_segment(role.domain))
        )
        result = RolePermissionsOutput.model_validate(data or {})
        if not result.role:
            result.role = role.name
        return result

    async def add_permission_for_role(self, role: Role, obj: str, action: str) -> None:
        payload = RolePermissionInput(role=role.name, permissions=[(obj, action)])
        await self.api.post(
            self._path("roles", "permissions", quote_segment(role.domain)),
            json=payload.model_dump(mode="json"),
        )

    async def create_role(self, values: CreateRoleFormValues) -> None:
        """Create a role by assigning its first permission"""
        payload = CreateRoleWithPermissionInput(
            role=values.role_name,
            domain=values.domain,
            permissions=[(values.subject, values.action)],
        )
        await self.api.post(
            self._path("roles", "permissions", quote_segment(values.domain)),
            json=payload.model_dump(mode="json"),
        )

    async def remove_permission_for_role(self, role_name: str, obj: str, action: str) -> None:
        await self.api.delete(
            self._path(
                "roles", quote_segment(role_name), "permissions",
                quote_segment(obj), quote_segment(action),
            )
        )

    async def delete_role(self, role: Role) -> None:
        await self.api.delete(self._path("roles", quote_segment(role.name), quote_segment(role.domain)))

