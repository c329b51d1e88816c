"""
Tenant-scoped RBAC state manager.

Same contract as the global manager, for the roles of one tenant at a time.
Changing the tenant resets everything: roles, permissions, selection,
modals and errors. Requests started for a previous tenant may still
complete afterwards; their results are dropped instead of leaking into the
new tenant's state.
"""

import logging
from typing import Any, Dict, List, Optional

from rbac_console.common.permissions import (
    group_permissions, has_permission, normalize_permissions, without_permission,
)
from rbac_console.core.errors import error_message
from rbac_console.core.state import InFlight, LoadingTracker, StateStore
from rbac_console.modules.rbac.schemas import PermissionInput
from rbac_console.modules.tenant_rbac.models import TenantRbacState
from rbac_console.modules.tenant_rbac.schemas import (
    TenantRbacLoadingState, TenantRbacSnapshot, TenantRolePermissionsEntry,
)
from rbac_console.modules.tenant_rbac.service import TenantRbacService

logger = logging.getLogger(__name__)

LOADING_CLASSES = ("initial_roles", "role_permissions", "action")


class TenantRbacStateManager(StateStore):
    def __init__(self, service: TenantRbacService, tenant_id: Optional[str] = None):
        super().__init__()
        self.service = service
        self._generation = 0
        self._reset(tenant_id)

    def _reset(self, tenant_id: Optional[str]) -> None:
        self._generation += 1
        self._state = TenantRbacState(tenant_id=tenant_id or None)
        self._loading = LoadingTracker(LOADING_CLASSES, pending=("initial_roles",) if tenant_id else ())
        self._in_flight = InFlight()
        self._locks = {}

    def set_tenant_id(self, tenant_id: Optional[str]) -> None:
        """Switch tenant; nothing cached for the previous tenant survives"""
        self._reset(tenant_id)
        self.notify()

    # Read-only views

    @property
    def tenant_id(self) -> Optional[str]:
        return self._state.tenant_id

    @property
    def roles(self) -> List[str]:
        return list(self._state.roles)

    @property
    def role_permissions_map(self) -> Dict[str, List[tuple]]:
        return {role: list(perms) for role, perms in self._state.role_permissions_map.items()}

    @property
    def loading(self) -> TenantRbacLoadingState:
        return TenantRbacLoadingState(**self._loading.as_dict())

    @property
    def error(self) -> Optional[str]:
        return self._state.error

    @property
    def create_role_error(self) -> Optional[str]:
        return self._state.create_role_error

    @property
    def selected_role(self) -> Optional[str]:
        return self._state.selected_role

    def _update(self, **changes: Any) -> None:
        for name, value in changes.items():
            setattr(self._state, name, value)
        self.notify()

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    # Data fetching

    async def fetch_tenant_roles(self, tenant_id: Optional[str] = None) -> None:
        """Load the tenant's role names; passing another tenant id switches tenant first"""
        if tenant_id is not None and tenant_id != self._state.tenant_id:
            self.set_tenant_id(tenant_id)
        tenant_id = self._state.tenant_id
        generation, loading = self._generation, self._loading
        if not tenant_id:
            loading.clear("initial_roles")
            self._update(roles=[])
            return

        loading.start("initial_roles")
        self._update(error=None)
        try:
            result = await self.service.get_tenant_roles(tenant_id)
            if self._is_current(generation):
                self._state.roles = list(dict.fromkeys(result.roles))
                # permissions are refetched lazily for the new role list
                self._state.role_permissions_map = {}
        except Exception as e:
            logger.error(f"Error fetching roles for tenant {tenant_id}: {e}")
            if self._is_current(generation):
                self._state.error = f"Failed to load tenant roles: {error_message(e)}"
                self._state.roles = []
        finally:
            loading.finish("initial_roles")
            self.notify()

    async def fetch_tenant_role_permissions(self, role_name: str) -> None:
        """Fill role_permissions_map[role_name] once for the current tenant"""
        tenant_id = self._state.tenant_id
        if not tenant_id or not role_name or role_name in self._state.role_permissions_map:
            return
        generation = self._generation
        await self._in_flight.run(
            ("role_permissions", role_name),
            lambda: self._load_role_permissions(generation, tenant_id, role_name),
        )

    async def _load_role_permissions(self, generation: int, tenant_id: str, role_name: str) -> None:
        loading = self._loading
        loading.start("role_permissions")
        self._update(error=None)
        try:
            try:
                result = await self.service.get_tenant_role_permissions(tenant_id, role_name)
                permissions = normalize_permissions(result.permissions)
            except Exception as e:
                logger.error(f"Error fetching permissions for role {role_name} in tenant {tenant_id}: {e}")
                if self._is_current(generation):
                    self._state.error = f"Role Permissions Error: {error_message(e)}"
                permissions = []
            if self._is_current(generation):
                async with self.lock_for("role_permissions"):
                    self._state.role_permissions_map[role_name] = permissions
        finally:
            loading.finish("role_permissions")
            self.notify()

    def invalidate_role_permissions(self, role_name: Optional[str] = None) -> None:
        if role_name is None:
            self._state.role_permissions_map.clear()
        else:
            self._state.role_permissions_map.pop(role_name, None)
        self.notify()

    # Modal management

    async def open_role_perms_modal(self, role_name: str) -> None:
        if not self._state.tenant_id or not role_name:
            return
        self._update(
            selected_role=role_name,
            is_role_perms_modal_open=True,
            new_perm_object="",
            new_perm_action="",
        )
        await self.fetch_tenant_role_permissions(role_name)

    def close_role_perms_modal(self) -> None:
        self._update(is_role_perms_modal_open=False, selected_role=None, error=None)

    def open_create_role_modal(self) -> None:
        self._update(is_create_role_modal_open=True, create_role_error=None)

    def close_create_role_modal(self) -> None:
        self._update(is_create_role_modal_open=False, create_role_error=None)

    def clear_modal_errors(self) -> None:
        self._update(error=None, create_role_error=None)

    def set_error(self, error: Optional[str]) -> None:
        self._update(error=error)

    def set_new_perm_object(self, value: str) -> None:
        self._update(new_perm_object=value)

    def set_new_perm_action(self, value: str) -> None:
        self._update(new_perm_action=value)

    # Actions

    async def add_permission_to_role(self, role_name: Optional[str], obj: str, action: str) -> None:
        tenant_id = self._state.tenant_id
        obj = (obj or "").strip()
        action = (action or "").strip()
        if not tenant_id or not role_name or not obj or not action:
            logger.debug("Rejected tenant permission with empty tenant, role, object or action")
            self._update(error="Tenant ID, Role, Object, and Action cannot be empty.")
            return
        generation, loading = self._generation, self._loading
        await self._in_flight.wait(("role_permissions", role_name))
        async with self.lock_for("role_permissions"):
            if has_permission(self._state.role_permissions_map.get(role_name), obj, action):
                return
            loading.start("action")
            self._update(error=None)
            try:
                await self.service.assign_permissions_to_tenant_role(
                    tenant_id, role_name, [PermissionInput(object=obj, action=action)]
                )
                if self._is_current(generation):
                    current = self._state.role_permissions_map.get(role_name, [])
                    if not has_permission(current, obj, action):
                        current = [*current, (obj, action)]
                    self._state.role_permissions_map[role_name] = current
                    self._state.new_perm_object = ""
                    self._state.new_perm_action = ""
            except Exception as e:
                logger.error(f"Error adding permission [{obj}, {action}] to role {role_name} in tenant {tenant_id}: {e}")
                if self._is_current(generation):
                    self._state.error = f"Failed to add permission: {error_message(e)}"
            finally:
                loading.finish("action")
                self.notify()

    async def remove_permission_from_role(self, role_name: Optional[str], obj: str, action: str) -> None:
        tenant_id = self._state.tenant_id
        if not tenant_id or not role_name:
            return
        generation, loading = self._generation, self._loading
        await self._in_flight.wait(("role_permissions", role_name))
        async with self.lock_for("role_permissions"):
            loading.start("action")
            self._update(error=None)
            try:
                await self.service.revoke_permission_from_tenant_role(tenant_id, role_name, obj, action)
                if self._is_current(generation) and role_name in self._state.role_permissions_map:
                    current = self._state.role_permissions_map[role_name]
                    self._state.role_permissions_map[role_name] = without_permission(current, obj, action)
            except Exception as e:
                logger.error(f"Error removing permission [{obj}, {action}] from role {role_name} in tenant {tenant_id}: {e}")
                if self._is_current(generation):
                    self._state.error = f"Failed to remove permission: {error_message(e)}"
            finally:
                loading.finish("action")
                self.notify()

    async def create_role(self, role_name: str, obj: str, action: str) -> None:
        """Create a tenant role by assigning its first permission"""
        tenant_id = self._state.tenant_id
        if not tenant_id:
            self._update(create_role_error="Tenant ID is not set.")
            return
        role_name = (role_name or "").strip()
        obj = (obj or "").strip()
        action = (action or "").strip()
        if not role_name or not obj or not action:
            self._update(create_role_error="Role name, permission object, and action are required.")
            return

        generation, loading = self._generation, self._loading
        loading.start("action")
        self._update(create_role_error=None, error=None)
        try:
            await self.service.assign_permissions_to_tenant_role(
                tenant_id, role_name, [PermissionInput(object=obj, action=action)]
            )
            if self._is_current(generation):
                async with self.lock_for("roles"), self.lock_for("role_permissions"):
                    self._state.roles = sorted(set([*self._state.roles, role_name]))
                    self._state.role_permissions_map[role_name] = [(obj, action)]
                    self._state.is_create_role_modal_open = False
        except Exception as e:
            logger.error(f'Error creating role "{role_name}" in tenant {tenant_id}: {e}')
            if self._is_current(generation):
                self._state.create_role_error = f"Failed to create role: {error_message(e)}"
        finally:
            loading.finish("action")
            self.notify()

    async def delete_role(self, role_name: str) -> None:
        tenant_id = self._state.tenant_id
        if not tenant_id or not role_name:
            return
        generation, loading = self._generation, self._loading
        loading.start("action")
        self._update(error=None)
        try:
            await self.service.delete_tenant_role(tenant_id, role_name)
            if self._is_current(generation):
                async with self.lock_for("roles"), self.lock_for("role_permissions"):
                    self._state.roles = [r for r in self._state.roles if r != role_name]
                    self._state.role_permissions_map.pop(role_name, None)
                    if self._state.selected_role == role_name:
                        self._state.selected_role = None
        except Exception as e:
            logger.error(f"Error deleting role {role_name} in tenant {tenant_id}: {e}")
            if self._is_current(generation):
                self._state.error = f"Failed to delete role: {error_message(e)}"
        finally:
            loading.finish("action")
            self.notify()

    # Derived state

    def grouped_permissions(self, role_name: Optional[str]) -> Dict[str, List[str]]:
        if not role_name:
            return {}
        return group_permissions(self._state.role_permissions_map.get(role_name))

    def snapshot(self) -> TenantRbacSnapshot:
        state = self._state
        return TenantRbacSnapshot(
            tenant_id=state.tenant_id,
            roles=list(state.roles),
            role_permissions=[
                TenantRolePermissionsEntry(role=role, permissions=list(perms))
                for role, perms in state.role_permissions_map.items()
            ],
            loading=self.loading,
            error=state.error,
            create_role_error=state.create_role_error,
            selected_role=state.selected_role,
            is_role_perms_modal_open=state.is_role_perms_modal_open,
            is_create_role_modal_open=state.is_create_role_modal_open,
            new_perm_object=state.new_perm_object,
            new_perm_action=state.new_perm_action,
        )
