"""
Global RBAC state manager.

Holds the console's view of roles, users, user -> roles and role ->
permissions for the global policy namespace. Maps are filled lazily (the
first time a detail view asks for them) and changed only after the policy
API has confirmed a mutation. Every failure ends up as a display string in
``error`` (or ``create_role_error`` for the create-role form); nothing is
raised to the caller and nothing is retried.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from rbac_console.common.permissions import (
    Permission, group_permissions, has_permission, normalize_permissions, without_permission,
)
from rbac_console.core.errors import error_message
from rbac_console.core.state import InFlight, LoadingTracker, StateStore
from rbac_console.modules.rbac.models import GLOBAL_DOMAIN, TENANT_DOMAIN, RbacState, Role
from rbac_console.modules.rbac.schemas import (
    CreateRoleFormValues, RbacLoadingState, RbacSnapshot, RolePermissionsEntry, RoleSchema,
)
from rbac_console.modules.rbac.service import RbacService
from rbac_console.modules.users.schemas import UserOutput
from rbac_console.modules.users.service import UserService, filter_users

logger = logging.getLogger(__name__)

LOADING_CLASSES = ("initial", "user_roles", "role_permissions", "action")

RoleRef = Union[Role, str]


def _as_role(role: Optional[RoleRef], domain: Optional[str] = None) -> Optional[Role]:
    if role is None:
        return None
    if isinstance(role, Role):
        return role
    if isinstance(role, Mapping):
        return Role(role.get("name", ""), role.get("domain") or domain or GLOBAL_DOMAIN)
    if isinstance(role, str):
        return Role(role, domain or GLOBAL_DOMAIN) if role else None
    return Role(*role)


def _unique(values: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(values))


class RbacStateManager(StateStore):
    def __init__(self, service: RbacService, user_service: UserService):
        super().__init__()
        self.service = service
        self.user_service = user_service
        self._state = RbacState()
        self._loading = LoadingTracker(LOADING_CLASSES, pending=("initial",))
        self._in_flight = InFlight()

    # Read-only views

    @property
    def roles(self) -> List[Role]:
        return list(self._state.roles)

    @property
    def users(self) -> List[UserOutput]:
        return list(self._state.users)

    @property
    def user_roles_map(self) -> Dict[str, List[str]]:
        return {user_id: list(roles) for user_id, roles in self._state.user_roles_map.items()}

    @property
    def role_permissions_map(self) -> Dict[Role, List[Permission]]:
        return {role: list(perms) for role, perms in self._state.role_permissions_map.items()}

    @property
    def permissions(self) -> List[List[str]]:
        return [list(p) for p in self._state.permissions]

    @property
    def loading(self) -> RbacLoadingState:
        return RbacLoadingState(**self._loading.as_dict())

    @property
    def error(self) -> Optional[str]:
        return self._state.error

    @property
    def create_role_error(self) -> Optional[str]:
        return self._state.create_role_error

    @property
    def selected_user(self) -> Optional[UserOutput]:
        return self._state.selected_user

    @property
    def selected_role(self) -> Optional[Role]:
        return self._state.selected_role

    def _update(self, **changes: Any) -> None:
        for name, value in changes.items():
            setattr(self._state, name, value)
        self.notify()

    def _start(self, loading_class: str, **changes: Any) -> None:
        self._loading.start(loading_class)
        self._update(**changes)

    def _finish(self, loading_class: str) -> None:
        self._loading.finish(loading_class)
        self.notify()

    # Data fetching

    async def load_initial(self) -> None:
        """Fetch all roles and the first page of users in parallel"""
        self._start("initial", error=None)
        try:
            roles_res, users_res = await asyncio.gather(
                self.service.get_all_roles(),
                self.user_service.search_users(),
            )
            roles = [Role(name, GLOBAL_DOMAIN) for name in roles_res.roles.global_roles]
            roles += [Role(name, TENANT_DOMAIN) for name in roles_res.roles.tenant_roles]
            async with self.lock_for("roles"):
                self._state.roles = _unique(roles)
                self._state.users = list(users_res.users)
        except Exception as e:
            logger.error(f"Error fetching initial RBAC data: {e}")
            self._state.error = f"Failed to load initial data: {error_message(e)}"
        finally:
            self._finish("initial")

    async def fetch_all_permissions(self) -> None:
        """Fetch the flat policy list (role, domain, object, action rows)"""
        self._start("role_permissions", error=None)
        try:
            result = await self.service.get_all_permissions()
            self._state.permissions = [list(row) for row in result.permissions]
        except Exception as e:
            logger.error(f"Error fetching policy list: {e}")
            self._state.error = f"Permissions Error: {error_message(e)}"
        finally:
            self._finish("role_permissions")

    async def fetch_roles_for_users(self, user_ids: Iterable[str]) -> None:
        """Bulk-fetch role assignments and merge them into user_roles_map"""
        user_ids = [user_id for user_id in user_ids if user_id]
        if not user_ids:
            return
        self._start("user_roles", error=None)
        try:
            results = await self.service.get_roles_for_users(user_ids)
            async with self.lock_for("user_roles"):
                for item in results:
                    if item.user_id:
                        self._state.user_roles_map[item.user_id] = _unique(item.roles)
        except Exception as e:
            logger.error(f"Error fetching roles for users: {e}")
            self._state.error = f"Users Roles Error: {error_message(e)}"
        finally:
            self._finish("user_roles")

    async def fetch_user_roles(self, user_id: str) -> None:
        """Fill user_roles_map[user_id] once; later calls are no-ops until invalidated"""
        if not user_id or user_id in self._state.user_roles_map:
            return
        await self._in_flight.run(("user_roles", user_id), lambda: self._load_user_roles(user_id))

    async def _load_user_roles(self, user_id: str) -> None:
        self._start("user_roles", error=None)
        try:
            try:
                result = await self.service.get_roles_for_user(user_id)
                roles = _unique(result.roles)
            except Exception as e:
                logger.error(f"Error fetching roles for user {user_id}: {e}")
                self._state.error = f"User Roles Error: {error_message(e)}"
                # cache the miss so re-renders do not hammer a failing endpoint
                roles = []
            async with self.lock_for("user_roles"):
                self._state.user_roles_map[user_id] = roles
        finally:
            self._finish("user_roles")

    async def fetch_role_permissions(self, role: RoleRef, domain: Optional[str] = None) -> None:
        """Fill role_permissions_map[role] once; later calls are no-ops until invalidated"""
        role = _as_role(role, domain)
        if role is None or role in self._state.role_permissions_map:
            return
        await self._in_flight.run(("role_permissions", role), lambda: self._load_role_permissions(role))

    async def _load_role_permissions(self, role: Role) -> None:
        self._start("role_permissions", error=None)
        try:
            try:
                result = await self.service.get_permissions_for_role(role)
                permissions = normalize_permissions(result.permissions)
            except Exception as e:
                logger.error(f"Error fetching permissions for role {role.name} ({role.domain}): {e}")
                self._state.error = f"Role Permissions Error: {error_message(e)}"
                permissions = []
            async with self.lock_for("role_permissions"):
                self._state.role_permissions_map[role] = permissions
        finally:
            self._finish("role_permissions")

    def invalidate_user_roles(self, user_id: Optional[str] = None) -> None:
        """Drop one cached user (or all) so the next fetch hits the API again"""
        if user_id is None:
            self._state.user_roles_map.clear()
        else:
            self._state.user_roles_map.pop(user_id, None)
        self.notify()

    def invalidate_role_permissions(self, role: Optional[RoleRef] = None, domain: Optional[str] = None) -> None:
        role = _as_role(role, domain)
        if role is None:
            self._state.role_permissions_map.clear()
        else:
            self._state.role_permissions_map.pop(role, None)
        self.notify()

    # Modal management

    async def open_user_roles_modal(self, user: UserOutput) -> None:
        self._update(selected_user=user, is_user_roles_modal_open=True)
        await self.fetch_user_roles(user.id)

    def close_user_roles_modal(self) -> None:
        self._update(is_user_roles_modal_open=False, selected_user=None, error=None)

    async def open_role_perms_modal(self, role: RoleRef, domain: Optional[str] = None) -> None:
        role = _as_role(role, domain)
        if role is None:
            return
        self._update(
            selected_role=role,
            is_role_perms_modal_open=True,
            new_perm_object="",
            new_perm_action="",
        )
        await self.fetch_role_permissions(role)

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

    def set_search_query(self, value: str) -> None:
        self._update(search_query=value)

    # Actions

    async def add_role_to_user(self, user_id: Optional[str], role_name: str) -> None:
        if not user_id or not role_name:
            return
        await self._in_flight.wait(("user_roles", user_id))
        async with self.lock_for("user_roles"):
            if role_name in self._state.user_roles_map.get(user_id, []):
                return
            self._start("action", error=None)
            try:
                await self.service.add_role_for_user(user_id, role_name)
                current = self._state.user_roles_map.get(user_id, [])
                self._state.user_roles_map[user_id] = [*current, role_name]
            except Exception as e:
                logger.error(f"Error adding role {role_name} to user {user_id}: {e}")
                self._state.error = f"Failed to add role: {error_message(e)}"
            finally:
                self._finish("action")

    async def remove_role_from_user(self, user_id: Optional[str], role_name: str) -> None:
        if not user_id:
            return
        await self._in_flight.wait(("user_roles", user_id))
        async with self.lock_for("user_roles"):
            self._start("action", error=None)
            try:
                await self.service.remove_role_for_user(user_id, role_name)
                if user_id in self._state.user_roles_map:
                    current = self._state.user_roles_map[user_id]
                    self._state.user_roles_map[user_id] = [r for r in current if r != role_name]
            except Exception as e:
                logger.error(f"Error removing role {role_name} from user {user_id}: {e}")
                self._state.error = f"Failed to remove role: {error_message(e)}"
            finally:
                self._finish("action")

    async def add_permission_to_role(
        self,
        role: Optional[RoleRef],
        obj: str,
        action: str,
        domain: Optional[str] = None
    ) -> None:
        role = _as_role(role, domain)
        obj = (obj or "").strip()
        action = (action or "").strip()
        if role is None or not obj or not action:
            logger.debug("Rejected permission with empty role, object or action")
            self._update(error="Object and Action cannot be empty.")
            return
        await self._in_flight.wait(("role_permissions", role))
        async with self.lock_for("role_permissions"):
            if has_permission(self._state.role_permissions_map.get(role), obj, action):
                logger.debug(f"Permission [{obj}, {action}] already exists for role {role.name}")
                return
            self._start("action", error=None)
            try:
                await self.service.add_permission_for_role(role, obj, action)
                current = self._state.role_permissions_map.get(role, [])
                self._state.role_permissions_map[role] = [*current, (obj, action)]
                self._state.new_perm_object = ""
                self._state.new_perm_action = ""
            except Exception as e:
                logger.error(f"Error adding permission [{obj}, {action}] to role {role.name}: {e}")
                self._state.error = f"Failed to add permission: {error_message(e)}"
            finally:
                self._finish("action")

    async def remove_permission_from_role(
        self,
        role: Optional[RoleRef],
        obj: str,
        action: str,
        domain: Optional[str] = None
    ) -> None:
        role = _as_role(role, domain)
        if role is None:
            return
        await self._in_flight.wait(("role_permissions", role))
        async with self.lock_for("role_permissions"):
            self._start("action", error=None)
            try:
                await self.service.remove_permission_for_role(role.name, obj, action)
                if role in self._state.role_permissions_map:
                    current = self._state.role_permissions_map[role]
                    # the role stays listed even when its last permission goes
                    self._state.role_permissions_map[role] = without_permission(current, obj, action)
            except Exception as e:
                logger.error(f"Error removing permission [{obj}, {action}] from role {role.name}: {e}")
                self._state.error = f"Failed to remove permission: {error_message(e)}"
            finally:
                self._finish("action")

    async def create_role(self, values: Union[CreateRoleFormValues, Mapping[str, Any]]) -> None:
        """Create a role together with its first permission"""
        self._start("action", create_role_error=None, error=None)
        try:
            if not isinstance(values, CreateRoleFormValues):
                values = CreateRoleFormValues.model_validate(dict(values))
        except PydanticValidationError as e:
            logger.debug(f"Rejected create-role form: {e}")
            self._state.create_role_error = "Role name, subject, and action cannot be empty."
            self._finish("action")
            return

        role_name = values.role_name.strip()
        subject = values.subject.strip()
        action = values.action.strip()
        if not role_name or not subject or not action:
            self._state.create_role_error = "Role name, subject, and action cannot be empty."
            self._finish("action")
            return

        values = values.model_copy(update={"role_name": role_name, "subject": subject, "action": action})
        role = Role(role_name, values.domain)
        try:
            await self.service.create_role(values)
            async with self.lock_for("roles"), self.lock_for("role_permissions"):
                self._state.roles = sorted(set([*self._state.roles, role]))
                self._state.role_permissions_map[role] = [(subject, action)]
                self._state.is_create_role_modal_open = False
        except Exception as e:
            logger.error(f'Error creating role "{role_name}": {e}')
            self._state.create_role_error = f"Failed to create role: {error_message(e)}"
        finally:
            self._finish("action")

    async def delete_role(self, role: Optional[RoleRef], domain: Optional[str] = None) -> None:
        """Delete a role and, with it, its whole permission set"""
        role = _as_role(role, domain)
        if role is None:
            return
        self._start("action", error=None)
        try:
            await self.service.delete_role(role)
            async with self.lock_for("roles"), self.lock_for("role_permissions"):
                self._state.roles = [r for r in self._state.roles if r != role]
                self._state.role_permissions_map.pop(role, None)
                if self._state.selected_role == role:
                    self._state.selected_role = None
        except Exception as e:
            logger.error(f"Error deleting role {role.name} ({role.domain}): {e}")
            self._state.error = f"Failed to delete role: {error_message(e)}"
        finally:
            self._finish("action")

    # Derived state

    def grouped_permissions(self, role: Optional[RoleRef], domain: Optional[str] = None) -> Dict[str, List[str]]:
        role = _as_role(role, domain)
        if role is None:
            return {}
        return group_permissions(self._state.role_permissions_map.get(role))

    def filtered_users(self) -> List[UserOutput]:
        return filter_users(self._state.users, self._state.search_query)

    def snapshot(self) -> RbacSnapshot:
        state = self._state
        return RbacSnapshot(
            roles=[RoleSchema(name=r.name, domain=r.domain) for r in state.roles],
            users=list(state.users),
            filtered_users=self.filtered_users(),
            user_roles_map=self.user_roles_map,
            role_permissions=[
                RolePermissionsEntry(role=RoleSchema(name=r.name, domain=r.domain), permissions=list(perms))
                for r, perms in state.role_permissions_map.items()
            ],
            loading=self.loading,
            error=state.error,
            create_role_error=state.create_role_error,
            selected_user=state.selected_user,
            selected_role=(
                RoleSchema(name=state.selected_role.name, domain=state.selected_role.domain)
                if state.selected_role else None
            ),
            is_user_roles_modal_open=state.is_user_roles_modal_open,
            is_role_perms_modal_open=state.is_role_perms_modal_open,
            is_create_role_modal_open=state.is_create_role_modal_open,
            new_perm_object=state.new_perm_object,
            new_perm_action=state.new_perm_action,
            search_query=state.search_query,
        )
