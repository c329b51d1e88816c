from fastapi import APIRouter, Depends, Query
from rbac_console.core.dependencies import get_rbac_state
from rbac_console.modules.rbac.models import Role
from rbac_console.modules.rbac.schemas import (
    CreateRoleFormValues, DomainName, GroupedPermissionsResponse, InputFieldsUpdate,
    PermissionInput, PermissionListOutput, RbacSnapshot, RoleSchema, UserIdsRequest, UserRoleInput,
)
from rbac_console.modules.rbac.state import RbacStateManager
from rbac_console.modules.users.schemas import PaginatedUsers, UserOutput
from typing import List, Optional

# Role names, objects and actions may contain "/", so they travel as query
# parameters rather than path segments.
router = APIRouter(prefix="/rbac", tags=["rbac"])


@router.get("/state", response_model=RbacSnapshot)
async def get_state(rbac: RbacStateManager = Depends(get_rbac_state)):
    """Current console state"""
    return rbac.snapshot()


@router.post("/load", response_model=RbacSnapshot)
async def load_initial(rbac: RbacStateManager = Depends(get_rbac_state)):
    """Fetch all roles and the first page of users"""
    await rbac.load_initial()
    return rbac.snapshot()


# User role endpoints
@router.post("/users/roles/fetch", response_model=RbacSnapshot)
async def fetch_roles_for_users(
    body: UserIdsRequest,
    rbac: RbacStateManager = Depends(get_rbac_state)
):
    await rbac.fetch_roles_for_users(body.user_ids)
    return rbac.snapshot()


@router.get("/users", response_model=List[UserOutput])
async def list_users(
    q: Optional[str] = None,
    rbac: RbacStateManager = Depends(get_rbac_state)
):
    """Loaded users, filtered by name or email"""
    if q is not None:
        rbac.set_search_query(q)
    return rbac.filtered_users()


@router.get("/users/search", response_model=PaginatedUsers)
async def search_users(
    q: Optional[str] = None,
    limit: Optional[int] = None,
    offset: int = 0,
    rbac: RbacStateManager = Depends(get_rbac_state)
):
    """Server-side user search; policy API failures surface as HTTP errors"""
    return await rbac.user_service.search_users(q, limit=limit, offset=offset)


@router.get("/users/{user_id}/roles", response_model=RbacSnapshot)
async def get_user_roles(
    user_id: str,
    refresh: bool = False,
    rbac: RbacStateManager = Depends(get_rbac_state)
):
    if refresh:
        rbac.invalidate_user_roles(user_id)
    await rbac.fetch_user_roles(user_id)
    return rbac.snapshot()


@router.post("/users/{user_id}/roles", response_model=RbacSnapshot)
async def add_role_to_user(
    user_id: str,
    body: UserRoleInput,
    rbac: RbacStateManager = Depends(get_rbac_state)
):
    await rbac.add_role_to_user(user_id, body.role)
    return rbac.snapshot()


@router.delete("/users/{user_id}/roles", response_model=RbacSnapshot)
async def remove_role_from_user(
    user_id: str,
    role: str,
    rbac: RbacStateManager = Depends(get_rbac_state)
):
    await rbac.remove_role_from_user(user_id, role)
    return rbac.snapshot()


# Role endpoints
@router.post("/roles", response_model=RbacSnapshot)
async def create_role(
    body: CreateRoleFormValues,
    rbac: RbacStateManager = Depends(get_rbac_state)
):
    """Create a role together with its first permission"""
    await rbac.create_role(body)
    return rbac.snapshot()


@router.delete("/roles/{domain}", response_model=RbacSnapshot)
async def delete_role(
    domain: DomainName,
    role: str,
    rbac: RbacStateManager = Depends(get_rbac_state)
):
    await rbac.delete_role(Role(role, domain))
    return rbac.snapshot()


@router.get("/roles/{domain}/permissions", response_model=GroupedPermissionsResponse)
async def get_role_permissions(
    domain: DomainName,
    role: str,
    refresh: bool = False,
    rbac: RbacStateManager = Depends(get_rbac_state)
):
    """Permissions of one role, grouped by object"""
    target = Role(role, domain)
    if refresh:
        rbac.invalidate_role_permissions(target)
    await rbac.fetch_role_permissions(target)
    return GroupedPermissionsResponse(
        role=RoleSchema(name=role, domain=domain),
        permissions=rbac.grouped_permissions(target),
    )


@router.post("/roles/{domain}/permissions", response_model=RbacSnapshot)
async def add_permission_to_role(
    domain: DomainName,
    role: str,
    body: PermissionInput,
    rbac: RbacStateManager = Depends(get_rbac_state)
):
    await rbac.add_permission_to_role(Role(role, domain), body.object, body.action)
    return rbac.snapshot()


@router.delete("/roles/{domain}/permissions", response_model=RbacSnapshot)
async def remove_permission_from_role(
    domain: DomainName,
    role: str,
    action: str,
    obj: str = Query(alias="object"),
    rbac: RbacStateManager = Depends(get_rbac_state)
):
    await rbac.remove_permission_from_role(Role(role, domain), obj, action)
    return rbac.snapshot()


@router.get("/permissions", response_model=PermissionListOutput)
async def list_permissions(rbac: RbacStateManager = Depends(get_rbac_state)):
    """Flat policy list"""
    await rbac.fetch_all_permissions()
    return PermissionListOutput(permissions=rbac.permissions)


# Modal and input endpoints
@router.post("/modals/user-roles/{user_id}", response_model=RbacSnapshot)
async def open_user_roles_modal(
    user_id: str,
    rbac: RbacStateManager = Depends(get_rbac_state)
):
    user = next((u for u in rbac.users if u.id == user_id), None) or UserOutput(id=user_id)
    await rbac.open_user_roles_modal(user)
    return rbac.snapshot()


@router.delete("/modals/user-roles", response_model=RbacSnapshot)
async def close_user_roles_modal(rbac: RbacStateManager = Depends(get_rbac_state)):
    rbac.close_user_roles_modal()
    return rbac.snapshot()


@router.post("/modals/role-permissions/{domain}", response_model=RbacSnapshot)
async def open_role_perms_modal(
    domain: DomainName,
    role: str,
    rbac: RbacStateManager = Depends(get_rbac_state)
):
    await rbac.open_role_perms_modal(Role(role, domain))
    return rbac.snapshot()


@router.delete("/modals/role-permissions", response_model=RbacSnapshot)
async def close_role_perms_modal(rbac: RbacStateManager = Depends(get_rbac_state)):
    rbac.close_role_perms_modal()
    return rbac.snapshot()


@router.post("/modals/create-role", response_model=RbacSnapshot)
async def open_create_role_modal(rbac: RbacStateManager = Depends(get_rbac_state)):
    rbac.open_create_role_modal()
    return rbac.snapshot()


@router.delete("/modals/create-role", response_model=RbacSnapshot)
async def close_create_role_modal(rbac: RbacStateManager = Depends(get_rbac_state)):
    rbac.close_create_role_modal()
    return rbac.snapshot()


@router.delete("/errors", response_model=RbacSnapshot)
async def clear_errors(rbac: RbacStateManager = Depends(get_rbac_state)):
    rbac.clear_modal_errors()
    return rbac.snapshot()


@router.patch("/inputs", response_model=RbacSnapshot)
async def update_inputs(
    body: InputFieldsUpdate,
    rbac: RbacStateManager = Depends(get_rbac_state)
):
    """Update the new-permission inputs and the user search query"""
    if body.new_perm_object is not None:
        rbac.set_new_perm_object(body.new_perm_object)
    if body.new_perm_action is not None:
        rbac.set_new_perm_action(body.new_perm_action)
    if body.search_query is not None:
        rbac.set_search_query(body.search_query)
    return rbac.snapshot()
