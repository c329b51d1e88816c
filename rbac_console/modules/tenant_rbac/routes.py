from fastapi import APIRouter, Depends, Query
from rbac_console.core.dependencies import get_tenant_rbac_state
from rbac_console.modules.rbac.schemas import InputFieldsUpdate, PermissionInput
from rbac_console.modules.tenant_rbac.schemas import (
    CreateTenantRoleFormValues, TenantGroupedPermissionsResponse, TenantRbacSnapshot,
)
from rbac_console.modules.tenant_rbac.state import TenantRbacStateManager

# Role names, objects and actions may contain "/", so they travel as query
# parameters rather than path segments.
router = APIRouter(prefix="/tenants/{tenant_id}/rbac", tags=["tenant-rbac"])


async def get_tenant_state(
    tenant_id: str,
    tenant_rbac: TenantRbacStateManager = Depends(get_tenant_rbac_state)
) -> TenantRbacStateManager:
    """Tenant manager switched to the tenant named in the path, with its roles loaded"""
    if tenant_rbac.tenant_id != tenant_id:
        tenant_rbac.set_tenant_id(tenant_id)
        await tenant_rbac.fetch_tenant_roles()
    return tenant_rbac


@router.get("/state", response_model=TenantRbacSnapshot)
async def get_state(tenant_rbac: TenantRbacStateManager = Depends(get_tenant_state)):
    return tenant_rbac.snapshot()


@router.post("/load", response_model=TenantRbacSnapshot)
async def load_roles(tenant_rbac: TenantRbacStateManager = Depends(get_tenant_state)):
    """Refetch the tenant's role names"""
    await tenant_rbac.fetch_tenant_roles()
    return tenant_rbac.snapshot()


@router.post("/roles", response_model=TenantRbacSnapshot)
async def create_role(
    body: CreateTenantRoleFormValues,
    tenant_rbac: TenantRbacStateManager = Depends(get_tenant_state)
):
    await tenant_rbac.create_role(body.role_name, body.subject, body.action)
    return tenant_rbac.snapshot()


@router.delete("/roles", response_model=TenantRbacSnapshot)
async def delete_role(
    role: str,
    tenant_rbac: TenantRbacStateManager = Depends(get_tenant_state)
):
    await tenant_rbac.delete_role(role)
    return tenant_rbac.snapshot()


@router.get("/roles/permissions", response_model=TenantGroupedPermissionsResponse)
async def get_role_permissions(
    tenant_id: str,
    role: str,
    refresh: bool = False,
    tenant_rbac: TenantRbacStateManager = Depends(get_tenant_state)
):
    """Permissions of one tenant role, grouped by object"""
    if refresh:
        tenant_rbac.invalidate_role_permissions(role)
    await tenant_rbac.fetch_tenant_role_permissions(role)
    return TenantGroupedPermissionsResponse(
        tenant_id=tenant_id,
        role=role,
        permissions=tenant_rbac.grouped_permissions(role),
    )


@router.post("/roles/permissions", response_model=TenantRbacSnapshot)
async def add_permission_to_role(
    role: str,
    body: PermissionInput,
    tenant_rbac: TenantRbacStateManager = Depends(get_tenant_state)
):
    await tenant_rbac.add_permission_to_role(role, body.object, body.action)
    return tenant_rbac.snapshot()


@router.delete("/roles/permissions", response_model=TenantRbacSnapshot)
async def remove_permission_from_role(
    role: str,
    action: str,
    obj: str = Query(alias="object"),
    tenant_rbac: TenantRbacStateManager = Depends(get_tenant_state)
):
    await tenant_rbac.remove_permission_from_role(role, obj, action)
    return tenant_rbac.snapshot()


# Modal and input endpoints
@router.post("/modals/role-permissions", response_model=TenantRbacSnapshot)
async def open_role_perms_modal(
    role: str,
    tenant_rbac: TenantRbacStateManager = Depends(get_tenant_state)
):
    await tenant_rbac.open_role_perms_modal(role)
    return tenant_rbac.snapshot()


@router.delete("/modals/role-permissions", response_model=TenantRbacSnapshot)
async def close_role_perms_modal(tenant_rbac: TenantRbacStateManager = Depends(get_tenant_state)):
    tenant_rbac.close_role_perms_modal()
    return tenant_rbac.snapshot()


@router.post("/modals/create-role", response_model=TenantRbacSnapshot)
async def open_create_role_modal(tenant_rbac: TenantRbacStateManager = Depends(get_tenant_state)):
    tenant_rbac.open_create_role_modal()
    return tenant_rbac.snapshot()


@router.delete("/modals/create-role", response_model=TenantRbacSnapshot)
async def close_create_role_modal(tenant_rbac: TenantRbacStateManager = Depends(get_tenant_state)):
    tenant_rbac.close_create_role_modal()
    return tenant_rbac.snapshot()


@router.delete("/errors", response_model=TenantRbacSnapshot)
async def clear_errors(tenant_rbac: TenantRbacStateManager = Depends(get_tenant_state)):
    tenant_rbac.clear_modal_errors()
    return tenant_rbac.snapshot()


@router.patch("/inputs", response_model=TenantRbacSnapshot)
async def update_inputs(
    body: InputFieldsUpdate,
    tenant_rbac: TenantRbacStateManager = Depends(get_tenant_state)
):
    if body.new_perm_object is not None:
        tenant_rbac.set_new_perm_object(body.new_perm_object)
    if body.new_perm_action is not None:
        tenant_rbac.set_new_perm_action(body.new_perm_action)
    return tenant_rbac.snapshot()
