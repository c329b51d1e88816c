from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, List, Optional, Tuple

from rbac_console.modules.rbac.schemas import PermissionInput


class RoleListTenantOutput(BaseModel):
    roles: List[str] = []

    @field_validator("roles", mode="before")
    @classmethod
    def none_as_empty(cls, value: Any) -> Any:
        return value or []


class TenantRolePermissionInput(BaseModel):
    role: str
    permissions: List[PermissionInput]


class CreateTenantRoleFormValues(BaseModel):
    role_name: str = Field(alias="roleName")
    subject: str
    action: str

    model_config = ConfigDict(populate_by_name=True)


class TenantRbacLoadingState(BaseModel):
    initial_roles: bool = False
    role_permissions: bool = False
    action: bool = False


class TenantRolePermissionsEntry(BaseModel):
    role: str
    permissions: List[Tuple[str, str]]


class TenantRbacSnapshot(BaseModel):
    tenant_id: Optional[str] = None
    roles: List[str]
    role_permissions: List[TenantRolePermissionsEntry]
    loading: TenantRbacLoadingState
    error: Optional[str] = None
    create_role_error: Optional[str] = None
    selected_role: Optional[str] = None
    is_role_perms_modal_open: bool = False
    is_create_role_modal_open: bool = False
    new_perm_object: str = ""
    new_perm_action: str = ""


class TenantGroupedPermissionsResponse(BaseModel):
    tenant_id: str
    role: str
    permissions: Dict[str, List[str]]
