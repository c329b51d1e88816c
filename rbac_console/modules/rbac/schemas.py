from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, List, Literal, Optional, Tuple

from rbac_console.modules.users.schemas import UserOutput

DomainName = Literal["global", "tenant"]


# Policy API payloads

class RoleOutput(BaseModel):
    global_roles: List[str] = Field(default_factory=list, alias="global")
    tenant_roles: List[str] = Field(default_factory=list, alias="tenant")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("global_roles", "tenant_roles", mode="before")
    @classmethod
    def none_as_empty(cls, value: Any) -> Any:
        return value or []


class RoleListOutput(BaseModel):
    roles: RoleOutput = Field(default_factory=RoleOutput)

    @classmethod
    def from_api(cls, data: Any) -> "RoleListOutput":
        """Accept both {"roles": {"global", "tenant"}} and the bare {"global", "tenant"} shape"""
        data = data or {}
        if isinstance(data, dict) and "roles" not in data and ("global" in data or "tenant" in data):
            data = {"roles": data}
        return cls.model_validate(data)


class PermissionListOutput(BaseModel):
    permissions: List[List[str]] = []


class UserRolesOutput(BaseModel):
    user_id: Optional[str] = Field(default=None, alias="userId")
    roles: List[str] = []

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("roles", mode="before")
    @classmethod
    def none_as_empty(cls, value: Any) -> Any:
        return value or []


class UserRoleInput(BaseModel):
    role: str


class RolePermissionsOutput(BaseModel):
    role: Optional[str] = None
    permissions: List[Any] = []

    @field_validator("permissions", mode="before")
    @classmethod
    def none_as_empty(cls, value: Any) -> Any:
        return value or []


class RolePermissionInput(BaseModel):
    role: str
    permissions: List[Tuple[str, str]]


class CreateRoleWithPermissionInput(BaseModel):
    domain: DomainName
    role: str
    permissions: List[Tuple[str, str]]


# Console form values

class CreateRoleFormValues(BaseModel):
    role_name: str = Field(alias="roleName")
    domain: DomainName = "global"
    subject: str
    action: str

    model_config = ConfigDict(populate_by_name=True)


class PermissionInput(BaseModel):
    object: str
    action: str


class UserIdsRequest(BaseModel):
    user_ids: List[str] = Field(alias="userIds")

    model_config = ConfigDict(populate_by_name=True)


class InputFieldsUpdate(BaseModel):
    new_perm_object: Optional[str] = None
    new_perm_action: Optional[str] = None
    search_query: Optional[str] = None


# Snapshots returned to the console UI

class RoleSchema(BaseModel):
    name: str
    domain: DomainName


class RolePermissionsEntry(BaseModel):
    role: RoleSchema
    permissions: List[Tuple[str, str]]


class RbacLoadingState(BaseModel):
    initial: bool = False
    user_roles: bool = False
    role_permissions: bool = False
    action: bool = False


class RbacSnapshot(BaseModel):
    roles: List[RoleSchema]
    users: List[UserOutput]
    filtered_users: List[UserOutput]
    user_roles_map: Dict[str, List[str]]
    role_permissions: List[RolePermissionsEntry]
    loading: RbacLoadingState
    error: Optional[str] = None
    create_role_error: Optional[str] = None
    selected_user: Optional[UserOutput] = None
    selected_role: Optional[RoleSchema] = None
    is_user_roles_modal_open: bool = False
    is_role_perms_modal_open: bool = False
    is_create_role_modal_open: bool = False
    new_perm_object: str = ""
    new_perm_action: str = ""
    search_query: str = ""


class GroupedPermissionsResponse(BaseModel):
    role: RoleSchema
    permissions: Dict[str, List[str]]
