# In-memory model of the console's RBAC cache.
# The remote policy store owns every entity; nothing here is persisted.

"""
Policy store layout (Casbin style, as seen through the admin API):

p, <role>, <domain>, <object>, <action>   - permission policy
g, <user_id>, <role>, <domain>            - user role assignment

domain is "global" for system-wide roles and "tenant" for roles that live
inside a tenant. A role exists as long as it has at least one p-line.
"""

from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Optional

from rbac_console.common.permissions import Permission
from rbac_console.modules.users.schemas import UserOutput

GLOBAL_DOMAIN = "global"
TENANT_DOMAIN = "tenant"


class Role(NamedTuple):
    name: str
    domain: str = GLOBAL_DOMAIN


@dataclass
class RbacState:
    roles: List[Role] = field(default_factory=list)
    users: List[UserOutput] = field(default_factory=list)
    user_roles_map: Dict[str, List[str]] = field(default_factory=dict)
    role_permissions_map: Dict[Role, List[Permission]] = field(default_factory=dict)
    permissions: List[List[str]] = field(default_factory=list)
    error: Optional[str] = None
    create_role_error: Optional[str] = None
    selected_user: Optional[UserOutput] = None
    selected_role: Optional[Role] = None
    is_user_roles_modal_open: bool = False
    is_role_perms_modal_open: bool = False
    is_create_role_modal_open: bool = False
    new_perm_object: str = ""
    new_perm_action: str = ""
    search_query: str = ""

