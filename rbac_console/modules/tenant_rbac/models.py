# Tenant roles all live in the implicit "tenant" domain of one tenant, so
# the permission map is keyed by bare role name. Switching tenant throws
# the whole state away.

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from rbac_console.common.permissions import Permission


@dataclass
class TenantRbacState:
    tenant_id: Optional[str] = None
    roles: List[str] = field(default_factory=list)
    role_permissions_map: Dict[str, List[Permission]] = field(default_factory=dict)
    error: Optional[str] = None
    create_role_error: Optional[str] = None
    selected_role: Optional[str] = None
    is_role_perms_modal_open: bool = False
    is_create_role_modal_open: bool = False
    new_perm_object: str = ""
    new_perm_action: str = ""
