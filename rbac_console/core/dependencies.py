"""
Core dependencies for resolving the caller's console session
"""

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from rbac_console.core.sessions import ConsoleSession, SessionRegistry, session_registry
from rbac_console.modules.rbac.state import RbacStateManager
from rbac_console.modules.tenant_rbac.state import TenantRbacStateManager

security = HTTPBearer()


async def get_session_registry() -> SessionRegistry:
    return session_registry


async def get_console_session(
    credentials: HTTPAuthorizationCredentials = Security(security),
    registry: SessionRegistry = Depends(get_session_registry)
) -> ConsoleSession:
    """Session bound to the caller's bearer token; the token is forwarded to the policy API"""
    token = (credentials.credentials or "").strip()
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token"
        )
    return registry.get(token)


async def get_rbac_state(session: ConsoleSession = Depends(get_console_session)) -> RbacStateManager:
    return session.rbac


async def get_tenant_rbac_state(session: ConsoleSession = Depends(get_console_session)) -> TenantRbacStateManager:
    return session.tenant_rbac
