"""
Console sessions: one set of RBAC state managers per bearer token
"""

import hashlib
import logging
import time
from typing import Callable, Dict, Optional

from rbac_console.api.policy_client import PolicyApiClient, get_policy_api
from rbac_console.config.settings import settings
from rbac_console.modules.rbac.service import RbacService
from rbac_console.modules.rbac.state import RbacStateManager
from rbac_console.modules.tenant_rbac.service import TenantRbacService
from rbac_console.modules.tenant_rbac.state import TenantRbacStateManager
from rbac_console.modules.users.service import UserService

logger = logging.getLogger(__name__)


class ConsoleSession:
    def __init__(self, api: PolicyApiClient):
        self.api = api
        self.rbac = RbacStateManager(RbacService(api), UserService(api))
        self.tenant_rbac = TenantRbacStateManager(TenantRbacService(api))
        self.last_seen = time.monotonic()

    def touch(self) -> None:
        self.last_seen = time.monotonic()


class SessionRegistry:
    """In-memory sessions keyed by token hash, expired after an idle TTL"""

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        max_count: Optional[int] = None,
        api_factory: Callable[[str], PolicyApiClient] = get_policy_api
    ):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.session_ttl_seconds
        self.max_count = max_count if max_count is not None else settings.session_max_count
        self.api_factory = api_factory
        self._sessions: Dict[str, ConsoleSession] = {}

    @staticmethod
    def key_for(token: str) -> str:
        return hashlib.sha256(token.encode()).hexdigest()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, token: str) -> bool:
        return self.key_for(token) in self._sessions

    def _expire(self, now: float) -> None:
        expired = [key for key, s in self._sessions.items() if now - s.last_seen >= self.ttl_seconds]
        for key in expired:
            del self._sessions[key]
        if expired:
            logger.info(f"Expired {len(expired)} idle console session(s)")

    def get(self, token: str) -> ConsoleSession:
        """Return the session for this token, creating it on first use"""
        now = time.monotonic()
        self._expire(now)
        key = self.key_for(token)
        session = self._sessions.get(key)
        if session is None:
            while self._sessions and len(self._sessions) >= self.max_count:
                oldest = min(self._sessions, key=lambda k: self._sessions[k].last_seen)
                del self._sessions[oldest]
                logger.info("Session limit reached, evicted the least recently used session")
            session = ConsoleSession(self.api_factory(token))
            self._sessions[key] = session
        session.touch()
        return session

    def drop(self, token: str) -> bool:
        return self._sessions.pop(self.key_for(token), None) is not None

    def clear(self) -> None:
        self._sessions.clear()


session_registry = SessionRegistry()
