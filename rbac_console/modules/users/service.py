from typing import Any, Dict, List, Optional

from rbac_console.api.policy_client import PolicyApiClient
from rbac_console.config.settings import settings
from rbac_console.core.errors import ValidationError
from rbac_console.modules.users.schemas import PaginatedUsers, UserOutput


class UserService:
    def __init__(self, api: PolicyApiClient):
        self.api = api

    async def search_users(
        self,
        query: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> PaginatedUsers:
        """Fetch one page of users from the user search endpoint"""
        if (limit is not None and limit <= 0) or offset < 0:
            raise ValidationError("limit must be positive and offset cannot be negative")
        params: Dict[str, Any] = {"limit": limit or settings.users_page_size, "offset": offset}
        if query:
            params["q"] = query
        data = await self.api.get(settings.users_search_path, params=params)
        if isinstance(data, list):
            # Some deployments answer with a bare list instead of the paginated envelope
            return PaginatedUsers(users=data, total=len(data))
        return PaginatedUsers.model_validate(data or {})


def filter_users(users: List[UserOutput], query: str) -> List[UserOutput]:
    """Case-insensitive match of query against "first last" and email"""
    needle = (query or "").lower()
    return [
        user for user in users
        if needle in user.full_name.lower() or needle in (user.email or "").lower()
    ]
