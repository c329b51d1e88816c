from pydantic import BaseModel, ConfigDict
from typing import Optional, List


class UserOutput(BaseModel):
    id: str
    email: str = ""
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    model_config = ConfigDict(extra="allow")

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}"


class PaginatedUsers(BaseModel):
    users: List[UserOutput] = []
    total: int = 0
    limit: Optional[int] = None
    offset: Optional[int] = None

    model_config = ConfigDict(extra="ignore")
