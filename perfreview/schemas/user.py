import enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from perfreview.schemas.common import UtcDatetime


class UserRole(str, enum.Enum):
    """
    Roles as stored on the user document.

    - ADMIN: manages review cycles and user roles
    - MANAGER: writes final reviews, sees team analytics
    - TEAM: self-service (self review, peer feedback)
    """
    TEAM = "team"
    MANAGER = "manager"
    ADMIN = "admin"


class UserProfile(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    role: UserRole = UserRole.TEAM
    created_at: Optional[UtcDatetime] = None

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "UserProfile":
        return cls.model_validate(data)
