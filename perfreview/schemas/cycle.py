import enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from perfreview.schemas.common import UtcDatetime


class CycleType(str, enum.Enum):
    QUARTERLY = "quarterly"
    ANNUAL = "annual"
    CUSTOM = "custom"


class CycleStatus(str, enum.Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class ReviewCycle(BaseModel):
    """A named, time-boxed review period with a self and a peer deadline."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    type: CycleType = CycleType.QUARTERLY
    self_review_due: UtcDatetime
    peer_review_due: UtcDatetime
    status: CycleStatus = CycleStatus.ACTIVE
    created_at: Optional[UtcDatetime] = None
    updated_at: Optional[UtcDatetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == CycleStatus.ACTIVE

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "ReviewCycle":
        # Cycles written before the status field existed are active
        payload = dict(data)
        if not payload.get("status"):
            payload["status"] = CycleStatus.ACTIVE
        return cls.model_validate(payload)
