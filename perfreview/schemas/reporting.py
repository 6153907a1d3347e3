import enum
from typing import Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from perfreview.schemas.common import UtcDatetime
from perfreview.schemas.review import Dimension, Review

# A rounded score, or "N/A" when nothing was submitted
ScoreValue = Union[float, str]


class ReviewStatus(str, enum.Enum):
    SELF_ONLY = "selfOnly"
    PEER_REVIEW_IN_PROGRESS = "peerReviewInProgress"
    READY_FOR_MANAGER = "readyForManager"
    COMPLETED = "completed"


_STATUS_LABELS = {
    ReviewStatus.SELF_ONLY: "Self-Review Only",
    ReviewStatus.READY_FOR_MANAGER: "Ready for Manager",
    ReviewStatus.COMPLETED: "Completed",
}


class StatusView(BaseModel):
    status: ReviewStatus
    submitted: int = 0
    total: int = 0

    @property
    def label(self) -> str:
        if self.status == ReviewStatus.PEER_REVIEW_IN_PROGRESS:
            return f"Peer Review ({self.submitted}/{self.total})"
        return _STATUS_LABELS[self.status]

    def __str__(self) -> str:
        if self.status == ReviewStatus.PEER_REVIEW_IN_PROGRESS:
            return f"{self.status.value}({self.submitted}/{self.total})"
        return self.status.value


class AggregateScores(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    dimension: Dimension
    self_score: Union[int, str] = Field(alias="self")
    peer_average: ScoreValue = Field(alias="peerAverage")
    manager_score: Union[int, str] = Field(alias="managerScore")


class ReminderPriority(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"


class ReminderType(str, enum.Enum):
    SELF_REVIEW = "self-review"
    SELF_REVIEW_OVERDUE = "self-review-overdue"
    PEER_REVIEW = "peer-review"
    PEER_REVIEW_OVERDUE = "peer-review-overdue"


class Reminder(BaseModel):
    type: ReminderType
    message: str
    due_date: UtcDatetime
    priority: ReminderPriority
    cycle_id: Optional[str] = None
    cycle_name: Optional[str] = None
    review_id: Optional[str] = None
    user_name: Optional[str] = None


class ReviewSummary(BaseModel):
    review: Review
    status: StatusView
    cycle_name: Optional[str] = None
    scores: Dict[Dimension, AggregateScores]


class DimensionComparison(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    dimension: Dimension
    self_average: ScoreValue
    peer_average: ScoreValue
    manager_average: ScoreValue


class TeamReviewRow(BaseModel):
    review_id: str
    user_name: Optional[str] = None
    cycle_name: Optional[str] = None
    status: StatusView
    updated_at: Optional[UtcDatetime] = None


class AnalyticsReport(BaseModel):
    total_reviews: int
    overall_averages: Dict[Dimension, ScoreValue]
    dimension_comparison: List[DimensionComparison]
    completion: Dict[ReviewStatus, int]
