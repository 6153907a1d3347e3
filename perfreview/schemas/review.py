"""
Review document schemas.

Dimensions are nested models in Python and flattened into
``<dimension>Text`` / ``<dimension>Score`` keys in stored documents.
Peer feedback is keyed by reviewer id in memory and becomes an ordered
list only when serialized.
"""
import enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, StrictInt
from pydantic.alias_generators import to_camel

from perfreview.schemas.common import UtcDatetime


class Dimension(str, enum.Enum):
    AUTONOMY = "autonomy"
    MASTERY = "mastery"
    PURPOSE = "purpose"


class StoredStatus(str, enum.Enum):
    """Status string persisted on the review document (not the derived status)."""
    SUBMITTED = "submitted"
    COMPLETED = "completed"


def _dimension_keys() -> List[str]:
    return [f"{d.value}{suffix}" for d in Dimension for suffix in ("Text", "Score")]


class DimensionEntry(BaseModel):
    text: str = ""
    # Strict: True or "4" must not pass as a score
    score: Optional[StrictInt] = None


class DimensionScores(BaseModel):
    autonomy: DimensionEntry
    mastery: DimensionEntry
    purpose: DimensionEntry

    def get(self, dimension) -> DimensionEntry:
        return getattr(self, Dimension(dimension).value)

    def to_fields(self) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}
        for dimension in Dimension:
            entry = self.get(dimension)
            fields[f"{dimension.value}Text"] = entry.text
            fields[f"{dimension.value}Score"] = entry.score
        return fields

    @classmethod
    def from_fields(cls, data: Dict[str, Any]) -> Optional["DimensionScores"]:
        if not any(key in data for key in _dimension_keys()):
            return None
        return cls(**{
            d.value: DimensionEntry(
                text=data.get(f"{d.value}Text") or "",
                score=data.get(f"{d.value}Score"),
            )
            for d in Dimension
        })


class _FlattenedModel(BaseModel):
    """Base for documents carrying a flattened ``scores`` block."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    scores: DimensionScores

    def to_document(self) -> Dict[str, Any]:
        doc = self.model_dump(mode="json", by_alias=True, exclude={"scores"})
        doc.update(self.scores.to_fields())
        return doc

    @classmethod
    def from_document(cls, data: Dict[str, Any]):
        payload = {k: v for k, v in data.items() if k not in _dimension_keys()}
        payload["scores"] = DimensionScores.from_fields(data)
        return cls.model_validate(payload)


class PeerFeedback(_FlattenedModel):
    reviewer_id: str
    reviewer_name: Optional[str] = None
    reviewer_email: Optional[str] = None
    submitted_at: UtcDatetime


class ManagerFeedback(_FlattenedModel):
    manager_id: str
    manager_name: Optional[str] = None
    summary_feedback: str = ""
    submitted_at: UtcDatetime


class Review(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    user_id: str
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    cycle_id: str
    cycle_name: Optional[str] = None
    self_assessment: Optional[DimensionScores] = None
    peer_reviewers: List[str] = Field(default_factory=list)
    peer_feedback: Dict[str, PeerFeedback] = Field(default_factory=dict)
    manager_feedback: Optional[ManagerFeedback] = None
    status: StoredStatus = StoredStatus.SUBMITTED
    created_at: Optional[UtcDatetime] = None
    updated_at: Optional[UtcDatetime] = None

    @staticmethod
    def make_id(cycle_id: str, user_id: str) -> str:
        return f"{cycle_id}_{user_id}"

    @property
    def feedback_entries(self) -> List[PeerFeedback]:
        return list(self.peer_feedback.values())

    def has_feedback_from(self, reviewer_id: str) -> bool:
        return reviewer_id in self.peer_feedback

    def record_peer_feedback(self, feedback: PeerFeedback) -> None:
        # Dict assignment keeps the original position of an existing reviewer
        self.peer_feedback[feedback.reviewer_id] = feedback

    def to_document(self) -> Dict[str, Any]:
        doc = self.model_dump(
            mode="json",
            by_alias=True,
            exclude={"self_assessment", "peer_feedback", "manager_feedback"},
        )
        if self.self_assessment is not None:
            doc.update(self.self_assessment.to_fields())
        doc["peerFeedback"] = [entry.to_document() for entry in self.peer_feedback.values()]
        doc["managerFeedback"] = self.manager_feedback.to_document() if self.manager_feedback else None
        return doc

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "Review":
        payload = {k: v for k, v in data.items() if k not in _dimension_keys()}
        payload["selfAssessment"] = DimensionScores.from_fields(data)
        payload["peerFeedback"] = {
            entry["reviewerId"]: PeerFeedback.from_document(entry)
            for entry in (data.get("peerFeedback") or [])
        }
        manager = data.get("managerFeedback")
        payload["managerFeedback"] = ManagerFeedback.from_document(manager) if manager else None
        payload["peerReviewers"] = data.get("peerReviewers") or []
        return cls.model_validate(payload)
