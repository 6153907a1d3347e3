"""
Review analytics for managers and admins.

Fleet-wide numbers use the same averaging as a single review summary:
self, peer and manager scores are pooled independently across all
reviews (never averaged per review first).
"""
from typing import Dict, Iterable, List, Optional

from perfreview.schemas.reporting import (
    AnalyticsReport,
    DimensionComparison,
    ReviewStatus,
    ScoreValue,
    TeamReviewRow,
)
from perfreview.schemas.review import Dimension, Review
from perfreview.schemas.user import UserRole
from perfreview.services.base import BaseService
from perfreview.services.scoring import average, derive_status
from perfreview.store import REVIEWS


def _self_scores(reviews: List[Review], dimension: Dimension) -> List[Optional[int]]:
    return [r.self_assessment.get(dimension).score for r in reviews if r.self_assessment]


def _peer_scores(reviews: List[Review], dimension: Dimension) -> List[Optional[int]]:
    return [fb.scores.get(dimension).score for r in reviews for fb in r.feedback_entries]


def _manager_scores(reviews: List[Review], dimension: Dimension) -> List[Optional[int]]:
    return [r.manager_feedback.scores.get(dimension).score for r in reviews if r.manager_feedback]


def dimension_comparison(reviews: Iterable[Review]) -> List[DimensionComparison]:
    reviews = list(reviews)
    return [
        DimensionComparison(
            dimension=dimension,
            self_average=average(_self_scores(reviews, dimension)),
            peer_average=average(_peer_scores(reviews, dimension)),
            manager_average=average(_manager_scores(reviews, dimension)),
        )
        for dimension in Dimension
    ]


def overall_dimension_averages(reviews: Iterable[Review]) -> Dict[Dimension, ScoreValue]:
    """One pooled mean per dimension over every self, peer and manager score."""
    reviews = list(reviews)
    return {
        dimension: average(
            _self_scores(reviews, dimension)
            + _peer_scores(reviews, dimension)
            + _manager_scores(reviews, dimension)
        )
        for dimension in Dimension
    }


def completion_breakdown(reviews: Iterable[Review]) -> Dict[ReviewStatus, int]:
    counts = {status: 0 for status in ReviewStatus}
    for review in reviews:
        counts[derive_status(review).status] += 1
    return counts


def team_overview(reviews: Iterable[Review]) -> List[TeamReviewRow]:
    rows = [
        TeamReviewRow(
            review_id=r.id,
            user_name=r.user_name,
            cycle_name=r.cycle_name,
            status=derive_status(r),
            updated_at=r.updated_at,
        )
        for r in reviews
    ]
    with_time = sorted((row for row in rows if row.updated_at), key=lambda row: row.updated_at, reverse=True)
    return with_time + [row for row in rows if not row.updated_at]


class AnalyticsService(BaseService):
    """Role-checked entry points over the reviews collection."""

    def _load_reviews(self, cycle_id: Optional[str] = None) -> List[Review]:
        filters = [("cycleId", "==", cycle_id)] if cycle_id else None
        docs = self.store.query(REVIEWS, filters=filters, order_by=[("createdAt", "desc")])
        return [Review.from_document(d) for d in docs]

    def dashboard(self, cycle_id: Optional[str] = None) -> AnalyticsReport:
        user = self.require_role(UserRole.MANAGER, UserRole.ADMIN)
        reviews = self._load_reviews(cycle_id)
        self.log_info(f"Analytics over {len(reviews)} reviews requested by {user.id}")
        return AnalyticsReport(
            total_reviews=len(reviews),
            overall_averages=overall_dimension_averages(reviews),
            dimension_comparison=dimension_comparison(reviews),
            completion=completion_breakdown(reviews),
        )

    def team_reviews(self, cycle_id: Optional[str] = None) -> List[TeamReviewRow]:
        self.require_role(UserRole.MANAGER, UserRole.ADMIN)
        return team_overview(self._load_reviews(cycle_id))
