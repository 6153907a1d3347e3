"""
Review status and score aggregation rules.

Everything here is a pure function of its arguments. `derive_status` is the
only definition of a review's status; list views, detail views and
analytics all go through it.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, Optional, Union

from perfreview.core.config import ReviewRules, settings
from perfreview.core.exceptions import ValidationError
from perfreview.schemas.common import NOT_AVAILABLE
from perfreview.schemas.reporting import AggregateScores, ReviewStatus, ScoreValue, StatusView
from perfreview.schemas.review import Dimension, DimensionScores, Review


def round_score(value: float) -> float:
    """Round to one decimal, halves away from zero (2.25 -> 2.3)."""
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def average(scores: Iterable[Optional[int]]) -> ScoreValue:
    values = [s for s in scores if s is not None]
    if not values:
        return NOT_AVAILABLE
    return round_score(sum(values) / len(values))


def validate_scores(scores: DimensionScores, rules: Optional[ReviewRules] = None) -> DimensionScores:
    rules = rules or settings.reviews
    errors = []
    for dimension in Dimension:
        entry = scores.get(dimension)
        if entry.score is None or not (rules.min_score <= entry.score <= rules.max_score):
            errors.append({
                "field": f"{dimension.value}Score",
                "msg": f"Score must be an integer between {rules.min_score} and {rules.max_score}"
            })
        if len(entry.text) > rules.text_limit:
            errors.append({
                "field": f"{dimension.value}Text",
                "msg": f"Text exceeds {rules.text_limit} characters"
            })
    if errors:
        raise ValidationError("Invalid dimension scores", details={"errors": errors})
    return scores


def derive_status(review: Review) -> StatusView:
    """Ordered decision list; the first matching rule wins."""
    submitted = len(review.peer_feedback)
    total = len(review.peer_reviewers)

    if review.manager_feedback is not None:
        status = ReviewStatus.COMPLETED
    elif submitted == total:
        status = ReviewStatus.READY_FOR_MANAGER
    elif 0 < submitted < total:
        status = ReviewStatus.PEER_REVIEW_IN_PROGRESS
    else:
        status = ReviewStatus.SELF_ONLY
    return StatusView(status=status, submitted=submitted, total=total)


def _score_or_na(scores: Optional[DimensionScores], dimension: Dimension) -> Union[int, str]:
    if scores is None:
        return NOT_AVAILABLE
    score = scores.get(dimension).score
    return score if score is not None else NOT_AVAILABLE


def aggregate_scores(review: Review, dimension) -> AggregateScores:
    dimension = Dimension(dimension)
    manager_scores = review.manager_feedback.scores if review.manager_feedback else None
    return AggregateScores(
        dimension=dimension,
        self_score=_score_or_na(review.self_assessment, dimension),
        peer_average=average(fb.scores.get(dimension).score for fb in review.feedback_entries),
        manager_score=_score_or_na(manager_scores, dimension),
    )


def aggregate_all(review: Review) -> Dict[Dimension, AggregateScores]:
    return {dimension: aggregate_scores(review, dimension) for dimension in Dimension}
