"""
Review Lifecycle Service

Business rules for one review document: the subject's self assessment and
reviewer selection, peer feedback from the two assigned reviewers, and the
manager's final feedback. Status and score aggregation are delegated to
`perfreview.services.scoring`; reminders to `perfreview.services.reminders`.

Architecture:
- Caller -> ReviewLifecycleEngine (this module) -> DocumentStore
- Role checks for manager feedback belong to the caller
- Store failures propagate unchanged; nothing is retried here
"""
from datetime import datetime
from typing import Any, Callable, List, Optional, Sequence

from perfreview.core.config import ReviewRules, settings
from perfreview.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from perfreview.core.logging import correlation_scope
from perfreview.identity import Identity, IdentityProvider
from perfreview.schemas.common import format_timestamp
from perfreview.schemas.reporting import AggregateScores, Reminder, ReviewSummary, StatusView
from perfreview.schemas.review import (
    DimensionScores,
    ManagerFeedback,
    PeerFeedback,
    Review,
    StoredStatus,
)
from perfreview.services import reminders, scoring
from perfreview.services.base import BaseService
from perfreview.services.cycle_service import CycleCatalog, CycleService
from perfreview.services.user_service import UserService
from perfreview.store import REVIEWS, DocumentStore


class ReviewLifecycleEngine(BaseService):
    def __init__(
        self,
        store: DocumentStore,
        cycles: Optional[CycleCatalog] = None,
        identity: Optional[IdentityProvider] = None,
        rules: Optional[ReviewRules] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__(store, identity=identity, clock=clock)
        self.cycles = cycles or CycleService(store, identity=identity, clock=clock)
        self.users = UserService(store, identity=identity, clock=clock)
        self.rules = rules or settings.reviews

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get_review(self, review_id: str) -> Review:
        data = self.store.get(REVIEWS, review_id)
        if data is None:
            raise NotFoundError("Review", review_id)
        return Review.from_document(data)

    def get_review_for(self, cycle_id: str, user_id: str) -> Optional[Review]:
        data = self.store.get(REVIEWS, Review.make_id(cycle_id, user_id))
        return Review.from_document(data) if data else None

    def list_reviews_for_user(self, user_id: str) -> List[Review]:
        docs = self.store.query(REVIEWS, filters=[("userId", "==", user_id)])
        return [Review.from_document(d) for d in docs]

    def list_peer_assignments(self, user_id: str, pending_only: bool = False) -> List[Review]:
        """Reviews naming `user_id` as a peer reviewer."""
        docs = self.store.query(REVIEWS, filters=[("peerReviewers", "array-contains", user_id)])
        assigned = [Review.from_document(d) for d in docs]
        if pending_only:
            assigned = [r for r in assigned if not r.has_feedback_from(user_id)]
        return assigned

    def review_summary(self, review_id: str) -> ReviewSummary:
        review = self.get_review(review_id)
        cycle = self.cycles.get_cycle(review.cycle_id)
        if cycle is None:
            self.log_warning(f"Cycle {review.cycle_id} of review {review_id} no longer exists")
        return ReviewSummary(
            review=review,
            status=self.derive_status(review),
            cycle_name=cycle.name if cycle else review.cycle_name,
            scores=scoring.aggregate_all(review),
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def _validated_scores(self, dimensions: Any) -> DimensionScores:
        return scoring.validate_scores(self.parse(DimensionScores, dimensions), self.rules)

    def _check_reviewers(self, subject_id: str, reviewer_ids: Sequence[str]) -> List[str]:
        reviewers = list(reviewer_ids or [])
        expected = self.rules.peer_reviewer_count
        if len(reviewers) != expected:
            raise ValidationError(f"Please select exactly {expected} peer reviewers")
        if any(not isinstance(r, str) or not r for r in reviewers):
            raise ValidationError("Peer reviewer ids must be non-empty strings")
        if len(set(reviewers)) != len(reviewers):
            raise ValidationError("Peer reviewers must be distinct")
        if subject_id in reviewers:
            raise ValidationError("You cannot select yourself as a peer reviewer")
        return reviewers

    def create_self_review(
        self,
        cycle_id: str,
        subject: Identity,
        dimensions: Any,
        peer_reviewer_ids: Sequence[str],
    ) -> Review:
        """
        Create or overwrite the subject's review for a cycle.

        Re-submission replaces the self assessment and reviewer list while
        keeping peer and manager feedback. The reviewer list is frozen once
        any peer feedback exists (see ReviewRules.lock_reviewers_after_feedback);
        with the lock off, feedback from removed reviewers is discarded.
        """
        with correlation_scope():
            scores = self._validated_scores(dimensions)
            reviewers = self._check_reviewers(subject.id, peer_reviewer_ids)

            cycle = self.cycles.get_cycle(cycle_id)
            if cycle is None:
                raise NotFoundError("Review cycle", cycle_id)
            if not cycle.is_active:
                raise ValidationError(f"Review cycle '{cycle.name}' is closed")

            review_id = Review.make_id(cycle_id, subject.id)
            now = self.now()
            review = Review(
                id=review_id,
                user_id=subject.id,
                user_name=subject.name,
                user_email=subject.email,
                cycle_id=cycle_id,
                cycle_name=cycle.name,
                self_assessment=scores,
                peer_reviewers=reviewers,
                status=StoredStatus.SUBMITTED,
                created_at=now,
                updated_at=now,
            )

            if self.store.get(REVIEWS, review_id) is None:
                self.store.put(REVIEWS, review_id, review.to_document())
                self.log_info(f"Self review {review_id} submitted", review_id=review_id)
                return review

            stored = self.store.modify(
                REVIEWS, review_id,
                lambda current: self._resubmitted(Review.from_document(current), review).to_document(),
            )
            self.log_info(f"Self review {review_id} updated", review_id=review_id)
            return Review.from_document(stored)

    def _resubmitted(self, existing: Review, review: Review) -> Review:
        """Merge a re-submitted self review into the stored one."""
        reviewers = review.peer_reviewers
        if existing.peer_feedback and set(existing.peer_reviewers) != set(reviewers):
            if self.rules.lock_reviewers_after_feedback:
                raise ValidationError(
                    "Peer reviewers cannot be changed after peer feedback has been submitted"
                )
            dropped = [rid for rid in existing.peer_feedback if rid not in reviewers]
            if dropped:
                self.log_warning(
                    f"Discarding peer feedback from removed reviewers {dropped} on {review.id}",
                    review_id=review.id,
                )

        manager_feedback = existing.manager_feedback
        return review.model_copy(update={
            "peer_feedback": {
                rid: fb for rid, fb in existing.peer_feedback.items() if rid in reviewers
            },
            "manager_feedback": manager_feedback,
            "status": StoredStatus.COMPLETED if manager_feedback else StoredStatus.SUBMITTED,
            "created_at": existing.created_at or review.created_at,
        })

    def submit_peer_feedback(self, review_id: str, reviewer_id: str, dimensions: Any) -> Review:
        """Record (or replace) one assigned reviewer's feedback."""
        with correlation_scope():
            review = self.get_review(review_id)
            if reviewer_id not in review.peer_reviewers:
                self.log_warning(f"User {reviewer_id} is not a peer reviewer of {review_id}")
                raise AuthorizationError("You are not authorized to review this submission")
            scores = self._validated_scores(dimensions)

            profile = self.users.get_user(reviewer_id)
            now = self.now()
            feedback = PeerFeedback(
                reviewer_id=reviewer_id,
                reviewer_name=profile.display_name if profile else None,
                reviewer_email=profile.email if profile else None,
                scores=scores,
                submitted_at=now,
            )

            def record(current):
                # Runs on the latest stored review inside the atomic step
                latest = Review.from_document(current)
                if reviewer_id not in latest.peer_reviewers:
                    raise AuthorizationError("You are not authorized to review this submission")
                latest.record_peer_feedback(feedback)
                latest.updated_at = now
                doc = latest.to_document()
                return {"peerFeedback": doc["peerFeedback"], "updatedAt": doc["updatedAt"]}

            stored = self.store.modify(REVIEWS, review_id, record)
            self.log_info(
                f"Peer feedback {'replaced' if review.has_feedback_from(reviewer_id) else 'added'} "
                f"on {review_id} by {reviewer_id}",
                review_id=review_id,
            )
            return Review.from_document(stored)

    def submit_manager_feedback(
        self,
        review_id: str,
        manager_id: str,
        dimensions: Any,
        summary_text: str = "",
    ) -> Review:
        """Write the final review. The caller is responsible for checking the manager role."""
        with correlation_scope():
            self.get_review(review_id)
            scores = self._validated_scores(dimensions)

            profile = self.users.get_user(manager_id)
            now = self.now()
            manager_feedback = ManagerFeedback(
                manager_id=manager_id,
                manager_name=profile.display_name if profile else None,
                summary_feedback=summary_text or "",
                scores=scores,
                submitted_at=now,
            )

            stored = self.store.modify(REVIEWS, review_id, lambda current: {
                "managerFeedback": manager_feedback.to_document(),
                "status": StoredStatus.COMPLETED.value,
                "updatedAt": format_timestamp(now),
            })
            self.log_info(f"Manager feedback recorded on {review_id} by {manager_id}", review_id=review_id)
            return Review.from_document(stored)

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------
    @staticmethod
    def derive_status(review: Review) -> StatusView:
        return scoring.derive_status(review)

    @staticmethod
    def aggregate_scores(review: Review, dimension) -> AggregateScores:
        return scoring.aggregate_scores(review, dimension)

    @staticmethod
    def compute_reminders(cycles, reviews, user_id: str, now: datetime) -> List[Reminder]:
        return reminders.compute_reminders(cycles, reviews, user_id, now)

    def reminders_for(self, user_id: str, now: Optional[datetime] = None) -> List[Reminder]:
        """Load the user's cycles and reviews and compute their reminders."""
        cycles = self.cycles.list_active_cycles()
        reviews = self.list_reviews_for_user(user_id) + self.list_peer_assignments(user_id)
        return reminders.compute_reminders(cycles, reviews, user_id, now or self.now())
