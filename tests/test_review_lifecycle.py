import pytest
from datetime import timedelta

from perfreview.core.config import ReviewRules
from perfreview.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from perfreview.schemas.common import NOT_AVAILABLE
from perfreview.schemas.reporting import ReviewStatus
from perfreview.schemas.review import Dimension, Review, StoredStatus
from perfreview.services.review_service import ReviewLifecycleEngine
from perfreview.store import REVIEWS
from conftest import make_scores


def test_create_self_review_round_trip(review_engine, active_cycle, alice, bob, erin):
    """What was submitted is exactly what is read back."""
    scores = make_scores(1, 4, 2, text="Led the billing migration")
    created = review_engine.create_self_review(active_cycle.id, alice, scores, [bob.id, erin.id])

    stored = review_engine.get_review(created.id)
    assert stored == created
    assert stored.id == f"{active_cycle.id}_{alice.id}"
    assert stored.status == StoredStatus.SUBMITTED
    assert stored.cycle_name == "Q4 2026"
    assert stored.user_email == "alice@example.com"
    assert stored.peer_reviewers == [bob.id, erin.id]
    for dimension in Dimension:
        assert stored.self_assessment.get(dimension).text == scores[dimension.value]["text"]
        assert stored.self_assessment.get(dimension).score == scores[dimension.value]["score"]


def test_self_review_document_uses_flat_dimension_fields(review_engine, store, submitted_review):
    doc = store.get(REVIEWS, submitted_review.id)
    assert doc["autonomyScore"] == 3
    assert doc["masteryScore"] == 2
    assert doc["purposeText"] == "Solid quarter (purpose)"
    assert doc["peerFeedback"] == []
    assert doc["managerFeedback"] is None
    assert doc["status"] == "submitted"


@pytest.mark.parametrize("reviewers", [["user-b"], ["user-b", "user-e", "user-c"], []])
def test_wrong_reviewer_count_is_rejected(review_engine, active_cycle, alice, reviewers):
    with pytest.raises(ValidationError):
        review_engine.create_self_review(active_cycle.id, alice, make_scores(), reviewers)


def test_duplicate_or_self_reviewers_are_rejected(review_engine, active_cycle, alice, bob):
    with pytest.raises(ValidationError):
        review_engine.create_self_review(active_cycle.id, alice, make_scores(), [bob.id, bob.id])
    with pytest.raises(ValidationError):
        review_engine.create_self_review(active_cycle.id, alice, make_scores(), [alice.id, bob.id])


@pytest.mark.parametrize("score", [0, 5])
def test_out_of_range_score_is_rejected(review_engine, active_cycle, alice, bob, erin, score):
    with pytest.raises(ValidationError):
        review_engine.create_self_review(
            active_cycle.id, alice, make_scores(mastery=score), [bob.id, erin.id]
        )


@pytest.mark.parametrize("score", [True, "4", 2.0])
def test_non_integer_score_is_rejected(review_engine, active_cycle, alice, bob, erin, score):
    with pytest.raises(ValidationError) as exc:
        review_engine.create_self_review(
            active_cycle.id, alice, make_scores(autonomy=score), [bob.id, erin.id]
        )
    assert exc.value.details["errors"][0]["field"] == "autonomy.score"


def test_malformed_dimensions_are_rejected(review_engine, active_cycle, alice, bob, erin):
    with pytest.raises(ValidationError) as exc:
        review_engine.create_self_review(
            active_cycle.id, alice, {"autonomy": {"score": 2}}, [bob.id, erin.id]
        )
    fields = [e["field"] for e in exc.value.details["errors"]]
    assert "mastery" in fields and "purpose" in fields


def test_text_over_limit_is_rejected(review_engine, active_cycle, alice, bob, erin):
    scores = make_scores()
    scores["autonomy"]["text"] = "a" * 501
    with pytest.raises(ValidationError):
        review_engine.create_self_review(active_cycle.id, alice, scores, [bob.id, erin.id])


def test_missing_cycle_is_not_found(review_engine, alice, bob, erin):
    with pytest.raises(NotFoundError):
        review_engine.create_self_review("nope", alice, make_scores(), [bob.id, erin.id])


def test_closed_cycle_rejects_self_review(review_engine, cycles, active_cycle, alice, bob, erin):
    cycles.close_cycle(active_cycle.id)
    with pytest.raises(ValidationError):
        review_engine.create_self_review(active_cycle.id, alice, make_scores(), [bob.id, erin.id])


def test_resubmission_before_feedback_can_change_reviewers(
    review_engine, submitted_review, active_cycle, alice, carol, erin, clock
):
    clock.advance(hours=1)
    updated = review_engine.create_self_review(
        active_cycle.id, alice, make_scores(4, 4, 4), [carol.id, erin.id]
    )
    assert updated.peer_reviewers == [carol.id, erin.id]
    assert updated.created_at == submitted_review.created_at
    assert updated.updated_at > submitted_review.updated_at
    assert len(review_engine.list_reviews_for_user(alice.id)) == 1


def test_reviewers_are_locked_once_feedback_exists(
    review_engine, submitted_review, active_cycle, alice, bob, carol, erin
):
    review_engine.submit_peer_feedback(submitted_review.id, bob.id, make_scores())
    with pytest.raises(ValidationError):
        review_engine.create_self_review(
            active_cycle.id, alice, make_scores(), [carol.id, erin.id]
        )
    # Same reviewers in another order is not a change
    kept = review_engine.create_self_review(
        active_cycle.id, alice, make_scores(1, 1, 1), [erin.id, bob.id]
    )
    assert list(kept.peer_feedback) == [bob.id]
    assert kept.self_assessment.autonomy.score == 1


def test_reviewer_lock_can_be_disabled(store, cycles, identity, clock, submitted_review, active_cycle, alice, bob, carol, erin):
    """Without the lock, feedback from a removed reviewer is dropped with them."""
    engine = ReviewLifecycleEngine(
        store, cycles=cycles, identity=identity, clock=clock,
        rules=ReviewRules(lock_reviewers_after_feedback=False),
    )
    engine.submit_peer_feedback(submitted_review.id, bob.id, make_scores())
    changed = engine.create_self_review(active_cycle.id, alice, make_scores(), [carol.id, erin.id])
    assert changed.peer_reviewers == [carol.id, erin.id]
    assert changed.peer_feedback == {}

    engine.submit_peer_feedback(submitted_review.id, carol.id, make_scores())
    review = engine.submit_peer_feedback(submitted_review.id, erin.id, make_scores())
    assert set(review.peer_feedback) <= set(review.peer_reviewers)
    assert list(review.peer_feedback) == [carol.id, erin.id]
    assert engine.derive_status(review).status == ReviewStatus.READY_FOR_MANAGER


def test_reviewer_swap_keeps_feedback_of_remaining_reviewer(
    store, cycles, identity, clock, submitted_review, active_cycle, alice, carol, erin
):
    engine = ReviewLifecycleEngine(
        store, cycles=cycles, identity=identity, clock=clock,
        rules=ReviewRules(lock_reviewers_after_feedback=False),
    )
    engine.submit_peer_feedback(submitted_review.id, erin.id, make_scores())
    changed = engine.create_self_review(active_cycle.id, alice, make_scores(), [carol.id, erin.id])
    assert list(changed.peer_feedback) == [erin.id]
    assert str(engine.derive_status(changed)) == "peerReviewInProgress(1/2)"


def test_peer_feedback_resubmission_replaces_in_place(review_engine, submitted_review, bob, erin):
    review_engine.submit_peer_feedback(submitted_review.id, bob.id, make_scores(1, 1, 1))
    review_engine.submit_peer_feedback(submitted_review.id, erin.id, make_scores(2, 2, 2))
    review = review_engine.submit_peer_feedback(submitted_review.id, bob.id, make_scores(4, 4, 4))

    stored = review_engine.get_review(review.id)
    assert [fb.reviewer_id for fb in stored.feedback_entries] == [bob.id, erin.id]
    assert stored.peer_feedback[bob.id].scores.autonomy.score == 4
    assert len(stored.peer_feedback) <= len(stored.peer_reviewers)


def test_unassigned_reviewer_is_denied_and_review_untouched(
    review_engine, store, submitted_review, carol
):
    before = store.get(REVIEWS, submitted_review.id)
    with pytest.raises(AuthorizationError):
        review_engine.submit_peer_feedback(submitted_review.id, carol.id, make_scores())
    assert store.get(REVIEWS, submitted_review.id) == before


def test_peer_feedback_on_missing_review(review_engine, bob):
    with pytest.raises(NotFoundError):
        review_engine.submit_peer_feedback("c_missing", bob.id, make_scores())


def test_invalid_peer_feedback_leaves_review_untouched(review_engine, store, submitted_review, bob):
    before = store.get(REVIEWS, submitted_review.id)
    with pytest.raises(ValidationError):
        review_engine.submit_peer_feedback(submitted_review.id, bob.id, make_scores(purpose=9))
    assert store.get(REVIEWS, submitted_review.id) == before


def test_peer_feedback_denormalizes_registered_reviewer(review_engine, users, submitted_review, bob):
    users.ensure_user(bob)
    review = review_engine.submit_peer_feedback(submitted_review.id, bob.id, make_scores())
    entry = review.peer_feedback[bob.id]
    assert entry.reviewer_name == "Bob"
    assert entry.reviewer_email == "bob@example.com"


def test_manager_feedback_overwrites_and_completes(review_engine, submitted_review, manager, clock):
    review_engine.submit_manager_feedback(submitted_review.id, manager.id, make_scores(2, 2, 2), "First pass")
    clock.advance(minutes=5)
    review = review_engine.submit_manager_feedback(
        submitted_review.id, manager.id, make_scores(3, 3, 3), "Final"
    )

    stored = review_engine.get_review(review.id)
    assert stored.status == StoredStatus.COMPLETED
    assert stored.manager_feedback.summary_feedback == "Final"
    assert stored.manager_feedback.scores.mastery.score == 3
    assert stored.updated_at == clock()


def test_manager_feedback_on_missing_review(review_engine, manager):
    with pytest.raises(NotFoundError):
        review_engine.submit_manager_feedback("c_missing", manager.id, make_scores(), "x")


def test_resubmitting_self_review_keeps_manager_feedback(
    review_engine, submitted_review, active_cycle, alice, bob, erin, manager
):
    review_engine.submit_manager_feedback(submitted_review.id, manager.id, make_scores(), "Done")
    review = review_engine.create_self_review(active_cycle.id, alice, make_scores(), [bob.id, erin.id])
    assert review.manager_feedback is not None
    assert review.status == StoredStatus.COMPLETED


def test_peer_assignments_and_own_reviews(review_engine, submitted_review, alice, bob, erin):
    assert [r.id for r in review_engine.list_reviews_for_user(alice.id)] == [submitted_review.id]
    assert [r.id for r in review_engine.list_peer_assignments(bob.id)] == [submitted_review.id]

    review_engine.submit_peer_feedback(submitted_review.id, bob.id, make_scores())
    assert review_engine.list_peer_assignments(bob.id, pending_only=True) == []
    assert len(review_engine.list_peer_assignments(erin.id, pending_only=True)) == 1
    assert review_engine.get_review_for(submitted_review.cycle_id, bob.id) is None


def test_summary_falls_back_to_stored_cycle_name(review_engine, cycles, submitted_review, active_cycle):
    cycles.update_cycle(
        active_cycle.id, "Q4 2026 (extended)",
        active_cycle.self_review_due, active_cycle.peer_review_due,
    )
    assert review_engine.review_summary(submitted_review.id).cycle_name == "Q4 2026 (extended)"

    cycles.delete_cycle(active_cycle.id)
    summary = review_engine.review_summary(submitted_review.id)
    assert summary.cycle_name == "Q4 2026"
    assert summary.status.status == ReviewStatus.SELF_ONLY
    assert summary.scores[Dimension.PURPOSE].self_score == 4


def test_end_to_end_lifecycle(review_engine, cycles, clock, alice, bob, erin, manager):
    cycle = cycles.create_cycle(
        "Cycle C",
        self_review_due=clock() + timedelta(days=5),
        peer_review_due=clock() + timedelta(days=10),
    )
    review = review_engine.create_self_review(cycle.id, alice, make_scores(3, 3, 3), [bob.id, erin.id])
    assert review_engine.derive_status(review).status == ReviewStatus.SELF_ONLY

    review = review_engine.submit_peer_feedback(review.id, bob.id, make_scores(2, 2, 2))
    assert str(review_engine.derive_status(review)) == "peerReviewInProgress(1/2)"

    review = review_engine.submit_peer_feedback(review.id, erin.id, make_scores(4, 4, 4))
    assert review_engine.derive_status(review).status == ReviewStatus.READY_FOR_MANAGER
    assert review_engine.aggregate_scores(review, Dimension.AUTONOMY).manager_score == NOT_AVAILABLE

    review_engine.submit_manager_feedback(review.id, manager.id, make_scores(4, 3, 2), "Strong year")
    stored = review_engine.get_review(review.id)
    assert review_engine.derive_status(stored).status == ReviewStatus.COMPLETED

    autonomy = review_engine.aggregate_scores(stored, Dimension.AUTONOMY)
    assert autonomy.self_score == 3
    assert autonomy.peer_average == 3.0
    assert autonomy.manager_score == 4


def test_engine_with_sql_store(sql_store, identity, clock, alice, bob, erin):
    """The same lifecycle against the SQLAlchemy-backed store."""
    engine = ReviewLifecycleEngine(sql_store, identity=identity, clock=clock)
    cycle = engine.cycles.create_cycle(
        "SQL cycle", clock() + timedelta(days=3), clock() + timedelta(days=6)
    )
    created = engine.create_self_review(cycle.id, alice, make_scores(), [bob.id, erin.id])
    engine.submit_peer_feedback(created.id, bob.id, make_scores(1, 2, 3))
    engine.submit_peer_feedback(created.id, bob.id, make_scores(4, 4, 4))

    stored = engine.get_review(created.id)
    assert list(stored.peer_feedback) == [bob.id]
    assert stored.peer_feedback[bob.id].scores.autonomy.score == 4
    assert stored.self_assessment == created.self_assessment
