"""
Review Cycle Service

Lookup of cycle metadata for the review engine, plus the admin operations
that create and maintain cycles. Deleting a cycle never touches reviews;
readers fall back to the cycle name denormalized on each review.
"""
import uuid
from datetime import datetime
from typing import List, Optional, Protocol

from perfreview.core.exceptions import NotFoundError, ValidationError
from perfreview.schemas.cycle import CycleStatus, CycleType, ReviewCycle
from perfreview.schemas.user import UserRole
from perfreview.services.base import BaseService
from perfreview.store import REVIEW_CYCLES


class CycleCatalog(Protocol):
    def get_cycle(self, cycle_id: str) -> Optional[ReviewCycle]:
        ...

    def list_active_cycles(self) -> List[ReviewCycle]:
        ...


class CycleService(BaseService):
    """Document-store backed CycleCatalog with admin maintenance operations."""

    def get_cycle(self, cycle_id: str) -> Optional[ReviewCycle]:
        data = self.store.get(REVIEW_CYCLES, cycle_id)
        return ReviewCycle.from_document(data) if data else None

    def require_cycle(self, cycle_id: str) -> ReviewCycle:
        cycle = self.get_cycle(cycle_id)
        if cycle is None:
            raise NotFoundError("Review cycle", cycle_id)
        return cycle

    def list_cycles(self) -> List[ReviewCycle]:
        """All cycles, most recently created first."""
        docs = self.store.query(REVIEW_CYCLES, order_by=[("createdAt", "desc")])
        return [ReviewCycle.from_document(d) for d in docs]

    def list_active_cycles(self) -> List[ReviewCycle]:
        docs = self.store.query(
            REVIEW_CYCLES,
            filters=[("status", "==", CycleStatus.ACTIVE.value)],
            order_by=[("selfReviewDue", "asc")],
        )
        return [ReviewCycle.from_document(d) for d in docs]

    @staticmethod
    def _check_fields(name: str, self_review_due: Optional[datetime], peer_review_due: Optional[datetime]):
        if not name or not name.strip():
            raise ValidationError("Please enter a cycle name")
        if self_review_due is None or peer_review_due is None:
            raise ValidationError("Please enter both due dates")

    def create_cycle(
        self,
        name: str,
        self_review_due: datetime,
        peer_review_due: datetime,
        cycle_type: CycleType = CycleType.QUARTERLY,
    ) -> ReviewCycle:
        admin = self.require_role(UserRole.ADMIN)
        self._check_fields(name, self_review_due, peer_review_due)

        now = self.now()
        cycle = self.parse(ReviewCycle, {
            "id": uuid.uuid4().hex,
            "name": name.strip(),
            "type": cycle_type,
            "self_review_due": self_review_due,
            "peer_review_due": peer_review_due,
            "status": CycleStatus.ACTIVE,
            "created_at": now,
            "updated_at": now,
        })
        self.store.put(REVIEW_CYCLES, cycle.id, cycle.to_document())
        self.log_info(f"Review cycle {cycle.id} '{cycle.name}' created by {admin.id}")
        return cycle

    def update_cycle(
        self,
        cycle_id: str,
        name: str,
        self_review_due: datetime,
        peer_review_due: datetime,
        cycle_type: CycleType = CycleType.QUARTERLY,
    ) -> ReviewCycle:
        admin = self.require_role(UserRole.ADMIN)
        self._check_fields(name, self_review_due, peer_review_due)
        cycle = self.require_cycle(cycle_id)

        updated = self.parse(ReviewCycle, {
            **cycle.model_dump(),
            "name": name.strip(),
            "type": cycle_type,
            "self_review_due": self_review_due,
            "peer_review_due": peer_review_due,
            "updated_at": self.now(),
        })
        doc = updated.to_document()
        self.store.update(REVIEW_CYCLES, cycle_id, {
            key: doc[key] for key in ("name", "type", "selfReviewDue", "peerReviewDue", "updatedAt")
        })
        self.log_info(f"Review cycle {cycle_id} updated by {admin.id}")
        return updated

    def close_cycle(self, cycle_id: str) -> ReviewCycle:
        admin = self.require_role(UserRole.ADMIN)
        cycle = self.require_cycle(cycle_id)
        closed = cycle.model_copy(update={"status": CycleStatus.CLOSED, "updated_at": self.now()})
        doc = closed.to_document()
        self.store.update(REVIEW_CYCLES, cycle_id, {"status": doc["status"], "updatedAt": doc["updatedAt"]})
        self.log_info(f"Review cycle {cycle_id} closed by {admin.id}")
        return closed

    def delete_cycle(self, cycle_id: str) -> None:
        admin = self.require_role(UserRole.ADMIN)
        self.require_cycle(cycle_id)
        self.store.delete(REVIEW_CYCLES, cycle_id)
        self.log_warning(f"Review cycle {cycle_id} deleted by {admin.id}; existing reviews are kept")
