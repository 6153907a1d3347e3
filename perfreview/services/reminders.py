import math
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from perfreview.core.config import settings
from perfreview.schemas.common import ensure_utc
from perfreview.schemas.cycle import ReviewCycle
from perfreview.schemas.reporting import Reminder, ReminderPriority, ReminderType
from perfreview.schemas.review import Review

_PRIORITY_RANK = {ReminderPriority.HIGH: 0, ReminderPriority.MEDIUM: 1}


def days_until(due: datetime, now: datetime) -> int:
    """Whole days left, rounded up; zero or negative once the due instant has passed."""
    return math.ceil((ensure_utc(due) - ensure_utc(now)) / timedelta(days=1))


def _plural(days: int) -> str:
    return "s" if days > 1 else ""


def _reminder_for(
    kind: str,
    subject: str,
    due: datetime,
    now: datetime,
    window_days: int,
    **context,
) -> Optional[Reminder]:
    days = days_until(due, now)
    if 0 < days <= window_days:
        return Reminder(
            type=ReminderType(kind),
            message=f"Your {subject} is due in {days} day{_plural(days)}",
            due_date=due,
            priority=ReminderPriority.MEDIUM,
            **context,
        )
    if days <= 0:
        return Reminder(
            type=ReminderType(f"{kind}-overdue"),
            message=f"Your {subject} is overdue!",
            due_date=due,
            priority=ReminderPriority.HIGH,
            **context,
        )
    return None


def compute_reminders(
    cycles: Iterable[ReviewCycle],
    reviews: Iterable[Review],
    user_id: str,
    now: datetime,
    window_days: Optional[int] = None,
) -> List[Reminder]:
    """
    Build the reminder list for one user. Nothing is persisted; callers
    recompute on every view.

    - self reminders: active cycles the user has no review in yet
    - peer reminders: reviews naming the user as peer reviewer without their
      feedback, against the (active) cycle's peer deadline
    Sorted high priority first, then by ascending due date.
    """
    window_days = settings.reminder_window_days if window_days is None else window_days
    active = {cycle.id: cycle for cycle in cycles if cycle.is_active}
    reviews = list(reviews)
    reminders: List[Reminder] = []

    own_cycles = {r.cycle_id for r in reviews if r.user_id == user_id}
    for cycle in active.values():
        if cycle.id in own_cycles:
            continue
        reminder = _reminder_for(
            "self-review",
            f"self-review for {cycle.name}",
            cycle.self_review_due,
            now,
            window_days,
            cycle_id=cycle.id,
            cycle_name=cycle.name,
        )
        if reminder:
            reminders.append(reminder)

    for review in reviews:
        if user_id not in review.peer_reviewers or review.has_feedback_from(user_id):
            continue
        cycle = active.get(review.cycle_id)
        if cycle is None:
            continue
        reminder = _reminder_for(
            "peer-review",
            f"peer review for {review.user_name}",
            cycle.peer_review_due,
            now,
            window_days,
            cycle_id=cycle.id,
            cycle_name=cycle.name,
            review_id=review.id,
            user_name=review.user_name,
        )
        if reminder:
            reminders.append(reminder)

    reminders.sort(key=lambda r: (_PRIORITY_RANK[r.priority], r.due_date))
    return reminders
