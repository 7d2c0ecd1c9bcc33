"""
Approval workflow

Resolves a pending waiting-list entry:

    Pending -> Approved  (status extended, training record ensured, entry removed)
    Pending -> Rejected  (entry removed)

Getting back to Pending needs a fresh attendance-code validation.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from training_portal.enrollment.errors import Outcome, Reason
from training_portal.enrollment.models import Course, User
from training_portal.enrollment.status import (
    compute_initial_status,
    extend_status,
    format_remaining,
)


class ApprovalAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"

    @property
    def past_tense(self) -> str:
        return "approved" if self is ApprovalAction.APPROVE else "rejected"


@dataclass(frozen=True)
class Decision:
    action: ApprovalAction
    user: User
    course: Course


def apply_status(user: User, now: datetime) -> User:
    """Start or extend the certification window and refresh the display strings."""
    if user.status_start_date is None:
        window = compute_initial_status(now)
        start, end = window.start, window.end
    else:
        start = user.status_start_date
        end = extend_status(start, user.status_end_date, now)

    remaining = str(format_remaining(end, now))
    return user.model_copy(
        update={
            "status_start_date": start,
            "status_end_date": end,
            "status_duration": remaining,
            "status_expiration": remaining,
        }
    )


def decide(
    user: Optional[User],
    course: Optional[Course],
    action: str,
    now: datetime,
) -> Outcome[Decision]:
    try:
        chosen = ApprovalAction(action)
    except ValueError:
        return Outcome.fail(Reason.INVALID_ACTION)

    if user is None or course is None:
        return Outcome.fail(Reason.USER_OR_COURSE_NOT_FOUND)

    if chosen is ApprovalAction.REJECT:
        return Outcome.success(
            Decision(action=chosen, user=user, course=course.without_pending(user.user_id))
        )

    approved = apply_status(user, now)
    # Approving twice must not duplicate the training record
    if not approved.has_training(course.course_id):
        approved = approved.model_copy(
            update={"training_info": [*approved.training_info, course.training_record()]}
        )

    return Outcome.success(
        Decision(action=chosen, user=approved, course=course.without_pending(user.user_id))
    )
