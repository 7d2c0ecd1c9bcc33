"""
Enrollment ledger

Registration touches two documents: the user gets a training record and the
course gets a user summary plus one more seat taken. Both copies are
returned together so storage can commit them as a unit.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from training_portal.enrollment.errors import Outcome, Reason
from training_portal.enrollment.models import Course, User


@dataclass(frozen=True)
class Enrollment:
    user: User
    course: Course


def register(
    user: Optional[User],
    course: Optional[Course],
    now: datetime,
) -> Outcome[Enrollment]:
    if course is None:
        return Outcome.fail(Reason.COURSE_NOT_FOUND)
    if user is None:
        return Outcome.fail(Reason.USER_NOT_FOUND)

    if not course.application_period.is_open(now):
        return Outcome.fail(Reason.REGISTRATION_CLOSED)

    if user.has_training(course.course_id):
        return Outcome.fail(Reason.ALREADY_REGISTERED)

    # Exact start-instant collision only; overlapping durations are allowed
    if any(t.course_date == course.course_date for t in user.training_info):
        return Outcome.fail(Reason.SCHEDULE_CONFLICT)

    if course.is_full:
        return Outcome.fail(Reason.COURSE_FULL)

    updated_user = user.model_copy(
        update={"training_info": [*user.training_info, course.training_record()]}
    )
    updated_course = course.model_copy(
        update={
            "registered_users": [*course.registered_users, user.summary()],
            "current_enrollment": course.current_enrollment + 1,
        }
    )
    return Outcome.success(Enrollment(user=updated_user, course=updated_course))
