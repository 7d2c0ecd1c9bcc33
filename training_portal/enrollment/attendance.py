"""
Attendance codes

An admin generates one 4-digit code while a session is running; attendees
type it in to join the course's approval waiting list.

    NoCode -> ActiveCode -> (session ends / new session) -> replaced by next code
"""

import secrets
from datetime import datetime, timedelta
from typing import Callable, Optional

from training_portal.enrollment.errors import Outcome, Reason
from training_portal.enrollment.models import ActiveCode, Attendee, Course, WaitingEntry

CodeFactory = Callable[[], str]

CODE_MIN = 1000
CODE_MAX = 9999


def random_attendance_code() -> str:
    """Uniform 4-digit code in [1000, 9999]"""
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


def adjusted_clock(now: datetime, clock_offset: timedelta) -> datetime:
    return now + clock_offset


def generate_code(
    course: Course,
    now: datetime,
    clock_offset: timedelta = timedelta(0),
    code_factory: CodeFactory = random_attendance_code,
) -> Outcome[Course]:
    """Issue a new code for the running session, replacing any earlier one."""
    current_time = adjusted_clock(now, clock_offset)

    if current_time < course.session_start:
        return Outcome.fail(Reason.OUT_OF_WINDOW)
    if current_time > course.session_end:
        return Outcome.fail(
            Reason.WINDOW_EXPIRED, "The code generation period has expired."
        )

    existing = course.attendance_code
    if isinstance(existing, ActiveCode) and course.in_session(existing.issued_at):
        return Outcome.fail(Reason.CODE_ALREADY_ACTIVE)

    active = ActiveCode(
        code=code_factory(),
        issued_at=current_time,
        expires_at=course.session_end,
    )
    return Outcome.success(course.model_copy(update={"attendance_code": active}))


def validate_code(
    course: Optional[Course],
    entered_code: str,
    attendee: Attendee,
    now: datetime,
    clock_offset: timedelta = timedelta(0),
) -> Outcome[Course]:
    """Put the attendee on the waiting list if their code is good right now."""
    if not entered_code:
        return Outcome.fail(Reason.CODE_REQUIRED)
    if course is None:
        return Outcome.fail(Reason.COURSE_NOT_FOUND)

    active = course.attendance_code
    if not isinstance(active, ActiveCode) or active.code != entered_code:
        return Outcome.fail(Reason.CODE_MISMATCH)

    if not course.is_registered(attendee.user_id):
        return Outcome.fail(Reason.NOT_REGISTERED)

    if not course.in_session(adjusted_clock(now, clock_offset)):
        return Outcome.fail(Reason.WINDOW_EXPIRED, "Code already expired.")

    if course.is_pending(attendee.user_id):
        return Outcome.fail(Reason.ALREADY_PENDING)

    entry = WaitingEntry(user_id=attendee.user_id, email=attendee.email, timestamp=now)
    return Outcome.success(
        course.model_copy(
            update={"waiting_for_approve_list": [*course.waiting_for_approve_list, entry]}
        )
    )
