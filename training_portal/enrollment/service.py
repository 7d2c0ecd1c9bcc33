"""
Enrollment service

Glue between the pure enrollment rules and MongoDB. Each operation takes one
clock reading, loads the documents, applies the rule and writes the result
back conditionally. A lost race re-reads and tries again a bounded number of
times before giving up with a concurrent-update failure.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, List, Optional

from pymongo.errors import PyMongoError

from training_portal.config import ATTENDANCE_CLOCK_OFFSET_HOURS, ENROLLMENT_MAX_RETRIES
from training_portal.enrollment import approval, attendance, ledger
from training_portal.enrollment.approval import Decision
from training_portal.enrollment.attendance import CodeFactory, random_attendance_code
from training_portal.enrollment.errors import Outcome, PartialWriteError, Reason
from training_portal.enrollment.ledger import Enrollment
from training_portal.enrollment.models import Attendee, Course
from training_portal.enrollment.repository import EnrollmentRepository

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# None from an attempt means the conditional write lost a race
Attempt = Callable[[], Awaitable[Optional[Outcome]]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EnrollmentService:
    def __init__(
        self,
        repository: EnrollmentRepository,
        clock: Clock = utc_now,
        code_factory: CodeFactory = random_attendance_code,
        clock_offset: timedelta = timedelta(hours=ATTENDANCE_CLOCK_OFFSET_HOURS),
        max_retries: int = ENROLLMENT_MAX_RETRIES,
    ):
        self.repository = repository
        self.clock = clock
        self.code_factory = code_factory
        self.clock_offset = clock_offset
        self.max_retries = max_retries

    async def _run(self, operation: str, attempt: Attempt) -> Outcome:
        try:
            for _ in range(self.max_retries + 1):
                outcome = await attempt()
                if outcome is None:
                    logger.info("%s lost a write race, retrying", operation)
                    continue
                if not outcome.ok:
                    logger.info("%s rejected: %s", operation, outcome.failure.reason.value)
                return outcome
        except PartialWriteError as e:
            logger.error("%s left storage inconsistent: %s", operation, e)
            return Outcome.fail(Reason.PARTIAL_WRITE)
        except PyMongoError:
            logger.exception("%s failed in storage", operation)
            return Outcome.fail(Reason.STORAGE_FAILURE)

        logger.warning("%s gave up after %d retries", operation, self.max_retries)
        return Outcome.fail(Reason.CONCURRENT_UPDATE)

    # ==================== REGISTRATION ====================

    async def register(self, user_id: str, course_id: str) -> Outcome[Enrollment]:
        now = self.clock()

        async def attempt():
            course = await self.repository.find_course(course_id)
            user = await self.repository.find_user(user_id)
            outcome = ledger.register(user, course, now)
            if not outcome.ok:
                return outcome
            if not await self.repository.commit_enrollment(outcome.value, course):
                return None
            logger.info("User %s registered for course %s", user_id, course_id)
            return outcome

        return await self._run("register", attempt)

    # ==================== ATTENDANCE CODES ====================

    async def generate_code(self, course_id: str) -> Outcome[Course]:
        now = self.clock()

        async def attempt():
            course = await self.repository.find_course(course_id)
            if course is None:
                return Outcome.fail(Reason.COURSE_NOT_FOUND)
            outcome = attendance.generate_code(
                course, now, self.clock_offset, self.code_factory
            )
            if not outcome.ok:
                return outcome
            if not await self.repository.save_course(outcome.value):
                return None
            logger.info("Attendance code issued for course %s", course_id)
            return outcome

        return await self._run("generate_code", attempt)

    async def validate_code(
        self, course_id: str, entered_code: str, attendee: Attendee
    ) -> Outcome[Course]:
        now = self.clock()

        async def attempt():
            course = None
            if entered_code:
                course = await self.repository.find_course_by_code(course_id, entered_code)
            outcome = attendance.validate_code(
                course, entered_code, attendee, now, self.clock_offset
            )
            if not outcome.ok:
                return outcome
            if not await self.repository.save_course(outcome.value):
                return None
            logger.info("User %s joined waiting list of %s", attendee.user_id, course_id)
            return outcome

        return await self._run("validate_code", attempt)

    # ==================== APPROVAL ====================

    async def decide(self, user_id: str, course_id: str, action: str) -> Outcome[Decision]:
        now = self.clock()

        async def attempt():
            course = await self.repository.find_course(course_id)
            user = await self.repository.find_user(user_id)
            outcome = approval.decide(user, course, action, now)
            if not outcome.ok:
                return outcome
            if not await self.repository.commit_decision(outcome.value, course):
                return None
            logger.info(
                "User %s %s for course %s", user_id, outcome.value.action.past_tense, course_id
            )
            return outcome

        return await self._run("decide", attempt)

    async def waiting_list(self) -> List[dict]:
        return await self.repository.list_waiting()
