"""
Enrollment storage over MongoDB (Motor)

Every write is conditional on the document version read beforehand, so two
requests racing on the same course or user cannot both win. Writes that span
a user and a course go through commit(): inside a transaction when the
deployment supports one, otherwise course-then-user with the course write
undone if the user write loses.
"""

import logging
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase
from pymongo.errors import OperationFailure, PyMongoError

from training_portal.enrollment.approval import ApprovalAction, Decision
from training_portal.enrollment.errors import PartialWriteError
from training_portal.enrollment.ledger import Enrollment
from training_portal.enrollment.models import Course, User

logger = logging.getLogger(__name__)


class _LostRace(Exception):
    pass


def _version_filter(version: int):
    # Documents written before versioning have no field at all
    if version == 0:
        return {"$in": [0, None]}
    return version


class EnrollmentRepository:
    def __init__(self, db: AsyncIOMotorDatabase, use_transactions: bool = False):
        self.db = db
        self.use_transactions = use_transactions

    # ==================== READS ====================

    async def find_course(self, course_id: str) -> Optional[Course]:
        doc = await self.db.courses.find_one({"course_id": course_id})
        return Course.model_validate(doc) if doc else None

    async def find_course_by_code(self, course_id: str, code: str) -> Optional[Course]:
        doc = await self.db.courses.find_one({
            "course_id": course_id,
            "attendance_code.state": "active",
            "attendance_code.code": code,
        })
        return Course.model_validate(doc) if doc else None

    async def find_user(self, user_id: str) -> Optional[User]:
        doc = await self.db.users.find_one({"user_id": user_id})
        return User.model_validate(doc) if doc else None

    async def list_waiting(self) -> List[dict]:
        """Courses that still have someone waiting for approval"""
        cursor = self.db.courses.find(
            {"waiting_for_approve_list": {"$exists": True, "$ne": []}},
            {"_id": 0, "course_id": 1, "course_name": 1, "waiting_for_approve_list": 1},
        )
        return await cursor.to_list(length=None)

    # ==================== CONDITIONAL WRITES ====================

    async def save_course(
        self,
        course: Course,
        guard: Optional[dict] = None,
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> bool:
        """Write course if nobody changed it since it was read. False on a lost race."""
        doc = course.to_document()
        doc["version"] = course.version + 1
        query = {
            "course_id": course.course_id,
            "version": _version_filter(course.version),
            **(guard or {}),
        }
        result = await self.db.courses.update_one(query, {"$set": doc}, session=session)
        return result.matched_count == 1

    async def save_user(
        self,
        user: User,
        session: Optional[AsyncIOMotorClientSession] = None,
    ) -> bool:
        doc = user.to_document()
        doc["version"] = user.version + 1
        query = {"user_id": user.user_id, "version": _version_filter(user.version)}
        # $set leaves fields outside the model (password hash) untouched
        result = await self.db.users.update_one(query, {"$set": doc}, session=session)
        return result.matched_count == 1

    async def commit_enrollment(self, enrollment: Enrollment, previous_course: Course) -> bool:
        # The seat is only taken if one is still free in storage
        guard = {"current_enrollment": {"$lt": enrollment.course.enrollment_limit}}
        return await self.commit(enrollment.user, enrollment.course, previous_course, guard)

    async def commit_decision(self, decision: Decision, previous_course: Course) -> bool:
        if decision.action is ApprovalAction.REJECT:
            return await self.save_course(decision.course)
        return await self.commit(decision.user, decision.course, previous_course)

    async def commit(
        self,
        user: User,
        course: Course,
        previous_course: Course,
        course_guard: Optional[dict] = None,
    ) -> bool:
        """Persist a user/course pair as one unit. False when another writer got there first."""
        if self.use_transactions:
            return await self._commit_in_transaction(user, course, course_guard)

        if not await self.save_course(course, course_guard):
            return False

        try:
            user_saved = await self.save_user(user)
        except PyMongoError:
            await self._undo_course(previous_course, course)
            raise

        if user_saved:
            return True
        await self._undo_course(previous_course, course)
        return False

    async def _start_session(self) -> AsyncIOMotorClientSession:
        return await self.db.client.start_session()

    async def _commit_in_transaction(
        self, user: User, course: Course, course_guard: Optional[dict]
    ) -> bool:
        async with await self._start_session() as session:
            try:
                async with session.start_transaction():
                    if not await self.save_course(course, course_guard, session=session):
                        raise _LostRace()
                    if not await self.save_user(user, session=session):
                        raise _LostRace()
            except _LostRace:
                return False
            except OperationFailure as e:
                # Write conflicts inside a transaction abort it; re-read and try again
                if not e.has_error_label("TransientTransactionError"):
                    raise
                logger.info("Transaction for course %s aborted: %s", course.course_id, e)
                return False
        return True

    async def _undo_course(self, previous: Course, written: Course) -> None:
        """Put the course back the way it was before our write."""
        restore = previous.model_copy(update={"version": written.version + 1})
        try:
            restored = await self.save_course(restore)
        except PyMongoError as e:
            raise PartialWriteError(
                f"course {written.course_id} could not be restored: {e}"
            ) from e
        if not restored:
            raise PartialWriteError(
                f"course {written.course_id} changed before it could be restored"
            )
        logger.warning("Rolled back course %s after user write failed", written.course_id)
