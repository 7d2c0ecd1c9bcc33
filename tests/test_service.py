import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from pymongo.errors import OperationFailure, ServerSelectionTimeoutError

from conftest import IN_SESSION_NOW, insert_course, insert_user
from training_portal.enrollment.errors import ErrorKind, Reason
from training_portal.enrollment.models import ActiveCode, Attendee
from training_portal.enrollment.service import EnrollmentService


async def _stored_course(db, course_id="COURSE_TEST00000001"):
    return await db.courses.find_one({"course_id": course_id})


# ==================== CONDITIONAL WRITES ====================

async def test_save_with_stale_version_loses(mongo_db, repository, course_factory):
    course = await insert_course(mongo_db, course_factory())

    renamed = course.model_copy(update={"course_name": "Renamed"})
    assert await repository.save_course(renamed)

    stale = course.model_copy(update={"course_name": "Stale"})
    assert not await repository.save_course(stale)

    stored = await _stored_course(mongo_db)
    assert stored["course_name"] == "Renamed"
    assert stored["version"] == 1


async def test_save_user_keeps_password(mongo_db, repository, user_factory):
    user = await insert_user(mongo_db, user_factory())
    before = await mongo_db.users.find_one({"user_id": user.user_id})

    assert await repository.save_user(user.model_copy(update={"company": "NewCo"}))

    after = await mongo_db.users.find_one({"user_id": user.user_id})
    assert after["password"] == before["password"]
    assert after["company"] == "NewCo"


# ==================== REGISTRATION ====================

async def test_register_persists_user_and_course(mongo_db, service, course_factory, user_factory):
    await insert_course(mongo_db, course_factory())
    user = await insert_user(mongo_db, user_factory())

    outcome = await service.register(user.user_id, "COURSE_TEST00000001")
    assert outcome.ok

    course = await _stored_course(mongo_db)
    assert course["current_enrollment"] == 1
    assert [u["user_id"] for u in course["registered_users"]] == [user.user_id]

    stored_user = await mongo_db.users.find_one({"user_id": user.user_id})
    assert [t["course_id"] for t in stored_user["training_info"]] == ["COURSE_TEST00000001"]


async def test_register_until_full(mongo_db, service, course_factory, user_factory):
    await insert_course(mongo_db, course_factory(enrollment_limit=1))
    first = await insert_user(mongo_db, user_factory())
    second = await insert_user(mongo_db, user_factory())

    assert (await service.register(first.user_id, "COURSE_TEST00000001")).ok
    outcome = await service.register(second.user_id, "COURSE_TEST00000001")

    assert outcome.failure.reason is Reason.COURSE_FULL
    assert (await _stored_course(mongo_db))["current_enrollment"] == 1


async def test_register_unknown_course(mongo_db, service, user_factory):
    user = await insert_user(mongo_db, user_factory())
    outcome = await service.register(user.user_id, "COURSE_MISSING")
    assert outcome.failure.reason is Reason.COURSE_NOT_FOUND
    assert outcome.failure.kind is ErrorKind.NOT_FOUND


async def test_lost_races_give_up_as_concurrent_update(mongo_db, service, repository, course_factory, user_factory):
    await insert_course(mongo_db, course_factory())
    user = await insert_user(mongo_db, user_factory())
    repository.commit_enrollment = AsyncMock(return_value=False)

    outcome = await service.register(user.user_id, "COURSE_TEST00000001")

    assert outcome.failure.reason is Reason.CONCURRENT_UPDATE
    assert outcome.failure.kind is ErrorKind.INTERNAL
    assert repository.commit_enrollment.await_count == service.max_retries + 1


async def test_user_write_conflict_rolls_back_course_and_retries(
    mongo_db, service, repository, course_factory, user_factory
):
    await insert_course(mongo_db, course_factory())
    user = await insert_user(mongo_db, user_factory())

    real_save_user = repository.save_user
    calls = []

    async def flaky_save_user(u, session=None):
        calls.append(u.user_id)
        if len(calls) == 1:
            return False
        return await real_save_user(u, session=session)

    repository.save_user = flaky_save_user

    outcome = await service.register(user.user_id, "COURSE_TEST00000001")

    assert outcome.ok
    assert len(calls) == 2
    course = await _stored_course(mongo_db)
    assert course["current_enrollment"] == 1
    assert len(course["registered_users"]) == 1


async def test_failed_rollback_reports_partial_write(
    mongo_db, service, repository, course_factory, user_factory
):
    await insert_course(mongo_db, course_factory())
    user = await insert_user(mongo_db, user_factory())

    async def conflicting_save_user(u, session=None):
        # Someone else touches the course before it can be restored
        await mongo_db.courses.update_one(
            {"course_id": "COURSE_TEST00000001"}, {"$inc": {"version": 1}}
        )
        return False

    repository.save_user = conflicting_save_user

    outcome = await service.register(user.user_id, "COURSE_TEST00000001")
    assert outcome.failure.reason is Reason.PARTIAL_WRITE


async def test_storage_errors_become_internal_failures(mongo_db, service, repository):
    repository.find_course = AsyncMock(side_effect=ServerSelectionTimeoutError("no servers"))

    outcome = await service.generate_code("COURSE_TEST00000001")
    assert outcome.failure.reason is Reason.STORAGE_FAILURE
    assert outcome.failure.kind is ErrorKind.INTERNAL


# ==================== ATTENDANCE & APPROVAL ====================

@pytest.fixture
async def enrolled(mongo_db, service, clock, course_factory, user_factory):
    await insert_course(mongo_db, course_factory())
    user = await insert_user(mongo_db, user_factory())
    assert (await service.register(user.user_id, "COURSE_TEST00000001")).ok
    clock.now = IN_SESSION_NOW
    return user


async def test_generate_code_stores_active_code(mongo_db, service, enrolled):
    outcome = await service.generate_code("COURSE_TEST00000001")
    assert outcome.ok

    stored = await _stored_course(mongo_db)
    assert stored["attendance_code"]["state"] == "active"
    assert stored["attendance_code"]["code"] == "4321"

    again = await service.generate_code("COURSE_TEST00000001")
    assert again.failure.reason is Reason.CODE_ALREADY_ACTIVE


async def test_generate_code_for_unknown_course(service):
    outcome = await service.generate_code("COURSE_MISSING")
    assert outcome.failure.reason is Reason.COURSE_NOT_FOUND


async def test_validate_code_is_scoped_to_course(mongo_db, service, enrolled, course_factory):
    await insert_course(mongo_db, course_factory(course_id="COURSE_TEST00000002"))
    await service.generate_code("COURSE_TEST00000001")
    attendee = Attendee(user_id=enrolled.user_id, email=enrolled.email)

    wrong_course = await service.validate_code("COURSE_TEST00000002", "4321", attendee)
    assert wrong_course.failure.reason is Reason.COURSE_NOT_FOUND

    wrong_code = await service.validate_code("COURSE_TEST00000001", "0000", attendee)
    assert wrong_code.failure.reason is Reason.COURSE_NOT_FOUND

    assert (await service.validate_code("COURSE_TEST00000001", "4321", attendee)).ok
    waiting = await service.waiting_list()
    assert [c["course_id"] for c in waiting] == ["COURSE_TEST00000001"]
    assert waiting[0]["waiting_for_approve_list"][0]["user_id"] == enrolled.user_id


async def test_validate_empty_code(service, enrolled):
    attendee = Attendee(user_id=enrolled.user_id, email=enrolled.email)
    outcome = await service.validate_code("COURSE_TEST00000001", "", attendee)
    assert outcome.failure.reason is Reason.CODE_REQUIRED


async def test_full_approval_flow(mongo_db, service, clock, enrolled):
    await service.generate_code("COURSE_TEST00000001")
    attendee = Attendee(user_id=enrolled.user_id, email=enrolled.email)
    assert (await service.validate_code("COURSE_TEST00000001", "4321", attendee)).ok

    outcome = await service.decide(enrolled.user_id, "COURSE_TEST00000001", "approve")
    assert outcome.ok

    user = await mongo_db.users.find_one({"user_id": enrolled.user_id})
    assert user["status_duration"] == "1 ปี 0 เดือน 0 วัน"
    assert len(user["training_info"]) == 1
    assert (await _stored_course(mongo_db))["waiting_for_approve_list"] == []
    assert await service.waiting_list() == []


async def test_reject_leaves_user_untouched(mongo_db, service, enrolled):
    await service.generate_code("COURSE_TEST00000001")
    attendee = Attendee(user_id=enrolled.user_id, email=enrolled.email)
    await service.validate_code("COURSE_TEST00000001", "4321", attendee)
    before = await mongo_db.users.find_one({"user_id": enrolled.user_id})

    outcome = await service.decide(enrolled.user_id, "COURSE_TEST00000001", "reject")
    assert outcome.ok

    after = await mongo_db.users.find_one({"user_id": enrolled.user_id})
    assert after["version"] == before["version"]
    assert after.get("status_start_date") is None
    assert (await _stored_course(mongo_db))["waiting_for_approve_list"] == []


async def test_clock_is_read_once_per_operation(mongo_db, repository, course_factory):
    course = course_factory()
    await insert_course(mongo_db, course)
    reads = []

    def ticking_clock():
        reads.append(1)
        return IN_SESSION_NOW + timedelta(minutes=len(reads))

    svc = EnrollmentService(repository, clock=ticking_clock, clock_offset=timedelta(0))
    outcome = await svc.generate_code(course.course_id)

    assert outcome.ok
    assert len(reads) == 1
    assert isinstance(outcome.value.attendance_code, ActiveCode)


# ==================== TRANSACTIONS ====================

class FakeTransaction:
    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession(FakeTransaction):
    def start_transaction(self):
        return FakeTransaction()


def _write_conflict() -> OperationFailure:
    return OperationFailure(
        "WriteConflict", code=112, details={"errorLabels": ["TransientTransactionError"]}
    )


@pytest.fixture
def transactional(repository):
    """Repository in transaction mode over a session the in-memory db can ignore"""
    repository.use_transactions = True
    repository._start_session = AsyncMock(return_value=FakeSession())
    real_save_course = repository.save_course
    real_save_user = repository.save_user

    async def save_user(u, session=None):
        return await real_save_user(u)

    repository.save_user = save_user
    return repository, real_save_course


async def test_transaction_write_conflict_is_retried(
    mongo_db, service, transactional, course_factory, user_factory
):
    repository, real_save_course = transactional
    await insert_course(mongo_db, course_factory())
    user = await insert_user(mongo_db, user_factory())
    calls = []

    async def conflicting_once(c, guard=None, session=None):
        calls.append(c.course_id)
        if len(calls) == 1:
            raise _write_conflict()
        return await real_save_course(c, guard)

    repository.save_course = conflicting_once

    outcome = await service.register(user.user_id, "COURSE_TEST00000001")

    assert outcome.ok
    assert len(calls) == 2
    assert (await _stored_course(mongo_db))["current_enrollment"] == 1


async def test_transaction_hard_failure_is_storage_failure(
    mongo_db, service, transactional, course_factory, user_factory
):
    repository, _ = transactional
    await insert_course(mongo_db, course_factory())
    user = await insert_user(mongo_db, user_factory())
    repository.save_course = AsyncMock(side_effect=OperationFailure("not authorized", code=13))

    outcome = await service.register(user.user_id, "COURSE_TEST00000001")

    assert outcome.failure.reason is Reason.STORAGE_FAILURE
    assert repository.save_course.await_count == 1


# ==================== CONCURRENT REQUESTS ====================

async def test_concurrent_registrations_never_overbook(mongo_db, service, course_factory, user_factory):
    await insert_course(mongo_db, course_factory(enrollment_limit=2))
    users = [await insert_user(mongo_db, user_factory()) for _ in range(5)]

    outcomes = await asyncio.gather(
        *(service.register(u.user_id, "COURSE_TEST00000001") for u in users)
    )

    winners = [o for o in outcomes if o.ok]
    assert 1 <= len(winners) <= 2
    for o in outcomes:
        if not o.ok:
            assert o.failure.reason in (Reason.COURSE_FULL, Reason.CONCURRENT_UPDATE)

    course = await _stored_course(mongo_db)
    trained = await mongo_db.users.count_documents(
        {"training_info.course_id": "COURSE_TEST00000001"}
    )
    assert course["current_enrollment"] == len(course["registered_users"]) == trained == len(winners)


async def test_concurrent_code_generation_issues_one_code(mongo_db, service, enrolled):
    outcomes = await asyncio.gather(
        *(service.generate_code("COURSE_TEST00000001") for _ in range(4))
    )

    assert sum(o.ok for o in outcomes) == 1
    assert [o.failure.reason for o in outcomes if not o.ok] == [Reason.CODE_ALREADY_ACTIVE] * 3


async def test_concurrent_approval_and_validation_keep_both_updates(
    mongo_db, service, clock, course_factory, user_factory
):
    await insert_course(mongo_db, course_factory())
    first = await insert_user(mongo_db, user_factory())
    second = await insert_user(mongo_db, user_factory())
    for u in (first, second):
        assert (await service.register(u.user_id, "COURSE_TEST00000001")).ok
    clock.now = IN_SESSION_NOW
    await service.generate_code("COURSE_TEST00000001")
    await service.validate_code(
        "COURSE_TEST00000001", "4321", Attendee(user_id=first.user_id, email=first.email)
    )

    approved, validated = await asyncio.gather(
        service.decide(first.user_id, "COURSE_TEST00000001", "approve"),
        service.validate_code(
            "COURSE_TEST00000001", "4321", Attendee(user_id=second.user_id, email=second.email)
        ),
    )

    assert approved.ok and validated.ok
    course = await _stored_course(mongo_db)
    assert [e["user_id"] for e in course["waiting_for_approve_list"]] == [second.user_id]
    assert course["current_enrollment"] == 2
    stored_first = await mongo_db.users.find_one({"user_id": first.user_id})
    assert stored_first["status_end_date"] is not None
