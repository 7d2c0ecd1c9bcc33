"""
Enrollment & attendance endpoints

    POST /registerCourse   user registers for a course
    POST /generateCode     admin issues the attendance code for a running session
    POST /validateCode     attendee enters the code and joins the waiting list
    GET  /waitingList      admin view of everyone waiting for approval
    POST /action           admin approves or rejects a waiting entry
"""

from fastapi import APIRouter, Depends, HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel

from training_portal.auth.auth_utils import require_admin, verify_token
from training_portal.config import MONGO_TRANSACTIONS, ROLE_ADMIN
from training_portal.database import get_db
from training_portal.enrollment.errors import ErrorKind, Failure, Outcome
from training_portal.enrollment.models import ActiveCode, Attendee
from training_portal.enrollment.repository import EnrollmentRepository
from training_portal.enrollment.service import EnrollmentService

router = APIRouter(tags=["Enrollment"])

HTTP_STATUS = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.VALIDATION: 400,
    ErrorKind.STATE_CONFLICT: 409,
    ErrorKind.UNAUTHORIZED: 403,
    ErrorKind.INTERNAL: 500,
}


# ==================== PYDANTIC MODELS ====================

class RegisterCourseRequest(BaseModel):
    user_id: str
    course_id: str


class GenerateCodeRequest(BaseModel):
    course_id: str


class ValidateCodeRequest(BaseModel):
    course_id: str
    entered_code: str = ""


class ActionRequest(BaseModel):
    user_id: str
    course_id: str
    action: str


# ==================== HELPERS ====================

def get_enrollment_service(db: AsyncIOMotorDatabase = Depends(get_db)) -> EnrollmentService:
    return EnrollmentService(EnrollmentRepository(db, use_transactions=MONGO_TRANSACTIONS))


def raise_for_failure(outcome: Outcome) -> None:
    if outcome.ok:
        return
    failure: Failure = outcome.failure
    raise HTTPException(status_code=HTTP_STATUS[failure.kind], detail=failure.to_dict())


# ==================== API ENDPOINTS ====================

@router.post("/registerCourse")
async def register_course(
    data: RegisterCourseRequest,
    payload: dict = Depends(verify_token),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    # Admins may enroll someone else
    if data.user_id != payload["sub"] and payload.get("role") != ROLE_ADMIN:
        raise HTTPException(status_code=403, detail="Access denied")

    outcome = await service.register(data.user_id, data.course_id)
    raise_for_failure(outcome)
    return {
        "status": "success",
        "message": "Course registered successfully",
        "current_enrollment": outcome.value.course.current_enrollment,
    }


@router.post("/generateCode")
async def generate_code(
    data: GenerateCodeRequest,
    admin: dict = Depends(require_admin),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    outcome = await service.generate_code(data.course_id)
    raise_for_failure(outcome)
    code: ActiveCode = outcome.value.attendance_code
    return {
        "status": "success",
        "message": "Code generated successfully",
        "code": code.code,
        "issued_at": code.issued_at,
        "expires_at": code.expires_at,
    }


@router.post("/validateCode")
async def validate_code(
    data: ValidateCodeRequest,
    payload: dict = Depends(verify_token),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    attendee = Attendee(user_id=payload["sub"], email=payload.get("email", ""))
    outcome = await service.validate_code(data.course_id, data.entered_code, attendee)
    raise_for_failure(outcome)
    return {"status": "success", "message": "Code validated. Waiting for approval."}


@router.get("/waitingList")
async def waiting_list(
    admin: dict = Depends(require_admin),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    courses = await service.waiting_list()
    return {"status": "success", "data": courses}


@router.post("/action")
async def approval_action(
    data: ActionRequest,
    admin: dict = Depends(require_admin),
    service: EnrollmentService = Depends(get_enrollment_service),
):
    outcome = await service.decide(data.user_id, data.course_id, data.action)
    raise_for_failure(outcome)
    user = outcome.value.user
    return {
        "status": "success",
        "message": f"User {outcome.value.action.past_tense} successfully",
        "status_end_date": user.status_end_date,
        "status_expiration": user.status_expiration,
    }
