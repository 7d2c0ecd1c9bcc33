"""
Course catalog endpoints

Listing and lookup for signed-in users; create and update for admins.
Create/update arrive as multipart forms with courseTag and applicationPeriod
as JSON strings, and an optional course image.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError

from training_portal.auth.auth_utils import require_admin, verify_token
from training_portal.config import ROLE_ADMIN
from training_portal.courses.database import create_course, get_course, list_courses, update_course
from training_portal.courses.models import (
    CourseCreate,
    CourseUpdate,
    parse_application_period,
    parse_course_tag,
)
from training_portal.database import get_db
from training_portal.media.image_storage import (
    COURSE_IMAGE_FOLDER,
    ImageStorage,
    get_image_storage,
    upload_image_file,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Courses"])


def _validation_detail(error: ValueError) -> str:
    if isinstance(error, ValidationError):
        return "; ".join(e["msg"].removeprefix("Value error, ") for e in error.errors())
    return str(error)


# ==================== READ ====================

@router.get("/courses")
async def get_courses(payload: dict = Depends(verify_token), db: AsyncIOMotorDatabase = Depends(get_db)):
    """Admins see drafts too"""
    courses = await list_courses(db, published_only=payload.get("role") != ROLE_ADMIN)
    return {"status": "success", "data": courses}


@router.get("/courses/{course_id}")
async def get_course_by_id(
    course_id: str,
    payload: dict = Depends(verify_token),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    course = await get_course(db, course_id)
    if not course:
        raise HTTPException(status_code=404, detail="Course not found")
    return {"status": "success", "data": course}


# ==================== ADMIN WRITES ====================

@router.post("/createCourse")
async def create_course_endpoint(
    course_name: str = Form(...),
    course_code: str = Form(...),
    description: str = Form(...),
    location: str = Form(...),
    enrollment_limit: str = Form(...),
    price: str = Form(...),
    hours: str = Form(...),
    course_date: str = Form(...),
    course_tag: str = Form(...),
    application_period: str = Form(...),
    course_image: Optional[UploadFile] = File(None),
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
    storage: ImageStorage = Depends(get_image_storage),
):
    if course_image is None or not course_image.filename:
        raise HTTPException(status_code=400, detail="Missing required image file")

    try:
        data = CourseCreate(
            course_name=course_name,
            course_code=course_code,
            description=description,
            location=location,
            enrollment_limit=enrollment_limit,
            price=price,
            hours=hours,
            course_date=course_date,
            course_tag=parse_course_tag(course_tag),
            application_period=parse_application_period(application_period),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=_validation_detail(e))

    image_url = await upload_image_file(
        storage, course_image, COURSE_IMAGE_FOLDER, public_id="_".join(course_name.split())
    )
    course_id = await create_course(db, data, image_url)

    logger.info("Course %s created by %s", course_id, admin.get("sub"))
    return {"status": "success", "message": "Course created successfully", "course_id": course_id}


@router.post("/course/updateCourse")
async def update_course_endpoint(
    course_id: str = Form(...),
    course_name: Optional[str] = Form(None),
    course_code: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    enrollment_limit: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    hours: Optional[str] = Form(None),
    course_date: Optional[str] = Form(None),
    course_tag: Optional[str] = Form(None),
    application_period: Optional[str] = Form(None),
    is_published: Optional[bool] = Form(None),
    course_image: Optional[UploadFile] = File(None),
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
    storage: ImageStorage = Depends(get_image_storage),
):
    try:
        update = CourseUpdate(
            course_name=course_name,
            course_code=course_code,
            description=description,
            location=location,
            enrollment_limit=enrollment_limit,
            price=price,
            hours=hours,
            course_date=course_date,
            course_tag=parse_course_tag(course_tag) if course_tag else None,
            application_period=(
                parse_application_period(application_period) if application_period else None
            ),
            is_published=is_published,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=_validation_detail(e))

    existing = await get_course(db, course_id)
    if not existing:
        raise HTTPException(status_code=404, detail="Course not found")

    changes = update.changes()
    if course_image is not None and course_image.filename:
        changes["image_url"] = await upload_image_file(
            storage, course_image, COURSE_IMAGE_FOLDER, public_id=course_id
        )

    if not changes:
        raise HTTPException(status_code=400, detail="No changes were made to the course")

    if not await update_course(db, course_id, changes):
        raise HTTPException(
            status_code=409,
            detail="Enrollment limit cannot be lower than the current enrollment",
        )

    logger.info("Course %s updated by %s: %s", course_id, admin.get("sub"), sorted(changes))
    return {"status": "success", "message": "Course updated successfully"}
