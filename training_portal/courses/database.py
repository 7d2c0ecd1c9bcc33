import uuid
from datetime import datetime, timezone
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from training_portal.courses.models import CourseCreate
from training_portal.enrollment.models import Course

PUBLIC_FIELDS = {"_id": 0, "version": 0}

# ==================== COURSE CRUD ====================

def new_course_id() -> str:
    return f"COURSE_{uuid.uuid4().hex[:12].upper()}"


async def create_course(db: AsyncIOMotorDatabase, data: CourseCreate, image_url: str) -> str:
    """
    Create new course
    Starts unpublished with no seats taken and no attendance code.
    """
    course = Course(
        course_id=new_course_id(),
        image_url=image_url,
        is_published=False,
        created_at=datetime.now(timezone.utc),
        **data.model_dump(),
    )
    await db.courses.insert_one(course.to_document())
    return course.course_id


async def get_course(db: AsyncIOMotorDatabase, course_id: str) -> Optional[dict]:
    """Get course by ID"""
    return await db.courses.find_one({"course_id": course_id}, PUBLIC_FIELDS)


async def list_courses(db: AsyncIOMotorDatabase, published_only: bool = False) -> List[dict]:
    query = {"is_published": True} if published_only else {}
    cursor = db.courses.find(query, PUBLIC_FIELDS).sort("course_date", 1)
    return await cursor.to_list(length=None)


async def update_course(db: AsyncIOMotorDatabase, course_id: str, changes: dict) -> bool:
    """
    Apply catalog changes
    A new enrollment limit must still fit everyone already registered.
    """
    query = {"course_id": course_id}
    if "enrollment_limit" in changes:
        query["current_enrollment"] = {"$lte": changes["enrollment_limit"]}

    result = await db.courses.update_one(
        query,
        # Enrollment writes are conditional on version
        {"$set": changes, "$inc": {"version": 1}},
    )
    return result.matched_count == 1
