import json
from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, Field

from training_portal.config import (
    COURSE_HOURS_MAX,
    COURSE_HOURS_MIN,
    ENROLLMENT_LIMIT_MAX,
    ENROLLMENT_LIMIT_MIN,
)
from training_portal.enrollment.models import ApplicationPeriod, UtcDatetime

# ==================== FORM FIELD PARSING ====================

def parse_course_tag(raw: str) -> List[str]:
    """courseTag arrives as a JSON list inside a multipart form"""
    try:
        tags = json.loads(raw)
    except (TypeError, ValueError):
        raise ValueError("Invalid courseTag format")
    if not isinstance(tags, list):
        raise ValueError("Invalid courseTag format")
    return [str(tag) for tag in tags]


def parse_application_period(raw: str) -> ApplicationPeriod:
    """{"from": ..., "to": ...} JSON; both ends required and from < to"""
    try:
        period = json.loads(raw)
    except (TypeError, ValueError):
        raise ValueError("Invalid applicationPeriod format")
    if not isinstance(period, dict) or not period.get("from") or not period.get("to"):
        raise ValueError("Both startDate and endDate are required in applicationPeriod")
    # pydantic checks the date formats and the ordering
    return ApplicationPeriod(start_date=period["from"], end_date=period["to"])


def _check_limit(v):
    if v is not None and not ENROLLMENT_LIMIT_MIN <= v <= ENROLLMENT_LIMIT_MAX:
        raise ValueError(
            f"Enrollment limit must be a valid number between "
            f"{ENROLLMENT_LIMIT_MIN} and {ENROLLMENT_LIMIT_MAX}"
        )
    return v


def _check_hours(v):
    if v is not None and not COURSE_HOURS_MIN <= v <= COURSE_HOURS_MAX:
        raise ValueError(
            f"Hours must be a valid number between {COURSE_HOURS_MIN} and {COURSE_HOURS_MAX}"
        )
    return v


EnrollmentLimit = Annotated[int, AfterValidator(_check_limit)]
CourseHours = Annotated[int, AfterValidator(_check_hours)]


# ==================== COURSE MODELS ====================

class CourseCreate(BaseModel):
    course_name: str = Field(min_length=1)
    course_code: str = Field(min_length=1)
    description: str = Field(min_length=1)
    location: str = Field(min_length=1)
    enrollment_limit: EnrollmentLimit
    price: float = Field(ge=0)
    hours: CourseHours
    course_date: UtcDatetime
    course_tag: List[str] = []
    application_period: ApplicationPeriod


class CourseUpdate(BaseModel):
    """Catalog fields only; enrollment state is never touched from here"""
    course_name: Optional[str] = None
    course_code: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    enrollment_limit: Optional[EnrollmentLimit] = None
    price: Optional[float] = Field(default=None, ge=0)
    hours: Optional[CourseHours] = None
    course_date: Optional[UtcDatetime] = None
    course_tag: Optional[List[str]] = None
    application_period: Optional[ApplicationPeriod] = None
    is_published: Optional[bool] = None

    def changes(self) -> dict:
        return self.model_dump(exclude_none=True)
