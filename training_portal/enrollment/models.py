from datetime import datetime, timedelta, timezone
from typing import Annotated, List, Literal, Optional, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator


def as_utc(value: datetime) -> datetime:
    """Mongo hands back naive UTC datetimes; make every instant UTC-aware."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


# ==================== EMBEDDED DOCUMENTS ====================

class ApplicationPeriod(BaseModel):
    start_date: UtcDatetime
    end_date: UtcDatetime

    @model_validator(mode="after")
    def check_order(self):
        if self.start_date >= self.end_date:
            raise ValueError("start_date must be earlier than end_date")
        return self

    def is_open(self, now: datetime) -> bool:
        return self.start_date <= now <= self.end_date


class RegisteredUser(BaseModel):
    """User summary kept on the course"""
    user_id: str
    name: str
    email: str
    phonenumber: Optional[str] = None
    idcard: Optional[str] = None
    company: Optional[str] = None


class TrainingRecord(BaseModel):
    """Course summary kept on the user"""
    course_id: str
    course_name: str
    description: str = ""
    location: str = ""
    course_image: Optional[str] = None
    course_date: UtcDatetime
    hours: int


class WaitingEntry(BaseModel):
    user_id: str
    email: str
    timestamp: UtcDatetime


class Attendee(BaseModel):
    """Identity of the person typing an attendance code"""
    user_id: str
    email: str


# ==================== ATTENDANCE CODE STATES ====================

class NoCode(BaseModel):
    state: Literal["none"] = "none"


class ActiveCode(BaseModel):
    state: Literal["active"] = "active"
    code: str
    issued_at: UtcDatetime
    expires_at: UtcDatetime


AttendanceCode = Annotated[Union[NoCode, ActiveCode], Field(discriminator="state")]


# ==================== TOP-LEVEL DOCUMENTS ====================

class Document(BaseModel):
    model_config = ConfigDict(extra="ignore")

    # Bumped on every conditional write
    version: int = 0

    def to_document(self) -> dict:
        return self.model_dump()


class Course(Document):
    course_id: str
    course_name: str
    course_code: str = ""
    description: str = ""
    location: str = ""
    image_url: Optional[str] = None
    price: float = 0
    course_tag: List[str] = Field(default_factory=list)
    enrollment_limit: int = Field(ge=1)
    current_enrollment: int = Field(default=0, ge=0)
    course_date: UtcDatetime
    hours: int = Field(gt=0)
    application_period: ApplicationPeriod
    attendance_code: AttendanceCode = Field(default_factory=NoCode)
    registered_users: List[RegisteredUser] = Field(default_factory=list)
    waiting_for_approve_list: List[WaitingEntry] = Field(default_factory=list)
    is_published: bool = False
    created_at: Optional[UtcDatetime] = None

    @property
    def session_start(self) -> datetime:
        return self.course_date

    @property
    def session_end(self) -> datetime:
        return self.course_date + timedelta(hours=self.hours)

    @property
    def is_full(self) -> bool:
        return self.current_enrollment >= self.enrollment_limit

    def in_session(self, instant: datetime) -> bool:
        return self.session_start <= instant <= self.session_end

    def is_registered(self, user_id: str) -> bool:
        return any(u.user_id == user_id for u in self.registered_users)

    def is_pending(self, user_id: str) -> bool:
        return any(e.user_id == user_id for e in self.waiting_for_approve_list)

    def without_pending(self, user_id: str) -> "Course":
        remaining = [e for e in self.waiting_for_approve_list if e.user_id != user_id]
        return self.model_copy(update={"waiting_for_approve_list": remaining})

    def training_record(self) -> TrainingRecord:
        return TrainingRecord(
            course_id=self.course_id,
            course_name=self.course_name,
            description=self.description,
            location=self.location,
            course_image=self.image_url,
            course_date=self.course_date,
            hours=self.hours,
        )


class User(Document):
    user_id: str
    name: str
    email: str
    role: str = "user"
    phonenumber: str = ""
    idcard: str = ""
    company: str = ""
    avatar: Optional[str] = None
    training_info: List[TrainingRecord] = Field(default_factory=list)
    status_start_date: Optional[UtcDatetime] = None
    status_end_date: Optional[UtcDatetime] = None
    status_duration: Optional[str] = None
    status_expiration: Optional[str] = None
    status: str = "Active"

    def has_training(self, course_id: str) -> bool:
        return any(t.course_id == course_id for t in self.training_info)

    def summary(self) -> RegisteredUser:
        return RegisteredUser(
            user_id=self.user_id,
            name=self.name,
            email=self.email,
            phonenumber=self.phonenumber,
            idcard=self.idcard,
            company=self.company,
        )
