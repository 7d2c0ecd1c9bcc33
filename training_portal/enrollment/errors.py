"""
Enrollment error taxonomy and typed results

Core operations never raise for business-rule violations. They return an
Outcome holding either the new state or a Failure with a stable reason,
its error kind and a human-readable message.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    VALIDATION = "validation_error"
    STATE_CONFLICT = "state_conflict"
    UNAUTHORIZED = "unauthorized"
    INTERNAL = "internal"


class Reason(str, Enum):
    # not found
    COURSE_NOT_FOUND = "course_not_found"
    USER_NOT_FOUND = "user_not_found"
    USER_OR_COURSE_NOT_FOUND = "user_or_course_not_found"
    # validation
    CODE_REQUIRED = "code_required"
    INVALID_ACTION = "invalid_action"
    # state conflicts
    REGISTRATION_CLOSED = "registration_closed"
    ALREADY_REGISTERED = "already_registered"
    SCHEDULE_CONFLICT = "schedule_conflict"
    COURSE_FULL = "course_full"
    OUT_OF_WINDOW = "out_of_window"
    WINDOW_EXPIRED = "window_expired"
    CODE_ALREADY_ACTIVE = "code_already_active"
    ALREADY_PENDING = "already_pending"
    # unauthorized
    CODE_MISMATCH = "code_mismatch"
    NOT_REGISTERED = "not_registered"
    # internal
    CONCURRENT_UPDATE = "concurrent_update"
    PARTIAL_WRITE = "partial_write"
    STORAGE_FAILURE = "storage_failure"


REASON_KINDS = {
    Reason.COURSE_NOT_FOUND: ErrorKind.NOT_FOUND,
    Reason.USER_NOT_FOUND: ErrorKind.NOT_FOUND,
    Reason.USER_OR_COURSE_NOT_FOUND: ErrorKind.NOT_FOUND,
    Reason.CODE_REQUIRED: ErrorKind.VALIDATION,
    Reason.INVALID_ACTION: ErrorKind.VALIDATION,
    Reason.REGISTRATION_CLOSED: ErrorKind.STATE_CONFLICT,
    Reason.ALREADY_REGISTERED: ErrorKind.STATE_CONFLICT,
    Reason.SCHEDULE_CONFLICT: ErrorKind.STATE_CONFLICT,
    Reason.COURSE_FULL: ErrorKind.STATE_CONFLICT,
    Reason.OUT_OF_WINDOW: ErrorKind.STATE_CONFLICT,
    Reason.WINDOW_EXPIRED: ErrorKind.STATE_CONFLICT,
    Reason.CODE_ALREADY_ACTIVE: ErrorKind.STATE_CONFLICT,
    Reason.ALREADY_PENDING: ErrorKind.STATE_CONFLICT,
    Reason.CODE_MISMATCH: ErrorKind.UNAUTHORIZED,
    Reason.NOT_REGISTERED: ErrorKind.UNAUTHORIZED,
    Reason.CONCURRENT_UPDATE: ErrorKind.INTERNAL,
    Reason.PARTIAL_WRITE: ErrorKind.INTERNAL,
    Reason.STORAGE_FAILURE: ErrorKind.INTERNAL,
}

DEFAULT_MESSAGES = {
    Reason.COURSE_NOT_FOUND: "Course not found.",
    Reason.USER_NOT_FOUND: "User not found.",
    Reason.USER_OR_COURSE_NOT_FOUND: "User or course not found.",
    Reason.CODE_REQUIRED: "Code is required.",
    Reason.INVALID_ACTION: "Invalid action. 'approve' or 'reject' is required.",
    Reason.REGISTRATION_CLOSED: "Registration is not open during this period.",
    Reason.ALREADY_REGISTERED: "Course already registered.",
    Reason.SCHEDULE_CONFLICT: "Another registered course starts at the same time.",
    Reason.COURSE_FULL: "Course is fully booked.",
    Reason.OUT_OF_WINDOW: "Code cannot be generated before the course starts.",
    Reason.WINDOW_EXPIRED: "The course session window has expired.",
    Reason.CODE_ALREADY_ACTIVE: "Code has already been generated for this course period.",
    Reason.ALREADY_PENDING: "User already in the waiting list for approval.",
    Reason.CODE_MISMATCH: "Invalid code entered.",
    Reason.NOT_REGISTERED: "You are not registered for this course.",
    Reason.CONCURRENT_UPDATE: "The record was modified concurrently. Please retry.",
    Reason.PARTIAL_WRITE: "Enrollment was only partially saved. Please retry.",
    Reason.STORAGE_FAILURE: "Storage is unavailable. Please retry.",
}


@dataclass(frozen=True)
class Failure:
    reason: Reason
    message: str

    @property
    def kind(self) -> ErrorKind:
        return REASON_KINDS[self.reason]

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "reason": self.reason.value,
            "message": self.message,
        }


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Either a value or a failure, never both"""

    value: Optional[T] = None
    failure: Optional[Failure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, reason: Reason, message: Optional[str] = None) -> "Outcome[T]":
        return cls(failure=Failure(reason, message or DEFAULT_MESSAGES[reason]))


class PartialWriteError(Exception):
    """Raised by storage when a two-document commit could not be completed or undone."""
