"""
Training Portal - Test Configuration and Fixtures
"""
import os
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest

# Set testing environment before the app reads its config
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-key-for-testing"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["MONGO_TRANSACTIONS"] = "false"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"

from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from training_portal.auth.auth_utils import create_access_token
from training_portal.auth.passwords import hash_password
from training_portal.database import get_db
from training_portal.enrollment.enrollment_router import get_enrollment_service
from training_portal.enrollment.models import ApplicationPeriod, Course, User
from training_portal.enrollment.repository import EnrollmentRepository
from training_portal.enrollment.service import EnrollmentService
from training_portal.main import app
from training_portal.media.image_storage import ImageStorage, get_image_storage
from training_portal.notifications.email_service import EmailService, get_email_service

UTC = timezone.utc

# Registration is open through February, the session runs 2025-03-01 09:00-12:00 UTC
REGISTRATION_NOW = datetime(2025, 2, 1, tzinfo=UTC)
COURSE_DATE = datetime(2025, 3, 1, 9, 0, tzinfo=UTC)
IN_SESSION_NOW = COURSE_DATE + timedelta(hours=1)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def course_factory():
    def make(**overrides) -> Course:
        fields = {
            "course_id": "COURSE_TEST00000001",
            "course_name": "Forklift Safety",
            "course_code": "FS-101",
            "description": "Operating a forklift safely",
            "location": "Bangkok",
            "price": 1500,
            "enrollment_limit": 2,
            "course_date": COURSE_DATE,
            "hours": 3,
            "application_period": ApplicationPeriod(
                start_date=datetime(2025, 1, 1, tzinfo=UTC),
                end_date=datetime(2025, 2, 28, tzinfo=UTC),
            ),
            "is_published": True,
        }
        fields.update(overrides)
        return Course(**fields)

    return make


@pytest.fixture
def user_factory():
    counter = {"n": 0}

    def make(**overrides) -> User:
        counter["n"] += 1
        n = counter["n"]
        fields = {
            "user_id": f"user-{n}",
            "name": f"Trainee {n}",
            "email": f"trainee{n}@example.com",
            "phonenumber": f"08000000{n:02d}",
            "idcard": f"11000000000{n:02d}",
            "company": "Acme",
        }
        fields.update(overrides)
        return User(**fields)

    return make


# ==================== DATABASE ====================

@pytest.fixture
def mongo_db():
    """Fresh in-memory Motor database per test"""
    return AsyncMongoMockClient()["training_portal_test"]


@pytest.fixture
def clock():
    return FakeClock(REGISTRATION_NOW)


@pytest.fixture
def repository(mongo_db):
    return EnrollmentRepository(mongo_db, use_transactions=False)


@pytest.fixture
def service(repository, clock):
    return EnrollmentService(
        repository,
        clock=clock,
        code_factory=lambda: "4321",
        clock_offset=timedelta(0),
        max_retries=2,
    )


async def insert_course(db, course: Course) -> Course:
    await db.courses.insert_one(course.to_document())
    return course


async def insert_user(db, user: User, password: str = "secret123") -> User:
    doc = user.to_document()
    doc["password"] = hash_password(password)
    await db.users.insert_one(doc)
    return user


# ==================== HTTP ====================

@pytest.fixture
def image_storage():
    storage = AsyncMock(spec=ImageStorage)
    storage.upload.return_value = "https://images.test/CourseImage/uploaded.png"
    return storage


@pytest.fixture
def email_service():
    sender = AsyncMock(spec=EmailService)
    sender.send_password_reset.return_value = True
    return sender


@pytest.fixture
async def client(mongo_db, service, image_storage, email_service) -> AsyncGenerator[AsyncClient, None]:
    """Test client with database, storage and email overrides"""
    async def override_get_db():
        return mongo_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_enrollment_service] = lambda: service
    app.dependency_overrides[get_image_storage] = lambda: image_storage
    app.dependency_overrides[get_email_service] = lambda: email_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def auth_headers_for(user: User) -> dict:
    token = create_access_token(user.user_id, user.email, user.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def admin_user(mongo_db, user_factory) -> User:
    return await insert_user(mongo_db, user_factory(user_id="admin-1", role="admin"))


@pytest.fixture
def admin_headers(admin_user) -> dict:
    return auth_headers_for(admin_user)
