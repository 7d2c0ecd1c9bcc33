"""
Training Portal Configuration
Database, auth, attendance and third-party service settings
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("true", "on", "1", "yes")


# ==================== DATABASE ====================

MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "training_portal")

# Requires a replica set; standalone servers fall back to compensating writes
MONGO_TRANSACTIONS = _env_bool("MONGO_TRANSACTIONS")

# ==================== AUTH ====================

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "120"))
RESET_TOKEN_EXPIRE_MINUTES = int(os.getenv("RESET_TOKEN_EXPIRE_MINUTES", "60"))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "10"))

ROLE_USER = "user"
ROLE_ADMIN = "admin"

# ==================== ENROLLMENT ====================

# Course dates are entered as local wall-clock time; "now" is shifted by this
# many hours before it is compared against a session window.
ATTENDANCE_CLOCK_OFFSET_HOURS = float(os.getenv("ATTENDANCE_CLOCK_OFFSET_HOURS", "7"))
ENROLLMENT_MAX_RETRIES = int(os.getenv("ENROLLMENT_MAX_RETRIES", "3"))

ENROLLMENT_LIMIT_MIN = 1
ENROLLMENT_LIMIT_MAX = 99
COURSE_HOURS_MIN = 1
COURSE_HOURS_MAX = 24

STATUS_DURATION_FORMAT = "{years} ปี {months} เดือน {days} วัน"

# ==================== PAYMENTS (Razorpay) ====================

RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID")
RAZORPAY_KEY_SECRET = os.getenv("RAZORPAY_KEY_SECRET", "")
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "THB")

# ==================== EMAIL ====================

SMTP_HOST = os.getenv("SMTP_HOST", "localhost")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
SMTP_USE_TLS = _env_bool("SMTP_USE_TLS", "true")
EMAIL_FROM = os.getenv("EMAIL_FROM", "noreply@training-portal.local")

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# ==================== IMAGE STORAGE (S3) ====================

S3_BUCKET_NAME = os.getenv("S3_BUCKET_NAME", "training-portal-images")
AWS_REGION = os.getenv("AWS_REGION", "ap-southeast-1")
AWS_ACCESS_KEY_ID = os.getenv("AWS_ACCESS_KEY_ID")
AWS_SECRET_ACCESS_KEY = os.getenv("AWS_SECRET_ACCESS_KEY")
# Public URL prefix (CDN in front of the bucket); defaults to the bucket URL
IMAGE_BASE_URL = os.getenv(
    "IMAGE_BASE_URL", f"https://{S3_BUCKET_NAME}.s3.{AWS_REGION}.amazonaws.com"
)
MAX_IMAGE_BYTES = 5 * 1024 * 1024

# ==================== SERVER ====================

CORS_ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOWED_ORIGINS", FRONTEND_URL).split(",")
    if origin.strip()
]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
VERSION = os.getenv("VERSION")
