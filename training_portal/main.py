import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from training_portal.auth.auth_router import router as auth_router
from training_portal.config import CORS_ALLOWED_ORIGINS, LOG_LEVEL
from training_portal.courses.course_router import router as course_router
from training_portal.database import create_indexes, db
from training_portal.enrollment.enrollment_router import router as enrollment_router
from training_portal.media.carousel_router import router as carousel_router
from training_portal.payments.checkout_router import router as checkout_router
from training_portal.system.health_router import router as health_router
from training_portal.users.user_router import router as user_router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Training Portal API")


@app.on_event("startup")
async def startup_event():
    await create_indexes(db)
    logger.info("Training Portal API started")


app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== ROUTER REGISTRATION ====================
app.include_router(auth_router)
app.include_router(user_router)
app.include_router(course_router)
app.include_router(enrollment_router)
app.include_router(checkout_router)
app.include_router(carousel_router)
app.include_router(health_router)
