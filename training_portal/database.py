import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from training_portal.config import MONGO_DB_NAME, MONGO_URL

logger = logging.getLogger(__name__)

# MongoDB Connection
client = AsyncIOMotorClient(MONGO_URL, tz_aware=True)
db = client[MONGO_DB_NAME]


async def get_db() -> AsyncIOMotorDatabase:
    """Database dependency"""
    return db


def serialize_mongo(doc: dict) -> dict:
    """Drop internal fields so a document can go out as JSON"""
    if doc is None:
        return None
    doc = dict(doc)
    doc.pop("_id", None)
    doc.pop("password", None)
    doc.pop("version", None)
    return doc


# ==================== STARTUP: CREATE INDEXES ====================

async def create_indexes(database: AsyncIOMotorDatabase):
    """Create MongoDB indexes for data integrity"""
    try:
        await database.courses.create_index([("course_id", 1)], unique=True)
        await database.courses.create_index(
            [("course_id", 1), ("attendance_code.code", 1)]
        )

        await database.users.create_index([("user_id", 1)], unique=True)
        await database.users.create_index([("email", 1)], unique=True)
        await database.users.create_index([("phonenumber", 1)], unique=True)
        await database.users.create_index([("idcard", 1)], unique=True)

        await database.payments.create_index([("razorpay_order_id", 1)], unique=True)
        await database.payments.create_index([("user_id", 1)])

        await database.carousels.create_index([("carousel_id", 1)], unique=True)

        logger.info("MongoDB indexes created")
    except PyMongoError as e:
        logger.warning("Index creation warning: %s", e)
