import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from training_portal.config import VERSION
from training_portal.database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["System"])


@router.get("/health")
async def health(db: AsyncIOMotorDatabase = Depends(get_db)):
    record = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "status": {},
        "latency_ms": {},
    }

    start = time.perf_counter()
    try:
        await db.command("ping")
        record["status"]["database"] = "UP"
        record["latency_ms"]["database"] = round((time.perf_counter() - start) * 1000, 2)
    except PyMongoError as e:
        logger.error("Database ping failed: %s", e)
        record["status"]["database"] = "DOWN"
        return JSONResponse(status_code=503, content=record)

    return record


@router.get("/version")
async def version():
    return {"version": VERSION}
