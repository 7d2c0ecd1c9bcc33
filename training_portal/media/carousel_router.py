import logging
import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from motor.motor_asyncio import AsyncIOMotorDatabase

from training_portal.auth.auth_utils import require_admin
from training_portal.database import get_db
from training_portal.media.image_storage import (
    CAROUSEL_FOLDER,
    ImageStorage,
    get_image_storage,
    upload_image_file,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Carousel"])


@router.get("/carousels")
async def get_carousels(db: AsyncIOMotorDatabase = Depends(get_db)):
    """Public: landing page slides"""
    carousels = await db.carousels.find({}, {"_id": 0}).sort("created_at", 1).to_list(length=None)
    return {"status": "success", "data": carousels}


@router.post("/createCarousel")
async def create_carousel(
    carousel_image: UploadFile = File(...),
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
    storage: ImageStorage = Depends(get_image_storage),
):
    carousel_id = str(uuid.uuid4())
    image_url = await upload_image_file(
        storage, carousel_image, CAROUSEL_FOLDER, public_id=f"carousel_{carousel_id}"
    )

    await db.carousels.insert_one({
        "carousel_id": carousel_id,
        "carousel_image_url": image_url,
        "created_at": datetime.now(timezone.utc),
    })

    logger.info("Carousel %s created", carousel_id)
    return {
        "status": "success",
        "message": "Carousel created successfully.",
        "carousel_id": carousel_id,
        "carousel_image_url": image_url,
    }


@router.delete("/carousels/{carousel_id}")
async def delete_carousel(
    carousel_id: str,
    admin: dict = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
    storage: ImageStorage = Depends(get_image_storage),
):
    carousel = await db.carousels.find_one_and_delete({"carousel_id": carousel_id})
    if not carousel:
        raise HTTPException(status_code=404, detail="Carousel not found")

    await storage.delete(carousel.get("carousel_image_url"))
    logger.info("Carousel %s deleted", carousel_id)
    return {"status": "success", "message": "Carousel deleted successfully."}
