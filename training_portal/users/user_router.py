import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, Field
from pymongo.errors import DuplicateKeyError

from training_portal.auth.auth_utils import require_admin, verify_token
from training_portal.config import ROLE_ADMIN
from training_portal.database import get_db
from training_portal.media.image_storage import (
    AVATAR_FOLDER,
    ImageStorage,
    get_image_storage,
    upload_image_file,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Users"])

HIDDEN_FIELDS = {"_id": 0, "password": 0, "version": 0}


class VerifyIdRequest(BaseModel):
    idcard: str = Field(min_length=1)


@router.get("/user")
async def get_me(payload: dict = Depends(verify_token), db: AsyncIOMotorDatabase = Depends(get_db)):
    user = await db.users.find_one({"user_id": payload["sub"]}, HIDDEN_FIELDS)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return {"status": "success", "data": user}


@router.get("/users/{user_id}")
async def get_user(
    user_id: str,
    payload: dict = Depends(verify_token),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    if user_id != payload["sub"] and payload.get("role") != ROLE_ADMIN:
        raise HTTPException(status_code=403, detail="Access denied")

    user = await db.users.find_one({"user_id": user_id}, HIDDEN_FIELDS)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return {"status": "success", "data": user}


@router.get("/users")
async def list_users(admin: dict = Depends(require_admin), db: AsyncIOMotorDatabase = Depends(get_db)):
    users = await db.users.find({}, HIDDEN_FIELDS).to_list(length=None)
    return {"status": "success", "data": users}


@router.post("/user/updateUser")
async def update_user(
    user_id: Optional[str] = Form(None),
    name: Optional[str] = Form(None),
    phonenumber: Optional[str] = Form(None),
    idcard: Optional[str] = Form(None),
    company: Optional[str] = Form(None),
    avatar: Optional[UploadFile] = File(None),
    payload: dict = Depends(verify_token),
    db: AsyncIOMotorDatabase = Depends(get_db),
    storage: ImageStorage = Depends(get_image_storage),
):
    """Profile update; admins may update someone else by passing user_id"""
    target_id = user_id or payload["sub"]
    if target_id != payload["sub"] and payload.get("role") != ROLE_ADMIN:
        raise HTTPException(status_code=403, detail="Access denied")

    user = await db.users.find_one({"user_id": target_id})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    submitted = {"name": name, "phonenumber": phonenumber, "idcard": idcard, "company": company}
    updates = {
        field: value
        for field, value in submitted.items()
        if value is not None and value != user.get(field)
    }

    if avatar is not None and avatar.filename:
        updates["avatar"] = await upload_image_file(
            storage, avatar, AVATAR_FOLDER, public_id=f"{target_id}_avatar"
        )

    if not updates:
        raise HTTPException(status_code=400, detail="No changes were made to the user")

    try:
        # Any write to a user document must move its version
        await db.users.update_one(
            {"user_id": target_id},
            {"$set": updates, "$inc": {"version": 1}},
        )
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Phone number or ID card is already in use")

    logger.info("Updated user %s fields %s", target_id, sorted(updates))
    return {"status": "success", "message": "User updated successfully"}


@router.post("/verify-id")
async def verify_id(
    data: VerifyIdRequest,
    payload: dict = Depends(verify_token),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    user = await db.users.find_one({"idcard": data.idcard})
    if not user:
        raise HTTPException(status_code=404, detail="ID Card not found in the system.")
    if user["user_id"] != payload["sub"]:
        raise HTTPException(status_code=403, detail="The provided ID Card does not belong to you.")
    return {"status": "success", "message": "ID Card verified successfully."}
