"""
Account registration, login and password reset
"""

import logging
import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Response
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, Field
from pymongo.errors import DuplicateKeyError

from training_portal.auth.auth_utils import (
    RESET_PURPOSE,
    TOKEN_COOKIE,
    create_access_token,
    create_reset_token,
    decode_token,
    verify_token,
)
from training_portal.auth.passwords import hash_password, verify_password
from training_portal.config import ACCESS_TOKEN_EXPIRE_MINUTES, ROLE_USER
from training_portal.database import get_db
from training_portal.enrollment.models import User
from training_portal.notifications.email_service import EmailService, get_email_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Auth"])

UNIQUE_USER_FIELDS = ("email", "phonenumber", "idcard")


# ==================== PYDANTIC MODELS ====================

class RegisterRequest(BaseModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=1)
    phonenumber: str = Field(min_length=1)
    idcard: str = Field(min_length=1)
    company: str = Field(min_length=1)
    password: str = Field(min_length=1)


class LoginRequest(BaseModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class ForgotPasswordRequest(BaseModel):
    email: str = Field(min_length=1)


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1)
    new_password: str = Field(min_length=1)


# ==================== HELPERS ====================

async def create_user_account(db: AsyncIOMotorDatabase, data: RegisterRequest) -> str:
    """Insert a new user; 400 naming the field that is already taken."""
    existing = await db.users.find_one(
        {"$or": [{field: getattr(data, field)} for field in UNIQUE_USER_FIELDS]}
    )
    if existing:
        conflict = next(
            (f for f in UNIQUE_USER_FIELDS if existing.get(f) == getattr(data, f)),
            "email",
        )
        raise HTTPException(
            status_code=400,
            detail=f"This {conflict} is already in use. Please check again",
        )

    user = User(
        user_id=str(uuid.uuid4()),
        name=data.name,
        email=data.email,
        role=ROLE_USER,
        phonenumber=data.phonenumber,
        idcard=data.idcard,
        company=data.company,
        status="Active",
    )
    doc = user.to_document()
    doc["password"] = hash_password(data.password)
    doc["created_at"] = datetime.now(timezone.utc)

    try:
        await db.users.insert_one(doc)
    except DuplicateKeyError:
        # Lost a race against a concurrent sign-up with the same details
        raise HTTPException(status_code=400, detail="Account details are already in use")

    logger.info("Registered user %s", user.user_id)
    return user.user_id


# ==================== API ENDPOINTS ====================

@router.post("/auth/register")
async def register(data: RegisterRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    user_id = await create_user_account(db, data)
    return {"status": "success", "message": "User registered successfully", "user_id": user_id}


@router.post("/createAccount")
async def create_account(data: RegisterRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    """Same as /auth/register, kept for the admin console"""
    user_id = await create_user_account(db, data)
    return {"status": "success", "message": "User registered successfully", "user_id": user_id}


@router.post("/auth/login")
async def login(
    data: LoginRequest,
    response: Response,
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    user = await db.users.find_one({"email": data.email})
    if not user:
        raise HTTPException(status_code=400, detail="User not found.")

    if not verify_password(data.password, user.get("password")):
        raise HTTPException(status_code=400, detail="Invalid Password.")

    token = create_access_token(user["user_id"], user["email"], user.get("role", ROLE_USER))
    response.set_cookie(
        TOKEN_COOKIE,
        token,
        max_age=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        secure=True,
        samesite="strict",
    )

    logger.info("User %s logged in", user["user_id"])
    return {
        "status": "success",
        "message": "Login successful",
        "access_token": token,
        "token_type": "bearer",
    }


@router.post("/auth/logout")
async def logout(response: Response, payload: dict = Depends(verify_token)):
    response.delete_cookie(TOKEN_COOKIE, secure=True, samesite="strict")
    return {"status": "success", "message": "Logged out successfully"}


@router.post("/auth/forgot-password")
async def forgot_password(
    data: ForgotPasswordRequest,
    db: AsyncIOMotorDatabase = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    user = await db.users.find_one({"email": data.email})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    reset_token = create_reset_token(user["user_id"], user["email"])
    if not await email_service.send_password_reset(user["email"], reset_token):
        raise HTTPException(status_code=500, detail="Failed to send password reset email")

    return {"status": "success", "message": "Password reset email sent"}


@router.post("/auth/reset-password")
async def reset_password(data: ResetPasswordRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    try:
        payload = decode_token(data.token)
    except HTTPException:
        raise HTTPException(status_code=400, detail="Invalid or expired token")

    if payload.get("purpose") != RESET_PURPOSE:
        raise HTTPException(status_code=400, detail="Invalid or expired token")

    result = await db.users.update_one(
        {"user_id": payload.get("sub")},
        {"$set": {"password": hash_password(data.new_password)}},
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=400, detail="Invalid or expired token")

    logger.info("Password reset for user %s", payload.get("sub"))
    return {"status": "success", "message": "Password reset successful"}
