from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Cookie, Depends, Header, HTTPException
from jose import JWTError, jwt

from training_portal.config import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    JWT_ALGORITHM,
    JWT_SECRET_KEY,
    RESET_TOKEN_EXPIRE_MINUTES,
    ROLE_ADMIN,
)

TOKEN_COOKIE = "token"
RESET_PURPOSE = "password_reset"


def _encode(claims: dict, lifetime: timedelta) -> str:
    payload = dict(claims)
    payload["exp"] = datetime.now(timezone.utc) + lifetime
    return jwt.encode(payload, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def create_access_token(user_id: str, email: str, role: str) -> str:
    return _encode(
        {"sub": user_id, "email": email, "role": role},
        timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def create_reset_token(user_id: str, email: str) -> str:
    return _encode(
        {"sub": user_id, "email": email, "purpose": RESET_PURPOSE},
        timedelta(minutes=RESET_TOKEN_EXPIRE_MINUTES),
    )


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or Expired Token")


def verify_token(
    authorization: Optional[str] = Header(None),
    token: Optional[str] = Cookie(None),
) -> dict:
    """Bearer header first, login cookie as a fallback"""
    if authorization and authorization.startswith("Bearer "):
        raw = authorization.split(" ")[1]
    elif token:
        raw = token
    else:
        raise HTTPException(status_code=401, detail="Unauthorized")

    payload = decode_token(raw)
    # Reset links must not double as sessions
    if payload.get("purpose") == RESET_PURPOSE or not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid or Expired Token")
    return payload


async def require_admin(payload: dict = Depends(verify_token)) -> dict:
    if payload.get("role") != ROLE_ADMIN:
        raise HTTPException(status_code=403, detail="Access denied")
    return payload
