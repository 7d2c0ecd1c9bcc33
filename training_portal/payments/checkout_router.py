"""
Course checkout through Razorpay orders

    POST /create-checkout-session   open an order for a course price
    GET  /checkout-session/{id}     order state from Razorpay plus our record
    POST /checkout-session/verify   signature check after the client pays

Verify can be called more than once for the same order.
"""

import asyncio
import hashlib
import hmac
import logging
from datetime import datetime, timezone
from typing import Optional

import razorpay
from fastapi import APIRouter, Depends, HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel

from training_portal.auth.auth_utils import verify_token
from training_portal.config import PAYMENT_CURRENCY, RAZORPAY_KEY_ID, RAZORPAY_KEY_SECRET
from training_portal.database import get_db, serialize_mongo

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Payment"])

STATUS_CREATED = "created"
STATUS_PAID = "paid"

_client: Optional[razorpay.Client] = None


def get_razorpay_client() -> razorpay.Client:
    global _client
    if _client is None:
        _client = razorpay.Client(auth=(RAZORPAY_KEY_ID, RAZORPAY_KEY_SECRET))
    return _client


# ==================== PYDANTIC MODELS ====================

class CheckoutRequest(BaseModel):
    course_id: str


class PaymentVerifyRequest(BaseModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


# ==================== HELPER FUNCTIONS ====================

def to_minor_units(price: float) -> int:
    """THB -> satang"""
    return int(round(price * 100))


def verify_razorpay_signature(order_id: str, payment_id: str, signature: str) -> bool:
    message = f"{order_id}|{payment_id}"
    generated_signature = hmac.new(
        RAZORPAY_KEY_SECRET.encode(),
        message.encode(),
        hashlib.sha256,
    ).hexdigest()
    return hmac.compare_digest(generated_signature, signature)


# ==================== API ENDPOINTS ====================

@router.post("/create-checkout-session")
async def create_checkout_session(
    data: CheckoutRequest,
    payload: dict = Depends(verify_token),
    db: AsyncIOMotorDatabase = Depends(get_db),
    client: razorpay.Client = Depends(get_razorpay_client),
):
    try:
        user_id = payload["sub"]
        course = await db.courses.find_one({"course_id": data.course_id})
        if not course:
            raise HTTPException(status_code=404, detail="Course not found")

        amount = to_minor_units(course.get("price", 0))
        if amount <= 0:
            raise HTTPException(status_code=400, detail="This course does not require payment")

        order_data = {
            "amount": amount,
            "currency": PAYMENT_CURRENCY,
            "receipt": f"{data.course_id}_{int(datetime.now(timezone.utc).timestamp())}",
            "notes": {"user_id": user_id, "course_id": data.course_id},
        }
        order = await asyncio.to_thread(client.order.create, data=order_data)

        await db.payments.insert_one({
            "razorpay_order_id": order["id"],
            "user_id": user_id,
            "course_id": data.course_id,
            "amount": amount,
            "currency": PAYMENT_CURRENCY,
            "status": STATUS_CREATED,
            "created_at": datetime.now(timezone.utc),
        })

        logger.info("Checkout order %s opened for %s/%s", order["id"], user_id, data.course_id)
        return {
            "status": "success",
            "order_id": order["id"],
            "amount": amount,
            "currency": PAYMENT_CURRENCY,
            "key_id": RAZORPAY_KEY_ID,
        }

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Failed to create checkout session")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/checkout-session/{order_id}")
async def get_checkout_session(
    order_id: str,
    payload: dict = Depends(verify_token),
    db: AsyncIOMotorDatabase = Depends(get_db),
    client: razorpay.Client = Depends(get_razorpay_client),
):
    try:
        record = await db.payments.find_one({"razorpay_order_id": order_id})
        if not record:
            raise HTTPException(status_code=404, detail="Session not found")

        order = await asyncio.to_thread(client.order.fetch, order_id)
        return {
            "status": "success",
            "data": {"order": order, "payment": serialize_mongo(record)},
        }

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Failed to fetch checkout session %s", order_id)
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/checkout-session/verify")
async def verify_checkout(
    data: PaymentVerifyRequest,
    payload: dict = Depends(verify_token),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    record = await db.payments.find_one({
        "razorpay_order_id": data.razorpay_order_id,
        "user_id": payload["sub"],
    })
    if not record:
        raise HTTPException(status_code=404, detail="Payment record not found")

    if record.get("status") == STATUS_PAID:
        return {
            "status": "success",
            "message": "Payment already verified",
            "course_id": record["course_id"],
            "already_verified": True,
        }

    if not verify_razorpay_signature(
        data.razorpay_order_id, data.razorpay_payment_id, data.razorpay_signature
    ):
        raise HTTPException(status_code=400, detail="Invalid payment signature")

    await db.payments.update_one(
        {"razorpay_order_id": data.razorpay_order_id, "status": STATUS_CREATED},
        {"$set": {
            "status": STATUS_PAID,
            "razorpay_payment_id": data.razorpay_payment_id,
            "paid_at": datetime.now(timezone.utc),
        }},
    )

    logger.info("Payment %s verified for order %s", data.razorpay_payment_id, data.razorpay_order_id)
    return {
        "status": "success",
        "message": "Payment verified",
        "course_id": record["course_id"],
        "already_verified": False,
    }
