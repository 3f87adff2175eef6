# routers/users.py

from typing import Dict

from fastapi import APIRouter, BackgroundTasks, Depends, status
from pymongo.database import Database

from auth import utils as auth_utils
from config import settings
from database import get_db, serialize
from errors import NotFoundError
from schemas import DiscountCheck, SubscribeRequest
from services import discounts

router = APIRouter(prefix="/api/users", tags=["Users"])


@router.post("/subscribe", status_code=status.HTTP_201_CREATED)
def subscribe(
    payload: SubscribeRequest,
    background_tasks: BackgroundTasks,
    db: Database = Depends(get_db),
):
    """
    Newsletter sign-up. Every email gets exactly one discount code, which is
    mailed to it and never returned in the response.
    """
    discount = discounts.issue_code(db, payload.email)
    background_tasks.add_task(
        auth_utils.send_discount_email, discount["email"], discount["code"], discount["expiresAt"]
    )
    return {
        "message": "Subscribed successfully. Your discount code has been sent to your email.",
        "expiresAt": discount["expiresAt"].isoformat(),
    }


@router.post("/validate-discount")
def validate_discount(payload: DiscountCheck, db: Database = Depends(get_db)):
    discount = discounts.check_code(db, payload.code, payload.email)
    return {
        "valid": True,
        "code": discount["code"],
        "discount_percent": settings.DISCOUNT_PERCENT,
        "expiresAt": discount["expiresAt"].isoformat(),
    }


@router.get("/all-users")
def get_all_users(db: Database = Depends(get_db), admin: Dict = Depends(auth_utils.get_admin_user)):
    users = list(db.users.find({}, {"username": 1, "email": 1, "role": 1}))
    if not users:
        raise NotFoundError("No users found")
    return serialize(users)
