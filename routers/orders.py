import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.concurrency import run_in_threadpool
from pymongo.database import Database

from auth import utils as auth_utils
from database import get_db, serialize
from schemas import OrderCreate, OrderStatusUpdate
from services import orders as order_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["Orders"])


@router.post("/create-order", status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    request: Request,
    db: Database = Depends(get_db),
    current_user: Optional[Dict] = Depends(auth_utils.get_optional_user),
):
    """
    Guests can order too: without a valid token the order is tracked by guestId.
    """
    order = await run_in_threadpool(
        order_service.create_order,
        db,
        payload,
        user=current_user,
        referer=request.headers.get("referer"),
    )
    return serialize(order)


@router.get("/my-orders")
def get_my_orders(
    guestId: Optional[str] = None,
    db: Database = Depends(get_db),
    current_user: Optional[Dict] = Depends(auth_utils.get_optional_user),
):
    if current_user:
        query = {"user_id": str(current_user["_id"])}
    elif guestId:
        query = {"guest_id": guestId}
    else:
        logger.info("my-orders called without user or guest id")
        return []
    return serialize(order_service.list_orders(db, query))


@router.get("/orders")
def get_orders(db: Database = Depends(get_db), admin: Dict = Depends(auth_utils.get_admin_user)):
    return serialize(order_service.list_orders(db))


@router.get("/order/{order_id}")
def get_order_by_id(order_id: str, db: Database = Depends(get_db)):
    order = order_service.get_order(db, order_id)
    return serialize(order_service.with_products(db, [order])[0])


@router.put("/order/{order_id}")
def update_order_status(
    order_id: str,
    payload: OrderStatusUpdate,
    db: Database = Depends(get_db),
    admin: Dict = Depends(auth_utils.get_admin_user),
):
    return serialize(order_service.update_status(db, order_id, payload.status))


@router.delete("/order/{order_id}")
def delete_order(
    order_id: str,
    db: Database = Depends(get_db),
    admin: Dict = Depends(auth_utils.get_admin_user),
):
    order_service.delete_order(db, order_id)
    return {"message": "Order deleted successfully"}
