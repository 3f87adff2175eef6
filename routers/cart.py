from typing import Dict, Optional

from fastapi import APIRouter, Depends
from pymongo.database import Database

from auth import utils as auth_utils
from database import get_db, serialize
from schemas import CartItemIn
from services import cart as cart_service

router = APIRouter(prefix="/api/products", tags=["Cart"])


@router.post("/cart")
def add_to_cart(
    item: CartItemIn,
    db: Database = Depends(get_db),
    current_user: Optional[Dict] = Depends(auth_utils.get_optional_user),
):
    owner = cart_service.owner_filter(current_user, item.guestId)
    return serialize(cart_service.add_item(db, owner, item))


@router.get("/cart")
def get_my_cart(
    guestId: Optional[str] = None,
    db: Database = Depends(get_db),
    current_user: Optional[Dict] = Depends(auth_utils.get_optional_user),
):
    owner = cart_service.owner_filter(current_user, guestId)
    return serialize(cart_service.list_items(db, owner))


@router.post("/cart/remove")
def remove_from_cart(
    item: CartItemIn,
    db: Database = Depends(get_db),
    current_user: Optional[Dict] = Depends(auth_utils.get_optional_user),
):
    owner = cart_service.owner_filter(current_user, item.guestId)
    return serialize(cart_service.remove_item(db, owner, item))


@router.delete("/cart/clear")
def clear_cart(
    guestId: Optional[str] = None,
    db: Database = Depends(get_db),
    current_user: Optional[Dict] = Depends(auth_utils.get_optional_user),
):
    owner = cart_service.owner_filter(current_user, guestId)
    cart_service.clear(db, owner)
    return []
