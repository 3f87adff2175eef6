"""
Order workflow.

create_order validates the request, reserves stock, claims the discount code
and stores the order. Every mutating step has an undo, so a request that
fails leaves products and codes as it found them. Cart clearing and the
analytics event only run once the order exists.
"""
import logging
import re
from decimal import Decimal
from typing import Dict, List, Optional

from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import is_object_id, to_object_id, utcnow
from errors import ConflictError, InternalError, NotFoundError, ValidationError
from schemas import ORDER_STATUSES, OrderCreate
from services import analytics, discounts, inventory

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^\+?\d{10,15}$")


def _money(value) -> Decimal:
    return Decimal(str(value or 0))


def _validate_request(payload: OrderCreate) -> None:
    if not payload.products:
        raise ValidationError("No products provided for order")
    if not payload.shipping_address:
        raise ValidationError("Shipping address is required")
    if not payload.order_email:
        raise ValidationError("Email address is required")
    if not payload.phone_number:
        raise ValidationError("Phone number is required")
    if not payload.full_name:
        raise ValidationError("Full name is required")
    if not EMAIL_RE.match(payload.order_email):
        raise ValidationError("Invalid email address")
    if not PHONE_RE.match(payload.phone_number):
        raise ValidationError("Invalid phone number")
    for item in payload.products:
        if not item.product_id or not item.quantity or not item.selected_image:
            raise ValidationError("Each product must have product_id, quantity, and selected_image")
        if item.quantity < 1:
            raise ValidationError("Quantity must be at least 1")


def _load_products(db: Database, payload: OrderCreate) -> Dict[str, Dict]:
    """Fetches every product once and checks the requested quantities against it."""
    products: Dict[str, Dict] = {}
    requested: Dict[tuple, int] = {}
    for item in payload.products:
        product = products.get(item.product_id)
        if product is None:
            product = db.products.find_one({"_id": to_object_id(item.product_id, "product ID")})
            if not product:
                raise NotFoundError(f"Product with ID {item.product_id} not found")
            products[item.product_id] = product

        name = product["product_name"]
        if product.get("sizes"):
            if not item.selected_size:
                raise ValidationError(f"Product {name} requires a size selection")
            if not any(s.get("size") == item.selected_size for s in product["sizes"]):
                raise ValidationError(f"Product {name} has invalid size {item.selected_size}")
            size = item.selected_size
        else:
            size = None

        # repeated lines draw from the same bucket
        key = (item.product_id, size)
        requested[key] = requested.get(key, 0) + item.quantity
        line = {"product_id": item.product_id, "selected_size": size, "quantity": requested[key]}
        if inventory.available_units(product, size) < requested[key]:
            raise ConflictError(inventory.shortage_message(product, line))
    return products


def _line_items(payload: OrderCreate, products: Dict[str, Dict]) -> List[Dict]:
    return [
        {
            "product_id": item.product_id,
            "quantity": item.quantity,
            "selected_image": item.selected_image,
            # a size sent for an unsized product is dropped
            "selected_size": item.selected_size if products[item.product_id].get("sizes") else None,
        }
        for item in payload.products
    ]


def _log_order_placed(db: Database, order: Dict, products: Dict[str, Dict], user: Optional[Dict], referer: Optional[str]):
    lines = []
    for line in order["products"]:
        product = products.get(line["product_id"]) or {}
        images = product.get("product_images") or []
        image = line["selected_image"]
        if images and image not in images:
            image = images[0]
        lines.append({
            "product_id": line["product_id"],
            "product_name": product.get("product_name"),
            "selected_image": image,
            "quantity": line["quantity"],
        })
    try:
        analytics.record_activity(db, {
            "user_id": order.get("user_id"),
            "user_display": (user or {}).get("username") or order["full_name"] or order["order_email"],
            "guest_id": order.get("guest_id"),
            "event_type": "order_placed",
            "url": referer,
            "data": {
                "order_id": str(order["_id"]),
                "products": lines,
                "total_amount": order["total_amount"],
            },
        })
    except Exception as e:
        logger.warning("Analytics log for order %s failed: %s", order["_id"], e)


def create_order(
    db: Database,
    payload: OrderCreate,
    user: Optional[Dict] = None,
    referer: Optional[str] = None,
) -> Dict:
    user_id = str(user["_id"]) if user else None
    guest_id = payload.guestId if not user_id else None

    _validate_request(payload)
    products = _load_products(db, payload)
    lines = _line_items(payload, products)

    subtotal = sum(
        (_money(products[line["product_id"]]["product_discounted_price"]) * line["quantity"] for line in lines),
        Decimal(0),
    )
    shipping_total = sum(
        (_money(products[line["product_id"]].get("shipping")) * line["quantity"] for line in lines),
        Decimal(0),
    )
    if payload.total_amount is not None and _money(payload.total_amount) != subtotal:
        logger.warning("Client subtotal %s differs from computed %s; using computed", payload.total_amount, subtotal)

    original_total = subtotal + shipping_total
    final_subtotal = subtotal
    discount_code = discounts.normalize_code(payload.discount_code) if payload.discount_code and payload.discount_code.strip() else None
    if discount_code:
        # cheap early rejection before any stock moves; the claim below is the real check
        discounts.check_code(db, discount_code, payload.order_email)
        final_subtotal = discounts.apply_discount(subtotal)
    final_total = final_subtotal + shipping_total

    reserved = inventory.reserve(db, lines)
    try:
        if discount_code:
            discounts.claim_code(db, discount_code, payload.order_email)
    except Exception:
        inventory.restore(db, reserved)
        raise

    now = utcnow()
    order = {
        "user_id": user_id,
        "guest_id": guest_id,
        "full_name": payload.full_name,
        "products": lines,
        "subtotal_amount": float(subtotal),
        "total_amount": float(final_total),
        "original_amount": float(original_total),
        "shipping_amount": float(shipping_total),
        "discount_applied": discount_code is not None,
        "discount_code": discount_code,
        "shipping_address": payload.shipping_address,
        "order_email": payload.order_email,
        "phone_number": payload.phone_number,
        "status": "pending",
        "payment_status": "completed",
        "createdAt": now,
        "updatedAt": now,
    }
    try:
        order["_id"] = db.orders.insert_one(order).inserted_id
    except PyMongoError:
        logger.exception("Storing order failed, rolling back stock and discount")
        inventory.restore(db, reserved)
        if discount_code:
            discounts.release_code(db, discount_code, payload.order_email)
        raise InternalError("Failed to create order")

    if user_id:
        db.carts.delete_many({"user_id": user_id})
    elif guest_id:
        db.carts.delete_many({"guest_id": guest_id})

    logger.info("Order %s created (total %s, discount %s)", order["_id"], order["total_amount"], discount_code)
    _log_order_placed(db, order, products, user, referer)
    return order


# --- Reads & admin actions ---

def with_products(db: Database, orders: List[Dict]) -> List[Dict]:
    """Embeds the current product document in each order line."""
    ids = {
        to_object_id(line["product_id"])
        for order in orders
        for line in order.get("products", [])
        if is_object_id(line.get("product_id"))
    }
    catalog = {str(p["_id"]): p for p in db.products.find({"_id": {"$in": list(ids)}})} if ids else {}
    for order in orders:
        for line in order.get("products", []):
            line["product"] = catalog.get(str(line["product_id"]))
    return orders


def get_order(db: Database, order_id: str) -> Dict:
    order = db.orders.find_one({"_id": to_object_id(order_id, "order ID")})
    if not order:
        raise NotFoundError("Order not found")
    return order


def list_orders(db: Database, query: Optional[Dict] = None) -> List[Dict]:
    return with_products(db, list(db.orders.find(query or {}).sort("createdAt", -1)))


def update_status(db: Database, order_id: str, status: Optional[str]) -> Dict:
    order = get_order(db, order_id)
    if status not in ORDER_STATUSES:
        raise ValidationError("Invalid status")
    db.orders.update_one({"_id": order["_id"]}, {"$set": {"status": status, "updatedAt": utcnow()}})
    order["status"] = status
    logger.info("Order %s moved to %s", order["_id"], status)
    return order


def delete_order(db: Database, order_id: str) -> None:
    order = get_order(db, order_id)
    # only the request that actually removes the order gives stock back
    result = db.orders.delete_one({"_id": order["_id"]})
    if result.deleted_count == 1:
        inventory.restore(db, order.get("products", []))
        logger.info("Order %s deleted, stock restored", order["_id"])
