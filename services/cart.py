import logging
from typing import Dict, List, Optional

from pymongo.database import Database

from database import to_object_id, utcnow
from errors import NotFoundError, ValidationError
from schemas import CartItemIn

logger = logging.getLogger(__name__)


def owner_filter(user: Optional[Dict], guest_id: Optional[str]) -> Dict:
    """Signed-in shoppers own their cart by user id, everyone else by guest id."""
    if user:
        return {"user_id": str(user["_id"])}
    if guest_id:
        return {"guest_id": guest_id}
    raise ValidationError("User or guest ID required")


def list_items(db: Database, owner: Dict) -> List[Dict]:
    items = list(db.carts.find(owner).sort("createdAt", 1))
    ids = list({to_object_id(i["product_id"]) for i in items})
    products = {str(p["_id"]): p for p in db.products.find({"_id": {"$in": ids}})} if ids else {}
    for item in items:
        item["product"] = products.get(item["product_id"])
    return items


def _line_key(owner: Dict, item: CartItemIn) -> Dict:
    return {
        **owner,
        "product_id": item.product_id,
        "selected_image": item.selected_image,
        "selected_size": item.selected_size or None,
    }


def add_item(db: Database, owner: Dict, item: CartItemIn) -> List[Dict]:
    if not item.product_id or not item.selected_image:
        raise ValidationError("Product ID and selected image are required")

    product = db.products.find_one({"_id": to_object_id(item.product_id, "product ID")})
    if not product:
        raise NotFoundError("Product not found")

    if product.get("sizes") and not item.selected_size:
        raise ValidationError("Please select a size for this product")
    if item.selected_size:
        bucket = next((s for s in product.get("sizes") or [] if s.get("size") == item.selected_size), None)
        if not bucket or bucket.get("stock", 0) <= 0:
            raise ValidationError("Selected size is invalid or out of stock")
    elif product.get("product_stock", 0) <= 0:
        raise ValidationError("Product is out of stock")

    now = utcnow()
    result = db.carts.update_one(
        _line_key(owner, item),
        {
            "$inc": {"quantity": item.quantity},
            "$set": {"updatedAt": now},
            "$setOnInsert": {"createdAt": now},
        },
        upsert=True,
    )
    if result.upserted_id is not None:
        logger.info("New cart line for %s: product %s", owner, item.product_id)
    return list_items(db, owner)


def remove_item(db: Database, owner: Dict, item: CartItemIn) -> List[Dict]:
    if not item.product_id or not item.selected_image:
        raise ValidationError("Product ID and selected image are required")
    to_object_id(item.product_id, "product ID")

    line = db.carts.find_one(_line_key(owner, item))
    if not line:
        raise NotFoundError("Cart item not found")

    if line["quantity"] > 1:
        db.carts.update_one(
            {"_id": line["_id"], "quantity": {"$gt": 1}},
            {"$inc": {"quantity": -1}, "$set": {"updatedAt": utcnow()}},
        )
    else:
        db.carts.delete_one({"_id": line["_id"]})
    return list_items(db, owner)


def clear(db: Database, owner: Dict) -> int:
    return db.carts.delete_many(owner).deleted_count
