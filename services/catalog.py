import logging
import re
from typing import Any, Dict, List, Optional

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import is_object_id, to_object_id, utcnow
from errors import ConflictError, NotFoundError, ValidationError
from schemas import VALID_SIZES, ProductCreate, ProductUpdate, ReviewCreate

logger = logging.getLogger(__name__)

HEX_COLOR_RE = re.compile(r"^#[0-9A-F]{6}$", re.IGNORECASE)
REQUIRED_FIELDS = (
    "product_name",
    "product_base_price",
    "product_discounted_price",
    "product_images",
    "category",
    "brand_name",
    "product_code",
    "shipping",
    "payment",
)


def _check_category(db: Database, category: str, subcategories: Optional[List[str]]) -> None:
    if not is_object_id(category):
        raise ValidationError("Invalid category ID or category is a subcategory")
    parent = db.categories.find_one({"_id": to_object_id(category)})
    if not parent or parent.get("parent_category"):
        raise ValidationError("Invalid category ID or category is a subcategory")
    if subcategories:
        ids = [to_object_id(s, "subcategory ID") for s in subcategories]
        found = db.categories.count_documents({"_id": {"$in": ids}, "parent_category": category})
        if found != len(subcategories):
            raise ValidationError("Invalid subcategories or they do not belong to the specified category")


def _check_fields(fields: Dict[str, Any]) -> None:
    """Validates whichever product fields are present in `fields`."""
    for key in ("product_base_price", "product_discounted_price"):
        if key in fields and (fields[key] is None or fields[key] <= 0):
            raise ValidationError("Prices must be valid positive numbers")
    if "shipping" in fields and (fields["shipping"] is None or fields["shipping"] < 0):
        raise ValidationError("Shipping cost must be a non-negative number")
    if "product_stock" in fields and (fields["product_stock"] is None or fields["product_stock"] < 0):
        raise ValidationError("Stock must be a non-negative number")
    for size in fields.get("sizes") or []:
        if size["size"] not in VALID_SIZES or size["stock"] < 0:
            raise ValidationError("Invalid size or stock value. Sizes must be S, M, L, or XL.")
    if "payment" in fields and not fields["payment"]:
        raise ValidationError("At least one payment method is required")
    if fields.get("bg_color") and not HEX_COLOR_RE.match(fields["bg_color"]):
        raise ValidationError("Invalid background color format. Use a hex code (e.g., #FFFFFF)")


def _check_prices(base: float, discounted: float) -> None:
    if discounted > base:
        raise ValidationError("Discounted price cannot be higher than base price")


def with_categories(db: Database, products: List[Dict]) -> List[Dict]:
    ids = set()
    for p in products:
        ids.update(c for c in [p.get("category"), *(p.get("subcategories") or [])] if is_object_id(c))
    categories = {
        str(c["_id"]): c for c in db.categories.find({"_id": {"$in": [to_object_id(i) for i in ids]}})
    } if ids else {}
    for p in products:
        p["category"] = categories.get(str(p.get("category")), p.get("category"))
        p["subcategories"] = [categories.get(str(s), s) for s in p.get("subcategories") or []]
    return products


def get_product(db: Database, product_id: str) -> Dict:
    product = db.products.find_one({"_id": to_object_id(product_id, "product ID")})
    if not product:
        raise NotFoundError("Product not found")
    return product


def create_product(db: Database, payload: ProductCreate) -> Dict:
    fields = payload.model_dump()
    if any(fields.get(key) in (None, "") for key in REQUIRED_FIELDS):
        raise ValidationError("Please provide all required fields")

    _check_category(db, fields["category"], fields["subcategories"])
    _check_fields(fields)
    _check_prices(fields["product_base_price"], fields["product_discounted_price"])

    now = utcnow()
    product = {
        **fields,
        "product_stock": fields["product_stock"] or 0,
        "rating": fields["rating"] or 4,
        "bg_color": fields["bg_color"] or "#FFFFFF",
        "reviews": [],
        "createdAt": now,
        "updatedAt": now,
    }
    try:
        product["_id"] = db.products.insert_one(product).inserted_id
    except DuplicateKeyError:
        raise ConflictError(f"Product code {fields['product_code']} already exists")
    logger.info("Created product %s (%s)", product["_id"], product["product_code"])
    return product


def update_product(db: Database, product_id: str, payload: ProductUpdate) -> Dict:
    product = get_product(db, product_id)
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)

    if "category" in changes or "subcategories" in changes:
        category = changes.get("category") or product["category"]
        _check_category(db, category, changes.get("subcategories", product.get("subcategories")))
    _check_fields(changes)
    _check_prices(
        changes.get("product_base_price", product["product_base_price"]),
        changes.get("product_discounted_price", product["product_discounted_price"]),
    )

    if not changes:
        return product
    changes["updatedAt"] = utcnow()
    try:
        db.products.update_one({"_id": product["_id"]}, {"$set": changes})
    except DuplicateKeyError:
        raise ConflictError(f"Product code {changes.get('product_code')} already exists")
    return get_product(db, product_id)


def delete_product(db: Database, product_id: str) -> None:
    product = get_product(db, product_id)
    db.reviews.delete_many({"product_id": product_id})
    db.carts.delete_many({"product_id": product_id})
    db.products.delete_one({"_id": product["_id"]})
    logger.info("Deleted product %s", product_id)


def products_in_category(db: Database, category_id: str) -> List[Dict]:
    products = list(db.products.find({"$or": [{"category": category_id}, {"subcategories": category_id}]}))
    if not products:
        raise NotFoundError("No products found in this category or subcategory")
    return products


# --- Reviews ---

def submit_review(db: Database, product_id: str, payload: ReviewCreate) -> Dict:
    if not payload.user_id or not payload.rating or not payload.comment:
        raise ValidationError("User ID, rating, and comment are required")
    user = db.users.find_one({"_id": to_object_id(payload.user_id, "user ID")})
    if not user:
        raise NotFoundError("User not found")
    product = get_product(db, product_id)

    if db.reviews.find_one({"user_id": payload.user_id, "product_id": product_id}):
        raise ConflictError("You have already reviewed this product")

    review = {
        "user_id": payload.user_id,
        "username": user.get("username"),
        "product_id": product_id,
        "rating": payload.rating,
        "comment": payload.comment,
        "createdAt": utcnow(),
    }
    review["_id"] = db.reviews.insert_one(review).inserted_id

    ratings = [r["rating"] for r in db.reviews.find({"product_id": product_id}, {"rating": 1})]
    db.products.update_one(
        {"_id": product["_id"]},
        {
            "$push": {"reviews": str(review["_id"])},
            "$set": {"rating": sum(ratings) / len(ratings)},
        },
    )
    return review


def list_reviews(db: Database, product_id: str) -> List[Dict]:
    get_product(db, product_id)
    return list(db.reviews.find({"product_id": product_id}).sort("createdAt", -1))
