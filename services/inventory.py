"""
Stock reservation for orders.

Stock is taken with one conditional update per (product, size) bucket: the
filter only matches while the bucket still holds enough units, so two
requests racing for the last unit cannot both succeed. A multi-line order
that fails half-way gives back what it already took.
"""
import logging
from typing import Dict, List, Optional

from pymongo.database import Database

from database import to_object_id
from errors import ConflictError

logger = logging.getLogger(__name__)


def merge_lines(lines: List[Dict]) -> List[Dict]:
    """Sums quantities of lines hitting the same product bucket."""
    merged: Dict[tuple, Dict] = {}
    for line in lines:
        key = (str(line["product_id"]), line.get("selected_size") or None)
        if key in merged:
            merged[key]["quantity"] += line["quantity"]
        else:
            merged[key] = {
                "product_id": key[0],
                "selected_size": key[1],
                "quantity": line["quantity"],
            }
    return list(merged.values())


def available_units(product: Dict, size: Optional[str]) -> int:
    if size:
        bucket = next((s for s in product.get("sizes") or [] if s.get("size") == size), None)
        return bucket["stock"] if bucket else 0
    return product.get("product_stock", 0)


def shortage_message(product: Optional[Dict], line: Dict) -> str:
    if product is None:
        return f"Product with ID {line['product_id']} not found"
    size = line.get("selected_size")
    units = available_units(product, size)
    if size:
        return f"Product {product['product_name']} size {size} has only {units} units in stock"
    return f"Product {product['product_name']} has only {units} units in stock"


def _take(db: Database, line: Dict) -> bool:
    product_id = to_object_id(line["product_id"], "product ID")
    quantity = line["quantity"]
    if line.get("selected_size"):
        result = db.products.update_one(
            {
                "_id": product_id,
                "sizes": {"$elemMatch": {"size": line["selected_size"], "stock": {"$gte": quantity}}},
            },
            {"$inc": {"sizes.$.stock": -quantity}},
        )
    else:
        result = db.products.update_one(
            {"_id": product_id, "product_stock": {"$gte": quantity}},
            {"$inc": {"product_stock": -quantity}},
        )
    return result.matched_count == 1


def _give_back(db: Database, line: Dict) -> None:
    product_id = to_object_id(line["product_id"], "product ID")
    quantity = line["quantity"]
    if line.get("selected_size"):
        db.products.update_one(
            {"_id": product_id, "sizes.size": line["selected_size"]},
            {"$inc": {"sizes.$.stock": quantity}},
        )
    else:
        db.products.update_one({"_id": product_id}, {"$inc": {"product_stock": quantity}})


def reserve(db: Database, lines: List[Dict]) -> List[Dict]:
    """
    Decrements stock for every line or for none of them.

    Returns the merged lines that were taken, which is what `restore` expects
    when the caller has to undo the reservation later.
    """
    taken: List[Dict] = []
    try:
        for line in merge_lines(lines):
            if _take(db, line):
                taken.append(line)
                continue

            product = db.products.find_one({"_id": to_object_id(line["product_id"], "product ID")})
            message = shortage_message(product, line)
            logger.info("Stock reservation rejected: %s", message)
            raise ConflictError(message)
    except Exception:
        # storage errors mid-loop give back what was taken too
        restore(db, taken)
        raise
    return taken


def restore(db: Database, lines: List[Dict]) -> None:
    for line in merge_lines(lines):
        _give_back(db, line)
    if lines:
        logger.info("Restored stock for %d line(s)", len(lines))
