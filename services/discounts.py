"""
Newsletter discount codes: issued once per email, redeemed at most once by
that same email, and only before `expiresAt`.
"""
import logging
import secrets
import string
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from config import settings
from database import utcnow
from errors import ConflictError, InternalError

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 8
CENT = Decimal("0.01")


def normalize_code(code: str) -> str:
    return code.strip().upper()


def normalize_email(email: str) -> str:
    return email.strip().lower()


def generate_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def apply_discount(subtotal: Decimal) -> Decimal:
    rate = Decimal(100 - settings.DISCOUNT_PERCENT) / Decimal(100)
    return (subtotal * rate).quantize(CENT, rounding=ROUND_HALF_UP)


def issue_code(db: Database, email: str) -> Dict:
    """One code per email. The upsert makes the existence check and the insert a single step."""
    email = normalize_email(email)
    now = utcnow()
    for _ in range(5):
        code = generate_code()
        try:
            result = db.discount_codes.update_one(
                {"email": email},
                {
                    "$setOnInsert": {
                        "email": email,
                        "code": code,
                        "isUsed": False,
                        "createdAt": now,
                        "expiresAt": now + timedelta(days=settings.DISCOUNT_CODE_TTL_DAYS),
                    }
                },
                upsert=True,
            )
        except DuplicateKeyError:
            # generated code collided with an existing one
            continue
        if result.upserted_id is None:
            raise ConflictError("This email is already subscribed", status_code=409)
        logger.info("Issued discount code for %s", email)
        return db.discount_codes.find_one({"_id": result.upserted_id})
    raise InternalError("Could not generate a unique discount code")


def _rejection(db: Database, code: str, email: str) -> ConflictError:
    discount = db.discount_codes.find_one({"code": code, "email": email})
    if not discount:
        return ConflictError("Invalid or expired discount code")
    if discount.get("isUsed"):
        return ConflictError("Discount code has already been used")
    return ConflictError("Discount code has expired")


def check_code(db: Database, code: str, email: str) -> Dict:
    """Read-only validity check; nothing is consumed."""
    code, email = normalize_code(code), normalize_email(email)
    discount = db.discount_codes.find_one({"code": code, "email": email})
    if not discount or discount.get("isUsed") or discount["expiresAt"] <= utcnow():
        raise _rejection(db, code, email)
    return discount


def claim_code(db: Database, code: str, email: str) -> Dict:
    """Flips isUsed false -> true in one conditional update. Exactly one caller wins."""
    code, email = normalize_code(code), normalize_email(email)
    now = utcnow()
    discount = db.discount_codes.find_one_and_update(
        {"code": code, "email": email, "isUsed": False, "expiresAt": {"$gt": now}},
        {"$set": {"isUsed": True, "usedAt": now}},
        return_document=ReturnDocument.AFTER,
    )
    if discount is None:
        error = _rejection(db, code, email)
        logger.info("Discount claim rejected for %s: %s", email, error.message)
        raise error
    logger.info("Discount code %s claimed by %s", code, email)
    return discount


def release_code(db: Database, code: str, email: str) -> None:
    """Undo of a claim when the order it was claimed for could not be stored."""
    db.discount_codes.update_one(
        {"code": normalize_code(code), "email": normalize_email(email), "isUsed": True},
        {"$set": {"isUsed": False}, "$unset": {"usedAt": ""}},
    )
