# /bzcart/database.py

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.server_api import ServerApi

from config.settings import MONGO_DB_NAME, MONGO_URI
from errors import ValidationError

logger = logging.getLogger(__name__)

client: Optional[MongoClient] = None


def get_client() -> MongoClient:
    global client
    if client is None:
        client = MongoClient(MONGO_URI, server_api=ServerApi("1"))
    return client


def get_db() -> Database:
    """FastAPI dependency; tests override it with a mongomock database."""
    return get_client()[MONGO_DB_NAME]


def ping() -> bool:
    try:
        get_client().admin.command("ping")
        logger.info("Pinged MongoDB deployment, connection is healthy.")
        return True
    except Exception as e:
        logger.error("Could not connect to MongoDB: %s", e)
        return False


def ensure_indexes(db: Database) -> None:
    db.products.create_index("product_code", unique=True)
    db.products.create_index("category")
    db.discount_codes.create_index("code", unique=True)
    db.discount_codes.create_index("email", unique=True)
    db.discount_codes.create_index("isUsed")
    # expired codes are swept by the server
    db.discount_codes.create_index([("expiresAt", ASCENDING)], expireAfterSeconds=0)
    db.carts.create_index([("user_id", ASCENDING), ("guest_id", ASCENDING)])
    db.orders.create_index([("createdAt", ASCENDING)])
    db.activities.create_index([("createdAt", ASCENDING)])
    db.activities.create_index("event_type")
    db.users.create_index("email", unique=True)
    db.admins.create_index("email", unique=True)


def utcnow() -> datetime:
    # naive UTC, matching what pymongo hands back
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_object_id(value: Any, label: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise ValidationError(f"Invalid {label} format")


def is_object_id(value: Any) -> bool:
    return value is not None and ObjectId.is_valid(str(value))


def serialize(value: Any) -> Any:
    """Makes a Mongo document JSON friendly: ObjectIds to str, datetimes to ISO."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: serialize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [serialize(v) for v in value]
    return value
