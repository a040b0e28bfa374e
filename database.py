"""
Database helpers

Connects to MongoDB from environment variables and exposes a few helpers used
by every router. Each Pydantic model in schemas.py maps to one collection
(collection name = lowercase class name).
"""
import logging
import os
from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from dotenv import load_dotenv
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL") or os.getenv("MONGODB_URI")
DATABASE_NAME = os.getenv("DATABASE_NAME", "woodart")

db = None
if DATABASE_URL:
    try:
        _client = MongoClient(DATABASE_URL, tz_aware=True)
        db = _client[DATABASE_NAME]
    except Exception as e:
        logger.error("Could not connect to MongoDB: %s", e)
        db = None


def get_db():
    """FastAPI dependency returning the configured database."""
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value, label: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail=f"Invalid {label}")


def is_object_id(value) -> bool:
    return isinstance(value, str) and ObjectId.is_valid(value)


def create_document(database, collection_name: str, data) -> str:
    """Insert a model or dict, stamping created_at/updated_at. Returns the new id."""
    if isinstance(data, BaseModel):
        data = data.model_dump()
    else:
        data = dict(data)
    now = utcnow()
    data.setdefault("created_at", now)
    data["updated_at"] = now
    result = database[collection_name].insert_one(data)
    return str(result.inserted_id)


def get_documents(database, collection_name: str, filter_dict: Optional[dict] = None,
                  sort=None, limit: int = 0):
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def touch(update: dict) -> dict:
    """Add updated_at to a $set payload."""
    update = dict(update)
    update["updated_at"] = utcnow()
    return update


def ensure_indexes(database):
    """Create the unique and lookup indexes every collection relies on."""
    database["user"].create_index("email", unique=True)
    database["design"].create_index("item_code", unique=True, sparse=True)
    database["design"].create_index("designer_id")
    database["order"].create_index("order_id", unique=True)
    database["order"].create_index("customer_id")
    database["customorder"].create_index("order_id", unique=True, sparse=True)
    database["cart"].create_index("user_id", unique=True)
    database["stock"].create_index(
        [("material", ASCENDING), ("board_size", ASCENDING),
         ("thickness", ASCENDING), ("color", ASCENDING)],
        unique=True,
    )
    database["stockrelease"].create_index("designer_email")
    database["stockrelease"].create_index([("release_date", DESCENDING)])
    database["designerpayment"].create_index(
        [("order_id", ASCENDING), ("order_item_id", ASCENDING)], unique=True
    )
    database["purchaseorder"].create_index("po_code", unique=True, sparse=True)
    database["supplierpayment"].create_index("transaction_id", unique=True)
    database["staffdesignersalary"].create_index("transaction_id", unique=True, sparse=True)
    database["staffdesignersalary"].create_index(
        [("staff_designer_email", ASCENDING), ("year", ASCENDING), ("month", ASCENDING)],
        unique=True,
    )
    database["materialrequest"].create_index("status")
    database["materialrequest"].create_index([("created_at", DESCENDING)])
