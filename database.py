"""
MongoDB access for the storefront.

``db`` is ``None`` when DATABASE_URL / DATABASE_NAME are not configured;
route handlers obtain the database through the ``get_db`` dependency so
tests can swap in another one.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, MongoClient

from config import DATABASE_URL, DATABASE_NAME
from errors import AppError, ValidationError

logger = logging.getLogger(__name__)

_client = None
db = None

if DATABASE_URL and DATABASE_NAME:
    _client = MongoClient(DATABASE_URL)
    db = _client[DATABASE_NAME]


class DatabaseUnavailable(AppError):
    status_code = 503


def get_db():
    if db is None:
        raise DatabaseUnavailable("Database unavailable")
    return db


def now() -> datetime:
    return datetime.now(timezone.utc)


def parse_object_id(value: str, label: str = "ID") -> ObjectId:
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise ValidationError(f"Invalid {label}")


def is_object_id(value: str) -> bool:
    return ObjectId.is_valid(str(value))


def to_public_doc(doc: Optional[dict]) -> Optional[dict]:
    """Rename ``_id`` to ``id`` and stringify every ObjectId in the document."""
    if doc is None:
        return None
    d = {}
    for key, value in doc.items():
        if key == "_id":
            d["id"] = str(value)
        else:
            d[key] = _public_value(value)
    return d


def _public_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return to_public_doc(value)
    if isinstance(value, list):
        return [_public_value(v) for v in value]
    return value


def create_document(database, collection_name: str, data: Dict[str, Any]) -> Dict[str, Any]:
    doc = dict(data)
    doc.setdefault("created_at", now())
    doc.setdefault("updated_at", doc["created_at"])
    res = database[collection_name].insert_one(doc)
    doc["_id"] = res.inserted_id
    return doc


def get_documents(database, collection_name: str, filter_dict: Optional[dict] = None,
                  sort_newest: bool = True) -> List[Dict[str, Any]]:
    cursor = database[collection_name].find(filter_dict or {})
    if sort_newest:
        cursor = cursor.sort([("created_at", -1)])
    return list(cursor)


def ensure_indexes(database):
    database["user"].create_index([("email", ASCENDING)], unique=True)
    database["cart"].create_index([("user_id", ASCENDING)], unique=True)
    database["fragrance"].create_index([("name", ASCENDING)], unique=True)
    database["order"].create_index([("user_id", ASCENDING), ("created_at", -1)])
    database["review"].create_index([("item_id", ASCENDING)])
    logger.info("indexes ensured on %s", getattr(database, "name", "database"))
