"""MongoDB connection helpers.

Collections:
- account: patients who can log in and place orders
- product: drugs in the catalog
- order: checkouts placed by patients
"""

from datetime import datetime, timezone
from typing import Any

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database


def connect(database_url: str, database_name: str) -> Database:
    """Open a client for ``database_url``. pymongo connects lazily, on first use."""
    client = MongoClient(database_url, tz_aware=True)
    return client[database_name]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: str) -> ObjectId | None:
    """Parse a public id. Returns None for anything that is not an ObjectId."""
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def to_public(doc: dict) -> dict:
    """Replace Mongo's ``_id`` with a string ``id``."""
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    return doc


def create_document(db: Database, collection_name: str, data: BaseModel | dict) -> str:
    """Insert a document, stamping created_at/updated_at. Returns the new id."""
    if isinstance(data, BaseModel):
        data = data.model_dump()
    data = dict(data)
    now = utcnow()
    data.setdefault("created_at", now)
    data["updated_at"] = now
    data.pop("id", None)
    inserted_id = db[collection_name].insert_one(data).inserted_id
    return str(inserted_id)


def get_documents(
    db: Database,
    collection_name: str,
    filter_dict: dict[str, Any] | None = None,
    limit: int | None = None,
) -> list[dict]:
    """Return documents newest first, with string ids."""
    cursor = db[collection_name].find(filter_dict or {}).sort([("created_at", -1), ("_id", -1)])
    if limit:
        cursor = cursor.limit(limit)
    return [to_public(doc) for doc in cursor]
