"""
MongoDB connection and document helpers.

The connection is opened from DATABASE_URL / DATABASE_NAME. When either is
missing ``db`` is ``None`` and callers answer "Database not configured".
"""
import os
from datetime import datetime, timezone
from typing import Optional, Union

from bson.objectid import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database


def connect(database_url: Optional[str], database_name: Optional[str]) -> Optional[Database]:
    if not database_url or not database_name:
        return None
    client = MongoClient(database_url)
    return client[database_name]


db = connect(os.getenv("DATABASE_URL"), os.getenv("DATABASE_NAME"))


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: str) -> Optional[ObjectId]:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def serialize_doc(doc):
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.get("_id")
    if isinstance(_id, ObjectId):
        doc["id"] = str(_id)
        del doc["_id"]
    # convert datetimes
    for k, v in list(doc.items()):
        if isinstance(v, datetime):
            doc[k] = v.isoformat()
    return doc


def create_document(database: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    data = dict(data)
    data.pop("id", None)
    now = now_utc()
    data.setdefault("created_at", now)
    data["updated_at"] = now
    result = database[collection_name].insert_one(data)
    return str(result.inserted_id)


def get_documents(database: Database, collection_name: str, filter_dict: Optional[dict] = None,
                  limit: Optional[int] = None, sort_field: str = "created_at"):
    cursor = database[collection_name].find(filter_dict or {}).sort(sort_field, DESCENDING)
    if limit:
        cursor = cursor.limit(limit)
    return [serialize_doc(d) for d in cursor]


def ensure_indexes(database: Database) -> None:
    database["product"].create_index([("category", ASCENDING)])
    database["product"].create_index([("is_active", ASCENDING)])
    database["order"].create_index([("order_number", ASCENDING)], unique=True)
    database["order"].create_index([("customer_email", ASCENDING)])
    database["order"].create_index([("order_status", ASCENDING)])
    database["custom_request"].create_index([("customer_email", ASCENDING)])
    database["custom_request_comment"].create_index([("request_id", ASCENDING)])
    database["user_profile"].create_index([("email", ASCENDING)], unique=True)
    database["admin_log"].create_index([("timestamp", DESCENDING)])
    database["client_state"].create_index([("shopper_id", ASCENDING), ("key", ASCENDING)], unique=True)
    database["auth_user"].create_index([("email", ASCENDING)], unique=True)
    database["auth_session"].create_index([("session_id", ASCENDING)], unique=True)
