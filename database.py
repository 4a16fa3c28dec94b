"""
MongoDB access

A single module-level handle, ``db``, plus small helpers around it. The handle
is None when DATABASE_URL or DATABASE_NAME is not configured.
"""
import datetime as dt
import logging
import math
from enum import Enum
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import MongoClient

import config

logger = logging.getLogger(__name__)


class DatabaseUnavailable(RuntimeError):
    pass


def connect(url=None, name=None):
    url = url or config.DATABASE_URL
    name = name or config.DATABASE_NAME
    if not url or not name:
        logger.warning("DATABASE_URL or DATABASE_NAME not set; running without a database")
        return None
    client = MongoClient(url, serverSelectionTimeoutMS=5000)
    logger.info("Using MongoDB database %s", name)
    return client[name]


db = connect()


def get_db():
    if db is None:
        raise DatabaseUnavailable("Database not available")
    return db


def object_id(value: str) -> Optional[ObjectId]:
    """ObjectId for ``value``, or None when it is not a valid id."""
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def to_document(value):
    """Make a value storable: dates become midnight datetimes, enums their value."""
    if isinstance(value, BaseModel):
        value = value.model_dump()
    if isinstance(value, dict):
        return {key: to_document(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_document(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dt.date) and not isinstance(value, dt.datetime):
        return dt.datetime.combine(value, dt.time.min)
    return value


def serialize(doc):
    if not doc:
        return doc
    d = dict(doc)
    if "_id" in d:
        d["_id"] = str(d["_id"])
    return d


def create_document(collection_name: str, data) -> str:
    now = dt.datetime.now(dt.timezone.utc)
    document = to_document(data)
    document["created_at"] = now
    document["updated_at"] = now
    result = get_db()[collection_name].insert_one(document)
    logger.info("Created %s %s", collection_name, result.inserted_id)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None, sort=None):
    cursor = get_db()[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def get_document(collection_name: str, _id: ObjectId):
    return get_db()[collection_name].find_one({"_id": _id})


def update_document(collection_name: str, _id: ObjectId, data) -> bool:
    changes = to_document(data)
    changes["updated_at"] = dt.datetime.now(dt.timezone.utc)
    result = get_db()[collection_name].update_one({"_id": _id}, {"$set": changes})
    if result.matched_count:
        logger.info("Updated %s %s", collection_name, _id)
    return result.matched_count > 0


def delete_document(collection_name: str, _id: ObjectId) -> bool:
    result = get_db()[collection_name].delete_one({"_id": _id})
    if result.deleted_count:
        logger.info("Deleted %s %s", collection_name, _id)
    return result.deleted_count > 0


def upsert_document(collection_name: str, key: dict, data) -> dict:
    """Insert or update the single document matching ``key`` and return it."""
    now = dt.datetime.now(dt.timezone.utc)
    key = to_document(key)
    changes = to_document(data)
    changes["updated_at"] = now
    collection = get_db()[collection_name]
    collection.update_one(key, {"$set": changes, "$setOnInsert": {"created_at": now}}, upsert=True)
    return collection.find_one(key)


def page_window(page: int, limit: int, total: int) -> dict:
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit) if limit else 0,
    }


def get_page(collection_name: str, filter_dict: dict, page: int, limit: int, sort=None):
    """One page of documents plus the pagination block."""
    collection = get_db()[collection_name]
    cursor = collection.find(filter_dict)
    if sort:
        cursor = cursor.sort(sort)
    docs = list(cursor.skip((page - 1) * limit).limit(limit))
    return docs, page_window(page, limit, collection.count_documents(filter_dict))
