"""
Database helpers

Thin pymongo layer used by the rest of the app. The connection is configured
from DATABASE_URL and DATABASE_NAME. Every insert stamps created_at and
updated_at, and every update re-stamps updated_at.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

from errors import DatabaseNotConfiguredError, InvalidIdError

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

db: Optional[Database] = None

if DATABASE_URL and DATABASE_NAME:
    try:
        _client = MongoClient(DATABASE_URL, tz_aware=True)
        db = _client[DATABASE_NAME]
    except Exception as e:
        logger.error("Could not connect to database: %s", e)
        db = None


def _resolve(database: Optional[Database]) -> Database:
    database = database if database is not None else db
    if database is None:
        raise DatabaseNotConfiguredError()
    return database


def to_object_id(value: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise InvalidIdError(value)


def serialize_doc(doc: Optional[dict]) -> Optional[dict]:
    """Copy a Mongo document, replacing _id with a string id."""
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.pop("_id", None)
    if _id is not None:
        doc["id"] = str(_id)
    return doc


def create_document(collection_name: str, data: Union[BaseModel, dict], database: Optional[Database] = None) -> str:
    database = _resolve(database)
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(mode="json")
    else:
        data_dict = dict(data)
    now = datetime.now(timezone.utc)
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now
    result = database[collection_name].insert_one(data_dict)
    logger.debug("Inserted %s into %s", result.inserted_id, collection_name)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None,
                  database: Optional[Database] = None) -> list:
    database = _resolve(database)
    cursor = database[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return [serialize_doc(d) for d in cursor]


def get_document(collection_name: str, doc_id: str, database: Optional[Database] = None) -> Optional[dict]:
    database = _resolve(database)
    return serialize_doc(database[collection_name].find_one({"_id": to_object_id(doc_id)}))


def update_document(collection_name: str, doc_id: str, changes: dict, database: Optional[Database] = None) -> Optional[dict]:
    """Apply $set changes and return the updated document, or None if missing."""
    database = _resolve(database)
    changes = dict(changes)
    changes["updated_at"] = datetime.now(timezone.utc)
    oid = to_object_id(doc_id)
    result = database[collection_name].update_one({"_id": oid}, {"$set": changes})
    if result.matched_count == 0:
        return None
    return serialize_doc(database[collection_name].find_one({"_id": oid}))


def delete_document(collection_name: str, doc_id: str, database: Optional[Database] = None) -> bool:
    database = _resolve(database)
    result = database[collection_name].delete_one({"_id": to_object_id(doc_id)})
    return result.deleted_count > 0


def delete_documents(collection_name: str, filter_dict: dict, database: Optional[Database] = None) -> int:
    database = _resolve(database)
    return database[collection_name].delete_many(filter_dict).deleted_count
