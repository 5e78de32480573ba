"""
MongoDB access for the gateway.

`db` is None when DATABASE_URL / DATABASE_NAME are not configured; callers
fall back to in-process storage in that case.
"""
import os
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel
from pymongo import MongoClient

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

db = None
if DATABASE_URL and DATABASE_NAME:
    try:
        _client = MongoClient(DATABASE_URL, serverSelectionTimeoutMS=5000)
        db = _client[DATABASE_NAME]
    except Exception as e:
        logger.error(f"Could not connect to MongoDB: {e}")
        db = None


def _as_document(data: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", by_alias=True)
    return dict(data)


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    if db is None:
        raise RuntimeError("Database not configured")
    doc = _as_document(data)
    now = datetime.now(timezone.utc)
    doc["created_at"] = now
    doc["updated_at"] = now
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    if db is None:
        raise RuntimeError("Database not configured")
    cursor = db[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def upsert_document(collection_name: str, filter_dict: Dict[str, Any], data: Union[BaseModel, Dict[str, Any]]) -> None:
    if db is None:
        raise RuntimeError("Database not configured")
    doc = _as_document(data)
    doc["updated_at"] = datetime.now(timezone.utc)
    db[collection_name].update_one(filter_dict, {"$set": doc}, upsert=True)


def delete_documents(collection_name: str, filter_dict: Dict[str, Any]) -> int:
    if db is None:
        raise RuntimeError("Database not configured")
    return db[collection_name].delete_many(filter_dict).deleted_count


def ensure_ttl_index(collection_name: str, field: str, seconds: int) -> None:
    """Let MongoDB delete documents whose ``field`` is older than ``seconds``."""
    if db is None:
        raise RuntimeError("Database not configured")
    db[collection_name].create_index(field, expireAfterSeconds=seconds)
