"""
Database helpers

Connects to MongoDB using DATABASE_URL / DATABASE_NAME from the environment.
`db` stays None when the connection is not configured so the API can still boot
and report its status on /test.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

_client = None
db = None

if DATABASE_URL and DATABASE_NAME:
    try:
        _client = MongoClient(DATABASE_URL)
        db = _client[DATABASE_NAME]
    except Exception as e:
        logger.error("Could not connect to MongoDB: %s", e)
        db = None


def utc_now() -> datetime:
    # pymongo hands back naive UTC datetimes, keep ours comparable with them
    return datetime.now(timezone.utc).replace(tzinfo=None)


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document with created_at/updated_at stamps and return its id."""
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")

    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()

    now = utc_now()
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now

    result = db[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None,
                  sort: Optional[list] = None) -> List[dict]:
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")

    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def ensure_indexes(database=None):
    database = database if database is not None else db
    if database is None:
        return
    try:
        database["user"].create_index("email", unique=True)
        database["user"].create_index("catalog_id", unique=True, sparse=True)
        database["product"].create_index([("vendor_id", ASCENDING), ("is_active", ASCENDING)])
        database["order"].create_index([("vendor_id", ASCENDING), ("created_at", DESCENDING)])
        database["customer"].create_index([("vendor_id", ASCENDING), ("phone_number", ASCENDING)], unique=True)
    except Exception as exc:
        logger.warning("Unable to ensure indexes: %s", exc)
