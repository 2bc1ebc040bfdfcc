"""
Database helpers

Module-level MongoDB handle plus small helpers shared by the services.
Routes receive the handle through the ``get_db`` dependency so tests can
swap in another database.
"""

from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import settings
from logging_config import get_logger
from schemas import now_utc

logger = get_logger(__name__)

_client: Optional[MongoClient] = None
db: Optional[Database] = None

if settings.DATABASE_URL and settings.DATABASE_NAME:
    _client = MongoClient(settings.DATABASE_URL, tz_aware=True)
    db = _client[settings.DATABASE_NAME]
else:
    logger.warning("DATABASE_URL / DATABASE_NAME not set, database unavailable")


def get_db() -> Database:
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    return db


def to_object_id(value: Union[str, ObjectId]) -> Optional[ObjectId]:
    """ObjectId for ``value``, or None when it is not a valid id"""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def create_document(database: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document with ``createdAt`` / ``updatedAt`` and return its id"""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(by_alias=True)
    else:
        data_dict = dict(data)
    timestamp = now_utc()
    data_dict["createdAt"] = timestamp
    data_dict["updatedAt"] = timestamp
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    database: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    cursor = database[collection_name].find(filter_dict or {}).sort("createdAt", -1)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def ensure_indexes(database: Database) -> None:
    database["user"].create_index([("email", ASCENDING)], unique=True)
    database["user"].create_index([("googleId", ASCENDING)], sparse=True)
    database["subject"].create_index([("user", ASCENDING)])
    database["subject"].create_index([("name", ASCENDING)])


def ping(database: Optional[Database]) -> bool:
    if database is None:
        return False
    try:
        database.command("ping")
        return True
    except Exception as e:
        logger.warning(f"Database ping failed: {str(e)[:100]}")
        return False
