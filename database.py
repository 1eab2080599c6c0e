from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ReturnDocument

from config import get_config

_client: Optional[Any] = None
_db: Optional[AsyncIOMotorDatabase] = None
_owned = False


def use_client(client: Any, database_name: Optional[str] = None) -> None:
    """Bind the module to an existing motor-compatible client. The caller keeps ownership."""
    global _client, _db, _owned
    _client = client
    _db = client[database_name or get_config().DATABASE_NAME]
    _owned = False


def reset() -> None:
    global _client, _db, _owned
    if _owned and _client is not None:
        _client.close()
    _client = None
    _db = None
    _owned = False


def close() -> None:
    """Close the client this module opened itself; injected clients are left alone."""
    if _owned:
        reset()


async def get_db() -> AsyncIOMotorDatabase:
    global _client, _db, _owned
    if _db is None:
        config = get_config()
        _client = AsyncIOMotorClient(config.DATABASE_URL)
        _db = _client[config.DATABASE_NAME]
        _owned = True
    return _db


def _id_query(doc_id: str) -> dict[str, Any]:
    # Mongo-generated ids are ObjectIds, singletons like settings use plain strings
    try:
        return {"_id": ObjectId(doc_id)}
    except (InvalidId, TypeError):
        return {"_id": doc_id}


def _to_client(doc: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    if not doc:
        return doc
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    return doc


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def create_document(collection_name: str, data: dict[str, Any]) -> dict[str, Any]:
    db = await get_db()
    now = _now()
    data_with_meta = {**data, "created_at": now, "updated_at": now}
    data_with_meta.pop("id", None)
    result = await db[collection_name].insert_one(data_with_meta)
    inserted = await db[collection_name].find_one({"_id": result.inserted_id})
    return _to_client(inserted) or {}


async def get_documents(
    collection_name: str,
    filter_dict: dict[str, Any] | None = None,
    limit: int = 100,
    sort: list[tuple[str, int]] | None = None,
) -> list[dict[str, Any]]:
    db = await get_db()
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    cursor = cursor.limit(limit)
    docs = []
    async for d in cursor:
        docs.append(_to_client(d))
    return docs


async def get_document(collection_name: str, doc_id: str) -> Optional[dict[str, Any]]:
    db = await get_db()
    doc = await db[collection_name].find_one(_id_query(doc_id))
    return _to_client(doc)


async def update_document(
    collection_name: str, doc_id: str, changes: dict[str, Any]
) -> Optional[dict[str, Any]]:
    db = await get_db()
    changes = {k: v for k, v in changes.items() if k not in ("id", "_id", "created_at")}
    changes["updated_at"] = _now()
    doc = await db[collection_name].find_one_and_update(
        _id_query(doc_id),
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    return _to_client(doc)


async def delete_document(collection_name: str, doc_id: str) -> bool:
    db = await get_db()
    result = await db[collection_name].delete_one(_id_query(doc_id))
    return result.deleted_count > 0


async def upsert_document(collection_name: str, doc_id: str, data: dict[str, Any]) -> dict[str, Any]:
    db = await get_db()
    payload = {k: v for k, v in data.items() if k not in ("id", "_id")}
    await db[collection_name].update_one({"_id": doc_id}, {"$set": payload}, upsert=True)
    doc = await db[collection_name].find_one({"_id": doc_id})
    return _to_client(doc) or {}


async def insert_if_absent(collection_name: str, doc_id: str, data: dict[str, Any]) -> dict[str, Any]:
    db = await get_db()
    payload = {k: v for k, v in data.items() if k not in ("id", "_id")}
    await db[collection_name].update_one({"_id": doc_id}, {"$setOnInsert": payload}, upsert=True)
    doc = await db[collection_name].find_one({"_id": doc_id})
    return _to_client(doc) or {}


async def count_documents(collection_name: str, filter_dict: dict[str, Any] | None = None) -> int:
    db = await get_db()
    return await db[collection_name].count_documents(filter_dict or {})


async def list_collections() -> list[str]:
    db = await get_db()
    return await db.list_collection_names()
