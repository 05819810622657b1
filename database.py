from __future__ import annotations
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional, Sequence

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from config import settings

_client: Optional[AsyncIOMotorClient] = None
_db: Optional[AsyncIOMotorDatabase] = None

SortSpec = Sequence[tuple[str, int]]


def _connect(url: str) -> AsyncIOMotorClient:
    return AsyncIOMotorClient(url, tz_aware=True)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def get_db() -> AsyncIOMotorDatabase:
    """Request-scoped client used for reads; subject to the app user's permissions."""
    global _client, _db
    if _db is None:
        _client = _connect(settings.DATABASE_URL)
        _db = _client[settings.DATABASE_NAME]
    return _db


@asynccontextmanager
async def admin_database() -> AsyncIterator[AsyncIOMotorDatabase]:
    """Elevated-privilege client, created fresh for each write and closed afterwards."""
    client = _connect(settings.admin_database_url)
    try:
        yield client[settings.DATABASE_NAME]
    finally:
        client.close()


async def close_db() -> None:
    global _client, _db
    if _client is not None:
        _client.close()
    _client = None
    _db = None


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def serialize_document(doc: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    if doc is None:
        return None
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


async def create_document(
    collection_name: str,
    data: dict[str, Any],
    db: AsyncIOMotorDatabase | None = None,
) -> dict[str, Any]:
    db = db if db is not None else await get_db()
    now = utcnow()
    data_with_meta = {**data, "created_at": now, "updated_at": now}
    result = await db[collection_name].insert_one(data_with_meta)
    inserted = await db[collection_name].find_one({"_id": result.inserted_id})
    return serialize_document(inserted) or {}


async def get_documents(
    collection_name: str,
    filter_dict: dict[str, Any] | None = None,
    limit: int = 100,
    sort: SortSpec | None = None,
    skip: int = 0,
    db: AsyncIOMotorDatabase | None = None,
) -> list[dict[str, Any]]:
    db = db if db is not None else await get_db()
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(list(sort))
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    docs = []
    async for d in cursor:
        docs.append(serialize_document(d))
    return docs


async def find_document(
    collection_name: str,
    filter_dict: dict[str, Any],
    db: AsyncIOMotorDatabase | None = None,
    sort: SortSpec | None = None,
) -> Optional[dict[str, Any]]:
    db = db if db is not None else await get_db()
    if sort:
        doc = await db[collection_name].find_one(filter_dict, sort=list(sort))
    else:
        doc = await db[collection_name].find_one(filter_dict)
    return serialize_document(doc)


async def update_document(
    collection_name: str,
    filter_dict: dict[str, Any],
    changes: dict[str, Any],
    db: AsyncIOMotorDatabase | None = None,
    upsert: bool = False,
) -> Optional[dict[str, Any]]:
    db = db if db is not None else await get_db()
    update: dict[str, Any] = {"$set": {**changes, "updated_at": utcnow()}}
    if upsert:
        update["$setOnInsert"] = {"created_at": utcnow()}
    await db[collection_name].update_one(filter_dict, update, upsert=upsert)
    return serialize_document(await db[collection_name].find_one(filter_dict))


async def ensure_indexes() -> None:
    db = await get_db()
    await db["currency"].create_index("code", unique=True)
    await db["language"].create_index("code", unique=True)
    await db["exchange_rate"].create_index(
        [("base_currency", 1), ("target_currency", 1)], unique=True
    )
    await db["product"].create_index("handle", unique=True)
    await db["product"].create_index("variants.sku")
    await db["fulfillment_job"].create_index("external_order_id", unique=True)
    await db["fulfillment_job"].create_index("status")
    await db["order_log"].create_index("external_order_id")
    await db["order"].create_index("payment_reference")
    await db["admin_session"].create_index("token", unique=True)
