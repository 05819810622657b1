"""Append-only log of fulfillment attempts, keyed by external order id."""
from __future__ import annotations
import logging
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from database import get_documents, serialize_document, utcnow
from schemas import LogStatus, OrderLog

logger = logging.getLogger(__name__)

COLLECTION = "order_log"


async def record_attempt(
    db: AsyncIOMotorDatabase,
    external_order_id: str,
    provider: str,
    status: LogStatus,
    response: Optional[dict[str, Any]] = None,
    line_item_ids: Optional[list[str]] = None,
    job_id: Optional[str] = None,
    order_id: Optional[str] = None,
) -> dict[str, Any]:
    entry = OrderLog(
        external_order_id=str(external_order_id),
        provider=provider,
        status=status,
        line_item_ids=line_item_ids or [],
        response=response,
        job_id=job_id,
        order_id=order_id,
    ).model_dump()
    entry["created_at"] = utcnow()
    result = await db[COLLECTION].insert_one(entry)
    entry["_id"] = result.inserted_id

    log = logger.info if status in ("success", "skipped", "duplicate") else logger.error
    log(
        "Fulfillment attempt %s via %s: %s", external_order_id, provider, status,
        extra={"fields": {"external_order_id": str(external_order_id), "provider": provider, "status": status}},
    )
    return serialize_document(entry) or {}


async def has_successful_attempt(db: AsyncIOMotorDatabase, external_order_id: str, provider: str) -> bool:
    existing = await db[COLLECTION].find_one(
        {"external_order_id": str(external_order_id), "provider": provider, "status": "success"}
    )
    return existing is not None


async def list_attempts(db: AsyncIOMotorDatabase, external_order_id: str) -> list[dict[str, Any]]:
    return await get_documents(
        COLLECTION, {"external_order_id": str(external_order_id)}, limit=0, sort=[("created_at", 1)], db=db
    )
