"""
Durable fulfillment queue.

Every accepted order webhook becomes one ``fulfillment_job`` document before
the HTTP response is sent. Workers claim jobs atomically, so a job is never
processed twice concurrently, and jobs left ``running`` by a restart are put
back in the queue at startup.
"""
from __future__ import annotations
import logging
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from database import serialize_document, to_object_id, utcnow
from schemas import FulfillmentJob

logger = logging.getLogger(__name__)

COLLECTION = "fulfillment_job"

JobHandler = Callable[[dict[str, Any]], Awaitable[Optional[dict[str, Any]]]]


async def enqueue(db: AsyncIOMotorDatabase, payload: dict[str, Any]) -> tuple[str, bool]:
    """Queue an order payload; returns ``(job_id, created)``.

    ``created`` is False when a job for the same external order id already
    exists, i.e. the webhook is a redelivery.
    """
    external_order_id = str(payload["id"])
    now = utcnow()
    job = FulfillmentJob(external_order_id=external_order_id, payload=payload).model_dump()
    job.update(created_at=now, updated_at=now)
    result = await db[COLLECTION].update_one(
        {"external_order_id": external_order_id},
        {"$setOnInsert": job},
        upsert=True,
    )
    if result.upserted_id is not None:
        logger.info("Queued fulfillment job for order %s", external_order_id)
        return str(result.upserted_id), True

    existing = await db[COLLECTION].find_one({"external_order_id": external_order_id})
    logger.info("Duplicate delivery for order %s ignored", external_order_id)
    return str(existing["_id"]), False


async def claim_next(db: AsyncIOMotorDatabase) -> Optional[dict[str, Any]]:
    now = utcnow()
    doc = await db[COLLECTION].find_one_and_update(
        {"status": "queued"},
        {"$set": {"status": "running", "started_at": now, "updated_at": now}, "$inc": {"attempts": 1}},
        sort=[("created_at", 1)],
        return_document=ReturnDocument.AFTER,
    )
    return serialize_document(doc)


async def complete(db: AsyncIOMotorDatabase, job_id: str, outcome: Optional[dict[str, Any]] = None) -> None:
    await db[COLLECTION].update_one(
        {"_id": to_object_id(job_id)},
        {"$set": {"status": "done", "outcome": outcome, "finished_at": utcnow(), "updated_at": utcnow()}},
    )


async def fail(db: AsyncIOMotorDatabase, job_id: str, error: str) -> None:
    await db[COLLECTION].update_one(
        {"_id": to_object_id(job_id)},
        {"$set": {"status": "failed", "last_error": error, "finished_at": utcnow(), "updated_at": utcnow()}},
    )


async def requeue_stale(db: AsyncIOMotorDatabase, older_than: timedelta = timedelta(0)) -> int:
    """Return ``running`` jobs started before ``now - older_than`` to the queue."""
    cutoff = utcnow() - older_than
    result = await db[COLLECTION].update_many(
        {"status": "running", "started_at": {"$lte": cutoff}},
        {"$set": {"status": "queued", "updated_at": utcnow()}},
    )
    if result.modified_count:
        logger.warning("Requeued %d interrupted fulfillment job(s)", result.modified_count)
    return result.modified_count


async def drain(db: AsyncIOMotorDatabase, handler: JobHandler) -> int:
    """Process queued jobs one at a time until none are left."""
    processed = 0
    while True:
        job = await claim_next(db)
        if job is None:
            return processed
        try:
            outcome = await handler(job)
        except Exception as e:
            logger.exception("Fulfillment job %s failed", job["id"])
            await fail(db, job["id"], str(e) or type(e).__name__)
        else:
            await complete(db, job["id"], outcome)
        processed += 1
