"""Inbound Shopify order webhook: signature check, triage and hand-off to the job queue."""
from __future__ import annotations
import base64
import hashlib
import hmac
import logging
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

import jobs
import order_log
from schemas import ShopifyOrderPayload

logger = logging.getLogger(__name__)

MANUAL_REVIEW_TAGS = frozenset({"manual-review", "pending-admin"})


def verify_shopify_hmac(raw_body: bytes, received: Optional[str], secret: str) -> bool:
    """Constant-time check of ``X-Shopify-Hmac-Sha256`` (base64 HMAC-SHA256 of the raw body)."""
    if not secret or not received:
        return False
    calc = base64.b64encode(hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()).decode()
    return hmac.compare_digest(received.strip(), calc)


def needs_manual_review(order: ShopifyOrderPayload) -> bool:
    return any(tag.lower() in MANUAL_REVIEW_TAGS for tag in order.tag_list())


async def accept_order(db: AsyncIOMotorDatabase, order: ShopifyOrderPayload) -> dict[str, Any]:
    """Record or queue a verified order; the returned dict is the HTTP response body."""
    external_order_id = str(order.id)
    if needs_manual_review(order):
        await order_log.record_attempt(
            db, external_order_id, "manual", "skipped",
            response={"reason": "manual-review", "tags": order.tag_list()},
            line_item_ids=[str(item.id) for item in order.line_items],
        )
        return {"received": True, "skipped": "manual-review"}

    job_id, created = await jobs.enqueue(db, order.model_dump(mode="json"))
    if not created:
        return {"received": True, "duplicate": True}
    return {"received": True, "job_id": job_id}
