"""
Webhook fulfillment dispatch.

For one queued order: resolve each line item's provider, group the items per
provider, send one create-order request per provider and log every attempt.
A provider that already accepted this order is never called again.
"""
from __future__ import annotations
import logging
from typing import Any, Optional

import aiohttp
from motor.motor_asyncio import AsyncIOMotorDatabase

import jobs
import order_log
from config import settings
from database import admin_database, serialize_document, utcnow
from errors import StorefrontError
from fulfillment import FulfillmentRegistry, PodOrderInput, PodOrderItem, PodOrderResult, PodRecipient
from order_events import broker
from schemas import LineItem, Order, ShopifyLineItem, ShopifyOrderPayload
from shopify import ShopifyAdminClient

logger = logging.getLogger(__name__)

UNKNOWN_PROVIDER = "unknown"


def external_reference(order_id: Any) -> str:
    return f"geeks-{order_id}"


def recipient_from_address(address: dict[str, Any], email: Optional[str]) -> PodRecipient:
    name = address.get("name") or f"{address.get('first_name') or ''} {address.get('last_name') or ''}".strip()
    return PodRecipient(
        name=name,
        address1=address.get("address1") or "",
        address2=address.get("address2"),
        city=address.get("city") or "",
        state_code=address.get("state_code") or address.get("province_code") or address.get("province"),
        country_code=address.get("country_code") or address.get("country") or "",
        zip=address.get("zip"),
        phone=address.get("phone"),
        email=email or address.get("email"),
    )


def pod_item(provider: str, item: ShopifyLineItem) -> PodOrderItem:
    # POD SKUs are "<provider product id>-<provider variant id>"
    sku = item.sku or ""
    product_part, _, variant_part = sku.partition("-")
    variant_id = str(item.variant_id) if item.variant_id is not None else None
    if provider == "printful":
        variant_id = variant_part or variant_id
    return PodOrderItem(
        line_item_id=str(item.id),
        product_id=product_part or (str(item.product_id) if item.product_id is not None else None),
        variant_id=variant_id,
        quantity=item.quantity,
        name=item.title,
        sku=item.sku,
        retail_price=item.price,
    )


async def resolve_provider(
    db: AsyncIOMotorDatabase, item: ShopifyLineItem, shopify: ShopifyAdminClient
) -> Optional[str]:
    """Local catalog first (by SKU, then Shopify variant id), then Shopify metafields."""
    lookups = []
    if item.sku:
        lookups.append({"variants.sku": item.sku})
    if item.variant_id is not None:
        lookups.append({"variants.shopify_variant_id": str(item.variant_id)})
    for query in lookups:
        product = await db["product"].find_one(query)
        if product and product.get("fulfillment_provider"):
            return str(product["fulfillment_provider"]).strip().lower()

    if item.variant_id is None or not settings.is_shopify_configured():
        return None
    try:
        return await shopify.get_fulfillment_provider(item.variant_id)
    except (StorefrontError, aiohttp.ClientError, TimeoutError) as e:
        logger.warning("Metafield lookup failed for variant %s: %s", item.variant_id, e)
        return None


async def dispatch_order(
    db: AsyncIOMotorDatabase,
    order: ShopifyOrderPayload,
    registry: FulfillmentRegistry,
    shopify: ShopifyAdminClient,
    job_id: Optional[str] = None,
) -> dict[str, Any]:
    external_order_id = str(order.id)
    outcome: dict[str, Any] = {"external_order_id": external_order_id, "providers": {}, "errors": 0}

    if order.shipping_address is None or not order.line_items:
        await order_log.record_attempt(
            db, external_order_id, UNKNOWN_PROVIDER, "failed",
            response={"error": "Missing shipping address or items"}, job_id=job_id,
        )
        outcome["errors"] = 1
        await _record_order(db, order, [], None, outcome)
        return outcome

    groups: dict[str, list[ShopifyLineItem]] = {}
    for item in order.line_items:
        provider = await resolve_provider(db, item, shopify)
        if not provider or provider not in registry:
            await order_log.record_attempt(
                db, external_order_id, provider or UNKNOWN_PROVIDER, "error",
                response={"error": "unknown provider", "variant_id": item.variant_id, "sku": item.sku},
                line_item_ids=[str(item.id)], job_id=job_id,
            )
            outcome["errors"] += 1
            continue
        groups.setdefault(provider, []).append(item)

    recipient = recipient_from_address(order.shipping_address.model_dump(), order.email)
    results = []
    for provider, items in groups.items():
        line_item_ids = [str(i.id) for i in items]
        if await order_log.has_successful_attempt(db, external_order_id, provider):
            await order_log.record_attempt(
                db, external_order_id, provider, "duplicate",
                response={"reason": "already dispatched"}, line_item_ids=line_item_ids, job_id=job_id,
            )
            outcome["providers"][provider] = "duplicate"
            continue

        pod_input = PodOrderInput(
            provider=provider,
            external_id=external_reference(order.id),
            label=f"Order #{order.order_number or order.id}",
            recipient=recipient,
            items=[pod_item(provider, i) for i in items],
        )
        result = await registry.get(provider).create_order(pod_input)
        status = "success" if result.success else "failed"
        await order_log.record_attempt(
            db, external_order_id, provider, status,
            response=result.raw_response or result.model_dump(exclude={"raw_response"}),
            line_item_ids=line_item_ids, job_id=job_id,
        )
        outcome["providers"][provider] = status
        if not result.success:
            outcome["errors"] += 1
        results.append(result)

    await _record_order(db, order, results, recipient, outcome)
    return outcome


def order_from_payload(order: ShopifyOrderPayload) -> dict[str, Any]:
    """Local ``order`` fields for a Shopify order that never went through checkout."""
    record = Order(
        order_number=f"#{order.order_number}" if order.order_number else str(order.id),
        external_order_id=str(order.id),
        customer_email=order.email or "",
        total=float(order.total_price or 0),
        currency=order.currency or settings.SHOPIFY_CURRENCY_CODE,
        payment_status="paid",
        line_items=[
            LineItem(
                id=str(i.id),
                title=i.title,
                quantity=max(i.quantity, 1),
                price=float(i.price or 0),
                sku=i.sku,
                variant_id=str(i.variant_id) if i.variant_id is not None else None,
                product_id=str(i.product_id) if i.product_id is not None else None,
            )
            for i in order.line_items
        ],
        notes="Created from Shopify order webhook",
    ).model_dump()
    record["shipping_address"] = order.shipping_address.model_dump() if order.shipping_address else None
    return record


async def _record_order(
    db: AsyncIOMotorDatabase,
    order: ShopifyOrderPayload,
    results: list[PodOrderResult],
    recipient: Optional[PodRecipient],
    outcome: dict[str, Any],
) -> None:
    """Upsert the ``order`` record by external order id so admins see every dispatch."""
    now = utcnow()
    changes: dict[str, Any] = {"updated_at": now}
    succeeded = [r for r in results if r.success]
    if results:
        primary = succeeded[0] if succeeded else results[0]
        changes["fulfillment_provider"] = primary.provider
        changes["pod_response"] = {
            **primary.model_dump(),
            "recipient": recipient.model_dump() if recipient else None,
        }
        tracking = next((r.tracking_number for r in succeeded if r.tracking_number), None)
        if tracking:
            changes["tracking_number"] = tracking
    if succeeded:
        changes["fulfillment_status"] = "processing"
    elif outcome["errors"]:
        changes["fulfillment_status"] = "failed"

    on_insert = {k: v for k, v in order_from_payload(order).items() if k not in changes}
    on_insert["created_at"] = now
    key = {"external_order_id": outcome["external_order_id"]}
    await db["order"].update_one(key, {"$set": changes, "$setOnInsert": on_insert}, upsert=True)
    broker.publish("order.updated", serialize_document(await db["order"].find_one(key)) or {})


async def process_job(
    db: AsyncIOMotorDatabase,
    job: dict[str, Any],
    registry: FulfillmentRegistry,
    shopify: ShopifyAdminClient,
) -> dict[str, Any]:
    """Dispatch one job; unexpected exceptions are logged as a failed attempt and re-raised."""
    try:
        order = ShopifyOrderPayload.model_validate(job["payload"])
        return await dispatch_order(db, order, registry, shopify, job_id=job["id"])
    except Exception as e:
        await order_log.record_attempt(
            db, job["external_order_id"], "error", "failed",
            response={"error": str(e) or type(e).__name__}, job_id=job["id"],
        )
        raise


async def run_fulfillment_queue(
    registry: Optional[FulfillmentRegistry] = None,
    shopify: Optional[ShopifyAdminClient] = None,
) -> int:
    """Drain the queue with the elevated client; used as a background task."""
    registry = registry or FulfillmentRegistry.default()
    shopify = shopify or ShopifyAdminClient()
    async with admin_database() as db:
        return await jobs.drain(db, lambda job: process_job(db, job, registry, shopify))
