"""
Admin order management.

Every action re-checks the caller's session. Reads use the request-scoped
client; writes go through ``admin_database()``. Fulfillment problems come
back as ``FulfillmentResult(success=False)`` so a bulk run always returns one
result per order.
"""
from __future__ import annotations
import logging
from datetime import datetime, time, timezone
from typing import Any, Optional

import aiohttp
from pydantic import ValidationError
from pymongo.errors import PyMongoError

import order_log
from config import settings
from database import (
    admin_database,
    find_document,
    get_db,
    serialize_document,
    to_object_id,
    update_document,
    utcnow,
)
from dispatcher import external_reference, pod_item, recipient_from_address
from errors import (
    AuthenticationError,
    AuthorizationError,
    OrderNotFoundError,
    StorefrontError,
    UnknownProviderError,
    ValidationFailedError,
)
from fulfillment import FulfillmentRegistry, PodOrderInput, PodOrderStatus
from notifications import send_order_confirmation
from order_events import broker
from schemas import FulfillmentResult, OrderStats, ShopifyLineItem
from shopify import ShopifyAdminClient

logger = logging.getLogger(__name__)

# Providers handled in-house: status update only, no external call
IN_HOUSE_STATUS = {"local_print": "shipped", "manual": "processing"}

SHIPPED_POD_STATUSES = {"fulfilled", "shipped", "partially_shipped", "in_transit"}
FAILED_POD_STATUSES = {"failed", "canceled", "cancelled"}
# statuses that say nothing about progress
UNTRACKED_POD_STATUSES = {"unknown", "manual", "local_print"}


# ---------- Auth ----------

def is_admin_email(email: Optional[str]) -> bool:
    if not email:
        return False
    email = email.strip().lower()
    if email in settings.admin_emails:
        return True
    return any(email.endswith(f"@{domain}") for domain in settings.admin_domains)


async def authenticate_admin(token: Optional[str]) -> dict[str, Any]:
    """Look the session up on every call; nothing is cached between calls."""
    if not token:
        raise AuthenticationError()
    db = await get_db()
    session = await db["admin_session"].find_one({"token": token})
    if session is None:
        raise AuthenticationError("Invalid session")
    expires_at = session.get("expires_at")
    if expires_at is not None:
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if expires_at <= utcnow():
            raise AuthenticationError("Session expired")
    email = session.get("email")
    if not is_admin_email(email):
        raise AuthorizationError(email)
    return {"email": email}


# ---------- Reads ----------

def _items_from(raw_items: list[dict[str, Any]]) -> list[dict[str, Any]]:
    items = []
    for raw in raw_items:
        items.append({
            "id": str(raw.get("id") or raw.get("line_item_id") or raw.get("variant_id") or ""),
            "title": raw.get("title") or raw.get("name") or raw.get("product_title") or "",
            "quantity": int(raw.get("quantity") or 1),
            "price": str(raw.get("price") or raw.get("retail_price") or "0"),
            "sku": raw.get("sku"),
            "variant_id": raw.get("variant_id"),
            "product_id": raw.get("product_id"),
            "design_preview_url": raw.get("design_preview_url") or raw.get("design_url"),
        })
    return items


async def resolve_shipping_and_items(
    order: dict[str, Any], shopify: Optional[ShopifyAdminClient] = None
) -> tuple[dict[str, Any], list[dict[str, Any]]]:
    """Shipping address and items for an order.

    Each is taken from the order itself when present, else from the latest
    POD response, else from the Shopify order.
    """
    address = order.get("shipping_address") or {}
    items = _items_from(order.get("line_items") or [])

    pod_response = order.get("pod_response") or {}
    if not address.get("city") and pod_response.get("recipient"):
        address = pod_response["recipient"]
    if not items and pod_response.get("items"):
        items = _items_from(pod_response["items"])

    if (address.get("city") and items) or not order.get("external_order_id"):
        return address, items
    if not settings.is_shopify_configured():
        return address, items

    shopify = shopify or ShopifyAdminClient()
    try:
        shopify_order = await shopify.get_order(order["external_order_id"])
    except (StorefrontError, aiohttp.ClientError, TimeoutError) as e:
        logger.warning("Could not fetch Shopify order %s: %s", order["external_order_id"], e)
        return address, items
    if shopify_order:
        if not address.get("city") and shopify_order.get("shipping_address"):
            address = shopify_order["shipping_address"]
        if not items and shopify_order.get("line_items"):
            items = _items_from(shopify_order["line_items"])
    return address, items


async def enrich_order(order: dict[str, Any], shopify: Optional[ShopifyAdminClient] = None) -> dict[str, Any]:
    address, items = await resolve_shipping_and_items(order, shopify)
    return {
        **order,
        "shipping_address": address or None,
        "shipping_city": address.get("city"),
        "shipping_country": address.get("country") or address.get("country_code"),
        "items": items,
    }


async def get_orders(
    limit: int = 100, skip: int = 0, shopify: Optional[ShopifyAdminClient] = None
) -> list[dict[str, Any]]:
    db = await get_db()
    cursor = db["order"].find({}).sort([("created_at", -1)]).skip(skip).limit(limit)
    return [await enrich_order(serialize_document(doc), shopify) async for doc in cursor]


async def get_order(order_id: str, shopify: Optional[ShopifyAdminClient] = None) -> dict[str, Any]:
    order = await _load_order(order_id)
    enriched = await enrich_order(order, shopify)
    key = order.get("external_order_id") or order["id"]
    db = await get_db()
    enriched["fulfillment_attempts"] = await order_log.list_attempts(db, key)
    return enriched


async def get_order_stats() -> OrderStats:
    db = await get_db()
    total = await db["order"].count_documents({})
    pending = await db["order"].count_documents({"fulfillment_status": "pending"})
    midnight = datetime.combine(utcnow().date(), time.min, tzinfo=timezone.utc)
    revenue = 0.0
    async for doc in db["order"].find({"created_at": {"$gte": midnight}, "payment_status": "paid"}):
        revenue += float(doc.get("total") or 0)
    return OrderStats(total_orders=total, pending_orders=pending, revenue_today=revenue)


async def _load_order(order_id: str) -> dict[str, Any]:
    oid = to_object_id(order_id)
    order = await find_document("order", {"_id": oid}) if oid is not None else None
    if order is None:
        raise OrderNotFoundError(order_id)
    return order


async def _write_order(order_id: str, changes: dict[str, Any]) -> dict[str, Any]:
    async with admin_database() as db:
        updated = await update_document("order", {"_id": to_object_id(order_id)}, changes, db=db)
    if updated is None:
        raise OrderNotFoundError(order_id)
    broker.publish("order.updated", updated)
    return updated


# ---------- Actions ----------

async def fulfill_order(
    order_id: str,
    provider: str,
    registry: Optional[FulfillmentRegistry] = None,
    shopify: Optional[ShopifyAdminClient] = None,
) -> FulfillmentResult:
    def failure(error: str) -> FulfillmentResult:
        logger.error("Fulfillment of order %s via %s failed: %s", order_id, provider, error)
        return FulfillmentResult(success=False, order_id=order_id, provider=provider, error=error)

    try:
        order = await _load_order(order_id)
        log_key = order.get("external_order_id") or order_id
        if provider in IN_HOUSE_STATUS:
            status = IN_HOUSE_STATUS[provider]
            await _write_order(order_id, {"fulfillment_provider": provider, "fulfillment_status": status})
            async with admin_database() as adb:
                await order_log.record_attempt(
                    adb, log_key, provider, "success",
                    response={"status": status, "in_house": True}, order_id=order_id,
                )
            return FulfillmentResult(success=True, order_id=order_id, provider=provider)

        adapter = (registry or FulfillmentRegistry.default()).get(provider)
        address, items = await resolve_shipping_and_items(order, shopify)
        if not address.get("city") or not items:
            return failure("Missing shipping address or items")

        async with admin_database() as adb:
            if await order_log.has_successful_attempt(adb, log_key, provider):
                await order_log.record_attempt(
                    adb, log_key, provider, "duplicate",
                    response={"reason": "already dispatched"}, order_id=order_id,
                )
                return failure(f"Order already sent to {provider}")

        recipient = recipient_from_address(address, order.get("customer_email"))
        pod_items = [pod_item(provider, ShopifyLineItem(**item)) for item in items]
        result = await adapter.create_order(PodOrderInput(
            provider=provider,
            external_id=external_reference(log_key),
            label=f"Order #{order.get('order_number') or order_id}",
            recipient=recipient,
            items=pod_items,
        ))

        async with admin_database() as adb:
            await order_log.record_attempt(
                adb, log_key, provider, "success" if result.success else "failed",
                response=result.raw_response or result.model_dump(exclude={"raw_response"}),
                line_item_ids=[i.line_item_id for i in pod_items if i.line_item_id],
                order_id=order_id,
            )

        pod_response = {
            **result.model_dump(),
            "recipient": recipient.model_dump(),
            "items": [i.model_dump() for i in pod_items],
        }
        if not result.success:
            await _write_order(order_id, {"fulfillment_status": "failed", "pod_response": pod_response})
            return failure(result.error or "Fulfillment failed")

        changes: dict[str, Any] = {
            "fulfillment_provider": provider,
            "fulfillment_status": "shipped" if result.tracking_number else "processing",
            "pod_response": pod_response,
        }
        if result.tracking_number:
            changes["tracking_number"] = result.tracking_number
            changes["shipped_at"] = utcnow()
        updated = await _write_order(order_id, changes)
        if result.tracking_number:
            await _notify_shipped(updated, result.tracking_number)
        return FulfillmentResult(
            success=True, order_id=order_id, provider=provider, tracking_number=result.tracking_number
        )
    except UnknownProviderError:
        return failure("Unknown provider")
    except OrderNotFoundError:
        return failure("Order not found")
    except (StorefrontError, aiohttp.ClientError, TimeoutError, PyMongoError, ValidationError) as e:
        return failure(str(e) or type(e).__name__)


async def bulk_fulfill_orders(
    order_ids: list[str],
    provider: str,
    registry: Optional[FulfillmentRegistry] = None,
    shopify: Optional[ShopifyAdminClient] = None,
) -> list[FulfillmentResult]:
    """One after another; never in parallel."""
    registry = registry or FulfillmentRegistry.default()
    results = []
    for order_id in order_ids:
        results.append(await fulfill_order(order_id, provider, registry=registry, shopify=shopify))
    return results


def fulfillment_status_for(pod_status: PodOrderStatus, current: str) -> str:
    """Local fulfillment status for a provider's order status."""
    status = pod_status.status.lower()
    if status == "delivered":
        return "delivered"
    if pod_status.tracking_number or status in SHIPPED_POD_STATUSES:
        return "shipped"
    if status in FAILED_POD_STATUSES:
        return "failed"
    if status in UNTRACKED_POD_STATUSES:
        return current
    return "processing"


async def refresh_fulfillment_status(
    order_id: str, registry: Optional[FulfillmentRegistry] = None
) -> dict[str, Any]:
    """Ask the order's provider where its POD order stands and store the answer.

    Provider errors propagate; the order is left untouched.
    """
    order = await _load_order(order_id)
    provider = order.get("fulfillment_provider")
    pod_order_id = (order.get("pod_response") or {}).get("pod_order_id")
    if not provider or not pod_order_id:
        raise ValidationFailedError(f"Order {order_id} has not been sent to a print provider")

    adapter = (registry or FulfillmentRegistry.default()).get(provider)
    pod_status = await adapter.get_order_status(pod_order_id)
    current = order.get("fulfillment_status") or "pending"
    changes: dict[str, Any] = {
        "pod_status": pod_status.status,
        "fulfillment_status": fulfillment_status_for(pod_status, current),
    }
    newly_tracked = pod_status.tracking_number and pod_status.tracking_number != order.get("tracking_number")
    if newly_tracked:
        changes["tracking_number"] = pod_status.tracking_number
        changes["shipped_at"] = utcnow()
    updated = await _write_order(order_id, changes)
    logger.info(
        "Refreshed order %s from %s: %s", order_id, provider, pod_status.status,
        extra={"fields": {"order_id": order_id, "provider": provider, "pod_status": pod_status.status}},
    )
    if newly_tracked:
        await _notify_shipped(updated, pod_status.tracking_number)
    return {
        "success": True,
        "order_id": order_id,
        "provider": provider,
        "pod_status": pod_status.status,
        "fulfillment_status": updated["fulfillment_status"],
        "tracking_number": updated.get("tracking_number"),
    }


async def add_tracking_number(
    order_id: str, tracking_number: str, carrier: Optional[str] = None
) -> dict[str, Any]:
    await _load_order(order_id)
    changes: dict[str, Any] = {
        "tracking_number": tracking_number,
        "fulfillment_status": "shipped",
        "shipped_at": utcnow(),
    }
    if carrier:
        changes["carrier"] = carrier
    updated = await _write_order(order_id, changes)
    email = await _notify_shipped(updated, tracking_number)
    return {
        "success": True,
        "order_id": order_id,
        "tracking_number": tracking_number,
        "email_sent": email["success"],
    }


async def update_order_notes(order_id: str, notes: str) -> dict[str, Any]:
    await _load_order(order_id)
    return await _write_order(order_id, {"notes": notes})


async def _notify_shipped(order: dict[str, Any], tracking_number: str) -> dict[str, Any]:
    if not order.get("customer_email"):
        return {"success": False, "error": "No customer email"}
    return await send_order_confirmation(
        to_email=order["customer_email"],
        order_name=order.get("order_number") or order["id"],
        order_id=order["id"],
        tracking_number=tracking_number,
    )
