"""
Checkout and payment verification.

Checkout always creates orders for manual review: the Shopify draft is tagged
so the paid-order webhook skips auto-fulfillment, and an admin decides.
"""
from __future__ import annotations
import json
import logging
import secrets
from typing import Any, Optional

import aiohttp

from cart import CartItem, calculate_cart, clamp_quantity
from config import settings
from database import admin_database, serialize_document, utcnow
from errors import PaymentError, StorefrontError, ValidationFailedError
from order_events import broker
from payments import PaymentInitInput, PaymentRouter
from schemas import CheckoutItem, CheckoutRequest, LineItem, Order, PaymentTransaction
from shopify import ShopifyAdminClient

logger = logging.getLogger(__name__)

REVIEW_TAGS = ["manual-review", "pending-admin"]
DEFAULT_CRYPTO_CURRENCY = "USDC"
DEFAULT_MAX_QUANTITY = 99


def _draft_line_item(item: CheckoutItem) -> dict[str, Any]:
    product_title = item.product_title or item.title or "Custom Merch"
    return {
        "title": f"{product_title} - {item.design_name or 'Custom Design'}",
        "price": item.price,
        "quantity": item.quantity,
        "attributes": {
            "design_url": item.design_url or "",
            "product_type": item.product_type or "Custom",
            "variant_options": json.dumps(item.selected_options) if item.selected_options else "",
        },
    }


def _order_line_item(item: CheckoutItem) -> LineItem:
    return LineItem(
        id=item.variant_id,
        title=item.product_title or item.title or "Custom Product",
        quantity=item.quantity,
        price=item.price,
        sku=item.sku,
        variant_id=item.variant_id,
        product_id=item.product_id,
        design_preview_url=item.design_url,
        design_name=item.design_name,
        product_type=item.product_type or "Custom",
        selected_options=item.selected_options,
    )


def order_currency(request: CheckoutRequest) -> str:
    if request.payment_method == "crypto":
        return (request.crypto_currency or DEFAULT_CRYPTO_CURRENCY).upper()
    return settings.SHOPIFY_CURRENCY_CODE.strip().upper() or "NGN"


async def create_checkout(
    request: CheckoutRequest,
    callback_base_url: Optional[str] = None,
    router: Optional[PaymentRouter] = None,
    shopify: Optional[ShopifyAdminClient] = None,
) -> dict[str, Any]:
    if not request.email or not request.cart_items:
        raise ValidationFailedError("Missing required fields")
    router = router or PaymentRouter.default()

    items = []
    for item in request.cart_items:
        max_quantity = item.max_quantity or DEFAULT_MAX_QUANTITY
        items.append(item.model_copy(update={"quantity": clamp_quantity(item.quantity, max_quantity)}))
    cart = calculate_cart(
        CartItem(
            variant_id=i.variant_id,
            product_id=i.product_id,
            title=i.product_title or i.title or "",
            price=i.price,
            quantity=i.quantity,
            max_quantity=i.max_quantity or DEFAULT_MAX_QUANTITY,
        )
        for i in items
    )
    currency = order_currency(request)
    shipping_address = request.shipping_address.model_dump(exclude_none=True)
    billing_address = (request.billing_address or request.shipping_address).model_dump(exclude_none=True)

    draft = None
    if settings.is_shopify_configured():
        draft = await (shopify or ShopifyAdminClient()).create_draft_order(
            email=request.email,
            line_items=[_draft_line_item(i) for i in items],
            shipping_address=shipping_address,
            billing_address=request.billing_address.model_dump() if request.billing_address else None,
            tags=REVIEW_TAGS,
            note="MANUAL FULFILLMENT REQUIRED - Review in admin dashboard",
        )

    order = Order(
        order_number=draft["name"] if draft else f"GC-{secrets.token_hex(4).upper()}",
        shopify_draft_order_id=draft["id"] if draft else None,
        customer_email=request.email,
        customer_phone=request.shipping_address.phone,
        subtotal=cart.subtotal,
        tax=cart.tax,
        shipping_cost=cart.shipping,
        total=cart.total,
        currency=currency,
        payment_method=request.payment_method,
        line_items=[_order_line_item(i) for i in items],
        notes="Order created via checkout - awaiting payment",
    ).model_dump()
    order["shipping_address"] = shipping_address
    order["billing_address"] = billing_address

    async with admin_database() as db:
        now = utcnow()
        result = await db["order"].insert_one({**order, "created_at": now, "updated_at": now})
        order_id = str(result.inserted_id)

        payment = PaymentInitInput(
            email=request.email,
            amount=cart.total,
            currency=currency,
            order_id=order_id,
            callback_url=f"{(callback_base_url or settings.APP_URL).rstrip('/')}/api/payment/verify",
            customer_name=request.shipping_address.full_name or None,
            customer_phone=request.shipping_address.phone,
            metadata={
                "order_number": order["order_number"],
                "draft_order_id": order["shopify_draft_order_id"],
            },
        )
        try:
            init = await router.initialize(payment, request.payment_method)
        except (StorefrontError, aiohttp.ClientError, TimeoutError) as e:
            logger.error("Payment initialization failed for order %s: %s", order_id, e)
            await db["order"].update_one(
                {"_id": result.inserted_id},
                {"$set": {"notes": f"Payment initialization failed: {e}", "updated_at": utcnow()}},
            )
            raise PaymentError(f"Failed to initialize payment: {e}") from e

        await db["order"].update_one(
            {"_id": result.inserted_id},
            {"$set": {
                "payment_provider": init.provider,
                "payment_reference": init.reference,
                "updated_at": utcnow(),
            }},
        )
        transaction = PaymentTransaction(
            order_id=order_id,
            payment_method=request.payment_method,
            payment_provider=init.provider,
            transaction_reference=init.reference,
            amount=cart.total,
            currency=currency,
        ).model_dump()
        await db["payment_transaction"].insert_one({**transaction, "created_at": now, "updated_at": now})
        created = serialize_document(await db["order"].find_one({"_id": result.inserted_id}))

    broker.publish("order.created", created)
    logger.info(
        "Checkout created order %s", order["order_number"],
        extra={"fields": {"order_id": order_id, "provider": init.provider, "total": cart.total}},
    )
    return {
        "success": True,
        "order_id": order_id,
        "order_number": order["order_number"],
        "payment_url": init.payment_url,
        "payment_reference": init.reference,
        "payment_provider": init.provider,
        "total": cart.total,
        "currency": currency,
    }


async def verify_payment(
    reference: Optional[str],
    router: Optional[PaymentRouter] = None,
    shopify: Optional[ShopifyAdminClient] = None,
) -> dict[str, Any]:
    """Confirm a returning payment; the result becomes the success-page query string."""
    if not reference:
        return {"error": "missing_payment_reference"}
    router = router or PaymentRouter.default()
    provider = router.detect_provider(reference)

    try:
        verification = await router.verify(reference, provider)
    except (StorefrontError, aiohttp.ClientError, TimeoutError) as e:
        logger.error("Payment verification failed for %s: %s", reference, e)
        return {"error": "payment_verification_failed", "message": str(e)}
    if verification.status != "success":
        return {"error": "payment_not_verified", "status": verification.status}

    async with admin_database() as db:
        order = await db["order"].find_one({"payment_reference": reference})
        if order is None:
            return {"error": "order_not_found"}
        order_id = str(order["_id"])
        if order.get("payment_status") == "paid":
            return {"order_id": order_id, "order_number": order.get("order_number"), "already_paid": "true"}

        changes: dict[str, Any] = {
            "payment_status": "paid",
            "payment_provider": provider,
            "paid_at": utcnow(),
            "notes": f"Payment verified via {provider}. Awaiting admin fulfillment decision.",
            "updated_at": utcnow(),
        }
        draft_id = order.get("shopify_draft_order_id")
        if draft_id and settings.is_shopify_configured():
            try:
                completed = await (shopify or ShopifyAdminClient()).complete_draft_order(draft_id, reference)
                changes["external_order_id"] = completed["order_id"]
                changes["order_number"] = completed["order_name"] or order.get("order_number")
            except (StorefrontError, aiohttp.ClientError, TimeoutError) as e:
                logger.warning("Draft order %s completion failed: %s", draft_id, e)
                changes["notes"] = (
                    f"Payment verified via {provider}. Shopify order completion failed ({e}). "
                    "Awaiting admin fulfillment decision."
                )

        await db["order"].update_one({"_id": order["_id"]}, {"$set": changes})
        await db["payment_transaction"].update_one(
            {"transaction_reference": reference},
            {"$set": {"status": "success", "updated_at": utcnow()}},
        )
        updated = serialize_document(await db["order"].find_one({"_id": order["_id"]}))

    broker.publish("order.updated", updated)
    return {
        "order_id": order_id,
        "order_name": updated.get("order_number"),
        "email": updated.get("customer_email"),
    }
