"""Products, collections and designs, plus the Shopify inventory sync."""
from __future__ import annotations
import logging
import re
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from database import get_db, serialize_document, to_object_id, utcnow
from errors import RecordNotFoundError, VariantMismatchError
from schemas import Collection, Product, ProductImage, Variant
from shopify import PROVIDER_KEY, PROVIDER_NAMESPACE, ShopifyAdminClient, gid_to_id

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = "printful"
MAX_DESIGN_PAGE_SIZE = 50
MIN_SEARCH_LENGTH = 2


def _contains(term: str) -> dict[str, str]:
    return {"$regex": re.escape(term), "$options": "i"}


# ---------- Variant selection ----------

def select_default_variant(product: dict[str, Any]) -> Optional[dict[str, Any]]:
    """First in-stock variant, else the first variant."""
    variants = product.get("variants") or []
    for variant in variants:
        if (variant.get("inventory_quantity") or 0) > 0:
            return variant
    return variants[0] if variants else None


def select_variant(product: dict[str, Any], variant_id: Optional[str]) -> Optional[dict[str, Any]]:
    if not variant_id:
        return select_default_variant(product)
    for variant in product.get("variants") or []:
        if str(variant.get("id")) == str(variant_id):
            return variant
    raise VariantMismatchError(product.get("handle") or str(product.get("id")), variant_id)


def present_product(doc: dict[str, Any]) -> dict[str, Any]:
    product = dict(doc)
    product["variants"] = [
        {**v, "available": (v.get("inventory_quantity") or 0) > 0}
        for v in product.get("variants") or []
    ]
    return product


# ---------- Products & collections ----------

async def list_products(limit: int = 20, collection: Optional[str] = None) -> list[dict[str, Any]]:
    db = await get_db()
    filter_dict: dict[str, Any] = {"status": "active"}
    if collection:
        found = await db["collection"].find_one({"handle": collection, "published": True})
        if found is None:
            return []
        filter_dict["collections"] = collection
    cursor = db["product"].find(filter_dict).sort([("created_at", -1)]).limit(limit)
    return [present_product(serialize_document(d)) async for d in cursor]


async def get_product(handle: str, variant_id: Optional[str] = None) -> dict[str, Any]:
    db = await get_db()
    doc = await db["product"].find_one({"handle": handle, "status": "active"})
    if doc is None:
        raise RecordNotFoundError("Product", handle)
    product = present_product(serialize_document(doc))
    product["selected_variant"] = select_variant(product, variant_id)
    return product


async def list_collections() -> list[dict[str, Any]]:
    db = await get_db()
    cursor = db["collection"].find({"published": True}).sort([("title", 1)])
    return [serialize_document(d) async for d in cursor]


async def get_collection(handle: str, limit: int = 50) -> dict[str, Any]:
    db = await get_db()
    doc = await db["collection"].find_one({"handle": handle, "published": True})
    if doc is None:
        raise RecordNotFoundError("Collection", handle)
    collection = serialize_document(doc)
    collection["products"] = await list_products(limit=limit, collection=handle)
    return collection


# ---------- Designs ----------

async def list_designs(
    page: int = 1, limit: int = 20, category: Optional[str] = None, q: Optional[str] = None
) -> dict[str, Any]:
    page = max(page, 1)
    limit = max(1, min(limit, MAX_DESIGN_PAGE_SIZE))
    filter_dict: dict[str, Any] = {"is_active": True}
    if category:
        filter_dict["category"] = category
    if q:
        term = _contains(q)
        filter_dict["$or"] = [{"title": term}, {"description": term}, {"tags": term}]

    db = await get_db()
    cursor = (
        db["design"].find(filter_dict)
        .sort([("sort_order", -1), ("created_at", -1)])
        .skip((page - 1) * limit)
        .limit(limit)
    )
    data = [serialize_document(d) async for d in cursor]
    return {"data": data, "meta": {"page": page, "limit": limit, "count": len(data)}}


async def get_design(design_id: str) -> dict[str, Any]:
    oid = to_object_id(design_id)
    db = await get_db()
    doc = await db["design"].find_one({"_id": oid, "is_active": True}) if oid else None
    if doc is None:
        raise RecordNotFoundError("Design", design_id)
    return serialize_document(doc)


# ---------- Search ----------

async def search(q: Optional[str], kind: str = "all", limit: int = 10) -> list[dict[str, Any]]:
    if not q or len(q.strip()) < MIN_SEARCH_LENGTH:
        return []
    term = _contains(q.strip())
    db = await get_db()
    results: list[dict[str, Any]] = []

    if kind in ("all", "products"):
        cursor = db["product"].find(
            {"status": "active", "$or": [{"title": term}, {"description": term}, {"tags": term}]}
        ).limit(limit)
        async for p in cursor:
            images = p.get("images") or []
            results.append({
                "id": str(p["_id"]),
                "type": "product",
                "title": p["title"],
                "description": (p.get("description") or "")[:100],
                "image": images[0]["src"] if images else None,
                "href": f"/products/{p['handle']}",
            })
    if kind in ("all", "designs"):
        cursor = db["design"].find({"is_active": True, "$or": [{"title": term}, {"tags": term}]}).limit(limit)
        async for d in cursor:
            results.append({
                "id": str(d["_id"]),
                "type": "design",
                "title": d["title"],
                "description": (d.get("description") or "")[:100],
                "image": d.get("thumbnail_url") or d.get("image_url"),
                "href": f"/designs/{d['_id']}",
            })
    if kind in ("all", "collections"):
        cursor = db["collection"].find({"published": True, "title": term}).limit(limit)
        async for c in cursor:
            results.append({
                "id": str(c["_id"]),
                "type": "collection",
                "title": c["title"],
                "description": (c.get("description") or "")[:100],
                "image": c.get("image_url"),
                "href": f"/collections/{c['handle']}",
            })
    return results[:limit]


# ---------- Shopify sync ----------

def product_from_shopify(node: dict[str, Any]) -> dict[str, Any]:
    provider = DEFAULT_PROVIDER
    for edge in (node.get("metafields") or {}).get("edges") or []:
        field = edge["node"]
        if field.get("namespace") == PROVIDER_NAMESPACE and field.get("key") == PROVIDER_KEY and field.get("value"):
            provider = field["value"].strip().lower()

    variants = []
    for edge in (node.get("variants") or {}).get("edges") or []:
        v = edge["node"]
        options = [o.get("value") for o in v.get("selectedOptions") or []]
        variant_id = gid_to_id(v["id"])
        variants.append(Variant(
            id=variant_id,
            shopify_variant_id=variant_id,
            title=v.get("title") or "",
            price=float(v.get("price") or 0),
            compare_at_price=float(v["compareAtPrice"]) if v.get("compareAtPrice") else None,
            sku=v.get("sku") or None,
            inventory_quantity=v.get("inventoryQuantity") or 0,
            option1=options[0] if len(options) > 0 else None,
            option2=options[1] if len(options) > 1 else None,
            option3=options[2] if len(options) > 2 else None,
        ))

    images = [
        ProductImage(src=edge["node"]["src"], alt=edge["node"].get("altText") or node["title"], position=i)
        for i, edge in enumerate((node.get("images") or {}).get("edges") or [])
    ]
    product = Product(
        shopify_product_id=gid_to_id(node["id"]),
        title=node["title"],
        handle=node["handle"],
        description=node.get("description") or "",
        vendor=node.get("vendor") or "",
        product_type=node.get("productType") or "",
        tags=node.get("tags") or [],
        status=(node.get("status") or "active").lower(),
        fulfillment_provider=provider,
        images=images,
        variants=variants,
    )
    # collections membership is managed locally; never overwritten by the sync
    return product.model_dump(exclude={"collections"})


async def _upsert(db: AsyncIOMotorDatabase, collection: str, key: dict[str, Any], data: dict[str, Any]) -> None:
    now = utcnow()
    await db[collection].update_one(
        key,
        {"$set": {**data, "updated_at": now}, "$setOnInsert": {"created_at": now}},
        upsert=True,
    )


async def sync_inventory(db: AsyncIOMotorDatabase, shopify: Optional[ShopifyAdminClient] = None) -> dict[str, int]:
    shopify = shopify or ShopifyAdminClient()
    nodes = await shopify.list_products()
    for node in nodes:
        data = product_from_shopify(node)
        await _upsert(db, "product", {"shopify_product_id": data["shopify_product_id"]}, data)

    collections = await shopify.list_collections()
    for node in collections:
        data = Collection(
            title=node["title"],
            handle=node["handle"],
            description=node.get("description") or "",
            image_url=(node.get("image") or {}).get("src"),
        ).model_dump()
        data["shopify_collection_id"] = gid_to_id(node["id"])
        await _upsert(db, "collection", {"shopify_collection_id": data["shopify_collection_id"]}, data)

    logger.info("Inventory sync completed: %d products, %d collections", len(nodes), len(collections))
    return {"products": len(nodes), "collections": len(collections)}
