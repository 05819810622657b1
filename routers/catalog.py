from __future__ import annotations
import hmac
from typing import Optional

from fastapi import APIRouter, Header, Query

import catalog
from database import admin_database
from errors import AuthenticationError
from config import settings
from routers import bearer_token

router = APIRouter(prefix="/api", tags=["catalog"])


@router.get("/products")
async def list_products(limit: int = Query(20, ge=1, le=250), collection: Optional[str] = None):
    return {"products": await catalog.list_products(limit=limit, collection=collection)}


@router.get("/products/{handle}")
async def get_product(handle: str, variant: Optional[str] = None):
    return {"product": await catalog.get_product(handle, variant)}


@router.get("/collections")
async def list_collections():
    return {"collections": await catalog.list_collections()}


@router.get("/collections/{handle}")
async def get_collection(handle: str):
    return {"collection": await catalog.get_collection(handle)}


@router.get("/designs")
async def list_designs(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    category: Optional[str] = None,
    q: Optional[str] = None,
):
    return await catalog.list_designs(page=page, limit=limit, category=category, q=q)


@router.get("/designs/{design_id}")
async def get_design(design_id: str):
    return {"data": await catalog.get_design(design_id)}


@router.get("/search")
async def search(q: Optional[str] = None, type: str = "all", limit: int = Query(10, ge=1, le=50)):
    if not q or len(q.strip()) < catalog.MIN_SEARCH_LENGTH:
        return {"success": True, "results": [], "message": "Query too short"}
    return {"success": True, "results": await catalog.search(q, kind=type, limit=limit)}


@router.api_route("/cron/sync-inventory", methods=["GET", "POST"])
async def sync_inventory(authorization: Optional[str] = Header(None)):
    token = bearer_token(authorization) or ""
    if not settings.CRON_SECRET or not hmac.compare_digest(token, settings.CRON_SECRET):
        raise AuthenticationError("Unauthorized")
    async with admin_database() as db:
        synced = await catalog.sync_inventory(db)
    return {"success": True, "synced": synced}
