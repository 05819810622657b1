import asyncio
import contextlib
import logging
import os
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import jobs
from config import settings
from database import admin_database, close_db, ensure_indexes, get_db, utcnow
from dispatcher import run_fulfillment_queue
from errors import (
    AuthenticationError,
    AuthorizationError,
    DuplicateRecordError,
    InvalidSignatureError,
    MissingFulfillmentDataError,
    NotConfiguredError,
    NotImplementedProviderError,
    PaymentError,
    ProviderAPIError,
    RecordNotFoundError,
    StorefrontError,
    UnknownProviderError,
    ValidationFailedError,
    VariantMismatchError,
)
from logging_config import configure_logging
from routers import admin_orders, cart, catalog, checkout, locale, site_settings, webhooks
from site_settings import seed_site_settings

logger = logging.getLogger(__name__)

app = FastAPI(title="Geek Creations Storefront API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error handling ---

ERROR_STATUS_CODES: dict[type, int] = {
    NotConfiguredError: 503,
    ProviderAPIError: 502,
    UnknownProviderError: 400,
    NotImplementedProviderError: 501,
    InvalidSignatureError: 401,
    AuthenticationError: 401,
    AuthorizationError: 403,
    RecordNotFoundError: 404,
    DuplicateRecordError: 409,
    ValidationFailedError: 400,
    VariantMismatchError: 400,
    MissingFulfillmentDataError: 422,
    PaymentError: 502,
}


def status_for(exc: Exception) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 500


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    """Map StorefrontError subclasses to HTTP responses."""
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error_type": type(exc).__name__},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"detail": jsonable_errors(exc), "error_type": "ValidationError"},
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


# --- Startup seeding ---

SEED_COLLECTIONS = [
    {
        "title": "Tech Tees",
        "handle": "tech-tees",
        "description": "Shirts for people who speak fluent stack trace.",
        "published": True,
    },
    {
        "title": "Mugs",
        "handle": "mugs",
        "description": "Coffee goes in, code comes out.",
        "published": True,
    },
]

SEED_PRODUCTS = [
    {
        "title": "Hello World Tee",
        "handle": "hello-world-tee",
        "description": "Classic cotton tee with the first program everyone writes.",
        "vendor": "Geek Creations",
        "product_type": "T-Shirt",
        "tags": ["tee", "programming"],
        "status": "active",
        "fulfillment_provider": "printful",
        "images": [{"src": "https://images.unsplash.com/photo-1521572163474-6864f9cf17ab?w=800&q=80", "position": 0}],
        "variants": [
            {"id": "hw-tee-m", "title": "M", "price": 15000, "sku": "71-4012", "inventory_quantity": 100},
            {"id": "hw-tee-l", "title": "L", "price": 15000, "sku": "71-4013", "inventory_quantity": 100},
        ],
        "collections": ["tech-tees"],
    },
    {
        "title": "Works On My Machine Mug",
        "handle": "works-on-my-machine-mug",
        "description": "11oz ceramic mug for the eternal excuse.",
        "vendor": "Geek Creations",
        "product_type": "Mug",
        "tags": ["mug", "humor"],
        "status": "active",
        "fulfillment_provider": "local_print",
        "images": [{"src": "https://images.unsplash.com/photo-1514228742587-6b1558fcca3d?w=800&q=80", "position": 0}],
        "variants": [
            {"id": "wom-mug-11", "title": "11oz", "price": 8000, "sku": "mug-11oz", "inventory_quantity": 50},
        ],
        "collections": ["mugs"],
    },
]


async def seed_defaults() -> None:
    async with admin_database() as db:
        now = utcnow()
        if await db["currency"].count_documents({}) == 0:
            await db["currency"].insert_one({
                "code": "NGN", "name": "Nigerian Naira", "symbol": "₦", "symbol_position": "before",
                "decimal_places": 2, "is_active": True, "is_default": True, "sort_order": 0,
                "created_at": now, "updated_at": now,
            })
        if await db["language"].count_documents({}) == 0:
            await db["language"].insert_one({
                "code": "en", "name": "English", "native_name": "English", "flag": "🇬🇧", "is_rtl": False,
                "is_active": True, "is_default": True, "sort_order": 0,
                "created_at": now, "updated_at": now,
            })
        if await db["collection"].count_documents({}) == 0:
            for c in SEED_COLLECTIONS:
                await db["collection"].insert_one({**c, "created_at": now, "updated_at": now})
        if await db["product"].count_documents({}) == 0:
            for p in SEED_PRODUCTS:
                await db["product"].insert_one({**p, "created_at": now, "updated_at": now})
            logger.info("Seeded %d sample products", len(SEED_PRODUCTS))
    await seed_site_settings()


@app.on_event("startup")
async def startup():
    configure_logging()
    await ensure_indexes()
    await seed_defaults()
    async with admin_database() as db:
        await jobs.requeue_stale(db, older_than=timedelta(0))
    # Jobs left by a previous process drain in the background
    app.state.queue_task = asyncio.create_task(run_fulfillment_queue())


@app.on_event("shutdown")
async def shutdown():
    task = getattr(app.state, "queue_task", None)
    if task is not None and not task.done():
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
    await close_db()


# --- Endpoints ---

@app.get("/")
async def root():
    return {"message": f"{settings.SITE_NAME} backend running"}


@app.get("/test")
async def test():
    try:
        db = await get_db()
        collections = await db.list_collection_names()
        connected = True
    except Exception as e:
        logger.warning("Database check failed: %s", e)
        collections, connected = [], False
    return {
        "backend": "Running",
        "database": "Connected" if connected else "Not Connected",
        "database_url": "Set" if os.getenv("DATABASE_URL") else "Not Set",
        "collections": collections,
        "configuration": settings.configuration_status(),
    }


app.include_router(catalog.router)
app.include_router(cart.router)
app.include_router(checkout.router)
app.include_router(webhooks.router)
app.include_router(admin_orders.router)
app.include_router(locale.public_router)
app.include_router(locale.admin_router)
app.include_router(site_settings.public_router)
app.include_router(site_settings.admin_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", 8000)))
