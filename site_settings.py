"""Typed key/value site settings (branding, contact, social links)."""
from __future__ import annotations
import json
import logging
from typing import Any

from database import admin_database, create_document, get_db, utcnow

logger = logging.getLogger(__name__)

COLLECTION = "site_setting"

DEFAULT_SETTINGS: list[dict[str, Any]] = [
    {"key": "siteName", "value": "Geeks Creation", "type": "string", "category": "branding",
     "description": "The name of your store", "is_public": True},
    {"key": "siteSlogan", "value": "Made by nerds. Worn by legends.", "type": "string", "category": "branding",
     "description": "Your store's tagline or slogan", "is_public": True},
    {"key": "logoUrl", "value": "/logo.png", "type": "string", "category": "branding",
     "description": "URL to your store logo", "is_public": True},
    {"key": "contactEmail", "value": "hello@geekcreations.com", "type": "string", "category": "contact",
     "description": "General contact email", "is_public": True},
    {"key": "supportEmail", "value": "support@geekcreations.com", "type": "string", "category": "contact",
     "description": "Customer support email", "is_public": True},
    {"key": "instagramUrl", "value": "https://instagram.com/geekcreations", "type": "string", "category": "social",
     "description": "Instagram profile", "is_public": True},
    {"key": "maintenanceMode", "value": "false", "type": "boolean", "category": "general",
     "description": "Show the maintenance page to shoppers", "is_public": True},
]


def decode_value(raw: Any, value_type: str) -> Any:
    raw = "" if raw is None else raw
    if value_type == "number":
        try:
            return float(raw or 0)
        except ValueError:
            return 0.0
    if value_type == "boolean":
        return str(raw).lower() == "true"
    if value_type == "json":
        try:
            return json.loads(raw or "{}")
        except ValueError:
            return {}
    return raw


def encode_value(value: Any) -> tuple[str, str]:
    """Stored string and inferred type for a JSON value."""
    if isinstance(value, bool):
        return ("true" if value else "false"), "boolean"
    if isinstance(value, (int, float)):
        return str(value), "number"
    if isinstance(value, (dict, list)) or value is None:
        return json.dumps(value), "json"
    return str(value), "string"


async def get_public_settings() -> dict[str, Any]:
    db = await get_db()
    return {
        doc["key"]: decode_value(doc.get("value"), doc.get("type", "string"))
        async for doc in db[COLLECTION].find({"is_public": True})
    }


async def get_all_settings() -> dict[str, Any]:
    db = await get_db()
    values: dict[str, Any] = {}
    meta: dict[str, Any] = {}
    async for doc in db[COLLECTION].find({}):
        values[doc["key"]] = decode_value(doc.get("value"), doc.get("type", "string"))
        meta[doc["key"]] = {
            "type": doc.get("type"),
            "category": doc.get("category"),
            "description": doc.get("description"),
            "is_public": doc.get("is_public"),
        }
    return {"settings": values, "meta": meta}


async def update_settings(updates: dict[str, Any]) -> dict[str, Any]:
    now = utcnow()
    async with admin_database() as db:
        for key, value in updates.items():
            stored, value_type = encode_value(value)
            await db[COLLECTION].update_one(
                {"key": key},
                {
                    "$set": {"value": stored, "type": value_type, "updated_at": now},
                    "$setOnInsert": {"category": "general", "is_public": True, "created_at": now},
                },
                upsert=True,
            )
    logger.info("Updated site settings: %s", ", ".join(sorted(updates)))
    return updates


async def seed_site_settings() -> int:
    inserted = 0
    async with admin_database() as db:
        for setting in DEFAULT_SETTINGS:
            if await db[COLLECTION].find_one({"key": setting["key"]}) is None:
                await create_document(COLLECTION, setting, db=db)
                inserted += 1
    return inserted
