"""
Currencies, languages and exchange rates.

At most one currency and one language carry ``is_default``. Rates are
directional: NGN->USD and USD->NGN are separate rows.
"""
from __future__ import annotations
import logging
from typing import Any, Optional

import aiohttp
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from config import settings
from database import admin_database, get_db, serialize_document, utcnow
from errors import DuplicateRecordError, RecordNotFoundError, ValidationFailedError
from http_client import create_client_session, request_json
from schemas import ExchangeRateIn

logger = logging.getLogger(__name__)

ORDER = [("sort_order", 1), ("code", 1)]


class LocaleStore:
    """CRUD for one code-keyed locale collection (currencies or languages)."""

    def __init__(self, collection: str, kind: str, upper: bool):
        self.collection = collection
        self.kind = kind
        self.upper = upper

    def normalize(self, code: str) -> str:
        code = code.strip()
        return code.upper() if self.upper else code.lower()

    async def list(self, active_only: bool = False) -> list[dict[str, Any]]:
        db = await get_db()
        cursor = db[self.collection].find({"is_active": True} if active_only else {}).sort(ORDER)
        return [serialize_document(d) async for d in cursor]

    async def get(self, code: str) -> dict[str, Any]:
        db = await get_db()
        doc = await db[self.collection].find_one({"code": self.normalize(code)})
        if doc is None:
            raise RecordNotFoundError(self.kind, code)
        return serialize_document(doc)

    async def _clear_default(self, db: AsyncIOMotorDatabase, keep: str) -> None:
        await db[self.collection].update_many(
            {"is_default": True, "code": {"$ne": keep}},
            {"$set": {"is_default": False, "updated_at": utcnow()}},
        )

    async def create(self, data: dict[str, Any]) -> dict[str, Any]:
        code = self.normalize(data["code"])
        now = utcnow()
        doc = {**data, "code": code, "created_at": now, "updated_at": now}
        async with admin_database() as db:
            if await db[self.collection].find_one({"code": code}):
                raise DuplicateRecordError(self.kind, code)
            if data.get("is_default"):
                await self._clear_default(db, code)
            try:
                result = await db[self.collection].insert_one(doc)
            except DuplicateKeyError:
                raise DuplicateRecordError(self.kind, code)
        doc["_id"] = result.inserted_id
        logger.info("Created %s %s", self.kind.lower(), code)
        return serialize_document(doc)

    async def update(self, code: str, changes: dict[str, Any]) -> dict[str, Any]:
        code = self.normalize(code)
        async with admin_database() as db:
            if await db[self.collection].find_one({"code": code}) is None:
                raise RecordNotFoundError(self.kind, code)
            if changes.get("is_default"):
                await self._clear_default(db, code)
            if changes:
                await db[self.collection].update_one({"code": code}, {"$set": {**changes, "updated_at": utcnow()}})
            return serialize_document(await db[self.collection].find_one({"code": code}))

    async def delete(self, code: str) -> None:
        code = self.normalize(code)
        async with admin_database() as db:
            doc = await db[self.collection].find_one({"code": code})
            if doc is None:
                raise RecordNotFoundError(self.kind, code)
            if doc.get("is_default"):
                raise ValidationFailedError(f"Cannot delete the default {self.kind.lower()}")
            await db[self.collection].delete_one({"code": code})


currencies = LocaleStore("currency", "Currency", upper=True)
languages = LocaleStore("language", "Language", upper=False)


# ---------- Exchange rates ----------

async def list_exchange_rates() -> list[dict[str, Any]]:
    db = await get_db()
    cursor = db["exchange_rate"].find({}).sort([("base_currency", 1), ("target_currency", 1)])
    return [serialize_document(d) async for d in cursor]


async def exchange_rate_map() -> dict[str, dict[str, float]]:
    """``{"NGN": {"USD": 0.0012}, "USD": {"NGN": 833.33}}``"""
    rates: dict[str, dict[str, float]] = {}
    for row in await list_exchange_rates():
        rates.setdefault(row["base_currency"], {})[row["target_currency"]] = float(row["rate"])
    return rates


async def set_exchange_rate(rate: ExchangeRateIn, source: str = "manual") -> dict[str, Any]:
    base, target = rate.base_currency.upper(), rate.target_currency.upper()
    key = {"base_currency": base, "target_currency": target}
    now = utcnow()
    async with admin_database() as db:
        await db["exchange_rate"].update_one(
            key,
            {
                "$set": {"rate": rate.rate, "source": source, "last_fetched_at": now, "updated_at": now},
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
        )
        return serialize_document(await db["exchange_rate"].find_one(key))


async def delete_exchange_rate(base_currency: str, target_currency: str) -> None:
    async with admin_database() as db:
        result = await db["exchange_rate"].delete_one(
            {"base_currency": base_currency.upper(), "target_currency": target_currency.upper()}
        )
    if not result.deleted_count:
        raise RecordNotFoundError("Exchange rate", f"{base_currency}->{target_currency}")


async def convert(from_code: str, to_code: str, amount: float) -> dict[str, Any]:
    from_code, to_code = from_code.upper(), to_code.upper()
    result: dict[str, Any] = {"success": True, "from": from_code, "to": to_code, "amount": amount}
    if from_code == to_code:
        return {**result, "converted": amount, "rate": 1.0}

    db = await get_db()
    direct = await db["exchange_rate"].find_one({"base_currency": from_code, "target_currency": to_code})
    if direct is not None:
        rate = float(direct["rate"])
        return {**result, "converted": round(amount * rate, 10), "rate": rate,
                "last_fetched_at": direct.get("last_fetched_at")}

    reverse = await db["exchange_rate"].find_one({"base_currency": to_code, "target_currency": from_code})
    if reverse is None or not float(reverse["rate"]):
        raise RecordNotFoundError("Exchange rate", f"{from_code} to {to_code}")
    rate = round(1 / float(reverse["rate"]), 10)
    return {**result, "converted": round(amount * rate, 10), "rate": rate,
            "last_fetched_at": reverse.get("last_fetched_at"), "inverted": True}


async def sync_exchange_rates(session: Optional[aiohttp.ClientSession] = None) -> dict[str, Any]:
    """Pull live rates for every ordered pair of active currencies."""
    codes = [c["code"] for c in await currencies.list(active_only=True)]
    updated = 0
    errors: list[str] = []

    async def _sync(s: aiohttp.ClientSession) -> None:
        nonlocal updated
        for base in codes:
            data = await request_json(
                s, "GET", f"{settings.EXCHANGE_RATE_API_URL.rstrip('/')}/{base}", provider="exchange-rates"
            )
            live = data.get("rates") or data.get("conversion_rates") or {}
            for target in codes:
                if target == base:
                    continue
                if target not in live:
                    errors.append(f"{base}->{target}: rate not available")
                    continue
                await set_exchange_rate(
                    ExchangeRateIn(base_currency=base, target_currency=target, rate=float(live[target])),
                    source="api",
                )
                updated += 1

    if session is not None:
        await _sync(session)
    else:
        async with create_client_session() as s:
            await _sync(s)
    logger.info("Exchange rate sync updated %d pair(s)", updated)
    return {"success": True, "updated": updated, "currencies": codes, "errors": errors}
