from __future__ import annotations

from fastapi import APIRouter, Depends, Query

import locales
from routers import require_admin
from schemas import Currency, CurrencyUpdate, ExchangeRateIn, Language, LanguageUpdate

admin_router = APIRouter(prefix="/api/admin/locale", tags=["admin-locale"], dependencies=[Depends(require_admin)])
public_router = APIRouter(prefix="/api/locale", tags=["locale"])


# ---------- Admin: currencies ----------

@admin_router.get("/currencies")
async def admin_list_currencies():
    return {"success": True, "currencies": await locales.currencies.list()}


@admin_router.post("/currencies", status_code=201)
async def create_currency(payload: Currency):
    currency = await locales.currencies.create(payload.model_dump())
    return {"success": True, "currency": currency, "message": "Currency created successfully"}


@admin_router.get("/currencies/{code}")
async def get_currency(code: str):
    return {"success": True, "currency": await locales.currencies.get(code)}


@admin_router.patch("/currencies/{code}")
async def update_currency(code: str, payload: CurrencyUpdate):
    currency = await locales.currencies.update(code, payload.model_dump(exclude_unset=True))
    return {"success": True, "currency": currency}


@admin_router.delete("/currencies/{code}")
async def delete_currency(code: str):
    await locales.currencies.delete(code)
    return {"success": True, "message": "Currency deleted successfully"}


# ---------- Admin: languages ----------

@admin_router.get("/languages")
async def admin_list_languages():
    return {"success": True, "languages": await locales.languages.list()}


@admin_router.post("/languages", status_code=201)
async def create_language(payload: Language):
    language = await locales.languages.create(payload.model_dump())
    return {"success": True, "language": language, "message": "Language created successfully"}


@admin_router.get("/languages/{code}")
async def get_language(code: str):
    return {"success": True, "language": await locales.languages.get(code)}


@admin_router.patch("/languages/{code}")
async def update_language(code: str, payload: LanguageUpdate):
    language = await locales.languages.update(code, payload.model_dump(exclude_unset=True))
    return {"success": True, "language": language}


@admin_router.delete("/languages/{code}")
async def delete_language(code: str):
    await locales.languages.delete(code)
    return {"success": True, "message": "Language deleted successfully"}


# ---------- Admin: exchange rates ----------

@admin_router.get("/exchange-rates")
async def admin_list_exchange_rates():
    return {"success": True, "rates": await locales.list_exchange_rates()}


@admin_router.post("/exchange-rates")
async def set_exchange_rate(payload: ExchangeRateIn):
    rate = await locales.set_exchange_rate(payload)
    return {"success": True, "rate": rate, "message": "Exchange rate updated successfully"}


@admin_router.delete("/exchange-rates")
async def delete_exchange_rate(base_currency: str, target_currency: str):
    await locales.delete_exchange_rate(base_currency, target_currency)
    return {"success": True}


@admin_router.post("/exchange-rates/sync")
async def sync_exchange_rates():
    return await locales.sync_exchange_rates()


# ---------- Public ----------

@public_router.get("/currencies")
async def list_currencies():
    return {"success": True, "currencies": await locales.currencies.list(active_only=True)}


@public_router.get("/languages")
async def list_languages():
    return {"success": True, "languages": await locales.languages.list(active_only=True)}


@public_router.get("/exchange-rates")
async def exchange_rates():
    return {"success": True, "rates": await locales.exchange_rate_map()}


@public_router.get("/convert")
async def convert(from_: str = Query(..., alias="from"), to: str = Query(...), amount: float = Query(...)):
    return await locales.convert(from_, to, amount)
