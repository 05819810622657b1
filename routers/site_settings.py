from __future__ import annotations
from typing import Any

from fastapi import APIRouter, Body, Depends

import site_settings
from errors import ValidationFailedError
from routers import require_admin

public_router = APIRouter(prefix="/api/settings", tags=["settings"])
admin_router = APIRouter(prefix="/api/admin/settings", tags=["admin-settings"], dependencies=[Depends(require_admin)])


@public_router.get("")
async def get_settings():
    return {"success": True, "settings": await site_settings.get_public_settings()}


@admin_router.get("")
async def admin_get_settings():
    return {"success": True, **await site_settings.get_all_settings()}


@admin_router.patch("")
async def admin_update_settings(body: dict[str, Any] = Body(...)):
    updates = body.get("settings", body)
    if not isinstance(updates, dict) or not updates:
        raise ValidationFailedError("No settings to update")
    updated = await site_settings.update_settings(updates)
    return {"success": True, "settings": updated, "message": "Settings updated successfully"}
