"""HTTP routers, one per area of the storefront API."""
from __future__ import annotations
from typing import Any, Optional

from fastapi import Header

from admin import authenticate_admin


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return None


async def require_admin(authorization: Optional[str] = Header(None)) -> dict[str, Any]:
    """Dependency for admin routes; checks the session on every request."""
    return await authenticate_admin(bearer_token(authorization))
