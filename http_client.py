"""
HTTP client configuration with proper timeouts.

All outbound calls (POD providers, payment gateways, Shopify, EmailJS) go
through sessions created here.

Usage:
    from http_client import create_client_session, request_json

    async with create_client_session() as session:
        data = await request_json(session, "GET", url, provider="printful")
"""
from __future__ import annotations

import json
import logging
from typing import Any

import aiohttp
from aiohttp import ClientTimeout

from errors import ProviderAPIError

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_TIMEOUT",
    "WEBHOOK_TIMEOUT",
    "create_client_session",
    "request_json",
]

# Default timeout for most HTTP requests (30 seconds total)
DEFAULT_TIMEOUT = ClientTimeout(
    total=30,
    connect=10,
    sock_read=20,
)

# Shorter timeout for calls made while a caller is waiting
WEBHOOK_TIMEOUT = ClientTimeout(
    total=15,
    connect=5,
    sock_read=10,
)


def create_client_session(
    timeout: ClientTimeout | None = None,
    **kwargs,
) -> aiohttp.ClientSession:
    """Create an aiohttp ClientSession with proper timeout configuration.

    Args:
        timeout: Optional custom timeout. Uses DEFAULT_TIMEOUT if not specified.
        **kwargs: Additional arguments passed to ClientSession.
    """
    if timeout is None:
        timeout = DEFAULT_TIMEOUT
    return aiohttp.ClientSession(timeout=timeout, **kwargs)


async def request_json(
    session: aiohttp.ClientSession,
    method: str,
    url: str,
    *,
    provider: str,
    **kwargs: Any,
) -> Any:
    """Perform one request and decode the JSON body.

    Raises:
        ProviderAPIError: on HTTP status >= 400 or a body that is not JSON.
    """
    async with session.request(method, url, **kwargs) as resp:
        text = await resp.text()
        if resp.status >= 400:
            logger.warning(
                "%s %s failed with %s", method, url, resp.status,
                extra={"fields": {"provider": provider}},
            )
            raise ProviderAPIError(provider, resp.status, text)
    if not text:
        return {}
    try:
        return json.loads(text)
    except ValueError:
        raise ProviderAPIError(provider, resp.status, f"invalid JSON: {text[:200]}")
