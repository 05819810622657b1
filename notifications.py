"""Order emails through the EmailJS REST API."""
from __future__ import annotations
import logging
from typing import Any, Optional

import aiohttp

from config import settings
from http_client import WEBHOOK_TIMEOUT, create_client_session

logger = logging.getLogger(__name__)

EMAILJS_SEND_URL = "https://api.emailjs.com/api/v1.0/email/send"


def render_order_email(order_name: str, tracking_number: Optional[str] = None) -> str:
    if tracking_number:
        status = (
            f"<p><strong>Tracking Number:</strong> {tracking_number}</p>"
            "<p>Your order has shipped!</p>"
        )
    else:
        status = "<p>We're processing your order and will send you shipping updates soon.</p>"
    return (
        "<div>"
        "<h1>Thank You for Your Order!</h1>"
        f"<p><strong>Order Number:</strong> {order_name}</p>"
        f"{status}"
        f"<p>Best regards,<br/>The {settings.SITE_NAME} Team</p>"
        "</div>"
    )


async def send_order_confirmation(
    to_email: str,
    order_name: str,
    order_id: Any,
    tracking_number: Optional[str] = None,
    session: Optional[aiohttp.ClientSession] = None,
) -> dict[str, Any]:
    """Returns ``{"success": bool, "error"?: str}``; never raises."""
    if not settings.is_email_configured():
        logger.warning("EmailJS not configured, skipping confirmation for %s", order_name)
        return {"success": False, "error": "EmailJS not configured"}

    payload = {
        "service_id": settings.EMAILJS_SERVICE_ID,
        "template_id": settings.EMAILJS_TEMPLATE_ID,
        "user_id": settings.EMAILJS_PUBLIC_KEY,
        "template_params": {
            "to_email": to_email,
            "order_name": order_name,
            "order_id": str(order_id),
            "tracking_number": tracking_number or "",
            "from_name": settings.SITE_NAME,
            "from_email": settings.SITE_EMAIL,
            "subject": f"Order Confirmation - {order_name}",
            "html_content": render_order_email(order_name, tracking_number),
        },
    }

    async def _send(s: aiohttp.ClientSession) -> dict[str, Any]:
        async with s.request("POST", EMAILJS_SEND_URL, json=payload) as resp:
            text = await resp.text()
            if resp.status >= 400:
                return {"success": False, "error": f"EmailJS error {resp.status}: {text[:200]}"}
        return {"success": True}

    try:
        if session is not None:
            result = await _send(session)
        else:
            async with create_client_session(timeout=WEBHOOK_TIMEOUT) as s:
                result = await _send(s)
    except (aiohttp.ClientError, TimeoutError) as e:
        result = {"success": False, "error": str(e) or type(e).__name__}

    if result["success"]:
        logger.info("Order confirmation sent", extra={"fields": {"order": order_name, "to": to_email}})
    else:
        logger.error("Order confirmation failed: %s", result["error"], extra={"fields": {"order": order_name}})
    return result
