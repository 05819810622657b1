from __future__ import annotations
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Header, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from config import settings
from database import admin_database
from dispatcher import run_fulfillment_queue
from errors import InvalidSignatureError
from schemas import ShopifyOrderPayload
from webhooks import accept_order, verify_shopify_hmac

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhook", tags=["webhooks"])


@router.post("/order")
async def order_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_shopify_hmac_sha256: Optional[str] = Header(None),
):
    raw_body = await request.body()
    if not verify_shopify_hmac(raw_body, x_shopify_hmac_sha256, settings.SHOPIFY_WEBHOOK_SECRET):
        logger.warning("Rejected order webhook with invalid signature")
        raise InvalidSignatureError("webhook")

    try:
        order = ShopifyOrderPayload.model_validate_json(raw_body)
    except ValidationError as e:
        logger.error("Unparsable order webhook: %s", e)
        return JSONResponse(status_code=500, content={"error": "Webhook processing failed"})

    async with admin_database() as db:
        body = await accept_order(db, order)

    # fulfillment runs after the response is sent; the job is already persisted
    if "job_id" in body:
        background_tasks.add_task(run_fulfillment_queue)
    return body
