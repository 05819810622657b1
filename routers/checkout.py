from __future__ import annotations
import json
import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Header, Request
from fastapi.responses import RedirectResponse

from checkout import create_checkout, verify_payment
from errors import InvalidSignatureError, ValidationFailedError
from payments.flutterwave import verify_flutterwave_signature
from payments.paystack import verify_paystack_signature
from schemas import CheckoutRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["checkout"])

SUCCESS_PAGE = "/checkout/success"


@router.post("/checkout")
async def checkout(payload: CheckoutRequest, request: Request):
    return await create_checkout(payload, callback_base_url=str(request.base_url))


@router.get("/payment/verify")
async def payment_verify(
    reference: Optional[str] = None,
    transaction_id: Optional[str] = None,
    tx_ref: Optional[str] = None,
):
    # Paystack returns ?reference=, Flutterwave ?transaction_id=&tx_ref=
    result = await verify_payment(tx_ref or reference or transaction_id)
    query = urlencode({k: v for k, v in result.items() if v is not None})
    return RedirectResponse(url=f"{SUCCESS_PAGE}?{query}", status_code=302)


@router.post("/payment/webhook")
async def payment_webhook(
    request: Request,
    x_paystack_signature: Optional[str] = Header(None),
    verif_hash: Optional[str] = Header(None),
):
    """Gateway callbacks; a successful charge is verified the same way as a redirect."""
    raw_body = await request.body()
    if x_paystack_signature is not None:
        if not verify_paystack_signature(raw_body, x_paystack_signature):
            raise InvalidSignatureError("Paystack")
    elif verif_hash is not None:
        if not verify_flutterwave_signature(verif_hash):
            raise InvalidSignatureError("Flutterwave")
    else:
        raise InvalidSignatureError("payment webhook")

    try:
        event = json.loads(raw_body)
    except ValueError:
        raise ValidationFailedError("Invalid JSON body")

    data = event.get("data") or {}
    name = event.get("event") or ""
    if name not in ("charge.success", "charge.completed"):
        return {"received": True, "ignored": name}
    reference = data.get("reference") or data.get("tx_ref")
    result = await verify_payment(reference)
    logger.info("Payment webhook %s for %s: %s", name, reference, result)
    return {"received": True, **result}
