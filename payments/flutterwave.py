"""Flutterwave Standard: https://developer.flutterwave.com/docs/collecting-payments/standard"""
from __future__ import annotations
import hmac
from typing import Optional

import aiohttp

from config import settings
from errors import NotConfiguredError, PaymentError
from http_client import request_json
from schemas import PaymentMethod

from .base import (
    PaymentAdapter,
    PaymentInit,
    PaymentInitInput,
    PaymentVerification,
    RefundResult,
    make_reference,
)

FLUTTERWAVE_API_URL = "https://api.flutterwave.com/v3"

PAYMENT_OPTIONS = {
    "bank_transfer": "banktransfer",
    "card": "card,banktransfer,ussd,mobilemoney",
}


def verify_flutterwave_signature(signature: str) -> bool:
    """Flutterwave echoes the configured secret hash in the ``verif-hash`` header."""
    if not settings.FLUTTERWAVE_SECRET_HASH:
        raise NotConfiguredError("Flutterwave webhooks", "FLUTTERWAVE_SECRET_HASH")
    return hmac.compare_digest(settings.FLUTTERWAVE_SECRET_HASH, signature or "")


class FlutterwaveAdapter(PaymentAdapter):
    name = "flutterwave"
    reference_prefix = "flw_"
    status_map = {
        "successful": "success",
        "success": "success",
        "failed": "failed",
        "cancelled": "cancelled",
        "pending": "pending",
    }

    def is_configured(self) -> bool:
        return settings.is_payment_configured(self.name)

    def _headers(self) -> dict[str, str]:
        if not self.is_configured():
            raise NotConfiguredError("Flutterwave", "FLUTTERWAVE_SECRET_KEY and FLUTTERWAVE_PUBLIC_KEY")
        return {
            "Authorization": f"Bearer {settings.FLUTTERWAVE_SECRET_KEY}",
            "Content-Type": "application/json",
        }

    async def _initialize(
        self, session: aiohttp.ClientSession, payment: PaymentInitInput, method: PaymentMethod
    ) -> PaymentInit:
        headers = self._headers()
        tx_ref = make_reference(self.reference_prefix, payment.order_id)
        payload = {
            "tx_ref": tx_ref,
            "amount": payment.amount,
            "currency": payment.currency,
            "redirect_url": payment.callback_url or f"{settings.APP_URL}/api/payment/verify",
            "payment_options": PAYMENT_OPTIONS.get(method, PAYMENT_OPTIONS["card"]),
            "customer": {
                "email": payment.email,
                "name": payment.customer_name or payment.email.split("@")[0],
                "phonenumber": payment.customer_phone or "",
            },
            "customizations": {
                "title": settings.SITE_NAME,
                "description": f"Order #{payment.order_id}",
                "logo": settings.SITE_LOGO_URL,
            },
            "meta": {"order_id": payment.order_id, **payment.metadata},
        }
        data = await request_json(
            session, "POST", f"{FLUTTERWAVE_API_URL}/payments",
            provider=self.name, json=payload, headers=headers,
        )
        if data.get("status") != "success" or not data.get("data"):
            raise PaymentError(f"Flutterwave initialization failed: {data.get('message', 'Unknown error')}")
        return PaymentInit(payment_url=data["data"]["link"], reference=tx_ref, provider=self.name)

    async def _verify(self, session: aiohttp.ClientSession, reference: str) -> PaymentVerification:
        headers = self._headers()
        if reference.isdigit():
            url, params = f"{FLUTTERWAVE_API_URL}/transactions/{reference}/verify", None
        else:
            url, params = f"{FLUTTERWAVE_API_URL}/transactions/verify_by_reference", {"tx_ref": reference}
        data = await request_json(session, "GET", url, provider=self.name, headers=headers, params=params)
        if data.get("status") != "success" or not data.get("data"):
            raise PaymentError(f"Flutterwave verification failed: {data.get('message', 'Unknown error')}")
        tx = data["data"]
        return PaymentVerification(
            status=self.normalize_status(tx.get("status")),
            reference=tx.get("tx_ref") or reference,
            amount=tx.get("amount") or 0,
            currency=tx.get("currency"),
            provider=self.name,
            transaction_id=str(tx["id"]) if tx.get("id") is not None else None,
            metadata=tx.get("meta") or {},
        )

    async def _refund(
        self, session: aiohttp.ClientSession, reference: str, amount: Optional[float]
    ) -> RefundResult:
        transaction_id = reference
        if not reference.isdigit():
            verification = await self._verify(session, reference)
            transaction_id = verification.transaction_id or reference
        payload = {"amount": amount} if amount else {}
        data = await request_json(
            session, "POST", f"{FLUTTERWAVE_API_URL}/transactions/{transaction_id}/refund",
            provider=self.name, json=payload, headers=self._headers(),
        )
        return RefundResult(
            status="success" if data.get("status") == "success" else "failed",
            message=data.get("message") or "Refund processed",
        )
