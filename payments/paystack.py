"""Paystack: https://paystack.com/docs/api/transaction/"""
from __future__ import annotations
import hashlib
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

PAYSTACK_API_URL = "https://api.paystack.co"

CHANNELS = {
    "bank_transfer": ["bank_transfer", "bank"],
    "card": ["card", "bank", "ussd", "bank_transfer"],
}


def to_kobo(amount: float) -> int:
    return int(round(amount * 100))


def verify_paystack_signature(payload: bytes, signature: str) -> bool:
    """Paystack signs webhook bodies with HMAC-SHA512 of the secret key (hex)."""
    if not settings.PAYSTACK_SECRET_KEY:
        raise NotConfiguredError("Paystack", "PAYSTACK_SECRET_KEY")
    digest = hmac.new(settings.PAYSTACK_SECRET_KEY.encode(), payload, hashlib.sha512).hexdigest()
    return hmac.compare_digest(digest, signature or "")


class PaystackAdapter(PaymentAdapter):
    name = "paystack"
    reference_prefix = "psk_"
    status_map = {
        "success": "success",
        "failed": "failed",
        "reversed": "failed",
        "abandoned": "abandoned",
        "ongoing": "pending",
        "pending": "pending",
        "processing": "pending",
        "queued": "pending",
    }

    def is_configured(self) -> bool:
        return settings.is_payment_configured(self.name)

    def _headers(self) -> dict[str, str]:
        if not self.is_configured():
            raise NotConfiguredError("Paystack", "PAYSTACK_SECRET_KEY")
        return {
            "Authorization": f"Bearer {settings.PAYSTACK_SECRET_KEY}",
            "Content-Type": "application/json",
        }

    async def _initialize(
        self, session: aiohttp.ClientSession, payment: PaymentInitInput, method: PaymentMethod
    ) -> PaymentInit:
        headers = self._headers()
        reference = make_reference(self.reference_prefix, payment.order_id)
        payload = {
            "email": payment.email,
            "amount": to_kobo(payment.amount),
            "currency": payment.currency,
            "reference": reference,
            "callback_url": payment.callback_url or f"{settings.APP_URL}/api/payment/verify",
            "metadata": {"order_id": payment.order_id, **payment.metadata},
            "channels": CHANNELS.get(method, CHANNELS["card"]),
        }
        data = await request_json(
            session, "POST", f"{PAYSTACK_API_URL}/transaction/initialize",
            provider=self.name, json=payload, headers=headers,
        )
        if not data.get("status") or not data.get("data"):
            raise PaymentError(f"Paystack initialization failed: {data.get('message', 'invalid response')}")
        return PaymentInit(
            payment_url=data["data"]["authorization_url"],
            reference=data["data"].get("reference") or reference,
            provider=self.name,
        )

    async def _verify(self, session: aiohttp.ClientSession, reference: str) -> PaymentVerification:
        data = await request_json(
            session, "GET", f"{PAYSTACK_API_URL}/transaction/verify/{reference}",
            provider=self.name, headers=self._headers(),
        )
        if not data.get("status") or not data.get("data"):
            raise PaymentError("Invalid verification response from Paystack")
        tx = data["data"]
        return PaymentVerification(
            status=self.normalize_status(tx.get("status")),
            reference=tx.get("reference") or reference,
            amount=(tx.get("amount") or 0) / 100,
            currency=tx.get("currency"),
            provider=self.name,
            transaction_id=str(tx["id"]) if tx.get("id") is not None else None,
            metadata=tx.get("metadata") or {},
        )

    async def _refund(
        self, session: aiohttp.ClientSession, reference: str, amount: Optional[float]
    ) -> RefundResult:
        payload: dict = {"transaction": reference}
        if amount:
            payload["amount"] = to_kobo(amount)
        data = await request_json(
            session, "POST", f"{PAYSTACK_API_URL}/refund",
            provider=self.name, json=payload, headers=self._headers(),
        )
        return RefundResult(
            status="success" if data.get("status") else "failed",
            message=data.get("message") or "Refund processed",
        )
