"""Solana Pay transfer requests for the crypto payment method."""
from __future__ import annotations
from typing import Optional
from urllib.parse import quote, urlencode

import aiohttp

from config import settings
from errors import NotConfiguredError, NotImplementedProviderError
from schemas import PaymentMethod

from .base import (
    PaymentAdapter,
    PaymentInit,
    PaymentInitInput,
    PaymentVerification,
    RefundResult,
    make_reference,
)


def build_transfer_url(recipient: str, amount: float, label: str, memo: str, spl_token: str = "") -> str:
    params = {"amount": f"{amount:.6f}".rstrip("0").rstrip("."), "label": label, "memo": memo}
    if spl_token:
        params["spl-token"] = spl_token
    return f"solana:{recipient}?{urlencode(params, quote_via=quote)}"


class SolanaPayAdapter(PaymentAdapter):
    name = "solana"
    reference_prefix = "sol_"

    def is_configured(self) -> bool:
        return settings.is_payment_configured(self.name)

    async def _initialize(
        self, session: aiohttp.ClientSession, payment: PaymentInitInput, method: PaymentMethod
    ) -> PaymentInit:
        if not self.is_configured():
            raise NotConfiguredError("Solana Pay", "SOLANA_WALLET_ADDRESS")
        reference = make_reference(self.reference_prefix, payment.order_id)
        url = build_transfer_url(
            settings.SOLANA_WALLET_ADDRESS,
            payment.amount,
            label=f"{settings.SITE_NAME} order {payment.order_id}",
            memo=reference,
            spl_token=settings.SOLANA_SPL_TOKEN,
        )
        return PaymentInit(payment_url=url, reference=reference, provider=self.name)

    async def _verify(self, session: aiohttp.ClientSession, reference: str) -> PaymentVerification:
        # TODO: confirm the transfer on-chain by looking up the memo reference through SOLANA_RPC_URL
        return PaymentVerification(status="pending", reference=reference, provider=self.name)

    async def _refund(
        self, session: aiohttp.ClientSession, reference: str, amount: Optional[float]
    ) -> RefundResult:
        raise NotImplementedProviderError("Solana Pay", "refund")

    async def _with_session(self, call, *args):
        return await call(None, *args)
