from __future__ import annotations
from typing import Optional

import aiohttp

from config import settings
from errors import NotImplementedProviderError
from schemas import PaymentMethod

from .base import PaymentAdapter, PaymentInit, PaymentInitInput, PaymentVerification, RefundResult


class MonnifyAdapter(PaymentAdapter):
    """Placeholder; selectable by configuration but every operation fails."""

    name = "monnify"
    reference_prefix = "mnf_"

    def is_configured(self) -> bool:
        return settings.is_payment_configured(self.name)

    async def _initialize(
        self, session: aiohttp.ClientSession, payment: PaymentInitInput, method: PaymentMethod
    ) -> PaymentInit:
        raise NotImplementedProviderError("Monnify")

    async def _verify(self, session: aiohttp.ClientSession, reference: str) -> PaymentVerification:
        raise NotImplementedProviderError("Monnify")

    async def _refund(
        self, session: aiohttp.ClientSession, reference: str, amount: Optional[float]
    ) -> RefundResult:
        raise NotImplementedProviderError("Monnify")

    async def _with_session(self, call, *args):
        return await call(None, *args)
