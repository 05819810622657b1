"""
Payment routing.

Usage:
    from payments import PaymentRouter

    router = PaymentRouter.default()
    init = await router.initialize(payment_input, method="card")
    verification = await router.verify(init.reference)
"""
from __future__ import annotations
import logging
from typing import Iterable, Optional

import aiohttp

from config import settings
from errors import UnknownProviderError
from schemas import PaymentMethod

from .base import (
    PaymentAdapter,
    PaymentInit,
    PaymentInitInput,
    PaymentVerification,
    RefundResult,
)
from .flutterwave import FlutterwaveAdapter
from .monnify import MonnifyAdapter
from .paystack import PaystackAdapter
from .solana import SolanaPayAdapter

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = "paystack"
CRYPTO_PROVIDER = "solana"


class PaymentRouter:
    """Picks one gateway per payment method and routes references back to it."""

    def __init__(self, adapters: Iterable[PaymentAdapter]):
        self._adapters: dict[str, PaymentAdapter] = {a.name: a for a in adapters}

    @classmethod
    def default(cls, session: Optional[aiohttp.ClientSession] = None) -> "PaymentRouter":
        return cls([
            PaystackAdapter(session),
            FlutterwaveAdapter(session),
            MonnifyAdapter(session),
            SolanaPayAdapter(session),
        ])

    def get(self, provider: str) -> PaymentAdapter:
        adapter = self._adapters.get(provider)
        if adapter is None:
            raise UnknownProviderError(provider)
        return adapter

    def provider_for_method(self, method: PaymentMethod) -> str:
        if method == "crypto":
            return CRYPTO_PROVIDER
        configured = (settings.PAYMENT_PROVIDER or DEFAULT_PROVIDER).strip().lower()
        if configured not in self._adapters or configured == CRYPTO_PROVIDER:
            return DEFAULT_PROVIDER
        if configured == "flutterwave" and not self._adapters[configured].is_configured():
            logger.warning("Flutterwave selected but not configured, falling back to Paystack")
            return DEFAULT_PROVIDER
        return configured

    def detect_provider(self, reference: str) -> str:
        for adapter in self._adapters.values():
            if adapter.owns_reference(reference):
                return adapter.name
        return DEFAULT_PROVIDER

    async def initialize(self, payment: PaymentInitInput, method: PaymentMethod = "card") -> PaymentInit:
        provider = self.provider_for_method(method)
        logger.info(
            "Initializing %s payment", provider,
            extra={"fields": {"order_id": payment.order_id, "method": method}},
        )
        return await self.get(provider).initialize(payment, method)

    async def verify(self, reference: str, provider: Optional[str] = None) -> PaymentVerification:
        return await self.get(provider or self.detect_provider(reference)).verify(reference)

    async def refund(
        self, reference: str, provider: Optional[str] = None, amount: Optional[float] = None
    ) -> RefundResult:
        return await self.get(provider or self.detect_provider(reference)).refund(reference, amount)


__all__ = [
    "FlutterwaveAdapter",
    "MonnifyAdapter",
    "PaymentAdapter",
    "PaymentInit",
    "PaymentInitInput",
    "PaymentRouter",
    "PaymentVerification",
    "PaystackAdapter",
    "RefundResult",
    "SolanaPayAdapter",
]
