"""Payment gateway interface and normalized payment shapes."""
from __future__ import annotations
import time
from abc import ABC, abstractmethod
from typing import Any, Optional

import aiohttp
from pydantic import BaseModel, Field

from http_client import create_client_session
from schemas import PaymentMethod, PaymentStatusName


class PaymentInitInput(BaseModel):
    email: str
    amount: float = Field(..., ge=0, description="Main currency unit, e.g. NGN not kobo")
    currency: str
    order_id: str
    callback_url: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None


class PaymentInit(BaseModel):
    payment_url: str
    reference: str
    provider: str


class PaymentVerification(BaseModel):
    status: PaymentStatusName
    reference: str
    amount: float = 0
    currency: Optional[str] = None
    provider: str
    transaction_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class RefundResult(BaseModel):
    status: str
    message: str


def make_reference(prefix: str, order_id: str) -> str:
    return f"{prefix}{order_id}_{int(time.time() * 1000)}"


class PaymentAdapter(ABC):
    name: str = ""
    reference_prefix: str = ""
    # gateway vocabulary -> normalized status
    status_map: dict[str, PaymentStatusName] = {}

    def __init__(self, session: aiohttp.ClientSession | None = None):
        self._session = session

    @abstractmethod
    def is_configured(self) -> bool:
        ...

    @abstractmethod
    async def _initialize(
        self, session: aiohttp.ClientSession, payment: PaymentInitInput, method: PaymentMethod
    ) -> PaymentInit:
        ...

    @abstractmethod
    async def _verify(self, session: aiohttp.ClientSession, reference: str) -> PaymentVerification:
        ...

    @abstractmethod
    async def _refund(
        self, session: aiohttp.ClientSession, reference: str, amount: Optional[float]
    ) -> RefundResult:
        ...

    def normalize_status(self, raw: Optional[str]) -> PaymentStatusName:
        return self.status_map.get((raw or "").lower(), "failed")

    def owns_reference(self, reference: str) -> bool:
        return bool(self.reference_prefix) and reference.startswith(self.reference_prefix)

    async def _with_session(self, call, *args):
        if self._session is not None:
            return await call(self._session, *args)
        async with create_client_session() as session:
            return await call(session, *args)

    async def initialize(self, payment: PaymentInitInput, method: PaymentMethod = "card") -> PaymentInit:
        return await self._with_session(self._initialize, payment, method)

    async def verify(self, reference: str) -> PaymentVerification:
        return await self._with_session(self._verify, reference)

    async def refund(self, reference: str, amount: Optional[float] = None) -> RefundResult:
        return await self._with_session(self._refund, reference, amount)
