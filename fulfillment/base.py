"""Print-on-demand adapter interface and the normalized order shapes."""
from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import aiohttp
from pydantic import BaseModel, Field

from errors import StorefrontError
from http_client import create_client_session

logger = logging.getLogger(__name__)


class PodRecipient(BaseModel):
    name: str
    address1: str
    address2: Optional[str] = None
    city: str
    state_code: Optional[str] = None
    country_code: str
    zip: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    @property
    def first_name(self) -> str:
        return self.name.split(" ")[0] if self.name else ""

    @property
    def last_name(self) -> str:
        return " ".join(self.name.split(" ")[1:])


class PodOrderItem(BaseModel):
    line_item_id: Optional[str] = None
    product_id: Optional[str] = None
    variant_id: Optional[str] = None
    quantity: int = Field(1, ge=1)
    name: str = ""
    sku: Optional[str] = None
    retail_price: Optional[str] = None
    design_url: Optional[str] = None


class RetailCosts(BaseModel):
    currency: str
    subtotal: str
    shipping: str
    tax: str
    total: str


class PodOrderInput(BaseModel):
    provider: str
    external_id: str
    label: Optional[str] = None
    recipient: PodRecipient
    items: list[PodOrderItem]
    retail_costs: Optional[RetailCosts] = None


class PodOrderResult(BaseModel):
    success: bool
    provider: str
    external_id: str
    pod_order_id: Optional[str] = None
    status: Optional[str] = None
    tracking_number: Optional[str] = None
    error: Optional[str] = None
    raw_response: Optional[dict[str, Any]] = None


class PodOrderStatus(BaseModel):
    status: str
    tracking_number: Optional[str] = None


class FulfillmentAdapter(ABC):
    """One print-on-demand provider.

    Subclasses implement ``_create_order``; ``create_order`` wraps it so that
    configuration and HTTP failures come back as ``success=False`` results.
    """

    name: str = ""

    def __init__(self, session: aiohttp.ClientSession | None = None):
        self._session = session

    @abstractmethod
    def is_configured(self) -> bool:
        ...

    @abstractmethod
    async def _create_order(self, session: aiohttp.ClientSession, order: PodOrderInput) -> PodOrderResult:
        ...

    async def _get_order_status(self, session: aiohttp.ClientSession, pod_order_id: str) -> PodOrderStatus:
        return PodOrderStatus(status="unknown")

    async def _with_session(self, call, *args):
        if self._session is not None:
            return await call(self._session, *args)
        async with create_client_session() as session:
            return await call(session, *args)

    async def create_order(self, order: PodOrderInput) -> PodOrderResult:
        try:
            return await self._with_session(self._create_order, order)
        except (StorefrontError, aiohttp.ClientError, TimeoutError) as e:
            logger.error(
                "%s order creation failed: %s", self.name, e,
                extra={"fields": {"provider": self.name, "external_id": order.external_id}},
            )
            return PodOrderResult(
                success=False,
                provider=self.name,
                external_id=order.external_id,
                error=str(e) or type(e).__name__,
            )

    async def get_order_status(self, pod_order_id: str) -> PodOrderStatus:
        return await self._with_session(self._get_order_status, pod_order_id)

    @staticmethod
    def auth_headers(api_key: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
