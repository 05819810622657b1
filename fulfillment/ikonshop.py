"""Ikonshop, used for orders paid in crypto."""
from __future__ import annotations

import aiohttp

from config import settings
from errors import NotConfiguredError, NotImplementedProviderError
from http_client import request_json

from .base import FulfillmentAdapter, PodOrderInput, PodOrderResult, PodOrderStatus


class IkonshopAdapter(FulfillmentAdapter):
    name = "ikonshop"

    def is_configured(self) -> bool:
        return settings.is_pod_configured(self.name)

    def build_payload(self, order: PodOrderInput) -> dict:
        r = order.recipient
        recipient = {
            "name": r.name,
            "address": r.address1,
            "city": r.city,
            "state": r.state_code or "",
            "country": r.country_code,
            "postal_code": r.zip or "",
            "phone": r.phone or "",
        }
        return {
            "order_id": order.external_id,
            "customer_email": r.email or "",
            "items": [
                {
                    "design_id": item.sku or item.product_id,
                    "product_type": item.name,
                    "quantity": item.quantity,
                    "recipient": recipient,
                }
                for item in order.items
            ],
            "payment_method": "crypto",
        }

    async def _create_order(self, session: aiohttp.ClientSession, order: PodOrderInput) -> PodOrderResult:
        if not self.is_configured():
            raise NotConfiguredError("Ikonshop", "IKONSHOP_API_KEY")
        data = await request_json(
            session, "POST", f"{settings.IKONSHOP_API_URL}/orders",
            provider=self.name,
            json=self.build_payload(order),
            headers=self.auth_headers(settings.IKONSHOP_API_KEY),
        )
        pod_order_id = data.get("id") or data.get("order_id")
        return PodOrderResult(
            success=True,
            provider=self.name,
            external_id=order.external_id,
            pod_order_id=str(pod_order_id) if pod_order_id is not None else None,
            status=data.get("status") or "pending",
            raw_response=data,
        )

    async def _get_order_status(self, session: aiohttp.ClientSession, pod_order_id: str) -> PodOrderStatus:
        # TODO: wire up once Ikonshop publishes an order status endpoint
        raise NotImplementedProviderError(self.name, "status check")
