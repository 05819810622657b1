"""Printify: https://developers.printify.com/#orders"""
from __future__ import annotations

import aiohttp

from config import settings
from errors import NotConfiguredError
from http_client import request_json

from .base import FulfillmentAdapter, PodOrderInput, PodOrderResult, PodOrderStatus

PRINTIFY_API_URL = "https://api.printify.com/v1"
STANDARD_SHIPPING = 1


class PrintifyAdapter(FulfillmentAdapter):
    name = "printify"

    def is_configured(self) -> bool:
        return settings.is_pod_configured(self.name)

    def _credentials(self) -> tuple[str, str]:
        if not self.is_configured():
            raise NotConfiguredError("Printify", "PRINTIFY_API_KEY and PRINTIFY_SHOP_ID")
        return settings.PRINTIFY_API_KEY, settings.PRINTIFY_SHOP_ID

    def build_payload(self, order: PodOrderInput) -> dict:
        r = order.recipient
        line_items = []
        for item in order.items:
            entry = {"product_id": item.product_id, "quantity": item.quantity}
            if item.variant_id and item.variant_id.isdigit():
                entry["variant_id"] = int(item.variant_id)
            elif item.variant_id:
                entry["variant_id"] = item.variant_id
            line_items.append(entry)
        return {
            "external_id": order.external_id,
            "label": order.label or order.external_id,
            "line_items": line_items,
            "shipping_method": STANDARD_SHIPPING,
            "send_shipping_notification": True,
            "address_to": {
                "first_name": r.first_name,
                "last_name": r.last_name,
                "email": r.email or "",
                "phone": r.phone or "",
                "country": r.country_code,
                "region": r.state_code or "",
                "address1": r.address1,
                "address2": r.address2 or "",
                "city": r.city,
                "zip": r.zip or "",
            },
        }

    async def _create_order(self, session: aiohttp.ClientSession, order: PodOrderInput) -> PodOrderResult:
        api_key, shop_id = self._credentials()
        data = await request_json(
            session, "POST", f"{PRINTIFY_API_URL}/shops/{shop_id}/orders.json",
            provider=self.name,
            json=self.build_payload(order),
            headers=self.auth_headers(api_key),
        )
        shipments = data.get("shipments") or []
        return PodOrderResult(
            success=True,
            provider=self.name,
            external_id=order.external_id,
            pod_order_id=str(data["id"]) if data.get("id") is not None else None,
            status=data.get("status") or "pending",
            tracking_number=shipments[0].get("number") if shipments else None,
            raw_response=data,
        )

    async def _get_order_status(self, session: aiohttp.ClientSession, pod_order_id: str) -> PodOrderStatus:
        api_key, shop_id = self._credentials()
        data = await request_json(
            session, "GET", f"{PRINTIFY_API_URL}/shops/{shop_id}/orders/{pod_order_id}.json",
            provider=self.name,
            headers=self.auth_headers(api_key),
        )
        shipments = data.get("shipments") or []
        return PodOrderStatus(
            status=data.get("status") or "unknown",
            tracking_number=shipments[0].get("number") if shipments else None,
        )
