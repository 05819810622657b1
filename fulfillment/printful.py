"""Printful: https://developers.printful.com/docs/#tag/Orders-API"""
from __future__ import annotations

import aiohttp

from config import settings
from errors import NotConfiguredError
from http_client import request_json

from .base import FulfillmentAdapter, PodOrderInput, PodOrderResult, PodOrderStatus

PRINTFUL_API_URL = "https://api.printful.com"


def _sync_variant_id(variant_id: str | None) -> int | None:
    try:
        return int(variant_id) if variant_id else None
    except ValueError:
        return None


class PrintfulAdapter(FulfillmentAdapter):
    name = "printful"

    def is_configured(self) -> bool:
        return settings.is_pod_configured(self.name)

    def _api_key(self) -> str:
        if not self.is_configured():
            raise NotConfiguredError("Printful", "PRINTFUL_API_KEY")
        return settings.PRINTFUL_API_KEY

    def build_payload(self, order: PodOrderInput) -> dict:
        r = order.recipient
        payload = {
            "external_id": order.external_id,
            "shipping": "STANDARD",
            "recipient": {
                "name": r.name,
                "address1": r.address1,
                "address2": r.address2 or "",
                "city": r.city,
                "state_code": r.state_code or "",
                "country_code": r.country_code,
                "zip": r.zip or "",
                "phone": r.phone or "",
                "email": r.email or "",
            },
            "items": [
                {
                    "sync_variant_id": _sync_variant_id(item.variant_id),
                    "quantity": item.quantity,
                    "retail_price": item.retail_price,
                    "name": item.name,
                }
                for item in order.items
            ],
        }
        if order.retail_costs is not None:
            payload["retail_costs"] = order.retail_costs.model_dump()
        return payload

    async def _create_order(self, session: aiohttp.ClientSession, order: PodOrderInput) -> PodOrderResult:
        api_key = self._api_key()
        data = await request_json(
            session, "POST", f"{PRINTFUL_API_URL}/orders",
            provider=self.name,
            json=self.build_payload(order),
            headers=self.auth_headers(api_key),
        )
        result = data.get("result") or {}
        shipments = result.get("shipments") or []
        return PodOrderResult(
            success=True,
            provider=self.name,
            external_id=order.external_id,
            pod_order_id=str(result["id"]) if result.get("id") is not None else None,
            status=result.get("status") or "draft",
            tracking_number=shipments[0].get("tracking_number") if shipments else None,
            raw_response=data,
        )

    async def _get_order_status(self, session: aiohttp.ClientSession, pod_order_id: str) -> PodOrderStatus:
        api_key = self._api_key()
        data = await request_json(
            session, "GET", f"{PRINTFUL_API_URL}/orders/{pod_order_id}",
            provider=self.name,
            headers=self.auth_headers(api_key),
        )
        result = data.get("result") or {}
        shipments = result.get("shipments") or []
        return PodOrderStatus(
            status=result.get("status") or "unknown",
            tracking_number=shipments[0].get("tracking_number") if shipments else None,
        )
