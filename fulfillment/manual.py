from __future__ import annotations

import aiohttp

from .base import FulfillmentAdapter, PodOrderInput, PodOrderResult, PodOrderStatus


class ManualAdapter(FulfillmentAdapter):
    """Orders produced in-house; nothing is sent anywhere."""

    name = "manual"

    def is_configured(self) -> bool:
        return True

    async def _create_order(self, session: aiohttp.ClientSession, order: PodOrderInput) -> PodOrderResult:
        return PodOrderResult(
            success=True,
            provider=self.name,
            external_id=order.external_id,
            status="pending_manual_fulfillment",
        )

    async def _get_order_status(self, session: aiohttp.ClientSession, pod_order_id: str) -> PodOrderStatus:
        return PodOrderStatus(status="manual")

    async def create_order(self, order: PodOrderInput) -> PodOrderResult:
        return await self._create_order(None, order)


class LocalPrintAdapter(ManualAdapter):
    """Printed and shipped from our own shop floor."""

    name = "local_print"

    async def _create_order(self, session: aiohttp.ClientSession, order: PodOrderInput) -> PodOrderResult:
        return PodOrderResult(
            success=True,
            provider=self.name,
            external_id=order.external_id,
            status="pending_local_print",
        )

    async def _get_order_status(self, session: aiohttp.ClientSession, pod_order_id: str) -> PodOrderStatus:
        return PodOrderStatus(status="local_print")
