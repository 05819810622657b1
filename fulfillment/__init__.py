"""
Print-on-demand fulfillment adapters.

Usage:
    from fulfillment import FulfillmentRegistry

    registry = FulfillmentRegistry.default(session)
    result = await registry.get("printful").create_order(order_input)
"""
from __future__ import annotations
from typing import Iterable, Optional

import aiohttp

from errors import UnknownProviderError

from .base import (
    FulfillmentAdapter,
    PodOrderInput,
    PodOrderItem,
    PodOrderResult,
    PodOrderStatus,
    PodRecipient,
    RetailCosts,
)
from .ikonshop import IkonshopAdapter
from .manual import LocalPrintAdapter, ManualAdapter
from .printful import PrintfulAdapter
from .printify import PrintifyAdapter

ADAPTER_CLASSES: tuple[type[FulfillmentAdapter], ...] = (
    PrintfulAdapter,
    PrintifyAdapter,
    IkonshopAdapter,
    ManualAdapter,
    LocalPrintAdapter,
)


class FulfillmentRegistry:
    """Provider name -> adapter."""

    def __init__(self, adapters: Iterable[FulfillmentAdapter] = ()):
        self._adapters: dict[str, FulfillmentAdapter] = {}
        for adapter in adapters:
            self.register(adapter)

    @classmethod
    def default(cls, session: Optional[aiohttp.ClientSession] = None) -> "FulfillmentRegistry":
        return cls(adapter_cls(session) for adapter_cls in ADAPTER_CLASSES)

    def register(self, adapter: FulfillmentAdapter) -> None:
        self._adapters[adapter.name] = adapter

    def get(self, provider: Optional[str]) -> FulfillmentAdapter:
        adapter = self._adapters.get((provider or "").strip().lower())
        if adapter is None:
            raise UnknownProviderError(provider)
        return adapter

    def __contains__(self, provider: object) -> bool:
        return isinstance(provider, str) and provider.strip().lower() in self._adapters

    def names(self) -> list[str]:
        return list(self._adapters)


__all__ = [
    "FulfillmentAdapter",
    "FulfillmentRegistry",
    "IkonshopAdapter",
    "LocalPrintAdapter",
    "ManualAdapter",
    "PodOrderInput",
    "PodOrderItem",
    "PodOrderResult",
    "PodOrderStatus",
    "PodRecipient",
    "PrintfulAdapter",
    "PrintifyAdapter",
    "RetailCosts",
]
