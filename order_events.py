"""In-process order change feed backing the admin SSE endpoint.

Delivery is best effort: a subscriber whose queue is full misses events and
is expected to refetch the order list.
"""
from __future__ import annotations
import asyncio
import json
import logging
from typing import Any, AsyncIterator

logger = logging.getLogger(__name__)

QUEUE_SIZE = 100


class OrderEventBroker:
    def __init__(self):
        self._subscribers: set[asyncio.Queue] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event_type: str, order: dict[str, Any]) -> None:
        event = {"type": event_type, "order_id": order.get("id"), "order": order}
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("Dropping order event for slow subscriber")

    async def subscribe(self) -> AsyncIterator[dict[str, Any]]:
        queue: asyncio.Queue = asyncio.Queue(maxsize=QUEUE_SIZE)
        self._subscribers.add(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            self._subscribers.discard(queue)


def format_sse(event: dict[str, Any]) -> str:
    return f"event: {event['type']}\ndata: {json.dumps(event, default=str)}\n\n"


broker = OrderEventBroker()
