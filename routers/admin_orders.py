from __future__ import annotations
import asyncio
import contextlib

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

import admin
from order_events import broker, format_sse
from routers import require_admin
from schemas import BulkFulfillRequest, FulfillRequest, FulfillmentResult, NotesRequest, OrderStats, TrackingRequest

router = APIRouter(prefix="/api/admin/orders", tags=["admin-orders"], dependencies=[Depends(require_admin)])

KEEPALIVE_SECONDS = 15


@router.get("")
async def list_orders(limit: int = Query(100, ge=1, le=500), skip: int = Query(0, ge=0)):
    return {"orders": await admin.get_orders(limit=limit, skip=skip)}


@router.get("/stats", response_model=OrderStats)
async def order_stats():
    return await admin.get_order_stats()


@router.get("/events")
async def order_events(request: Request):
    """Server-sent change feed; clients refetch on reconnect."""

    async def stream():
        events = broker.subscribe()
        pending = None
        try:
            while not await request.is_disconnected():
                # the pending read survives keepalive ticks; cancelling it would close the generator
                if pending is None:
                    pending = asyncio.ensure_future(events.__anext__())
                done, _ = await asyncio.wait({pending}, timeout=KEEPALIVE_SECONDS)
                if not done:
                    yield ": keepalive\n\n"
                    continue
                event, pending = pending.result(), None
                yield format_sse(event)
        finally:
            if pending is not None:
                pending.cancel()
                with contextlib.suppress(asyncio.CancelledError, StopAsyncIteration):
                    await pending
            await events.aclose()

    return StreamingResponse(stream(), media_type="text/event-stream")


@router.post("/bulk-fulfill", response_model=list[FulfillmentResult])
async def bulk_fulfill(payload: BulkFulfillRequest):
    return await admin.bulk_fulfill_orders(payload.order_ids, payload.provider)


@router.get("/{order_id}")
async def get_order(order_id: str):
    return {"order": await admin.get_order(order_id)}


@router.post("/{order_id}/fulfill", response_model=FulfillmentResult)
async def fulfill(order_id: str, payload: FulfillRequest):
    return await admin.fulfill_order(order_id, payload.provider)


@router.post("/{order_id}/refresh-status")
async def refresh_status(order_id: str):
    return await admin.refresh_fulfillment_status(order_id)


@router.post("/{order_id}/tracking")
async def add_tracking(order_id: str, payload: TrackingRequest):
    return await admin.add_tracking_number(order_id, payload.tracking_number, payload.carrier)


@router.patch("/{order_id}/notes")
async def update_notes(order_id: str, payload: NotesRequest):
    return {"order": await admin.update_order_notes(order_id, payload.notes)}
