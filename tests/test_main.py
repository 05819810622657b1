import asyncio

from fastapi.testclient import TestClient

import main
from errors import OrderNotFoundError, ProviderAPIError, StorefrontError


def test_status_follows_error_hierarchy():
    assert main.status_for(OrderNotFoundError("o1")) == 404
    assert main.status_for(ProviderAPIError("printful", 500, "boom")) == 502
    assert main.status_for(StorefrontError("plain")) == 500


def test_health_check_reports_configuration(db):
    db["product"].docs.append({"handle": "tee"})
    body = TestClient(main.app).get("/test").json()
    assert body["database"] == "Connected"
    assert body["collections"] == ["product"]
    assert body["configuration"]["shopify"] is False
    assert body["configuration"]["payment_provider"] == "paystack"


async def test_seed_defaults_only_fills_empty_collections(db, mongo_client):
    await main.seed_defaults()
    await main.seed_defaults()
    assert [c["code"] for c in db["currency"].docs] == ["NGN"]
    assert len(db["product"].docs) == len(main.SEED_PRODUCTS)
    assert len(db["collection"].docs) == len(main.SEED_COLLECTIONS)
    assert db["site_setting"].docs
    assert mongo_client.closed == 4


def test_queue_runs_in_background_and_stops_on_shutdown(db, monkeypatch):
    events = []

    async def slow_queue():
        events.append("started")
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            events.append("cancelled")
            raise

    monkeypatch.setattr(main, "configure_logging", lambda: None)
    monkeypatch.setattr(main, "run_fulfillment_queue", slow_queue)
    with TestClient(main.app) as client:
        assert client.get("/").status_code == 200
        assert not main.app.state.queue_task.done()
    assert events == ["started", "cancelled"]
    assert main.app.state.queue_task.cancelled()
