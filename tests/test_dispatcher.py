"""Tests for per-provider dispatch of queued Shopify orders."""

import pytest
from bson import ObjectId

import admin
import jobs
import order_log
from dispatcher import (
    dispatch_order,
    external_reference,
    pod_item,
    process_job,
    recipient_from_address,
    resolve_provider,
    run_fulfillment_queue,
)
from fulfillment import FulfillmentRegistry
from schemas import ShopifyLineItem, ShopifyOrderPayload
from shopify import ShopifyAdminClient
from tests.conftest import RecordingAdapter, add_product


@pytest.fixture
def printful():
    return RecordingAdapter("printful")


@pytest.fixture
def printify():
    return RecordingAdapter("printify")


@pytest.fixture
def registry(printful, printify):
    return FulfillmentRegistry([printful, printify])


@pytest.fixture
def catalog(db):
    add_product(db, "hello-world-tee", "printful", ["71-4012"])
    add_product(db, "bug-hunter-hoodie", "printify", ["pfy-555"])


def statuses(db):
    return sorted((e["provider"], e["status"]) for e in db["order_log"].docs)


class TestHelpers:
    def test_external_reference(self):
        assert external_reference(5551234) == "geeks-5551234"

    def test_recipient_prefers_state_code_then_province(self):
        r = recipient_from_address(
            {"first_name": "Ada", "last_name": "Obi", "city": "Lagos", "province": "Lagos", "country": "NG"},
            "a@b.c",
        )
        assert r.name == "Ada Obi"
        assert r.state_code == "Lagos"
        assert r.country_code == "NG"
        assert r.email == "a@b.c"

    def test_printful_item_uses_variant_part_of_sku(self):
        item = ShopifyLineItem(id=1, title="Tee", variant_id=901, quantity=2, price="1.00", sku="71-4012")
        converted = pod_item("printful", item)
        assert converted.product_id == "71"
        assert converted.variant_id == "4012"
        assert pod_item("printify", item).variant_id == "901"


class TestResolveProvider:
    async def test_catalog_sku_wins(self, db, catalog):
        item = ShopifyLineItem(id=1, sku="pfy-555", variant_id=1)
        assert await resolve_provider(db, item, ShopifyAdminClient()) == "printify"

    async def test_falls_back_to_shopify_variant_id(self, db):
        add_product(db, "mug", "manual", [], variants=[{"id": "m1", "shopify_variant_id": "903", "price": 1}])
        item = ShopifyLineItem(id=1, variant_id=903)
        assert await resolve_provider(db, item, ShopifyAdminClient()) == "manual"

    async def test_metafield_lookup(self, db, http, shopify_configured):
        http.add("GET", "/variants/903.json", {"variant": {"id": 903, "product_id": 88}})
        http.add("GET", "/products/88/metafields.json", {"metafields": [
            {"namespace": "custom", "key": "fulfillment_provider", "value": " Printify "},
        ]})
        item = ShopifyLineItem(id=1, variant_id=903)
        assert await resolve_provider(db, item, ShopifyAdminClient(http)) == "printify"

    async def test_metafield_errors_resolve_to_none(self, db, http, shopify_configured):
        http.add("GET", "/variants/903.json", {"errors": "Not Found"}, status=404)
        item = ShopifyLineItem(id=1, variant_id=903)
        assert await resolve_provider(db, item, ShopifyAdminClient(http)) is None

    async def test_unconfigured_shopify_is_not_called(self, db, http):
        item = ShopifyLineItem(id=1, variant_id=903)
        assert await resolve_provider(db, item, ShopifyAdminClient(http)) is None
        assert http.calls == []


class TestDispatchOrder:
    async def test_one_request_per_provider(self, db, catalog, registry, printful, printify, shopify_order_payload):
        order = ShopifyOrderPayload.model_validate(shopify_order_payload)
        outcome = await dispatch_order(db, order, registry, ShopifyAdminClient(), job_id="job1")

        assert outcome == {"external_order_id": "5551234",
                           "providers": {"printful": "success", "printify": "success"}, "errors": 0}
        assert len(printful.orders) == 1
        assert len(printify.orders) == 1
        assert [i.line_item_id for i in printful.orders[0].items] == ["1"]
        assert [i.line_item_id for i in printify.orders[0].items] == ["2"]
        assert printful.orders[0].external_id == "geeks-5551234"
        assert printful.orders[0].recipient.state_code == "LA"
        assert statuses(db) == [("printful", "success"), ("printify", "success")]
        assert all(e["job_id"] == "job1" for e in db["order_log"].docs)

    async def test_items_for_same_provider_are_grouped(self, db, registry, printful, shopify_order_payload):
        add_product(db, "tee", "printful", ["71-4012", "pfy-555"])
        order = ShopifyOrderPayload.model_validate(shopify_order_payload)
        await dispatch_order(db, order, registry, ShopifyAdminClient())
        assert len(printful.orders) == 1
        assert len(printful.orders[0].items) == 2
        assert db["order_log"].docs[0]["line_item_ids"] == ["1", "2"]

    async def test_unknown_provider_does_not_block_other_items(self, db, registry, printful, shopify_order_payload):
        add_product(db, "hello-world-tee", "printful", ["71-4012"])
        order = ShopifyOrderPayload.model_validate(shopify_order_payload)
        outcome = await dispatch_order(db, order, registry, ShopifyAdminClient())

        assert outcome["errors"] == 1
        assert outcome["providers"] == {"printful": "success"}
        assert len(printful.orders) == 1
        error = next(e for e in db["order_log"].docs if e["status"] == "error")
        assert error["provider"] == "unknown"
        assert error["line_item_ids"] == ["2"]
        assert error["response"]["error"] == "unknown provider"

    async def test_provider_outside_registry_is_an_error(self, db, registry, shopify_order_payload):
        add_product(db, "tee", "gelato", ["71-4012", "pfy-555"])
        order = ShopifyOrderPayload.model_validate(shopify_order_payload)
        outcome = await dispatch_order(db, order, registry, ShopifyAdminClient())
        assert outcome["errors"] == 2
        assert statuses(db) == [("gelato", "error"), ("gelato", "error")]

    async def test_provider_already_successful_is_not_called_again(
        self, db, catalog, registry, printful, printify, shopify_order_payload
    ):
        await order_log.record_attempt(db, "5551234", "printful", "success")
        order = ShopifyOrderPayload.model_validate(shopify_order_payload)
        outcome = await dispatch_order(db, order, registry, ShopifyAdminClient())

        assert printful.orders == []
        assert len(printify.orders) == 1
        assert outcome["providers"] == {"printful": "duplicate", "printify": "success"}
        assert ("printful", "duplicate") in statuses(db)

    async def test_failed_provider_is_logged_and_counted(self, db, catalog, printify, shopify_order_payload):
        failing = RecordingAdapter("printful", succeed=False)
        registry = FulfillmentRegistry([failing, printify])
        order = ShopifyOrderPayload.model_validate(shopify_order_payload)
        outcome = await dispatch_order(db, order, registry, ShopifyAdminClient())

        assert outcome["errors"] == 1
        failed = next(e for e in db["order_log"].docs if e["provider"] == "printful")
        assert failed["status"] == "failed"
        assert failed["response"]["error"] == "out of stock"

    async def test_missing_address_is_logged_failed(self, db, registry, printful, shopify_order_payload):
        del shopify_order_payload["shipping_address"]
        order = ShopifyOrderPayload.model_validate(shopify_order_payload)
        outcome = await dispatch_order(db, order, registry, ShopifyAdminClient())
        assert outcome["errors"] == 1
        assert printful.orders == []
        assert statuses(db) == [("unknown", "failed")]

    async def test_local_order_record_is_updated(self, db, catalog, shopify_order_payload):
        registry = FulfillmentRegistry([RecordingAdapter("printful", tracking="TRK9"), RecordingAdapter("printify")])
        db["order"].docs.append({"_id": ObjectId(), "external_order_id": "5551234", "fulfillment_status": "pending"})
        order = ShopifyOrderPayload.model_validate(shopify_order_payload)
        await dispatch_order(db, order, registry, ShopifyAdminClient())

        stored = db["order"].docs[0]
        assert stored["fulfillment_status"] == "processing"
        assert stored["fulfillment_provider"] == "printful"
        assert stored["tracking_number"] == "TRK9"
        assert stored["pod_response"]["recipient"]["city"] == "Lagos"

    async def test_webhook_order_is_listed_for_admins(self, db, catalog, registry, shopify_order_payload):
        order = ShopifyOrderPayload.model_validate(shopify_order_payload)
        await dispatch_order(db, order, registry, ShopifyAdminClient())
        await dispatch_order(db, order, registry, ShopifyAdminClient())

        orders = await admin.get_orders()
        assert len(orders) == 1
        listed = orders[0]
        assert listed["external_order_id"] == "5551234"
        assert listed["order_number"] == "#1042"
        assert listed["customer_email"] == "buyer@example.com"
        assert listed["fulfillment_status"] == "processing"
        assert listed["fulfillment_provider"] == "printful"
        assert listed["shipping_city"] == "Lagos"
        assert [i["sku"] for i in listed["items"]] == ["71-4012", "pfy-555"]

    async def test_undispatchable_order_is_recorded_failed(self, db, registry, shopify_order_payload):
        del shopify_order_payload["shipping_address"]
        order = ShopifyOrderPayload.model_validate(shopify_order_payload)
        await dispatch_order(db, order, registry, ShopifyAdminClient())

        [stored] = db["order"].docs
        assert stored["external_order_id"] == "5551234"
        assert stored["fulfillment_status"] == "failed"
        assert stored["shipping_address"] is None


class TestQueueProcessing:
    async def test_run_drains_queue_and_records_outcome(self, db, catalog, registry, printful, shopify_order_payload):
        await jobs.enqueue(db, ShopifyOrderPayload.model_validate(shopify_order_payload).model_dump(mode="json"))
        processed = await run_fulfillment_queue(registry=registry, shopify=ShopifyAdminClient())

        assert processed == 1
        job = db["fulfillment_job"].docs[0]
        assert job["status"] == "done"
        assert job["attempts"] == 1
        assert job["outcome"]["providers"]["printful"] == "success"

    async def test_unparsable_job_is_logged_and_marked_failed(self, db, registry):
        await jobs.enqueue(db, {"id": 77, "line_items": "garbage"})
        processed = await run_fulfillment_queue(registry=registry, shopify=ShopifyAdminClient())

        assert processed == 1
        job = db["fulfillment_job"].docs[0]
        assert job["status"] == "failed"
        assert job["last_error"]
        assert statuses(db) == [("error", "failed")]

    async def test_process_job_reraises(self, db, registry):
        job = {"id": "j1", "external_order_id": "77", "payload": {"id": 77, "line_items": "garbage"}}
        with pytest.raises(Exception):
            await process_job(db, job, registry, ShopifyAdminClient())
        assert db["order_log"].docs[0]["job_id"] == "j1"
