"""Tests for the print-on-demand adapters and their registry."""

import pytest

from config import settings
from errors import UnknownProviderError
from fulfillment import (
    FulfillmentRegistry,
    IkonshopAdapter,
    LocalPrintAdapter,
    ManualAdapter,
    PodOrderInput,
    PodOrderItem,
    PodRecipient,
    PrintfulAdapter,
    PrintifyAdapter,
)


@pytest.fixture
def pod_order():
    return PodOrderInput(
        provider="printful",
        external_id="geeks-5551234",
        label="Order #1042",
        recipient=PodRecipient(
            name="Ada Obi",
            address1="12 Marina Road",
            city="Lagos",
            state_code="LA",
            country_code="NG",
            zip="101001",
            email="buyer@example.com",
        ),
        items=[PodOrderItem(line_item_id="1", product_id="71", variant_id="4012", quantity=2, name="Tee")],
    )


class TestPrintful:
    async def test_unconfigured_returns_failure_without_calling_out(self, http, pod_order):
        result = await PrintfulAdapter(http).create_order(pod_order)
        assert result.success is False
        assert "PRINTFUL_API_KEY" in result.error
        assert http.calls == []

    async def test_create_order_posts_recipient_and_items(self, http, pod_order, monkeypatch):
        monkeypatch.setattr(settings, "PRINTFUL_API_KEY", "pf-key")
        http.add("POST", "api.printful.com/orders", {
            "code": 200,
            "result": {"id": 77001, "status": "draft", "shipments": [{"tracking_number": "TRK1"}]},
        })
        result = await PrintfulAdapter(http).create_order(pod_order)

        assert result.success is True
        assert result.pod_order_id == "77001"
        assert result.tracking_number == "TRK1"
        call = http.calls[0]
        assert call.kwargs["headers"]["Authorization"] == "Bearer pf-key"
        body = call.kwargs["json"]
        assert body["external_id"] == "geeks-5551234"
        assert body["recipient"]["state_code"] == "LA"
        assert body["items"][0]["sync_variant_id"] == 4012
        assert "external_variant_id" not in body["items"][0]
        assert body["items"][0]["quantity"] == 2

    async def test_http_error_becomes_failed_result(self, http, pod_order, monkeypatch):
        monkeypatch.setattr(settings, "PRINTFUL_API_KEY", "pf-key")
        http.add("POST", "api.printful.com/orders", {"error": "bad address"}, status=400)
        result = await PrintfulAdapter(http).create_order(pod_order)
        assert result.success is False
        assert "400" in result.error


class TestPrintify:
    async def test_create_order_uses_shop_and_address_to(self, http, pod_order, monkeypatch):
        monkeypatch.setattr(settings, "PRINTIFY_API_KEY", "pfy-key")
        monkeypatch.setattr(settings, "PRINTIFY_SHOP_ID", "shop9")
        http.add("POST", "/shops/shop9/orders.json", {"id": "abc123", "status": "on-hold"})
        result = await PrintifyAdapter(http).create_order(pod_order)

        assert result.success is True
        assert result.pod_order_id == "abc123"
        body = http.calls[0].kwargs["json"]
        assert body["address_to"]["first_name"] == "Ada"
        assert body["address_to"]["last_name"] == "Obi"
        assert body["line_items"] == [{"product_id": "71", "quantity": 2, "variant_id": 4012}]

    def test_requires_both_key_and_shop(self, monkeypatch):
        monkeypatch.setattr(settings, "PRINTIFY_API_KEY", "pfy-key")
        assert PrintifyAdapter().is_configured() is False


class TestIkonshop:
    async def test_payload_marks_crypto(self, http, pod_order, monkeypatch):
        monkeypatch.setattr(settings, "IKONSHOP_API_KEY", "ik-key")
        http.add("POST", "/orders", {"order_id": "IK-1", "status": "received"})
        result = await IkonshopAdapter(http).create_order(pod_order)
        assert result.success is True
        assert result.pod_order_id == "IK-1"
        assert http.calls[0].kwargs["json"]["payment_method"] == "crypto"


class TestManual:
    async def test_never_calls_out(self, http, pod_order):
        result = await ManualAdapter(http).create_order(pod_order)
        assert result.success is True
        assert result.status == "pending_manual_fulfillment"
        assert http.calls == []

    async def test_local_print_is_in_house(self, http, pod_order):
        result = await LocalPrintAdapter(http).create_order(pod_order)
        assert (result.success, result.provider, result.status) == (True, "local_print", "pending_local_print")
        assert http.calls == []


class TestRegistry:
    def test_default_registers_every_provider(self):
        registry = FulfillmentRegistry.default()
        assert set(registry.names()) == {"printful", "printify", "ikonshop", "manual", "local_print"}

    def test_lookup_is_case_insensitive(self):
        registry = FulfillmentRegistry.default()
        assert registry.get(" Printful ").name == "printful"
        assert "PRINTIFY" in registry

    def test_unknown_provider_raises(self):
        with pytest.raises(UnknownProviderError):
            FulfillmentRegistry.default().get("gelato")
        assert None not in FulfillmentRegistry.default()
