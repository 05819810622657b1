"""
Shopify Admin API client.

REST is used for the per-resource lookups the order webhook needs (variant,
product metafields, order); GraphQL for draft orders and the catalog sync.
"""
from __future__ import annotations
import logging
from typing import Any, Optional

import aiohttp

from config import settings
from errors import NotConfiguredError, ProviderAPIError
from http_client import create_client_session, request_json

logger = logging.getLogger(__name__)

PROVIDER_NAMESPACE = "custom"
PROVIDER_KEY = "fulfillment_provider"

PRODUCTS_QUERY = """
query GetProducts($first: Int!, $after: String) {
  products(first: $first, after: $after) {
    edges {
      node {
        id
        title
        handle
        description
        vendor
        productType
        tags
        status
        images(first: 10) { edges { node { id src altText } } }
        variants(first: 50) {
          edges {
            node {
              id
              title
              price
              compareAtPrice
              sku
              inventoryQuantity
              selectedOptions { name value }
            }
          }
        }
        metafields(first: 10) { edges { node { namespace key value } } }
      }
    }
    pageInfo { hasNextPage endCursor }
  }
}
"""

COLLECTIONS_QUERY = """
query GetCollections($first: Int!) {
  collections(first: $first) {
    edges { node { id title handle description image { src altText } } }
  }
}
"""

DRAFT_ORDER_CREATE = """
mutation draftOrderCreate($input: DraftOrderInput!) {
  draftOrderCreate(input: $input) {
    draftOrder { id name }
    userErrors { field message }
  }
}
"""

DRAFT_ORDER_COMPLETE = """
mutation draftOrderComplete($id: ID!, $paymentPending: Boolean) {
  draftOrderComplete(id: $id, paymentPending: $paymentPending) {
    draftOrder { id order { id name } }
    userErrors { field message }
  }
}
"""


def gid_to_id(gid: Any) -> str:
    """'gid://shopify/ProductVariant/123' -> '123'."""
    return str(gid).rsplit("/", 1)[-1]


def to_gid(kind: str, value: Any) -> str:
    value = str(value)
    return value if value.startswith("gid://") else f"gid://shopify/{kind}/{value}"


def _mailing_address(address: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    if not address:
        return None
    return {
        "firstName": address.get("first_name") or "",
        "lastName": address.get("last_name") or "",
        "address1": address.get("address1") or "",
        "address2": address.get("address2") or "",
        "city": address.get("city") or "",
        "province": address.get("province") or "",
        "country": address.get("country") or "",
        "zip": address.get("zip") or "",
        "phone": address.get("phone") or "",
    }


class ShopifyAdminClient:
    name = "shopify"

    def __init__(self, session: aiohttp.ClientSession | None = None):
        self._session = session

    @property
    def base_url(self) -> str:
        return f"https://{settings.SHOPIFY_STORE_DOMAIN}/admin/api/{settings.SHOPIFY_API_VERSION}"

    def _headers(self) -> dict[str, str]:
        if not settings.is_shopify_configured():
            raise NotConfiguredError("Shopify", "SHOPIFY_STORE_DOMAIN and SHOPIFY_ACCESS_TOKEN")
        return {
            "X-Shopify-Access-Token": settings.SHOPIFY_ACCESS_TOKEN,
            "Content-Type": "application/json",
        }

    async def _call(self, method: str, path: str, **kwargs) -> Any:
        headers = self._headers()
        url = f"{self.base_url}{path}"
        if self._session is not None:
            return await request_json(self._session, method, url, provider=self.name, headers=headers, **kwargs)
        async with create_client_session() as session:
            return await request_json(session, method, url, provider=self.name, headers=headers, **kwargs)

    async def graphql(self, query: str, variables: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        data = await self._call("POST", "/graphql.json", json={"query": query, "variables": variables or {}})
        if data.get("errors"):
            errors = data["errors"]
            message = errors[0].get("message") if isinstance(errors, list) else str(errors)
            raise ProviderAPIError(self.name, None, message or "GraphQL error")
        return data.get("data") or {}

    async def get_fulfillment_provider(self, variant_id: Any) -> Optional[str]:
        """Provider name from the product's ``custom.fulfillment_provider`` metafield."""
        variant = (await self._call("GET", f"/variants/{gid_to_id(variant_id)}.json")).get("variant") or {}
        product_id = variant.get("product_id")
        if not product_id:
            return None
        data = await self._call("GET", f"/products/{product_id}/metafields.json")
        for field in data.get("metafields") or []:
            if field.get("namespace") == PROVIDER_NAMESPACE and field.get("key") == PROVIDER_KEY:
                return (field.get("value") or "").strip().lower() or None
        return None

    async def get_order(self, order_id: Any) -> Optional[dict[str, Any]]:
        data = await self._call("GET", f"/orders/{gid_to_id(order_id)}.json")
        return data.get("order")

    async def create_draft_order(
        self,
        email: str,
        line_items: list[dict[str, Any]],
        shipping_address: Optional[dict[str, Any]] = None,
        billing_address: Optional[dict[str, Any]] = None,
        tags: Optional[list[str]] = None,
        note: Optional[str] = None,
    ) -> dict[str, str]:
        """Create a draft order of custom line items; returns ``{"id", "name"}``."""
        currency = settings.SHOPIFY_CURRENCY_CODE.strip().upper()
        draft_input: dict[str, Any] = {
            "email": email,
            "lineItems": [
                {
                    "title": item["title"],
                    "originalUnitPriceWithCurrency": {
                        "amount": f"{float(item['price']):.2f}",
                        "currencyCode": currency,
                    },
                    "quantity": int(item["quantity"]),
                    "customAttributes": [
                        {"key": k, "value": str(v)} for k, v in (item.get("attributes") or {}).items()
                    ],
                }
                for item in line_items
            ],
            "tags": tags or [],
        }
        if note:
            draft_input["note"] = note
        if shipping_address:
            draft_input["shippingAddress"] = _mailing_address(shipping_address)
        if billing_address:
            draft_input["billingAddress"] = _mailing_address(billing_address)

        data = await self.graphql(DRAFT_ORDER_CREATE, {"input": draft_input})
        payload = data.get("draftOrderCreate") or {}
        if payload.get("userErrors"):
            raise ProviderAPIError(self.name, None, payload["userErrors"][0].get("message", ""))
        draft = payload.get("draftOrder")
        if not draft:
            raise ProviderAPIError(self.name, None, "Draft order creation returned no draft order")
        return {"id": draft["id"], "name": draft["name"]}

    async def complete_draft_order(self, draft_id: str, payment_reference: str) -> dict[str, str]:
        """Complete a draft as paid; returns ``{"order_id", "order_name"}``."""
        data = await self.graphql(
            DRAFT_ORDER_COMPLETE,
            {"id": to_gid("DraftOrder", draft_id), "paymentPending": False},
        )
        payload = data.get("draftOrderComplete") or {}
        if payload.get("userErrors"):
            raise ProviderAPIError(self.name, None, payload["userErrors"][0].get("message", ""))
        order = ((payload.get("draftOrder") or {}).get("order")) or {}
        if not order:
            raise ProviderAPIError(self.name, None, "Draft order completion returned no order")
        logger.info(
            "Completed draft order %s", draft_id,
            extra={"fields": {"order": order.get("name"), "payment_reference": payment_reference}},
        )
        return {"order_id": gid_to_id(order["id"]), "order_name": order.get("name") or ""}

    async def list_products(self, page_size: int = 250) -> list[dict[str, Any]]:
        products: list[dict[str, Any]] = []
        after = None
        while True:
            data = await self.graphql(PRODUCTS_QUERY, {"first": page_size, "after": after})
            connection = data.get("products") or {}
            products.extend(edge["node"] for edge in connection.get("edges") or [])
            page_info = connection.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                return products
            after = page_info.get("endCursor")

    async def list_collections(self, limit: int = 50) -> list[dict[str, Any]]:
        data = await self.graphql(COLLECTIONS_QUERY, {"first": limit})
        return [edge["node"] for edge in (data.get("collections") or {}).get("edges") or []]
