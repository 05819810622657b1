"""
Database Schemas

Each Pydantic model represents a MongoDB collection (collection name is the
lowercased class name, e.g. Order -> "order", OrderLog -> "order_log") or a
request/response body of the HTTP API.
"""
from __future__ import annotations
from datetime import datetime
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

PaymentMethod = Literal["card", "bank_transfer", "crypto"]
PaymentStatusName = Literal["success", "failed", "cancelled", "abandoned", "pending"]
FulfillmentStatus = Literal["pending", "processing", "shipped", "delivered", "failed"]
AdminFulfillmentProvider = Literal["printify", "printful", "local_print", "manual"]
LogStatus = Literal["success", "failed", "error", "skipped", "duplicate"]


# ---------- Addresses & line items ----------

class Address(BaseModel):
    model_config = ConfigDict(extra="allow")

    first_name: str = ""
    last_name: str = ""
    name: Optional[str] = None
    address1: str = ""
    address2: Optional[str] = None
    city: str = ""
    province: Optional[str] = None
    country: str = ""
    zip: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    @field_validator("first_name", "last_name", "address1", "city", "country", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        # Shopify sends null for blank address fields
        return "" if value is None else value

    @property
    def full_name(self) -> str:
        if self.name:
            return self.name
        return f"{self.first_name} {self.last_name}".strip()


class LineItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    title: str = ""
    quantity: int = Field(1, ge=1)
    price: float = Field(0, ge=0)
    sku: Optional[str] = None
    variant_id: Optional[str] = None
    product_id: Optional[str] = None
    design_preview_url: Optional[str] = None


# ---------- Orders ----------

class Order(BaseModel):
    order_number: Optional[str] = None
    external_order_id: Optional[str] = Field(None, description="Shopify order id once completed")
    shopify_draft_order_id: Optional[str] = None
    customer_email: str
    customer_phone: Optional[str] = None
    subtotal: float = 0
    tax: float = 0
    shipping_cost: float = 0
    total: float = 0
    currency: str = "NGN"
    payment_method: Optional[PaymentMethod] = None
    payment_provider: Optional[str] = None
    payment_reference: Optional[str] = None
    payment_status: str = "pending"
    shipping_address: Optional[Address] = None
    billing_address: Optional[Address] = None
    line_items: list[LineItem] = Field(default_factory=list)
    fulfillment_provider: str = "manual"
    fulfillment_status: FulfillmentStatus = "pending"
    tracking_number: Optional[str] = None
    pod_response: Optional[dict[str, Any]] = None
    notes: Optional[str] = None
    paid_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None


class OrderLog(BaseModel):
    """Append-only record of one dispatch attempt."""

    external_order_id: str
    provider: str
    status: LogStatus
    line_item_ids: list[str] = Field(default_factory=list)
    response: Optional[dict[str, Any]] = None
    job_id: Optional[str] = None
    order_id: Optional[str] = None


class FulfillmentJob(BaseModel):
    external_order_id: str
    payload: dict[str, Any]
    status: Literal["queued", "running", "done", "failed"] = "queued"
    attempts: int = 0
    last_error: Optional[str] = None
    outcome: Optional[dict[str, Any]] = None


class PaymentTransaction(BaseModel):
    order_id: str
    payment_method: PaymentMethod
    payment_provider: str
    transaction_reference: str
    amount: float
    currency: str
    status: str = "pending"
    metadata: dict[str, Any] = Field(default_factory=dict)


# ---------- Inbound Shopify webhook ----------

class ShopifyLineItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Union[int, str]
    title: str = ""
    variant_id: Optional[Union[int, str]] = None
    product_id: Optional[Union[int, str]] = None
    quantity: int = 1
    price: str = "0"
    sku: Optional[str] = None


class ShopifyOrderPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Union[int, str]
    order_number: Optional[Union[int, str]] = None
    email: Optional[str] = None
    total_price: Optional[str] = None
    currency: Optional[str] = None
    tags: Optional[Union[str, list[str]]] = None
    line_items: list[ShopifyLineItem] = Field(default_factory=list)
    shipping_address: Optional[Address] = None

    def tag_list(self) -> list[str]:
        if isinstance(self.tags, list):
            return [str(t).strip() for t in self.tags if str(t).strip()]
        if isinstance(self.tags, str):
            return [t.strip() for t in self.tags.split(",") if t.strip()]
        return []


# ---------- Catalog ----------

class ProductImage(BaseModel):
    src: str
    alt: Optional[str] = None
    position: int = 0


class Variant(BaseModel):
    id: str
    shopify_variant_id: Optional[str] = None
    title: str = ""
    price: float = Field(..., ge=0)
    compare_at_price: Optional[float] = None
    sku: Optional[str] = None
    inventory_quantity: int = 0
    option1: Optional[str] = None
    option2: Optional[str] = None
    option3: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.inventory_quantity > 0


class Product(BaseModel):
    shopify_product_id: Optional[str] = None
    title: str
    handle: str
    description: str = ""
    vendor: str = ""
    product_type: str = ""
    tags: list[str] = Field(default_factory=list)
    status: Literal["active", "draft", "archived"] = "active"
    fulfillment_provider: str = "printful"
    images: list[ProductImage] = Field(default_factory=list)
    variants: list[Variant] = Field(default_factory=list)
    collections: list[str] = Field(default_factory=list, description="Collection handles")


class Collection(BaseModel):
    title: str
    handle: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    published: bool = True


class Design(BaseModel):
    title: str
    description: Optional[str] = None
    image_url: str
    thumbnail_url: Optional[str] = None
    category: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    is_active: bool = True
    sort_order: int = 0


# ---------- Locale ----------

class Currency(BaseModel):
    code: str = Field(..., min_length=3, max_length=3)
    name: str
    symbol: str
    symbol_position: Literal["before", "after"] = "before"
    decimal_places: int = Field(2, ge=0, le=8)
    is_active: bool = True
    is_default: bool = False
    sort_order: int = 0


class CurrencyUpdate(BaseModel):
    name: Optional[str] = None
    symbol: Optional[str] = None
    symbol_position: Optional[Literal["before", "after"]] = None
    decimal_places: Optional[int] = Field(None, ge=0, le=8)
    is_active: Optional[bool] = None
    is_default: Optional[bool] = None
    sort_order: Optional[int] = None


class Language(BaseModel):
    code: str = Field(..., min_length=2, max_length=10)
    name: str
    native_name: str
    flag: Optional[str] = None
    is_rtl: bool = False
    is_active: bool = True
    is_default: bool = False
    sort_order: int = 0


class LanguageUpdate(BaseModel):
    name: Optional[str] = None
    native_name: Optional[str] = None
    flag: Optional[str] = None
    is_rtl: Optional[bool] = None
    is_active: Optional[bool] = None
    is_default: Optional[bool] = None
    sort_order: Optional[int] = None


class ExchangeRateIn(BaseModel):
    base_currency: str = Field(..., min_length=3, max_length=3)
    target_currency: str = Field(..., min_length=3, max_length=3)
    rate: float = Field(..., gt=0)


# ---------- Checkout ----------

class CheckoutItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    variant_id: str
    product_id: str
    product_title: Optional[str] = None
    title: Optional[str] = None
    variant_title: Optional[str] = None
    design_name: Optional[str] = None
    design_url: Optional[str] = None
    product_type: Optional[str] = None
    selected_options: Optional[dict[str, Any]] = None
    sku: Optional[str] = None
    image: Optional[str] = None
    price: float = Field(..., ge=0)
    quantity: int = 1
    max_quantity: Optional[int] = None


class CheckoutRequest(BaseModel):
    email: str
    shipping_address: Address
    billing_address: Optional[Address] = None
    payment_method: PaymentMethod = "card"
    crypto_currency: Optional[str] = None
    cart_items: list[CheckoutItem] = Field(default_factory=list)


# ---------- Admin ----------

class FulfillmentResult(BaseModel):
    success: bool
    order_id: str
    provider: str
    tracking_number: Optional[str] = None
    error: Optional[str] = None


class OrderStats(BaseModel):
    total_orders: int = 0
    pending_orders: int = 0
    revenue_today: float = 0


class FulfillRequest(BaseModel):
    provider: AdminFulfillmentProvider


class BulkFulfillRequest(BaseModel):
    order_ids: list[str]
    provider: AdminFulfillmentProvider


class TrackingRequest(BaseModel):
    tracking_number: str = Field(..., min_length=1)
    carrier: Optional[str] = None


class NotesRequest(BaseModel):
    notes: str
