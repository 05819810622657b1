"""
Shopping cart state.

The cart lives on the client; this module is the state container the UI
drives and the rules checkout re-applies server-side. ``serialize_cart`` and
``deserialize_cart`` are the only way in and out of local storage.
"""
from __future__ import annotations
import json
import logging
from typing import Iterable, Optional

from pydantic import BaseModel, Field, ValidationError

from config import settings

logger = logging.getLogger(__name__)

CART_STORAGE_KEY = "geeks_creation_cart"


class CartItem(BaseModel):
    variant_id: str
    product_id: str
    title: str
    variant_title: str = ""
    price: float = Field(..., ge=0)
    quantity: int = 1
    image: Optional[str] = None
    max_quantity: int = Field(99, ge=1)


class Cart(BaseModel):
    items: list[CartItem] = Field(default_factory=list)
    subtotal: float = 0
    tax: float = 0
    shipping: float = 0
    total: float = 0
    item_count: int = 0


def clamp_quantity(quantity: int, max_quantity: int) -> int:
    return max(1, min(int(quantity), max_quantity))


def calculate_cart(items: Iterable[CartItem]) -> Cart:
    items = list(items)
    subtotal = sum(item.price * item.quantity for item in items)
    tax = subtotal * settings.TAX_RATE
    shipping = 0 if subtotal >= settings.FREE_SHIPPING_THRESHOLD else settings.SHIPPING_COST
    if not items:
        shipping = 0
    return Cart(
        items=items,
        subtotal=subtotal,
        tax=tax,
        shipping=shipping,
        total=subtotal + tax + shipping,
        item_count=sum(item.quantity for item in items),
    )


def free_shipping_remaining(cart: Cart) -> float:
    return max(0.0, settings.FREE_SHIPPING_THRESHOLD - cart.subtotal)


def format_money(amount: float, symbol: str = "₦", decimal_places: int = 0, symbol_position: str = "before") -> str:
    number = f"{amount:,.{decimal_places}f}"
    return f"{symbol}{number}" if symbol_position == "before" else f"{number}{symbol}"


def free_shipping_message(cart: Cart, symbol: str = "₦") -> Optional[str]:
    """Prompt shown until the subtotal reaches the free-shipping threshold."""
    remaining = free_shipping_remaining(cart)
    if remaining <= 0:
        return None
    return f"Add {format_money(remaining, symbol)} more for free shipping"


class CartStore:
    """Explicit cart state container; every mutation recomputes the totals."""

    def __init__(self, items: Iterable[CartItem] = ()):
        self._cart = calculate_cart(items)

    @property
    def cart(self) -> Cart:
        return self._cart

    def _find(self, variant_id: str) -> int:
        for index, item in enumerate(self._cart.items):
            if item.variant_id == variant_id:
                return index
        return -1

    def _replace(self, items: list[CartItem]) -> Cart:
        self._cart = calculate_cart(items)
        return self._cart

    def add_item(self, item: CartItem, quantity: int = 1) -> Cart:
        items = list(self._cart.items)
        index = self._find(item.variant_id)
        if index >= 0:
            existing = items[index]
            new_quantity = clamp_quantity(existing.quantity + quantity, existing.max_quantity)
            items[index] = existing.model_copy(update={"quantity": new_quantity})
        else:
            new_quantity = clamp_quantity(quantity, item.max_quantity)
            items.append(item.model_copy(update={"quantity": new_quantity}))
        return self._replace(items)

    def remove_item(self, variant_id: str) -> Cart:
        return self._replace([i for i in self._cart.items if i.variant_id != variant_id])

    def update_quantity(self, variant_id: str, quantity: int) -> Cart:
        items = list(self._cart.items)
        index = self._find(variant_id)
        if index < 0:
            return self._cart
        existing = items[index]
        items[index] = existing.model_copy(
            update={"quantity": clamp_quantity(quantity, existing.max_quantity)}
        )
        return self._replace(items)

    def clear(self) -> Cart:
        return self._replace([])

    def contains(self, variant_id: str) -> bool:
        return self._find(variant_id) >= 0

    def quantity_of(self, variant_id: str) -> int:
        index = self._find(variant_id)
        return self._cart.items[index].quantity if index >= 0 else 0


def serialize_cart(cart: Cart) -> Optional[str]:
    """Storage payload for the cart; None means the storage key should be removed."""
    if not cart.items:
        return None
    return json.dumps([item.model_dump() for item in cart.items])


def deserialize_cart(payload: Optional[str]) -> Cart:
    if not payload:
        return calculate_cart([])
    try:
        raw = json.loads(payload)
        items = [CartItem.model_validate(entry) for entry in raw]
    except (ValueError, TypeError, ValidationError) as e:
        logger.warning("Failed to load cart: %s", e)
        return calculate_cart([])
    return calculate_cart(
        item.model_copy(update={"quantity": clamp_quantity(item.quantity, item.max_quantity)})
        for item in items
    )
