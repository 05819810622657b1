from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from cart import CartItem, CartStore, free_shipping_message, free_shipping_remaining

router = APIRouter(prefix="/api/cart", tags=["cart"])


class CartSummaryRequest(BaseModel):
    items: list[CartItem] = []


@router.post("/summary")
async def cart_summary(payload: CartSummaryRequest):
    store = CartStore()
    for item in payload.items:
        store.add_item(item, quantity=item.quantity)
    cart = store.cart
    return {
        "cart": cart.model_dump(),
        "free_shipping_remaining": free_shipping_remaining(cart),
        "free_shipping_message": free_shipping_message(cart),
    }
