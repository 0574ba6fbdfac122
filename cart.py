"""
Cart state

A cart is an ordered list of line items keyed by (product_id, variant_id).
Carts are values: every update returns a new Cart and leaves the old one
untouched, so callers can compare before/after snapshots.
"""

import logging
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from schemas import LineItem, Product

logger = logging.getLogger(__name__)


class Cart(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: List[LineItem] = Field(default_factory=list)

    def find(self, product_id: str, variant_id: str) -> Optional[LineItem]:
        return next((i for i in self.items if i.key == (product_id, variant_id)), None)

    def add_item(self, item: LineItem) -> "Cart":
        """Merge into an existing entry with the same key, else append."""
        if self.find(item.product_id, item.variant_id) is None:
            return Cart(items=[*self.items, item])
        items = [
            i.model_copy(update={"quantity": i.quantity + item.quantity}) if i.key == item.key else i
            for i in self.items
        ]
        return Cart(items=items)

    def update_quantity(self, product_id: str, variant_id: str, quantity: int) -> "Cart":
        """Set the quantity of an entry; zero or less removes it. Unknown keys are ignored."""
        if quantity <= 0:
            return self.remove_item(product_id, variant_id)
        items = [
            i.model_copy(update={"quantity": quantity}) if i.key == (product_id, variant_id) else i
            for i in self.items
        ]
        return Cart(items=items)

    def remove_item(self, product_id: str, variant_id: str) -> "Cart":
        return Cart(items=[i for i in self.items if i.key != (product_id, variant_id)])

    def clear(self) -> "Cart":
        return Cart()

    def total_price(self) -> float:
        return sum(i.price * i.quantity for i in self.items)

    def total_quantity(self) -> int:
        return sum(i.quantity for i in self.items)


def clamp_quantity(requested: int, stock: int) -> int:
    """Coerce a requested quantity into 1..stock (0 when nothing is in stock)."""
    if stock <= 0:
        return 0
    return max(1, min(requested, stock))


def validate_selection(product: Product, variant_id: Optional[str], quantity: int) -> bool:
    """True when the selection may be added to a cart: known variant, 1 <= quantity <= stock."""
    if not variant_id:
        return False
    variant = product.find_variant(variant_id)
    if variant is None or variant.stock <= 0:
        return False
    return 1 <= quantity <= variant.stock


def line_item_for(product_id: str, product: Product, variant_id: str, quantity: int) -> LineItem:
    """Snapshot a product's current price and display fields into a line item."""
    variant = product.find_variant(variant_id)
    return LineItem(
        product_id=product_id,
        variant_id=variant_id,
        quantity=quantity,
        price=product.price,
        product_name=product.name,
        variant_name=variant.name if variant else "",
        product_image=product.images[0] if product.images else None,
    )


class CartRegistry:
    """Carts keyed by client session id."""

    def __init__(self):
        self._carts: Dict[str, Cart] = {}

    def get(self, session_id: str) -> Cart:
        return self._carts.get(session_id, Cart())

    def put(self, session_id: str, cart: Cart) -> Cart:
        if cart.items:
            self._carts[session_id] = cart
        else:
            self._carts.pop(session_id, None)
        return cart

    def discard(self, session_id: str) -> None:
        if self._carts.pop(session_id, None) is not None:
            logger.debug("Discarded cart for session %s", session_id)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._carts

    def __len__(self) -> int:
        return len(self._carts)
