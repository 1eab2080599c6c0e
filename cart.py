from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import Callable, Dict, List, Optional

from schemas import CartLine, Product

logger = logging.getLogger(__name__)


class CartError(ValueError):
    pass


class Cart:
    """Volatile, session scoped list of cart lines, one line per product variant."""

    def __init__(self) -> None:
        self._lines: List[CartLine] = []

    @property
    def lines(self) -> List[CartLine]:
        return [line.model_copy(deep=True) for line in self._lines]

    def __len__(self) -> int:
        return len(self._lines)

    def is_empty(self) -> bool:
        return not self._lines

    def add_item(
        self,
        product: Product,
        quantity: int = 1,
        color: Optional[str] = None,
        fabric: Optional[str] = None,
    ) -> CartLine:
        if quantity < 1:
            raise CartError("quantity must be >= 1")
        color = color or None
        fabric = fabric or None
        if color is not None and color not in product.colors:
            raise CartError(f"color '{color}' is not offered for {product.name}")
        if fabric is not None and fabric not in product.fabrics:
            raise CartError(f"fabric '{fabric}' is not offered for {product.name}")

        for line in self._lines:
            if line.id == product.id and line.selected_color == color and line.selected_fabric == fabric:
                line.quantity += quantity
                return line

        line = CartLine(
            **product.model_dump(),
            quantity=quantity,
            selected_color=color,
            selected_fabric=fabric,
        )
        self._lines.append(line)
        return line

    def remove_item(self, product_id: str) -> int:
        """Remove every line of the product, whatever its variant. Returns the number removed."""
        before = len(self._lines)
        self._lines = [line for line in self._lines if line.id != product_id]
        return before - len(self._lines)

    def clear(self) -> None:
        self._lines = []

    def total_item_count(self) -> int:
        return sum(line.quantity for line in self._lines)


class CartRegistry:
    """
    Session id -> cart map. Carts are created on first write only and
    dropped after ``idle_seconds`` without use; ``max_carts`` caps the map by
    evicting the least recently used cart.
    """

    def __init__(
        self,
        idle_seconds: float = 24 * 60 * 60,
        max_carts: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.idle_seconds = idle_seconds
        self.max_carts = max_carts
        self._clock = clock
        self._carts: OrderedDict[str, Cart] = OrderedDict()
        self._touched: Dict[str, float] = {}

    def _sweep(self) -> None:
        cutoff = self._clock() - self.idle_seconds
        # least recently used first, stop at the first live cart
        for session_id in list(self._carts):
            if self._touched[session_id] > cutoff:
                break
            self.discard(session_id)
            logger.debug("Cart for session %s expired", session_id)

    def _touch(self, session_id: str) -> None:
        self._carts.move_to_end(session_id)
        self._touched[session_id] = self._clock()

    def peek(self, session_id: str) -> Optional[Cart]:
        """Existing cart for the session, or None. Never creates one."""
        self._sweep()
        cart = self._carts.get(session_id)
        if cart is not None:
            self._touch(session_id)
        return cart

    def get(self, session_id: str) -> Cart:
        cart = self.peek(session_id)
        if cart is None:
            while len(self._carts) >= self.max_carts:
                oldest = next(iter(self._carts))
                self.discard(oldest)
                logger.warning("Cart limit of %d reached, evicted session %s", self.max_carts, oldest)
            cart = self._carts[session_id] = Cart()
            self._touch(session_id)
            logger.debug("Cart opened for session %s", session_id)
        return cart

    def discard(self, session_id: str) -> None:
        self._carts.pop(session_id, None)
        self._touched.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._carts)
