"""
Order composition and WhatsApp handoff.

Turns a session cart into an order record plus a WhatsApp deep link:

1. compute the total from the cart lines,
2. persist the order (best effort: a failed write is logged and reported,
   the customer still reaches WhatsApp),
3. normalize the store's WhatsApp number,
4. render the order message,
5. build the deep link and hand it to the optional handoff callable,
6. clear the cart.

Only an empty cart stops the pipeline, and it does so before any side effect.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from cart import Cart
from pricing import compute_total
from schemas import CartLine, CheckoutForm
from store_settings import SettingsStore
from whatsapp import build_whatsapp_url, normalize_phone, render_order_message

logger = logging.getLogger(__name__)

CATALOG_ROOT = "/"

SaveOrder = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]
Handoff = Callable[[str], Any]


class EmptyCartError(ValueError):
    pass


@dataclass
class CheckoutResult:
    order_id: Optional[str]
    persisted: bool
    total: Decimal
    message: str
    whatsapp_url: str
    warning: Optional[str] = None
    redirect_to: str = CATALOG_ROOT


def build_order_payload(form: CheckoutForm, lines: List[CartLine], total: Decimal) -> Dict[str, Any]:
    return {
        "customer_name": form.name,
        "customer_phone": form.phone,
        "customer_city": form.city,
        "items": [line.model_dump(mode="json") for line in lines],
        "total_price": float(total),
        "notes": form.notes or "",
    }


class OrderPipeline:
    def __init__(
        self,
        settings_store: SettingsStore,
        save_order: SaveOrder,
        whatsapp_base_url: str = "https://wa.me",
        handoff: Optional[Handoff] = None,
    ) -> None:
        self.settings_store = settings_store
        self.save_order = save_order
        self.whatsapp_base_url = whatsapp_base_url
        self.handoff = handoff
        self._pending: Set[asyncio.Future] = set()

    async def submit(self, cart: Cart, form: CheckoutForm) -> CheckoutResult:
        if cart.is_empty():
            raise EmptyCartError("Cart is empty")

        lines = cart.lines
        total = compute_total(lines)

        order_id = None
        persisted = False
        warning = None
        try:
            saved = await self.save_order(build_order_payload(form, lines, total))
            order_id = saved.get("id")
            persisted = True
        except Exception as e:
            logger.exception("Order for %s could not be saved, continuing to WhatsApp", form.name)
            warning = f"Order was not recorded: {e}"

        settings = self.settings_store.current
        message = render_order_message(
            store_name=settings.store_name,
            customer_name=form.name,
            customer_phone=form.phone,
            customer_city=form.city,
            lines=lines,
            total=total,
            notes=form.notes,
        )
        phone = normalize_phone(settings.whatsapp_number)
        url = build_whatsapp_url(self.whatsapp_base_url, phone, message)

        self._hand_off(url)
        cart.clear()

        logger.info(
            "Order %s handed off to WhatsApp %s (%d lines, total %s)",
            order_id or "<unsaved>", phone, len(lines), total,
        )
        return CheckoutResult(
            order_id=order_id,
            persisted=persisted,
            total=total,
            message=message,
            whatsapp_url=url,
            warning=warning,
        )

    def _hand_off(self, url: str) -> None:
        """Fire and forget: a failing handoff is logged, coroutine results are scheduled."""
        if self.handoff is None:
            return
        try:
            result = self.handoff(url)
        except Exception:
            logger.exception("WhatsApp handoff failed")
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._pending.add(task)
            task.add_done_callback(self._handoff_done)

    def _handoff_done(self, task: asyncio.Future) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("WhatsApp handoff failed: %s", task.exception())
