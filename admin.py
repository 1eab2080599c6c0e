from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from database import create_document, delete_document, get_documents, update_document
from formatters import to_cents
from pricing import compute_total
from realtime import OrderFeed
from schemas import PLACEHOLDER_IMAGE, ProductIn

logger = logging.getLogger(__name__)

# newest records loaded per admin listing
ORDER_LIST_LIMIT = 500
PRODUCT_LIST_LIMIT = 500


class ProductSaveError(RuntimeError):
    pass


# ---------------- orders ----------------

def order_display_total(order: Dict[str, Any]) -> Decimal:
    """
    Total shown to the admin. The sum over the stored item snapshot wins;
    total_price is only used when the record has no usable item list, since
    it may be stale or missing on older orders.
    """
    items = order.get("items")
    if isinstance(items, list) and items:
        return compute_total(items)
    return to_cents(order.get("total_price"))


def _order_date(value: Any) -> Optional[str]:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date().isoformat()
        except ValueError:
            return value[:10]
    return None


def filter_orders(
    orders: Iterable[Dict[str, Any]],
    search: Optional[str] = "",
    on_date: Optional[str] = None,
) -> List[Dict[str, Any]]:
    needle = (search or "").strip().lower()
    return [
        o
        for o in orders
        if needle in (o.get("customer_name") or "").lower()
        and (not on_date or _order_date(o.get("created_at")) == on_date)
    ]


def orders_revenue(orders: Iterable[Dict[str, Any]]) -> Decimal:
    return to_cents(sum((order_display_total(o) for o in orders), Decimal("0")))


async def list_orders(
    search: Optional[str] = "", on_date: Optional[str] = None, limit: int = ORDER_LIST_LIMIT
) -> List[Dict[str, Any]]:
    docs = await get_documents("orders", limit=limit, sort=[("created_at", -1)])
    if len(docs) >= limit:
        logger.warning("Order list hit the %d order limit, older orders are not listed", limit)
    return filter_orders(docs, search=search, on_date=on_date)


async def delete_order(order_id: str) -> bool:
    deleted = await delete_document("orders", order_id)
    if deleted:
        logger.info("Order %s deleted", order_id)
    return deleted


class OrderRecorder:
    """Persists submitted orders and announces them on the order feed."""

    def __init__(self, feed: OrderFeed) -> None:
        self.feed = feed

    async def __call__(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        saved = await create_document("orders", payload)
        self.feed.publish_insert(saved)
        return saved


# ---------------- products ----------------

def product_payload(data: ProductIn) -> Dict[str, Any]:
    payload = data.model_dump()
    if not payload["images"]:
        payload["images"] = [PLACEHOLDER_IMAGE]
    return payload


async def list_all_products(limit: int = PRODUCT_LIST_LIMIT) -> List[Dict[str, Any]]:
    return await get_documents("products", limit=limit, sort=[("created_at", -1)])


async def save_product(data: ProductIn, product_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
    payload = product_payload(data)
    try:
        if product_id:
            return await update_document("products", product_id, payload)
        return await create_document("products", payload)
    except Exception as e:
        logger.error("Product save failed: %s", e)
        raise ProductSaveError(
            f"Could not save product: {e}. "
            f"Check that the products collection accepts the fields: {', '.join(sorted(payload))}"
        ) from e


async def delete_product(product_id: str) -> bool:
    # placed orders keep their own item snapshots, nothing to cascade
    deleted = await delete_document("products", product_id)
    if deleted:
        logger.info("Product %s deleted", product_id)
    return deleted
