from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from pydantic import ValidationError

from database import get_document, get_documents
from formatters import to_number
from schemas import Product, SortMode

logger = logging.getLogger(__name__)

ALL_CATEGORIES = "all"
# upper bound on products loaded per catalog query
CATALOG_LIMIT = 500


def _timestamp(value) -> float:
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
        except ValueError:
            return 0.0
    return 0.0


def filter_products(
    products: Iterable[Product],
    category: Optional[str] = ALL_CATEGORIES,
    search: Optional[str] = "",
    sort: SortMode | str = SortMode.newest,
) -> List[Product]:
    """
    Category filter, then text filter on name or description, then sort.

    Featured products always come first; the selected sort mode only orders
    products within the featured and non-featured groups. A price of 0
    ("price on request") sorts as the cheapest.
    """
    needle = (search or "").strip().lower()
    wanted = category or ALL_CATEGORIES

    result = [
        p
        for p in products
        if (wanted == ALL_CATEGORIES or p.category == wanted)
        and (needle in p.name.lower() or needle in (p.description or "").lower())
    ]

    sort = SortMode(sort)
    if sort == SortMode.price_asc:
        result.sort(key=lambda p: to_number(p.price))
    elif sort == SortMode.price_desc:
        result.sort(key=lambda p: to_number(p.price), reverse=True)
    else:
        result.sort(key=lambda p: _timestamp(p.created_at), reverse=True)

    # stable sort keeps the secondary order inside each group
    result.sort(key=lambda p: not p.is_featured)
    return result


async def fetch_active_products(limit: int = CATALOG_LIMIT) -> List[Product]:
    docs = await get_documents("products", {"active": True}, limit=limit)
    if len(docs) >= limit:
        logger.warning("Catalog query hit the %d product limit, later products are not listed", limit)
    products = []
    for d in docs:
        try:
            products.append(Product(**d))
        except ValidationError:
            logger.warning("Skipping malformed product %s", d.get("id"))
    return products


async def fetch_product(product_id: str) -> Optional[Product]:
    doc = await get_document("products", product_id)
    if not doc:
        return None
    try:
        return Product(**doc)
    except ValidationError:
        logger.warning("Product %s is malformed, treating it as missing", product_id)
        return None


async def query_catalog(
    category: Optional[str] = ALL_CATEGORIES,
    search: Optional[str] = "",
    sort: SortMode | str = SortMode.newest,
) -> List[Product]:
    products = await fetch_active_products()
    return filter_products(products, category=category, search=search, sort=sort)
