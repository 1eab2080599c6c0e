from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Set

logger = logging.getLogger(__name__)


class OrderFeed:
    """In-process publish/subscribe channel for order insert events."""

    def __init__(self, max_queue: int = 100) -> None:
        self._subscribers: Set[asyncio.Queue] = set()
        self._max_queue = max_queue

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish_insert(self, record: Dict[str, Any]) -> int:
        event = {"type": "INSERT", "table": "orders", "record": record}
        delivered = 0
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("Order feed subscriber is lagging, dropping event %s", record.get("id"))
        return delivered


def _created(order: Dict[str, Any]) -> str:
    value = order.get("created_at")
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value or "")


def merge_orders(current: Iterable[Dict[str, Any]], incoming: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Append incoming orders, keep one record per id (latest wins), newest first."""
    by_id: Dict[str, Dict[str, Any]] = {}
    for order in list(current) + list(incoming):
        key = order.get("id")
        if key is None:
            continue
        by_id[str(key)] = order
    return sorted(by_id.values(), key=_created, reverse=True)
