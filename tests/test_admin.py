"""
Admin surfaces: order totals reconciliation, order filters and product saves.
"""
import os
import sys
import unittest
from datetime import datetime
from decimal import Decimal
from unittest.mock import AsyncMock, patch

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from mongomock_motor import AsyncMongoMockClient  # noqa: E402

import database  # noqa: E402
from admin import (  # noqa: E402
    OrderRecorder,
    ProductSaveError,
    delete_order,
    delete_product,
    filter_orders,
    list_all_products,
    list_orders,
    order_display_total,
    orders_revenue,
    product_payload,
    save_product,
)
from realtime import OrderFeed  # noqa: E402
from schemas import PLACEHOLDER_IMAGE, ProductIn  # noqa: E402


ORDERS = [
    {"id": "1", "customer_name": "Maria Souza", "created_at": datetime(2026, 3, 1, 10, 0),
     "items": [{"price": 100, "quantity": 2}], "total_price": 200},
    {"id": "2", "customer_name": "José Maria", "created_at": "2026-03-02T15:30:00Z",
     "items": [{"price": "50", "quantity": 1}], "total_price": 999},
    {"id": "3", "customer_name": "Ana", "created_at": "2026-03-01T23:00:00",
     "items": None, "total_price": "75.5"},
]


class TestOrderTotals(unittest.TestCase):
    def test_sum_over_items_wins(self):
        self.assertEqual(order_display_total(ORDERS[1]), Decimal("50.00"))

    def test_falls_back_to_stored_total(self):
        self.assertEqual(order_display_total(ORDERS[2]), Decimal("75.50"))
        self.assertEqual(order_display_total({"items": []}), Decimal("0.00"))

    def test_missing_quantity_counts_as_one(self):
        self.assertEqual(order_display_total({"items": [{"price": 30}]}), Decimal("30.00"))

    def test_revenue(self):
        self.assertEqual(orders_revenue(ORDERS), Decimal("325.50"))


class TestFilterOrders(unittest.TestCase):
    def test_search_by_customer_name(self):
        result = filter_orders(ORDERS, search="maria")
        self.assertEqual([o["id"] for o in result], ["1", "2"])

    def test_filter_by_date(self):
        result = filter_orders(ORDERS, on_date="2026-03-01")
        self.assertEqual([o["id"] for o in result], ["1", "3"])

    def test_combined(self):
        self.assertEqual([o["id"] for o in filter_orders(ORDERS, "maria", "2026-03-02")], ["2"])

    def test_no_filters(self):
        self.assertEqual(len(filter_orders(ORDERS)), 3)


class TestProductPayload(unittest.TestCase):
    def test_csv_inputs_are_split(self):
        data = ProductIn(name="Sofá", colors="Cinza, Bege , ,", fabrics=["Linho", " "])
        payload = product_payload(data)
        self.assertEqual(payload["colors"], ["Cinza", "Bege"])
        self.assertEqual(payload["fabrics"], ["Linho"])

    def test_placeholder_image(self):
        self.assertEqual(product_payload(ProductIn(name="Sofá"))["images"], [PLACEHOLDER_IMAGE])
        kept = product_payload(ProductIn(name="Sofá", images=["https://x/1.jpg"]))
        self.assertEqual(kept["images"], ["https://x/1.jpg"])


class TestAdminStorage(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        database.use_client(AsyncMongoMockClient(), "test_admin")

    def tearDown(self):
        database.reset()

    async def test_product_create_update_delete(self):
        created = await save_product(ProductIn(name="Poltrona", category="armchair", price=900))
        self.assertEqual(created["category"], "armchair")

        updated = await save_product(ProductIn(name="Poltrona Oslo", category="armchair", price=950), created["id"])
        self.assertEqual(updated["name"], "Poltrona Oslo")
        self.assertEqual(updated["price"], 950)

        self.assertEqual(len(await list_all_products()), 1)
        self.assertTrue(await delete_product(created["id"]))
        self.assertFalse(await delete_product(created["id"]))
        self.assertEqual(await list_all_products(), [])

    async def test_update_unknown_product_returns_none(self):
        self.assertIsNone(await save_product(ProductIn(name="X"), "5f0000000000000000000000"))

    async def test_save_failure_names_fields(self):
        with patch("admin.create_document", AsyncMock(side_effect=RuntimeError("no such field"))):
            with self.assertRaises(ProductSaveError) as ctx:
                await save_product(ProductIn(name="X"))
        self.assertIn("no such field", str(ctx.exception))
        self.assertIn("is_featured", str(ctx.exception))

    async def test_deleting_product_keeps_order_snapshot(self):
        product = await save_product(ProductIn(name="Cama", category="bed", price=3000))
        recorder = OrderRecorder(OrderFeed())
        order = await recorder({
            "customer_name": "Ana",
            "items": [{"id": product["id"], "name": "Cama", "price": 3000, "quantity": 1}],
            "total_price": 3000,
        })
        await delete_product(product["id"])
        orders = await list_orders()
        self.assertEqual(orders[0]["id"], order["id"])
        self.assertEqual(orders[0]["items"][0]["name"], "Cama")

    async def test_recorder_publishes_insert(self):
        feed = OrderFeed()
        queue = feed.subscribe()
        saved = await OrderRecorder(feed)({"customer_name": "Ana", "items": [], "total_price": 0})
        event = queue.get_nowait()
        self.assertEqual(event["type"], "INSERT")
        self.assertEqual(event["record"]["id"], saved["id"])

    async def test_list_and_delete_orders(self):
        recorder = OrderRecorder(OrderFeed())
        first = await recorder({"customer_name": "Maria", "items": [], "total_price": 10})
        await recorder({"customer_name": "Pedro", "items": [], "total_price": 20})
        self.assertEqual(len(await list_orders()), 2)
        self.assertEqual([o["customer_name"] for o in await list_orders(search="ped")], ["Pedro"])
        self.assertTrue(await delete_order(first["id"]))
        self.assertEqual(len(await list_orders()), 1)

    async def test_order_limit_is_logged(self):
        recorder = OrderRecorder(OrderFeed())
        await recorder({"customer_name": "Maria", "items": [], "total_price": 10})
        await recorder({"customer_name": "Pedro", "items": [], "total_price": 20})
        with self.assertLogs("admin", level="WARNING"):
            orders = await list_orders(limit=1)
        self.assertEqual(len(orders), 1)


if __name__ == "__main__":
    unittest.main()
