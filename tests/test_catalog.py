"""
Catalog filter/sort tests plus the active-product fetch against an
in-memory motor client.
"""
import os
import sys
import unittest
from datetime import datetime, timedelta

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from mongomock_motor import AsyncMongoMockClient  # noqa: E402

import database  # noqa: E402
from catalog import fetch_active_products, fetch_product, filter_products, query_catalog  # noqa: E402
from schemas import Product  # noqa: E402

BASE = datetime(2026, 1, 1, 12, 0, 0)


def product(name, category="sofa", price=0, featured=False, days=0, description=""):
    return Product(
        id=name,
        name=name,
        description=description,
        category=category,
        price=price,
        is_featured=featured,
        created_at=BASE + timedelta(days=days),
    )


class TestFilterProducts(unittest.TestCase):
    def test_featured_first_overrides_price(self):
        a = product("Sofá A", price=1000, featured=False)
        b = product("Sofá B", price=500, featured=True)
        result = filter_products([a, b], category="sofa", sort="price_asc")
        self.assertEqual([p.name for p in result], ["Sofá B", "Sofá A"])

    def test_featured_first_even_when_more_expensive(self):
        a = product("Sofá A", price=100)
        b = product("Sofá B", price=900, featured=True)
        c = product("Sofá C", price=50)
        result = filter_products([a, b, c], sort="price_asc")
        self.assertEqual([p.name for p in result], ["Sofá B", "Sofá C", "Sofá A"])

    def test_price_desc(self):
        items = [product("x", price=10), product("y", price=30), product("z", price=20)]
        result = filter_products(items, sort="price_desc")
        self.assertEqual([p.name for p in result], ["y", "z", "x"])

    def test_zero_price_sorts_as_cheapest(self):
        items = [product("paid", price=300), product("on request", price=0)]
        result = filter_products(items, sort="price_asc")
        self.assertEqual([p.name for p in result], ["on request", "paid"])
        self.assertEqual(len(filter_products(items, sort="price_desc")), 2)

    def test_default_sort_is_newest_first(self):
        items = [product("old", days=1), product("new", days=5), product("mid", days=3)]
        result = filter_products(items)
        self.assertEqual([p.name for p in result], ["new", "mid", "old"])

    def test_category_filter(self):
        items = [product("s", "sofa"), product("a", "armchair"), product("b", "bed")]
        self.assertEqual([p.name for p in filter_products(items, category="armchair")], ["a"])
        self.assertEqual(len(filter_products(items, category="all")), 3)
        self.assertEqual(len(filter_products(items, category=None)), 3)

    def test_text_search_matches_name_or_description(self):
        items = [
            product("Sofá Milão"),
            product("Poltrona", category="armchair", description="Estilo MILÃO moderno"),
            product("Cama Toscana", category="bed"),
        ]
        result = filter_products(items, search="milão")
        self.assertEqual({p.name for p in result}, {"Sofá Milão", "Poltrona"})

    def test_filters_combine(self):
        items = [
            product("Sofá Milão"),
            product("Poltrona Milão", category="armchair"),
        ]
        result = filter_products(items, category="sofa", search="milão")
        self.assertEqual([p.name for p in result], ["Sofá Milão"])

    def test_empty_result_is_valid(self):
        self.assertEqual(filter_products([product("x")], search="nothing"), [])
        self.assertEqual(filter_products([]), [])

    def test_invalid_sort_mode_rejected(self):
        with self.assertRaises(ValueError):
            filter_products([product("x")], sort="cheapest")


class TestCatalogFetch(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        database.use_client(AsyncMongoMockClient(), "test_catalog")
        await database.create_document("products", {"name": "Visível", "category": "sofa", "price": 100, "active": True})
        await database.create_document("products", {"name": "Oculto", "category": "sofa", "price": 50, "active": False})
        await database.create_document("products", {"name": "Texto", "category": "bed", "price": "250.50", "active": True})

    def tearDown(self):
        database.reset()

    async def test_only_active_products(self):
        products = await fetch_active_products()
        self.assertEqual({p.name for p in products}, {"Visível", "Texto"})

    async def test_numeric_string_price_is_coerced(self):
        products = await query_catalog(category="bed")
        self.assertEqual(len(products), 1)
        self.assertEqual(products[0].price, 250.5)

    async def test_fetch_product_by_id(self):
        products = await fetch_active_products()
        found = await fetch_product(products[0].id)
        self.assertEqual(found.name, products[0].name)

    async def test_unknown_or_malformed_id_is_none(self):
        self.assertIsNone(await fetch_product("5f0000000000000000000000"))
        self.assertIsNone(await fetch_product("not-an-id"))

    async def test_malformed_stored_product(self):
        bad = await database.create_document("products", {"name": "Mesa", "category": "mesa", "price": 10, "active": True})
        with self.assertLogs("catalog", level="WARNING"):
            self.assertIsNone(await fetch_product(bad["id"]))
        with self.assertLogs("catalog", level="WARNING"):
            products = await fetch_active_products()
        self.assertNotIn("Mesa", {p.name for p in products})

    async def test_limit_reached_is_logged(self):
        with self.assertLogs("catalog", level="WARNING") as logs:
            products = await fetch_active_products(limit=1)
        self.assertEqual(len(products), 1)
        self.assertIn("limit", logs.output[0])


if __name__ == "__main__":
    unittest.main()
