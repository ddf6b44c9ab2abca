import os
import unittest
from datetime import datetime, timezone
from decimal import Decimal

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from sqlalchemy import inspect as sa_inspect

from app.core.errors import AlreadyExists, InvalidIdentifier, InvalidQuery, InvalidReference, NotFound
from app.services.failure_classifier import storage_failures
from app.services.repository import QueryRepository
from tests.base import (
    CHARGER,
    OLD_PHONE,
    ORDER_ALICE,
    ORDER_BOB,
    ORDER_CAROL,
    PHONE_CASE,
    PHONE_X,
    Category,
    Order,
    OrderItem,
    Product,
    QueryEngineTestBase,
    fixture_uuid,
)


class QueryRepositoryReadTests(QueryEngineTestBase):
    def setUp(self):
        super().setUp()
        self.products = QueryRepository(self.db, Product)
        self.orders = QueryRepository(self.db, Order)

    def test_find_many_without_spec_returns_visible_rows(self):
        self.assertEqual(len(self.products.find_many()), 4)
        self.assertEqual(len(self.products.find_many({"withDeleted": True})), 5)

    def test_find_many_paginated_applies_defaults(self):
        result = self.products.find_many_paginated(None)
        self.assertEqual(result.meta.page, 1)
        self.assertEqual(result.meta.limit, 10)
        self.assertEqual(result.meta.total, 4)
        self.assertEqual(result.meta.total_pages, 1)

    def test_find_many_paginated_counts_after_filters_and_search(self):
        spec = {
            "pagination": {"page": 1, "limit": 1},
            "sort": [{"field": "price", "direction": "DESC"}],
            "search": {"query": "phone", "fields": ["name", "description"]},
        }
        result = self.products.find_many_paginated(spec)
        self.assertEqual([row.id for row in result.data], [PHONE_X])
        self.assertEqual(result.meta.total, 3)
        self.assertEqual(result.meta.total_pages, 3)
        self.assertTrue(result.meta.has_next_page)
        self.assertFalse(result.meta.has_prev_page)

    def test_search_combinator_switch(self):
        base = {"search": {"query": "phone", "fields": ["name", "description"], "operator": "OR"}}
        ids_or = {row.id for row in self.products.find_many(base)}
        self.assertIn(CHARGER, ids_or)
        base["search"]["operator"] = "AND"
        ids_and = {row.id for row in self.products.find_many(base)}
        self.assertNotIn(CHARGER, ids_and)

    def test_empty_in_filter_returns_same_rows_as_no_filter(self):
        spec = {"filters": {"field": "sku", "operator": "in", "values": []}}
        self.assertEqual(
            {row.id for row in self.products.find_many(spec)},
            {row.id for row in self.products.find_many({})},
        )

    def test_paginated_relations_keep_parent_counts(self):
        spec = {
            "pagination": {"page": 1, "limit": 2},
            "sort": {"field": "customer_name", "direction": "ASC"},
            "relations": ["items.product", "items.customizations"],
        }
        result = self.orders.find_many_paginated(spec)
        self.assertEqual([row.id for row in result.data], [ORDER_ALICE, ORDER_BOB])
        self.assertEqual(result.meta.total, 3)
        alice = result.data[0]
        self.assertNotIn("items", sa_inspect(alice).unloaded)
        self.assertEqual([item.product.name for item in alice.items], ["Phone X", "Phone Case"])
        self.assertEqual(result.data[1].items, [])

        second = self.orders.find_many_paginated({**spec, "pagination": {"page": 2, "limit": 2}})
        self.assertEqual([row.id for row in second.data], [ORDER_CAROL])
        self.assertTrue(second.meta.has_prev_page)
        self.assertFalse(second.meta.has_next_page)

    def test_find_many_paginated_is_idempotent(self):
        spec = {
            "pagination": {"page": 1, "limit": 2},
            "sort": [{"field": "name", "direction": "ASC"}],
            "filters": [{"field": "price", "operator": "gte", "value": 20}],
            "relations": ["category"],
        }
        first = self.products.find_many_paginated(spec)
        second = self.products.find_many_paginated(spec)
        self.assertEqual([row.id for row in first.data], [row.id for row in second.data])
        self.assertEqual(first.meta, second.meta)

    def test_count_matches_filtered_rows(self):
        spec = {"filters": [{"field": "category_id", "operator": "eq", "value": 1}]}
        self.assertEqual(self.products.count(spec), 2)
        self.assertEqual(self.products.count({**spec, "withDeleted": True}), 3)

    def test_select_limits_loaded_columns(self):
        rows = self.products.find_many({"select": ["name"], "filters": {"field": "sku", "operator": "eq", "value": "PX-1"}})
        self.assertEqual(len(rows), 1)
        unloaded = sa_inspect(rows[0]).unloaded
        self.assertIn("description", unloaded)
        self.assertNotIn("name", unloaded)
        self.assertNotIn("id", unloaded)

    def test_invalid_spec_surfaces_as_invalid_query(self):
        with self.assertRaises(InvalidQuery):
            self.products.find_many({"filters": [{"field": "name", "operator": "matches"}]})

    def test_find_by_id_loads_relations(self):
        order = self.orders.find_by_id(str(ORDER_ALICE), ["items.customizations"])
        self.assertEqual(order.customer_name, "alice")
        self.assertNotIn("customizations", sa_inspect(order.items[0]).unloaded)

    def test_find_by_id_missing_row_raises_not_found(self):
        with self.assertRaises(NotFound):
            self.products.find_by_id(fixture_uuid(999))

    def test_find_by_id_hides_soft_deleted_rows(self):
        with self.assertRaises(NotFound):
            self.products.find_by_id(OLD_PHONE)
        self.assertEqual(self.products.find_by_id(OLD_PHONE, include_soft_deleted=True).sku, "OP-1")

    def test_find_by_id_malformed_uuid_raises_invalid_identifier(self):
        with self.assertRaises(InvalidIdentifier) as ctx:
            self.products.find_by_id("abc")
        self.assertEqual(ctx.exception.literal, "abc")
        self.assertEqual(ctx.exception.entity_name, "Product")

    def test_find_by_id_coerces_integer_keys(self):
        self.assertEqual(QueryRepository(self.db, Category).find_by_id("2").name, "Laptops")

    def test_exists(self):
        self.assertTrue(self.products.exists(sku="PC-1"))
        self.assertFalse(self.products.exists(sku="missing"))
        self.assertFalse(self.products.exists(unknown_field="x"))

    def test_exists_ignores_soft_deleted_rows(self):
        self.assertFalse(self.products.exists(sku="OP-1"))

    def test_expanded_relations_hide_soft_deleted_rows(self):
        self.db.get(Product, PHONE_CASE).deleted_at = datetime(2026, 3, 1, tzinfo=timezone.utc)
        self.db.flush()
        items = QueryRepository(self.db, OrderItem).find_many({"relations": ["product"], "sort": {"field": "id"}})
        self.assertEqual([item.product.name if item.product else None for item in items], ["Phone X", None, "Charger"])


class StorageFailureScopeTests(QueryEngineTestBase):
    def test_unique_violation_on_write_surfaces_as_already_exists(self):
        self.db.add(Product(sku="PX-1", name="Duplicate", price=Decimal("1.00")))
        with self.assertRaises(AlreadyExists) as ctx:
            with storage_failures("create", "Product"):
                self.db.flush()
        self.assertEqual(ctx.exception.detail, "Product already exists")

    def test_foreign_key_violation_surfaces_as_invalid_reference(self):
        self.db.add(OrderItem(id=50, order_id=fixture_uuid(777), product_id=PHONE_CASE, quantity=1))
        with self.assertRaises(InvalidReference):
            with storage_failures("create", "OrderItem"):
                self.db.flush()


if __name__ == "__main__":
    unittest.main()
