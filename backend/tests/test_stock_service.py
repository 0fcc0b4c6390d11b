"""
Catalog and restock operations, stock levels and sales summaries.
"""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from batchpos.models import Product, StockBatch
from batchpos.services import stock_service, transaction_service
from batchpos.services.batch_ledger import BatchLedger
from batchpos.services.cart_service import Cart
from batchpos.services.checkout_service import CheckoutOrchestrator
from batchpos.services.inventory_store import SqlInventoryStore, StoreError


class TestCatalog:
    def test_create_product_with_opening_stock(self, db_session):
        product = stock_service.create_product(
            name="Burger Buns", price_cents=1500, cost_cents=900, quantity=30, category="Bakery",
        )

        assert product.id is not None
        assert product.stock_quantity == 30
        batches = stock_service.list_product_batches(product.id)
        assert len(batches) == 1
        assert batches[0].quantity_remaining == 30
        assert batches[0].price_cents == 1500
        assert batches[0].note == "Initial stock"

    def test_create_product_without_stock_has_no_batches(self, db_session):
        product = stock_service.create_product(name="Napkins", price_cents=200)
        assert product.stock_quantity == 0
        assert stock_service.list_product_batches(product.id) == []

    def test_failed_opening_batch_leaves_no_product(self, db_session):
        class BatchWriteFails(SqlInventoryStore):
            def _add_batch_row(self, product_id, quantity, **kwargs):
                raise SQLAlchemyError("disk I/O error")

        with pytest.raises(StoreError):
            stock_service.create_product(
                name="Buns", price_cents=100, quantity=5, store=BatchWriteFails(),
            )

        assert db_session.query(Product).count() == 0
        assert db_session.query(StockBatch).count() == 0

    def test_negative_opening_quantity(self, db_session):
        with pytest.raises(ValueError):
            stock_service.create_product(name="Napkins", price_cents=200, quantity=-1)

    def test_search_is_case_insensitive(self, db_session, make_product):
        make_product("Burger Buns")
        make_product("Cola")
        names = [p.name for p in stock_service.list_products("BUN")]
        assert names == ["Burger Buns"]


class TestRestock:
    def test_restock_adds_newest_batch(self, db_session, make_product):
        buns, (b1,) = make_product("Buns", batches=[(4, 900, 1500)])

        batch = stock_service.restock_product(buns.id, quantity=10, cost_cents=950, price_cents=1600)

        assert batch.quantity_received == 10
        assert stock_service.get_product(buns.id).stock_quantity == 14
        batch_ids = [b.id for b in stock_service.list_product_batches(buns.id)]
        assert batch_ids == [b1.id, batch.id]

    def test_restocked_batch_sells_after_older_stock(self, db_session, make_product):
        buns, (b1,) = make_product("Buns", price_cents=1500, batches=[(1, None, None)])
        new_batch = stock_service.restock_product(buns.id, quantity=5, price_cents=1600)

        store = SqlInventoryStore()
        cart = Cart(BatchLedger.load(store, [buns.id]))
        product = store.list_products([buns.id])[0]
        first = cart.add_unit(product)
        second = cart.add_unit(product)

        assert (first.batch_id, first.unit_price_cents) == (b1.id, 1500)
        assert (second.batch_id, second.unit_price_cents) == (new_batch.id, 1600)

    def test_restock_unknown_product(self, db_session):
        with pytest.raises(stock_service.UnknownProductError):
            stock_service.restock_product(999, quantity=1)

    def test_restock_requires_positive_quantity(self, db_session, make_product):
        buns, _ = make_product("Buns")
        with pytest.raises(ValueError):
            stock_service.restock_product(buns.id, quantity=0)

    def test_open_only_hides_exhausted(self, db_session, make_product):
        buns, (empty, full) = make_product("Buns", batches=[(0, None, None), (3, None, None)])
        batches = stock_service.list_product_batches(buns.id, include_exhausted=False)
        assert [b.id for b in batches] == [full.id]


class TestStockLevels:
    def test_levels_and_summary(self, db_session, make_product):
        make_product("Apples", batches=[(0, None, None)])
        make_product("Bread", batches=[(3, None, None), (2, None, None)])
        make_product("Cheese", batches=[(40, None, None)])

        levels = stock_service.get_stock_levels(low_stock_threshold=10)

        by_name = {item["name"]: item for item in levels["items"]}
        assert by_name["Apples"]["status"] == "out"
        assert by_name["Apples"]["open_batches"] == 0
        assert by_name["Bread"]["status"] == "low"
        assert by_name["Bread"]["open_batches"] == 2
        assert by_name["Cheese"]["status"] == "ok"
        assert levels["summary"] == {"total_items": 3, "low_stock_alerts": 2, "well_stocked": 1}

    def test_stock_status_boundaries(self):
        assert stock_service.stock_status(0, 10) == "out"
        assert stock_service.stock_status(9, 10) == "low"
        assert stock_service.stock_status(10, 10) == "ok"


class TestTransactionHistory:
    def _sell(self, product_id, units, tax_rate=10):
        store = SqlInventoryStore()
        product = store.list_products([product_id])[0]
        cart = Cart(BatchLedger.load(store, [product_id]))
        for _ in range(units):
            cart.add_unit(product)
        return CheckoutOrchestrator(store).checkout(cart, tax_rate)

    def test_summary_uses_item_cost_snapshot(self, db_session, make_product):
        buns, _ = make_product("Buns", price_cents=1000, cost_cents=600, batches=[(5, 400, None)])
        self._sell(buns.id, 2)
        self._sell(buns.id, 1)

        summary = transaction_service.summarize_transactions()

        assert summary["transaction_count"] == 2
        assert summary["net_sales_cents"] == 3000
        assert summary["tax_cents"] == 300
        assert summary["revenue_cents"] == 3300
        assert summary["cost_of_goods_cents"] == 1200
        assert summary["gross_profit_cents"] == 1800
        assert summary["units_sold"] == 3

    def test_list_newest_first_with_items(self, db_session, make_product):
        buns, _ = make_product("Buns", batches=[(5, None, None)])
        first = self._sell(buns.id, 1)
        second = self._sell(buns.id, 2)

        rows = transaction_service.list_transactions()

        assert [r["id"] for r in rows] == [second.transaction_id, first.transaction_id]
        assert rows[0]["item_count"] == 2
        assert rows[0]["items"][0]["product_name"] == "Buns"

    def test_unknown_status_filter(self, db_session):
        with pytest.raises(ValueError):
            transaction_service.list_transactions(status="voided")

    def test_get_missing_transaction(self, db_session):
        with pytest.raises(transaction_service.TransactionNotFoundError):
            transaction_service.get_transaction(12345)
