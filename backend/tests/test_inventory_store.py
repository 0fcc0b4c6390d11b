from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError

from batchpos.models import Product, StockBatch
from batchpos.services.inventory_store import (
    MalformedRowError,
    NewProduct,
    NewStockBatch,
    RecordNotFoundError,
    SqlInventoryStore,
    StoreError,
    batch_record_from_row,
    product_record_from_row,
)

BASE_TIME = datetime(2024, 1, 5, 9, 0, 0)


def test_list_batches_oldest_first_and_skips_exhausted(db_session, make_product):
    same_time = BASE_TIME + timedelta(hours=1)
    buns, (late, early, empty, tie_a, tie_b) = make_product("Buns", batches=[
        (3, None, None, BASE_TIME + timedelta(hours=2)),
        (2, None, None, BASE_TIME),
        (0, None, None, BASE_TIME - timedelta(days=1)),
        (1, None, None, same_time),
        (1, None, None, same_time),
    ])

    records = SqlInventoryStore().list_batches([buns.id])

    assert [r.id for r in records] == [early.id, tie_a.id, tie_b.id, late.id]
    assert empty.id not in {r.id for r in records}


def test_list_products_filters_by_id(db_session, make_product):
    a, _ = make_product("Apples")
    make_product("Bread")
    records = SqlInventoryStore().list_products([a.id])
    assert [r.name for r in records] == ["Apples"]
    assert SqlInventoryStore().list_products([]) == []


def test_read_write_counters(db_session, make_product):
    buns, (b1,) = make_product("Buns", batches=[(5, None, None)])
    store = SqlInventoryStore()

    store.write_batch_remaining(b1.id, 2)
    store.write_product_stock(buns.id, 2)

    assert store.read_batch_remaining(b1.id) == 2
    assert store.read_product_stock(buns.id) == 2


def test_missing_rows_raise_not_found(db_session):
    store = SqlInventoryStore()
    with pytest.raises(RecordNotFoundError):
        store.read_batch_remaining(999)
    with pytest.raises(RecordNotFoundError):
        store.write_product_stock(999, 1)
    with pytest.raises(RecordNotFoundError):
        store.decrement_batch_remaining(999, 1)


def test_negative_writes_rejected(db_session, make_product):
    _, (b1,) = make_product("Buns", batches=[(1, None, None)])
    with pytest.raises(ValueError):
        SqlInventoryStore().write_batch_remaining(b1.id, -1)


def test_guarded_decrement(db_session, make_product):
    buns, (b1,) = make_product("Buns", batches=[(3, None, None)])
    store = SqlInventoryStore()

    assert store.decrement_batch_remaining(b1.id, 2) is True
    assert store.decrement_batch_remaining(b1.id, 2) is False
    assert store.read_batch_remaining(b1.id) == 1

    assert store.decrement_product_stock(buns.id, 3) is True
    assert store.decrement_product_stock(buns.id, 1) is False
    assert store.read_product_stock(buns.id) == 0


def test_insert_stock_batch_raises_product_stock(db_session, make_product):
    buns, _ = make_product("Buns", batches=[(4, None, None)])
    store = SqlInventoryStore()

    batch_id = store.insert_stock_batch(NewStockBatch(
        product_id=buns.id, quantity=6, cost_cents=950, price_cents=1600, note="Delivery",
    ))

    batch = db_session.get(StockBatch, batch_id)
    assert batch.quantity_received == 6
    assert batch.quantity_remaining == 6
    assert batch.note == "Delivery"
    assert store.read_product_stock(buns.id) == 10


def test_insert_stock_batch_unknown_product(db_session):
    with pytest.raises(RecordNotFoundError):
        SqlInventoryStore().insert_stock_batch(NewStockBatch(product_id=404, quantity=1))
    assert db_session.query(StockBatch).count() == 0


def test_driver_errors_become_store_errors(db_session):
    def boom():
        raise SQLAlchemyError("disk I/O error")

    with pytest.raises(StoreError) as exc:
        SqlInventoryStore()._run("read_batch_remaining", boom)

    assert "disk I/O error" in str(exc.value)
    assert exc.value.details == {"operation": "read_batch_remaining"}


class TestRowMapping:
    def test_product_with_missing_stock_is_malformed(self):
        row = Product(id=7, name="Ghost", price_cents=100, stock_quantity=None)
        with pytest.raises(MalformedRowError) as exc:
            product_record_from_row(row)
        assert exc.value.details["field"] == "stock_quantity"

    def test_negative_batch_remaining_is_malformed(self):
        row = StockBatch(id=3, product_id=1, quantity_remaining=-2, created_at=BASE_TIME)
        with pytest.raises(MalformedRowError):
            batch_record_from_row(row)

    def test_nullable_money_passes_through(self):
        row = StockBatch(id=3, product_id=1, quantity_remaining=4, created_at=BASE_TIME)
        record = batch_record_from_row(row)
        assert record.cost_cents is None
        assert record.price_cents is None
        assert record.remaining == 4


def test_insert_product_with_opening_batch(db_session):
    store = SqlInventoryStore()
    product_id = store.insert_product(
        NewProduct(name="Cheddar", price_cents=4500, cost_cents=3000), opening_quantity=12,
    )

    assert store.read_product_stock(product_id) == 12
    [batch] = store.list_batches([product_id])
    assert (batch.remaining, batch.cost_cents, batch.price_cents) == (12, 3000, 4500)


def test_insert_product_rolls_back_when_batch_fails(db_session):
    class BatchWriteFails(SqlInventoryStore):
        def _add_batch_row(self, product_id, quantity, **kwargs):
            raise SQLAlchemyError("disk I/O error")

    with pytest.raises(StoreError) as exc:
        BatchWriteFails().insert_product(NewProduct(name="Cheddar", price_cents=4500), opening_quantity=3)

    assert exc.value.details == {"operation": "insert_product"}
    assert db_session.query(Product).count() == 0
