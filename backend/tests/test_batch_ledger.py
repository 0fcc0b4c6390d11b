from datetime import datetime, timedelta

import pytest

from batchpos.services.batch_ledger import BatchLedger, OutOfStockError, UnknownBatchError
from batchpos.services.inventory_store import BatchRecord

T0 = datetime(2026, 1, 1, 8, 0, 0)


def _record(batch_id, product_id, remaining, minutes=0, cost=None, price=None):
    return BatchRecord(
        id=batch_id,
        product_id=product_id,
        remaining=remaining,
        cost_cents=cost,
        price_cents=price,
        created_at=T0 + timedelta(minutes=minutes),
    )


@pytest.fixture
def ledger():
    return BatchLedger([
        _record(20, 1, 5, minutes=30),
        _record(10, 1, 1, minutes=0),
        _record(30, 2, 2, minutes=0),
    ])


class StubStore:
    def __init__(self, records):
        self.records = records
        self.requested = None

    def list_batches(self, product_ids=None):
        self.requested = product_ids
        return self.records


def test_load_reads_batches_through_the_store():
    store = StubStore([_record(1, 1, 3)])
    ledger = BatchLedger.load(store, [1])
    assert store.requested == [1]
    assert ledger.remaining(1) == 3


def test_batches_are_kept_in_fifo_order(ledger):
    assert [b.id for b in ledger.batches_for(1)] == [10, 20]


def test_allocate_one_takes_from_oldest_then_rolls_forward(ledger):
    first = ledger.allocate_one(1)
    second = ledger.allocate_one(1)
    assert first.id == 10
    assert second.id == 20
    assert ledger.remaining(10) == 0
    assert ledger.remaining(20) == 4


def test_allocate_one_out_of_stock_changes_nothing(ledger):
    ledger.allocate_one(2)
    ledger.allocate_one(2)
    with pytest.raises(OutOfStockError):
        ledger.allocate_one(2)
    assert ledger.remaining(30) == 0


def test_allocate_unknown_product_is_out_of_stock(ledger):
    with pytest.raises(OutOfStockError) as exc:
        ledger.allocate_one(99)
    assert exc.value.details == {"product_id": 99}


def test_take_named_batch(ledger):
    ledger.take(20)
    assert ledger.remaining(20) == 4
    ledger.take(10)
    with pytest.raises(OutOfStockError):
        ledger.take(10)
    assert ledger.remaining(10) == 0


def test_release_returns_units(ledger):
    ledger.allocate_one(1)
    ledger.release(10, 1)
    assert ledger.remaining(10) == 1
    assert ledger.loaded_remaining(10) == 1


def test_release_unknown_batch_is_a_programming_error(ledger):
    with pytest.raises(UnknownBatchError):
        ledger.release(999, 1)


def test_release_requires_positive_quantity(ledger):
    with pytest.raises(ValueError):
        ledger.release(10, 0)


def test_exhausted_batch_stays_in_ledger(ledger):
    ledger.allocate_one(1)
    assert 10 in ledger
    assert ledger.peek(1).id == 20
    assert ledger.available(1) == 5


def test_duplicate_batch_ids_rejected():
    with pytest.raises(ValueError):
        BatchLedger([_record(1, 1, 1), _record(1, 1, 2)])
