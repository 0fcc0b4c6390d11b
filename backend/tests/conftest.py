"""
Pytest fixtures for the batchpos backend tests.

Provides an in-memory SQLite app, a per-test clean database, catalog
factories and a store that fails on demand for checkout failure tests.
"""

from collections import Counter
from datetime import datetime, timedelta

import pytest

from batchpos import create_app
from batchpos.extensions import db
from batchpos.models import Product, StockBatch
from batchpos.services.inventory_store import SqlInventoryStore, StoreError
from batchpos.services.pos_session_service import REGISTRY_EXTENSION_KEY, PosSessionRegistry


BASE_TIME = datetime(2024, 1, 5, 9, 0, 0)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'POS_TAX_RATE_PERCENT': '8',
        'POS_STOCK_WRITE_MODE': 'overwrite',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh database and no open register sessions for each test."""
    with app.app_context():
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        app.extensions[REGISTRY_EXTENSION_KEY] = PosSessionRegistry.from_config(app.config)

        yield db.session

        db.session.rollback()


@pytest.fixture
def make_product(db_session):
    """
    Factory: make_product("Buns", price_cents=1500, batches=[(qty, cost, price), ...]).

    Batches are created one minute apart in list order unless a batch tuple
    carries its own created_at as a fourth element. stock_quantity is the sum
    of the batch quantities.
    """
    def _make(name, *, price_cents=1000, cost_cents=None, batches=(), category=None):
        product = Product(
            name=name,
            price_cents=price_cents,
            cost_cents=cost_cents,
            category=category,
            stock_quantity=sum(b[0] for b in batches),
        )
        db_session.add(product)
        db_session.flush()

        created = []
        for offset, spec in enumerate(batches):
            qty, cost, price = spec[:3]
            created_at = spec[3] if len(spec) > 3 else BASE_TIME + timedelta(minutes=offset)
            batch = StockBatch(
                product_id=product.id,
                quantity_received=qty,
                quantity_remaining=qty,
                cost_cents=cost,
                price_cents=price,
                created_at=created_at,
            )
            db_session.add(batch)
            created.append(batch)
        db_session.commit()
        return product, created

    return _make


class FlakyStore(SqlInventoryStore):
    """
    SqlInventoryStore that raises StoreError on the Nth call of a method.

    fail_on={"insert_transaction_item": 2} fails the second item insert.
    """

    def __init__(self, fail_on=None):
        super().__init__()
        self.fail_on = dict(fail_on or {})
        self.calls = Counter()

    def _maybe_fail(self, name):
        self.calls[name] += 1
        if self.fail_on.get(name) == self.calls[name]:
            raise StoreError(f"simulated {name} failure", details={"operation": name})

    def insert_transaction(self, header):
        self._maybe_fail("insert_transaction")
        return super().insert_transaction(header)

    def insert_transaction_item(self, item):
        self._maybe_fail("insert_transaction_item")
        return super().insert_transaction_item(item)

    def read_batch_remaining(self, batch_id):
        self._maybe_fail("read_batch_remaining")
        return super().read_batch_remaining(batch_id)

    def write_batch_remaining(self, batch_id, remaining):
        self._maybe_fail("write_batch_remaining")
        return super().write_batch_remaining(batch_id, remaining)

    def read_product_stock(self, product_id):
        self._maybe_fail("read_product_stock")
        return super().read_product_stock(product_id)

    def write_product_stock(self, product_id, stock):
        self._maybe_fail("write_product_stock")
        return super().write_product_stock(product_id, stock)


@pytest.fixture
def flaky_store(db_session):
    return FlakyStore


@pytest.fixture
def cashier_headers():
    return {"X-Actor-Id": "cashier-1", "X-Actor-Role": "user"}


@pytest.fixture
def admin_headers():
    return {"X-Actor-Id": "owner-1", "X-Actor-Role": "admin"}
