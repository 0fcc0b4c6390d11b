"""
Register sessions without a database: idle eviction, the open-session cap and
the product grid.
"""

from datetime import datetime

import pytest

from batchpos.services.batch_ledger import BatchLedger
from batchpos.services.inventory_store import BatchRecord, InventoryStore, ProductRecord
from batchpos.services.pos_session_service import (
    PosSession,
    PosSessionRegistry,
    SessionLimitError,
    SessionNotFoundError,
)

BUNS = ProductRecord(id=1, name="Burger Buns", price_cents=1500, cost_cents=900, stock_quantity=3)
SALT = ProductRecord(id=2, name="Salt", price_cents=300, cost_cents=120, stock_quantity=0)
BUNS_BATCH = BatchRecord(
    id=10, product_id=1, remaining=3, cost_cents=None, price_cents=None,
    created_at=datetime(2024, 1, 5, 9, 0, 0),
)


class CatalogStore(InventoryStore):
    def list_products(self, product_ids=None):
        return [BUNS, SALT]

    def list_batches(self, product_ids=None):
        return [BUNS_BATCH]


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


class TestIdleEviction:
    def test_idle_sessions_are_evicted(self, clock):
        registry = PosSessionRegistry(idle_seconds=60, clock=clock)
        sessions = [registry.open(CatalogStore()) for _ in range(5)]
        assert len(registry) == 5

        clock.advance(61)
        fresh = registry.open(CatalogStore())

        assert len(registry) == 1
        for session in sessions:
            with pytest.raises(SessionNotFoundError):
                registry.get(session.id)
        assert registry.get(fresh.id) is fresh

    def test_use_keeps_a_session_alive(self, clock):
        registry = PosSessionRegistry(idle_seconds=60, clock=clock)
        busy = registry.open(CatalogStore())
        idle = registry.open(CatalogStore())

        clock.advance(40)
        registry.get(busy.id)
        clock.advance(40)

        assert registry.get(busy.id) is busy
        with pytest.raises(SessionNotFoundError):
            registry.get(idle.id)

    def test_eviction_releases_reserved_units(self, clock):
        registry = PosSessionRegistry(idle_seconds=60, clock=clock)
        session = registry.open(CatalogStore())
        session.add_product(BUNS.id)
        assert session.ledger.remaining(BUNS_BATCH.id) == 2

        clock.advance(120)
        assert len(registry) == 1
        registry.open(CatalogStore())

        assert session.cart.is_empty
        assert session.ledger.remaining(BUNS_BATCH.id) == 3

    def test_zero_idle_seconds_never_evicts(self, clock):
        registry = PosSessionRegistry(idle_seconds=0, clock=clock)
        session = registry.open(CatalogStore())
        clock.advance(10 ** 6)
        assert registry.get(session.id) is session


class TestSessionLimit:
    def test_open_beyond_cap_is_refused(self, clock):
        registry = PosSessionRegistry(idle_seconds=60, max_sessions=2, clock=clock)
        registry.open(CatalogStore())
        registry.open(CatalogStore())

        with pytest.raises(SessionLimitError) as exc:
            registry.open(CatalogStore())

        assert exc.value.details == {"max_sessions": 2}
        assert len(registry) == 2

    def test_closing_or_eviction_frees_a_slot(self, clock):
        registry = PosSessionRegistry(idle_seconds=60, max_sessions=1, clock=clock)
        first = registry.open(CatalogStore())
        registry.close(first.id)
        registry.open(CatalogStore())

        clock.advance(61)
        registry.open(CatalogStore())
        assert len(registry) == 1

    def test_from_config(self):
        registry = PosSessionRegistry.from_config({"POS_SESSION_IDLE_SECONDS": 900, "POS_MAX_SESSIONS": 25})
        assert registry.idle_seconds == 900
        assert registry.max_sessions == 25


class TestProductGrid:
    def test_out_of_stock_product_shows_catalog_cost(self):
        session = PosSession.open(CatalogStore())
        grid = {row["product_id"]: row for row in session.product_grid()}

        assert grid[SALT.id]["in_stock"] is False
        assert grid[SALT.id]["price_cents"] == 300
        assert grid[SALT.id]["cost_cents"] == 120

    def test_batch_without_cost_shows_catalog_cost(self):
        session = PosSession.open(CatalogStore())
        grid = {row["product_id"]: row for row in session.product_grid()}
        assert grid[BUNS.id]["cost_cents"] == 900
        assert grid[BUNS.id]["available"] == 3

    def test_grid_cost_matches_cart_line_cost(self):
        session = PosSession(catalog={BUNS.id: BUNS}, ledger=BatchLedger([BUNS_BATCH]))
        shown = session.product_grid()[0]["cost_cents"]
        line = session.add_product(BUNS.id)
        assert line.unit_cost_cents == shown
