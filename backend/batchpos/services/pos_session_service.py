# Overview: Register sessions; each one owns a batch ledger and a cart.

"""
POS sessions.

A session is what a register screen works against between opening and
closing: a catalog snapshot, the batch ledger loaded from the store and the
cart built on top of it. Nothing here is module-level state; sessions live in
a PosSessionRegistry that the app factory stores in app.extensions.

Operations on one session are serialised with the session's lock, so cart and
ledger are only ever mutated by one request at a time.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from decimal import Decimal

from flask import current_app

from .batch_ledger import BatchLedger
from .cart_service import Cart, CartLine, CartTotals
from .checkout_service import CheckoutOrchestrator, TransactionReceipt
from .inventory_store import InventoryStore, ProductRecord
from ..time_utils import utcnow, to_utc_z
from ..validation import parse_tax_rate_percent

logger = logging.getLogger(__name__)

REGISTRY_EXTENSION_KEY = "batchpos.sessions"


class SessionNotFoundError(LookupError):
    """No open session with that id."""


class ProductNotFoundError(LookupError):
    """Product is not part of the session's catalog snapshot."""


class PosSessionError(Exception):
    """Operation not allowed in the session's current state."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class SessionLimitError(PosSessionError):
    """The registry already holds its maximum number of open sessions."""


class PosSession:
    def __init__(
        self,
        *,
        catalog: dict[int, ProductRecord],
        ledger: BatchLedger,
        actor_id: str | None = None,
        tax_rate_percent=Decimal("8"),
        payment_method: str = "cash",
    ):
        self.id = uuid.uuid4().hex
        self.actor_id = actor_id
        self.catalog = catalog
        self.cart = Cart(ledger)
        self.tax_rate_percent = parse_tax_rate_percent(tax_rate_percent)
        self.payment_method = payment_method
        self.opened_at = utcnow()
        self.lock = threading.RLock()

    @classmethod
    def open(cls, store: InventoryStore, **kwargs) -> "PosSession":
        """Snapshot the catalog and its open batches from the store."""
        products = store.list_products()
        ledger = BatchLedger.load(store, [p.id for p in products])
        return cls(catalog={p.id: p for p in products}, ledger=ledger, **kwargs)

    @property
    def ledger(self) -> BatchLedger:
        return self.cart.ledger

    def _product(self, product_id: int) -> ProductRecord:
        product = self.catalog.get(product_id)
        if product is None:
            raise ProductNotFoundError(f"Product {product_id} not found")
        return product

    # -- cart operations -------------------------------------------------

    def add_product(self, product_id: int) -> CartLine:
        with self.lock:
            return self.cart.add_unit(self._product(product_id))

    def increment(self, product_id: int, batch_id: int) -> CartLine:
        with self.lock:
            return self.cart.increment_line(product_id, batch_id)

    def decrement(self, product_id: int, batch_id: int) -> CartLine | None:
        with self.lock:
            return self.cart.decrement_line(product_id, batch_id)

    def remove(self, product_id: int, batch_id: int) -> CartLine:
        with self.lock:
            return self.cart.remove_line(product_id, batch_id)

    def set_tax_rate(self, value) -> Decimal:
        rate = parse_tax_rate_percent(value)
        with self.lock:
            self.tax_rate_percent = rate
        return rate

    def totals(self) -> CartTotals:
        with self.lock:
            return self.cart.compute_totals(self.tax_rate_percent)

    def checkout(self, orchestrator: CheckoutOrchestrator, payment_method: str | None = None) -> TransactionReceipt:
        with self.lock:
            return orchestrator.checkout(
                self.cart,
                self.tax_rate_percent,
                payment_method=payment_method or self.payment_method,
                actor_id=self.actor_id,
            )

    def refresh(self, store: InventoryStore) -> None:
        """Reload catalog and batches from the store. Refused while units are reserved."""
        with self.lock:
            if not self.cart.is_empty:
                raise PosSessionError(
                    "Cannot refresh stock while the cart has items",
                    details={"item_count": self.cart.item_count},
                )
            products = store.list_products()
            ledger = BatchLedger.load(store, [p.id for p in products])
            self.catalog = {p.id: p for p in products}
            self.cart = Cart(ledger)

    def release(self) -> None:
        with self.lock:
            self.cart.release_all()

    # -- views -----------------------------------------------------------

    def product_grid(self, search: str | None = None) -> list[dict]:
        """Catalog entries with the price/cost of the batch the next unit would come from."""
        needle = (search or "").strip().lower()
        rows = []
        with self.lock:
            for product in self.catalog.values():
                if needle and needle not in product.name.lower():
                    continue
                batch = self.ledger.peek(product.id)
                if batch is not None:
                    price = batch.price_cents if batch.price_cents is not None else product.price_cents
                    cost = batch.cost_cents if batch.cost_cents is not None else (product.cost_cents or 0)
                else:
                    price = product.price_cents
                    cost = product.cost_cents or 0
                rows.append({
                    "product_id": product.id,
                    "name": product.name,
                    "category": product.category,
                    "price_cents": price,
                    "cost_cents": cost,
                    "available": self.ledger.available(product.id),
                    "in_stock": batch is not None,
                })
        rows.sort(key=lambda r: (r["name"].lower(), r["product_id"]))
        return rows

    def to_dict(self, include_products: bool = False) -> dict:
        with self.lock:
            data = {
                "id": self.id,
                "actor_id": self.actor_id,
                "opened_at": to_utc_z(self.opened_at),
                "tax_rate_percent": str(self.tax_rate_percent),
                "payment_method": self.payment_method,
                "cart": self.cart.to_dict(self.tax_rate_percent),
            }
            if include_products:
                data["products"] = self.product_grid()
            return data


class PosSessionRegistry:
    """
    Open sessions for one app.

    A session unused for idle_seconds is evicted on the next open() or get(),
    after its reserved units are released. At most max_sessions are open at
    once; opening another raises SessionLimitError.
    """

    def __init__(self, *, idle_seconds: float | None = None, max_sessions: int | None = None, clock=time.monotonic):
        self._sessions: dict[str, PosSession] = {}
        self._last_used: dict[str, float] = {}
        self._lock = threading.Lock()
        self.idle_seconds = idle_seconds
        self.max_sessions = max_sessions
        self._clock = clock

    @classmethod
    def from_config(cls, config) -> "PosSessionRegistry":
        return cls(
            idle_seconds=config.get("POS_SESSION_IDLE_SECONDS"),
            max_sessions=config.get("POS_MAX_SESSIONS"),
        )

    def _evict_idle(self) -> None:
        if not self.idle_seconds:
            return
        cutoff = self._clock() - self.idle_seconds
        with self._lock:
            idle = [sid for sid, used in self._last_used.items() if used <= cutoff]
            evicted = [self._pop(sid) for sid in idle]
        for session in evicted:
            session.release()
            logger.info("POS session %s evicted after %ss idle", session.id, self.idle_seconds)

    def _pop(self, session_id: str) -> PosSession | None:
        self._last_used.pop(session_id, None)
        return self._sessions.pop(session_id, None)

    def _full(self) -> bool:
        return self.max_sessions is not None and len(self._sessions) >= self.max_sessions

    def _limit_error(self) -> SessionLimitError:
        return SessionLimitError(
            "Too many open POS sessions",
            details={"max_sessions": self.max_sessions},
        )

    def open(self, store: InventoryStore, **kwargs) -> PosSession:
        self._evict_idle()
        with self._lock:
            if self._full():
                raise self._limit_error()
        session = PosSession.open(store, **kwargs)
        with self._lock:
            if self._full():
                raise self._limit_error()
            self._sessions[session.id] = session
            self._last_used[session.id] = self._clock()
        return session

    def get(self, session_id: str) -> PosSession:
        self._evict_idle()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                self._last_used[session_id] = self._clock()
        if session is None:
            raise SessionNotFoundError(f"POS session {session_id} not found")
        return session

    def close(self, session_id: str) -> PosSession:
        """Discard a session, returning any reserved units to its ledger first."""
        with self._lock:
            session = self._pop(session_id)
        if session is None:
            raise SessionNotFoundError(f"POS session {session_id} not found")
        session.release()
        return session

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


def get_session_registry() -> PosSessionRegistry:
    return current_app.extensions[REGISTRY_EXTENSION_KEY]
