# Overview: Session-scoped, in-memory view of stock batch quantities.

"""
Batch ledger.

Loaded once when a register session opens; afterwards every allocation and
return happens in memory, with no store calls. The store is only written at
checkout (and by restocks, which happen elsewhere).

Invariants:
- remaining never goes below zero.
- Exhausted batches stay in the ledger so units can be returned to them.
- For each batch: units reserved by cart lines + remaining == loaded_remaining.
  The cart is the only caller of allocate_one/take/release and keeps that
  balance on every mutation.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from .fifo import fifo_sort_key, select_fifo_batch
from .inventory_store import BatchRecord, InventoryStore


class OutOfStockError(Exception):
    """No batch has stock left for the requested unit."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class UnknownBatchError(LookupError):
    """A batch id that was never loaded into this ledger."""


@dataclass
class LedgerBatch:
    id: int
    product_id: int
    remaining: int
    cost_cents: int | None
    price_cents: int | None
    created_at: datetime

    @classmethod
    def from_record(cls, record: BatchRecord) -> "LedgerBatch":
        return cls(
            id=record.id,
            product_id=record.product_id,
            remaining=record.remaining,
            cost_cents=record.cost_cents,
            price_cents=record.price_cents,
            created_at=record.created_at,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "remaining": self.remaining,
            "cost_cents": self.cost_cents,
            "price_cents": self.price_cents,
        }


class BatchLedger:
    def __init__(self, batches: Iterable[BatchRecord] = ()):
        self._by_product: dict[int, list[LedgerBatch]] = {}
        self._by_id: dict[int, LedgerBatch] = {}
        self._loaded: dict[int, int] = {}
        for record in batches:
            self._add(LedgerBatch.from_record(record))
        for product_batches in self._by_product.values():
            product_batches.sort(key=fifo_sort_key)

    @classmethod
    def load(cls, store: InventoryStore, product_ids: Iterable[int] | None = None) -> "BatchLedger":
        """Snapshot the store's open batches (remaining > 0), oldest first per product."""
        return cls(store.list_batches(product_ids))

    def _add(self, batch: LedgerBatch) -> None:
        if batch.id in self._by_id:
            raise ValueError(f"duplicate batch id {batch.id}")
        if batch.remaining < 0:
            raise ValueError(f"batch {batch.id} has negative remaining")
        self._by_id[batch.id] = batch
        self._loaded[batch.id] = batch.remaining
        self._by_product.setdefault(batch.product_id, []).append(batch)

    def _get(self, batch_id: int) -> LedgerBatch:
        try:
            return self._by_id[batch_id]
        except KeyError:
            raise UnknownBatchError(f"batch {batch_id} is not in the ledger") from None

    # -- reads -----------------------------------------------------------

    def batches_for(self, product_id: int) -> list[LedgerBatch]:
        return list(self._by_product.get(product_id, ()))

    def get(self, batch_id: int) -> LedgerBatch:
        return self._get(batch_id)

    def remaining(self, batch_id: int) -> int:
        return self._get(batch_id).remaining

    def loaded_remaining(self, batch_id: int) -> int:
        """remaining as it was when the batch entered the ledger."""
        self._get(batch_id)
        return self._loaded[batch_id]

    def available(self, product_id: int) -> int:
        return sum(b.remaining for b in self._by_product.get(product_id, ()))

    def peek(self, product_id: int) -> LedgerBatch | None:
        """The batch the next unit of this product would come from."""
        return select_fifo_batch(self._by_product.get(product_id, ()))

    def product_ids(self) -> list[int]:
        return list(self._by_product)

    def __contains__(self, batch_id: int) -> bool:
        return batch_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)

    # -- mutations -------------------------------------------------------

    def allocate_one(self, product_id: int) -> LedgerBatch:
        """Reserve one unit from the oldest batch with stock."""
        batch = self.peek(product_id)
        if batch is None:
            raise OutOfStockError(
                "No stock available",
                details={"product_id": product_id},
            )
        batch.remaining -= 1
        return batch

    def take(self, batch_id: int) -> LedgerBatch:
        """Reserve one unit from a specific batch."""
        batch = self._get(batch_id)
        if batch.remaining <= 0:
            raise OutOfStockError(
                "Batch is exhausted",
                details={"product_id": batch.product_id, "batch_id": batch_id},
            )
        batch.remaining -= 1
        return batch

    def release(self, batch_id: int, quantity: int) -> LedgerBatch:
        """Return units reserved from batch_id."""
        if quantity < 1:
            raise ValueError("quantity must be >= 1")
        batch = self._get(batch_id)
        batch.remaining += quantity
        return batch
