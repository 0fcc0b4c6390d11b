# Overview: FIFO batch selection shared by the ledger and the cart.

"""
FIFO allocation rule.

The oldest batch with stock left is sold first so cost of goods follows
purchase order. Batches received at the same instant are ordered by id,
which makes the choice deterministic.
"""

from __future__ import annotations

from typing import Iterable, Optional, Protocol


class _Batch(Protocol):
    id: int
    remaining: int
    created_at: object


def fifo_sort_key(batch: _Batch):
    return (batch.created_at, batch.id)


def select_fifo_batch(batches: Iterable[_Batch]) -> Optional[_Batch]:
    """Oldest batch with remaining > 0, or None when every batch is exhausted."""
    eligible = [b for b in batches if b.remaining > 0]
    if not eligible:
        return None
    return min(eligible, key=fifo_sort_key)
