# Overview: Turns a finished cart into a stored transaction and takes the sold units out of stock.

"""
Checkout sequence.

Steps run strictly in this order, one store call at a time:

  1. totals from the cart
  2. transaction header            -> TransactionWriteError
  3. one item row per cart line    -> LineItemWriteError
  4. per line: batch remaining -= quantity (floored at 0)  -> BatchUpdateError
  5. per product: stock -= units sold (floored at 0)       -> StockUpdateError

State: IDLE -> HEADER_WRITTEN -> ITEMS_WRITTEN -> BATCHES_UPDATED -> STOCK_UPDATED,
any step may end in FAILED. There is no retry and no compensation: rows
written before the failing step stay in the store, and the error reports how
far the attempt got (and the transaction id, once a header exists) so the
operator can reconcile by hand. The cart is left untouched on failure.

Steps 4 and 5 re-read the store instead of trusting the session ledger, since
other registers may have sold from the same batch. In "overwrite" mode the
read and the write are separate calls, so two registers checking out the same
batch at once can overdraw it. "conditional" mode uses a single guarded
decrement instead and fails the step when the store has too little left.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from .cart_service import Cart, compute_totals
from .inventory_store import InventoryStore, StoreError, TransactionHeader, TransactionItemRow
from ..time_utils import utcnow, to_utc_z

logger = logging.getLogger(__name__)

STOCK_WRITE_OVERWRITE = "overwrite"
STOCK_WRITE_CONDITIONAL = "conditional"
STOCK_WRITE_MODES = (STOCK_WRITE_OVERWRITE, STOCK_WRITE_CONDITIONAL)


class CheckoutState(str, Enum):
    IDLE = "IDLE"
    HEADER_WRITTEN = "HEADER_WRITTEN"
    ITEMS_WRITTEN = "ITEMS_WRITTEN"
    BATCHES_UPDATED = "BATCHES_UPDATED"
    STOCK_UPDATED = "STOCK_UPDATED"
    FAILED = "FAILED"


class CheckoutError(Exception):
    """Base for checkout failures. `step` names the step that failed."""
    code = "CHECKOUT_FAILED"
    step = "checkout"

    def __init__(
        self,
        message: str,
        *,
        state_reached: CheckoutState = CheckoutState.IDLE,
        transaction_id: int | None = None,
        details: dict | None = None,
    ):
        super().__init__(message)
        self.state_reached = state_reached
        self.transaction_id = transaction_id
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "code": self.code,
            "step": self.step,
            "state_reached": self.state_reached.value,
            "transaction_id": self.transaction_id,
            "details": self.details,
        }


class EmptyCartError(CheckoutError):
    code = "EMPTY_CART"
    step = "validate"


class TransactionWriteError(CheckoutError):
    code = "TRANSACTION_WRITE_FAILED"
    step = "transaction_header"


class LineItemWriteError(CheckoutError):
    code = "LINE_ITEM_WRITE_FAILED"
    step = "line_items"


class BatchUpdateError(CheckoutError):
    code = "BATCH_UPDATE_FAILED"
    step = "batch_update"


class StockUpdateError(CheckoutError):
    code = "STOCK_UPDATE_FAILED"
    step = "stock_update"


@dataclass(frozen=True)
class TransactionReceipt:
    transaction_id: int
    subtotal_cents: int
    tax_cents: int
    total_cents: int
    item_count: int
    payment_method: str
    completed_at: datetime

    def to_dict(self) -> dict:
        return {
            "transaction_id": self.transaction_id,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "item_count": self.item_count,
            "payment_method": self.payment_method,
            "completed_at": to_utc_z(self.completed_at),
        }


class CheckoutOrchestrator:
    def __init__(self, store: InventoryStore, stock_write_mode: str = STOCK_WRITE_OVERWRITE):
        if stock_write_mode not in STOCK_WRITE_MODES:
            raise ValueError(f"unknown stock_write_mode {stock_write_mode!r}")
        self.store = store
        self.stock_write_mode = stock_write_mode

    def checkout(
        self,
        cart: Cart,
        tax_rate_percent,
        payment_method: str = "cash",
        actor_id: str | None = None,
    ) -> TransactionReceipt:
        lines = cart.lines
        if not lines:
            raise EmptyCartError("Cart is empty")

        state = CheckoutState.IDLE
        totals = compute_totals(lines, tax_rate_percent)

        # Step 2: header
        header = TransactionHeader(
            subtotal_cents=totals.subtotal_cents,
            tax_cents=totals.tax_cents,
            total_cents=totals.total_cents,
            tax_rate_percent=Decimal(str(tax_rate_percent)),
            payment_method=payment_method,
            status="completed",
            actor_id=actor_id,
        )
        try:
            transaction_id = self.store.insert_transaction(header)
        except StoreError as exc:
            logger.warning("checkout: transaction header write failed: %s", exc)
            raise TransactionWriteError(
                f"Transaction failed: {exc}",
                state_reached=state,
                details=exc.details,
            ) from exc
        state = CheckoutState.HEADER_WRITTEN

        # Step 3: item rows, halting at the first failure
        for position, line in enumerate(lines, start=1):
            item = TransactionItemRow(
                transaction_id=transaction_id,
                product_id=line.product_id,
                batch_id=line.batch_id,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                total_price_cents=line.unit_price_cents * line.quantity,
                unit_cost_cents=line.unit_cost_cents,
                product_name=line.product_name,
            )
            try:
                self.store.insert_transaction_item(item)
            except StoreError as exc:
                logger.warning(
                    "checkout: item %d/%d of transaction %s failed: %s",
                    position, len(lines), transaction_id, exc,
                )
                raise LineItemWriteError(
                    f"Failed to insert transaction item: {exc}",
                    state_reached=state,
                    transaction_id=transaction_id,
                    details={
                        **exc.details,
                        "product_id": line.product_id,
                        "batch_id": line.batch_id,
                        "items_written": position - 1,
                    },
                ) from exc
        state = CheckoutState.ITEMS_WRITTEN

        # Step 4: batches
        for line in lines:
            try:
                self._decrement_batch(line.batch_id, line.quantity)
            except StoreError as exc:
                logger.warning(
                    "checkout: batch %s update for transaction %s failed: %s",
                    line.batch_id, transaction_id, exc,
                )
                raise BatchUpdateError(
                    f"Batch update error: {exc}",
                    state_reached=state,
                    transaction_id=transaction_id,
                    details={**exc.details, "batch_id": line.batch_id},
                ) from exc
        state = CheckoutState.BATCHES_UPDATED

        # Step 5: product totals
        units_by_product: dict[int, int] = {}
        for line in lines:
            units_by_product[line.product_id] = units_by_product.get(line.product_id, 0) + line.quantity

        for product_id, units in units_by_product.items():
            try:
                self._decrement_product(product_id, units)
            except StoreError as exc:
                logger.warning(
                    "checkout: product %s stock update for transaction %s failed: %s",
                    product_id, transaction_id, exc,
                )
                raise StockUpdateError(
                    f"Product update error: {exc}",
                    state_reached=state,
                    transaction_id=transaction_id,
                    details={**exc.details, "product_id": product_id},
                ) from exc
        state = CheckoutState.STOCK_UPDATED

        receipt = TransactionReceipt(
            transaction_id=transaction_id,
            subtotal_cents=totals.subtotal_cents,
            tax_cents=totals.tax_cents,
            total_cents=totals.total_cents,
            item_count=cart.item_count,
            payment_method=payment_method,
            completed_at=utcnow(),
        )
        # Units are already out of the store; returning them to the ledger would double count
        cart.clear()
        logger.info(
            "checkout: transaction %s completed (%d lines, total %d cents)",
            transaction_id, len(lines), totals.total_cents,
        )
        return receipt

    def _decrement_batch(self, batch_id: int, quantity: int) -> None:
        if self.stock_write_mode == STOCK_WRITE_CONDITIONAL:
            if not self.store.decrement_batch_remaining(batch_id, quantity):
                raise StoreError(
                    f"stock batch {batch_id} has fewer than {quantity} units left",
                    details={"batch_id": batch_id, "requested_quantity": quantity},
                )
            return
        remaining = self.store.read_batch_remaining(batch_id)
        self.store.write_batch_remaining(batch_id, max(0, remaining - quantity))

    def _decrement_product(self, product_id: int, quantity: int) -> None:
        if self.stock_write_mode == STOCK_WRITE_CONDITIONAL:
            if not self.store.decrement_product_stock(product_id, quantity):
                raise StoreError(
                    f"product {product_id} has fewer than {quantity} units in stock",
                    details={"product_id": product_id, "requested_quantity": quantity},
                )
            return
        stock = self.store.read_product_stock(product_id)
        self.store.write_product_stock(product_id, max(0, stock - quantity))
