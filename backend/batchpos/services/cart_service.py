# Overview: In-memory register cart; every line is pinned to one stock batch.

"""
Register cart.

Each line is bound to exactly one batch and carries the price and cost of
that batch at the moment the unit was reserved. A product whose units span
several batches shows up as several lines, one per batch/price point.

Every mutation moves units between the cart and the ledger in one step, so
for each batch: quantity on its line + ledger remaining == loaded remaining.
A failed operation changes neither side.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, NamedTuple

from .batch_ledger import BatchLedger, LedgerBatch, OutOfStockError
from .inventory_store import ProductRecord


class LineNotFoundError(LookupError):
    """No cart line for the given (product_id, batch_id)."""
    def __init__(self, product_id: int, batch_id: int):
        super().__init__(f"No cart line for product {product_id} in batch {batch_id}")
        self.details = {"product_id": product_id, "batch_id": batch_id}


class CartLineKey(NamedTuple):
    product_id: int
    batch_id: int


class CartTotals(NamedTuple):
    subtotal_cents: int
    tax_cents: int
    total_cents: int

    def to_dict(self) -> dict:
        return {
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
        }


@dataclass
class CartLine:
    product_id: int
    product_name: str
    unit_price_cents: int
    unit_cost_cents: int
    batch_id: int
    quantity: int = 1

    @property
    def key(self) -> CartLineKey:
        return CartLineKey(self.product_id, self.batch_id)

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "batch_id": self.batch_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "line_total_cents": self.line_total_cents,
        }


def compute_tax_cents(subtotal_cents: int, tax_rate_percent) -> int:
    """subtotal * rate / 100, rounded to the nearest cent (half-up)."""
    rate = Decimal(str(tax_rate_percent))
    tax = Decimal(subtotal_cents) * rate / Decimal(100)
    return int(tax.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def compute_totals(lines: Iterable[CartLine], tax_rate_percent) -> CartTotals:
    subtotal = sum(line.unit_price_cents * line.quantity for line in lines)
    tax = compute_tax_cents(subtotal, tax_rate_percent)
    return CartTotals(subtotal_cents=subtotal, tax_cents=tax, total_cents=subtotal + tax)


class Cart:
    def __init__(self, ledger: BatchLedger):
        self.ledger = ledger
        self._lines: list[CartLine] = []
        # Catalog defaults for products already rung up, used when a batch has no price/cost
        self._products: dict[int, ProductRecord] = {}

    # -- reads -----------------------------------------------------------

    @property
    def lines(self) -> list[CartLine]:
        return list(self._lines)

    @property
    def is_empty(self) -> bool:
        return not self._lines

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self._lines)

    def get_line(self, key: CartLineKey) -> CartLine | None:
        for line in self._lines:
            if line.key == key:
                return line
        return None

    def reserved_in_batch(self, batch_id: int) -> int:
        return sum(line.quantity for line in self._lines if line.batch_id == batch_id)

    def compute_totals(self, tax_rate_percent) -> CartTotals:
        return compute_totals(self._lines, tax_rate_percent)

    # -- mutations -------------------------------------------------------

    def _require_line(self, product_id: int, batch_id: int) -> CartLine:
        line = self.get_line(CartLineKey(product_id, batch_id))
        if line is None:
            raise LineNotFoundError(product_id, batch_id)
        return line

    def _place_unit(self, product: ProductRecord, batch: LedgerBatch) -> CartLine:
        """Book one already-reserved unit of batch onto its line, creating the line if needed."""
        line = self.get_line(CartLineKey(product.id, batch.id))
        if line is not None:
            line.quantity += 1
            return line

        if batch.price_cents is not None:
            price = batch.price_cents
        else:
            price = product.price_cents
        if batch.cost_cents is not None:
            cost = batch.cost_cents
        elif product.cost_cents is not None:
            cost = product.cost_cents
        else:
            cost = 0

        line = CartLine(
            product_id=product.id,
            product_name=product.name,
            unit_price_cents=price,
            unit_cost_cents=cost,
            batch_id=batch.id,
            quantity=1,
        )
        self._lines.append(line)
        return line

    def add_unit(self, product: ProductRecord) -> CartLine:
        """Ring up one unit of product from its oldest batch with stock."""
        batch = self.ledger.allocate_one(product.id)
        self._products[product.id] = product
        return self._place_unit(product, batch)

    def increment_line(self, product_id: int, batch_id: int) -> CartLine:
        """
        One more unit for an existing line.

        Comes from the line's own batch while it has stock; once that batch is
        exhausted the unit rolls forward to the next oldest batch and lands on
        the line for that batch. Returns the line that received the unit.
        """
        line = self._require_line(product_id, batch_id)
        if self.ledger.remaining(batch_id) > 0:
            self.ledger.take(batch_id)
            line.quantity += 1
            return line

        try:
            batch = self.ledger.allocate_one(product_id)
        except OutOfStockError:
            raise OutOfStockError(
                "No more stock available",
                details={"product_id": product_id, "batch_id": batch_id},
            ) from None
        product = self._products.get(product_id) or ProductRecord(
            id=product_id,
            name=line.product_name,
            price_cents=line.unit_price_cents,
            cost_cents=line.unit_cost_cents,
            stock_quantity=0,
        )
        return self._place_unit(product, batch)

    def decrement_line(self, product_id: int, batch_id: int) -> CartLine | None:
        """Return one unit to its batch. Returns None when the line went to zero and was removed."""
        line = self._require_line(product_id, batch_id)
        self.ledger.release(batch_id, 1)
        line.quantity -= 1
        if line.quantity <= 0:
            self._lines.remove(line)
            return None
        return line

    def remove_line(self, product_id: int, batch_id: int) -> CartLine:
        """Return all of a line's units to its batch and drop the line."""
        line = self._require_line(product_id, batch_id)
        self.ledger.release(batch_id, line.quantity)
        self._lines.remove(line)
        return line

    def release_all(self) -> None:
        """Give every reserved unit back to the ledger and empty the cart."""
        for line in list(self._lines):
            self.remove_line(line.product_id, line.batch_id)

    def clear(self) -> None:
        """
        Empty the cart without returning units to the ledger.

        Only correct once the reserved units have been durably taken out of
        the store, i.e. after a successful checkout.
        """
        self._lines.clear()

    def to_dict(self, tax_rate_percent) -> dict:
        return {
            "lines": [line.to_dict() for line in self._lines],
            "item_count": self.item_count,
            "totals": self.compute_totals(tax_rate_percent).to_dict(),
        }
