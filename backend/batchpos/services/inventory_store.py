# Overview: Store gateway for the checkout engine; maps database rows to validated records.

"""
Inventory store gateway.

The register logic (ledger, cart, checkout) never touches db.session. It talks
to an InventoryStore, whose methods each correspond to one call against the
backing store. SqlInventoryStore is the production implementation.

Unit of work:
- Every write method commits on its own. There is no session
  spanning several calls: checkout is a sequence of independent writes and a
  failure halfway leaves earlier writes in place.
- SQLAlchemy failures are rolled back and re-raised as StoreError carrying
  the driver message, so callers can show the operator what went wrong.

Row mapping:
- Rows come back as frozen dataclasses (ProductRecord, BatchRecord).
- Rows that violate the inventory invariants (negative or missing quantities,
  negative money) raise MalformedRowError instead of leaking into the cart.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select, update, exists
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Product, StockBatch, Transaction, TransactionItem
from ..time_utils import utcnow


class StoreError(Exception):
    """A call to the backing store failed."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class RecordNotFoundError(StoreError):
    """The addressed row does not exist."""


class MalformedRowError(StoreError):
    """A row came back from the store with values the register cannot use."""


@dataclass(frozen=True)
class ProductRecord:
    id: int
    name: str
    price_cents: int
    cost_cents: int | None
    stock_quantity: int
    category: str | None = None


@dataclass(frozen=True)
class BatchRecord:
    id: int
    product_id: int
    remaining: int
    cost_cents: int | None
    price_cents: int | None
    created_at: datetime


@dataclass(frozen=True)
class TransactionHeader:
    subtotal_cents: int
    tax_cents: int
    total_cents: int
    tax_rate_percent: Decimal
    payment_method: str
    status: str = "completed"
    actor_id: str | None = None


@dataclass(frozen=True)
class TransactionItemRow:
    transaction_id: int
    product_id: int
    batch_id: int
    quantity: int
    unit_price_cents: int
    total_price_cents: int
    unit_cost_cents: int
    product_name: str


@dataclass(frozen=True)
class NewProduct:
    name: str
    price_cents: int
    cost_cents: int | None = None
    category: str | None = None
    image_url: str | None = None


@dataclass(frozen=True)
class NewStockBatch:
    product_id: int
    quantity: int
    cost_cents: int | None = None
    price_cents: int | None = None
    note: str | None = None
    created_at: datetime | None = None


def _checked_int(entity: str, row_id, field: str, value, *, nullable: bool = False) -> int | None:
    if value is None:
        if nullable:
            return None
        raise MalformedRowError(
            f"{entity} {row_id}: {field} is missing",
            details={"entity": entity, "id": row_id, "field": field},
        )
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedRowError(
            f"{entity} {row_id}: {field} must be an integer",
            details={"entity": entity, "id": row_id, "field": field, "value": repr(value)},
        )
    if value < 0:
        raise MalformedRowError(
            f"{entity} {row_id}: {field} cannot be negative",
            details={"entity": entity, "id": row_id, "field": field, "value": value},
        )
    return value


def product_record_from_row(row: Product) -> ProductRecord:
    if not row.name:
        raise MalformedRowError(f"product {row.id}: name is missing", details={"id": row.id})
    return ProductRecord(
        id=row.id,
        name=row.name,
        price_cents=_checked_int("product", row.id, "price_cents", row.price_cents),
        cost_cents=_checked_int("product", row.id, "cost_cents", row.cost_cents, nullable=True),
        stock_quantity=_checked_int("product", row.id, "stock_quantity", row.stock_quantity),
        category=row.category,
    )


def batch_record_from_row(row: StockBatch) -> BatchRecord:
    if row.product_id is None:
        raise MalformedRowError(f"stock batch {row.id}: product_id is missing", details={"id": row.id})
    if row.created_at is None:
        raise MalformedRowError(f"stock batch {row.id}: created_at is missing", details={"id": row.id})
    return BatchRecord(
        id=row.id,
        product_id=row.product_id,
        remaining=_checked_int("stock batch", row.id, "quantity_remaining", row.quantity_remaining),
        cost_cents=_checked_int("stock batch", row.id, "cost_cents", row.cost_cents, nullable=True),
        price_cents=_checked_int("stock batch", row.id, "price_cents", row.price_cents, nullable=True),
        created_at=row.created_at,
    )


class InventoryStore:
    """Operations the register needs from the backing store."""

    def list_products(self, product_ids: Iterable[int] | None = None) -> list[ProductRecord]:
        raise NotImplementedError

    def list_batches(self, product_ids: Iterable[int] | None = None) -> list[BatchRecord]:
        """Batches with stock left, oldest first."""
        raise NotImplementedError

    def insert_transaction(self, header: TransactionHeader) -> int:
        raise NotImplementedError

    def insert_transaction_item(self, item: TransactionItemRow) -> int:
        raise NotImplementedError

    def read_batch_remaining(self, batch_id: int) -> int:
        raise NotImplementedError

    def write_batch_remaining(self, batch_id: int, remaining: int) -> None:
        raise NotImplementedError

    def read_product_stock(self, product_id: int) -> int:
        raise NotImplementedError

    def write_product_stock(self, product_id: int, stock: int) -> None:
        raise NotImplementedError

    def decrement_batch_remaining(self, batch_id: int, quantity: int) -> bool:
        """Atomically subtract quantity if at least that much is left. False if refused."""
        raise NotImplementedError

    def decrement_product_stock(self, product_id: int, quantity: int) -> bool:
        """Atomically subtract quantity if at least that much is on hand. False if refused."""
        raise NotImplementedError

    def insert_product(self, product: NewProduct, opening_quantity: int = 0) -> int:
        """Create a product together with its opening stock batch."""
        raise NotImplementedError

    def insert_stock_batch(self, batch: NewStockBatch) -> int:
        """Record received stock; the product's aggregate stock rises by the same amount."""
        raise NotImplementedError


class SqlInventoryStore(InventoryStore):
    """InventoryStore over the Flask-SQLAlchemy session."""

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def _run(self, operation: str, func, *, commit: bool = False):
        try:
            result = func()
            if commit:
                self.session.commit()
            return result
        except StoreError:
            self.session.rollback()
            raise
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreError(
                f"{operation} failed: {exc.__class__.__name__}: {exc}",
                details={"operation": operation},
            ) from exc

    # -- catalog ---------------------------------------------------------

    def list_products(self, product_ids=None) -> list[ProductRecord]:
        def _op():
            stmt = select(Product).order_by(Product.name, Product.id)
            if product_ids is not None:
                ids = list(product_ids)
                if not ids:
                    return []
                stmt = stmt.where(Product.id.in_(ids))
            return [product_record_from_row(row) for row in self.session.scalars(stmt)]

        return self._run("list_products", _op)

    def list_batches(self, product_ids=None) -> list[BatchRecord]:
        def _op():
            stmt = (
                select(StockBatch)
                .where(StockBatch.quantity_remaining > 0)
                .order_by(StockBatch.created_at, StockBatch.id)
            )
            if product_ids is not None:
                ids = list(product_ids)
                if not ids:
                    return []
                stmt = stmt.where(StockBatch.product_id.in_(ids))
            return [batch_record_from_row(row) for row in self.session.scalars(stmt)]

        return self._run("list_batches", _op)

    # -- transactions ----------------------------------------------------

    def insert_transaction(self, header: TransactionHeader) -> int:
        def _op():
            trx = Transaction(
                subtotal_cents=header.subtotal_cents,
                tax_cents=header.tax_cents,
                total_cents=header.total_cents,
                tax_rate_percent=header.tax_rate_percent,
                payment_method=header.payment_method,
                status=header.status,
                actor_id=header.actor_id,
                created_at=utcnow(),
            )
            self.session.add(trx)
            self.session.flush()
            if trx.id is None:
                raise StoreError("insert_transaction returned no id")
            return trx.id

        return self._run("insert_transaction", _op, commit=True)

    def insert_transaction_item(self, item: TransactionItemRow) -> int:
        def _op():
            row = TransactionItem(
                transaction_id=item.transaction_id,
                product_id=item.product_id,
                batch_id=item.batch_id,
                quantity=item.quantity,
                unit_price_cents=item.unit_price_cents,
                total_price_cents=item.total_price_cents,
                unit_cost_cents=item.unit_cost_cents,
                product_name=item.product_name,
            )
            self.session.add(row)
            self.session.flush()
            return row.id

        return self._run("insert_transaction_item", _op, commit=True)

    # -- batch / product counters ----------------------------------------

    def read_batch_remaining(self, batch_id: int) -> int:
        def _op():
            value = self.session.execute(
                select(StockBatch.quantity_remaining).where(StockBatch.id == batch_id)
            ).first()
            if value is None:
                raise RecordNotFoundError(f"stock batch {batch_id} not found", details={"batch_id": batch_id})
            return _checked_int("stock batch", batch_id, "quantity_remaining", value[0])

        return self._run("read_batch_remaining", _op)

    def write_batch_remaining(self, batch_id: int, remaining: int) -> None:
        if remaining < 0:
            raise ValueError("remaining cannot be negative")

        def _op():
            result = self.session.execute(
                update(StockBatch)
                .where(StockBatch.id == batch_id)
                .values(quantity_remaining=remaining)
            )
            if result.rowcount == 0:
                raise RecordNotFoundError(f"stock batch {batch_id} not found", details={"batch_id": batch_id})

        self._run("write_batch_remaining", _op, commit=True)

    def read_product_stock(self, product_id: int) -> int:
        def _op():
            value = self.session.execute(
                select(Product.stock_quantity).where(Product.id == product_id)
            ).first()
            if value is None:
                raise RecordNotFoundError(f"product {product_id} not found", details={"product_id": product_id})
            return _checked_int("product", product_id, "stock_quantity", value[0])

        return self._run("read_product_stock", _op)

    def write_product_stock(self, product_id: int, stock: int) -> None:
        if stock < 0:
            raise ValueError("stock cannot be negative")

        def _op():
            result = self.session.execute(
                update(Product)
                .where(Product.id == product_id)
                .values(stock_quantity=stock, updated_at=utcnow())
            )
            if result.rowcount == 0:
                raise RecordNotFoundError(f"product {product_id} not found", details={"product_id": product_id})

        self._run("write_product_stock", _op, commit=True)

    def decrement_batch_remaining(self, batch_id: int, quantity: int) -> bool:
        def _op():
            result = self.session.execute(
                update(StockBatch)
                .where(StockBatch.id == batch_id, StockBatch.quantity_remaining >= quantity)
                .values(quantity_remaining=StockBatch.quantity_remaining - quantity)
            )
            if result.rowcount:
                return True
            if not self.session.scalar(select(exists().where(StockBatch.id == batch_id))):
                raise RecordNotFoundError(f"stock batch {batch_id} not found", details={"batch_id": batch_id})
            return False

        return self._run("decrement_batch_remaining", _op, commit=True)

    def decrement_product_stock(self, product_id: int, quantity: int) -> bool:
        def _op():
            result = self.session.execute(
                update(Product)
                .where(Product.id == product_id, Product.stock_quantity >= quantity)
                .values(stock_quantity=Product.stock_quantity - quantity, updated_at=utcnow())
            )
            if result.rowcount:
                return True
            if not self.session.scalar(select(exists().where(Product.id == product_id))):
                raise RecordNotFoundError(f"product {product_id} not found", details={"product_id": product_id})
            return False

        return self._run("decrement_product_stock", _op, commit=True)

    # -- catalog writes --------------------------------------------------

    def _add_batch_row(
        self,
        product_id: int,
        quantity: int,
        *,
        cost_cents: int | None,
        price_cents: int | None,
        note: str | None,
        created_at: datetime | None = None,
    ) -> StockBatch:
        row = StockBatch(
            product_id=product_id,
            quantity_received=quantity,
            quantity_remaining=quantity,
            cost_cents=cost_cents,
            price_cents=price_cents,
            note=note,
            created_at=created_at or utcnow(),
        )
        self.session.add(row)
        self.session.flush()
        return row

    def insert_product(self, product: NewProduct, opening_quantity: int = 0) -> int:
        """
        Product row plus, when opening_quantity > 0, its first batch at the
        catalog price/cost. Both land in one commit or not at all.
        """
        if opening_quantity < 0:
            raise ValueError("opening quantity cannot be negative")

        def _op():
            row = Product(
                name=product.name,
                price_cents=product.price_cents,
                cost_cents=product.cost_cents,
                category=product.category,
                image_url=product.image_url,
                stock_quantity=opening_quantity,
            )
            self.session.add(row)
            self.session.flush()
            if opening_quantity > 0:
                self._add_batch_row(
                    row.id,
                    opening_quantity,
                    cost_cents=product.cost_cents,
                    price_cents=product.price_cents,
                    note="Initial stock",
                )
            return row.id

        return self._run("insert_product", _op, commit=True)

    def insert_stock_batch(self, batch: NewStockBatch) -> int:
        """New batch plus the matching rise in the product's stock_quantity, in one commit."""
        if batch.quantity <= 0:
            raise ValueError("batch quantity must be > 0")

        def _op():
            result = self.session.execute(
                update(Product)
                .where(Product.id == batch.product_id)
                .values(stock_quantity=Product.stock_quantity + batch.quantity, updated_at=utcnow())
            )
            if result.rowcount == 0:
                raise RecordNotFoundError(
                    f"product {batch.product_id} not found",
                    details={"product_id": batch.product_id},
                )
            row = self._add_batch_row(
                batch.product_id,
                batch.quantity,
                cost_cents=batch.cost_cents,
                price_cents=batch.price_cents,
                note=batch.note,
                created_at=batch.created_at,
            )
            return row.id

        return self._run("insert_stock_batch", _op, commit=True)
