from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

TRANSACTION_STATUSES = ("completed", "pending", "refunded")


class Transaction(db.Model):
    """
    Sale header written at checkout.

    Only "completed" is produced by the register; the other statuses are set
    by back-office processes. Rows are never edited by checkout once written.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    # All amounts in cents
    subtotal_cents = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)
    tax_rate_percent = db.Column(db.Numeric(6, 3), nullable=False, default=0)

    payment_method = db.Column(db.String(32), nullable=False, default="cash")
    status = db.Column(db.String(16), nullable=False, default="completed", index=True)

    # Identity provider subject of whoever rang the sale up
    actor_id = db.Column(db.String(128), nullable=True)

    items = db.relationship(
        "TransactionItem",
        backref="transaction",
        lazy=True,
        order_by="TransactionItem.id",
    )

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "created_at": to_utc_z(self.created_at),
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "tax_rate_percent": str(self.tax_rate_percent) if self.tax_rate_percent is not None else None,
            "payment_method": self.payment_method,
            "status": self.status,
            "actor_id": self.actor_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
            data["item_count"] = sum(item.quantity for item in self.items)
        return data


class TransactionItem(db.Model):
    """One cart line as sold: product, the batch it came from and its price/cost snapshot."""
    __tablename__ = "transaction_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    batch_id = db.Column(db.Integer, db.ForeignKey("stock_batches.id"), nullable=True, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    # Name at the time of sale; the catalog may be renamed later
    product_name = db.Column(db.String(255), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "product_id": self.product_id,
            "batch_id": self.batch_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "product_name": self.product_name,
        }
