from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Product(db.Model):
    """
    Catalog product.

    price_cents / cost_cents are the catalog defaults; a stock batch may carry
    its own price and cost, which win at sale time. stock_quantity is the
    aggregate on-hand figure shown on inventory screens and is kept in step
    with the batches by restock and checkout.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=True)
    image_url = db.Column(db.String(1024), nullable=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_cents = db.Column(db.Integer, nullable=True)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock_quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "image_url": self.image_url,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "stock_quantity": self.stock_quantity,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockBatch(db.Model):
    """
    A lot of stock received at one cost/price point.

    Batches are consumed oldest first (created_at, then id). A batch that
    reaches zero is kept: past transaction items still point at it.
    """
    __tablename__ = "stock_batches"
    __table_args__ = (
        db.Index("ix_stock_batches_product_fifo", "product_id", "created_at", "id"),
        db.CheckConstraint("quantity_remaining >= 0", name="ck_stock_batches_remaining_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity_received = db.Column(db.Integer, nullable=False)
    quantity_remaining = db.Column(db.Integer, nullable=False)

    # NULL means "use the product's catalog value"
    cost_cents = db.Column(db.Integer, nullable=True)
    price_cents = db.Column(db.Integer, nullable=True)

    note = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    product = db.relationship("Product", backref=db.backref("batches", lazy=True))

    def __repr__(self) -> str:
        return (
            f"<StockBatch id={self.id} product_id={self.product_id} "
            f"remaining={self.quantity_remaining}/{self.quantity_received}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity_received": self.quantity_received,
            "quantity_remaining": self.quantity_remaining,
            "cost_cents": self.cost_cents,
            "price_cents": self.price_cents,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
