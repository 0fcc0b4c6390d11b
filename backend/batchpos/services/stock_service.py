# Overview: Catalog creation, restocking and stock-level views.

"""
Stock operations outside the register.

Restocking always goes through InventoryStore.insert_stock_batch, so a new
batch and the product's aggregate stock_quantity move together. Sessions that
are already open do not see new batches until they refresh.

Stock level status:
- "out": stock_quantity == 0
- "low": below the low-stock threshold
- "ok": everything else
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Product, StockBatch
from .inventory_store import InventoryStore, NewProduct, NewStockBatch, SqlInventoryStore


class UnknownProductError(LookupError):
    """No product with that id."""


def _store(store: InventoryStore | None) -> InventoryStore:
    return store if store is not None else SqlInventoryStore()


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise UnknownProductError(f"Product {product_id} not found")
    return product


def list_products(search: str | None = None) -> list[Product]:
    q = db.session.query(Product)
    if search:
        q = q.filter(func.lower(Product.name).contains(search.strip().lower()))
    return q.order_by(Product.name, Product.id).all()


def create_product(
    *,
    name: str,
    price_cents: int,
    cost_cents: int | None = None,
    quantity: int = 0,
    category: str | None = None,
    image_url: str | None = None,
    store: InventoryStore | None = None,
) -> Product:
    """
    Create a catalog product. An initial quantity becomes the product's first
    stock batch, priced and costed at the catalog values. If the batch cannot
    be written the product is not created either.
    """
    if quantity < 0:
        raise ValueError("quantity cannot be negative")

    product_id = _store(store).insert_product(
        NewProduct(
            name=name,
            price_cents=price_cents,
            cost_cents=cost_cents,
            category=category,
            image_url=image_url,
        ),
        opening_quantity=quantity,
    )
    return get_product(product_id)


def restock_product(
    product_id: int,
    *,
    quantity: int,
    cost_cents: int | None = None,
    price_cents: int | None = None,
    note: str | None = None,
    store: InventoryStore | None = None,
) -> StockBatch:
    """Receive a new batch for an existing product."""
    if quantity <= 0:
        raise ValueError("quantity must be > 0")
    product = get_product(product_id)

    batch_id = _store(store).insert_stock_batch(NewStockBatch(
        product_id=product.id,
        quantity=quantity,
        cost_cents=cost_cents,
        price_cents=price_cents,
        note=note,
    ))
    return db.session.get(StockBatch, batch_id)


def list_product_batches(product_id: int, *, include_exhausted: bool = True) -> list[StockBatch]:
    get_product(product_id)
    q = db.session.query(StockBatch).filter(StockBatch.product_id == product_id)
    if not include_exhausted:
        q = q.filter(StockBatch.quantity_remaining > 0)
    return q.order_by(StockBatch.created_at, StockBatch.id).all()


def stock_status(stock_quantity: int, low_stock_threshold: int) -> str:
    if stock_quantity <= 0:
        return "out"
    if stock_quantity < low_stock_threshold:
        return "low"
    return "ok"


def get_stock_levels(*, low_stock_threshold: int = 10, search: str | None = None) -> dict:
    open_batches = dict(
        db.session.query(StockBatch.product_id, func.count(StockBatch.id))
        .filter(StockBatch.quantity_remaining > 0)
        .group_by(StockBatch.product_id)
        .all()
    )

    items = []
    for product in list_products(search):
        status = stock_status(product.stock_quantity, low_stock_threshold)
        items.append({
            "product_id": product.id,
            "name": product.name,
            "category": product.category,
            "stock_quantity": product.stock_quantity,
            "open_batches": int(open_batches.get(product.id, 0)),
            "status": status,
        })

    low = sum(1 for item in items if item["status"] in ("low", "out"))
    return {
        "low_stock_threshold": low_stock_threshold,
        "items": items,
        "summary": {
            "total_items": len(items),
            "low_stock_alerts": low,
            "well_stocked": len(items) - low,
        },
    }
