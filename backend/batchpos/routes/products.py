# Overview: Flask API routes for the catalog and restocking; parses input and returns JSON responses.

# backend/batchpos/routes/products.py
"""
Product routes.

- Any signed-in actor can list products and their batches.
- Creating products and restocking require the admin role.
"""
from flask import Blueprint, current_app, request

from ..decorators import require_auth, require_role
from ..models import Product
from ..services import stock_service
from ..services.inventory_store import StoreError
from ..services.stock_service import UnknownProductError
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_product,
    parse_cents,
    parse_quantity,
    validate_payload,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "category", "image_url", "price_cents", "cost_cents"},
    required_on_create={"name", "price_cents"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    """Query params: search (optional, case-insensitive name match)."""
    products = stock_service.list_products(request.args.get("search"))
    return {"products": [p.to_dict() for p in products]}, 200


@products_bp.post("")
@require_auth
@require_role("admin")
def create_product_route():
    """
    Create a product, optionally with opening stock.

    Body: {"name", "price_cents", "cost_cents"?, "category"?, "image_url"?, "quantity"?}
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        quantity = 0
        if payload.get("quantity") not in (None, 0, "0"):
            quantity = parse_quantity("quantity", payload["quantity"])
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        product = stock_service.create_product(quantity=quantity, **patch)
    except StoreError as e:
        current_app.logger.error("Failed to create product with opening stock: %s", e)
        return {"error": str(e), "details": e.details}, 502

    return {"product": product.to_dict()}, 201


@products_bp.get("/<int:product_id>/batches")
@require_auth
def list_batches_route(product_id: int):
    """Query params: open_only=1 hides exhausted batches."""
    open_only = request.args.get("open_only") in ("1", "true", "yes")
    try:
        batches = stock_service.list_product_batches(product_id, include_exhausted=not open_only)
    except UnknownProductError as e:
        return {"error": str(e)}, 404
    return {"batches": [b.to_dict() for b in batches]}, 200


@products_bp.post("/<int:product_id>/restock")
@require_auth
@require_role("admin")
def restock_route(product_id: int):
    """
    Receive a new stock batch.

    Body: {"quantity", "cost_cents"?, "price_cents"?, "note"?}
    Omitted cost/price fall back to the product's catalog values at sale time.
    """
    payload = request.get_json(silent=True) or {}
    try:
        quantity = parse_quantity("quantity", payload.get("quantity"))
        cost_cents = parse_cents("cost_cents", payload.get("cost_cents"), allow_none=True)
        price_cents = parse_cents("price_cents", payload.get("price_cents"), allow_none=True)
    except ValidationError as e:
        return {"error": str(e)}, 400

    note = payload.get("note")
    if note is not None:
        note = str(note).strip()[:255] or None

    try:
        batch = stock_service.restock_product(
            product_id,
            quantity=quantity,
            cost_cents=cost_cents,
            price_cents=price_cents,
            note=note,
        )
    except UnknownProductError as e:
        return {"error": str(e)}, 404
    except StoreError as e:
        current_app.logger.error("Restock of product %s failed: %s", product_id, e)
        return {"error": str(e), "details": e.details}, 502

    return {"batch": batch.to_dict()}, 201
