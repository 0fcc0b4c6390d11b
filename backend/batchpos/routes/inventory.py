# backend/batchpos/routes/inventory.py
"""
Inventory views.

Stock levels compare each product's stock_quantity with the low-stock
threshold (config LOW_STOCK_THRESHOLD, overridable per request).
"""
from flask import Blueprint, current_app, request

from ..decorators import require_auth
from ..services.stock_service import get_stock_levels
from ..validation import ValidationError, coerce_int

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/levels")
@require_auth
def stock_levels_route():
    """
    Query params:
    - threshold: int (optional) low-stock threshold
    - search: str (optional)
    """
    threshold = current_app.config["LOW_STOCK_THRESHOLD"]
    raw = request.args.get("threshold")
    if raw is not None:
        try:
            threshold = coerce_int("threshold", raw)
        except ValidationError as e:
            return {"error": str(e)}, 400
        if threshold < 0:
            return {"error": "threshold must be >= 0"}, 400

    return get_stock_levels(low_stock_threshold=threshold, search=request.args.get("search")), 200
