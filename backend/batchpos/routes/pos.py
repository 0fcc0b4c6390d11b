# Overview: Flask API routes for the register screen; cart edits and checkout.

# backend/batchpos/routes/pos.py
"""
Register (POS) routes.

A register screen opens a session, which snapshots the catalog and open
stock batches. Cart edits only touch the session's in-memory ledger; the
store is written at checkout.

Error responses:
- 400: bad input, empty cart, refresh refused
- 404: unknown session, product or cart line
- 409: out of stock
- 502: a checkout step failed in the store (body names the step)
- 503: too many open sessions
"""

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth
from ..services.batch_ledger import OutOfStockError
from ..services.cart_service import LineNotFoundError
from ..services.checkout_service import CheckoutError, CheckoutOrchestrator, EmptyCartError
from ..services.inventory_store import SqlInventoryStore, StoreError
from ..services.pos_session_service import (
    PosSessionError,
    ProductNotFoundError,
    SessionLimitError,
    SessionNotFoundError,
    get_session_registry,
)
from ..validation import ValidationError, parse_id, parse_payment_method, parse_tax_rate_percent


pos_bp = Blueprint("pos", __name__, url_prefix="/api/pos")


def _orchestrator() -> CheckoutOrchestrator:
    return CheckoutOrchestrator(
        SqlInventoryStore(),
        stock_write_mode=current_app.config["POS_STOCK_WRITE_MODE"],
    )


def _session_or_404(session_id: str):
    try:
        return get_session_registry().get(session_id), None
    except SessionNotFoundError as e:
        return None, ({"error": str(e)}, 404)


def _cart_response(session, line=None, status: int = 200):
    body = {"session": session.to_dict()}
    if line is not None:
        body["line"] = line.to_dict()
    return body, status


@pos_bp.post("/sessions")
@require_auth
def open_session_route():
    """
    Open a register session.

    Body (optional): {"tax_rate_percent": 8, "payment_method": "cash"}
    """
    payload = request.get_json(silent=True) or {}
    try:
        tax_rate = parse_tax_rate_percent(
            payload.get("tax_rate_percent", current_app.config["POS_TAX_RATE_PERCENT"])
        )
        payment_method = parse_payment_method(
            payload.get("payment_method", current_app.config["POS_DEFAULT_PAYMENT_METHOD"]),
            current_app.config["POS_PAYMENT_METHODS"],
        )
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        session = get_session_registry().open(
            SqlInventoryStore(),
            actor_id=g.current_actor.id,
            tax_rate_percent=tax_rate,
            payment_method=payment_method,
        )
    except SessionLimitError as e:
        current_app.logger.warning("Refused POS session for %s: %s", g.current_actor.id, e)
        return {"error": str(e), "details": e.details}, 503
    except StoreError as e:
        current_app.logger.error("Failed to load stock for POS session: %s", e)
        return {"error": f"Failed to load products: {e}", "details": e.details}, 502

    current_app.logger.info("POS session %s opened by %s", session.id, g.current_actor.id)
    return {"session": session.to_dict(include_products=True)}, 201


@pos_bp.get("/sessions/<session_id>")
@require_auth
def get_session_route(session_id: str):
    session, err = _session_or_404(session_id)
    if err:
        return err
    search = request.args.get("search")
    body = session.to_dict()
    body["products"] = session.product_grid(search)
    return {"session": body}, 200


@pos_bp.delete("/sessions/<session_id>")
@require_auth
def close_session_route(session_id: str):
    """Close a session; reserved units go back to the session ledger and are discarded."""
    try:
        get_session_registry().close(session_id)
    except SessionNotFoundError as e:
        return {"error": str(e)}, 404
    return {"ok": True}, 200


@pos_bp.post("/sessions/<session_id>/refresh")
@require_auth
def refresh_session_route(session_id: str):
    """Reload catalog and batches from the store (only with an empty cart)."""
    session, err = _session_or_404(session_id)
    if err:
        return err
    try:
        session.refresh(SqlInventoryStore())
    except PosSessionError as e:
        return {"error": str(e), "details": e.details}, 400
    except StoreError as e:
        current_app.logger.error("Failed to refresh POS session %s: %s", session_id, e)
        return {"error": f"Failed to load products: {e}", "details": e.details}, 502
    return {"session": session.to_dict(include_products=True)}, 200


@pos_bp.post("/sessions/<session_id>/items")
@require_auth
def add_item_route(session_id: str):
    """
    Ring up one unit of a product from its oldest batch with stock.

    Body: {"product_id": 12}
    """
    session, err = _session_or_404(session_id)
    if err:
        return err

    payload = request.get_json(silent=True) or {}
    try:
        product_id = parse_id("product_id", payload.get("product_id"))
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        line = session.add_product(product_id)
    except ProductNotFoundError as e:
        return {"error": str(e)}, 404
    except OutOfStockError as e:
        return {"error": str(e), "details": e.details}, 409

    return _cart_response(session, line, 201)


@pos_bp.post("/sessions/<session_id>/lines/<int:product_id>/<int:batch_id>/increment")
@require_auth
def increment_line_route(session_id: str, product_id: int, batch_id: int):
    session, err = _session_or_404(session_id)
    if err:
        return err
    try:
        line = session.increment(product_id, batch_id)
    except LineNotFoundError as e:
        return {"error": str(e), "details": e.details}, 404
    except OutOfStockError as e:
        return {"error": str(e), "details": e.details}, 409
    return _cart_response(session, line)


@pos_bp.post("/sessions/<session_id>/lines/<int:product_id>/<int:batch_id>/decrement")
@require_auth
def decrement_line_route(session_id: str, product_id: int, batch_id: int):
    session, err = _session_or_404(session_id)
    if err:
        return err
    try:
        line = session.decrement(product_id, batch_id)
    except LineNotFoundError as e:
        return {"error": str(e), "details": e.details}, 404
    return _cart_response(session, line)


@pos_bp.delete("/sessions/<session_id>/lines/<int:product_id>/<int:batch_id>")
@require_auth
def remove_line_route(session_id: str, product_id: int, batch_id: int):
    session, err = _session_or_404(session_id)
    if err:
        return err
    try:
        session.remove(product_id, batch_id)
    except LineNotFoundError as e:
        return {"error": str(e), "details": e.details}, 404
    return _cart_response(session)


@pos_bp.put("/sessions/<session_id>/tax-rate")
@require_auth
def set_tax_rate_route(session_id: str):
    """Body: {"tax_rate_percent": 12} (0..100)"""
    session, err = _session_or_404(session_id)
    if err:
        return err
    payload = request.get_json(silent=True) or {}
    try:
        session.set_tax_rate(payload.get("tax_rate_percent"))
    except ValidationError as e:
        return {"error": str(e)}, 400
    return _cart_response(session)


@pos_bp.post("/sessions/<session_id>/checkout")
@require_auth
def checkout_route(session_id: str):
    """
    Record the cart as a completed transaction.

    Body (optional): {"payment_method": "cash"}

    On a store failure the cart is kept so the cashier can retry, and the
    response identifies the failed step; rows written by earlier steps are
    not rolled back.
    """
    session, err = _session_or_404(session_id)
    if err:
        return err

    payload = request.get_json(silent=True) or {}
    try:
        payment_method = None
        if payload.get("payment_method") is not None:
            payment_method = parse_payment_method(
                payload["payment_method"], current_app.config["POS_PAYMENT_METHODS"]
            )
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        receipt = session.checkout(_orchestrator(), payment_method=payment_method)
    except EmptyCartError as e:
        return e.to_dict(), 400
    except CheckoutError as e:
        current_app.logger.error(
            "Checkout failed for session %s at step %s (transaction %s): %s",
            session_id, e.step, e.transaction_id, e,
        )
        return e.to_dict(), 502
    except Exception:
        current_app.logger.exception("Checkout failed for session %s", session_id)
        return {"error": "Internal server error"}, 500

    return {"receipt": receipt.to_dict(), "session": session.to_dict()}, 201
