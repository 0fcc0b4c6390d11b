# Overview: Flask API routes for sales history; read-only.

from flask import Blueprint, request

from ..decorators import require_auth
from ..services import transaction_service
from ..services.transaction_service import TransactionNotFoundError
from ..time_utils import parse_iso_datetime

transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def _since_arg():
    raw = request.args.get("since")
    if not raw:
        return None
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValueError("since must be an ISO-8601 datetime")


@transactions_bp.get("")
@require_auth
def list_transactions_route():
    """
    Query params:
    - status: completed | pending | refunded (optional)
    - since: ISO-8601 datetime (optional, inclusive)
    - limit: int (default 100, max 500)
    """
    limit = request.args.get("limit", default=100, type=int)
    limit = max(1, min(limit, 500))
    try:
        rows = transaction_service.list_transactions(
            limit=limit,
            status=request.args.get("status"),
            since=_since_arg(),
        )
    except ValueError as e:
        return {"error": str(e)}, 400
    return {"transactions": rows}, 200


@transactions_bp.get("/summary")
@require_auth
def summary_route():
    try:
        since = _since_arg()
    except ValueError as e:
        return {"error": str(e)}, 400
    return transaction_service.summarize_transactions(since=since), 200


@transactions_bp.get("/<int:transaction_id>")
@require_auth
def get_transaction_route(transaction_id: int):
    try:
        return {"transaction": transaction_service.get_transaction(transaction_id)}, 200
    except TransactionNotFoundError as e:
        return {"error": str(e)}, 404
