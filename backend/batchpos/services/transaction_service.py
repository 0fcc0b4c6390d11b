# Overview: Read-only queries over recorded sales for history and summary screens.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import selectinload

from ..extensions import db
from ..models import Transaction, TransactionItem, TRANSACTION_STATUSES


class TransactionNotFoundError(LookupError):
    """No transaction with that id."""


def list_transactions(
    *,
    limit: int = 100,
    status: str | None = None,
    since: datetime | None = None,
) -> list[dict]:
    """Newest first, each with its items and total unit count."""
    if status is not None and status not in TRANSACTION_STATUSES:
        raise ValueError(f"status must be one of: {', '.join(TRANSACTION_STATUSES)}")

    q = db.session.query(Transaction).options(selectinload(Transaction.items))
    if status is not None:
        q = q.filter(Transaction.status == status)
    if since is not None:
        q = q.filter(Transaction.created_at >= since)

    rows = q.order_by(Transaction.created_at.desc(), Transaction.id.desc()).limit(limit).all()
    return [trx.to_dict(include_items=True) for trx in rows]


def get_transaction(transaction_id: int) -> dict:
    trx = db.session.get(Transaction, transaction_id)
    if trx is None:
        raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
    return trx.to_dict(include_items=True)


def summarize_transactions(*, since: datetime | None = None) -> dict:
    """
    Totals for the history screen.

    Revenue counts completed transactions only. Cost of goods uses the unit
    cost captured on each item at sale time.
    """
    count_q = db.session.query(func.count(Transaction.id))
    revenue_q = db.session.query(
        func.coalesce(func.sum(Transaction.total_cents), 0),
        func.coalesce(func.sum(Transaction.subtotal_cents), 0),
        func.coalesce(func.sum(Transaction.tax_cents), 0),
    ).filter(Transaction.status == "completed")
    cogs_q = (
        db.session.query(
            func.coalesce(func.sum(TransactionItem.unit_cost_cents * TransactionItem.quantity), 0),
            func.coalesce(func.sum(TransactionItem.quantity), 0),
        )
        .join(Transaction, Transaction.id == TransactionItem.transaction_id)
        .filter(Transaction.status == "completed")
    )
    if since is not None:
        count_q = count_q.filter(Transaction.created_at >= since)
        revenue_q = revenue_q.filter(Transaction.created_at >= since)
        cogs_q = cogs_q.filter(Transaction.created_at >= since)

    transaction_count = int(count_q.scalar() or 0)
    revenue, net_sales, tax = (int(v or 0) for v in revenue_q.one())
    cogs, units_sold = (int(v or 0) for v in cogs_q.one())

    return {
        "transaction_count": transaction_count,
        "revenue_cents": revenue,
        "net_sales_cents": net_sales,
        "tax_cents": tax,
        "cost_of_goods_cents": cogs,
        "gross_profit_cents": net_sales - cogs,
        "units_sold": units_sold,
    }
