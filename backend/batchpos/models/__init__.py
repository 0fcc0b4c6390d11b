from .inventory import Product, StockBatch
from .sales import Transaction, TransactionItem, TRANSACTION_STATUSES

__all__ = [
    'Product', 'StockBatch',
    'Transaction', 'TransactionItem', 'TRANSACTION_STATUSES',
]
