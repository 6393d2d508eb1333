from .transaction_models import (  # noqa
    JournalStatus,
    ReceiptType,
    Transaction,
    TransactionType,
)

__all__ = [
    "JournalStatus",
    "ReceiptType",
    "Transaction",
    "TransactionType",
]
