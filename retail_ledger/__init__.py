"""
Retail Ledger

An in-memory bank ledger: customers own savings and current accounts,
transfers move money atomically between accounts, and a month-end batch
credits interest. Every balance change is backed by an append-only,
hash-chained transaction log.
"""

__version__ = "1.0.0"

from .accounts import Account, AccountKind, ACCOUNT_POLICIES
from .customers import Customer
from .errors import ErrorKind, LedgerError, LedgerException, Result
from .ledger import Ledger
from .month_end import MonthEndProcessor, MonthEndSummary
from .transaction_log import EntryType, LogEntry, TransactionLog
from .transfers import TransferCoordinator, TransferReceipt

__all__ = [
    "Account",
    "AccountKind",
    "ACCOUNT_POLICIES",
    "Customer",
    "EntryType",
    "ErrorKind",
    "Ledger",
    "LedgerError",
    "LedgerException",
    "LogEntry",
    "MonthEndProcessor",
    "MonthEndSummary",
    "Result",
    "TransactionLog",
    "TransferCoordinator",
    "TransferReceipt",
]
