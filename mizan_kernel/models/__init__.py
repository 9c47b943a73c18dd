"""ORM models for the ledger core."""

from mizan_kernel.models.account import Account
from mizan_kernel.models.bank import BankTransactionModel, ReconciliationRecordModel
from mizan_kernel.models.document import (
    DocumentLineModel,
    DocumentModel,
    PaymentModel,
)
from mizan_kernel.models.fiscal_period import FiscalPeriodModel
from mizan_kernel.models.ledger import LedgerLineModel

__all__ = [
    "Account",
    "BankTransactionModel",
    "DocumentLineModel",
    "DocumentModel",
    "FiscalPeriodModel",
    "LedgerLineModel",
    "PaymentModel",
    "ReconciliationRecordModel",
]
