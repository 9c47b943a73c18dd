"""Domain layer - pure value objects and reference data."""

from mizan_kernel.domain.bank import BankTransaction, Match, ReconciliationRecord
from mizan_kernel.domain.documents import (
    CommercialDocument,
    CreditNote,
    DocumentLine,
    DocumentStatus,
    DocumentTotals,
    DocumentType,
    Invoice,
    Payment,
    PaymentMode,
    PaymentStatus,
    Purchase,
    compute_totals,
    document_class,
)
from mizan_kernel.domain.ledger import AccountInfo, AccountType, LedgerLine
from mizan_kernel.domain.periods import FiscalPeriodInfo, PeriodStatus
from mizan_kernel.domain.values import TOLERANCE, round_amount, to_decimal

__all__ = [
    "AccountInfo",
    "AccountType",
    "BankTransaction",
    "CommercialDocument",
    "CreditNote",
    "DocumentLine",
    "DocumentStatus",
    "DocumentTotals",
    "DocumentType",
    "FiscalPeriodInfo",
    "Invoice",
    "LedgerLine",
    "Match",
    "Payment",
    "PaymentMode",
    "PaymentStatus",
    "PeriodStatus",
    "Purchase",
    "ReconciliationRecord",
    "TOLERANCE",
    "compute_totals",
    "document_class",
    "round_amount",
    "to_decimal",
]
