"""
Services of the ledger core.

Every service wraps a ``DocumentStore`` and leaves the commit to the
caller::

    with session_scope() as session:
        store = SqlDocumentStore(session)
        LedgerPoster(store).post("INV-001", created_by="amina")
"""

from mizan_services.bank_import import BankStatementImporter, read_statement_csv
from mizan_services.document_service import DocumentService, PaymentSummary
from mizan_services.ledger_poster import LedgerPoster
from mizan_services.reconciliation_service import (
    ReconciliationReportLine,
    ReconciliationService,
)

__all__ = [
    "BankStatementImporter",
    "DocumentService",
    "LedgerPoster",
    "PaymentSummary",
    "ReconciliationReportLine",
    "ReconciliationService",
    "read_statement_csv",
]
