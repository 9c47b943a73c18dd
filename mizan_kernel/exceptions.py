"""
Typed exception hierarchy for the Mizan ledger core.

Every error carries a machine-readable ``code`` class attribute and keeps
its context as attributes, so callers catch by type and read structured
data instead of parsing messages.

    MizanError (base)
    |
    +-- StateError                     caller sequencing / stale UI state
    |   +-- AlreadyPostedError
    |   +-- InvalidDocumentStateError
    |   +-- NoSuchReconciliationError
    |   +-- BankTransactionAlreadyReconciledError
    |   +-- DocumentAlreadyReconciledError
    |
    +-- NotFoundError
    |   +-- DocumentNotFoundError
    |   +-- PaymentNotFoundError
    |   +-- BankTransactionNotFoundError
    |
    +-- PostingError
    |   +-- EntryRejectedError
    |   +-- OverpaymentError
    |   +-- AccountMappingError
    |
    +-- InputError                     bad data at the store/import boundary
    |   +-- InvalidDocumentError
    |   +-- InvalidImportRowError
    |
    +-- PeriodError                    fiscal period lifecycle and posting dates
    |   +-- ClosedPeriodError
    |   +-- PeriodNotFoundError
    |   +-- PeriodAlreadyClosedError
    |   +-- PeriodOverlapError
    |   +-- PeriodImmutableError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

Code            | When raised
----------------|-----------------------------------------------------------
ALREADY_POSTED  | post()/post_payment() called twice for the same source
INVALID_STATE   | document skipped a state (e.g. draft posted directly)
NO_SUCH_RECONCILIATION | undo() on a pair that is not linked
BANK_TXN_ALREADY_RECONCILED | apply() on a bank line linked to another document
DOCUMENT_ALREADY_RECONCILED | automatic apply() on a document already lettered
ENTRY_REJECTED  | candidate lines failed balance validation
OVERPAYMENT     | payment exceeds the amount still due
INVALID_IMPORT_ROW | a bank import row is missing/invalid (whole batch rejected)
PERIOD_CLOSED   | a piece dated inside a closed or locked fiscal period
PERIOD_NOT_FOUND | periods are in use and none covers the posting date
IMMUTABILITY_VIOLATION | update/delete of an append-only ledger line

Validation problems found by the balance validator are *returned* as data;
only the poster turns them into ``EntryRejectedError``.  State errors are
non-retryable without refreshing state.
"""

from __future__ import annotations

from typing import Any


class MizanError(Exception):
    """Base exception for all ledger core errors."""

    code: str = "MIZAN_ERROR"


# State errors


class StateError(MizanError):
    """Base exception for sequencing errors (stale caller state)."""

    code: str = "STATE_ERROR"


class AlreadyPostedError(StateError):
    """The source document or payment already has ledger lines."""

    code: str = "ALREADY_POSTED"

    def __init__(self, source_id: str, piece_id: str | None = None):
        self.source_id = source_id
        self.piece_id = piece_id
        super().__init__(f"Source {source_id} already posted")


class InvalidDocumentStateError(StateError):
    """A document transition skipped a state or went backwards."""

    code: str = "INVALID_STATE"

    def __init__(self, document_id: str, current: str, requested: str):
        self.document_id = document_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Document {document_id} cannot move from {current} to {requested}"
        )


class NoSuchReconciliationError(StateError):
    """undo() was requested for a pair that is not currently linked."""

    code: str = "NO_SUCH_RECONCILIATION"

    def __init__(self, bank_id: str, doc_id: str):
        self.bank_id = bank_id
        self.doc_id = doc_id
        super().__init__(
            f"Bank transaction {bank_id} is not reconciled with {doc_id}"
        )


class BankTransactionAlreadyReconciledError(StateError):
    """The bank transaction is already linked to a different document."""

    code: str = "BANK_TXN_ALREADY_RECONCILED"

    def __init__(self, bank_id: str, linked_doc_id: str, requested_doc_id: str):
        self.bank_id = bank_id
        self.linked_doc_id = linked_doc_id
        self.requested_doc_id = requested_doc_id
        super().__init__(
            f"Bank transaction {bank_id} is already reconciled with "
            f"{linked_doc_id}, cannot link {requested_doc_id}"
        )


class DocumentAlreadyReconciledError(StateError):
    """The document is already lettered against another bank line."""

    code: str = "DOCUMENT_ALREADY_RECONCILED"

    def __init__(self, doc_id: str, lettrage_id: str | None, requested_bank_id: str):
        self.doc_id = doc_id
        self.lettrage_id = lettrage_id
        self.requested_bank_id = requested_bank_id
        super().__init__(
            f"Document {doc_id} is already reconciled ({lettrage_id}), "
            f"cannot link bank transaction {requested_bank_id}"
        )


# Lookup errors


class NotFoundError(MizanError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class DocumentNotFoundError(NotFoundError):
    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document not found: {document_id}")


class PaymentNotFoundError(NotFoundError):
    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, document_id: str, payment_id: str):
        self.document_id = document_id
        self.payment_id = payment_id
        super().__init__(f"Payment {payment_id} not found on document {document_id}")


class BankTransactionNotFoundError(NotFoundError):
    code: str = "BANK_TXN_NOT_FOUND"

    def __init__(self, bank_id: str):
        self.bank_id = bank_id
        super().__init__(f"Bank transaction not found: {bank_id}")


# Posting errors


class PostingError(MizanError):
    """Base exception for posting-related errors."""

    code: str = "POSTING_ERROR"


class EntryRejectedError(PostingError):
    """Candidate ledger lines failed balance validation."""

    code: str = "ENTRY_REJECTED"

    def __init__(self, piece_id: str | None, issues: list[dict[str, Any]]):
        self.piece_id = piece_id
        self.issues = issues
        codes = ", ".join(issue["code"] for issue in issues)
        super().__init__(f"Entry {piece_id} rejected: {codes}")


class OverpaymentError(PostingError):
    """A payment exceeds the amount still due on its document."""

    code: str = "OVERPAYMENT"

    def __init__(self, document_id: str, due_left: str, attempted: str):
        self.document_id = document_id
        self.due_left = due_left
        self.attempted = attempted
        super().__init__(
            f"Payment of {attempted} exceeds {due_left} due on {document_id}"
        )


class AccountMappingError(PostingError):
    """No account is configured for a posting role."""

    code: str = "ACCOUNT_MAPPING_MISSING"

    def __init__(self, role: str):
        self.role = role
        super().__init__(f"No account mapped for role '{role}'")


# Input errors


class InputError(MizanError):
    """Base exception for malformed data at the boundary."""

    code: str = "INPUT_ERROR"


class InvalidDocumentError(InputError):
    """A document failed validation at the store boundary."""

    code: str = "INVALID_DOCUMENT"

    def __init__(self, document_id: str | None, reasons: list[str]):
        self.document_id = document_id
        self.reasons = reasons
        super().__init__(
            f"Invalid document {document_id}: " + "; ".join(reasons)
        )


class InvalidImportRowError(InputError):
    """A bank import row is invalid; the whole batch is rejected."""

    code: str = "INVALID_IMPORT_ROW"

    def __init__(self, index: int, reason: str):
        self.index = index
        self.reason = reason
        super().__init__(f"Import row {index} rejected: {reason}")


# Fiscal periods


class PeriodError(MizanError):
    """Base exception for fiscal period errors."""

    code: str = "PERIOD_ERROR"


class ClosedPeriodError(PeriodError):
    """Attempted to post into a closed or locked period."""

    code: str = "PERIOD_CLOSED"

    def __init__(self, period_code: str, posting_date: str):
        self.period_code = period_code
        self.posting_date = posting_date
        super().__init__(
            f"Cannot post to closed period {period_code} (date: {posting_date})"
        )


class PeriodNotFoundError(PeriodError):
    """No period has this code, or none covers this date."""

    code: str = "PERIOD_NOT_FOUND"

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"No fiscal period found for: {key}")


class PeriodAlreadyClosedError(PeriodError):
    code: str = "PERIOD_ALREADY_CLOSED"

    def __init__(self, period_code: str):
        self.period_code = period_code
        super().__init__(f"Period {period_code} is already closed")


class PeriodOverlapError(PeriodError):
    """A new period's date range intersects an existing one."""

    code: str = "PERIOD_OVERLAP"

    def __init__(self, period_code: str, existing_period_code: str):
        self.period_code = period_code
        self.existing_period_code = existing_period_code
        super().__init__(
            f"Period {period_code} overlaps existing period {existing_period_code}"
        )


class PeriodImmutableError(PeriodError):
    """A locked period cannot change any more."""

    code: str = "PERIOD_IMMUTABLE"

    def __init__(self, period_code: str, operation: str):
        self.period_code = period_code
        self.operation = operation
        super().__init__(f"Cannot {operation} locked period {period_code}")


# Immutability


class ImmutabilityError(MizanError):
    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
