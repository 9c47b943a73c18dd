"""
DocumentStore -- persistence boundary for documents, ledger and bank data.

Responsibility:
    Owns every entity of the ledger core.  The poster, the reconciliation
    service and the report builders read and write exclusively through
    this interface and hold no state of their own.

Architecture position:
    Kernel > Services -- imperative shell.  ``SqlDocumentStore`` wraps a
    caller-owned SQLAlchemy Session and only ever flushes; the caller
    (usually ``session_scope()``) commits or rolls back.

Invariants enforced:
    - Derived totals are recomputed on every read, never cached.
    - Documents are validated at the boundary (required fields, at least
      one line, sign consistent with the variant).
    - Status moves draft -> confirmed -> posted, one step at a time.
    - A payment may not exceed the amount still due (OverpaymentError).
    - Bank transactions keep ``reconciled == (match_doc_id is not None)``.
    - Documents keep ``reconciled == (lettrage_id is not None)``; only
      the reconciliation service sets either.
    - Bank imports are all-or-nothing.

Failure modes:
    - DocumentNotFoundError / PaymentNotFoundError /
      BankTransactionNotFoundError for unknown ids.
    - InvalidDocumentError when a document fails boundary validation.
    - InvalidDocumentStateError / AlreadyPostedError on bad transitions.
    - OverpaymentError when a payment exceeds ``due_left``.
    - PeriodNotFoundError when a status change names an unknown period.
    - ValueError when a bank transaction patch is malformed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from mizan_kernel.domain.bank import BankTransaction, ReconciliationRecord
from mizan_kernel.domain.clock import Clock, SystemClock
from mizan_kernel.domain.documents import (
    CommercialDocument,
    DocumentStatus,
    DocumentType,
    Payment,
)
from mizan_kernel.domain.ledger import AccountInfo, LedgerLine
from mizan_kernel.domain.periods import FiscalPeriodInfo, PeriodStatus
from mizan_kernel.domain.values import TOLERANCE, ZERO, is_outstanding, round_amount
from mizan_kernel.exceptions import (
    AlreadyPostedError,
    BankTransactionNotFoundError,
    DocumentNotFoundError,
    InvalidDocumentError,
    InvalidDocumentStateError,
    InvalidImportRowError,
    OverpaymentError,
    PaymentNotFoundError,
    PeriodNotFoundError,
)
from mizan_kernel.logging_config import get_logger
from mizan_kernel.models.account import Account
from mizan_kernel.models.bank import BankTransactionModel, ReconciliationRecordModel
from mizan_kernel.models.document import DocumentModel, PaymentModel
from mizan_kernel.models.fiscal_period import FiscalPeriodModel
from mizan_kernel.models.ledger import LedgerLineModel

logger = get_logger("services.document_store")

BANK_PATCH_FIELDS = frozenset({"reconciled", "match_doc_id"})


class DocumentStore(ABC):
    """
    Interface consumed by every component of the ledger core.

    Contract:
        Implementations return immutable domain objects, never ORM rows, and
        recompute derived values on every call.
    """

    # Core operations

    @abstractmethod
    def get_document(self, document_id: str) -> CommercialDocument:
        ...

    @abstractmethod
    def list_outstanding(
        self, doc_type: DocumentType | str | None = None
    ) -> list[CommercialDocument]:
        ...

    @abstractmethod
    def append_ledger_lines(self, lines: Iterable[LedgerLine]) -> list[LedgerLine]:
        ...

    @abstractmethod
    def update_bank_transaction(self, bank_id: str, **patch: Any) -> BankTransaction:
        ...

    @abstractmethod
    def list_unreconciled_bank_transactions(self) -> list[BankTransaction]:
        ...

    # Chart of accounts

    @abstractmethod
    def add_accounts(self, accounts: Iterable[AccountInfo], created_by: str = "system") -> int:
        ...

    @abstractmethod
    def list_accounts(self) -> list[AccountInfo]:
        ...

    # Documents

    @abstractmethod
    def save_document(
        self, document: CommercialDocument, created_by: str = "system"
    ) -> CommercialDocument:
        ...

    @abstractmethod
    def confirm_document(self, document_id: str) -> CommercialDocument:
        ...

    @abstractmethod
    def mark_document_posted(self, document_id: str) -> CommercialDocument:
        ...

    @abstractmethod
    def add_payment(
        self, document_id: str, payment: Payment, created_by: str = "system"
    ) -> CommercialDocument:
        ...

    @abstractmethod
    def mark_payment_posted(self, document_id: str, payment_id: str) -> Payment:
        ...

    @abstractmethod
    def list_documents(
        self,
        doc_type: DocumentType | str | None = None,
        status: DocumentStatus | str | None = None,
    ) -> list[CommercialDocument]:
        ...

    # Ledger

    @abstractmethod
    def list_ledger_lines(
        self,
        piece_id: str | None = None,
        source_document_id: str | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[LedgerLine]:
        ...

    @abstractmethod
    def has_piece(self, piece_id: str) -> bool:
        ...

    # Bank

    @abstractmethod
    def add_bank_transactions(
        self, transactions: Iterable[BankTransaction]
    ) -> list[BankTransaction]:
        ...

    @abstractmethod
    def get_bank_transaction(self, bank_id: str) -> BankTransaction:
        ...

    @abstractmethod
    def list_bank_transactions(self) -> list[BankTransaction]:
        ...

    # Reconciliation records

    @abstractmethod
    def add_reconciliation_record(self, record: ReconciliationRecord) -> ReconciliationRecord:
        ...

    @abstractmethod
    def get_reconciliation_record(self, bank_id: str) -> ReconciliationRecord | None:
        ...

    @abstractmethod
    def remove_reconciliation_record(self, bank_id: str) -> ReconciliationRecord | None:
        ...

    @abstractmethod
    def list_reconciliation_records(
        self, doc_id: str | None = None
    ) -> list[ReconciliationRecord]:
        ...

    @abstractmethod
    def set_document_reconciliation(
        self, document_id: str, lettrage_id: str | None
    ) -> CommercialDocument:
        ...

    # Fiscal periods

    @abstractmethod
    def add_period(self, period: FiscalPeriodInfo, created_by: str = "system") -> FiscalPeriodInfo:
        ...

    @abstractmethod
    def get_period(self, code: str) -> FiscalPeriodInfo | None:
        ...

    @abstractmethod
    def list_periods(self) -> list[FiscalPeriodInfo]:
        ...

    @abstractmethod
    def find_period_for_date(self, day: date) -> FiscalPeriodInfo | None:
        ...

    @abstractmethod
    def update_period_status(
        self,
        code: str,
        status: PeriodStatus,
        closed_at: datetime | None = None,
        closed_by: str | None = None,
    ) -> FiscalPeriodInfo:
        ...


class SqlDocumentStore(DocumentStore):
    """
    SQLAlchemy implementation of the Document Store.

    Contract:
        Uses ``session.flush()`` only.  Transaction boundaries belong to the
        caller.

    Non-goals:
        - No locking.  Concurrent posting of the same document from two
          sessions is not guarded beyond the primary keys.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    @property
    def session(self) -> Session:
        return self._session

    # ------------------------------------------------------------------
    # Chart of accounts
    # ------------------------------------------------------------------

    def add_accounts(self, accounts: Iterable[AccountInfo], created_by: str = "system") -> int:
        """Insert accounts that do not exist yet.  Returns the number added."""
        existing = set(self._session.scalars(select(Account.id)).all())
        added = 0
        for info in accounts:
            if info.id in existing:
                continue
            self._session.add(Account.from_dto(info, created_by=created_by))
            existing.add(info.id)
            added += 1
        self._session.flush()
        logger.info("accounts_added", extra={"count": added})
        return added

    def list_accounts(self) -> list[AccountInfo]:
        rows = self._session.scalars(select(Account).order_by(Account.number)).all()
        return [row.to_dto() for row in rows]

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def _document_row(self, document_id: str) -> DocumentModel:
        row = self._session.get(DocumentModel, document_id)
        if row is None:
            raise DocumentNotFoundError(document_id)
        return row

    def get_document(self, document_id: str) -> CommercialDocument:
        return self._document_row(document_id).to_dto()

    def list_documents(
        self,
        doc_type: DocumentType | str | None = None,
        status: DocumentStatus | str | None = None,
    ) -> list[CommercialDocument]:
        stmt = select(DocumentModel).order_by(DocumentModel.issue_date, DocumentModel.id)
        if doc_type is not None:
            stmt = stmt.where(DocumentModel.doc_type == DocumentType(doc_type).value)
        if status is not None:
            stmt = stmt.where(DocumentModel.status == DocumentStatus(status).value)
        return [row.to_dto() for row in self._session.scalars(stmt).all()]

    def list_outstanding(
        self, doc_type: DocumentType | str | None = None
    ) -> list[CommercialDocument]:
        """Confirmed or posted documents with more than 0.01 still due."""
        return [
            doc
            for doc in self.list_documents(doc_type=doc_type)
            if doc.status != DocumentStatus.DRAFT and is_outstanding(doc.outstanding)
        ]

    def save_document(
        self, document: CommercialDocument, created_by: str = "system"
    ) -> CommercialDocument:
        """Validate and insert a new document in draft or confirmed state."""
        reasons = self._validate_document(document)
        if reasons:
            logger.warning(
                "document_rejected",
                extra={"document_id": document.id, "reasons": reasons},
            )
            raise InvalidDocumentError(document.id, reasons)

        row = DocumentModel.from_dto(document, created_by=created_by)
        self._session.add(row)
        self._session.flush()
        logger.info(
            "document_saved",
            extra={
                "document_id": document.id,
                "doc_type": document.doc_type.value,
                "status": row.status,
            },
        )
        return row.to_dto()

    def _validate_document(self, document: CommercialDocument) -> list[str]:
        reasons: list[str] = []
        doc_type = getattr(document, "doc_type", None)
        if doc_type not in tuple(DocumentType):
            reasons.append(f"unknown document type: {doc_type!r}")
            return reasons
        if not document.id:
            reasons.append("id is required")
        elif self._session.get(DocumentModel, document.id) is not None:
            reasons.append(f"document {document.id} already exists")
        if not document.party_id:
            reasons.append("party_id is required")
        if document.issue_date is None or document.due_date is None:
            reasons.append("issue_date and due_date are required")
        elif document.due_date < document.issue_date:
            reasons.append("due_date precedes issue_date")
        if document.status == DocumentStatus.POSTED:
            reasons.append("documents cannot be saved as posted")
        if document.reconciled or document.lettrage_id is not None:
            reasons.append("documents cannot be saved already reconciled")
        if not document.lines:
            reasons.append("at least one line is required")
            return reasons

        negative = [i for i, line in enumerate(document.lines) if line.vat_rate < 0]
        reasons.extend(f"line {i}: negative vat_rate" for i in negative)
        if negative:
            return reasons

        try:
            totals = document.totals
        except ValueError as exc:
            reasons.append(str(exc))
            return reasons

        if doc_type == DocumentType.CREDIT_NOTE:
            if totals.ttc >= 0:
                reasons.append("credit note amounts must be negative")
        elif totals.ttc < 0:
            reasons.append(f"{doc_type.value} amounts must not be negative")

        if totals.payment_count and abs(totals.paid) - abs(totals.ttc) >= TOLERANCE:
            reasons.append("payments exceed document total")
        return reasons

    def confirm_document(self, document_id: str) -> CommercialDocument:
        row = self._document_row(document_id)
        if row.status != DocumentStatus.DRAFT.value:
            raise InvalidDocumentStateError(
                document_id, row.status, DocumentStatus.CONFIRMED.value
            )
        row.status = DocumentStatus.CONFIRMED.value
        self._session.flush()
        logger.info("document_confirmed", extra={"document_id": document_id})
        return row.to_dto()

    def mark_document_posted(self, document_id: str) -> CommercialDocument:
        row = self._document_row(document_id)
        if row.status == DocumentStatus.POSTED.value:
            raise AlreadyPostedError(document_id, piece_id=document_id)
        if row.status != DocumentStatus.CONFIRMED.value:
            raise InvalidDocumentStateError(
                document_id, row.status, DocumentStatus.POSTED.value
            )
        row.status = DocumentStatus.POSTED.value
        self._session.flush()
        return row.to_dto()

    def add_payment(
        self, document_id: str, payment: Payment, created_by: str = "system"
    ) -> CommercialDocument:
        """
        Record a payment.

        Sales and purchases take positive amounts; refunds on credit notes
        take negative ones.  The document must be past draft.
        """
        row = self._document_row(document_id)
        document = row.to_dto()
        if document.status == DocumentStatus.DRAFT:
            raise InvalidDocumentStateError(document_id, row.status, "paid")
        if document.get_payment(payment.id) is not None:
            raise InvalidDocumentError(
                document_id, [f"payment {payment.id} already recorded"]
            )

        amount = round_amount(payment.amount)
        due_left = document.totals.due_left
        if amount == ZERO or (amount > 0) != (due_left > 0):
            raise InvalidDocumentError(
                document_id,
                [f"payment amount {amount} does not match the sign of {due_left} due"],
            )
        if abs(amount) - abs(due_left) >= TOLERANCE:
            logger.warning(
                "overpayment_rejected",
                extra={
                    "document_id": document_id,
                    "due_left": str(due_left),
                    "amount": str(amount),
                },
            )
            raise OverpaymentError(document_id, str(due_left), str(amount))

        model = PaymentModel.from_dto(payment, position=len(row.payments))
        model.amount = amount
        model.created_by = created_by
        row.payments.append(model)
        self._session.flush()
        logger.info(
            "payment_recorded",
            extra={
                "document_id": document_id,
                "payment_id": payment.id,
                "amount": str(amount),
                "mode": model.mode,
            },
        )
        return row.to_dto()

    def mark_payment_posted(self, document_id: str, payment_id: str) -> Payment:
        row = self._document_row(document_id)
        for model in row.payments:
            if model.id == payment_id:
                if model.posted:
                    raise AlreadyPostedError(payment_id)
                model.posted = True
                self._session.flush()
                return model.to_dto()
        raise PaymentNotFoundError(document_id, payment_id)

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    def append_ledger_lines(self, lines: Iterable[LedgerLine]) -> list[LedgerLine]:
        """Bulk insert.  Returns the lines with their assigned ids."""
        models = [LedgerLineModel.from_dto(line) for line in lines]
        self._session.add_all(models)
        self._session.flush()
        return [model.to_dto() for model in models]

    def has_piece(self, piece_id: str) -> bool:
        stmt = select(LedgerLineModel.id).where(LedgerLineModel.piece_id == piece_id).limit(1)
        return self._session.scalars(stmt).first() is not None

    def list_ledger_lines(
        self,
        piece_id: str | None = None,
        source_document_id: str | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[LedgerLine]:
        stmt = select(LedgerLineModel).order_by(
            LedgerLineModel.date, LedgerLineModel.piece_id, LedgerLineModel.line_no
        )
        if piece_id is not None:
            stmt = stmt.where(LedgerLineModel.piece_id == piece_id)
        if source_document_id is not None:
            stmt = stmt.where(LedgerLineModel.source_document_id == source_document_id)
        if start is not None:
            stmt = stmt.where(LedgerLineModel.date >= start)
        if end is not None:
            stmt = stmt.where(LedgerLineModel.date <= end)
        return [row.to_dto() for row in self._session.scalars(stmt).all()]

    # ------------------------------------------------------------------
    # Bank transactions
    # ------------------------------------------------------------------

    def add_bank_transactions(
        self, transactions: Iterable[BankTransaction]
    ) -> list[BankTransaction]:
        """Insert a batch atomically.  Any duplicate id rejects the batch."""
        batch = list(transactions)
        seen: set[str] = set()
        for index, txn in enumerate(batch):
            if txn.id in seen or self._session.get(BankTransactionModel, txn.id) is not None:
                raise InvalidImportRowError(index, f"duplicate bank transaction id {txn.id}")
            seen.add(txn.id)

        imported_at = self._clock.now()
        models = []
        for txn in batch:
            model = BankTransactionModel.from_dto(txn)
            if txn.imported_at is None:
                model.imported_at = imported_at
            models.append(model)
        self._session.add_all(models)
        self._session.flush()
        return [model.to_dto() for model in models]

    def _bank_row(self, bank_id: str) -> BankTransactionModel:
        row = self._session.get(BankTransactionModel, bank_id)
        if row is None:
            raise BankTransactionNotFoundError(bank_id)
        return row

    def get_bank_transaction(self, bank_id: str) -> BankTransaction:
        return self._bank_row(bank_id).to_dto()

    def list_bank_transactions(self) -> list[BankTransaction]:
        stmt = select(BankTransactionModel).order_by(
            BankTransactionModel.date, BankTransactionModel.id
        )
        return [row.to_dto() for row in self._session.scalars(stmt).all()]

    def list_unreconciled_bank_transactions(self) -> list[BankTransaction]:
        stmt = (
            select(BankTransactionModel)
            .where(BankTransactionModel.reconciled.is_(False))
            .order_by(BankTransactionModel.date, BankTransactionModel.id)
        )
        return [row.to_dto() for row in self._session.scalars(stmt).all()]

    def update_bank_transaction(self, bank_id: str, **patch: Any) -> BankTransaction:
        """
        Patch the reconciliation flags of a bank transaction.

        Only ``reconciled`` and ``match_doc_id`` may change, and the result
        must keep ``reconciled == (match_doc_id is not None)``.
        """
        unknown = set(patch) - BANK_PATCH_FIELDS
        if unknown:
            raise ValueError(f"Cannot patch bank transaction fields: {sorted(unknown)}")

        row = self._bank_row(bank_id)
        reconciled = patch.get("reconciled", row.reconciled)
        match_doc_id = patch.get("match_doc_id", row.match_doc_id)
        if bool(reconciled) != (match_doc_id is not None):
            raise ValueError(
                f"Bank transaction {bank_id}: reconciled={reconciled} "
                f"inconsistent with match_doc_id={match_doc_id!r}"
            )
        row.reconciled = bool(reconciled)
        row.match_doc_id = match_doc_id
        self._session.flush()
        return row.to_dto()

    # ------------------------------------------------------------------
    # Reconciliation records
    # ------------------------------------------------------------------

    def _record_row(self, bank_id: str) -> ReconciliationRecordModel | None:
        stmt = select(ReconciliationRecordModel).where(
            ReconciliationRecordModel.bank_id == bank_id
        )
        return self._session.scalars(stmt).first()

    def add_reconciliation_record(self, record: ReconciliationRecord) -> ReconciliationRecord:
        model = ReconciliationRecordModel.from_dto(record)
        self._session.add(model)
        self._session.flush()
        return model.to_dto()

    def get_reconciliation_record(self, bank_id: str) -> ReconciliationRecord | None:
        row = self._record_row(bank_id)
        return row.to_dto() if row is not None else None

    def remove_reconciliation_record(self, bank_id: str) -> ReconciliationRecord | None:
        row = self._record_row(bank_id)
        if row is None:
            return None
        record = row.to_dto()
        self._session.delete(row)
        self._session.flush()
        return record

    def list_reconciliation_records(
        self, doc_id: str | None = None
    ) -> list[ReconciliationRecord]:
        stmt = select(ReconciliationRecordModel).order_by(
            ReconciliationRecordModel.applied_at, ReconciliationRecordModel.bank_id
        )
        if doc_id is not None:
            stmt = stmt.where(ReconciliationRecordModel.doc_id == doc_id)
        return [row.to_dto() for row in self._session.scalars(stmt).all()]

    def set_document_reconciliation(
        self, document_id: str, lettrage_id: str | None
    ) -> CommercialDocument:
        """
        Letter a document (``lettrage_id`` set) or clear its lettrage (None).

        Keeps ``reconciled == (lettrage_id is not None)`` on the document row.
        """
        row = self._document_row(document_id)
        row.lettrage_id = lettrage_id
        row.reconciled = lettrage_id is not None
        self._session.flush()
        logger.debug(
            "document_lettrage_set",
            extra={"document_id": document_id, "lettrage_id": lettrage_id},
        )
        return row.to_dto()

    # ------------------------------------------------------------------
    # Fiscal periods
    # ------------------------------------------------------------------

    def add_period(self, period: FiscalPeriodInfo, created_by: str = "system") -> FiscalPeriodInfo:
        row = FiscalPeriodModel.from_dto(period, created_by=created_by)
        self._session.add(row)
        self._session.flush()
        return row.to_dto()

    def get_period(self, code: str) -> FiscalPeriodInfo | None:
        row = self._session.get(FiscalPeriodModel, code)
        return row.to_dto() if row is not None else None

    def list_periods(self) -> list[FiscalPeriodInfo]:
        stmt = select(FiscalPeriodModel).order_by(FiscalPeriodModel.start_date)
        return [row.to_dto() for row in self._session.scalars(stmt).all()]

    def find_period_for_date(self, day: date) -> FiscalPeriodInfo | None:
        stmt = select(FiscalPeriodModel).where(
            FiscalPeriodModel.start_date <= day,
            FiscalPeriodModel.end_date >= day,
        )
        row = self._session.scalars(stmt).first()
        return row.to_dto() if row is not None else None

    def update_period_status(
        self,
        code: str,
        status: PeriodStatus,
        closed_at: datetime | None = None,
        closed_by: str | None = None,
    ) -> FiscalPeriodInfo:
        row = self._session.get(FiscalPeriodModel, code)
        if row is None:
            raise PeriodNotFoundError(code)
        row.status = PeriodStatus(status).value
        row.closed_at = closed_at
        row.closed_by = closed_by
        self._session.flush()
        return row.to_dto()
