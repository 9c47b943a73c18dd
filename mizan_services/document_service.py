"""
DocumentService -- document lifecycle on top of the store and the poster.

Responsibility:
    The workflow a user drives: create a draft, confirm it (which posts
    it), record payments (which post them), and issue credit notes against
    an invoice.  Each call is one unit of work inside the caller's session.

Architecture position:
    Services -- orchestrates ``DocumentStore`` and ``LedgerPoster``.

Invariants enforced:
    - Confirmation and posting happen together; a document never stays
      confirmed-but-unposted when ``auto_post`` is on.
    - A credit note references a non-draft invoice and never changes it.
    - The credit notes of an invoice never exceed its total.

Failure modes:
    - InvalidDocumentError for a credit note with no valid origin or one
      that over-credits the invoice.
    - Whatever the store and the poster raise, unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from mizan_kernel.domain.documents import (
    CommercialDocument,
    CreditNote,
    DocumentLine,
    DocumentStatus,
    DocumentType,
    Payment,
    PaymentStatus,
    paid_ratio,
)
from mizan_kernel.domain.values import TOLERANCE, ZERO
from mizan_kernel.exceptions import InvalidDocumentError
from mizan_kernel.logging_config import LogContext, get_logger
from mizan_kernel.services.document_store import DocumentStore
from mizan_services.ledger_poster import LedgerPoster

logger = get_logger("services.documents")


@dataclass(frozen=True)
class PaymentSummary:
    document_id: str
    ttc: Decimal
    paid: Decimal
    due_left: Decimal
    status: PaymentStatus
    paid_ratio: Decimal


class DocumentService:
    """Drives documents from draft to posted and paid."""

    def __init__(
        self,
        store: DocumentStore,
        poster: LedgerPoster,
        auto_post: bool = True,
    ):
        self._store = store
        self._poster = poster
        self._auto_post = auto_post

    def create(
        self, document: CommercialDocument, created_by: str = "system"
    ) -> CommercialDocument:
        return self._store.save_document(document, created_by=created_by)

    def confirm(self, document_id: str, created_by: str = "system") -> CommercialDocument:
        """Confirm a draft and, with ``auto_post``, post it."""
        with LogContext.bind(document_id=document_id, actor_id=created_by):
            document = self._store.confirm_document(document_id)
            if self._auto_post:
                self._poster.post(document_id, created_by=created_by)
                document = self._store.get_document(document_id)
            return document

    def record_payment(
        self,
        document_id: str,
        payment: Payment,
        created_by: str = "system",
    ) -> CommercialDocument:
        """Record a payment and post it once the document itself is posted."""
        with LogContext.bind(document_id=document_id, actor_id=created_by):
            document = self._store.add_payment(document_id, payment, created_by=created_by)
            if self._auto_post and document.status == DocumentStatus.POSTED:
                self._poster.post_payment(document_id, payment.id, created_by=created_by)
                document = self._store.get_document(document_id)
            return document

    def create_credit_note(
        self,
        invoice_id: str,
        credit_note_id: str,
        issue_date: date,
        lines: tuple[DocumentLine, ...] | None = None,
        due_date: date | None = None,
        created_by: str = "system",
    ) -> CommercialDocument:
        """
        Issue a draft credit note against an invoice.

        Without ``lines`` the whole invoice is credited.  Given lines must
        already carry negative quantities or prices.
        """
        invoice = self._store.get_document(invoice_id)
        if invoice.doc_type != DocumentType.INVOICE:
            raise InvalidDocumentError(
                credit_note_id, [f"origin {invoice_id} is not an invoice"]
            )
        if invoice.status == DocumentStatus.DRAFT:
            raise InvalidDocumentError(
                credit_note_id, [f"origin invoice {invoice_id} is still a draft"]
            )

        if lines is None:
            lines = tuple(
                DocumentLine(
                    description=line.description,
                    qty=-line.qty,
                    unit_price=line.unit_price,
                    vat_rate=line.vat_rate,
                    discount_pct=line.discount_pct,
                    account_id=line.account_id,
                )
                for line in invoice.lines
            )

        credit_note = CreditNote(
            id=credit_note_id,
            party_id=invoice.party_id,
            issue_date=issue_date,
            due_date=due_date or issue_date,
            lines=tuple(lines),
            currency=invoice.currency,
            origin_id=invoice.id,
        )

        already_credited = sum(
            (abs(doc.totals.ttc) for doc in self._store.list_documents(DocumentType.CREDIT_NOTE)
             if doc.origin_id == invoice.id),
            ZERO,
        )
        credited = already_credited + abs(credit_note.totals.ttc)
        if credited - invoice.totals.ttc >= TOLERANCE:
            logger.warning("credit_note_exceeds_invoice", extra={
                "invoice_id": invoice.id,
                "invoice_total": str(invoice.totals.ttc),
                "credited": str(credited),
            })
            raise InvalidDocumentError(
                credit_note_id,
                [f"credit notes total {credited} exceeds invoice {invoice.totals.ttc}"],
            )

        saved = self._store.save_document(credit_note, created_by=created_by)
        logger.info("credit_note_created", extra={
            "document_id": credit_note_id,
            "invoice_id": invoice.id,
            "total": str(saved.totals.ttc),
        })
        return saved

    def payment_summary(self, document_id: str) -> PaymentSummary:
        document = self._store.get_document(document_id)
        totals = document.totals
        return PaymentSummary(
            document_id=document.id,
            ttc=totals.ttc,
            paid=totals.paid,
            due_left=totals.due_left,
            status=totals.payment_status,
            paid_ratio=paid_ratio(totals.paid, totals.ttc),
        )
