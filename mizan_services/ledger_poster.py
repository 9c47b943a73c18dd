"""
LedgerPoster -- gated, idempotent posting of documents and payments.

Responsibility:
    Turns a confirmed document (or one of its payments) into ledger lines:
    asks the posting engine for the pieces, gates every piece through the
    balance validator, appends the lines through the Document Store and
    flips the document or payment to posted.  Also writes offsetting
    reversal pieces, the only way to correct the append-only ledger.

Architecture position:
    Services -- imperative shell over ``mizan_engines.posting`` and
    ``mizan_engines.validation``.  Holds no state beyond its collaborators;
    the caller owns the transaction (``session_scope()``).

Invariants enforced:
    - A document is posted at most once, a payment at most once; a second
      call raises AlreadyPostedError and writes nothing.
    - Drafts are never posted (InvalidDocumentStateError).
    - No piece is dated inside a closed or locked fiscal period; the date
      check runs before validation, so a rejected call writes nothing.
    - Lines are written only when every piece of the call validates.
    - Every written piece balances exactly (residual last line).

Failure modes:
    - DocumentNotFoundError / PaymentNotFoundError.
    - AlreadyPostedError, InvalidDocumentStateError.
    - EntryRejectedError carrying every validation issue.
    - ClosedPeriodError / PeriodNotFoundError from the period gate.

Audit relevance:
    Each posting logs ``document_posted`` / ``payment_posted`` with the
    piece ids, totals and actor.  Lines carry ``created_by`` and
    ``source_document_id``.
"""

from __future__ import annotations

import time
from datetime import date

from mizan_config import LedgerConfig, get_active_config
from mizan_engines.posting import PostingEngine, PostingPlan, payment_piece_id
from mizan_engines.validation import validate
from mizan_kernel.domain.documents import DocumentStatus
from mizan_kernel.domain.ledger import LedgerLine
from mizan_kernel.exceptions import (
    AlreadyPostedError,
    InvalidDocumentStateError,
    NotFoundError,
    PaymentNotFoundError,
)
from mizan_kernel.logging_config import LogContext, get_logger
from mizan_kernel.services.document_store import DocumentStore
from mizan_kernel.services.period_service import PeriodService

logger = get_logger("services.ledger_poster")

REVERSAL_SUFFIX = "-REV"


class LedgerPoster:
    """
    Posts documents and payments to the general ledger.

    Contract:
        ``post()`` and ``post_payment()`` either write every line of the
        call or none of them.

    Non-goals:
        - No locking.  Two sessions posting the same document concurrently
          are not serialized here.
    """

    def __init__(
        self,
        store: DocumentStore,
        config: LedgerConfig | None = None,
        periods: PeriodService | None = None,
    ):
        self._store = store
        self._config = config or get_active_config()
        self._periods = periods or PeriodService(store)
        self._engine = PostingEngine(
            self._config.accounts,
            self._config.journals,
            self._config.vat_regime,
        )

    @property
    def config(self) -> LedgerConfig:
        return self._config

    def _gate_and_write(self, plans: list[PostingPlan]) -> list[LedgerLine]:
        for plan in plans:
            self._periods.validate_posting_date(plan.date)

        accounts = {a.id: a for a in self._store.list_accounts()}
        for plan in plans:
            result = validate(list(plan.lines), accounts)
            if not result.valid:
                logger.warning("entry_rejected", extra={
                    "piece_id": plan.piece_id,
                    "issue_codes": [c.value for c in result.codes],
                })
            result.raise_if_invalid(plan.piece_id)

        written: list[LedgerLine] = []
        for plan in plans:
            written.extend(self._store.append_ledger_lines(plan.lines))
        return written

    def post(self, document_id: str, created_by: str = "system") -> list[LedgerLine]:
        """Post a confirmed invoice, credit note or purchase."""
        t0 = time.monotonic()
        with LogContext.bind(document_id=document_id, actor_id=created_by):
            document = self._store.get_document(document_id)

            if document.status == DocumentStatus.POSTED or self._store.has_piece(document.id):
                logger.warning("document_already_posted", extra={
                    "document_id": document_id,
                })
                raise AlreadyPostedError(document_id, piece_id=document.id)
            if document.status != DocumentStatus.CONFIRMED:
                raise InvalidDocumentStateError(
                    document_id, document.status.value, DocumentStatus.POSTED.value
                )

            plan = self._engine.document_entry(document, created_by=created_by)
            written = self._gate_and_write([plan])
            self._store.mark_document_posted(document_id)

            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            logger.info("document_posted", extra={
                "document_id": document_id,
                "doc_type": document.doc_type.value,
                "piece_id": plan.piece_id,
                "journal": plan.journal,
                "line_count": len(written),
                "total": str(plan.total_debit),
                "duration_ms": duration_ms,
            })
            return written

    def post_payment(
        self,
        document_id: str,
        payment_id: str,
        created_by: str = "system",
    ) -> list[LedgerLine]:
        """
        Post one payment of a posted document.

        Under the cash-basis VAT regime an invoice payment also writes the
        VAT recognition piece.
        """
        t0 = time.monotonic()
        piece_id = payment_piece_id(document_id, payment_id)
        with LogContext.bind(document_id=document_id, actor_id=created_by, piece_id=piece_id):
            document = self._store.get_document(document_id)
            payment = document.get_payment(payment_id)
            if payment is None:
                raise PaymentNotFoundError(document_id, payment_id)

            if payment.posted or self._store.has_piece(piece_id):
                logger.warning("payment_already_posted", extra={
                    "document_id": document_id,
                    "payment_id": payment_id,
                })
                raise AlreadyPostedError(payment_id, piece_id=piece_id)
            if document.status != DocumentStatus.POSTED:
                raise InvalidDocumentStateError(
                    document_id, document.status.value, "payment_posted"
                )

            plans = self._engine.payment_entries(document, payment, created_by=created_by)
            written = self._gate_and_write(plans)
            self._store.mark_payment_posted(document_id, payment_id)

            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            logger.info("payment_posted", extra={
                "document_id": document_id,
                "payment_id": payment_id,
                "piece_ids": [plan.piece_id for plan in plans],
                "amount": str(payment.amount),
                "mode": payment.mode.value,
                "line_count": len(written),
                "duration_ms": duration_ms,
            })
            return written

    def reverse(
        self,
        piece_id: str,
        reversal_date: date,
        created_by: str = "system",
    ) -> list[LedgerLine]:
        """
        Write the offsetting piece ``<piece>-REV`` with debits and credits
        swapped.  The original lines stay untouched.
        """
        original = self._store.list_ledger_lines(piece_id=piece_id)
        if not original:
            raise NotFoundError(f"Piece not found: {piece_id}")
        reversal_id = f"{piece_id}{REVERSAL_SUFFIX}"
        if self._store.has_piece(reversal_id):
            raise AlreadyPostedError(piece_id, piece_id=reversal_id)

        lines = tuple(
            LedgerLine(
                piece_id=reversal_id,
                date=reversal_date,
                journal=line.journal,
                account_id=line.account_id,
                label=f"Reversal {line.label}",
                debit=line.credit,
                credit=line.debit,
                source_document_id=line.source_document_id,
                line_no=line.line_no,
                created_by=created_by,
            )
            for line in original
        )
        plan = PostingPlan(
            piece_id=reversal_id,
            journal=original[0].journal,
            date=reversal_date,
            source_document_id=original[0].source_document_id or "",
            lines=lines,
        )
        written = self._gate_and_write([plan])
        logger.info("piece_reversed", extra={
            "piece_id": piece_id,
            "reversal_piece_id": reversal_id,
            "line_count": len(written),
        })
        return written
