"""
ReconciliationService -- suggest, apply and undo bank pairings.

Responsibility:
    Imperative shell around ``mizan_engines.matching``.  Reads unreconciled
    bank lines and outstanding documents from the Document Store, proposes
    matches, and applies or reverts them by patching the bank transaction,
    lettering the document and adding or removing the ``ReconciliationRecord``.

Architecture position:
    Services -- the caller owns the transaction.  Time comes from an
    injected ``Clock``.

State machine per bank transaction:

    Unmatched --apply--> Matched --undo--> Unmatched   (repeatable)

Invariants enforced:
    - apply() is idempotent: re-applying the same pair is a no-op that
      returns the existing record.
    - A bank line linked to one document cannot be applied to another
      (BankTransactionAlreadyReconciledError); undo it first.
    - apply() letters the document: ``reconciled=True`` and
      ``lettrage_id = "LET-<bank id>"``.  An automatic apply to a document
      that is already lettered is rejected (DocumentAlreadyReconciledError);
      only apply_manual may settle one document from several bank lines.
    - undo(apply(m)) restores ``reconciled=False, match_doc_id=None`` on the
      bank line, leaves no record for the pair, and clears the document's
      lettrage once no other bank line is linked to it.
    - Lettered documents are not proposed again.

Failure modes:
    - NoSuchReconciliationError when undoing a pair that is not linked.
    - DocumentAlreadyReconciledError on a second automatic link to a document.
    - BankTransactionNotFoundError / DocumentNotFoundError for unknown ids.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from mizan_config import MatchingPolicy, get_active_config
from mizan_engines.matching import auto_match, score_pair
from mizan_kernel.domain.bank import Match, ReconciliationRecord
from mizan_kernel.domain.clock import Clock, SystemClock
from mizan_kernel.domain.documents import lettrage_id_for
from mizan_kernel.exceptions import (
    BankTransactionAlreadyReconciledError,
    DocumentAlreadyReconciledError,
    NoSuchReconciliationError,
)
from mizan_kernel.logging_config import LogContext, get_logger
from mizan_kernel.services.document_store import DocumentStore

logger = get_logger("services.reconciliation")


@dataclass(frozen=True)
class ReconciliationReportLine:
    """One bank line of the reconciliation report."""

    bank_id: str
    date: date
    amount: Decimal
    label: str
    reference: str
    reconciled: bool
    doc_id: str | None
    score: Decimal | None
    manual: bool


class ReconciliationService:
    """
    Bank reconciliation workflow.

    Contract:
        Never deletes a bank transaction.  Only ``reconciled`` and
        ``match_doc_id`` change on the bank side, and only ``reconciled``
        and ``lettrage_id`` on the document side.  Without an explicit
        policy the matching weights come from ``get_active_config()``.

    Non-goals:
        - Partial or many-to-one settlement proposals; those are paired
          by hand through ``apply_manual``.
    """

    def __init__(
        self,
        store: DocumentStore,
        policy: MatchingPolicy | None = None,
        clock: Clock | None = None,
    ):
        self._store = store
        self._policy = policy or get_active_config().matching
        self._clock = clock or SystemClock()

    def suggest(self) -> list[Match]:
        """Matches for every unreconciled bank line, not yet applied."""
        bank_txns = self._store.list_unreconciled_bank_transactions()
        return auto_match(bank_txns, self._store.list_outstanding(), self._policy)

    def apply(self, match: Match, created_by: str = "system") -> ReconciliationRecord:
        return self._apply(match, manual=False, created_by=created_by)

    def apply_manual(
        self, bank_id: str, doc_id: str, created_by: str = "system"
    ) -> ReconciliationRecord:
        """
        Force a pairing chosen by a user.  The recorded score is whatever
        the matcher would have given the pair, even below the threshold.
        """
        txn = self._store.get_bank_transaction(bank_id)
        doc = self._store.get_document(doc_id)
        pair = score_pair(txn, doc, self._policy)
        return self._apply(
            Match(bank_id=bank_id, doc_id=doc_id, score=pair.score),
            manual=True,
            created_by=created_by,
        )

    def _apply(
        self, match: Match, manual: bool, created_by: str
    ) -> ReconciliationRecord:
        with LogContext.bind(bank_id=match.bank_id, document_id=match.doc_id, actor_id=created_by):
            txn = self._store.get_bank_transaction(match.bank_id)
            doc = self._store.get_document(match.doc_id)

            if txn.reconciled:
                if txn.match_doc_id != match.doc_id:
                    logger.warning("reconciliation_conflict", extra={
                        "bank_id": match.bank_id,
                        "linked_doc_id": txn.match_doc_id,
                        "requested_doc_id": match.doc_id,
                    })
                    raise BankTransactionAlreadyReconciledError(
                        match.bank_id, txn.match_doc_id, match.doc_id
                    )
                existing = self._store.get_reconciliation_record(match.bank_id)
                if existing is not None:
                    logger.info("reconciliation_already_applied", extra={
                        "bank_id": match.bank_id,
                        "doc_id": match.doc_id,
                    })
                    return existing
            else:
                if doc.reconciled and not manual:
                    logger.warning("document_already_reconciled", extra={
                        "doc_id": match.doc_id,
                        "lettrage_id": doc.lettrage_id,
                        "requested_bank_id": match.bank_id,
                    })
                    raise DocumentAlreadyReconciledError(
                        match.doc_id, doc.lettrage_id, match.bank_id
                    )
                self._store.update_bank_transaction(
                    match.bank_id, reconciled=True, match_doc_id=match.doc_id
                )
                if not doc.reconciled:
                    self._store.set_document_reconciliation(
                        match.doc_id, lettrage_id_for(match.bank_id)
                    )

            record = self._store.add_reconciliation_record(ReconciliationRecord(
                bank_id=match.bank_id,
                doc_id=match.doc_id,
                score=match.score,
                applied_at=self._clock.now(),
                manual=manual,
                created_by=created_by,
            ))
            logger.info("reconciliation_applied", extra={
                "bank_id": match.bank_id,
                "doc_id": match.doc_id,
                "score": str(match.score),
                "manual": manual,
            })
            return record

    def undo(self, bank_id: str, doc_id: str, created_by: str = "system") -> ReconciliationRecord | None:
        """Unlink a pair.  Returns the removed record."""
        with LogContext.bind(bank_id=bank_id, document_id=doc_id, actor_id=created_by):
            txn = self._store.get_bank_transaction(bank_id)
            if not txn.reconciled or txn.match_doc_id != doc_id:
                logger.warning("reconciliation_undo_rejected", extra={
                    "bank_id": bank_id,
                    "doc_id": doc_id,
                    "linked_doc_id": txn.match_doc_id,
                })
                raise NoSuchReconciliationError(bank_id, doc_id)

            removed = self._store.remove_reconciliation_record(bank_id)
            self._store.update_bank_transaction(bank_id, reconciled=False, match_doc_id=None)
            self._release_document(doc_id)
            logger.info("reconciliation_undone", extra={
                "bank_id": bank_id,
                "doc_id": doc_id,
            })
            return removed

    def _release_document(self, doc_id: str) -> None:
        # Several bank lines may settle one document through apply_manual;
        # the lettrage then follows a line that is still linked.
        linked = [lettrage_id_for(r.bank_id) for r in
                  self._store.list_reconciliation_records(doc_id=doc_id)]
        doc = self._store.get_document(doc_id)
        if doc.lettrage_id in linked:
            return
        self._store.set_document_reconciliation(doc_id, linked[0] if linked else None)

    def auto_reconcile(self, created_by: str = "system") -> list[ReconciliationRecord]:
        """Apply every current suggestion."""
        matches = self.suggest()
        records = [self.apply(match, created_by=created_by) for match in matches]
        logger.info("auto_reconcile_completed", extra={
            "applied_count": len(records),
        })
        return records

    def report(self) -> list[ReconciliationReportLine]:
        """Every bank line with its current pairing, by date."""
        records = {r.bank_id: r for r in self._store.list_reconciliation_records()}
        lines = []
        for txn in self._store.list_bank_transactions():
            record = records.get(txn.id)
            lines.append(ReconciliationReportLine(
                bank_id=txn.id,
                date=txn.date,
                amount=txn.amount,
                label=txn.label,
                reference=txn.reference,
                reconciled=txn.reconciled,
                doc_id=txn.match_doc_id,
                score=record.score if record else None,
                manual=record.manual if record else False,
            ))
        return lines
