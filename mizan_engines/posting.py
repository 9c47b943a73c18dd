"""
mizan_engines.posting -- translate documents and payments into ledger pieces.

Responsibility:
    Build the candidate ledger lines for a commercial document or one of
    its payments under the configured account mapping.  The result is a
    ``PostingPlan`` per piece; persistence and validation gating belong to
    ``mizan_services.ledger_poster``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Reads kernel domain
    objects and the configuration schema only.

Invariants enforced:
    - Every piece balances exactly: its last line is the residual
      (opposite side total minus same side total of the other lines),
      never an independently rounded figure.
    - Zero-amount lines are omitted (a 0% VAT invoice gives two lines).
    - Credit notes post absolute values with the sides mirrored, on the
      same VAT account the invoice used (pending under the cash regime).

Piece layout:

    Document        Piece                 Journal  Lines
    --------------  --------------------  -------  -------------------------------
    Invoice         <doc>                 sales    D receivable ttc
                                                   C revenue ht (per line account)
                                                   C VAT collected / pending (residual)
    Credit note     <doc>                 sales    D revenue |ht|
                                                   D VAT collected / pending |vat|
                                                   C receivable (residual)
    Purchase        <doc>                 purch.   D purchases ht (per line account)
                                                   D VAT deductible vat
                                                   C payable (residual)
    Invoice pay.    <doc>-PAY-<payment>   bank/cash D treasury, C receivable (residual)
    Purchase pay.   <doc>-PAY-<payment>   bank/cash D payable, C treasury (residual)
    Refund (CN)     <doc>-PAY-<payment>   bank/cash D receivable, C treasury (residual)
    Cash-basis VAT  <doc>-VAT-<payment>   bank/cash D VAT pending, C VAT collected (residual)
    Cash VAT (CN)   <doc>-VAT-<payment>   bank/cash D VAT collected, C VAT pending (residual)

Failure modes:
    - ValueError for a payment with a zero amount or a document variant
      the engine does not know.
    - AccountMappingError when a posting role has no account configured.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import date
from decimal import Decimal

from mizan_config.schema import AccountMapping, JournalCodes, VatRegime
from mizan_engines.tracer import traced_engine
from mizan_kernel.domain.documents import (
    CommercialDocument,
    DocumentType,
    Payment,
)
from mizan_kernel.domain.ledger import LedgerLine
from mizan_kernel.domain.values import ZERO, round_amount
from mizan_kernel.exceptions import AccountMappingError
from mizan_kernel.logging_config import get_logger

logger = get_logger("engines.posting")

DEBIT = "debit"
CREDIT = "credit"


def payment_piece_id(document_id: str, payment_id: str) -> str:
    return f"{document_id}-PAY-{payment_id}"


def vat_piece_id(document_id: str, payment_id: str) -> str:
    return f"{document_id}-VAT-{payment_id}"


@dataclass(frozen=True)
class PostingPlan:
    """Candidate lines of one piece, not yet persisted."""

    piece_id: str
    journal: str
    date: date
    source_document_id: str
    lines: tuple[LedgerLine, ...]

    @property
    def total_debit(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)

    @property
    def total_credit(self) -> Decimal:
        return sum((line.credit for line in self.lines), ZERO)


@dataclass(frozen=True)
class _Leg:
    side: str
    account_id: str
    label: str
    amount: Decimal


class _PieceBuilder:
    """Collects legs and closes the piece with a residual leg."""

    def __init__(
        self,
        piece_id: str,
        journal: str,
        entry_date: date,
        source_document_id: str,
        created_by: str,
    ):
        self.piece_id = piece_id
        self.journal = journal
        self.date = entry_date
        self.source_document_id = source_document_id
        self.created_by = created_by
        self._legs: list[_Leg] = []

    def add(self, side: str, account_id: str, label: str, amount: Decimal) -> None:
        amount = round_amount(amount)
        if amount != ZERO:
            self._legs.append(_Leg(side, account_id, label, amount))

    def close(self, side: str, account_id: str, label: str) -> PostingPlan:
        """Append the residual leg on ``side`` and freeze the piece."""
        debits = sum((leg.amount for leg in self._legs if leg.side == DEBIT), ZERO)
        credits = sum((leg.amount for leg in self._legs if leg.side == CREDIT), ZERO)
        residual = credits - debits if side == DEBIT else debits - credits
        if residual != ZERO:
            self._legs.append(_Leg(side, account_id, label, residual))

        lines = tuple(
            LedgerLine(
                piece_id=self.piece_id,
                date=self.date,
                journal=self.journal,
                account_id=leg.account_id,
                label=leg.label,
                debit=leg.amount if leg.side == DEBIT else ZERO,
                credit=leg.amount if leg.side == CREDIT else ZERO,
                source_document_id=self.source_document_id,
                line_no=i,
                created_by=self.created_by,
            )
            for i, leg in enumerate(self._legs)
        )
        return PostingPlan(
            piece_id=self.piece_id,
            journal=self.journal,
            date=self.date,
            source_document_id=self.source_document_id,
            lines=lines,
        )


class PostingEngine:
    """
    Pure translator from documents to balanced pieces.

    Contract:
        Same document, payment and configuration always produce the same
        plans.  No clock access, no I/O.

    Non-goals:
        - Does not check accounts exist or are postable (balance
          validator).
        - Does not enforce idempotency (ledger poster).
    """

    def __init__(
        self,
        accounts: AccountMapping,
        journals: JournalCodes,
        vat_regime: VatRegime = VatRegime.ACCRUAL,
    ):
        missing = [f.name for f in fields(accounts) if not getattr(accounts, f.name)]
        if missing:
            raise AccountMappingError(missing[0])
        self._accounts = accounts
        self._journals = journals
        self._vat_regime = VatRegime(vat_regime)

    @property
    def is_cash_basis(self) -> bool:
        return self._vat_regime == VatRegime.CASH

    @property
    def sales_vat_account(self) -> str:
        """VAT collected, or VAT pending until payment under the cash regime."""
        if self.is_cash_basis:
            return self._accounts.vat_collected_pending
        return self._accounts.vat_collected

    def _amounts_by_account(
        self, document: CommercialDocument, default_account: str
    ) -> list[tuple[str, Decimal]]:
        """HT per target account, in first-seen line order."""
        grouped: dict[str, Decimal] = {}
        for line in document.lines:
            account_id = line.account_id or default_account
            grouped[account_id] = grouped.get(account_id, ZERO) + line.totals().ht
        return list(grouped.items())

    @traced_engine("posting", "1.0")
    def document_entry(
        self, document: CommercialDocument, created_by: str = "system"
    ) -> PostingPlan:
        """Build the piece recognising a document."""
        totals = document.totals
        accounts = self._accounts
        doc_type = document.doc_type

        if doc_type == DocumentType.INVOICE:
            piece = _PieceBuilder(
                document.id, self._journals.sales, document.issue_date,
                document.id, created_by,
            )
            piece.add(DEBIT, accounts.receivable, f"Invoice {document.id} - {document.party_id}", totals.ttc)
            for account_id, ht in self._amounts_by_account(document, accounts.revenue):
                piece.add(CREDIT, account_id, f"Sales {document.id}", ht)
            plan = piece.close(CREDIT, self.sales_vat_account, f"VAT {document.id}")

        elif doc_type == DocumentType.CREDIT_NOTE:
            piece = _PieceBuilder(
                document.id, self._journals.sales, document.issue_date,
                document.id, created_by,
            )
            for account_id, ht in self._amounts_by_account(document, accounts.revenue):
                piece.add(DEBIT, account_id, f"Credit note {document.id}", abs(ht))
            piece.add(DEBIT, self.sales_vat_account, f"VAT credit note {document.id}", abs(totals.vat))
            plan = piece.close(
                CREDIT, accounts.receivable, f"Credit note {document.id} - {document.party_id}"
            )

        elif doc_type == DocumentType.PURCHASE:
            piece = _PieceBuilder(
                document.id, self._journals.purchases, document.issue_date,
                document.id, created_by,
            )
            for account_id, ht in self._amounts_by_account(document, accounts.purchases):
                piece.add(DEBIT, account_id, f"Purchase {document.id}", ht)
            piece.add(DEBIT, accounts.vat_deductible, f"VAT purchase {document.id}", totals.vat)
            plan = piece.close(
                CREDIT, accounts.payable, f"Purchase {document.id} - {document.party_id}"
            )

        else:
            raise ValueError(f"Cannot post document type {doc_type!r}")

        logger.debug("document_entry_built", extra={
            "document_id": document.id,
            "doc_type": doc_type.value,
            "piece_id": plan.piece_id,
            "line_count": len(plan.lines),
            "total": str(plan.total_debit),
        })
        return plan

    @traced_engine("posting", "1.0")
    def payment_entries(
        self,
        document: CommercialDocument,
        payment: Payment,
        created_by: str = "system",
    ) -> list[PostingPlan]:
        """
        Build the payment piece, plus under the cash-basis regime the VAT
        recognition piece of an invoice payment or its reversal for a
        credit note refund.
        """
        amount = abs(round_amount(payment.amount))
        if amount == ZERO:
            raise ValueError(f"Payment {payment.id} on {document.id} has a zero amount")

        accounts = self._accounts
        journal = self._journals.treasury_journal(payment.mode)
        treasury = accounts.treasury_account(payment.mode)
        piece_id = payment_piece_id(document.id, payment.id)
        piece = _PieceBuilder(piece_id, journal, payment.date, document.id, created_by)
        doc_type = document.doc_type

        if doc_type == DocumentType.INVOICE:
            piece.add(DEBIT, treasury, f"Payment {payment.id} {document.id}", amount)
            plan = piece.close(CREDIT, accounts.receivable, f"Settlement {document.id} - {document.party_id}")
        elif doc_type == DocumentType.PURCHASE:
            piece.add(DEBIT, accounts.payable, f"Settlement {document.id} - {document.party_id}", amount)
            plan = piece.close(CREDIT, treasury, f"Payment {payment.id} {document.id}")
        elif doc_type == DocumentType.CREDIT_NOTE:
            piece.add(DEBIT, accounts.receivable, f"Refund {document.id} - {document.party_id}", amount)
            plan = piece.close(CREDIT, treasury, f"Refund {payment.id} {document.id}")
        else:
            raise ValueError(f"Cannot post payment for document type {doc_type!r}")

        plans = [plan]
        if self.is_cash_basis and doc_type in (DocumentType.INVOICE, DocumentType.CREDIT_NOTE):
            vat_plan = self._cash_vat_entry(document, payment, amount, journal, created_by)
            if vat_plan is not None:
                plans.append(vat_plan)

        logger.debug("payment_entries_built", extra={
            "document_id": document.id,
            "payment_id": payment.id,
            "piece_ids": [p.piece_id for p in plans],
            "amount": str(amount),
        })
        return plans

    def _cash_vat_entry(
        self,
        document: CommercialDocument,
        payment: Payment,
        amount: Decimal,
        journal: str,
        created_by: str,
    ) -> PostingPlan | None:
        """
        VAT becomes due pro rata of the amount collected.  A refund on a
        credit note moves its share back from collected to pending.
        """
        share = vat_share(amount, document.totals.vat, document.totals.ttc)
        if share == ZERO:
            return None
        piece = _PieceBuilder(
            vat_piece_id(document.id, payment.id), journal, payment.date,
            document.id, created_by,
        )
        pending = self._accounts.vat_collected_pending
        collected = self._accounts.vat_collected
        if document.doc_type == DocumentType.CREDIT_NOTE:
            piece.add(DEBIT, collected, f"VAT refunded {payment.id} {document.id}", share)
            return piece.close(CREDIT, pending, f"VAT refund {document.id}")
        piece.add(DEBIT, pending, f"VAT due on payment {payment.id} {document.id}", share)
        return piece.close(CREDIT, collected, f"VAT due {document.id}")


def vat_share(amount: Decimal, vat: Decimal, ttc: Decimal) -> Decimal:
    """round(amount * vat / ttc), zero when the document has no total."""
    if ttc == ZERO:
        return ZERO
    return round_amount(abs(amount) * abs(vat) / abs(ttc))
