"""
Documents -- commercial documents and their derived totals.

Responsibility:
    Immutable value objects for invoices, credit notes and purchases, their
    lines and payments, plus the pure functions that derive HT/VAT/TTC
    totals and the amount still due.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Built by the Document Store from ORM rows; consumed by the posting,
    matching and aggregation engines.

Invariants enforced:
    - Totals are derived, never stored: every read recomputes them from
      lines and payments.
    - Line amounts are rounded to cents before document totals are summed,
      so document ttc == sum(line ttc) exactly.
    - due_left = ttc - paid.

Failure modes:
    - ValueError from the Decimal helpers on unreadable amounts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import ClassVar

from mizan_kernel.domain.values import (
    HUNDRED,
    TOLERANCE,
    ZERO,
    clamp,
    round_amount,
    to_decimal,
)


class DocumentType(str, Enum):
    INVOICE = "invoice"
    CREDIT_NOTE = "credit_note"
    PURCHASE = "purchase"


class DocumentStatus(str, Enum):
    """Lifecycle: draft -> confirmed -> posted."""

    DRAFT = "draft"
    CONFIRMED = "confirmed"
    POSTED = "posted"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class PaymentMode(str, Enum):
    CASH = "cash"
    CHEQUE = "cheque"
    TRANSFER = "transfer"
    CARD = "card"
    DIRECT_DEBIT = "direct_debit"
    MOBILE = "mobile"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class LineTotals:
    ht: Decimal
    vat: Decimal
    ttc: Decimal
    vat_rate: Decimal


@dataclass(frozen=True, slots=True)
class DocumentLine:
    """
    One priced line of a commercial document.

    Credit notes carry negative ``qty`` or ``unit_price``; the discount is
    clamped to [0, 100] percent.
    A negative ``vat_rate`` is never valid and makes ``totals()`` raise.
    """

    description: str
    qty: Decimal
    unit_price: Decimal
    vat_rate: Decimal
    discount_pct: Decimal = ZERO
    account_id: str | None = None

    def totals(self) -> LineTotals:
        rate = to_decimal(self.vat_rate)
        if rate < ZERO:
            raise ValueError(f"negative vat_rate: {rate}")
        discount = clamp(to_decimal(self.discount_pct), ZERO, HUNDRED)
        gross = to_decimal(self.qty) * to_decimal(self.unit_price)
        ht = round_amount(gross * (1 - discount / HUNDRED))
        vat = round_amount(ht * rate / HUNDRED)
        ttc = round_amount(ht + vat)
        return LineTotals(ht=ht, vat=vat, ttc=ttc, vat_rate=rate)


@dataclass(frozen=True, slots=True)
class Payment:
    """A settlement recorded against a document."""

    id: str
    date: date
    amount: Decimal
    mode: PaymentMode = PaymentMode.TRANSFER
    reference: str | None = None
    posted: bool = False


@dataclass(frozen=True, slots=True)
class VatRateTotal:
    """Base and VAT for one rate within a document."""

    rate: Decimal
    base: Decimal
    vat: Decimal


@dataclass(frozen=True, slots=True)
class DocumentTotals:
    """Derived totals of a document.  Never persisted."""

    ht: Decimal
    vat: Decimal
    ttc: Decimal
    vat_by_rate: tuple[VatRateTotal, ...]
    paid: Decimal
    due_left: Decimal
    payment_count: int = 0

    @property
    def payment_status(self) -> PaymentStatus:
        if self.payment_count == 0:
            return PaymentStatus.UNPAID
        if self.due_left <= TOLERANCE:
            return PaymentStatus.PAID
        return PaymentStatus.PARTIAL


def compute_totals(
    lines: tuple[DocumentLine, ...] | list[DocumentLine],
    payments: tuple[Payment, ...] | list[Payment] = (),
) -> DocumentTotals:
    """Sum line totals per document and per VAT rate, then apply payments."""
    ht = vat = ttc = ZERO
    by_rate: dict[Decimal, list[Decimal]] = {}
    for line in lines:
        lt = line.totals()
        ht += lt.ht
        vat += lt.vat
        ttc += lt.ttc
        # Quantize so 20 and 20.00 land in the same bucket
        key = round_amount(lt.vat_rate)
        bucket = by_rate.setdefault(key, [ZERO, ZERO])
        bucket[0] += lt.ht
        bucket[1] += lt.vat

    paid = ZERO
    for payment in payments:
        paid += round_amount(payment.amount)

    return DocumentTotals(
        ht=ht,
        vat=vat,
        ttc=ttc,
        vat_by_rate=tuple(
            VatRateTotal(rate=rate, base=base, vat=rate_vat)
            for rate, (base, rate_vat) in sorted(by_rate.items())
        ),
        paid=paid,
        due_left=ttc - paid,
        payment_count=len(payments),
    )


def paid_ratio(amount: Decimal, ttc: Decimal) -> Decimal:
    """Share of the document settled by ``amount``, clamped to [0, 1]."""
    if ttc == ZERO:
        return Decimal("0")
    return clamp(abs(to_decimal(amount)) / abs(ttc), Decimal("0"), Decimal("1"))


@dataclass(frozen=True, slots=True)
class CommercialDocument:
    """
    Base of the tagged document variants.

    Contract:
        Concrete documents are ``Invoice``, ``CreditNote`` or ``Purchase``;
        ``doc_type`` is a class-level tag.  ``party_id`` is the customer for
        sales documents and the supplier for purchases.

    Guarantees:
        - ``totals`` is recomputed on each access from lines and payments.
        - Instances are immutable; the store returns fresh copies on every
          read.
        - ``reconciled == (lettrage_id is not None)``.  Only the
          reconciliation workflow sets or clears the pair.
    """

    doc_type: ClassVar[DocumentType]

    id: str
    party_id: str
    issue_date: date
    due_date: date
    lines: tuple[DocumentLine, ...]
    payments: tuple[Payment, ...] = ()
    status: DocumentStatus = DocumentStatus.DRAFT
    currency: str = "MAD"
    origin_id: str | None = None
    reconciled: bool = False
    lettrage_id: str | None = None
    created_by: str = field(default="system", compare=False)

    @property
    def totals(self) -> DocumentTotals:
        return compute_totals(self.lines, self.payments)

    @property
    def outstanding(self) -> Decimal:
        """Amount still due; negative for credit notes."""
        return self.totals.due_left

    @property
    def is_sale(self) -> bool:
        return self.doc_type in (DocumentType.INVOICE, DocumentType.CREDIT_NOTE)

    def get_payment(self, payment_id: str) -> Payment | None:
        for payment in self.payments:
            if payment.id == payment_id:
                return payment
        return None


@dataclass(frozen=True, slots=True)
class Invoice(CommercialDocument):
    doc_type: ClassVar[DocumentType] = DocumentType.INVOICE


@dataclass(frozen=True, slots=True)
class CreditNote(CommercialDocument):
    """Reverses (part of) an invoice; amounts are signed negatives."""

    doc_type: ClassVar[DocumentType] = DocumentType.CREDIT_NOTE


@dataclass(frozen=True, slots=True)
class Purchase(CommercialDocument):
    doc_type: ClassVar[DocumentType] = DocumentType.PURCHASE


DOCUMENT_CLASSES: dict[DocumentType, type[CommercialDocument]] = {
    DocumentType.INVOICE: Invoice,
    DocumentType.CREDIT_NOTE: CreditNote,
    DocumentType.PURCHASE: Purchase,
}


def lettrage_id_for(bank_id: str) -> str:
    """Lettrage reference of a document settled by bank line ``bank_id``."""
    return f"LET-{bank_id}"


def document_class(doc_type: DocumentType | str) -> type[CommercialDocument]:
    """Resolve the variant class for a type tag."""
    return DOCUMENT_CLASSES[DocumentType(doc_type)]
