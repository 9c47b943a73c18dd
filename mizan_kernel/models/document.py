"""
Module: mizan_kernel.models.document
Responsibility: ORM persistence for commercial documents (invoices, credit
    notes, purchases), their priced lines and their payments.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - Totals are never stored.  ``to_dto()`` returns a domain document whose
      totals are recomputed from lines and payments on every access.
    - Payment ids are unique per document (composite primary key).
    - ``reconciled == (lettrage_id is not None)``; the Document Store
      patches both together.
    - ``status`` follows draft -> confirmed -> posted; the Document Store
      performs the transitions.
"""

import datetime as dt
from decimal import Decimal

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mizan_kernel.db.base import TrackedBase
from mizan_kernel.domain.documents import (
    CommercialDocument,
    DocumentLine,
    DocumentStatus,
    Payment,
    PaymentMode,
    document_class,
)


class DocumentModel(TrackedBase):
    """
    Header of a commercial document.

    Contract:
        ``doc_type`` is the variant tag (invoice, credit_note, purchase).
        ``origin_id`` names the invoice a credit note reverses.
    """

    __tablename__ = "documents"

    __table_args__ = (
        Index("idx_document_type", "doc_type"),
        Index("idx_document_status", "status"),
        Index("idx_document_issue_date", "issue_date"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    doc_type: Mapped[str] = mapped_column(String(20), nullable=False)

    party_id: Mapped[str] = mapped_column(String(64), nullable=False)

    issue_date: Mapped[dt.date] = mapped_column(Date, nullable=False)

    due_date: Mapped[dt.date] = mapped_column(Date, nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="MAD")

    status: Mapped[str] = mapped_column(
        String(12), nullable=False, default=DocumentStatus.DRAFT.value
    )

    origin_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Document side of a bank pairing; set and cleared with the record
    reconciled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    lettrage_id: Mapped[str | None] = mapped_column(String(80), nullable=True)

    lines: Mapped[list["DocumentLineModel"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="DocumentLineModel.position",
        lazy="selectin",
    )

    payments: Mapped[list["PaymentModel"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="PaymentModel.position",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Document {self.doc_type} {self.id} [{self.status}]>"

    def to_dto(self) -> CommercialDocument:
        cls = document_class(self.doc_type)
        return cls(
            id=self.id,
            party_id=self.party_id,
            issue_date=self.issue_date,
            due_date=self.due_date,
            lines=tuple(line.to_dto() for line in self.lines),
            payments=tuple(payment.to_dto() for payment in self.payments),
            status=DocumentStatus(self.status),
            currency=self.currency,
            origin_id=self.origin_id,
            reconciled=self.reconciled,
            lettrage_id=self.lettrage_id,
            created_by=self.created_by,
        )

    @classmethod
    def from_dto(cls, dto: CommercialDocument, created_by: str = "system") -> "DocumentModel":
        model = cls(
            id=dto.id,
            doc_type=dto.doc_type.value,
            party_id=dto.party_id,
            issue_date=dto.issue_date,
            due_date=dto.due_date,
            currency=dto.currency,
            status=DocumentStatus(dto.status).value,
            origin_id=dto.origin_id,
            reconciled=dto.reconciled,
            lettrage_id=dto.lettrage_id,
            created_by=created_by,
        )
        model.lines = [
            DocumentLineModel.from_dto(line, position=i)
            for i, line in enumerate(dto.lines)
        ]
        model.payments = [
            PaymentModel.from_dto(payment, position=i)
            for i, payment in enumerate(dto.payments)
        ]
        return model


class DocumentLineModel(TrackedBase):
    """Priced line.  Quantities and unit prices keep four decimals."""

    __tablename__ = "document_lines"

    __table_args__ = (Index("idx_document_line_document", "document_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    document_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("documents.id"), nullable=False
    )

    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    qty: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)

    vat_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)

    discount_pct: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("0")
    )

    # Optional override of the default revenue/purchase account
    account_id: Mapped[str | None] = mapped_column(
        String(20), ForeignKey("accounts.id"), nullable=True
    )

    document: Mapped[DocumentModel] = relationship(back_populates="lines")

    def to_dto(self) -> DocumentLine:
        return DocumentLine(
            description=self.description,
            qty=Decimal(self.qty),
            unit_price=Decimal(self.unit_price),
            vat_rate=Decimal(self.vat_rate),
            discount_pct=Decimal(self.discount_pct),
            account_id=self.account_id,
        )

    @classmethod
    def from_dto(cls, dto: DocumentLine, position: int = 0) -> "DocumentLineModel":
        return cls(
            position=position,
            description=dto.description,
            qty=dto.qty,
            unit_price=dto.unit_price,
            vat_rate=dto.vat_rate,
            discount_pct=dto.discount_pct,
            account_id=dto.account_id,
        )


class PaymentModel(TrackedBase):
    """
    Payment recorded against a document.

    ``posted`` flips once the poster has written the payment's piece.
    """

    __tablename__ = "document_payments"

    document_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("documents.id"), primary_key=True
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    date: Mapped[dt.date] = mapped_column(Date, nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)

    mode: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentMode.TRANSFER.value
    )

    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    posted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    document: Mapped[DocumentModel] = relationship(back_populates="payments")

    def to_dto(self) -> Payment:
        return Payment(
            id=self.id,
            date=self.date,
            amount=Decimal(self.amount),
            mode=PaymentMode(self.mode),
            reference=self.reference,
            posted=self.posted,
        )

    @classmethod
    def from_dto(cls, dto: Payment, position: int = 0) -> "PaymentModel":
        return cls(
            id=dto.id,
            position=position,
            date=dto.date,
            amount=dto.amount,
            mode=PaymentMode(dto.mode).value,
            reference=dto.reference,
            posted=dto.posted,
        )
