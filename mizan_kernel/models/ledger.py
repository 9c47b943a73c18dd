"""
Module: mizan_kernel.models.ledger
Responsibility: ORM persistence for ledger lines, the append-only general
    ledger.  One row is one debit-or-credit line; lines sharing a
    ``piece_id`` form one balanced entry.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - Append-only: db/immutability.py refuses every UPDATE and DELETE.
      Corrections are new offsetting pieces, never edits.
    - Balance per piece is guaranteed upstream (posting engine residual +
      balance validator); the table does not re-check it.

Audit relevance:
    ``source_document_id`` and ``created_by`` tie every line back to the
    document and the actor that produced it.
"""

import datetime as dt
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from mizan_kernel.db.base import TrackedBase, UUIDString
from mizan_kernel.domain.ledger import LedgerLine


class LedgerLineModel(TrackedBase):
    """Single ledger line.  Immutable once flushed."""

    __tablename__ = "ledger_lines"

    __table_args__ = (
        Index("idx_ledger_piece", "piece_id"),
        Index("idx_ledger_account", "account_id"),
        Index("idx_ledger_date", "date"),
        Index("idx_ledger_source", "source_document_id"),
    )

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)

    piece_id: Mapped[str] = mapped_column(String(100), nullable=False)

    # Order of the line inside its piece
    line_no: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    date: Mapped[dt.date] = mapped_column(nullable=False)

    journal: Mapped[str] = mapped_column(String(10), nullable=False)

    account_id: Mapped[str] = mapped_column(
        String(20), ForeignKey("accounts.id"), nullable=False
    )

    label: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    debit: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), nullable=False, default=Decimal("0")
    )

    credit: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), nullable=False, default=Decimal("0")
    )

    source_document_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<LedgerLine {self.piece_id}#{self.line_no} {self.account_id} "
            f"D{self.debit} C{self.credit}>"
        )

    def to_dto(self) -> LedgerLine:
        return LedgerLine(
            id=self.id,
            piece_id=self.piece_id,
            line_no=self.line_no,
            date=self.date,
            journal=self.journal,
            account_id=self.account_id,
            label=self.label,
            debit=Decimal(self.debit),
            credit=Decimal(self.credit),
            source_document_id=self.source_document_id,
            created_by=self.created_by,
        )

    @classmethod
    def from_dto(cls, dto: LedgerLine) -> "LedgerLineModel":
        return cls(
            id=dto.id or uuid4(),
            piece_id=dto.piece_id,
            line_no=dto.line_no,
            date=dto.date,
            journal=dto.journal,
            account_id=dto.account_id,
            label=dto.label,
            debit=dto.debit,
            credit=dto.credit,
            source_document_id=dto.source_document_id,
            created_by=dto.created_by,
        )
