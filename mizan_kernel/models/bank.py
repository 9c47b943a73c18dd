"""
Module: mizan_kernel.models.bank
Responsibility: ORM persistence for imported bank statement lines and the
    reconciliation records that link them to documents.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - ``reconciled == (match_doc_id is not None)``; the Document Store is the
      only writer of both columns and patches them together.
    - At most one ReconciliationRecord per bank transaction (unique
      ``bank_id``).  Records are inserted and deleted, never updated
      (db/immutability.py).
"""

import datetime as dt
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Boolean, ForeignKey, Index, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from mizan_kernel.db.base import Base, UUIDString
from mizan_kernel.domain.bank import BankTransaction, ReconciliationRecord


class BankTransactionModel(Base):
    """One imported statement line."""

    __tablename__ = "bank_transactions"

    __table_args__ = (
        Index("idx_bank_txn_reconciled", "reconciled"),
        Index("idx_bank_txn_date", "date"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    date: Mapped[dt.date] = mapped_column(nullable=False)

    # Signed: positive inflow, negative outflow
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)

    label: Mapped[str] = mapped_column(String(255), nullable=False)

    reference: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    reconciled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    match_doc_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    imported_at: Mapped[dt.datetime] = mapped_column(
        server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<BankTransaction {self.id} {self.amount} reconciled={self.reconciled}>"

    def to_dto(self) -> BankTransaction:
        return BankTransaction(
            id=self.id,
            date=self.date,
            amount=Decimal(self.amount),
            label=self.label,
            reference=self.reference or "",
            reconciled=self.reconciled,
            match_doc_id=self.match_doc_id,
            imported_at=self.imported_at,
        )

    @classmethod
    def from_dto(cls, dto: BankTransaction) -> "BankTransactionModel":
        model = cls(
            id=dto.id,
            date=dto.date,
            amount=dto.amount,
            label=dto.label,
            reference=dto.reference or "",
            reconciled=dto.reconciled,
            match_doc_id=dto.match_doc_id,
        )
        if dto.imported_at is not None:
            model.imported_at = dto.imported_at
        return model


class ReconciliationRecordModel(Base):
    """Trace of an applied pairing.  Deleted on undo."""

    __tablename__ = "reconciliation_records"

    __table_args__ = (Index("idx_recon_doc", "doc_id"),)

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)

    bank_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("bank_transactions.id"), nullable=False, unique=True
    )

    doc_id: Mapped[str] = mapped_column(String(64), nullable=False)

    score: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)

    applied_at: Mapped[dt.datetime] = mapped_column(nullable=False)

    manual: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_by: Mapped[str] = mapped_column(String(100), nullable=False, default="system")

    def __repr__(self) -> str:
        return f"<ReconciliationRecord {self.bank_id} -> {self.doc_id} score={self.score}>"

    def to_dto(self) -> ReconciliationRecord:
        return ReconciliationRecord(
            bank_id=self.bank_id,
            doc_id=self.doc_id,
            score=Decimal(self.score),
            applied_at=self.applied_at,
            manual=self.manual,
            created_by=self.created_by,
        )

    @classmethod
    def from_dto(cls, dto: ReconciliationRecord) -> "ReconciliationRecordModel":
        return cls(
            bank_id=dto.bank_id,
            doc_id=dto.doc_id,
            score=dto.score,
            applied_at=dto.applied_at,
            manual=dto.manual,
            created_by=dto.created_by,
        )
