"""
Bank -- imported bank statement lines and reconciliation pairings.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - BankTransaction.reconciled == (match_doc_id is not None); the
      Document Store rejects patches that would break it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal


@dataclass(frozen=True, slots=True)
class BankTransaction:
    """
    One statement line.  ``amount`` is signed: positive for inflows,
    negative for outflows.
    """

    id: str
    date: date
    amount: Decimal
    label: str
    reference: str = ""
    reconciled: bool = False
    match_doc_id: str | None = None
    imported_at: datetime | None = None

    @property
    def is_inflow(self) -> bool:
        return self.amount > 0


@dataclass(frozen=True, slots=True)
class Match:
    """A proposed or applied pairing of one bank line with one document."""

    bank_id: str
    doc_id: str
    score: Decimal


@dataclass(frozen=True, slots=True)
class ReconciliationRecord:
    """Persisted trace of an applied pairing.  Removed on undo."""

    bank_id: str
    doc_id: str
    score: Decimal
    applied_at: datetime
    manual: bool = False
    created_by: str = "system"
