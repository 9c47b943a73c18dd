"""
Ledger -- accounts and ledger lines as immutable domain objects.

Responsibility:
    Value types exchanged between the posting engine, the balance
    validator, the Document Store and the statement aggregator.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - A posted line carries exactly one nonzero side (checked by the
      balance validator, not here, so malformed candidates can still be
      described and reported).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from mizan_kernel.domain.values import ZERO


class AccountType(str, Enum):
    """Types of accounts in the chart of accounts."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


@dataclass(frozen=True, slots=True)
class AccountInfo:
    """
    Chart-of-accounts entry as seen by the engines.

    ``id`` equals the CGNC number in the default chart.  Only detail,
    active accounts may receive ledger lines.
    """

    id: str
    number: str
    label: str
    account_class: int
    account_type: AccountType
    is_detail_account: bool = True
    is_active: bool = True

    @property
    def is_postable(self) -> bool:
        return self.is_detail_account and self.is_active


@dataclass(frozen=True, slots=True)
class LedgerLine:
    """
    One debit-or-credit line of a piece.

    Candidates built by the posting engine have ``id=None``; the Document
    Store assigns ids on append.
    """

    piece_id: str
    date: date
    journal: str
    account_id: str
    label: str
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    source_document_id: str | None = None
    line_no: int = 0
    id: UUID | None = None
    created_by: str = field(default="system", compare=False)

    @property
    def signed_amount(self) -> Decimal:
        """debit - credit."""
        return self.debit - self.credit
