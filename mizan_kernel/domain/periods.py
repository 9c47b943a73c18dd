"""
Fiscal periods -- the date ranges that accept postings.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Bounds are inclusive on both ends.
    - Status moves open -> closed -> locked.  A closed period may be
      reopened; a locked one may not.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum


class PeriodStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    LOCKED = "locked"


@dataclass(frozen=True, slots=True)
class FiscalPeriodInfo:
    """A fiscal period as returned by the Document Store."""

    code: str
    name: str
    start_date: date
    end_date: date
    status: PeriodStatus = PeriodStatus.OPEN
    closed_at: datetime | None = None
    closed_by: str | None = None

    @property
    def is_closed(self) -> bool:
        return self.status in (PeriodStatus.CLOSED, PeriodStatus.LOCKED)

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date
