"""
Module: mizan_kernel.models.fiscal_period
Responsibility: ORM persistence for fiscal periods.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - ``code`` is the primary key ("2024-01", "FY2024").
    - Date ranges never overlap; checked by PeriodService at creation.
"""

import datetime as dt

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from mizan_kernel.db.base import TrackedBase
from mizan_kernel.domain.periods import FiscalPeriodInfo, PeriodStatus


class FiscalPeriodModel(TrackedBase):
    """One fiscal period and its lifecycle status."""

    __tablename__ = "fiscal_periods"

    __table_args__ = (
        Index("idx_period_dates", "start_date", "end_date"),
    )

    code: Mapped[str] = mapped_column(String(20), primary_key=True)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Inclusive bounds
    start_date: Mapped[dt.date] = mapped_column(nullable=False)

    end_date: Mapped[dt.date] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PeriodStatus.OPEN.value
    )

    closed_at: Mapped[dt.datetime | None] = mapped_column(nullable=True)

    closed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<FiscalPeriod {self.code}: {self.status}>"

    def to_dto(self) -> FiscalPeriodInfo:
        return FiscalPeriodInfo(
            code=self.code,
            name=self.name,
            start_date=self.start_date,
            end_date=self.end_date,
            status=PeriodStatus(self.status),
            closed_at=self.closed_at,
            closed_by=self.closed_by,
        )

    @classmethod
    def from_dto(cls, dto: FiscalPeriodInfo, created_by: str = "system") -> "FiscalPeriodModel":
        return cls(
            code=dto.code,
            name=dto.name,
            start_date=dto.start_date,
            end_date=dto.end_date,
            status=PeriodStatus(dto.status).value,
            closed_at=dto.closed_at,
            closed_by=dto.closed_by,
            created_by=created_by,
        )
