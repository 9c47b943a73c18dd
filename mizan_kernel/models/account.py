"""
Module: mizan_kernel.models.account
Responsibility: ORM persistence for the chart of accounts -- the target of
    every ledger line.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    Ledger lines may only reference accounts that are detail accounts and
    active.  The balance validator checks this against ``to_dto()``
    snapshots before any line is written.
"""

from sqlalchemy import Boolean, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from mizan_kernel.db.base import TrackedBase
from mizan_kernel.domain.ledger import AccountInfo, AccountType


class Account(TrackedBase):
    """Chart of accounts entry keyed by its CGNC number."""

    __tablename__ = "accounts"

    __table_args__ = (
        Index("idx_account_number", "number"),
        Index("idx_account_active", "is_active"),
    )

    id: Mapped[str] = mapped_column(String(20), primary_key=True)

    number: Mapped[str] = mapped_column(String(20), nullable=False)

    label: Mapped[str] = mapped_column(String(255), nullable=False)

    # CGNC class 1-8
    account_class: Mapped[int] = mapped_column(Integer, nullable=False)

    account_type: Mapped[str] = mapped_column(String(20), nullable=False)

    is_detail_account: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Account {self.number}: {self.label}>"

    def to_dto(self) -> AccountInfo:
        return AccountInfo(
            id=self.id,
            number=self.number,
            label=self.label,
            account_class=self.account_class,
            account_type=AccountType(self.account_type),
            is_detail_account=self.is_detail_account,
            is_active=self.is_active,
        )

    @classmethod
    def from_dto(cls, dto: AccountInfo, created_by: str = "system") -> "Account":
        return cls(
            id=dto.id,
            number=dto.number,
            label=dto.label,
            account_class=dto.account_class,
            account_type=AccountType(dto.account_type).value,
            is_detail_account=dto.is_detail_account,
            is_active=dto.is_active,
            created_by=created_by,
        )
