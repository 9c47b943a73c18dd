"""
Ledger configuration schema.

Frozen dataclasses parsed from YAML by ``mizan_config.loader``.  Services
receive a ``LedgerConfig`` and never read files or environment variables
themselves.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from mizan_kernel.domain.documents import PaymentMode


class VatRegime(str, Enum):
    """When collected VAT becomes due to the tax office."""

    ACCRUAL = "accrual"
    CASH = "cash"


@dataclass(frozen=True)
class AccountMapping:
    """Posting role -> CGNC account id."""

    receivable: str = "3421"
    payable: str = "4411"
    revenue: str = "7111"
    purchases: str = "6111"
    vat_collected: str = "44551"
    vat_collected_pending: str = "44558"
    vat_deductible: str = "34552"
    bank: str = "5141"
    cash: str = "5161"
    cheque: str = "5111"

    def treasury_account(self, mode: PaymentMode | str) -> str:
        """Cash and cheques have their own accounts; everything else hits the bank."""
        mode = PaymentMode(mode)
        if mode == PaymentMode.CASH:
            return self.cash
        if mode == PaymentMode.CHEQUE:
            return self.cheque
        return self.bank


@dataclass(frozen=True)
class JournalCodes:
    sales: str = "VEN"
    purchases: str = "ACH"
    bank: str = "BNK"
    cash: str = "CAI"

    def treasury_journal(self, mode: PaymentMode | str) -> str:
        return self.cash if PaymentMode(mode) == PaymentMode.CASH else self.bank


@dataclass(frozen=True)
class MatchingPolicy:
    """
    Scoring weights of the bank reconciliation matcher.

    A pair is kept when its score reaches ``threshold``.  With the default
    weights that requires the exact-amount signal plus the reference
    signal; amount and date alone score 0.7.
    """

    amount_weight: Decimal = Decimal("0.6")
    reference_weight: Decimal = Decimal("0.3")
    date_weight: Decimal = Decimal("0.1")
    threshold: Decimal = Decimal("0.9")
    date_window_days: int = 5
    amount_tolerance: Decimal = Decimal("0.01")


@dataclass(frozen=True)
class LedgerConfig:
    """The runtime configuration artifact."""

    config_id: str = "cgnc-default"
    version: int = 1
    currency: str = "MAD"
    vat_regime: VatRegime = VatRegime.ACCRUAL
    accounts: AccountMapping = field(default_factory=AccountMapping)
    journals: JournalCodes = field(default_factory=JournalCodes)
    matching: MatchingPolicy = field(default_factory=MatchingPolicy)
    checksum: str = ""

    @property
    def is_cash_basis(self) -> bool:
        return self.vat_regime == VatRegime.CASH
