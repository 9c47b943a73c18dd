"""
mizan_engines.aggregation -- VAT period summary and CGNC statement totals.

Responsibility:
    Pure reducers over documents and ledger lines for a date range:

    - ``VatAggregator`` buckets collected (sales) and deductible (purchases)
      VAT by rate and derives the amount to pay or the credit carried
      forward.
    - ``StatementAggregator`` folds ledger lines into account balances and
      CGNC rubric totals for the Bilan and the CPC.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Callers fetch documents
    and lines from the Document Store.

Invariants enforced:
    - Empty input yields zero totals, never an exception.
    - Every amount is rounded to cents before it is summed.
    - Accrual regime: a document belongs to the period of its issue date.
      Cash regime: each payment belongs to the period of its payment date
      and carries the paid share of every rate bucket.
    - Drafts are ignored.

Failure modes:
    - ValueError when ``start`` is after ``end``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from mizan_config.schema import VatRegime
from mizan_engines.tracer import traced_engine
from mizan_kernel.domain.cgnc import RUBRICS, Rubric, Section, Statement
from mizan_kernel.domain.documents import (
    CommercialDocument,
    DocumentStatus,
    DocumentType,
)
from mizan_kernel.domain.ledger import AccountInfo, LedgerLine
from mizan_kernel.domain.values import TOLERANCE, ZERO, round_amount, to_decimal
from mizan_kernel.logging_config import get_logger

logger = get_logger("engines.aggregation")


def _in_period(day: date, start: date | None, end: date | None) -> bool:
    if start is not None and day < start:
        return False
    if end is not None and day > end:
        return False
    return True


def _check_period(start: date | None, end: date | None) -> None:
    if start is not None and end is not None and start > end:
        raise ValueError(f"Period start {start} is after end {end}")


# ---------------------------------------------------------------------------
# VAT
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VatRateLine:
    rate: Decimal
    base: Decimal
    vat: Decimal


@dataclass(frozen=True)
class VatSummary:
    """
    VAT position of one period.

    ``net_vat = collected - deductible``; ``vat_to_pay = net_vat -
    previous_credit``.  A negative ``vat_to_pay`` becomes ``new_credit``.
    """

    start: date | None
    end: date | None
    regime: VatRegime
    collected: tuple[VatRateLine, ...]
    deductible: tuple[VatRateLine, ...]
    previous_credit: Decimal = ZERO
    document_count: int = 0

    @property
    def total_collected_base(self) -> Decimal:
        return sum((line.base for line in self.collected), ZERO)

    @property
    def total_collected_vat(self) -> Decimal:
        return sum((line.vat for line in self.collected), ZERO)

    @property
    def total_deductible_base(self) -> Decimal:
        return sum((line.base for line in self.deductible), ZERO)

    @property
    def total_deductible_vat(self) -> Decimal:
        return sum((line.vat for line in self.deductible), ZERO)

    @property
    def net_vat(self) -> Decimal:
        return self.total_collected_vat - self.total_deductible_vat

    @property
    def vat_to_pay(self) -> Decimal:
        return self.net_vat - self.previous_credit

    @property
    def new_credit(self) -> Decimal:
        return abs(self.vat_to_pay) if self.vat_to_pay < ZERO else ZERO


def _prorate(value: Decimal, amount: Decimal, ttc: Decimal) -> Decimal:
    """round(value * |amount| / |ttc|); zero for a zero-total document."""
    if ttc == ZERO:
        return ZERO
    return round_amount(value * abs(round_amount(amount)) / abs(ttc))


def _to_lines(buckets: dict[Decimal, list[Decimal]]) -> tuple[VatRateLine, ...]:
    return tuple(
        VatRateLine(rate=rate, base=base, vat=vat)
        for rate, (base, vat) in sorted(buckets.items())
    )


class VatAggregator:
    """
    Builds a ``VatSummary`` from commercial documents.

    Contract:
        Invoices and credit notes feed the collected side (credit notes
        with their negative sign); purchases feed the deductible side.
    """

    def __init__(self, regime: VatRegime | str = VatRegime.ACCRUAL):
        self.regime = VatRegime(regime)

    @traced_engine("vat_aggregator", "1.0")
    def summarize(
        self,
        documents: Iterable[CommercialDocument],
        start: date | None = None,
        end: date | None = None,
        previous_credit: Decimal | str | int = ZERO,
        regime: VatRegime | str | None = None,
    ) -> VatSummary:
        _check_period(start, end)
        regime = VatRegime(regime) if regime is not None else self.regime
        previous_credit = round_amount(previous_credit)

        collected: dict[Decimal, list[Decimal]] = {}
        deductible: dict[Decimal, list[Decimal]] = {}
        counted: set[str] = set()

        for doc in documents:
            if doc.status == DocumentStatus.DRAFT:
                continue
            target = deductible if doc.doc_type == DocumentType.PURCHASE else collected
            totals = doc.totals

            if regime == VatRegime.ACCRUAL:
                if not _in_period(doc.issue_date, start, end):
                    continue
                for bucket in totals.vat_by_rate:
                    acc = target.setdefault(bucket.rate, [ZERO, ZERO])
                    acc[0] += bucket.base
                    acc[1] += bucket.vat
                counted.add(doc.id)
                continue

            for payment in doc.payments:
                if not _in_period(payment.date, start, end):
                    continue
                for bucket in totals.vat_by_rate:
                    acc = target.setdefault(bucket.rate, [ZERO, ZERO])
                    acc[0] += _prorate(bucket.base, payment.amount, totals.ttc)
                    acc[1] += _prorate(bucket.vat, payment.amount, totals.ttc)
                counted.add(doc.id)

        summary = VatSummary(
            start=start,
            end=end,
            regime=regime,
            collected=_to_lines(collected),
            deductible=_to_lines(deductible),
            previous_credit=previous_credit,
            document_count=len(counted),
        )
        logger.info("vat_summary_computed", extra={
            "regime": regime.value,
            "start": start.isoformat() if start else None,
            "end": end.isoformat() if end else None,
            "document_count": summary.document_count,
            "collected_vat": str(summary.total_collected_vat),
            "deductible_vat": str(summary.total_deductible_vat),
            "vat_to_pay": str(summary.vat_to_pay),
        })
        return summary


# ---------------------------------------------------------------------------
# Financial statements
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RubricTotal:
    code: str
    label: str
    statement: Statement
    section: Section
    amount: Decimal
    accounts: tuple[str, ...] = ()


@dataclass(frozen=True)
class StatementTotals:
    """
    Bilan and CPC totals for a period.

    Guarantees:
        - Every rubric of the table appears, with a zero amount when no
          account feeds it.
        - ``result = total_produits - total_charges``.
    """

    start: date | None
    end: date | None
    balances: Mapping[str, Decimal]
    rubrics: tuple[RubricTotal, ...]
    unmapped_accounts: tuple[str, ...] = field(default_factory=tuple)

    def _section_total(self, section: Section) -> Decimal:
        return sum((r.amount for r in self.rubrics if r.section == section), ZERO)

    @property
    def total_actif(self) -> Decimal:
        return self._section_total(Section.ACTIF)

    @property
    def total_passif(self) -> Decimal:
        return self._section_total(Section.PASSIF)

    @property
    def total_produits(self) -> Decimal:
        return self._section_total(Section.PRODUITS)

    @property
    def total_charges(self) -> Decimal:
        return self._section_total(Section.CHARGES)

    @property
    def result(self) -> Decimal:
        return self.total_produits - self.total_charges

    @property
    def is_balanced(self) -> bool:
        """Actif equals passif plus the period result."""
        return abs(self.total_actif - (self.total_passif + self.result)) < TOLERANCE

    def rubric(self, code: str) -> RubricTotal | None:
        for total in self.rubrics:
            if total.code == code:
                return total
        return None

    def by_statement(self, statement: Statement) -> list[RubricTotal]:
        return [r for r in self.rubrics if r.statement == statement]


def account_balances(
    lines: Iterable[LedgerLine],
    start: date | None = None,
    end: date | None = None,
) -> dict[str, Decimal]:
    """Debit minus credit per account over the period."""
    balances: dict[str, Decimal] = {}
    for line in lines:
        if not _in_period(line.date, start, end):
            continue
        delta = round_amount(to_decimal(line.debit)) - round_amount(to_decimal(line.credit))
        balances[line.account_id] = balances.get(line.account_id, ZERO) + delta
    return balances


def _rubric_amount(rubric: Rubric, balance: Decimal) -> Decimal:
    amount = balance if rubric.section.is_debit_side else -balance
    return amount * rubric.sign


class StatementAggregator:
    """
    Folds ledger lines into CGNC rubric totals.

    ``accounts`` maps account ids to their ``AccountInfo`` when ids differ
    from CGNC numbers; otherwise the id is read as the number.
    """

    def __init__(
        self,
        rubrics: tuple[Rubric, ...] = RUBRICS,
        accounts: Iterable[AccountInfo] | None = None,
    ):
        self._rubrics = rubrics
        self._numbers = {a.id: a.number for a in accounts} if accounts else {}

    @traced_engine("statement_aggregator", "1.0")
    def aggregate(
        self,
        lines: Iterable[LedgerLine],
        start: date | None = None,
        end: date | None = None,
    ) -> StatementTotals:
        _check_period(start, end)
        balances = account_balances(lines, start, end)

        amounts: dict[str, Decimal] = {r.code: ZERO for r in self._rubrics}
        members: dict[str, list[str]] = {r.code: [] for r in self._rubrics}
        unmapped: list[str] = []
        for account_id in sorted(balances):
            number = self._numbers.get(account_id, account_id)
            matched = [r for r in self._rubrics if r.matches(number)]
            if not matched:
                unmapped.append(account_id)
                continue
            for rubric in matched:
                amounts[rubric.code] += _rubric_amount(rubric, balances[account_id])
                members[rubric.code].append(account_id)

        totals = StatementTotals(
            start=start,
            end=end,
            balances=balances,
            rubrics=tuple(
                RubricTotal(
                    code=r.code,
                    label=r.label,
                    statement=r.statement,
                    section=r.section,
                    amount=amounts[r.code],
                    accounts=tuple(members[r.code]),
                )
                for r in self._rubrics
            ),
            unmapped_accounts=tuple(unmapped),
        )
        if unmapped:
            logger.warning("statement_unmapped_accounts", extra={
                "accounts": unmapped,
            })
        logger.info("statement_aggregated", extra={
            "account_count": len(balances),
            "total_actif": str(totals.total_actif),
            "total_passif": str(totals.total_passif),
            "result": str(totals.result),
        })
        return totals
