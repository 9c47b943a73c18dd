"""
mizan_engines.validation -- Balance validator for candidate ledger lines.

Responsibility:
    Decide whether a set of candidate lines may be written to the ledger:
    every line references a known, postable account, carries exactly one
    positive side, and the set balances.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Called by the ledger poster before ``append_ledger_lines`` and usable
    by any manual-entry surface.

Invariants enforced:
    - Amounts are rounded half-up to cents before summation.
    - Checks run in a fixed order and every issue is collected:
        UNKNOWN_ACCOUNT  line references an account that does not exist
        NOT_POSTABLE     account is a header account or inactive
        MALFORMED_LINE   not exactly one nonzero side, or a negative side
        UNBALANCED       abs(sum(debit) - sum(credit)) >= 0.01
        EMPTY_ENTRY      no line at all
    - NOT_POSTABLE is not reported for lines already flagged
      UNKNOWN_ACCOUNT (there is no account to inspect).

Failure modes:
    - None raised by ``validate()``.  Issues are returned as data;
      ``ValidationResult.raise_if_invalid()`` converts them into
      ``EntryRejectedError`` for callers that want to block.

Usage:
    result = validate(candidate_lines, store.list_accounts())
    if not result.valid:
        for issue in result.issues:
            print(issue.code, issue.message)
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from mizan_engines.tracer import traced_engine
from mizan_kernel.domain.ledger import AccountInfo, LedgerLine
from mizan_kernel.domain.values import TOLERANCE, ZERO, round_amount
from mizan_kernel.exceptions import EntryRejectedError
from mizan_kernel.logging_config import get_logger

logger = get_logger("engines.validation")


class IssueCode(str, Enum):
    UNKNOWN_ACCOUNT = "UNKNOWN_ACCOUNT"
    NOT_POSTABLE = "NOT_POSTABLE"
    MALFORMED_LINE = "MALFORMED_LINE"
    UNBALANCED = "UNBALANCED"
    EMPTY_ENTRY = "EMPTY_ENTRY"


@dataclass(frozen=True)
class ValidationIssue:
    """
    One violated rule.

    ``line_index`` is the position of the offending line in the candidate
    list, or None for entry-level issues.  UNBALANCED carries the signed
    ``difference`` (debit - credit).
    """

    code: IssueCode
    message: str
    line_index: int | None = None
    account_id: str | None = None
    difference: Decimal | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.line_index is not None:
            data["line_index"] = self.line_index
        if self.account_id is not None:
            data["account_id"] = self.account_id
        if self.difference is not None:
            data["difference"] = str(self.difference)
        return data


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of ``validate()``.

    Guarantees:
        - ``valid`` is True iff ``issues`` is empty.
        - bool(result) == result.valid.
    """

    valid: bool
    issues: tuple[ValidationIssue, ...] = field(default_factory=tuple)

    @property
    def codes(self) -> list[IssueCode]:
        return [issue.code for issue in self.issues]

    def __bool__(self) -> bool:
        return self.valid

    def raise_if_invalid(self, piece_id: str | None = None) -> None:
        if not self.valid:
            raise EntryRejectedError(piece_id, [i.to_dict() for i in self.issues])


def _side(value: Any) -> Decimal | None:
    """Rounded side amount, or None when it is not a number."""
    if value is None:
        return ZERO
    try:
        return round_amount(value)
    except ValueError:
        return None


def _index_accounts(
    accounts: Iterable[AccountInfo] | Mapping[str, AccountInfo],
) -> Mapping[str, AccountInfo]:
    if isinstance(accounts, Mapping):
        return accounts
    return {account.id: account for account in accounts}


@traced_engine("balance_validator", "1.0")
def validate(
    lines: Sequence[LedgerLine],
    accounts: Iterable[AccountInfo] | Mapping[str, AccountInfo],
) -> ValidationResult:
    """Check candidate lines against the double-entry rules."""
    known = _index_accounts(accounts)
    issues: list[ValidationIssue] = []

    unknown_lines: set[int] = set()
    for i, line in enumerate(lines):
        if line.account_id not in known:
            unknown_lines.add(i)
            issues.append(ValidationIssue(
                code=IssueCode.UNKNOWN_ACCOUNT,
                message=f"Line {i}: account {line.account_id!r} does not exist",
                line_index=i,
                account_id=line.account_id,
            ))

    for i, line in enumerate(lines):
        if i in unknown_lines:
            continue
        account = known[line.account_id]
        if not account.is_postable:
            reason = "inactive" if account.is_detail_account else "not a detail account"
            issues.append(ValidationIssue(
                code=IssueCode.NOT_POSTABLE,
                message=f"Line {i}: account {line.account_id} is {reason}",
                line_index=i,
                account_id=line.account_id,
            ))

    total_debit = ZERO
    total_credit = ZERO
    for i, line in enumerate(lines):
        debit = _side(line.debit)
        credit = _side(line.credit)
        if debit is None or credit is None:
            issues.append(ValidationIssue(
                code=IssueCode.MALFORMED_LINE,
                message=f"Line {i}: amount is not a number",
                line_index=i,
                account_id=line.account_id,
            ))
            continue
        total_debit += debit
        total_credit += credit
        nonzero = (debit != ZERO) + (credit != ZERO)
        if nonzero != 1 or debit < ZERO or credit < ZERO:
            issues.append(ValidationIssue(
                code=IssueCode.MALFORMED_LINE,
                message=(
                    f"Line {i}: exactly one of debit/credit must be positive "
                    f"(debit={debit}, credit={credit})"
                ),
                line_index=i,
                account_id=line.account_id,
            ))

    difference = total_debit - total_credit
    if abs(difference) >= TOLERANCE:
        issues.append(ValidationIssue(
            code=IssueCode.UNBALANCED,
            message=(
                f"Debits {total_debit} and credits {total_credit} "
                f"differ by {difference}"
            ),
            difference=difference,
        ))

    if not lines:
        issues.append(ValidationIssue(
            code=IssueCode.EMPTY_ENTRY,
            message="Entry has no lines",
        ))

    if issues:
        logger.info("entry_validation_failed", extra={
            "line_count": len(lines),
            "issue_codes": [issue.code.value for issue in issues],
        })
    else:
        logger.debug("entry_validation_passed", extra={
            "line_count": len(lines),
            "total": str(total_debit),
        })

    return ValidationResult(valid=not issues, issues=tuple(issues))
