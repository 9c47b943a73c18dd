"""
PeriodService -- fiscal period lifecycle and posting-date validation.

Responsibility:
    Creates fiscal periods, drives them through open -> closed -> locked,
    and tells the Ledger Poster whether a piece may be dated on a given
    day.

Architecture position:
    Kernel > Services -- imperative shell.  Reads and writes through the
    Document Store; the caller owns the transaction.  Called by
    ``LedgerPoster`` before any ledger line is written.

Invariants enforced:
    - Period date ranges never overlap.
    - No piece is dated inside a closed or locked period.
    - Periods are opt-in: while none is defined every date is open.
      Once one exists, a date that no period covers is rejected.
    - A locked period never changes again.

Failure modes:
    - ClosedPeriodError: posting date inside a closed or locked period.
    - PeriodNotFoundError: unknown period code, or periods are in use and
      none covers the posting date.
    - PeriodAlreadyClosedError: closing a period twice.
    - PeriodOverlapError: new period intersects an existing one.
    - PeriodImmutableError: reopening or closing a locked period.
    - ValueError: start_date after end_date, or locking an open period.

Audit relevance:
    Creation, close, reopen and lock are logged with the period code and
    actor.  Rejected posting dates are logged at WARNING.
"""

from __future__ import annotations

from datetime import date

from mizan_kernel.domain.clock import Clock, SystemClock
from mizan_kernel.domain.periods import FiscalPeriodInfo, PeriodStatus
from mizan_kernel.exceptions import (
    ClosedPeriodError,
    PeriodAlreadyClosedError,
    PeriodImmutableError,
    PeriodNotFoundError,
    PeriodOverlapError,
)
from mizan_kernel.logging_config import get_logger
from mizan_kernel.services.document_store import DocumentStore

logger = get_logger("services.period")


class PeriodService:
    """
    Fiscal period lifecycle.

    Contract:
        Accepts period codes or dates and returns frozen
        ``FiscalPeriodInfo`` values.  Lifecycle methods flush within the
        caller's transaction.

    Guarantees:
        - ``validate_posting_date()`` rejects dates in closed or locked
          periods, and dates outside every period once periods exist.
        - ``closed_at`` comes from the injected clock.

    Non-goals:
        - No period-end accruals or closing entries.
        - No adjustment window inside a closed period.
    """

    def __init__(self, store: DocumentStore, clock: Clock | None = None):
        self._store = store
        self._clock = clock or SystemClock()

    def create_period(
        self,
        code: str,
        name: str,
        start_date: date,
        end_date: date,
        created_by: str = "system",
    ) -> FiscalPeriodInfo:
        if start_date > end_date:
            raise ValueError(
                f"start_date ({start_date}) cannot be after end_date ({end_date})"
            )
        if self._store.get_period(code) is not None:
            raise PeriodOverlapError(code, code)
        for existing in self._store.list_periods():
            # Inclusive ranges overlap when each starts before the other ends
            if start_date <= existing.end_date and existing.start_date <= end_date:
                raise PeriodOverlapError(code, existing.code)

        period = self._store.add_period(
            FiscalPeriodInfo(code=code, name=name, start_date=start_date, end_date=end_date),
            created_by=created_by,
        )
        logger.info(
            "period_created",
            extra={
                "period_code": code,
                "start_date": str(start_date),
                "end_date": str(end_date),
                "actor_id": created_by,
            },
        )
        return period

    def get_period(self, code: str) -> FiscalPeriodInfo:
        period = self._store.get_period(code)
        if period is None:
            raise PeriodNotFoundError(code)
        return period

    def list_periods(self) -> list[FiscalPeriodInfo]:
        return self._store.list_periods()

    def get_period_for_date(self, day: date) -> FiscalPeriodInfo:
        period = self._store.find_period_for_date(day)
        if period is None:
            raise PeriodNotFoundError(str(day))
        return period

    def close_period(self, code: str, closed_by: str = "system") -> FiscalPeriodInfo:
        """
        Close a period.  Pieces dated inside it are rejected from now on.

        Raises:
            PeriodNotFoundError: unknown code.
            PeriodImmutableError: the period is locked.
            PeriodAlreadyClosedError: the period is already closed.
        """
        period = self.get_period(code)
        if period.status == PeriodStatus.LOCKED:
            raise PeriodImmutableError(code, "close")
        if period.is_closed:
            raise PeriodAlreadyClosedError(code)

        closed = self._store.update_period_status(
            code, PeriodStatus.CLOSED, closed_at=self._clock.now(), closed_by=closed_by
        )
        logger.info("period_closed", extra={"period_code": code, "actor_id": closed_by})
        return closed

    def reopen_period(self, code: str, reopened_by: str = "system") -> FiscalPeriodInfo:
        period = self.get_period(code)
        if period.status == PeriodStatus.LOCKED:
            raise PeriodImmutableError(code, "reopen")
        if period.status == PeriodStatus.OPEN:
            return period

        reopened = self._store.update_period_status(code, PeriodStatus.OPEN)
        logger.warning("period_reopened", extra={"period_code": code, "actor_id": reopened_by})
        return reopened

    def lock_period(self, code: str, locked_by: str = "system") -> FiscalPeriodInfo:
        """Permanently lock a closed period (year end).  No reopening."""
        period = self.get_period(code)
        if period.status != PeriodStatus.CLOSED:
            raise ValueError(
                f"Period {code} must be closed to lock (current: {period.status.value})"
            )

        locked = self._store.update_period_status(
            code, PeriodStatus.LOCKED, closed_at=period.closed_at, closed_by=period.closed_by
        )
        logger.info("period_locked", extra={"period_code": code, "actor_id": locked_by})
        return locked

    def is_date_open(self, day: date) -> bool:
        try:
            self.validate_posting_date(day)
        except (ClosedPeriodError, PeriodNotFoundError):
            return False
        return True

    def validate_posting_date(self, day: date) -> None:
        """
        Raise unless a piece may be dated on ``day``.

        Raises:
            ClosedPeriodError: ``day`` falls in a closed or locked period.
            PeriodNotFoundError: periods exist but none covers ``day``.
        """
        period = self._store.find_period_for_date(day)
        if period is None:
            if not self._store.list_periods():
                return
            logger.warning("posting_date_outside_periods", extra={"posting_date": str(day)})
            raise PeriodNotFoundError(str(day))

        if period.is_closed:
            logger.warning(
                "posting_date_in_closed_period",
                extra={"period_code": period.code, "posting_date": str(day)},
            )
            raise ClosedPeriodError(period.code, str(day))
