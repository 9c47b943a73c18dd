"""
ORM-level append-only enforcement for the general ledger.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners registered here inspect the target and raise
ImmutabilityViolationError, which aborts the flush:

    session.flush()
         |
         v
    [before_update] --> _check_*() --> ImmutabilityViolationError
    [before_delete] --> _check_*() ------^
         |
         v
    SQL sent to database (only if checks pass)

Entity               | Rule
---------------------|--------------------------------------------------------
LedgerLineModel      | never updated, never deleted
ReconciliationRecord | inserted or deleted, never updated
Account              | number/account_type frozen once ledger lines use it

Usage:

    from mizan_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

    # TESTS ONLY
    unregister_immutability_listeners()
"""

from sqlalchemy import event, select, func

from mizan_kernel.exceptions import ImmutabilityViolationError
from mizan_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

ACCOUNT_STRUCTURAL_FIELDS = frozenset({"number", "account_type"})


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _check_ledger_line_update(mapper, connection, target):
    _blocked(
        "LedgerLine",
        str(target.id),
        "UPDATE",
        "Ledger lines are append-only; post an offsetting piece instead",
    )


def _check_ledger_line_delete(mapper, connection, target):
    _blocked(
        "LedgerLine",
        str(target.id),
        "DELETE",
        "Ledger lines are append-only; post an offsetting piece instead",
    )


def _check_reconciliation_record_update(mapper, connection, target):
    _blocked(
        "ReconciliationRecord",
        target.bank_id,
        "UPDATE",
        "Reconciliation records are removed by undo, never edited",
    )


def _account_has_ledger_lines(connection, account_id: str) -> bool:
    from mizan_kernel.models.ledger import LedgerLineModel

    count = connection.execute(
        select(func.count())
        .select_from(LedgerLineModel)
        .where(LedgerLineModel.account_id == account_id)
    ).scalar()
    return bool(count)


def _check_account_structural_immutability(mapper, connection, target):
    """Refuse number/type changes on accounts already used by the ledger."""
    from sqlalchemy.orm.attributes import get_history

    changed = sorted(
        name
        for name in ACCOUNT_STRUCTURAL_FIELDS
        if get_history(target, name).has_changes()
    )
    if not changed:
        return

    if _account_has_ledger_lines(connection, target.id):
        _blocked(
            "Account",
            target.id,
            "UPDATE",
            f"Cannot modify structural field(s) {changed} on an account "
            "referenced by ledger lines",
        )


def _check_account_delete(mapper, connection, target):
    if _account_has_ledger_lines(connection, target.id):
        _blocked(
            "Account",
            target.id,
            "DELETE",
            "Cannot delete an account referenced by ledger lines",
        )


def _listeners():
    from mizan_kernel.models.account import Account
    from mizan_kernel.models.bank import ReconciliationRecordModel
    from mizan_kernel.models.ledger import LedgerLineModel

    return (
        (LedgerLineModel, "before_update", _check_ledger_line_update),
        (LedgerLineModel, "before_delete", _check_ledger_line_delete),
        (ReconciliationRecordModel, "before_update", _check_reconciliation_record_update),
        (Account, "before_update", _check_account_structural_immutability),
        (Account, "before_delete", _check_account_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability event listeners.

    Safe to call more than once.
    """
    for target, name, fn in _listeners():
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)


def unregister_immutability_listeners():
    """
    Remove the immutability event listeners.

    WARNING: Only use this in tests that must write forbidden rows.
    """
    for target, name, fn in _listeners():
        if event.contains(target, name, fn):
            event.remove(target, name, fn)
