"""
Bank statement import.

Validates already-parsed statement rows and stores them as bank
transactions in one all-or-nothing batch.  ``read_statement_csv`` turns a
semicolon-delimited bank export into such rows.

Row contract::

    {"date": "2024-03-05", "amount": "-1 250,00", "label": "...", "reference": "..."}

``date`` is ISO-8601, ``amount`` is signed (decimal comma or dot, with
thousands separators; ambiguous forms are refused),
``reference`` and ``id`` are optional and any other key is ignored.  The
first invalid row rejects the batch with ``InvalidImportRowError(index,
reason)`` and nothing is written.
"""

from __future__ import annotations

import csv
import hashlib
import io
import re
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, TextIO

from mizan_kernel.domain.bank import BankTransaction
from mizan_kernel.domain.values import ZERO, round_amount
from mizan_kernel.exceptions import InvalidImportRowError
from mizan_kernel.logging_config import get_logger
from mizan_kernel.services.document_store import DocumentStore

logger = get_logger("services.bank_import")

REQUIRED_FIELDS = ("date", "amount", "label")


def parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        return datetime.fromisoformat(text).date()


def _thousands_pattern(separator: str) -> re.Pattern[str]:
    return re.compile(rf"[+-]?\d{{1,3}}(?:{re.escape(separator)}\d{{3}})+")


def _normalise_amount(text: str) -> str:
    """
    Rewrite a localised amount with a dot as the only decimal mark.

    With both separators present the last one is the decimal mark and the
    other groups thousands ("1.234,56", "1,234.56").  A lone comma is a
    decimal comma.  Several commas or several dots are thousands groups.
    Anything else (two decimal marks, badly grouped thousands) is refused.
    """
    commas, dots = text.count(","), text.count(".")
    if commas and dots:
        decimal_mark = "," if text.rfind(",") > text.rfind(".") else "."
        thousands = "." if decimal_mark == "," else ","
    elif commas > 1 or dots > 1:
        decimal_mark, thousands = "", "," if commas else "."
    else:
        decimal_mark, thousands = "," if commas else ".", ""

    if decimal_mark:
        if text.count(decimal_mark) > 1:
            raise ValueError(f"ambiguous amount {text!r}")
        integer, _, fraction = text.partition(decimal_mark)
    else:
        integer, fraction = text, ""

    if thousands:
        if not _thousands_pattern(thousands).fullmatch(integer):
            raise ValueError(f"ambiguous amount {text!r}")
        integer = integer.replace(thousands, "")
    return f"{integer}.{fraction}" if fraction else integer


def parse_amount(value: Any) -> Decimal:
    """Read a signed amount; "1 234,56", "1.234,56" and "1,234.56" are accepted."""
    if isinstance(value, str):
        text = value.strip().replace("\u00a0", "").replace(" ", "")
        value = _normalise_amount(text)
    return round_amount(value)


def _row_id(index: int, txn_date: date, amount: Decimal, label: str, reference: str) -> str:
    """Stable id, so importing the same file twice is caught as a duplicate."""
    canonical = f"{index}|{txn_date.isoformat()}|{amount}|{label}|{reference}"
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:12]
    return f"BNK-{txn_date:%Y%m%d}-{digest}"


def parse_row(index: int, row: Mapping[str, Any]) -> BankTransaction:
    """Validate one row.  Raises InvalidImportRowError."""
    if not isinstance(row, Mapping):
        raise InvalidImportRowError(index, "row is not a mapping")

    for name in REQUIRED_FIELDS:
        value = row.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise InvalidImportRowError(index, f"missing {name}")

    try:
        txn_date = parse_date(row["date"])
    except (TypeError, ValueError):
        raise InvalidImportRowError(index, f"invalid date {row['date']!r}") from None

    try:
        amount = parse_amount(row["amount"])
    except ValueError:
        raise InvalidImportRowError(index, f"invalid amount {row['amount']!r}") from None
    if amount == ZERO:
        raise InvalidImportRowError(index, "amount is zero")

    label = str(row["label"]).strip()
    reference = str(row.get("reference") or "").strip()
    txn_id = str(row.get("id") or "").strip() or _row_id(
        index, txn_date, amount, label, reference
    )

    return BankTransaction(
        id=txn_id,
        date=txn_date,
        amount=amount,
        label=label,
        reference=reference,
    )


def parse_rows(rows: Iterable[Mapping[str, Any]]) -> list[BankTransaction]:
    return [parse_row(index, row) for index, row in enumerate(rows)]


def read_statement_csv(
    source: str | Path | TextIO,
    delimiter: str = ";",
) -> list[dict[str, str]]:
    """
    Read a bank export with a header row.  Header names are lower-cased and
    stripped; a UTF-8 BOM is tolerated.
    """
    if isinstance(source, (str, Path)):
        with Path(source).open("r", encoding="utf-8-sig", newline="") as f:
            return _read_rows(f, delimiter)
    return _read_rows(source, delimiter)


def _read_rows(f: TextIO, delimiter: str) -> list[dict[str, str]]:
    text = f.read()
    if text.startswith("\ufeff"):
        text = text[1:]
    reader = csv.DictReader(io.StringIO(text), delimiter=delimiter)
    rows = []
    for raw in reader:
        rows.append({
            (key or "").strip().lower(): (value or "").strip()
            for key, value in raw.items()
            if key is not None
        })
    return rows


class BankStatementImporter:
    """Stores a validated statement batch through the Document Store."""

    def __init__(self, store: DocumentStore):
        self._store = store

    def import_rows(self, rows: Iterable[Mapping[str, Any]]) -> list[BankTransaction]:
        rows = list(rows)
        try:
            stored = self._store.add_bank_transactions(parse_rows(rows))
        except InvalidImportRowError as exc:
            logger.warning("bank_import_rejected", extra={
                "row_index": exc.index,
                "reason": exc.reason,
                "row_count": len(rows),
            })
            raise
        logger.info("bank_import_completed", extra={
            "row_count": len(stored),
            "inflow_count": sum(1 for t in stored if t.is_inflow),
        })
        return stored

    def import_csv(
        self, source: str | Path | TextIO, delimiter: str = ";"
    ) -> list[BankTransaction]:
        return self.import_rows(read_statement_csv(source, delimiter=delimiter))
