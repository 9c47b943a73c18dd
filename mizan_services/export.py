"""
CSV exports for the reconciliation report, the VAT summary and the
financial statement rubrics.

Files are semicolon-delimited UTF-8 with a byte order mark so spreadsheet
tools open them with the right encoding.  Amounts are written with two
decimals; ``decimal_comma=True`` swaps the decimal point for a comma.
"""

from __future__ import annotations

import csv
import io
from collections.abc import Iterable, Sequence
from decimal import Decimal
from pathlib import Path
from typing import Any

from mizan_engines.aggregation import StatementTotals, VatSummary
from mizan_kernel.domain.values import round_amount
from mizan_kernel.logging_config import get_logger
from mizan_services.reconciliation_service import ReconciliationReportLine

logger = get_logger("services.export")

DELIMITER = ";"
ENCODING = "utf-8-sig"

RECONCILIATION_HEADER = (
    "bank_id", "date", "amount", "label", "reference",
    "reconciled", "doc_id", "score", "manual",
)
VAT_HEADER = ("section", "rate", "base", "vat")
STATEMENT_HEADER = ("statement", "section", "code", "label", "amount")


def _fmt(value: Any, decimal_comma: bool) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, Decimal):
        text = str(round_amount(value))
        return text.replace(".", ",") if decimal_comma else text
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def render_csv(
    header: Sequence[str],
    rows: Iterable[Sequence[Any]],
    decimal_comma: bool = False,
) -> str:
    """Render rows as semicolon-delimited text (no BOM)."""
    buf = io.StringIO()
    writer = csv.writer(buf, delimiter=DELIMITER, lineterminator="\r\n")
    writer.writerow(header)
    for row in rows:
        writer.writerow([_fmt(value, decimal_comma) for value in row])
    return buf.getvalue()


def to_bytes(text: str) -> bytes:
    """UTF-8 with BOM."""
    return text.encode(ENCODING)


def write_csv(path: str | Path, text: str) -> Path:
    path = Path(path)
    data = to_bytes(text)
    path.write_bytes(data)
    logger.info("export_written", extra={"path": str(path), "bytes": len(data)})
    return path


def reconciliation_report_csv(
    lines: Iterable[ReconciliationReportLine], decimal_comma: bool = False
) -> str:
    return render_csv(
        RECONCILIATION_HEADER,
        (
            (
                line.bank_id, line.date, line.amount, line.label, line.reference,
                line.reconciled, line.doc_id, line.score, line.manual,
            )
            for line in lines
        ),
        decimal_comma=decimal_comma,
    )


def vat_summary_csv(summary: VatSummary, decimal_comma: bool = False) -> str:
    rows: list[tuple[Any, ...]] = []
    for section, lines in (("collected", summary.collected), ("deductible", summary.deductible)):
        for line in lines:
            rows.append((section, line.rate, line.base, line.vat))
    rows.extend([
        ("total_collected", None, summary.total_collected_base, summary.total_collected_vat),
        ("total_deductible", None, summary.total_deductible_base, summary.total_deductible_vat),
        ("net_vat", None, None, summary.net_vat),
        ("previous_credit", None, None, summary.previous_credit),
        ("vat_to_pay", None, None, summary.vat_to_pay),
        ("new_credit", None, None, summary.new_credit),
    ])
    return render_csv(VAT_HEADER, rows, decimal_comma=decimal_comma)


def statement_csv(totals: StatementTotals, decimal_comma: bool = False) -> str:
    rows: list[tuple[Any, ...]] = [
        (r.statement.value, r.section.value, r.code, r.label, r.amount)
        for r in totals.rubrics
    ]
    rows.extend([
        ("BL", "actif", "TOTAL", "Total actif", totals.total_actif),
        ("BL", "passif", "TOTAL", "Total passif", totals.total_passif),
        ("CPC", "", "RESULT", "Resultat net", totals.result),
    ])
    return render_csv(STATEMENT_HEADER, rows, decimal_comma=decimal_comma)
