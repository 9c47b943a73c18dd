"""
Tests for the CSV exports (semicolon-delimited, UTF-8 with BOM).
"""

from datetime import date
from decimal import Decimal

from mizan_engines.aggregation import StatementAggregator, VatAggregator
from mizan_kernel.domain.documents import DocumentStatus
from mizan_services import export
from mizan_services.reconciliation_service import ReconciliationReportLine


def _report_line(**overrides):
    fields = dict(
        bank_id="B1",
        date=date(2024, 3, 31),
        amount=Decimal("1200.00"),
        label="VIR CLIENT",
        reference="INV-001",
        reconciled=True,
        doc_id="INV-001",
        score=Decimal("1.0"),
        manual=False,
    )
    fields.update(overrides)
    return ReconciliationReportLine(**fields)


class TestRenderCsv:

    def test_semicolons_and_crlf(self):
        text = export.render_csv(("a", "b"), [(1, "x;y")])

        assert text == 'a;b\r\n1;"x;y"\r\n'

    def test_bytes_start_with_bom(self):
        data = export.to_bytes(export.render_csv(("a",), [("Ã©",)]))

        assert data.startswith(b"\xef\xbb\xbf")
        assert data.decode("utf-8-sig") == "a\r\nÃ©\r\n"

    def test_write_csv(self, tmp_path):
        path = export.write_csv(tmp_path / "out.csv", export.render_csv(("a",), [(1,)]))

        assert path.read_bytes() == b"\xef\xbb\xbfa\r\n1\r\n"

    def test_logged_size_counts_encoded_bytes(self, tmp_path, captured_logs):
        text = export.render_csv(("libellé",), [("Café Fès درهم",)])

        path = export.write_csv(tmp_path / "accents.csv", text)

        written = [r for r in captured_logs() if r["message"] == "export_written"]
        assert written[0]["bytes"] == len(path.read_bytes())
        assert written[0]["bytes"] > len(text)


class TestReconciliationReport:

    def test_columns(self):
        text = export.reconciliation_report_csv([
            _report_line(),
            _report_line(bank_id="B2", amount=Decimal("-45"), reconciled=False,
                         doc_id=None, score=None, reference=""),
        ])

        rows = text.split("\r\n")
        assert rows[0] == ";".join(export.RECONCILIATION_HEADER)
        assert rows[1] == "B1;2024-03-31;1200.00;VIR CLIENT;INV-001;1;INV-001;1.00;0"
        assert rows[2] == "B2;2024-03-31;-45.00;VIR CLIENT;;0;;;0"

    def test_decimal_comma(self):
        text = export.reconciliation_report_csv([_report_line()], decimal_comma=True)

        assert ";1200,00;" in text
        assert ";1,00;" in text


class TestVatAndStatements:

    def test_vat_summary_rows(self, make_document, make_line):
        invoice = make_document(
            lines=[make_line(qty="10", unit_price="100", vat_rate="20")],
            status=DocumentStatus.POSTED,
        )
        summary = VatAggregator().summarize([invoice], previous_credit=Decimal("50"))

        rows = export.vat_summary_csv(summary).split("\r\n")

        assert rows[0] == "section;rate;base;vat"
        assert rows[1] == "collected;20.00;1000.00;200.00"
        assert "net_vat;;;200.00" in rows
        assert "vat_to_pay;;;150.00" in rows
        assert "new_credit;;;0.00" in rows

    def test_statement_totals_rows(self):
        text = export.statement_csv(StatementAggregator().aggregate([]))

        rows = text.split("\r\n")
        assert rows[0] == ";".join(export.STATEMENT_HEADER)
        assert "BL;actif;TOTAL;Total actif;0.00" in rows
        assert "CPC;;RESULT;Resultat net;0.00" in rows
