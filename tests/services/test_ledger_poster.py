"""
Tests for LedgerPoster.

Covers:
- Reference scenario (10 x 100 at 20%, then a 500.00 payment)
- Balance per piece for awkward VAT amounts
- Idempotency of document and payment posting
- State gating and validator gating
- Cash-basis VAT recognition
- Reversal pieces
- Closed fiscal periods
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from mizan_config.schema import AccountMapping
from mizan_kernel.domain.documents import DocumentStatus, DocumentType, PaymentMode
from mizan_kernel.exceptions import (
    AlreadyPostedError,
    ClosedPeriodError,
    EntryRejectedError,
    InvalidDocumentStateError,
    NotFoundError,
    PaymentNotFoundError,
    PeriodNotFoundError,
)
from mizan_services.ledger_poster import LedgerPoster


def _piece_totals(lines):
    return (
        sum((line.debit for line in lines), Decimal("0")),
        sum((line.credit for line in lines), Decimal("0")),
    )


@pytest.fixture
def confirmed_invoice(store, make_document, make_line):
    store.save_document(make_document(lines=[make_line(qty="10", unit_price="100", vat_rate="20")]))
    return store.confirm_document("INV-001")


class TestReferenceScenario:

    def test_invoice_then_partial_payment(self, store, poster, confirmed_invoice, make_payment):
        lines = poster.post("INV-001", created_by="amina")

        assert [(l.account_id, l.debit, l.credit) for l in lines] == [
            ("3421", Decimal("1200.00"), Decimal("0.00")),
            ("7111", Decimal("0.00"), Decimal("1000.00")),
            ("44551", Decimal("0.00"), Decimal("200.00")),
        ]
        assert all(l.id is not None for l in lines)
        assert store.get_document("INV-001").status == DocumentStatus.POSTED

        store.add_payment("INV-001", make_payment(amount="500.00"))
        pay_lines = poster.post_payment("INV-001", "P1", created_by="amina")

        assert [(l.account_id, l.debit, l.credit) for l in pay_lines] == [
            ("5141", Decimal("500.00"), Decimal("0.00")),
            ("3421", Decimal("0.00"), Decimal("500.00")),
        ]
        assert store.get_document("INV-001").outstanding == Decimal("700.00")
        assert store.get_document("INV-001").get_payment("P1").posted is True


class TestBalance:

    @pytest.mark.parametrize("unit_price,rate", [
        ("233.33", "7"),
        ("0.01", "20"),
        ("1999.995", "14"),
        ("33.333", "10"),
    ])
    def test_piece_balances_exactly(self, store, poster, make_document, make_line, unit_price, rate):
        store.save_document(make_document(
            lines=[make_line(qty="3", unit_price=unit_price, vat_rate=rate),
                   make_line(qty="1", unit_price=unit_price, vat_rate="20")],
            status=DocumentStatus.CONFIRMED,
        ))

        poster.post("INV-001")

        debit, credit = _piece_totals(store.list_ledger_lines(piece_id="INV-001"))
        assert debit == credit

    def test_seven_percent_on_233_33(self, store, poster, make_document, make_line):
        store.save_document(make_document(
            lines=[make_line(qty="1", unit_price="233.33", vat_rate="7")],
            status=DocumentStatus.CONFIRMED,
        ))

        lines = poster.post("INV-001")

        assert _piece_totals(lines) == (Decimal("249.66"), Decimal("249.66"))


class TestIdempotency:

    def test_second_post_raises_and_writes_nothing(self, store, poster, confirmed_invoice):
        poster.post("INV-001")
        count = len(store.list_ledger_lines())

        with pytest.raises(AlreadyPostedError):
            poster.post("INV-001")

        assert len(store.list_ledger_lines()) == count == 3

    def test_second_payment_post_raises(self, store, poster, confirmed_invoice, make_payment):
        poster.post("INV-001")
        store.add_payment("INV-001", make_payment(amount="100.00"))
        poster.post_payment("INV-001", "P1")

        with pytest.raises(AlreadyPostedError) as exc_info:
            poster.post_payment("INV-001", "P1")

        assert exc_info.value.piece_id == "INV-001-PAY-P1"
        assert len(store.list_ledger_lines(piece_id="INV-001-PAY-P1")) == 2

    def test_already_posted_logged(self, poster, confirmed_invoice, captured_logs):
        poster.post("INV-001")
        with pytest.raises(AlreadyPostedError):
            poster.post("INV-001")

        messages = [r["message"] for r in captured_logs()]
        assert "document_posted" in messages
        assert "document_already_posted" in messages


class TestStateGating:

    def test_draft_cannot_be_posted(self, store, poster, make_document):
        store.save_document(make_document())

        with pytest.raises(InvalidDocumentStateError):
            poster.post("INV-001")

        assert store.list_ledger_lines() == []

    def test_payment_on_unposted_document_rejected(self, store, poster, confirmed_invoice, make_payment):
        store.add_payment("INV-001", make_payment(amount="100.00"))

        with pytest.raises(InvalidDocumentStateError):
            poster.post_payment("INV-001", "P1")

    def test_unknown_payment(self, poster, confirmed_invoice):
        poster.post("INV-001")

        with pytest.raises(PaymentNotFoundError):
            poster.post_payment("INV-001", "NOPE")


class TestValidatorGate:

    def test_rejected_entry_writes_nothing(self, store, make_document, make_line, config):
        bad = replace(config, accounts=replace(AccountMapping(), revenue="711"))
        poster = LedgerPoster(store, bad)
        store.save_document(make_document(status=DocumentStatus.CONFIRMED))

        with pytest.raises(EntryRejectedError) as exc_info:
            poster.post("INV-001")

        assert [i["code"] for i in exc_info.value.issues] == ["UNKNOWN_ACCOUNT"]
        assert store.list_ledger_lines() == []
        assert store.get_document("INV-001").status == DocumentStatus.CONFIRMED

    def test_header_account_on_line_rejected(self, store, poster, make_document, make_line):
        store.save_document(make_document(
            lines=[make_line(account_id="342")],
            status=DocumentStatus.CONFIRMED,
        ))

        with pytest.raises(EntryRejectedError) as exc_info:
            poster.post("INV-001")

        assert exc_info.value.issues[0]["code"] == "NOT_POSTABLE"


class TestCashBasis:

    def test_payment_recognises_vat_share(self, store, cash_config, confirmed_invoice, make_payment):
        poster = LedgerPoster(store, cash_config)
        lines = poster.post("INV-001")
        assert lines[-1].account_id == "44558"

        store.add_payment("INV-001", make_payment(amount="500.00", mode=PaymentMode.CASH))
        written = poster.post_payment("INV-001", "P1")

        assert {l.piece_id for l in written} == {"INV-001-PAY-P1", "INV-001-VAT-P1"}
        vat_lines = store.list_ledger_lines(piece_id="INV-001-VAT-P1")
        assert [(l.account_id, l.debit, l.credit) for l in vat_lines] == [
            ("44558", Decimal("83.33"), Decimal("0.00")),
            ("44551", Decimal("0.00"), Decimal("83.33")),
        ]
        assert {l.journal for l in written} == {"CAI"}

    @staticmethod
    def _vat_balances(store):
        balances = {"44551": Decimal("0"), "44558": Decimal("0")}
        for line in store.list_ledger_lines():
            if line.account_id in balances:
                balances[line.account_id] += line.debit - line.credit
        return balances

    def _full_credit_note(self, store, make_document, make_line):
        store.save_document(make_document(
            doc_id="AV-1",
            doc_type=DocumentType.CREDIT_NOTE,
            lines=[make_line(qty="-10", unit_price="100", vat_rate="20")],
            status=DocumentStatus.CONFIRMED,
            origin_id="INV-001",
        ))

    def test_unpaid_invoice_fully_credited_leaves_no_vat(
        self, store, cash_config, confirmed_invoice, make_document, make_line
    ):
        poster = LedgerPoster(store, cash_config)
        poster.post("INV-001")
        self._full_credit_note(store, make_document, make_line)

        lines = poster.post("AV-1")

        assert [l.account_id for l in lines] == ["7111", "44558", "3421"]
        assert self._vat_balances(store) == {"44551": Decimal("0.00"), "44558": Decimal("0.00")}

    def test_paid_invoice_refunded_leaves_no_vat(
        self, store, cash_config, confirmed_invoice, make_document, make_line, make_payment
    ):
        poster = LedgerPoster(store, cash_config)
        poster.post("INV-001")
        store.add_payment("INV-001", make_payment(amount="1200.00"))
        poster.post_payment("INV-001", "P1")
        self._full_credit_note(store, make_document, make_line)
        poster.post("AV-1")
        store.add_payment("AV-1", make_payment(payment_id="R1", amount="-1200.00"))

        written = poster.post_payment("AV-1", "R1")

        assert {l.piece_id for l in written} == {"AV-1-PAY-R1", "AV-1-VAT-R1"}
        assert self._vat_balances(store) == {"44551": Decimal("0.00"), "44558": Decimal("0.00")}


class TestPurchasesAndCreditNotes:

    def test_purchase_and_supplier_payment(self, store, poster, make_document, make_line, make_payment):
        store.save_document(make_document(
            doc_id="ACH-1",
            doc_type=DocumentType.PURCHASE,
            party_id="SUP-1",
            lines=[make_line(qty="2", unit_price="150", vat_rate="20")],
            status=DocumentStatus.CONFIRMED,
        ))
        poster.post("ACH-1")
        store.add_payment("ACH-1", make_payment(amount="360.00", mode=PaymentMode.CHEQUE))

        lines = poster.post_payment("ACH-1", "P1")

        assert [(l.account_id, l.debit, l.credit) for l in lines] == [
            ("4411", Decimal("360.00"), Decimal("0.00")),
            ("5111", Decimal("0.00"), Decimal("360.00")),
        ]

    def test_credit_note_posting(self, store, poster, make_document, make_line):
        store.save_document(make_document(
            doc_id="AV-1",
            doc_type=DocumentType.CREDIT_NOTE,
            lines=[make_line(qty="-1", unit_price="233.33", vat_rate="7")],
            status=DocumentStatus.CONFIRMED,
        ))

        lines = poster.post("AV-1")

        assert [l.account_id for l in lines] == ["7111", "44551", "3421"]
        assert _piece_totals(lines) == (Decimal("249.66"), Decimal("249.66"))


class TestReversal:

    def test_reversal_offsets_original(self, store, poster, confirmed_invoice):
        poster.post("INV-001")

        reversal = poster.reverse("INV-001", date(2024, 4, 1), created_by="amina")

        assert {l.piece_id for l in reversal} == {"INV-001-REV"}
        original = store.list_ledger_lines(piece_id="INV-001")
        assert [(l.account_id, l.debit, l.credit) for l in reversal] == [
            (l.account_id, l.credit, l.debit) for l in original
        ]
        assert len(store.list_ledger_lines()) == 6

    def test_reversal_only_once(self, poster, confirmed_invoice):
        poster.post("INV-001")
        poster.reverse("INV-001", date(2024, 4, 1))

        with pytest.raises(AlreadyPostedError):
            poster.reverse("INV-001", date(2024, 4, 2))

    def test_unknown_piece(self, poster):
        with pytest.raises(NotFoundError):
            poster.reverse("NOPE", date(2024, 4, 1))


class TestFiscalPeriods:

    @pytest.fixture
    def q1(self, periods):
        periods.create_period("2024-Q1", "T1 2024", date(2024, 1, 1), date(2024, 3, 31))
        periods.create_period("2024-Q2", "T2 2024", date(2024, 4, 1), date(2024, 6, 30))

    def test_closed_period_rejects_document(self, store, poster, periods, q1, confirmed_invoice):
        periods.close_period("2024-Q1")

        with pytest.raises(ClosedPeriodError) as exc_info:
            poster.post("INV-001")

        assert exc_info.value.posting_date == "2024-03-01"
        assert store.list_ledger_lines() == []
        assert store.get_document("INV-001").status == DocumentStatus.CONFIRMED

    def test_closed_period_rejects_payment(self, store, poster, periods, q1, confirmed_invoice, make_payment):
        poster.post("INV-001")
        store.add_payment("INV-001", make_payment(amount="500.00"))
        periods.close_period("2024-Q1")

        with pytest.raises(ClosedPeriodError):
            poster.post_payment("INV-001", "P1")

        assert not store.has_piece("INV-001-PAY-P1")
        assert store.get_document("INV-001").get_payment("P1").posted is False

    def test_reversal_dated_in_open_period(self, store, poster, periods, q1, confirmed_invoice):
        poster.post("INV-001")
        periods.close_period("2024-Q1")

        with pytest.raises(ClosedPeriodError):
            poster.reverse("INV-001", date(2024, 3, 31))
        assert not store.has_piece("INV-001-REV")

        written = poster.reverse("INV-001", date(2024, 4, 2))
        assert {l.piece_id for l in written} == {"INV-001-REV"}

    def test_date_outside_periods_rejected(self, store, poster, periods, confirmed_invoice):
        periods.create_period("2024-Q2", "T2 2024", date(2024, 4, 1), date(2024, 6, 30))

        with pytest.raises(PeriodNotFoundError):
            poster.post("INV-001")

        assert store.list_ledger_lines() == []

    def test_reopened_period_accepts(self, store, poster, periods, q1, confirmed_invoice):
        periods.close_period("2024-Q1")
        periods.reopen_period("2024-Q1")

        assert len(poster.post("INV-001")) == 3
