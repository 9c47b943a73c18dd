"""
Tests for the posting engine (pure piece construction).

Covers:
- Invoice, credit note and purchase pieces
- Payment pieces per document type and payment mode
- Cash-basis VAT recognition piece
- Residual last line, zero-line omission, balance by construction
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from mizan_config.schema import AccountMapping, JournalCodes, VatRegime
from mizan_engines.posting import PostingEngine, payment_piece_id, vat_piece_id, vat_share
from mizan_kernel.domain.documents import DocumentType, PaymentMode
from mizan_kernel.exceptions import AccountMappingError


@pytest.fixture
def engine():
    return PostingEngine(AccountMapping(), JournalCodes())


@pytest.fixture
def cash_engine():
    return PostingEngine(AccountMapping(), JournalCodes(), VatRegime.CASH)


def _legs(plan):
    return [(line.account_id, line.debit, line.credit) for line in plan.lines]


class TestInvoiceEntry:

    def test_reference_invoice_gives_three_lines(self, engine, make_document, make_line):
        doc = make_document(lines=[make_line(qty="10", unit_price="100", vat_rate="20")])

        plan = engine.document_entry(doc)

        assert plan.piece_id == "INV-001"
        assert plan.journal == "VEN"
        assert _legs(plan) == [
            ("3421", Decimal("1200.00"), Decimal("0.00")),
            ("7111", Decimal("0.00"), Decimal("1000.00")),
            ("44551", Decimal("0.00"), Decimal("200.00")),
        ]
        assert [line.line_no for line in plan.lines] == [0, 1, 2]

    def test_seven_percent_on_awkward_amount_balances_exactly(self, engine, make_document, make_line):
        doc = make_document(lines=[make_line(qty="1", unit_price="233.33", vat_rate="7")])

        plan = engine.document_entry(doc)

        assert plan.total_debit == plan.total_credit == Decimal("249.66")
        assert _legs(plan)[2] == ("44551", Decimal("0.00"), Decimal("16.33"))

    def test_many_lines_balance_exactly(self, engine, make_document, make_line):
        lines = [
            make_line(qty="3", unit_price="19.99", vat_rate="20", discount_pct="7.5"),
            make_line(qty="7", unit_price="0.333", vat_rate="14"),
            make_line(qty="1", unit_price="1000.005", vat_rate="10"),
            make_line(qty="2", unit_price="12.345", vat_rate="7"),
        ]
        plan = engine.document_entry(make_document(lines=lines))

        assert plan.total_debit == plan.total_credit
        assert plan.total_debit == make_document(lines=lines).totals.ttc

    def test_zero_vat_invoice_omits_vat_line(self, engine, make_document, make_line):
        doc = make_document(lines=[make_line(qty="2", unit_price="50", vat_rate="0")])

        plan = engine.document_entry(doc)

        assert [line.account_id for line in plan.lines] == ["3421", "7111"]

    def test_revenue_grouped_per_line_account(self, engine, make_document, make_line):
        doc = make_document(lines=[
            make_line(qty="1", unit_price="100", vat_rate="20"),
            make_line(qty="1", unit_price="50", vat_rate="20", account_id="7121"),
            make_line(qty="1", unit_price="25", vat_rate="20"),
        ])

        plan = engine.document_entry(doc)

        revenue = {line.account_id: line.credit for line in plan.lines if line.account_id.startswith("7")}
        assert revenue == {"7111": Decimal("125.00"), "7121": Decimal("50.00")}

    def test_cash_basis_uses_pending_vat_account(self, cash_engine, make_document, make_line):
        doc = make_document(lines=[make_line(qty="10", unit_price="100", vat_rate="20")])

        plan = cash_engine.document_entry(doc)

        assert plan.lines[-1].account_id == "44558"
        assert plan.lines[-1].credit == Decimal("200.00")

    def test_lines_carry_source_and_actor(self, engine, make_document):
        plan = engine.document_entry(make_document(), created_by="amina")

        assert {line.source_document_id for line in plan.lines} == {"INV-001"}
        assert {line.created_by for line in plan.lines} == {"amina"}
        assert {line.date for line in plan.lines} == {date(2024, 3, 1)}


class TestCreditNoteEntry:

    def test_mirror_of_invoice_with_absolute_amounts(self, engine, make_document, make_line):
        doc = make_document(
            doc_id="AV-001",
            doc_type=DocumentType.CREDIT_NOTE,
            lines=[make_line(qty="-10", unit_price="100", vat_rate="20")],
            origin_id="INV-001",
        )

        plan = engine.document_entry(doc)

        assert _legs(plan) == [
            ("7111", Decimal("1000.00"), Decimal("0.00")),
            ("44551", Decimal("200.00"), Decimal("0.00")),
            ("3421", Decimal("0.00"), Decimal("1200.00")),
        ]

    def test_credit_note_mirrors_pending_vat_on_cash_basis(self, cash_engine, make_document, make_line):
        doc = make_document(
            doc_id="AV-001",
            doc_type=DocumentType.CREDIT_NOTE,
            lines=[make_line(qty="1", unit_price="-233.33", vat_rate="7")],
        )

        plan = cash_engine.document_entry(doc)

        assert plan.lines[1].account_id == "44558"
        assert plan.total_debit == plan.total_credit == Decimal("249.66")


class TestPurchaseEntry:

    def test_purchase_piece(self, engine, make_document, make_line):
        doc = make_document(
            doc_id="ACH-001",
            doc_type=DocumentType.PURCHASE,
            party_id="SUP-01",
            lines=[make_line(qty="4", unit_price="250", vat_rate="20")],
        )

        plan = engine.document_entry(doc)

        assert plan.journal == "ACH"
        assert _legs(plan) == [
            ("6111", Decimal("1000.00"), Decimal("0.00")),
            ("34552", Decimal("200.00"), Decimal("0.00")),
            ("4411", Decimal("0.00"), Decimal("1200.00")),
        ]


class TestPaymentEntries:

    def test_invoice_transfer_payment(self, engine, make_document, make_payment):
        doc = make_document()
        plans = engine.payment_entries(doc, make_payment(amount="60.00"))

        assert len(plans) == 1
        plan = plans[0]
        assert plan.piece_id == payment_piece_id("INV-001", "P1") == "INV-001-PAY-P1"
        assert plan.journal == "BNK"
        assert _legs(plan) == [
            ("5141", Decimal("60.00"), Decimal("0.00")),
            ("3421", Decimal("0.00"), Decimal("60.00")),
        ]

    @pytest.mark.parametrize("mode,account,journal", [
        (PaymentMode.CASH, "5161", "CAI"),
        (PaymentMode.CHEQUE, "5111", "BNK"),
        (PaymentMode.CARD, "5141", "BNK"),
        (PaymentMode.DIRECT_DEBIT, "5141", "BNK"),
    ])
    def test_treasury_account_follows_mode(self, engine, make_document, make_payment, mode, account, journal):
        plan = engine.payment_entries(make_document(), make_payment(amount="10.00", mode=mode))[0]

        assert plan.lines[0].account_id == account
        assert plan.journal == journal

    def test_purchase_payment(self, engine, make_document, make_payment):
        doc = make_document(doc_id="ACH-001", doc_type=DocumentType.PURCHASE)

        plan = engine.payment_entries(doc, make_payment(amount="120.00"))[0]

        assert _legs(plan) == [
            ("4411", Decimal("120.00"), Decimal("0.00")),
            ("5141", Decimal("0.00"), Decimal("120.00")),
        ]

    def test_credit_note_refund(self, engine, make_document, make_line, make_payment):
        doc = make_document(
            doc_id="AV-001",
            doc_type=DocumentType.CREDIT_NOTE,
            lines=[make_line(qty="-1", unit_price="100")],
        )

        plan = engine.payment_entries(doc, make_payment(amount="-120.00"))[0]

        assert _legs(plan) == [
            ("3421", Decimal("120.00"), Decimal("0.00")),
            ("5141", Decimal("0.00"), Decimal("120.00")),
        ]

    def test_accrual_payment_has_no_vat_piece(self, engine, make_document, make_payment):
        assert len(engine.payment_entries(make_document(), make_payment(amount="50.00"))) == 1

    def test_cash_basis_adds_vat_piece(self, cash_engine, make_document, make_line, make_payment):
        doc = make_document(lines=[make_line(qty="10", unit_price="100", vat_rate="20")])

        plans = cash_engine.payment_entries(doc, make_payment(amount="500.00"))

        assert [p.piece_id for p in plans] == ["INV-001-PAY-P1", vat_piece_id("INV-001", "P1")]
        assert _legs(plans[1]) == [
            ("44558", Decimal("83.33"), Decimal("0.00")),
            ("44551", Decimal("0.00"), Decimal("83.33")),
        ]

    def test_cash_basis_refund_moves_vat_back_to_pending(self, cash_engine, make_document, make_line, make_payment):
        doc = make_document(
            doc_id="AV-001",
            doc_type=DocumentType.CREDIT_NOTE,
            lines=[make_line(qty="-10", unit_price="100", vat_rate="20")],
        )

        plans = cash_engine.payment_entries(doc, make_payment(amount="-600.00"))

        assert [p.piece_id for p in plans] == ["AV-001-PAY-P1", vat_piece_id("AV-001", "P1")]
        assert _legs(plans[1]) == [
            ("44551", Decimal("100.00"), Decimal("0.00")),
            ("44558", Decimal("0.00"), Decimal("100.00")),
        ]

    def test_cash_basis_skips_vat_piece_on_zero_rate(self, cash_engine, make_document, make_line, make_payment):
        doc = make_document(lines=[make_line(qty="1", unit_price="100", vat_rate="0")])

        assert len(cash_engine.payment_entries(doc, make_payment(amount="40.00"))) == 1

    def test_zero_payment_rejected(self, engine, make_document, make_payment):
        with pytest.raises(ValueError):
            engine.payment_entries(make_document(), make_payment(amount="0"))


class TestVatShare:

    def test_pro_rata(self):
        assert vat_share(Decimal("500"), Decimal("200"), Decimal("1200")) == Decimal("83.33")

    def test_full_payment_gives_full_vat(self):
        assert vat_share(Decimal("1200"), Decimal("200"), Decimal("1200")) == Decimal("200.00")

    def test_zero_total(self):
        assert vat_share(Decimal("10"), Decimal("0"), Decimal("0")) == Decimal("0.00")


class TestConfiguration:

    def test_missing_account_role_rejected(self):
        with pytest.raises(AccountMappingError) as exc_info:
            PostingEngine(replace(AccountMapping(), receivable=""), JournalCodes())

        assert exc_info.value.role == "receivable"
