"""
Tests for the pure domain helpers: Decimal rounding, line and document
totals, payment status.
"""

from datetime import date
from decimal import Decimal

import pytest

from mizan_kernel.domain.documents import PaymentStatus, compute_totals, paid_ratio
from mizan_kernel.domain.values import amounts_equal, is_outstanding, round_amount, to_decimal


class TestValues:

    @pytest.mark.parametrize("value,expected", [
        ("2.345", Decimal("2.35")),
        ("-2.345", Decimal("-2.35")),
        (0.1, Decimal("0.10")),
        (3, Decimal("3.00")),
        ("16.325", Decimal("16.33")),
    ])
    def test_round_half_away_from_zero(self, value, expected):
        assert round_amount(value) == expected

    def test_float_converted_through_repr(self):
        assert to_decimal(1.1) == Decimal("1.1")

    @pytest.mark.parametrize("value", ["abc", "NaN", "Infinity", True, None])
    def test_rejects_non_numbers(self, value):
        with pytest.raises(ValueError):
            to_decimal(value)

    def test_tolerance(self):
        assert amounts_equal("10.004", "10.00")
        assert not amounts_equal("10.01", "10.00")
        assert not is_outstanding("0.01")
        assert is_outstanding("0.02")


class TestLineTotals:

    def test_discount_then_vat(self, make_line):
        totals = make_line(qty="3", unit_price="19.99", vat_rate="20", discount_pct="10").totals()

        assert (totals.ht, totals.vat, totals.ttc) == (
            Decimal("53.97"), Decimal("10.79"), Decimal("64.76"),
        )

    @pytest.mark.parametrize("discount,expected_ht", [("-5", "100.00"), ("150", "0.00")])
    def test_discount_clamped(self, make_line, discount, expected_ht):
        assert make_line(discount_pct=discount).totals().ht == Decimal(expected_ht)

    def test_negative_vat_rate_raises(self, make_line):
        with pytest.raises(ValueError, match="negative vat_rate"):
            make_line(vat_rate="-20").totals()

    def test_negative_rate_fails_document_totals(self, make_line):
        with pytest.raises(ValueError):
            compute_totals([make_line(), make_line(vat_rate="-0.01")])


class TestDocumentTotals:

    def test_document_total_is_sum_of_rounded_lines(self, make_line):
        lines = [make_line(qty="1", unit_price="0.333", vat_rate="20") for _ in range(3)]

        totals = compute_totals(lines)

        assert totals.ht == Decimal("0.99")
        assert totals.vat == Decimal("0.21")
        assert totals.ttc == Decimal("1.20")

    def test_rates_bucketed(self, make_line):
        totals = compute_totals([
            make_line(vat_rate="20"),
            make_line(vat_rate="20.00", unit_price="50"),
            make_line(vat_rate="7"),
        ])

        assert [(r.rate, r.base, r.vat) for r in totals.vat_by_rate] == [
            (Decimal("7.00"), Decimal("100.00"), Decimal("7.00")),
            (Decimal("20.00"), Decimal("150.00"), Decimal("30.00")),
        ]

    def test_payments_and_status(self, make_line, make_payment):
        lines = [make_line(qty="10")]

        assert compute_totals(lines).payment_status == PaymentStatus.UNPAID
        partial = compute_totals(lines, [make_payment(amount="500")])
        assert partial.due_left == Decimal("700.00")
        assert partial.payment_status == PaymentStatus.PARTIAL
        settled = compute_totals(lines, [make_payment(amount="1200")])
        assert settled.payment_status == PaymentStatus.PAID

    def test_document_properties(self, make_document, make_payment):
        doc = make_document(payments=[make_payment(amount="20.00", pay_date=date(2024, 3, 5))])

        assert doc.outstanding == Decimal("100.00")
        assert doc.is_sale
        assert doc.get_payment("P1").amount == Decimal("20.00")
        assert doc.get_payment("P2") is None

    def test_paid_ratio(self):
        assert paid_ratio(Decimal("300"), Decimal("1200")) == Decimal("0.25")
        assert paid_ratio(Decimal("-120"), Decimal("-120")) == Decimal("1")
        assert paid_ratio(Decimal("5"), Decimal("0")) == Decimal("0")
