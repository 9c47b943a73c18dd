"""
Tests for the bank reconciliation matcher.

Covers:
- Scoring signals and threshold
- Sign filter (inflow/invoice, outflow/purchase)
- Deterministic ordering and greedy one-to-one assignment
- Configurable weights
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from mizan_config.schema import MatchingPolicy
from mizan_engines.matching import auto_match, candidate_pairs, score_pair
from mizan_kernel.domain.documents import DocumentStatus, DocumentType


# Amount plus date is enough
LOOSE = MatchingPolicy(threshold=Decimal("0.7"))


@pytest.fixture
def invoice(make_document, make_line):
    """INV-001, 1200.00 outstanding, due 2024-03-31."""
    return make_document(
        lines=[make_line(qty="10", unit_price="100", vat_rate="20")],
        status=DocumentStatus.POSTED,
    )


class TestScoring:

    def test_all_signals(self, invoice, make_bank_txn):
        pair = score_pair(make_bank_txn(reference="Virement inv-001"), invoice)

        assert pair.amount_match and pair.reference_match and pair.date_match
        assert pair.score == Decimal("1.0")

    def test_amount_and_reference_reach_threshold(self, invoice, make_bank_txn):
        txn = make_bank_txn(txn_date=date(2024, 5, 1), reference="INV-001")

        assert score_pair(txn, invoice).score == Decimal("0.9")
        assert len(auto_match([txn], [invoice])) == 1

    def test_amount_and_date_stay_below_threshold(self, invoice, make_bank_txn):
        txn = make_bank_txn(txn_date=date(2024, 4, 5))

        pair = score_pair(txn, invoice)

        assert pair.date_diff == 5
        assert pair.score == Decimal("0.7")
        assert auto_match([txn], [invoice]) == []

    def test_amount_alone_is_not_enough(self, invoice, make_bank_txn):
        txn = make_bank_txn(txn_date=date(2024, 6, 1))

        assert auto_match([txn], [invoice]) == []

    def test_reference_and_date_without_amount_rejected(self, invoice, make_bank_txn):
        txn = make_bank_txn(amount="1199.00", reference="INV-001")

        assert score_pair(txn, invoice).score == Decimal("0.4")
        assert auto_match([txn], [invoice]) == []

    def test_amount_compared_to_outstanding(self, make_document, make_line, make_payment, make_bank_txn):
        doc = make_document(
            lines=[make_line(qty="10", unit_price="100", vat_rate="20")],
            payments=[make_payment(amount="500.00")],
            status=DocumentStatus.POSTED,
        )
        txn = make_bank_txn(amount="700.00", reference="INV-001")

        assert auto_match([txn], [doc])[0].score == Decimal("1.0")


class TestFilters:

    def test_outflow_never_matches_invoice(self, invoice, make_bank_txn):
        txn = make_bank_txn(amount="-1200.00", reference="INV-001")

        assert auto_match([txn], [invoice]) == []

    def test_outflow_matches_purchase(self, make_document, make_line, make_bank_txn):
        purchase = make_document(
            doc_id="ACH-7",
            doc_type=DocumentType.PURCHASE,
            lines=[make_line(qty="1", unit_price="500", vat_rate="20")],
        )
        txn = make_bank_txn(amount="-600.00", reference="FACT ACH-7")

        matches = auto_match([txn], [purchase])

        assert [(m.bank_id, m.doc_id) for m in matches] == [("B1", "ACH-7")]

    def test_inflow_never_matches_purchase(self, make_document, make_bank_txn):
        purchase = make_document(doc_id="ACH-7", doc_type=DocumentType.PURCHASE)

        assert auto_match([make_bank_txn(amount="120.00", reference="ACH-7")], [purchase]) == []

    def test_reconciled_transactions_skipped(self, invoice, make_bank_txn):
        txn = replace(make_bank_txn(reference="INV-001"), reconciled=True, match_doc_id="X")

        assert auto_match([txn], [invoice]) == []

    def test_settled_documents_skipped(self, make_document, make_line, make_payment, make_bank_txn):
        doc = make_document(
            lines=[make_line(qty="1", unit_price="100", vat_rate="0")],
            payments=[make_payment(amount="99.995")],
        )

        assert auto_match([make_bank_txn(amount="0.01", reference="INV-001")], [doc]) == []

    def test_credit_notes_never_proposed(self, make_document, make_line, make_bank_txn):
        cn = make_document(
            doc_id="AV-1",
            doc_type=DocumentType.CREDIT_NOTE,
            lines=[make_line(qty="-1", unit_price="100")],
        )

        assert auto_match([make_bank_txn(amount="-120.00", reference="AV-1")], [cn]) == []


class TestGreedyAssignment:

    def test_one_bank_line_two_equal_documents(self, make_document, make_line, make_bank_txn):
        lines = [make_line(qty="10", unit_price="100", vat_rate="20")]
        doc_a = make_document(doc_id="INV-A", lines=lines, due_date=date(2024, 3, 30))
        doc_b = make_document(doc_id="INV-B", lines=lines, due_date=date(2024, 3, 28))
        txn = make_bank_txn()

        assert auto_match([txn], [doc_b, doc_a]) == []

        matches = auto_match([txn], [doc_b, doc_a], LOOSE)

        assert len(matches) == 1
        # Same score, closest due date wins
        assert matches[0].doc_id == "INV-A"

    def test_tie_broken_by_document_id(self, make_document, make_bank_txn):
        doc_b = make_document(doc_id="INV-B")
        doc_a = make_document(doc_id="INV-A")
        txn = make_bank_txn(amount="120.00")

        assert auto_match([txn], [doc_b, doc_a], LOOSE)[0].doc_id == "INV-A"

    def test_reference_beats_plain_amount(self, make_document, make_bank_txn):
        doc_a = make_document(doc_id="INV-A")
        doc_b = make_document(doc_id="INV-B")
        txn = make_bank_txn(amount="120.00", reference="paiement INV-B")

        assert auto_match([txn], [doc_a, doc_b])[0].doc_id == "INV-B"

    def test_no_double_consumption_of_document(self, make_document, make_bank_txn):
        doc = make_document(doc_id="INV-A")
        txns = [
            make_bank_txn(bank_id="B2", amount="120.00", reference="INV-A"),
            make_bank_txn(bank_id="B1", amount="120.00", reference="INV-A"),
        ]

        matches = auto_match(txns, [doc])

        assert [(m.bank_id, m.doc_id) for m in matches] == [("B1", "INV-A")]

    def test_two_pairs_assigned(self, make_document, make_bank_txn):
        doc_a = make_document(doc_id="INV-A")
        doc_b = make_document(doc_id="INV-B")
        txns = [
            make_bank_txn(bank_id="B1", amount="120.00", reference="INV-A"),
            make_bank_txn(bank_id="B2", amount="120.00", reference="INV-B"),
        ]

        matches = auto_match(txns, [doc_a, doc_b])

        assert sorted((m.bank_id, m.doc_id) for m in matches) == [("B1", "INV-A"), ("B2", "INV-B")]

    def test_candidates_sorted_deterministically(self, make_document, make_bank_txn):
        docs = [make_document(doc_id="INV-B"), make_document(doc_id="INV-A")]
        txns = [make_bank_txn(bank_id="B2", amount="120.00"), make_bank_txn(bank_id="B1", amount="120.00")]

        pairs = candidate_pairs(txns, docs, LOOSE)

        assert [(p.bank_id, p.doc_id) for p in pairs] == [
            ("B1", "INV-A"), ("B2", "INV-A"), ("B1", "INV-B"), ("B2", "INV-B"),
        ]

    def test_inputs_not_mutated(self, invoice, make_bank_txn):
        txn = make_bank_txn(reference="INV-001")

        auto_match([txn], [invoice])

        assert txn.reconciled is False
        assert txn.match_doc_id is None


class TestPolicy:

    def test_custom_weights(self, invoice, make_bank_txn):
        policy = MatchingPolicy(
            amount_weight=Decimal("0.5"),
            reference_weight=Decimal("0.5"),
            date_weight=Decimal("0"),
            threshold=Decimal("0.5"),
        )
        txn = make_bank_txn(txn_date=date(2024, 8, 1))

        matches = auto_match([txn], [invoice], policy)

        assert matches[0].score == Decimal("0.5")

    def test_custom_window(self, invoice, make_bank_txn):
        policy = MatchingPolicy(date_window_days=10)
        txn = make_bank_txn(txn_date=date(2024, 4, 9))

        assert score_pair(txn, invoice, policy).date_match
