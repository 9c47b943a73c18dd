"""
mizan_engines.matching -- Bank reconciliation matcher.

Responsibility:
    Propose one-to-one pairings between unreconciled bank statement lines
    and outstanding documents.  Proposals are data; applying them is the
    job of ``mizan_services.reconciliation_service``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Never mutates its
    inputs.

Algorithm (greedy, deterministic):
    1. Candidate pairs: inflows against invoices, outflows against
       purchases; bank line and document unreconciled; document
       outstanding > 0.01.
    2. Score = amount weight when abs(abs(bank) - outstanding) < tolerance
             + reference weight when the bank reference contains the
               document id (case-insensitive)
             + date weight when abs(bank.date - doc.due_date) <= window.
    3. Keep pairs scoring >= threshold.
    4. Sort by score desc, date difference asc, document id asc, bank id asc.
    5. Accept each pair unless its bank line or document was already taken.

Invariants enforced:
    - A bank line and a document each appear in at most one match.
    - Scores are Decimal sums, so 0.6 + 0.3 compares exactly with 0.9.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from mizan_config.schema import MatchingPolicy
from mizan_engines.tracer import traced_engine
from mizan_kernel.domain.bank import BankTransaction, Match
from mizan_kernel.domain.documents import CommercialDocument, DocumentType
from mizan_kernel.domain.values import ZERO, is_outstanding, round_amount
from mizan_kernel.logging_config import get_logger

logger = get_logger("engines.matching")

DEFAULT_POLICY = MatchingPolicy()


@dataclass(frozen=True)
class ScoredPair:
    """A candidate pairing with its score breakdown."""

    bank_id: str
    doc_id: str
    score: Decimal
    date_diff: int
    amount_match: bool
    reference_match: bool
    date_match: bool

    def to_match(self) -> Match:
        return Match(bank_id=self.bank_id, doc_id=self.doc_id, score=self.score)


def _sign_compatible(txn: BankTransaction, doc: CommercialDocument) -> bool:
    if txn.amount > ZERO:
        return doc.doc_type == DocumentType.INVOICE
    if txn.amount < ZERO:
        return doc.doc_type == DocumentType.PURCHASE
    return False


def score_pair(
    txn: BankTransaction,
    doc: CommercialDocument,
    policy: MatchingPolicy = DEFAULT_POLICY,
) -> ScoredPair:
    """Score one bank line against one document, without filtering."""
    outstanding = round_amount(doc.outstanding)
    amount_match = abs(abs(round_amount(txn.amount)) - outstanding) < policy.amount_tolerance
    reference = (txn.reference or "").lower()
    reference_match = bool(doc.id) and doc.id.lower() in reference
    date_diff = abs((txn.date - doc.due_date).days)
    date_match = date_diff <= policy.date_window_days

    score = Decimal("0")
    if amount_match:
        score += policy.amount_weight
    if reference_match:
        score += policy.reference_weight
    if date_match:
        score += policy.date_weight

    return ScoredPair(
        bank_id=txn.id,
        doc_id=doc.id,
        score=score,
        date_diff=date_diff,
        amount_match=amount_match,
        reference_match=reference_match,
        date_match=date_match,
    )


def candidate_pairs(
    bank_txns: Iterable[BankTransaction],
    docs: Iterable[CommercialDocument],
    policy: MatchingPolicy = DEFAULT_POLICY,
) -> list[ScoredPair]:
    """Every eligible pair reaching the threshold, in acceptance order."""
    open_docs = [
        doc for doc in docs if not doc.reconciled and is_outstanding(doc.outstanding)
    ]
    pairs: list[ScoredPair] = []
    for txn in bank_txns:
        if txn.reconciled:
            continue
        for doc in open_docs:
            if not _sign_compatible(txn, doc):
                continue
            pair = score_pair(txn, doc, policy)
            if pair.score >= policy.threshold:
                pairs.append(pair)

    pairs.sort(key=lambda p: (-p.score, p.date_diff, p.doc_id, p.bank_id))
    return pairs


@traced_engine("reconciliation_matcher", "1.0")
def auto_match(
    bank_txns: Iterable[BankTransaction],
    docs: Iterable[CommercialDocument],
    policy: MatchingPolicy = DEFAULT_POLICY,
) -> list[Match]:
    """Greedy one-to-one matching of bank lines to outstanding documents."""
    bank_txns = list(bank_txns)
    docs = list(docs)
    pairs = candidate_pairs(bank_txns, docs, policy)

    used_banks: set[str] = set()
    used_docs: set[str] = set()
    matches: list[Match] = []
    for pair in pairs:
        if pair.bank_id in used_banks or pair.doc_id in used_docs:
            continue
        used_banks.add(pair.bank_id)
        used_docs.add(pair.doc_id)
        matches.append(pair.to_match())

    logger.info("auto_match_completed", extra={
        "bank_count": len(bank_txns),
        "document_count": len(docs),
        "candidate_count": len(pairs),
        "match_count": len(matches),
    })
    return matches
