"""
Pure calculation engines of the ledger core.

No engine performs I/O.  Services in ``mizan_services`` read from the
Document Store, call an engine, and write its result back.
"""

from mizan_engines.aggregation import (
    StatementAggregator,
    StatementTotals,
    VatAggregator,
    VatSummary,
)
from mizan_engines.matching import auto_match
from mizan_engines.posting import PostingEngine, PostingPlan
from mizan_engines.validation import IssueCode, ValidationIssue, ValidationResult, validate

__all__ = [
    "IssueCode",
    "PostingEngine",
    "PostingPlan",
    "StatementAggregator",
    "StatementTotals",
    "ValidationIssue",
    "ValidationResult",
    "VatAggregator",
    "VatSummary",
    "auto_match",
    "validate",
]
