"""
Mizan Kernel - ledger core for CGNC bookkeeping

Append-only general ledger with:
- Balanced double-entry pieces
- Idempotent posting of documents and payments
- Reversible bank reconciliation
- Decimal amounts with half-up rounding
"""

__version__ = "0.1.0"
