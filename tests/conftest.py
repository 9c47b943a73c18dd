"""
Pytest fixtures for the ledger core test suite.

Provides:
- A fresh in-memory SQLite database per test, immutability listeners on
- A Document Store seeded with the default CGNC chart
- Services wired on a deterministic clock and the default configuration
- Document builders and captured JSON logs
"""

import json
import logging
from dataclasses import replace
from datetime import date
from decimal import Decimal
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session

from mizan_config.schema import LedgerConfig, VatRegime
from mizan_kernel.db.engine import (
    create_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from mizan_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from mizan_kernel.domain.bank import BankTransaction
from mizan_kernel.domain.cgnc import default_chart
from mizan_kernel.domain.clock import DeterministicClock
from mizan_kernel.domain.documents import (
    DocumentLine,
    DocumentStatus,
    DocumentType,
    Payment,
    PaymentMode,
    document_class,
)
from mizan_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from mizan_kernel.services.document_store import SqlDocumentStore
from mizan_kernel.services.period_service import PeriodService
from mizan_services.document_service import DocumentService
from mizan_services.ledger_poster import LedgerPoster
from mizan_services.reconciliation_service import ReconciliationService

TEST_ACTOR = "test-actor"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture mizan logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, poster):
            poster.post("INV-001")
            logs = captured_logs()
            assert any(r["message"] == "document_posted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("mizan")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def _immutability_listeners():
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()


@pytest.fixture
def session() -> Generator[Session, None, None]:
    """A session on a brand new in-memory database."""
    init_engine_from_url("sqlite://")
    create_tables()
    sess = get_session()
    try:
        yield sess
    finally:
        sess.close()
        reset_engine()


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture
def store(session, clock) -> SqlDocumentStore:
    store = SqlDocumentStore(session, clock=clock)
    store.add_accounts(default_chart())
    return store


# =============================================================================
# Configuration and services
# =============================================================================


@pytest.fixture
def config() -> LedgerConfig:
    return LedgerConfig()


@pytest.fixture
def cash_config() -> LedgerConfig:
    return replace(LedgerConfig(), vat_regime=VatRegime.CASH)


@pytest.fixture
def periods(store, clock) -> PeriodService:
    return PeriodService(store, clock)


@pytest.fixture
def poster(store, config) -> LedgerPoster:
    return LedgerPoster(store, config)


@pytest.fixture
def documents(store, poster) -> DocumentService:
    return DocumentService(store, poster)


@pytest.fixture
def reconciliation(store, config, clock) -> ReconciliationService:
    return ReconciliationService(store, config.matching, clock)


# =============================================================================
# Builders
# =============================================================================


def build_line(qty="1", unit_price="100.00", vat_rate="20", discount_pct="0", account_id=None):
    return DocumentLine(
        description="Item",
        qty=Decimal(qty),
        unit_price=Decimal(unit_price),
        vat_rate=Decimal(vat_rate),
        discount_pct=Decimal(discount_pct),
        account_id=account_id,
    )


@pytest.fixture
def make_line():
    return build_line


@pytest.fixture
def make_document():
    """Build (not save) a document of any variant."""

    def _make(
        doc_id="INV-001",
        doc_type=DocumentType.INVOICE,
        lines=None,
        party_id="CUST-01",
        issue_date=date(2024, 3, 1),
        due_date=date(2024, 3, 31),
        status=DocumentStatus.DRAFT,
        payments=(),
        origin_id=None,
    ):
        cls = document_class(doc_type)
        return cls(
            id=doc_id,
            party_id=party_id,
            issue_date=issue_date,
            due_date=due_date,
            lines=tuple(lines) if lines is not None else (build_line(),),
            payments=tuple(payments),
            status=status,
            origin_id=origin_id,
        )

    return _make


@pytest.fixture
def make_payment():
    def _make(payment_id="P1", amount="500.00", pay_date=date(2024, 3, 10), mode=PaymentMode.TRANSFER):
        return Payment(id=payment_id, date=pay_date, amount=Decimal(amount), mode=mode)

    return _make


@pytest.fixture
def make_bank_txn():
    def _make(bank_id="B1", amount="1200.00", txn_date=date(2024, 3, 31), label="VIR CLIENT", reference=""):
        return BankTransaction(
            id=bank_id,
            date=txn_date,
            amount=Decimal(amount),
            label=label,
            reference=reference,
        )

    return _make


@pytest.fixture
def posted_invoice(documents, make_document, make_line):
    """INV-001: 10 x 100.00 at 20%, confirmed and posted (ttc 1200.00)."""
    documents.create(
        make_document(lines=[make_line(qty="10", unit_price="100.00", vat_rate="20")]),
        created_by=TEST_ACTOR,
    )
    return documents.confirm("INV-001", created_by=TEST_ACTOR)
