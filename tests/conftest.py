"""
Pytest fixtures for the lease kernel test suite.

Provides:
- One in-memory SQLite engine per test session, with per-test isolation
  through an outer transaction that is rolled back at teardown
- Deterministic clock and reference collaborators (tax rates, invoice
  balances, role based authorizer)
- The wired service set built from the packaged configuration
- Factories for receipts and contracts
- Captured JSON logs

Environment Variables:
- DATABASE_URL: optional SQLAlchemy URL; defaults to in-memory SQLite.
"""

import json
import logging
import os
from datetime import date
from decimal import Decimal
from io import StringIO
from itertools import count
from typing import Generator

import pytest
from sqlalchemy.orm import Session

from lease_config import DEFAULT_CONFIG_PATH, get_active_config
from lease_config.bridges import build_lease_services, build_role_authorizer
from lease_kernel.db.engine import create_tables, init_engine_from_url, reset_engine
from lease_kernel.domain.clock import DeterministicClock
from lease_kernel.domain.collaborators import InMemoryInvoiceBalances, TaxRateTable
from lease_kernel.domain.documents import ApprovalStatus, PaymentType
from lease_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

# Actors known to the test authorizer.
APPROVER = "approver-1"
CONTROLLER = "controller-1"
CLERK = "clerk-1"

DEFAULT_DATABASE_URL = "sqlite://"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
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
    Capture lease_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, services):
            services.receipts.post_receipt(...)
            logs = captured_logs()
            assert any(r["message"] == "receipt_posted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("lease_kernel")
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


@pytest.fixture(scope="session")
def db_engine():
    """Single engine (and schema) for the entire test session."""
    eng = init_engine_from_url(os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL))
    create_tables()
    yield eng
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    Uses the SQLAlchemy 2.0 ``join_transaction_mode`` pattern:
    - Opens a connection with an outer transaction
    - The session joins it through a savepoint
    - At teardown the outer transaction is rolled back, undoing ALL data
      changes made during the test
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


# =============================================================================
# Collaborators and configuration
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """Clock fixed at 2024-01-01 12:00 UTC."""
    return DeterministicClock()


@pytest.fixture
def engine_config():
    return get_active_config(DEFAULT_CONFIG_PATH)


@pytest.fixture
def tax_rates(engine_config):
    return TaxRateTable(engine_config.tax_rate_map)


@pytest.fixture
def invoice_balances():
    return InMemoryInvoiceBalances({
        "INV-001": "4000.00",
        "INV-002": "3000.00",
        "INV-003": "1000.00",
        "INV-PAID": "0.00",
    })


@pytest.fixture
def authorizer(engine_config):
    auth = build_role_authorizer(engine_config)
    auth.assign(APPROVER, "finance_manager")
    auth.assign(CONTROLLER, "controller")
    auth.assign(CLERK, "clerk")
    return auth


@pytest.fixture
def services(session, engine_config, authorizer, invoice_balances, deterministic_clock):
    return build_lease_services(
        session, engine_config, authorizer, invoice_balances, clock=deterministic_clock
    )


# =============================================================================
# Document factories
# =============================================================================


@pytest.fixture
def make_receipt(services):
    """
    Create a persisted receipt.

    Defaults give a cash receipt of 5000 + 1000 deposit - 200 discount
    (NetAmount 5800), Received, below the approval threshold.
    """
    numbers = count(1)

    def _make(**overrides):
        kwargs = {
            "document_no": f"RCPT-{next(numbers):04d}",
            "customer_ref": "CUST-001",
            "receipt_date": date(2024, 1, 10),
            "received_amount": Decimal("5000.00"),
            "security_deposit": Decimal("1000.00"),
            "penalty": Decimal("0.00"),
            "discount": Decimal("200.00"),
            "payment_type": PaymentType.CASH,
        }
        kwargs.update(overrides)
        if kwargs["payment_type"] == PaymentType.CHEQUE:
            kwargs.setdefault("cheque_no", "CHQ-1001")
        return services.receipts.create_receipt(**kwargs)

    return _make


@pytest.fixture
def make_approved_receipt(services, make_receipt):
    """Create a receipt above the threshold and approve it."""

    def _make(**overrides):
        overrides.setdefault("received_amount", Decimal("60000.00"))
        receipt = make_receipt(**overrides)
        assert receipt.approval_status == ApprovalStatus.PENDING
        return services.approvals.approve(receipt.document_id, APPROVER, "ok")

    return _make


@pytest.fixture
def make_contract(services):
    numbers = count(1)

    def _make(line_items=(), **overrides):
        kwargs = {
            "document_no": f"CTR-{next(numbers):04d}",
            "customer_ref": "CUST-001",
            "line_items": tuple(line_items),
        }
        kwargs.update(overrides)
        return services.contracts.create_contract(**kwargs)

    return _make
