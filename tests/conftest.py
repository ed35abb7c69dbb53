"""
Pytest fixtures for the freshstock test suite.

Provides:
- Structured logging configured for every test, plus a log capture fixture
- A deterministic clock (2024-01-01 12:00 UTC) and an in-memory catalog
  with three branches and two products
- In-memory sales history and a recording notification sink
- A fully wired InventoryOrchestrator and its services
- A SQLite in-memory session with all tables created
"""

import json
import logging
from datetime import date, timedelta
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from freshstock_config.schema import FreshstockConfig
from freshstock_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from freshstock_kernel.domain.catalog import Branch, InMemoryCatalog, Product
from freshstock_kernel.domain.clock import DeterministicClock
from freshstock_kernel.domain.sales import InMemorySalesHistory
from freshstock_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from freshstock_services.inventory_orchestrator import InventoryOrchestrator

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()


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
    Capture freshstock logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.create_batch(...)
            logs = captured_logs()
            assert any(r["message"] == "batch_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("freshstock")
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
# Collaborator doubles
# =============================================================================


class RecordingSink:
    """Notification sink that keeps every event it receives."""

    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)

    def of_kind(self, kind):
        return [e for e in self.events if e.kind == kind]


class FailingSink:
    """Notification sink whose delivery always fails."""

    def __init__(self):
        self.attempts = 0

    def notify(self, event):
        self.attempts += 1
        raise ConnectionError("notification backend unavailable")


# =============================================================================
# Core fixtures
# =============================================================================


@pytest.fixture
def test_actor_id():
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


@pytest.fixture
def today(deterministic_clock) -> date:
    return deterministic_clock.today()


@pytest.fixture
def jakarta():
    return Branch(uuid4(), "JKT", "Jakarta Pusat", city="Jakarta", province="DKI Jakarta")


@pytest.fixture
def bandung():
    return Branch(uuid4(), "BDG", "Bandung", city="Bandung", province="Jawa Barat")


@pytest.fixture
def surabaya():
    return Branch(uuid4(), "SBY", "Surabaya", city="Surabaya", province="Jawa Timur")


@pytest.fixture
def milk():
    return Product(
        uuid4(), "MILK-1L", "Fresh Milk 1L",
        sell_price=Decimal("20000"), buy_price=Decimal("12000"), minimum_stock=10,
    )


@pytest.fixture
def bread():
    return Product(
        uuid4(), "BREAD-WH", "White Bread",
        sell_price=Decimal("15000"), buy_price=Decimal("8000"), minimum_stock=20,
    )


@pytest.fixture
def catalog(jakarta, bandung, surabaya, milk, bread):
    return InMemoryCatalog(branches=[jakarta, bandung, surabaya], products=[milk, bread])


@pytest.fixture
def sales_history():
    return InMemorySalesHistory()


@pytest.fixture
def record_sales(sales_history, today):
    """Record ``units_per_day`` for each of the ``days`` days before today."""

    def _record(product, branch, units_per_day: int, days: int = 30):
        for offset in range(1, days + 1):
            sales_history.record(product.id, branch.id, today - timedelta(days=offset), units_per_day)

    return _record


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def failing_sink():
    return FailingSink()


@pytest.fixture
def config():
    return FreshstockConfig()


@pytest.fixture
def orchestrator(catalog, sales_history, deterministic_clock, config, sink):
    return InventoryOrchestrator(
        catalog, sales_history, clock=deterministic_clock, config=config, sink=sink,
    )


@pytest.fixture
def ledger(orchestrator):
    return orchestrator.ledger


@pytest.fixture
def allocator(orchestrator):
    return orchestrator.allocator


@pytest.fixture
def expiry_monitor(orchestrator):
    return orchestrator.expiry_monitor


@pytest.fixture
def disposal_manager(orchestrator):
    return orchestrator.disposal


@pytest.fixture
def recommendation_engine(orchestrator):
    return orchestrator.recommendations


@pytest.fixture
def transfer_service(orchestrator):
    return orchestrator.transfers


@pytest.fixture
def receive_batch(ledger, today, test_actor_id):
    """
    Register a batch relative to the deterministic today.

    Usage::

        batch = receive_batch(milk, jakarta, 100, expires_in=5)
    """

    def _receive(
        product,
        branch,
        quantity: int,
        expires_in: int | None = 10,
        cost: Decimal = Decimal("5000"),
        received_days_ago: int = 0,
    ):
        return ledger.create_batch(
            product_id=product.id,
            branch_id=branch.id,
            initial_stock=quantity,
            cost_per_unit=cost,
            received_date=today - timedelta(days=received_days_ago),
            expiry_date=None if expires_in is None else today + timedelta(days=expires_in),
            actor_id=test_actor_id,
        )

    return _receive


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_session():
    """SQLite in-memory session with every freshstock table created."""
    init_engine_from_url("sqlite://")
    create_tables()
    session = get_session()
    yield session
    session.rollback()
    session.close()
    drop_tables()
    reset_engine()
