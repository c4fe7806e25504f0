"""
Pytest fixtures for the group-buy ledger test suite.

Provides:
- A SQLite file database per test (foreign keys on, busy timeout set)
- A DeterministicClock and an allow-list authority
- A GroupBuyLedger wired to both
- Captured structured logs

Environment Variables:
- DATABASE_URL: PostgreSQL URL for tests marked ``postgres``.  Those tests
  are skipped when it is not set.
"""

import json
import logging
import os
from datetime import datetime, timezone
from io import StringIO

import pytest
from sqlalchemy import func, select
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker

from groupbuy_kernel.db.engine import build_engine, create_tables, drop_tables
from groupbuy_kernel.db.immutability import register_immutability_listeners
from groupbuy_kernel.domain.clock import DeterministicClock
from groupbuy_kernel.domain.dtos import Actor, GroupBuyDraft
from groupbuy_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from groupbuy_services import AllowListAuthority, GroupBuyLedger


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    register_immutability_listeners()
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
    Capture groupbuy_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.create_group_buy(...)
            logs = captured_logs()
            assert any(r["message"] == "group_buy_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("groupbuy_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL (DATABASE_URL)"
    )


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'ledger.db'}"


@pytest.fixture
def engine(database_url):
    engine = build_engine(database_url, sqlite_busy_timeout=30.0)
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    """A session for direct service/selector tests.  Rolled back afterwards."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


def _postgres_reachable(url: str) -> bool:
    import psycopg2

    dsn = make_url(url).set(drivername="postgresql").render_as_string(hide_password=False)
    try:
        conn = psycopg2.connect(dsn, connect_timeout=3)
    except psycopg2.OperationalError as exc:
        print(f"\n[conftest] PostgreSQL not reachable: {exc}")
        return False
    conn.close()
    return True


@pytest.fixture
def postgres_engine():
    url = os.environ.get("DATABASE_URL")
    if not url or not url.startswith("postgresql"):
        pytest.skip("DATABASE_URL does not point at PostgreSQL")
    if not _postgres_reachable(url):
        pytest.skip("DATABASE_URL is set but PostgreSQL is not reachable")
    engine = build_engine(url, pool_size=10, max_overflow=10)
    drop_tables(engine)
    create_tables(engine)
    yield engine
    drop_tables(engine)
    engine.dispose()


@pytest.fixture
def row_count(session_factory):
    """Count committed rows of a model, optionally filtered by column values."""

    def _count(model, **filters) -> int:
        with session_factory() as session:
            query = select(func.count()).select_from(model)
            for name, value in filters.items():
                query = query.where(getattr(model, name) == value)
            return session.execute(query).scalar_one()

    return _count


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id="u-admin", username="boss")


@pytest.fixture
def creator() -> Actor:
    return Actor(user_id="u-creator", username="organizer")


@pytest.fixture
def registrar_a() -> Actor:
    return Actor(user_id="u-reg-a", username="alice")


@pytest.fixture
def registrar_b() -> Actor:
    return Actor(user_id="u-reg-b", username="bob")


@pytest.fixture
def tom() -> Actor:
    return Actor(user_id="u-tom", username="Tom")


@pytest.fixture
def amy() -> Actor:
    return Actor(user_id="u-amy", username="Amy")


@pytest.fixture
def authority(admin) -> AllowListAuthority:
    return AllowListAuthority.from_entries([admin.user_id, "@ops"])


@pytest.fixture
def ledger(session_factory, clock, authority) -> GroupBuyLedger:
    return GroupBuyLedger(session_factory, clock=clock, authority=authority)


@pytest.fixture
def draft(creator) -> GroupBuyDraft:
    return GroupBuyDraft(
        creator=creator,
        channel_id="ch-lunch",
        merchant_name="海鮮拼單",
        items=[{"name": "蝦", "unit_price": "100"}, {"name": "蟹", "unit_price": "250"}],
        description="Friday delivery",
        metadata={"deadline": "2026-03-06"},
    )


@pytest.fixture
def group_buy(ledger, draft):
    return ledger.create_group_buy(draft)
