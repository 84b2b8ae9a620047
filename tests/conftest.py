"""
Pytest fixtures for the dairy ERP core test suite.

Provides:
- Structured logging configuration and log capture
- In-memory SQLite engine and session per test (full schema, immutability
  listeners installed)
- Deterministic clock, in-memory audit sink and actor contexts

Each test gets a fresh in-memory database; nothing leaks between tests.
"""

import json
import logging
from io import StringIO
from uuid import UUID

import pytest
from sqlalchemy.orm import Session

from dairy_kernel.db.engine import get_session, init_engine_from_url, reset_engine
from dairy_kernel.domain.audit import InMemoryAuditSink
from dairy_kernel.domain.clock import DeterministicClock
from dairy_kernel.domain.roles import ActorContext, Role
from dairy_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from dairy_modules._orm_registry import create_all_tables

# Well-known actor ids, one per persona.
ADMIN_ID = UUID("00000000-0000-4000-b000-000000000001")
SECOND_ADMIN_ID = UUID("00000000-0000-4000-b000-000000000002")
THIRD_ADMIN_ID = UUID("00000000-0000-4000-b000-000000000003")
APPRO_ID = UUID("00000000-0000-4000-b000-000000000010")
PRODUCTION_ID = UUID("00000000-0000-4000-b000-000000000020")
OTHER_PRODUCTION_ID = UUID("00000000-0000-4000-b000-000000000021")


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
    Capture dairy_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, stock_service):
            stock_service.consume_fifo(...)
            logs = captured_logs()
            assert any(r["message"] == "fifo_consumption_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("dairy_kernel")
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
# Database fixtures
# =============================================================================


@pytest.fixture
def db_engine():
    """Fresh in-memory SQLite database with the full schema."""
    engine = init_engine_from_url("sqlite://")
    create_all_tables()
    yield engine
    reset_engine()


@pytest.fixture
def session(db_engine) -> Session:
    sess = get_session()
    yield sess
    sess.rollback()
    sess.close()


# =============================================================================
# Clock, audit, actors
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """Clock fixed at 2025-01-15 08:00 UTC until advanced."""
    return DeterministicClock()


@pytest.fixture
def audit_sink():
    return InMemoryAuditSink()


@pytest.fixture
def admin():
    return ActorContext(ADMIN_ID, Role.ADMIN)


@pytest.fixture
def second_admin():
    return ActorContext(SECOND_ADMIN_ID, Role.ADMIN)


@pytest.fixture
def third_admin():
    return ActorContext(THIRD_ADMIN_ID, Role.ADMIN)


@pytest.fixture
def appro_user():
    return ActorContext(APPRO_ID, Role.APPRO)


@pytest.fixture
def production_user():
    return ActorContext(PRODUCTION_ID, Role.PRODUCTION)


@pytest.fixture
def other_production_user():
    return ActorContext(OTHER_PRODUCTION_ID, Role.PRODUCTION)


@pytest.fixture
def system_actor():
    return ActorContext.system(ADMIN_ID)
