"""
Pytest fixtures for the owner payout test suite.

Provides:
- Structured logging configuration and JSON log capture
- In-memory SQLite engine, session and session factory
- Deterministic clock
- Row builders for properties, groups, reservations and expenses
- Fakes for the transfer gateway and the statement notifier
"""

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import payout_kernel.models  # noqa: F401
import payout_scheduler.models  # noqa: F401
from payout_kernel.db.base import Base
from payout_kernel.db.engine import enable_sqlite_savepoints
from payout_kernel.domain.clock import DeterministicClock
from payout_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from payout_kernel.models import (
    ExpenseModel,
    ListingGroupModel,
    PropertyModel,
    ReservationModel,
)
from payout_services.transfers import TransferRequest, TransferResult


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
    Capture payout_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, orchestrator):
            orchestrator.sweep_queued()
            logs = captured_logs()
            assert any(r["message"] == "payout_sweep_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("payout_kernel")
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
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(eng)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(datetime(2026, 1, 5, 9, 0))


# =============================================================================
# Row builders
# =============================================================================


@pytest.fixture
def make_property(session):
    def _make(name: str = "Beach House", **fields) -> PropertyModel:
        values = {
            "owner_name": "Jordan Owner",
            "owner_email": "owner@example.com",
            "commission_percent": Decimal("20"),
            "is_active": True,
        }
        values.update(fields)
        prop = PropertyModel(name=name, **values)
        session.add(prop)
        session.flush()
        return prop

    return _make


@pytest.fixture
def make_group(session):
    def _make(name: str = "Lakeside Portfolio", **fields) -> ListingGroupModel:
        group = ListingGroupModel(name=name, **fields)
        session.add(group)
        session.flush()
        return group

    return _make


@pytest.fixture
def make_reservation(session):
    def _make(
        prop: PropertyModel,
        check_in: date,
        check_out: date,
        gross: str | Decimal = "1000.00",
        **fields,
    ) -> ReservationModel:
        values = {
            "status": "confirmed",
            "source": "direct",
            "booked_at": datetime(2025, 12, 1, 12, 0),
        }
        values.update(fields)
        reservation = ReservationModel(
            property_id=prop.id,
            check_in=check_in,
            check_out=check_out,
            gross_amount=Decimal(str(gross)),
            **values,
        )
        session.add(reservation)
        session.flush()
        return reservation

    return _make


@pytest.fixture
def make_expense(session):
    def _make(
        prop: PropertyModel | None,
        expense_date: date,
        amount: str | Decimal,
        description: str = "Repair",
        **fields,
    ) -> ExpenseModel:
        expense = ExpenseModel(
            property_id=prop.id if prop is not None else None,
            expense_date=expense_date,
            amount=Decimal(str(amount)),
            description=description,
            **fields,
        )
        session.add(expense)
        session.flush()
        return expense

    return _make


# =============================================================================
# Fakes
# =============================================================================


class FakeGateway:
    """Transfer gateway that replays scripted results and records requests."""

    def __init__(self, *results: TransferResult):
        self.results = list(results)
        self.requests: list[TransferRequest] = []
        self.default = TransferResult.succeeded("tr_default", Decimal("0.25"))

    def script(self, *results: TransferResult) -> None:
        self.results.extend(results)

    def create_transfer(self, request: TransferRequest) -> TransferResult:
        self.requests.append(request)
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return self.default


class RecordingNotifier:
    """Statement notifier that keeps every notification it receives."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    def deliver(self, notification) -> None:
        if self.fail:
            raise RuntimeError("mail server unavailable")
        self.sent.append(notification)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()
