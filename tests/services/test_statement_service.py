"""
Tests for the statement document lifecycle.

Covers:
- finalize / send / mark_paid through STATEMENT_WORKFLOW
- Rejected transitions
- Cancellation adjustments (idempotent, unknown reservation)
- Filtered listing
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from payout_kernel.domain.dtos import StatementStatus
from payout_kernel.exceptions import (
    EntityNotFoundError,
    InvalidStatementTransitionError,
    StatementNotFoundError,
)
from payout_services.notifications import BALANCE_DUE_SUFFIX
from payout_services.statement_aggregator import StatementAggregator
from payout_services.statement_service import StatementService

JAN_START, JAN_END = date(2026, 1, 1), date(2026, 1, 31)


@pytest.fixture
def service(session, clock, notifier) -> StatementService:
    return StatementService(session, clock, notifier=notifier)


@pytest.fixture
def draft(session, clock, make_property, make_reservation):
    """Draft statement for one $1000 stay at 20% commission."""
    prop = make_property("Harbor Loft")
    reservation = make_reservation(prop, date(2026, 1, 10), date(2026, 1, 14), "1000.00")
    statement = StatementAggregator(session, clock).generate_for_property(
        prop.id, JAN_START, JAN_END,
    )
    return statement, reservation


class TestLifecycle:

    def test_finalize_stamps_generated_at(self, service, draft, clock):
        statement, _ = draft

        finalized = service.finalize(statement.id)

        assert finalized.status == "generated"
        assert finalized.generated_at == clock.now()

    def test_finalize_twice_is_rejected(self, service, draft):
        statement, _ = draft
        service.finalize(statement.id)

        with pytest.raises(InvalidStatementTransitionError) as exc_info:
            service.finalize(statement.id)

        assert exc_info.value.from_state == "generated"
        assert "send" in exc_info.value.allowed_actions

    def test_send_delivers_notification(self, service, draft, notifier):
        statement, _ = draft
        service.finalize(statement.id)

        sent = service.send_statement(statement.id, template="monthly")

        assert sent.status == "sent"
        assert sent.sent_at is not None
        notification = notifier.sent[0]
        assert notification.template == "monthly"
        assert notification.owner_payout == Decimal("800.00")
        assert notification.subject == "Owner Statement Harbor Loft 2026-01-01 to 2026-01-31"

    def test_negative_statement_subject(self, session, service, draft, notifier):
        statement, _ = draft
        statement.owner_payout = Decimal("-25.00")
        session.flush()
        service.finalize(statement.id)

        service.send_statement(statement.id)

        assert notifier.sent[0].subject.endswith(BALANCE_DUE_SUFFIX)
        assert notifier.sent[0].is_balance_due

    def test_send_requires_notifier(self, session, clock, draft):
        statement, _ = draft
        service = StatementService(session, clock)
        service.finalize(statement.id)

        with pytest.raises(ValueError):
            service.send_statement(statement.id)

    def test_send_draft_is_rejected_before_delivery(self, service, draft, notifier):
        statement, _ = draft

        with pytest.raises(InvalidStatementTransitionError):
            service.send_statement(statement.id)

        assert notifier.sent == []

    def test_notifier_failure_leaves_status(self, service, draft, notifier):
        statement, _ = draft
        notifier.fail = True
        service.finalize(statement.id)

        with pytest.raises(RuntimeError):
            service.send_statement(statement.id)

        assert statement.status == "generated"
        assert statement.sent_at is None

    def test_mark_paid_is_terminal(self, service, draft):
        statement, _ = draft
        service.finalize(statement.id)
        service.send_statement(statement.id)

        paid = service.mark_paid(statement.id)

        assert paid.status == "paid"
        with pytest.raises(InvalidStatementTransitionError):
            service.mark_paid(statement.id)

    def test_unknown_statement(self, service):
        with pytest.raises(StatementNotFoundError):
            service.finalize(uuid4())


class TestCancellation:

    def test_adjustment_reverses_contribution(self, service, draft, captured_logs):
        statement, reservation = draft
        service.finalize(statement.id)

        adjusted = service.apply_cancellation(statement.id, str(reservation.id))

        assert adjusted.status == "modified"
        assert adjusted.adjustments == Decimal("-800.00")
        assert adjusted.owner_payout == Decimal("0.00")
        adjustment = adjusted.items[-1]
        assert adjustment["type"] == "adjustment"
        assert adjustment["amount"] == "-800.00"
        assert adjustment["date"] == "2026-01-05"
        assert any(r["message"] == "statement_cancellation_applied" for r in captured_logs())

    def test_second_application_is_noop(self, service, draft):
        statement, reservation = draft
        service.finalize(statement.id)
        service.apply_cancellation(statement.id, str(reservation.id))

        again = service.apply_cancellation(statement.id, str(reservation.id))

        assert again.adjustments == Decimal("-800.00")
        assert [i["type"] for i in again.items].count("adjustment") == 1

    def test_unknown_reservation(self, service, draft):
        statement, _ = draft
        service.finalize(statement.id)

        with pytest.raises(EntityNotFoundError):
            service.apply_cancellation(statement.id, str(uuid4()))

    def test_draft_cannot_be_adjusted(self, service, draft):
        statement, reservation = draft

        with pytest.raises(InvalidStatementTransitionError):
            service.apply_cancellation(statement.id, str(reservation.id))

    def test_modified_statement_can_still_be_sent(self, service, draft, notifier):
        statement, reservation = draft
        service.finalize(statement.id)
        service.apply_cancellation(statement.id, str(reservation.id))

        sent = service.send_statement(statement.id)

        assert sent.status == "sent"
        assert notifier.sent[0].owner_payout == Decimal("0.00")


class TestListing:

    def test_filters_by_status(self, session, clock, service, make_property):
        aggregator = StatementAggregator(session, clock)
        a = aggregator.generate_for_property(make_property("A").id, JAN_START, JAN_END)
        b = aggregator.generate_for_property(make_property("B").id, JAN_START, JAN_END)
        service.finalize(b.id)

        drafts = service.list_statements(status=StatementStatus.DRAFT)
        generated = service.list_statements(status=StatementStatus.GENERATED)

        assert [s.id for s in drafts] == [a.id]
        assert [s.id for s in generated] == [b.id]

    def test_period_overlap_filter(self, session, clock, service, make_property):
        aggregator = StatementAggregator(session, clock)
        prop = make_property()
        december = aggregator.generate_for_property(prop.id, date(2025, 12, 1), date(2025, 12, 31))
        january = aggregator.generate_for_property(prop.id, JAN_START, JAN_END)

        newest_first = service.list_statements(entity_key=january.entity_key)
        only_january = service.list_statements(period_start=date(2026, 1, 15))

        assert [s.id for s in newest_first] == [january.id, december.id]
        assert [s.id for s in only_january] == [january.id]
