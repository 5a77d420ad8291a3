"""
Tests for StatementAggregator.

Covers:
- Property statements in checkout and calendar mode
- Zero-activity statements
- Draft regeneration vs. rejection after finalization
- Combined group statements and tag targeting
- Co-host, pass-through cleaning, fixed fees and expenses
- Missing fee configuration
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from payout_config.schema import FeeConfig
from payout_kernel.domain.dtos import CalculationMode
from payout_kernel.exceptions import (
    EntityNotFoundError,
    MissingFeeConfigurationError,
    StatementAlreadyGeneratedError,
)
from payout_services.statement_aggregator import StatementAggregator
from payout_services.statement_service import StatementService

DEC_START, DEC_END = date(2025, 12, 1), date(2025, 12, 31)
JAN_START, JAN_END = date(2026, 1, 1), date(2026, 1, 31)


@pytest.fixture
def aggregator(session, clock) -> StatementAggregator:
    return StatementAggregator(session, clock)


class TestPropertyStatement:

    def test_checkout_mode_totals(self, aggregator, make_property, make_reservation):
        prop = make_property(commission_percent=Decimal("10"), tech_fee=Decimal("5"))
        make_reservation(prop, date(2026, 1, 10), date(2026, 1, 14), "1000.00")

        statement = aggregator.generate_for_property(prop.id, JAN_START, JAN_END)

        assert statement.status == "draft"
        assert statement.total_revenue == Decimal("1000.00")
        assert statement.total_commission == Decimal("100.00")
        assert statement.gross_payout == Decimal("900.00")
        assert statement.tech_fees == Decimal("5.00")
        assert statement.owner_payout == Decimal("895.00")
        assert statement.commission_percent == Decimal("10")
        assert statement.entity_key == f"property:{prop.id}"

    def test_calendar_mode_prorates_year_end_stay(
        self, aggregator, make_property, make_reservation,
    ):
        prop = make_property(commission_percent=Decimal("10"))
        make_reservation(prop, date(2025, 12, 28), date(2026, 1, 2), "1000.00")

        december = aggregator.generate_for_property(
            prop.id, DEC_START, DEC_END, CalculationMode.CALENDAR,
        )
        january = aggregator.generate_for_property(
            prop.id, JAN_START, JAN_END, CalculationMode.CALENDAR,
        )

        assert december.total_revenue == Decimal("800.00")
        assert january.total_revenue == Decimal("200.00")
        revenue_item = december.items[0]
        assert revenue_item["note"] == "4/5 nights in period"

    def test_zero_activity_still_produces_statement(self, aggregator, make_property):
        prop = make_property()

        statement = aggregator.generate_for_property(prop.id, JAN_START, JAN_END)

        assert statement.id is not None
        assert statement.owner_payout == Decimal("0.00")
        assert statement.items == []

    def test_cancelled_reservations_excluded(self, aggregator, make_property, make_reservation):
        prop = make_property()
        make_reservation(prop, date(2026, 1, 10), date(2026, 1, 14), status="cancelled")

        statement = aggregator.generate_for_property(prop.id, JAN_START, JAN_END)

        assert statement.total_revenue == Decimal("0.00")

    def test_expenses_and_additional_payouts(
        self, aggregator, make_property, make_reservation, make_expense,
    ):
        prop = make_property(commission_percent=Decimal("20"))
        make_reservation(prop, date(2026, 1, 10), date(2026, 1, 14), "500.00")
        make_expense(prop, date(2026, 1, 11), "-60.00", "Plumber")
        make_expense(prop, date(2026, 1, 12), "25.00", "Late checkout", expense_type="upsell")
        make_expense(prop, date(2026, 1, 13), "-300.00", "Roof LL Cover")

        statement = aggregator.generate_for_property(prop.id, JAN_START, JAN_END)

        assert statement.total_expenses == Decimal("60.00")
        assert statement.total_additional_payouts == Decimal("25.00")
        assert statement.owner_payout == Decimal("365.00")  # 400 + 25 - 60
        kinds = sorted(i["type"] for i in statement.items)
        assert kinds == ["expense", "landlord_covered", "revenue", "upsell"]

    def test_unknown_property(self, aggregator):
        with pytest.raises(EntityNotFoundError):
            aggregator.generate_for_property(uuid4(), JAN_START, JAN_END)


class TestRegeneration:

    def test_draft_is_regenerated_in_place(
        self, aggregator, make_property, make_reservation, captured_logs,
    ):
        prop = make_property(commission_percent=Decimal("10"))
        first = aggregator.generate_for_property(prop.id, JAN_START, JAN_END)
        make_reservation(prop, date(2026, 1, 10), date(2026, 1, 14), "100.00")

        second = aggregator.generate_for_property(prop.id, JAN_START, JAN_END)

        assert second.id == first.id
        assert second.owner_payout == Decimal("90.00")
        assert any(r["message"] == "statement_regenerating_draft" for r in captured_logs())

    def test_generated_statement_is_rejected(self, session, clock, aggregator, make_property):
        prop = make_property()
        statement = aggregator.generate_for_property(prop.id, JAN_START, JAN_END)
        StatementService(session, clock).finalize(statement.id)

        with pytest.raises(StatementAlreadyGeneratedError) as exc_info:
            aggregator.generate_for_property(prop.id, JAN_START, JAN_END)

        assert exc_info.value.status == "generated"


class TestFeeRules:

    def test_missing_fee_configuration(self, session, clock, make_property, make_reservation):
        aggregator = StatementAggregator(
            session, clock, fee_config=FeeConfig(require_fee_configuration=True),
        )
        prop = make_property(commission_percent=None)
        make_reservation(prop, date(2026, 1, 10), date(2026, 1, 14))

        with pytest.raises(MissingFeeConfigurationError):
            aggregator.generate_for_property(prop.id, JAN_START, JAN_END)

    def test_default_fee_used_when_allowed(self, aggregator, make_property, make_reservation):
        prop = make_property(commission_percent=None)
        make_reservation(prop, date(2026, 1, 10), date(2026, 1, 14), "1000.00")

        statement = aggregator.generate_for_property(prop.id, JAN_START, JAN_END)

        assert statement.total_commission == Decimal("150.00")

    def test_new_fee_by_booking_date(self, aggregator, make_property, make_reservation):
        prop = make_property(
            commission_percent=Decimal("10"),
            new_fee_enabled=True,
            new_fee_percent=Decimal("20"),
            new_fee_effective_from=date(2026, 1, 1),
        )
        make_reservation(
            prop, date(2026, 1, 3), date(2026, 1, 5), "100.00",
            booked_at=datetime(2025, 12, 15, 9, 0),
        )
        make_reservation(
            prop, date(2026, 1, 10), date(2026, 1, 12), "100.00",
            booked_at=datetime(2026, 1, 2, 9, 0),
        )

        statement = aggregator.generate_for_property(prop.id, JAN_START, JAN_END)

        assert statement.total_commission == Decimal("30.00")
        assert statement.commission_percent is None

    def test_cohost_external_platform_booking(self, aggregator, make_property, make_reservation):
        prop = make_property(
            commission_percent=Decimal("10"),
            cohost_on_external_platform=True,
        )
        make_reservation(prop, date(2026, 1, 10), date(2026, 1, 14), "830.50", source="Airbnb")

        statement = aggregator.generate_for_property(prop.id, JAN_START, JAN_END)

        assert statement.total_revenue == Decimal("0.00")
        assert statement.total_commission == Decimal("83.05")
        assert statement.owner_payout == Decimal("-83.05")
        assert statement.items[0]["cohost_external"] is True

    def test_waiver_reports_commission(self, aggregator, make_property, make_reservation):
        prop = make_property(
            commission_percent=Decimal("10"),
            waive_commission=True,
            waive_commission_until=date(2026, 3, 31),
        )
        make_reservation(prop, date(2026, 1, 10), date(2026, 1, 14), "1000.00")

        statement = aggregator.generate_for_property(prop.id, JAN_START, JAN_END)

        assert statement.owner_payout == Decimal("1000.00")
        assert statement.total_commission == Decimal("100.00")
        assert statement.commission_waived is True

    def test_cleaning_pass_through_once_per_stay(
        self, aggregator, make_property, make_reservation, make_expense,
    ):
        prop = make_property(commission_percent=Decimal("15"), cleaning_fee_pass_through=True)
        make_reservation(
            prop, date(2025, 12, 30), date(2026, 1, 3), "400.00",
            guest_cleaning_fee=Decimal("115.00"),
        )
        make_expense(prop, date(2026, 1, 3), "-95.00", "Turnover cleaning")

        december = aggregator.generate_for_property(
            prop.id, DEC_START, DEC_END, CalculationMode.CALENDAR,
        )
        january = aggregator.generate_for_property(
            prop.id, JAN_START, JAN_END, CalculationMode.CALENDAR,
        )

        assert december.total_cleaning_fee == Decimal("0.00")
        assert january.total_cleaning_fee == Decimal("100.00")
        assert january.total_expenses == Decimal("0.00")
        assert january.internal_notes is None


class TestGroupStatement:

    def test_combined_statement(self, session, aggregator, make_group, make_property, make_reservation):
        group = make_group(tags="monthly-owners", destination_account="acct_group")
        a = make_property("Unit A", commission_percent=Decimal("10"), group_id=group.id)
        b = make_property("Unit B", commission_percent=Decimal("20"), group_id=group.id)
        make_reservation(a, date(2026, 1, 5), date(2026, 1, 8), "300.00")
        make_reservation(b, date(2026, 1, 9), date(2026, 1, 12), "500.00")
        session.refresh(group)

        statement = aggregator.generate_for_group(group.id, JAN_START, JAN_END)

        assert statement.is_combined
        assert statement.group_name == "Lakeside Portfolio"
        assert statement.group_tags == ["monthly-owners"]
        assert sorted(statement.property_ids) == sorted([str(a.id), str(b.id)])
        assert statement.total_revenue == Decimal("800.00")
        assert statement.owner_payout == Decimal("670.00")  # 270 + 400
        assert statement.entity_key == f"group:{group.id}"

    def test_targets_prefer_tagged_group(self, session, aggregator, make_group, make_property):
        group = make_group(tags="Owners")
        make_property("Grouped", tags="owners", group_id=group.id)
        make_property("Solo", tags="owners, vip")
        make_property("Untagged")
        make_property("Inactive", tags="owners", is_active=False)

        targets = aggregator.targets_for_tag("OWNERS")

        assert [(t.kind, t.label) for t in targets] == [
            ("group", "Lakeside Portfolio"),
            ("property", "Solo"),
        ]
